"""
Unit tests for feedback outputs (LEDs and sidetone) without hardware.
"""

from unittest.mock import patch

import pytest

from cw_keyer_web.cw_errors import PinConfigError
from cw_keyer_web.cw_gpio_output import ConsoleLed, GPIOLed, LedGroup, NullLed
from cw_keyer_web.cw_sidetone import SidetoneGenerator


class TestLeds:
    """Tests for the LED backends."""

    def test_console_led_prints(self, capsys):
        led = ConsoleLed('DIT')
        led.on()
        led.off()
        assert capsys.readouterr().out == "[LED] DIT ON\n[LED] DIT off\n"

    def test_null_led_tracks_state(self):
        led = NullLed()
        led.on()
        assert led.is_on is True
        led.cleanup()

    def test_group_fans_out(self, make_led):
        a, b = make_led(), make_led()
        group = LedGroup(a, None, b)
        group.on()
        assert a.is_on and b.is_on
        group.off()
        assert a.history == b.history == [True, False]

    def test_gpio_led_without_library(self):
        with patch('cw_keyer_web.cw_gpio_output.GPIO_AVAILABLE', False):
            with pytest.raises(PinConfigError) as exc_info:
                GPIOLed(5)
        assert exc_info.value.pin == 5


class TestSidetone:
    """Tests for the sidetone without an audio device."""

    def test_disabled_without_audio_library(self, capsys):
        with patch('cw_keyer_web.cw_sidetone.AUDIO_AVAILABLE', False):
            tone = SidetoneGenerator(frequency=700)
        assert tone.enabled is False
        assert "pyaudio not available" in capsys.readouterr().out

        # Still usable as an LED
        tone.on()
        assert tone.is_on is True
        tone.off()
        tone.cleanup()

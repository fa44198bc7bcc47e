"""
Unit tests for the paddle debouncer.
"""

import pytest

from cw_keyer_web.cw_debounce import Debouncer
from cw_keyer_web.cw_errors import PinConfigError
from cw_keyer_web.cw_gpio_input import HIGH, LOW, SimulatedInputPin


@pytest.fixture
def pin():
    return SimulatedInputPin('DIT')


@pytest.fixture
def debouncer(pin, scheduler):
    d = Debouncer(pin, scheduler, debounce_ms=10)
    d.changes = []
    d.add_listener(lambda pressed: d.changes.append((scheduler.now(), pressed)))
    d.start()
    return d


class TestDebouncer:
    """Tests for lockout + settle filtering."""

    def test_initial_state_from_pin(self, scheduler):
        held = SimulatedInputPin('DAH', level=LOW)
        d = Debouncer(held, scheduler)
        d.start()
        assert d.pressed is True
        assert held.callback == d.on_edge

    def test_first_edge_accepted_immediately(self, pin, debouncer, scheduler):
        scheduler.advance(5)
        pin.press()
        assert debouncer.changes == [(5, True)]
        assert debouncer.pressed is True

    def test_bounces_inside_window_suppressed(self, pin, debouncer, scheduler):
        pin.press()
        scheduler.advance(2)
        pin.release()
        scheduler.advance(1)
        pin.press()
        scheduler.advance(1)
        pin.release()
        scheduler.advance(1)
        pin.press()
        scheduler.advance(20)

        assert debouncer.changes == [(0, True)]
        assert debouncer.suppressed >= 3

    def test_final_level_applied_at_settle(self, pin, debouncer, scheduler):
        pin.press()
        scheduler.advance(4)
        pin.release()
        assert debouncer.changes == [(0, True)]

        scheduler.advance(10)
        assert debouncer.changes == [(0, True), (10, False)]
        assert debouncer.pressed is False

    def test_repeat_of_stable_level_ignored(self, pin, debouncer, scheduler):
        pin.press()
        scheduler.advance(50)
        pin.press()
        pin.press()
        assert debouncer.changes == [(0, True)]
        assert scheduler.pending() == 0

    def test_clean_press_release_after_window(self, pin, debouncer, scheduler):
        pin.press()
        scheduler.advance(100)
        pin.release()
        scheduler.advance(100)
        pin.press()
        assert debouncer.changes == [(0, True), (100, False), (200, True)]

    def test_zero_window_passes_everything(self, scheduler):
        raw = SimulatedInputPin('RAW')
        d = Debouncer(raw, scheduler, debounce_ms=0)
        seen = []
        d.add_listener(seen.append)
        d.start()
        raw.press()
        raw.release()
        raw.press()
        assert seen == [True, False, True]

    def test_negative_window_rejected(self, pin, scheduler):
        with pytest.raises(ValueError):
            Debouncer(pin, scheduler, debounce_ms=-1)

    def test_setup_failure_is_fatal_and_attaches_nothing(self, scheduler):
        broken = SimulatedInputPin('GPIO27', fail_setup="pull-up configuration failed")
        d = Debouncer(broken, scheduler)
        with pytest.raises(PinConfigError) as exc_info:
            d.start()
        assert exc_info.value.pin == 'GPIO27'
        assert broken.callback is None

    def test_stop_cancels_settle(self, pin, debouncer, scheduler):
        pin.press()
        scheduler.advance(2)
        pin.release()
        assert scheduler.pending() == 1

        debouncer.stop()
        assert scheduler.pending() == 0
        assert pin.callback is None
        scheduler.advance(50)
        assert debouncer.changes == [(0, True)]

    def test_multiple_listeners(self, pin, scheduler):
        d = Debouncer(pin, scheduler)
        a, b = [], []
        d.add_listener(a.append)
        d.add_listener(b.append)
        d.start()
        pin.set_level(LOW)
        scheduler.advance(20)
        pin.set_level(HIGH)
        assert a == b == [True, False]

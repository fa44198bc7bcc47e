"""
CW Feedback Outputs - LEDs that follow the key / keyer state

All outputs share a tiny interface: set(on), on(), off(), cleanup().

Pin Configuration (BCM numbering, defaults):
- GPIO 5  - Straight key LED
- GPIO 6  - Dit LED
- GPIO 13 - Dah LED
Connect each LED with a series resistor (330R) to GND.
"""

# GPIO support (Raspberry Pi)
try:
    import RPi.GPIO as GPIO
    GPIO_AVAILABLE = True
except ImportError:
    GPIO = None
    GPIO_AVAILABLE = False

from .cw_errors import PinConfigError


class GPIOLed:
    """LED on a Raspberry Pi GPIO pin"""

    def __init__(self, pin, active_high=True):
        """
        Initialize GPIO output

        Args:
            pin: BCM GPIO pin number
            active_high: True = LED on is HIGH, False = LED on is LOW
        """
        if not GPIO_AVAILABLE:
            raise PinConfigError(pin, "RPi.GPIO not available (pip3 install RPi.GPIO)")
        self.pin = pin
        self.active_high = active_high
        self.is_on = False

        try:
            GPIO.setmode(GPIO.BCM)
            GPIO.setwarnings(False)
            GPIO.setup(self.pin, GPIO.OUT)
        except (RuntimeError, ValueError) as e:
            raise PinConfigError(pin, f"output configuration failed: {e}") from e

        self.set(False)

    def set(self, on):
        self.is_on = on
        if self.active_high:
            GPIO.output(self.pin, GPIO.HIGH if on else GPIO.LOW)
        else:
            GPIO.output(self.pin, GPIO.LOW if on else GPIO.HIGH)

    def on(self):
        self.set(True)

    def off(self):
        self.set(False)

    def cleanup(self):
        """Release GPIO resources"""
        self.set(False)
        GPIO.cleanup(self.pin)


class ConsoleLed:
    """Prints LED changes - for running without hardware"""

    def __init__(self, name):
        self.name = name
        self.is_on = False

    def set(self, on):
        self.is_on = on
        print(f"[LED] {self.name} {'ON' if on else 'off'}")

    def on(self):
        self.set(True)

    def off(self):
        self.set(False)

    def cleanup(self):
        self.is_on = False


class NullLed:
    """No feedback output"""

    is_on = False

    def set(self, on):
        self.is_on = on

    def on(self):
        self.set(True)

    def off(self):
        self.set(False)

    def cleanup(self):
        pass


class LedGroup:
    """Drive several outputs as one (e.g. an LED plus the sidetone)"""

    def __init__(self, *outputs):
        self.outputs = [o for o in outputs if o is not None]
        self.is_on = False

    def set(self, on):
        self.is_on = on
        for output in self.outputs:
            output.set(on)

    def on(self):
        self.set(True)

    def off(self):
        self.set(False)

    def cleanup(self):
        for output in self.outputs:
            output.cleanup()

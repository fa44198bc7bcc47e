"""
Straight Key Monitor - mirrors the key contact as key-down/key-up events

CW Straight Key Circuit:
    Input pin (pull-up) ---- Straight key ---- GND

    Key open:   pin HIGH (pulled up) -> LED off, {"keyDown": false}
    Key closed: pin LOW (to GND)     -> LED on,  {"keyDown": true}

No timing and no deduplication: every level notification re-asserts the LED
and is broadcast as-is.
"""

from .cw_events import key_event, describe
from .cw_gpio_input import LOW


class StraightKeyMonitor:
    """Pass-through from key pin to LED and broadcaster"""

    def __init__(self, pin, led, publish, debug=False, visual=False):
        """
        Args:
            pin: Input pin the key is wired to
            led: Feedback output (set(on))
            publish: Callable receiving each event dict
            debug: Print every event
            visual: Print ▄/▀ for key down/up
        """
        self.pin = pin
        self.led = led
        self.publish = publish
        self.debug = debug
        self.visual = visual
        self.events_sent = 0

    def start(self):
        """Configure the pin and start listening (PinConfigError propagates)"""
        self.pin.setup()
        self.pin.start(self.on_level)
        print(f"✓ Straight key ready on {self.pin.name}")

    def on_level(self, level):
        # Pin reads LOW when key is closed, HIGH when open
        key_down = level == LOW
        self.led.set(key_down)
        event = key_event(key_down)
        self.publish(event)
        self.events_sent += 1

        if self.debug:
            print(f"[KEY] {describe(event)}")
        elif self.visual:
            print("▄" if key_down else "▀", end='', flush=True)

    def stop(self):
        self.led.off()
        self.pin.close()

"""
Debouncer - turns raw contact edges into a stable pressed/released state

Filtering (lockout + settle):
    - An edge that changes the stable state is accepted at once if at least
      debounce_ms has passed since the last accepted change.
    - Inside the lockout window the raw level is only recorded; a settle
      check at the end of the window applies whatever the contact reads by
      then, if it differs from the stable state.
    - Edges repeating the stable level are ignored.

So the first edge of a press is seen with no added latency, bounces inside
the window are dropped, and the final level is never lost. debounce_ms=0
passes every change straight through.
"""

from .cw_timing import DEBOUNCE_MS
from .cw_gpio_input import LOW


class Debouncer:
    """Debounced view of one input pin (one paddle)"""

    def __init__(self, pin, scheduler, debounce_ms=DEBOUNCE_MS, name=None, debug=False):
        """
        Args:
            pin: Input pin (GPIOInputPin, SerialLinePin, SimulatedInputPin)
            scheduler: Scheduler used for settle checks and timestamps
            debounce_ms: Minimum stable interval between accepted changes
            name: Label for debug output
            debug: Print accepted and suppressed edges
        """
        if debounce_ms < 0:
            raise ValueError(f"debounce_ms must be >= 0, got {debounce_ms}")
        self.pin = pin
        self.scheduler = scheduler
        self.debounce_ms = debounce_ms
        self.name = name or getattr(pin, 'name', 'pin')
        self.debug = debug

        self.raw_level = None
        self.pressed = False
        self.last_change = None  # ms on the scheduler clock
        self.suppressed = 0

        self._listeners = []
        self._settle_handle = None

    def add_listener(self, callback):
        """callback(pressed: bool) is called on every accepted change"""
        self._listeners.append(callback)

    def start(self):
        """
        Configure the pin, then attach the edge listener

        PinConfigError from the pin propagates: a paddle must never run on
        an unconfigured pin.
        """
        self.pin.setup()
        self.raw_level = self.pin.read()
        self.pressed = self.raw_level == LOW
        self.pin.start(self.on_edge)

    def on_edge(self, level):
        """Raw level change from the pin"""
        now = self.scheduler.now()
        self.raw_level = level
        pressed = level == LOW

        if self._settle_handle is not None:
            # Settle check will pick up the latest raw level
            self.suppressed += 1
            return
        if pressed == self.pressed:
            return

        if self.last_change is None or now - self.last_change >= self.debounce_ms:
            self._accept(pressed, now)
        else:
            self.suppressed += 1
            delay = self.last_change + self.debounce_ms - now
            if self.debug:
                print(f"[DEBOUNCE] {self.name} bounce suppressed, settle in {delay:.1f}ms")
            self._settle_handle = self.scheduler.call_later(delay, self._settle)

    def _settle(self):
        self._settle_handle = None
        pressed = self.raw_level == LOW
        if pressed != self.pressed:
            self._accept(pressed, self.scheduler.now())

    def _accept(self, pressed, now):
        self.pressed = pressed
        self.last_change = now
        if self.debug:
            print(f"[DEBOUNCE] {self.name} {'pressed' if pressed else 'released'} @ {now:.1f}ms")
        for callback in self._listeners:
            callback(pressed)

    def stop(self):
        if self._settle_handle is not None:
            self._settle_handle.cancel()
            self._settle_handle = None
        self.pin.close()

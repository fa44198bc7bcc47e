"""
Iambic Keyer - decides, times and sequences dits and dahs from two paddles

Basic iambic operation (no dot/dash squeeze memory):
    - Only DIT held:  ...dit dit dit
    - Only DAH held:  ...dah dah dah
    - Both held:      alternate, starting opposite to the last element sent
                      (DIT if nothing has been sent yet)
    - An element always plays to completion once started

State machine (one scheduler handle pending at a time):

    IDLE --paddle pressed--> SENDING(element)
    SENDING --element duration--> SPACING   (LED off, keying flag cleared)
    SPACING --one unit--> IDLE, paddles re-checked at once

Timing at 20 WPM: dit 60ms, dah 180ms, inter-element space 60ms.

Every method runs on the scheduler's thread (asyncio loop, or a
ManualScheduler in tests); nothing here locks. Running it from several
threads would need a mutex around check_paddles/send_element.
"""

from .cw_events import DIT, DAH, element_event, describe
from .cw_timing import TimingConfig

# Keyer phases
IDLE = 'idle'
SENDING = 'sending'
SPACING = 'spacing'


class KeyerState:
    """Mutable state owned by one IambicKeyer"""

    def __init__(self):
        self.is_keying = False      # True for [element start, element end)
        self.current_element = None  # None, DIT or DAH; kept after the element ends
        self.dit_pressed = False
        self.dah_pressed = False

    def __repr__(self):
        return (f"KeyerState(is_keying={self.is_keying}, current_element={self.current_element}, "
                f"dit_pressed={self.dit_pressed}, dah_pressed={self.dah_pressed})")


class IambicKeyer:
    """Iambic keyer state machine"""

    def __init__(self, scheduler, publish, timing=None, dit_led=None, dah_led=None,
                 debug=False, visual=False):
        """
        Args:
            scheduler: AsyncioScheduler or ManualScheduler
            publish: Callable receiving each element event dict
            timing: TimingConfig (default 20 WPM)
            dit_led: Output lit while a dit is sent
            dah_led: Output lit while a dah is sent
            debug: Print each element
            visual: Print ▪/▬ per element
        """
        self.scheduler = scheduler
        self.publish = publish
        self.timing = timing or TimingConfig()
        self.leds = {DIT: dit_led, DAH: dah_led}
        self.debug = debug
        self.visual = visual

        self.state = KeyerState()
        self.phase = IDLE
        self.elements_sent = 0
        self._handle = None

    # ------------------------------------------------------------------
    # Paddle input
    # ------------------------------------------------------------------
    def attach(self, dit_input, dah_input):
        """
        Subscribe to two debounced paddle inputs

        Takes over their current state, so a paddle already held when the
        keyer is attached starts sending at once.
        """
        dit_input.add_listener(lambda pressed: self.on_paddle_change(DIT, pressed))
        dah_input.add_listener(lambda pressed: self.on_paddle_change(DAH, pressed))
        self.state.dit_pressed = dit_input.pressed
        self.state.dah_pressed = dah_input.pressed
        self.check_paddles()

    def on_paddle_change(self, which, pressed):
        """
        Record a paddle change; a new press triggers a scheduling check

        Args:
            which: DIT or DAH
            pressed: Debounced paddle state
        """
        if which == DIT:
            was_pressed = self.state.dit_pressed
            self.state.dit_pressed = pressed
        elif which == DAH:
            was_pressed = self.state.dah_pressed
            self.state.dah_pressed = pressed
        else:
            raise ValueError(f"Unknown paddle: {which!r}")

        if pressed and not was_pressed:
            self.check_paddles()

    # ------------------------------------------------------------------
    # Scheduling decision
    # ------------------------------------------------------------------
    def next_element(self):
        """Element the paddles ask for right now, or None when idle"""
        dit = self.state.dit_pressed
        dah = self.state.dah_pressed
        if dit and dah:
            # Opposite of the last element; DIT when nothing was sent yet
            return DAH if self.state.current_element == DIT else DIT
        if dit:
            return DIT
        if dah:
            return DAH
        return None

    def check_paddles(self):
        """
        Start the next element unless one is active or the space is running

        Guards on the SPACING phase as well as on is_keying. A press during
        the inter-element space is picked up by _end_space(), so the space
        is never cut short.
        """
        if self.state.is_keying or self.phase == SPACING:
            return
        element = self.next_element()
        if element is not None:
            self.send_element(element)

    # ------------------------------------------------------------------
    # Transmission
    # ------------------------------------------------------------------
    def send_element(self, element):
        """
        Transmit one element; no-op while another element is active

        Order: keying flag, current element, LED on, start event (with full
        duration), end-of-element timer.
        """
        if self.state.is_keying:
            return
        duration = self.timing.duration_of(element)

        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

        self.state.is_keying = True
        self.state.current_element = element
        self.phase = SENDING
        led = self.leds.get(element)
        if led is not None:
            led.on()

        event = element_event(element, duration)
        self.publish(event)
        self.elements_sent += 1
        if self.debug:
            print(f"[KEYER] {describe(event)}")
        elif self.visual:
            print("▪" if element == DIT else "▬", end='', flush=True)

        self._handle = self.scheduler.call_later(duration, self._end_element, element)

    def _end_element(self, element):
        led = self.leds.get(element)
        if led is not None:
            led.off()
        self.state.is_keying = False
        self.phase = SPACING
        self._handle = self.scheduler.call_later(self.timing.element_space_ms, self._end_space)

    def _end_space(self):
        self._handle = None
        self.phase = IDLE
        self.check_paddles()

    def stop(self):
        """Cancel the pending timer and switch LEDs off (process shutdown only)"""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        for led in self.leds.values():
            if led is not None:
                led.off()
        self.state.is_keying = False
        self.phase = IDLE

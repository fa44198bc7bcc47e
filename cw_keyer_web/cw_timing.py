"""
CW Timing - element durations derived from keyer speed (PARIS standard)
"""

DEFAULT_WPM = 20
DEBOUNCE_MS = 10

MIN_WPM = 5
MAX_WPM = 60


class TimingConfig:
    """Element timing for a fixed speed (all values in milliseconds)"""

    def __init__(self, wpm=DEFAULT_WPM):
        if wpm <= 0:
            raise ValueError(f"WPM must be positive, got {wpm}")
        self._wpm = wpm
        self._unit = 1200 / wpm

    @property
    def wpm(self):
        return self._wpm

    @property
    def unit_ms(self):
        return self._unit

    @property
    def dit_ms(self):
        return self._unit

    @property
    def dah_ms(self):
        return self._unit * 3

    @property
    def element_space_ms(self):
        return self._unit

    def duration_of(self, element):
        """
        Duration of one element

        Args:
            element: 'dit' or 'dah'

        Returns:
            Duration in milliseconds
        """
        if element == 'dit':
            return self.dit_ms
        if element == 'dah':
            return self.dah_ms
        raise ValueError(f"Unknown element: {element!r}")

    def __repr__(self):
        return (f"TimingConfig(wpm={self._wpm}, dit={self.dit_ms:.0f}ms, "
                f"dah={self.dah_ms:.0f}ms, space={self.element_space_ms:.0f}ms)")

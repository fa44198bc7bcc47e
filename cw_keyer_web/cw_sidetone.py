"""
Local sidetone - audible key feedback on the keyer host

Behaves like an LED (set/on/off/cleanup) so it can sit next to the GPIO LEDs
in an LedGroup. Audio runs in PyAudio's callback thread; set() only flips a
flag, which the callback reads.
"""

# Try to import audio library
try:
    import pyaudio
    import numpy as np
    AUDIO_AVAILABLE = True
except ImportError:
    AUDIO_AVAILABLE = False


class SidetoneGenerator:
    """Generate sidetone audio using PyAudio"""

    def __init__(self, frequency=600, sample_rate=48000, volume=0.3, ramp_ms=4.0):
        self.frequency = frequency
        self.sample_rate = sample_rate
        self.volume = volume
        self.is_on = False
        self.enabled = False

        if not AUDIO_AVAILABLE:
            print("⚠ pyaudio not available - install with: pip3 install pyaudio")
            return

        self.phase = 0.0
        self.envelope = 0.0
        # Envelope step per sample, avoids key clicks
        self.ramp_step = 1.0 / max(ramp_ms / 1000.0 * sample_rate, 1.0)

        try:
            self.p = pyaudio.PyAudio()
            self.stream = self.p.open(
                format=pyaudio.paFloat32,
                channels=1,
                rate=self.sample_rate,
                output=True,
                frames_per_buffer=128,  # Low latency
                stream_callback=self._audio_callback
            )
            self.stream.start_stream()
            self.enabled = True
            print(f"✓ Sidetone initialized ({frequency}Hz)")
        except (OSError, IOError) as e:
            print(f"✗ Sidetone failed: {e}")
            if hasattr(self, 'p'):
                self.p.terminate()

    def _audio_callback(self, in_data, frame_count, time_info, status):
        """Generate audio samples"""
        target = 1.0 if self.is_on else 0.0
        if target == 0.0 and self.envelope == 0.0:
            return (np.zeros(frame_count, dtype=np.float32).tobytes(), pyaudio.paContinue)

        steps = np.arange(1, frame_count + 1, dtype=np.float32) * self.ramp_step
        if target > self.envelope:
            env = np.minimum(self.envelope + steps, 1.0)
        else:
            env = np.maximum(self.envelope - steps, 0.0)
        self.envelope = float(env[-1])

        omega = 2.0 * np.pi * self.frequency / self.sample_rate
        samples = np.arange(frame_count)
        audio = (self.volume * env * np.sin(omega * samples + self.phase)).astype(np.float32)
        self.phase = (self.phase + omega * frame_count) % (2.0 * np.pi)
        return (audio.tobytes(), pyaudio.paContinue)

    def set(self, on):
        self.is_on = on

    def on(self):
        self.set(True)

    def off(self):
        self.set(False)

    def cleanup(self):
        """Cleanup audio resources"""
        if not self.enabled:
            return
        self.enabled = False
        try:
            self.stream.stop_stream()
            self.stream.close()
        except (OSError, IOError) as e:
            print(f"Warning: Error closing audio stream: {e}")
        self.p.terminate()

"""Short alert beep played when the trigger fires."""

import logging
import threading
from typing import Optional

import numpy as np
import pyaudio

logger = logging.getLogger(__name__)


def render_beep(sample_rate: int = 44100,
                frequency: float = 880.0,
                duration: float = 0.3,
                start_gain: float = 0.5,
                end_gain: float = 0.0001) -> np.ndarray:
    """Render a sine beep with an exponential fade-out as float32 samples."""
    n_samples = int(sample_rate * duration)
    t = np.arange(n_samples, dtype=np.float64) / sample_rate
    envelope = start_gain * (end_gain / start_gain) ** (t / duration)
    return (np.sin(2 * np.pi * frequency * t) * envelope).astype(np.float32)


class AlertSound:
    """Plays the alert beep on the default output device without blocking the caller."""

    def __init__(self, sample_rate: int = 44100):
        self.sample_rate = sample_rate
        self.samples = render_beep(sample_rate)
        self._thread: Optional[threading.Thread] = None

    def play(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            logger.debug("Alert sound already playing")
            return
        self._thread = threading.Thread(target=self._play_blocking, daemon=True)
        self._thread.name = "AlertSoundThread"
        self._thread.start()

    def _play_blocking(self) -> None:
        pa = None
        stream = None
        try:
            pa = pyaudio.PyAudio()
            stream = pa.open(format=pyaudio.paFloat32, channels=1,
                             rate=self.sample_rate, output=True)
            stream.write(self.samples.tobytes())
        except Exception as e:
            logger.warning(f"Could not play alert sound: {e}")
        finally:
            if stream is not None:
                stream.stop_stream()
                stream.close()
            if pa is not None:
                pa.terminate()

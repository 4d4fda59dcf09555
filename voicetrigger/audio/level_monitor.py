"""Loudness feedback for the display, sampled independently of the audio callback."""

import logging
import threading
from typing import Callable, Optional

import numpy as np

logger = logging.getLogger(__name__)


def to_byte_time_domain(samples: np.ndarray) -> np.ndarray:
    """Map float samples onto unsigned bytes centred on 128 (silence)."""
    data = np.asarray(samples, dtype=np.float64)
    return np.clip(np.floor(128.0 * (data + 1.0)), 0, 255).astype(np.uint8)


def compute_rms_level(byte_data: np.ndarray) -> float:
    """Root-mean-square level of byte amplitudes, normalised to [0, 1].

    Each byte value v is mapped to x = v / 128 - 1 before squaring.
    """
    if len(byte_data) == 0:
        return 0.0
    normalized = np.asarray(byte_data, dtype=np.float64) / 128.0 - 1.0
    rms = float(np.sqrt(np.sum(normalized * normalized) / len(normalized)))
    return min(rms, 1.0)


class AudioLevelMonitor:
    """Publishes the RMS level of the most recent audio on a fixed refresh cadence."""

    def __init__(self,
                 publish: Callable[[float], None],
                 refresh_hz: float = 30.0,
                 window_size: int = 256):
        """Initialize the level monitor.

        Args:
            publish: Called with each new level from the monitor thread
            refresh_hz: Display refresh rate
            window_size: Number of most recent samples used per reading
        """
        if refresh_hz <= 0:
            raise ValueError("refresh_hz must be positive")
        self.publish = publish
        self.interval = 1.0 / refresh_hz
        self.window_size = window_size

        self._latest: Optional[np.ndarray] = None
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def submit(self, samples: np.ndarray) -> None:
        """Hand over the newest raw samples. Safe to call from the audio callback."""
        window = np.array(samples[-self.window_size:], dtype=np.float32)
        with self._lock:
            self._latest = window

    def sample_level(self) -> float:
        with self._lock:
            latest = self._latest
        if latest is None:
            return 0.0
        return compute_rms_level(to_byte_time_domain(latest))

    def start(self) -> None:
        if self.is_running:
            logger.warning("Level monitor already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.name = "AudioLevelMonitorThread"
        self._thread.start()
        logger.debug(f"Level monitor started ({1.0 / self.interval:.0f} Hz)")

    def stop(self) -> None:
        """Cancel the refresh loop; no level is published after this returns."""
        self._stop_event.set()
        thread = self._thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=1.0)
            if thread.is_alive():
                logger.warning("Level monitor thread did not stop cleanly")
        self._thread = None
        with self._lock:
            self._latest = None

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            level = self.sample_level()
            if self._stop_event.is_set():
                break
            try:
                self.publish(level)
            except Exception as e:
                logger.error(f"Error publishing audio level: {e}")

"""Microphone capture that turns the PyAudio callback stream into encoded frames."""

import pyaudio
import time
import logging
import threading
from typing import Optional, Callable
from datetime import datetime

import numpy as np

from ..exceptions import AcquisitionError
from ..models.audio import AudioFrame, AudioStats, EncodedChunk
from .encoder import AudioFrameEncoder
from .level_monitor import AudioLevelMonitor


logger = logging.getLogger(__name__)


class AudioCaptureEngine:
    """Owns the microphone stream and forwards every frame to the session and the level monitor.

    The PyAudio stream runs in callback mode: the platform audio thread calls
    us once per frame. Nothing done here may block that thread.
    """

    def __init__(
        self,
        send_frame: Callable[[EncodedChunk], None],
        encoder: Optional[AudioFrameEncoder] = None,
        level_monitor: Optional[AudioLevelMonitor] = None,
        sample_rate: int = 16000,
        chunk_size: int = 4096,
        channels: int = 1,
    ):
        """Initialize audio capture with specified parameters.

        Args:
            send_frame: Non-blocking hand-off for each encoded frame
            encoder: Frame encoder (defaults to 16-bit PCM at sample_rate)
            level_monitor: Receives the raw samples of every frame
            sample_rate: Audio sample rate (16kHz for the live session)
            chunk_size: Samples per frame, one frame per callback
            channels: Number of audio channels (1 for mono)
        """
        self.send_frame = send_frame
        self.encoder = encoder or AudioFrameEncoder(sample_rate)
        self.level_monitor = level_monitor
        self.sample_rate = sample_rate
        self.chunk_size = chunk_size
        self.channels = channels

        self.is_recording = False
        self._wired = False
        self._lock = threading.Lock()

        # Statistics tracking
        self.start_time: Optional[datetime] = None
        self.total_chunks = 0

        # PyAudio instance and stream
        self.pyaudio_instance: Optional[pyaudio.PyAudio] = None
        self.stream = None

    @property
    def is_open(self) -> bool:
        return self.stream is not None

    def open(self) -> None:
        """Acquire the microphone without starting the flow of frames."""
        if self.stream is not None:
            logger.warning("Microphone already open")
            return

        try:
            self.pyaudio_instance = pyaudio.PyAudio()
            self.stream = self.pyaudio_instance.open(
                format=pyaudio.paFloat32,
                channels=self.channels,
                rate=self.sample_rate,
                input=True,
                frames_per_buffer=self.chunk_size,
                stream_callback=self._callback,
                start=False,
            )
        except Exception as e:
            logger.error(f"Could not open microphone: {e}")
            self.close()
            raise AcquisitionError(f"Could not open microphone: {e}") from e

        logger.info(f"Microphone opened: {self.sample_rate}Hz, "
                    f"{self.chunk_size} samples/frame, {self.channels} channel(s)")

    def start(self) -> None:
        """Wire the callback to the session and start the stream."""
        if self.stream is None:
            raise AcquisitionError("Microphone is not open")
        if self.is_recording:
            logger.warning("Recording already in progress")
            return

        self.start_time = datetime.now()
        self.total_chunks = 0
        with self._lock:
            self._wired = True
        self.stream.start_stream()
        self.is_recording = True
        logger.info("Audio capture started")

    def close(self) -> None:
        """Release the microphone, detach the callback and terminate PyAudio.

        Safe to call repeatedly and from any state.
        """
        stream = self.stream
        if stream is not None:
            # Stop the microphone first so no new callbacks are queued
            try:
                stream.stop_stream()
            except Exception as e:
                logger.warning(f"Error stopping microphone stream: {e}")

        with self._lock:
            self._wired = False

        if stream is not None:
            try:
                stream.close()
            except Exception as e:
                logger.warning(f"Error closing microphone stream: {e}")
            self.stream = None

        if self.pyaudio_instance is not None:
            try:
                self.pyaudio_instance.terminate()
            except Exception as e:
                logger.warning(f"Error terminating PyAudio: {e}")
            self.pyaudio_instance = None

        if self.is_recording:
            logger.info(f"Audio capture stopped. Total frames: {self.total_chunks}")
        self.is_recording = False

    def _callback(self, in_data, frame_count, time_info, status_flags):
        """PyAudio callback, runs on the platform audio thread."""
        with self._lock:
            wired = self._wired
        if not wired:
            return (None, pyaudio.paComplete)

        if in_data is not None:
            try:
                self.process_samples(np.frombuffer(in_data, dtype=np.float32))
            except Exception as e:
                # Don't crash the audio thread
                logger.error(f"Error processing audio frame: {e}")
        return (None, pyaudio.paContinue)

    def process_samples(self, samples: np.ndarray) -> None:
        """Encode one frame, hand it to the session and feed the level monitor."""
        if self.channels > 1:
            samples = samples.reshape(-1, self.channels).mean(axis=1)

        self.total_chunks += 1
        frame = AudioFrame(
            samples=samples,
            timestamp=time.time(),
            frame_number=self.total_chunks,
            sample_rate=self.sample_rate,
        )
        self.send_frame(self.encoder.encode(frame))
        if self.level_monitor is not None:
            self.level_monitor.submit(frame.samples)

    def get_recording_stats(self) -> AudioStats:
        """Get current recording statistics."""
        duration = 0.0
        if self.start_time:
            duration = (datetime.now() - self.start_time).total_seconds()

        return AudioStats(
            is_recording=self.is_recording,
            duration_seconds=duration,
            sample_rate=self.sample_rate,
            chunk_size=self.chunk_size,
            total_chunks=self.total_chunks,
        )

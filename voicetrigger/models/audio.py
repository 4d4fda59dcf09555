"""Audio-related data models."""

from dataclasses import dataclass

import numpy as np


@dataclass
class AudioStats:
    """Audio recording statistics."""
    is_recording: bool
    duration_seconds: float
    sample_rate: int
    chunk_size: int
    total_chunks: int


@dataclass
class AudioFrame:
    """A single window of mono float samples in [-1.0, 1.0]."""
    samples: np.ndarray
    timestamp: float  # Time when this frame was captured
    frame_number: int
    sample_rate: int = 16000


@dataclass(frozen=True)
class EncodedChunk:
    """A frame rendered as 16-bit little-endian PCM, ready for the remote session."""
    data: bytes
    mime_type: str
    sample_rate: int
    sequence_number: int = 0

"""Conversion of float audio frames into the live session's PCM wire format."""

import numpy as np

from ..models.audio import AudioFrame, EncodedChunk

PCM_MIME_TEMPLATE = "audio/pcm;rate={rate}"


def float_to_pcm16(samples: np.ndarray) -> bytes:
    """Scale [-1.0, 1.0] samples by 32768 and render them as int16 little-endian bytes.

    Values outside the int16 range are clamped; fractional parts are truncated.
    """
    scaled = np.asarray(samples, dtype=np.float32) * 32768.0
    return np.clip(scaled, -32768, 32767).astype('<i2').tobytes()


class AudioFrameEncoder:
    """Stateless encoder from AudioFrame to EncodedChunk."""

    def __init__(self, sample_rate: int = 16000):
        self.sample_rate = sample_rate
        self.mime_type = PCM_MIME_TEMPLATE.format(rate=sample_rate)

    def encode(self, frame: AudioFrame) -> EncodedChunk:
        return EncodedChunk(
            data=float_to_pcm16(frame.samples),
            mime_type=self.mime_type,
            sample_rate=self.sample_rate,
            sequence_number=frame.frame_number,
        )

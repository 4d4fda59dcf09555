"""Audio capture, encoding and level monitoring module."""

from .capture import AudioCaptureEngine
from .encoder import AudioFrameEncoder
from .level_monitor import AudioLevelMonitor

__all__ = [
    'AudioCaptureEngine',
    'AudioFrameEncoder',
    'AudioLevelMonitor'
]

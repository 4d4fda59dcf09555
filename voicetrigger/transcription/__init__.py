"""Live transcription and trigger detection module for VoiceTrigger."""

from .base import AbstractLiveTranscriptionBackend, LiveConnection
from .detector import TranscriptionTriggerDetector
from .gemini_backend import GeminiLiveBackend
from .publisher import EventPublisher

__all__ = [
    "AbstractLiveTranscriptionBackend",
    "LiveConnection",
    "TranscriptionTriggerDetector",
    "GeminiLiveBackend",
    "EventPublisher",
]

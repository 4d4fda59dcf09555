"""Data models for the VoiceTrigger application."""

from .audio import AudioFrame, AudioStats, EncodedChunk
from .events import MessageKind, TranscriptMessage, TriggerEvent
from .session import SessionInfo, SessionState

__all__ = [
    "AudioFrame",
    "AudioStats",
    "EncodedChunk",
    "MessageKind",
    "TranscriptMessage",
    "TriggerEvent",
    "SessionInfo",
    "SessionState",
]

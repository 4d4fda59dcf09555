"""Services layer for VoiceTrigger application logic."""

from .controller import Controller
from .session_manager import StreamingSessionManager

__all__ = [
    "Controller",
    "StreamingSessionManager",
]

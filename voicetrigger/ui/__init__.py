"""Terminal presentation layer for VoiceTrigger."""

from .alert_sound import AlertSound
from .console_screen import ConsoleScreen

__all__ = ["AlertSound", "ConsoleScreen"]

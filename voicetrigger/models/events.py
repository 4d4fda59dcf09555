"""Event models exchanged between the session, the detector and the UI."""

import time
from dataclasses import dataclass, field
from enum import Enum


class MessageKind(Enum):
    """Kinds of messages delivered by the live transcription session."""
    FRAGMENT = "fragment"
    TURN_COMPLETE = "turn_complete"


@dataclass(frozen=True)
class TranscriptMessage:
    """One transcript increment or utterance boundary, in delivery order."""
    kind: MessageKind
    text: str = ""

    @classmethod
    def fragment(cls, text: str) -> "TranscriptMessage":
        return cls(MessageKind.FRAGMENT, text)

    @classmethod
    def turn_complete(cls) -> "TranscriptMessage":
        return cls(MessageKind.TURN_COMPLETE)


@dataclass(frozen=True)
class TriggerEvent:
    """Signal that the trigger token was found in the transcript."""
    timestamp: float = field(default_factory=time.time)

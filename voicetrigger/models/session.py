"""Session-related data models."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class SessionState(Enum):
    """Lifecycle of one listening session. CLOSED is terminal."""
    IDLE = "idle"
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class SessionInfo:
    """Snapshot of a listening session."""
    session_id: str
    state: SessionState
    start_time: Optional[datetime]
    frames_sent: int
    frames_dropped: int
    fragments_received: int
    triggers_fired: int

"""Trigger detection over the incrementally delivered input transcript."""

import logging
import threading
from typing import Callable, Optional

from ..models.events import TriggerEvent

logger = logging.getLogger(__name__)

DEFAULT_TRIGGER_TOKEN = "_squat_"


class TranscriptionTriggerDetector:
    """Accumulates transcript fragments and fires once per occurrence of the trigger token.

    Fragments can split the token anywhere and its case varies, so the whole
    buffer is searched case-insensitively after each append. On a match the
    buffer is emptied, so later fragments that repeat the token in the same
    utterance start from scratch. A match discards anything else the buffer
    held, including a second token in the same fragment.
    """

    def __init__(self,
                 on_trigger: Callable[[TriggerEvent], None],
                 on_transcript: Optional[Callable[[str], None]] = None,
                 trigger_token: str = DEFAULT_TRIGGER_TOKEN):
        """Initialize the detector.

        Args:
            on_trigger: Called once per detection
            on_transcript: Called with the buffer content each time it changes for display
            trigger_token: Reserved marker the remote model emits for the target phrase
        """
        if not trigger_token:
            raise ValueError("trigger_token must be a non-empty string")
        self.trigger_token = trigger_token.lower()
        self.on_trigger = on_trigger
        self.on_transcript = on_transcript

        self._buffer = ""
        self._lock = threading.RLock()
        self.fragments_received = 0
        self.triggers_fired = 0

    @property
    def buffer(self) -> str:
        with self._lock:
            return self._buffer

    def on_fragment(self, text: str) -> bool:
        """Append a transcript fragment and check for the trigger token.

        Returns:
            True if this fragment completed a trigger
        """
        with self._lock:
            self.fragments_received += 1
            self._buffer += text
            self._publish(self._buffer)

            if self.trigger_token not in self._buffer.lower():
                return False

            self.triggers_fired += 1
            logger.info(f"Trigger token detected (#{self.triggers_fired})")
            try:
                self.on_trigger(TriggerEvent())
            finally:
                self._buffer = ""
                self._publish("")
            return True

    def on_turn_boundary(self) -> None:
        """Drop whatever accumulated during the utterance that just ended."""
        with self._lock:
            if self._buffer:
                logger.debug(f"Turn complete, discarding {len(self._buffer)} buffered characters")
            self._buffer = ""

    def reset(self) -> None:
        """Empty the buffer and the displayed transcript."""
        with self._lock:
            self._buffer = ""
            self._publish("")

    def _publish(self, text: str) -> None:
        if self.on_transcript is None:
            return
        try:
            self.on_transcript(text)
        except Exception as e:
            logger.error(f"Error publishing transcript: {e}")

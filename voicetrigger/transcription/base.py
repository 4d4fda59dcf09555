"""Abstract base classes for live transcription backends."""

from abc import ABC, abstractmethod
from typing import AsyncIterator
import logging

from ..models.audio import EncodedChunk
from ..models.events import TranscriptMessage

logger = logging.getLogger(__name__)


class LiveConnection(ABC):
    """An open streaming session with the remote transcription service."""

    @abstractmethod
    async def send_audio(self, chunk: EncodedChunk) -> None:
        """Forward one encoded audio chunk to the remote session."""
        pass

    @abstractmethod
    def receive(self) -> AsyncIterator[TranscriptMessage]:
        """Yield transcript messages in the order the service delivers them.

        The iterator ends when the remote side closes the session.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the remote session."""
        pass


class AbstractLiveTranscriptionBackend(ABC):
    """Abstract base class for live transcription backends."""

    def __init__(self, system_instruction: str):
        """Initialize backend with the instruction given to the remote model."""
        self.system_instruction = system_instruction

    @abstractmethod
    def initialize(self) -> bool:
        """Initialize backend resources and verify configuration.

        Returns:
            True if initialization successful, False otherwise
        """
        pass

    @abstractmethod
    async def connect(self) -> LiveConnection:
        """Open a new streaming session.

        Raises:
            ConnectionFailure: if the session cannot be opened
        """
        pass

    @abstractmethod
    def cleanup(self) -> None:
        """Clean up backend resources."""
        pass

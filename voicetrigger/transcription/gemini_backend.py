"""Gemini Live transcription backend."""

import contextlib
import logging
from typing import AsyncIterator, List, Optional

from google import genai
from google.genai import types
from google.oauth2 import service_account

from .base import AbstractLiveTranscriptionBackend, LiveConnection
from ..exceptions import ConnectionFailure
from ..models.audio import EncodedChunk
from ..models.events import TranscriptMessage

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash-native-audio-preview-09-2025"
CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


def parse_server_message(message) -> List[TranscriptMessage]:
    """Extract input transcription and turn boundaries from a live server message.

    A message can carry both; the fragment comes first so it lands in the
    buffer that the boundary then clears.
    """
    content = getattr(message, "server_content", None)
    if content is None:
        return []

    messages = []
    transcription = getattr(content, "input_transcription", None)
    if transcription is not None and transcription.text:
        messages.append(TranscriptMessage.fragment(transcription.text))
    if getattr(content, "turn_complete", False):
        messages.append(TranscriptMessage.turn_complete())
    return messages


class GeminiLiveConnection(LiveConnection):
    """One open Gemini Live session."""

    def __init__(self, session, exit_stack: contextlib.AsyncExitStack):
        self._session = session
        self._exit_stack = exit_stack

    async def send_audio(self, chunk: EncodedChunk) -> None:
        try:
            await self._session.send_realtime_input(
                audio=types.Blob(data=chunk.data, mime_type=chunk.mime_type)
            )
        except Exception as e:
            raise ConnectionFailure(f"Gemini Live send failed (frame={chunk.sequence_number}): {e}") from e

    async def receive(self) -> AsyncIterator[TranscriptMessage]:
        # session.receive() stops after each completed turn, so keep re-entering
        # it until a pass yields nothing, which means the socket is gone.
        while True:
            received_any = False
            try:
                async for message in self._session.receive():
                    received_any = True
                    for transcript_message in parse_server_message(message):
                        yield transcript_message
            except Exception as e:
                raise ConnectionFailure(f"Gemini Live receive failed: {e}") from e
            if not received_any:
                logger.info("Gemini Live session closed by the server")
                return

    async def close(self) -> None:
        try:
            await self._exit_stack.aclose()
        except Exception as e:
            raise ConnectionFailure(f"Gemini Live close failed: {e}") from e


class GeminiLiveBackend(AbstractLiveTranscriptionBackend):
    """Gemini Live API backend with input transcription enabled."""

    def __init__(self,
                 system_instruction: str,
                 model: str = DEFAULT_MODEL,
                 api_key: Optional[str] = None,
                 credentials_path: Optional[str] = None,
                 project: Optional[str] = None,
                 location: str = "us-central1"):
        """Initialize Gemini Live backend.

        Args:
            system_instruction: Instruction telling the model when to emit the trigger token
            model: Live model name
            api_key: Gemini API key (used when no credentials file is given)
            credentials_path: Path to a Google Cloud service account JSON file (Vertex AI)
            project: Vertex AI project, defaults to the credentials' project
            location: Vertex AI location
        """
        super().__init__(system_instruction)
        if not api_key and not credentials_path:
            raise ValueError("A Gemini API key or Google credentials path is required - "
                             "set GEMINI_API_KEY or gemini.api_key / gemini.credentials_path")
        self.model = model
        self.api_key = api_key
        self.credentials_path = credentials_path
        self.project = project
        self.location = location
        self.client: Optional[genai.Client] = None
        self.service_name = "Gemini Live"
        self.live_config = types.LiveConnectConfig(
            response_modalities=[types.Modality.AUDIO],
            input_audio_transcription=types.AudioTranscriptionConfig(),
            system_instruction=types.Content(parts=[types.Part(text=system_instruction)]),
        )

    def initialize(self) -> bool:
        """Create the Gemini client."""
        if self.credentials_path:
            logger.info(f"Loading Google credentials from: {self.credentials_path}")
            credentials = service_account.Credentials.from_service_account_file(
                self.credentials_path, scopes=[CLOUD_PLATFORM_SCOPE]
            )
            self.project = self.project or credentials.project_id
            logger.info(f"Using Vertex AI project: {self.project} ({self.location})")
            self.client = genai.Client(
                vertexai=True,
                project=self.project,
                location=self.location,
                credentials=credentials,
            )
        else:
            self.client = genai.Client(api_key=self.api_key)

        logger.info(f"{self.service_name} backend initialized (model={self.model})")
        return True

    async def connect(self) -> GeminiLiveConnection:
        if self.client is None:
            raise ConnectionFailure("Gemini Live backend is not initialized")

        logger.info(f"Opening {self.service_name} session (model={self.model})")
        exit_stack = contextlib.AsyncExitStack()
        try:
            session = await exit_stack.enter_async_context(
                self.client.aio.live.connect(model=self.model, config=self.live_config)
            )
        except BaseException as e:
            await exit_stack.aclose()
            if isinstance(e, Exception):
                raise ConnectionFailure(f"Could not open {self.service_name} session: {e}") from e
            raise
        logger.info(f"{self.service_name} session open")
        return GeminiLiveConnection(session, exit_stack)

    def cleanup(self) -> None:
        """Clean up Gemini client resources."""
        self.client = None

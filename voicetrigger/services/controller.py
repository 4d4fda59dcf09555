"""Controller wiring listening sessions to the presentation layer."""

import functools
import logging
import threading
from typing import Optional

from ..audio.level_monitor import AudioLevelMonitor
from ..config import VoiceTriggerConfig
from ..models.events import TriggerEvent
from ..models.session import SessionState
from ..transcription.base import AbstractLiveTranscriptionBackend
from ..transcription.detector import TranscriptionTriggerDetector
from ..transcription.gemini_backend import GeminiLiveBackend
from ..transcription.publisher import EventPublisher
from .session_manager import StreamingSessionManager

logger = logging.getLogger(__name__)


class Controller:
    """Starts and stops listening sessions and forwards their output to the UI.

    At most one session is live at a time. The detection counter lives here,
    so it survives stop/start for the lifetime of the controller.
    """

    def __init__(self,
                 config: VoiceTriggerConfig,
                 backend: Optional[AbstractLiveTranscriptionBackend] = None,
                 publisher: Optional[EventPublisher] = None):
        """Initialize controller.

        Args:
            config: Application configuration
            backend: Live transcription backend (defaults to Gemini Live from config)
            publisher: Pub/sub publisher for the presentation layer
        """
        self.config = config
        self.backend = backend
        self.publisher = publisher or EventPublisher()

        self.session: Optional[StreamingSessionManager] = None
        self._retired: Optional[StreamingSessionManager] = None
        self.detection_count = 0
        self.alert_pending = False
        self._backend_ready = False
        self._lock = threading.RLock()

    def __enter__(self) -> "Controller":
        return self

    def __exit__(self, *args) -> None:
        self.shutdown()

    @property
    def is_listening(self) -> bool:
        session = self.session
        return session is not None and session.is_live

    def start_listening(self) -> bool:
        """Start a new session unless one is already live.

        Returns:
            True if a session is live after the call
        """
        if not self._wait_for_previous_session():
            self.publisher.publish_error("The previous session is still closing. Please try again.")
            return False

        with self._lock:
            if self.is_listening:
                logger.info("Already listening, ignoring start request")
                return True

            try:
                self._ensure_backend()
            except Exception as e:
                logger.error(f"Transcription backend unavailable: {e}")
                self.publisher.publish_error(f"Transcription service unavailable: {e}")
                return False

            session = self._create_session()
            self.session = session
            # A fast failure reports from the session thread; it waits on the
            # lock so the listening state is published in order.
            started = session.start()
            if started:
                self.publisher.publish_listening_state(True)
        return started

    def stop_listening(self) -> None:
        """Stop the current session, if any."""
        with self._lock:
            session, self.session = self.session, None
            if session is not None:
                self._retired = session
        if session is None:
            return

        # Outside the lock: stop() joins the session thread, which may be
        # waiting on this controller to deliver a trigger.
        session.stop()
        self._publish_stopped()

    def toggle_listening(self) -> bool:
        if self.is_listening:
            self.stop_listening()
            return False
        return self.start_listening()

    def acknowledge_alert(self) -> None:
        """The user dismissed the alert prompt."""
        with self._lock:
            if not self.alert_pending:
                return
            self.alert_pending = False
        self.publisher.publish_alert_state(False)

    def shutdown(self) -> None:
        """Stop listening and release the backend. Used on process teardown."""
        self.stop_listening()
        if self.backend is not None and self._backend_ready:
            try:
                self.backend.cleanup()
            except Exception as e:
                logger.warning(f"Error cleaning up transcription backend: {e}")
            self._backend_ready = False
        logger.info("Controller shut down")

    def _ensure_backend(self) -> None:
        if self._backend_ready:
            return
        if self.backend is None:
            self.backend = self._create_gemini_backend()
        if not self.backend.initialize():
            raise RuntimeError("Transcription backend failed to initialize")
        self._backend_ready = True

    def _wait_for_previous_session(self) -> bool:
        """Let a session that is still closing release the microphone and report first.

        Waits outside the lock, since the closing session reports its failure
        through _on_session_error, which takes the lock.
        """
        with self._lock:
            previous = self.session or self._retired
        if previous is None or previous.state not in (SessionState.CLOSING, SessionState.CLOSED):
            return True
        timeout = float(self.config.get('session.close_timeout_seconds', 5.0)) + 1.0
        if previous.wait_closed(timeout=timeout):
            return True
        logger.warning(f"Session {previous.session_id} still closing after {timeout:.0f}s")
        return False

    def _create_gemini_backend(self) -> GeminiLiveBackend:
        logger.info("Initializing Gemini Live backend...")
        return GeminiLiveBackend(
            system_instruction=self.config.get_system_instruction(),
            model=self.config.get('gemini.model'),
            api_key=self.config.get_api_key(),
            credentials_path=self.config.get_google_credentials_path(),
            project=self.config.get('gemini.project'),
            location=self.config.get('gemini.location', 'us-central1'),
        )

    def _create_session(self) -> StreamingSessionManager:
        detector = TranscriptionTriggerDetector(
            on_trigger=self._on_trigger,
            on_transcript=self.publisher.publish_transcript,
            trigger_token=str(self.config.get('trigger.token')),
        )
        level_monitor = AudioLevelMonitor(
            publish=self.publisher.publish_audio_level,
            refresh_hz=self.config.get('monitor.refresh_hz', 30),
            window_size=self.config.get('monitor.window_size', 256),
        )
        session = StreamingSessionManager(
            backend=self.backend,
            detector=detector,
            level_monitor=level_monitor,
            sample_rate=self.config.get('audio.sample_rate', 16000),
            frame_size=self.config.get('audio.frame_size', 4096),
            channels=self.config.get('audio.channels', 1),
            send_queue_size=self.config.get('audio.send_queue_size', 32),
            connect_timeout=self.config.get('gemini.connect_timeout_seconds', 15.0),
            close_timeout=self.config.get('session.close_timeout_seconds', 5.0),
        )
        session.on_error = functools.partial(self._on_session_error, session)
        return session

    def _on_trigger(self, event: TriggerEvent) -> None:
        with self._lock:
            self.detection_count += 1
            self.alert_pending = True
            count = self.detection_count
        logger.info(f"Trigger detected, count is now {count}")
        self.publisher.publish_trigger(event)
        self.publisher.publish_alert_state(True)
        self.publisher.publish_detection_count(count)

    def _on_session_error(self, session: StreamingSessionManager, message: str) -> None:
        with self._lock:
            if session is not self.session:
                logger.info(f"Ignoring error from replaced session {session.session_id}: {message}")
                return
            self.session = None
            self.publisher.publish_error(message)
            self._publish_stopped()

    def _publish_stopped(self) -> None:
        self.publisher.publish_audio_level(0.0)
        self.publisher.publish_listening_state(False)

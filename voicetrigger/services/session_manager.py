"""Streaming session manager for one live transcription session."""

import asyncio
import logging
import threading
import uuid
from datetime import datetime
from typing import Callable, Optional

from ..audio.capture import AudioCaptureEngine
from ..audio.level_monitor import AudioLevelMonitor
from ..exceptions import AcquisitionError, ConnectionFailure
from ..models.audio import EncodedChunk
from ..models.events import MessageKind, TranscriptMessage
from ..models.session import SessionInfo, SessionState
from ..transcription.base import AbstractLiveTranscriptionBackend, LiveConnection
from ..transcription.detector import TranscriptionTriggerDetector

logger = logging.getLogger(__name__)

MICROPHONE_ERROR_MESSAGE = "Could not start microphone. Please check permissions and try again."
SESSION_ERROR_MESSAGE = "An error occurred with the transcription session. Please try again."


class StreamingSessionManager:
    """Owns one listening session: microphone, audio graph and remote connection.

    States run IDLE -> CONNECTING -> ACTIVE -> CLOSING -> CLOSED. CLOSED is
    terminal; a new instance is needed to listen again.

    Connect, send, receive and close run on a private asyncio loop in a
    dedicated thread. The audio callback only schedules frames onto that loop,
    and the receiver task is the single consumer feeding the detector.
    """

    def __init__(self,
                 backend: AbstractLiveTranscriptionBackend,
                 detector: TranscriptionTriggerDetector,
                 level_monitor: Optional[AudioLevelMonitor] = None,
                 on_error: Optional[Callable[[str], None]] = None,
                 sample_rate: int = 16000,
                 frame_size: int = 4096,
                 channels: int = 1,
                 send_queue_size: int = 32,
                 connect_timeout: float = 15.0,
                 close_timeout: float = 5.0):
        """Initialize the session.

        Args:
            backend: Opens the remote streaming connection
            detector: Consumes transcript fragments and turn boundaries
            level_monitor: Display loudness monitor, cancelled first on teardown
            on_error: Called with a user-facing message when the session fails
            sample_rate: Microphone sample rate
            frame_size: Samples per captured frame
            channels: Microphone channels
            send_queue_size: Encoded frames buffered ahead of the sender
            connect_timeout: Seconds allowed for the remote session to open
            close_timeout: Seconds allowed for the remote session to close
        """
        self.session_id = uuid.uuid4().hex[:8]
        self.backend = backend
        self.detector = detector
        self.level_monitor = level_monitor
        self.on_error = on_error
        self.send_queue_size = send_queue_size
        self.connect_timeout = connect_timeout
        self.close_timeout = close_timeout

        self.capture = AudioCaptureEngine(
            send_frame=self.send_frame,
            level_monitor=level_monitor,
            sample_rate=sample_rate,
            chunk_size=frame_size,
            channels=channels,
        )

        self.state = SessionState.IDLE
        self.start_time: Optional[datetime] = None
        self.connection: Optional[LiveConnection] = None
        self.frames_sent = 0
        self.frames_dropped = 0

        self._lock = threading.RLock()
        self._stats_lock = threading.Lock()
        self._state_changed = threading.Condition(self._lock)
        self._local_released = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread: Optional[threading.Thread] = None
        self._send_queue: Optional[asyncio.Queue] = None
        self._closing: Optional[asyncio.Event] = None

    # ------------------------------------------------------------------
    # Public API

    def start(self) -> bool:
        """Acquire the microphone and begin opening the remote session.

        Returns once the connect is under way; ACTIVE is reached asynchronously.

        Returns:
            True if the session is connecting, False if it cannot start
        """
        with self._lock:
            if self.state is not SessionState.IDLE:
                logger.warning(f"Session {self.session_id} cannot start from state {self.state.value}")
                return False
            self.start_time = datetime.now()
            self._set_state(SessionState.CONNECTING)

            try:
                self.capture.open()
            except AcquisitionError as e:
                if self._begin_failure(e):
                    self._finish_failure(e)
                return False

            self._loop = asyncio.new_event_loop()
            self._send_queue = asyncio.Queue(maxsize=self.send_queue_size)
            self._closing = asyncio.Event()
            self._loop_thread = threading.Thread(target=self._run_loop, daemon=True)
            self._loop_thread.name = f"session_{self.session_id}"
            self._loop_thread.start()

        logger.info(f"Session {self.session_id} connecting")
        return True

    def stop(self) -> None:
        """Tear the session down. Idempotent and safe from any state or thread.

        Release order: level monitor, microphone, audio graph, audio context,
        remote connection.
        """
        with self._lock:
            if self.state in (SessionState.IDLE, SessionState.CLOSING, SessionState.CLOSED):
                return
            self._set_state(SessionState.CLOSING)

        logger.info(f"Stopping session {self.session_id}")
        self._release_local_resources()
        self._request_remote_close()

        thread = self._loop_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.close_timeout + 1.0)
            if thread.is_alive():
                logger.warning(f"Session thread {thread.name} did not stop cleanly")

        self._set_state(SessionState.CLOSED)
        logger.info(f"Session {self.session_id} stopped")

    def send_frame(self, chunk: EncodedChunk) -> None:
        """Queue an encoded frame for the remote session without blocking.

        Frames arriving outside ACTIVE are dropped.
        """
        loop = self._loop
        if self.state is not SessionState.ACTIVE or loop is None:
            self._count_dropped()
            return
        try:
            loop.call_soon_threadsafe(self._enqueue_chunk, chunk)
        except RuntimeError:
            # Loop already closed
            self._count_dropped()

    def on_message(self, message: TranscriptMessage) -> None:
        """Route a remote message to the detector."""
        if self.state is not SessionState.ACTIVE:
            logger.debug(f"Ignoring {message.kind.value} received while {self.state.value}")
            return
        if message.kind is MessageKind.FRAGMENT:
            self.detector.on_fragment(message.text)
        elif message.kind is MessageKind.TURN_COMPLETE:
            self.detector.on_turn_boundary()

    def wait_for_state(self, *states: SessionState, timeout: Optional[float] = None) -> bool:
        """Block until the session reaches one of the given states."""
        with self._state_changed:
            return self._state_changed.wait_for(lambda: self.state in states, timeout)

    def wait_closed(self, timeout: Optional[float] = None) -> bool:
        """Block until the session is CLOSED and its thread has finished reporting."""
        if not self.wait_for_state(SessionState.CLOSED, timeout=timeout):
            return False
        thread = self._loop_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            return not thread.is_alive()
        return True

    @property
    def is_live(self) -> bool:
        return self.state in (SessionState.CONNECTING, SessionState.ACTIVE)

    def get_info(self) -> SessionInfo:
        return SessionInfo(
            session_id=self.session_id,
            state=self.state,
            start_time=self.start_time,
            frames_sent=self.frames_sent,
            frames_dropped=self.frames_dropped,
            fragments_received=self.detector.fragments_received,
            triggers_fired=self.detector.triggers_fired,
        )

    # ------------------------------------------------------------------
    # State and teardown helpers

    def _set_state(self, state: SessionState) -> None:
        with self._state_changed:
            if self.state is state:
                return
            logger.debug(f"Session {self.session_id}: {self.state.value} -> {state.value}")
            self.state = state
            self._state_changed.notify_all()

    def _release_local_resources(self) -> None:
        with self._lock:
            if self._local_released:
                return
            self._local_released = True

        if self.level_monitor is not None:
            self.level_monitor.stop()
        self.capture.close()
        self.detector.reset()

    def _request_remote_close(self) -> None:
        loop = self._loop
        if loop is None or self._closing is None:
            return
        try:
            loop.call_soon_threadsafe(self._closing.set)
        except RuntimeError:
            # Loop already finished
            pass

    def _begin_failure(self, error: Exception) -> bool:
        """Move to CLOSING because of an error. False if a stop is already in progress."""
        with self._lock:
            if self.state in (SessionState.CLOSING, SessionState.CLOSED):
                logger.info(f"Session {self.session_id} already stopping, ignoring: {error}")
                return False
            logger.error(f"Session {self.session_id} failed: {error}")
            self._set_state(SessionState.CLOSING)
        self._release_local_resources()
        return True

    def _finish_failure(self, error: Exception) -> None:
        self._set_state(SessionState.CLOSED)
        message = MICROPHONE_ERROR_MESSAGE if isinstance(error, AcquisitionError) else SESSION_ERROR_MESSAGE
        if self.on_error is None:
            return
        try:
            self.on_error(message)
        except Exception as e:
            logger.error(f"Error reporting session failure: {e}")

    # ------------------------------------------------------------------
    # Event loop side

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_until_complete(self._session_main())
            self._loop.run_until_complete(self._loop.shutdown_asyncgens())
        except Exception as e:
            logger.error(f"Unhandled exception in session {self.session_id}: {e}", exc_info=True)
        finally:
            self._loop.close()
            logger.debug(f"Session thread {threading.current_thread().name} exiting")

    async def _session_main(self) -> None:
        error: Optional[Exception] = None
        try:
            if await self._open_connection() and self._activate():
                error = await self._stream()
        except Exception as e:
            error = e

        failed = error is not None and self._begin_failure(error)
        await self._close_connection()
        if failed:
            self._finish_failure(error)

    async def _open_connection(self) -> bool:
        connect_task = asyncio.ensure_future(self.backend.connect())
        closing_task = asyncio.ensure_future(self._closing.wait())
        try:
            done, _ = await asyncio.wait({connect_task, closing_task},
                                         timeout=self.connect_timeout,
                                         return_when=asyncio.FIRST_COMPLETED)
        finally:
            closing_task.cancel()

        if connect_task in done:
            self.connection = connect_task.result()
            return True

        connect_task.cancel()
        result = (await asyncio.gather(connect_task, return_exceptions=True))[0]
        if isinstance(result, LiveConnection):
            self.connection = result
        if self._closing.is_set():
            logger.info(f"Session {self.session_id} stopped while connecting")
            return False
        raise ConnectionFailure(f"Timed out after {self.connect_timeout:.0f}s opening the remote session")

    def _activate(self) -> bool:
        with self._lock:
            if self.state is not SessionState.CONNECTING:
                return False
            self._set_state(SessionState.ACTIVE)
            self.capture.start()
            if self.level_monitor is not None:
                self.level_monitor.start()
        logger.info(f"Session {self.session_id} active")
        return True

    async def _stream(self) -> Optional[Exception]:
        """Run sender and receiver until a stop request or a failure."""
        sender = asyncio.ensure_future(self._send_loop())
        receiver = asyncio.ensure_future(self._receive_loop())
        closer = asyncio.ensure_future(self._closing.wait())
        done, pending = await asyncio.wait({sender, receiver, closer},
                                           return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        if closer in done:
            return None
        for task in (receiver, sender):
            if task in done and task.exception() is not None:
                return task.exception()
        return ConnectionFailure("The remote session closed unexpectedly")

    def _count_dropped(self) -> None:
        # Called from the audio callback thread and the loop thread
        with self._stats_lock:
            self.frames_dropped += 1

    def _enqueue_chunk(self, chunk: EncodedChunk) -> None:
        if self._send_queue.full():
            self._send_queue.get_nowait()
            self._count_dropped()
            logger.debug("Send queue full, dropped oldest frame")
        self._send_queue.put_nowait(chunk)

    async def _send_loop(self) -> None:
        while True:
            chunk = await self._send_queue.get()
            await self.connection.send_audio(chunk)
            self.frames_sent += 1

    async def _receive_loop(self) -> None:
        async for message in self.connection.receive():
            self.on_message(message)

    async def _close_connection(self) -> None:
        connection, self.connection = self.connection, None
        if connection is None:
            return
        try:
            await asyncio.wait_for(connection.close(), timeout=self.close_timeout)
            logger.info(f"Session {self.session_id} remote connection closed")
        except Exception as e:
            logger.warning(f"Error closing remote session {self.session_id}: {e}")

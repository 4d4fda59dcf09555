"""Pytest configuration and fixtures for VoiceTrigger tests."""

import asyncio
import logging
from unittest.mock import Mock, patch

import numpy as np
import pytest
from pubsub import pub

from voicetrigger.config import VoiceTriggerConfig
from voicetrigger.exceptions import ConnectionFailure
from voicetrigger.models.events import TranscriptMessage
from voicetrigger.transcription.base import AbstractLiveTranscriptionBackend, LiveConnection


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests with no hardware or network")
    config.addinivalue_line("markers", "integration: tests running a full listening session")


@pytest.fixture(autouse=True)
def clean_pubsub():
    """Drop every pub/sub listener between tests."""
    yield
    pub.unsubAll()


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        # Configure mock stream
        mock_stream.start_stream.return_value = None
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        # Configure mock PyAudio instance
        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None

        # Configure mock PyAudio class
        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }


@pytest.fixture
def stream_callback(mock_pyaudio):
    """Return a function that fetches the callback handed to PyAudio.open()."""
    def get_callback():
        return mock_pyaudio['instance'].open.call_args.kwargs['stream_callback']
    return get_callback


@pytest.fixture
def audio_test_data():
    """Generate float32 audio frames for testing."""
    def generate_audio(pattern="sine", samples=4096, amplitude=0.5):
        if pattern == "sine":
            t = np.arange(samples) / 16000.0
            wave_data = amplitude * np.sin(2 * np.pi * 440 * t)
        elif pattern == "silence":
            wave_data = np.zeros(samples)
        else:
            raise ValueError(f"Unknown pattern: {pattern}")
        return wave_data.astype(np.float32)

    return generate_audio


@pytest.fixture
def test_config(tmp_path):
    """Configuration with an API key and logs under a temporary directory."""
    return VoiceTriggerConfig.from_dict({
        "gemini": {"api_key": "test-key", "connect_timeout_seconds": 2.0},
        "session": {"close_timeout_seconds": 1.0},
        "logging": {"file_path": str(tmp_path / "voicetrigger.log")},
    })


class FakeConnection(LiveConnection):
    """In-memory live connection driven by the test through push()/finish()."""

    def __init__(self, loop: asyncio.AbstractEventLoop, close_delay: float = 0.0):
        self.loop = loop
        self.close_delay = close_delay
        self.sent = []
        self.closed = False
        self.fail_send = False
        self._incoming: asyncio.Queue = asyncio.Queue()

    def push(self, message: TranscriptMessage) -> None:
        """Deliver a server message. Callable from any thread."""
        self.loop.call_soon_threadsafe(self._incoming.put_nowait, message)

    def push_fragment(self, text: str) -> None:
        self.push(TranscriptMessage.fragment(text))

    def push_turn_complete(self) -> None:
        self.push(TranscriptMessage.turn_complete())

    def fail(self, error: Exception) -> None:
        """Make the receive stream raise."""
        self.loop.call_soon_threadsafe(self._incoming.put_nowait, error)

    def finish(self) -> None:
        """Close the receive stream from the server side."""
        self.loop.call_soon_threadsafe(self._incoming.put_nowait, None)

    async def send_audio(self, chunk) -> None:
        if self.fail_send:
            raise ConnectionFailure("send failed")
        self.sent.append(chunk)

    async def receive(self):
        while True:
            item = await self._incoming.get()
            if item is None:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def close(self) -> None:
        if self.close_delay:
            await asyncio.sleep(self.close_delay)
        self.closed = True


class FakeLiveBackend(AbstractLiveTranscriptionBackend):
    """Backend handing out FakeConnections, optionally slow or failing."""

    def __init__(self, connect_error: Exception = None, connect_delay: float = 0.0,
                 close_delay: float = 0.0):
        super().__init__("test instruction")
        self.connect_error = connect_error
        self.connect_delay = connect_delay
        self.close_delay = close_delay
        self.connections = []
        self.initialized = False
        self.cleaned_up = False

    def initialize(self) -> bool:
        self.initialized = True
        return True

    async def connect(self) -> FakeConnection:
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.connect_error is not None:
            raise self.connect_error
        connection = FakeConnection(asyncio.get_running_loop(), self.close_delay)
        self.connections.append(connection)
        return connection

    def cleanup(self) -> None:
        self.cleaned_up = True


@pytest.fixture
def fake_backend():
    return FakeLiveBackend()


class TopicRecorder:
    """Subscribes bound methods to presentation topics and records what arrives.

    pubsub keeps weak references to listeners, so the recorder must stay
    referenced by the test.
    """

    def __init__(self):
        from voicetrigger.transcription import publisher as topics

        self.transcripts = []
        self.levels = []
        self.triggers = []
        self.counts = []
        self.alert_states = []
        self.listening_states = []
        self.errors = []
        pub.subscribe(self.on_transcript, topics.TOPIC_TRANSCRIPT)
        pub.subscribe(self.on_audio_level, topics.TOPIC_AUDIO_LEVEL)
        pub.subscribe(self.on_trigger, topics.TOPIC_TRIGGER)
        pub.subscribe(self.on_detection_count, topics.TOPIC_DETECTION_COUNT)
        pub.subscribe(self.on_alert_state, topics.TOPIC_ALERT_STATE)
        pub.subscribe(self.on_listening_state, topics.TOPIC_LISTENING)
        pub.subscribe(self.on_error, topics.TOPIC_ERROR)

    def on_transcript(self, text):
        self.transcripts.append(text)

    def on_audio_level(self, level):
        self.levels.append(level)

    def on_trigger(self, event):
        self.triggers.append(event)

    def on_detection_count(self, count):
        self.counts.append(count)

    def on_alert_state(self, pending):
        self.alert_states.append(pending)

    def on_listening_state(self, is_listening):
        self.listening_states.append(is_listening)

    def on_error(self, message):
        self.errors.append(message)


@pytest.fixture
def topic_recorder():
    return TopicRecorder()


def wait_until(predicate, timeout=2.0, interval=0.01):
    """Poll until predicate() is true or the timeout expires."""
    import time

    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def wait_for():
    return wait_until


@pytest.fixture
def backend_factory():
    """Build FakeLiveBackends with custom connect behaviour."""
    return FakeLiveBackend

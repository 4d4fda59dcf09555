"""Unit tests for the listening Controller."""

from unittest.mock import Mock

import pytest

from voicetrigger.config import VoiceTriggerConfig
from voicetrigger.exceptions import ConnectionFailure
from voicetrigger.models.session import SessionState
from voicetrigger.services.controller import Controller
from voicetrigger.services.session_manager import SESSION_ERROR_MESSAGE


@pytest.fixture
def controller(test_config, fake_backend, mock_pyaudio):
    controller = Controller(test_config, backend=fake_backend)
    yield controller
    controller.shutdown()


def start_active(controller):
    assert controller.start_listening() is True
    assert controller.session.wait_for_state(SessionState.ACTIVE, timeout=2.0)
    return controller.session


@pytest.mark.unit
class TestController:

    def test_initial_state(self, controller):
        """Test Controller state before any session."""
        assert controller.is_listening is False
        assert controller.detection_count == 0
        assert controller.alert_pending is False

    def test_start_listening(self, controller, fake_backend, topic_recorder):
        """Test starting a listening session."""
        start_active(controller)

        assert controller.is_listening
        assert fake_backend.initialized
        assert topic_recorder.listening_states == [True]

    def test_start_while_listening_keeps_single_session(self, controller, fake_backend):
        """Test a second start while live reuses the running session."""
        session = start_active(controller)

        assert controller.start_listening() is True

        assert controller.session is session
        assert len(fake_backend.connections) == 1

    def test_stop_listening(self, controller, topic_recorder):
        """Test stopping the live session."""
        session = start_active(controller)

        controller.stop_listening()

        assert controller.session is None
        assert controller.is_listening is False
        assert session.state is SessionState.CLOSED
        assert topic_recorder.listening_states == [True, False]
        assert topic_recorder.levels[-1] == 0.0

    def test_stop_when_idle(self, controller, topic_recorder):
        """Test stopping when nothing is running."""
        controller.stop_listening()

        assert topic_recorder.listening_states == []

    def test_toggle_listening(self, controller):
        """Test toggling between listening and stopped."""
        assert controller.toggle_listening() is True
        assert controller.is_listening

        assert controller.toggle_listening() is False
        assert controller.is_listening is False

    def test_trigger_increments_count_and_raises_alert(self, controller, fake_backend,
                                                       topic_recorder, wait_for):
        """Test a detection bumps the count and raises the alert."""
        start_active(controller)

        fake_backend.connections[0].push_fragment("_SQUAT_")

        assert wait_for(lambda: topic_recorder.counts == [1])
        assert controller.detection_count == 1
        assert controller.alert_pending is True
        assert topic_recorder.alert_states == [True]
        assert len(topic_recorder.triggers) == 1

    def test_transcript_is_published(self, controller, fake_backend, topic_recorder, wait_for):
        """Test transcript fragments reach the presentation topic."""
        start_active(controller)

        fake_backend.connections[0].push_fragment("hello ")
        fake_backend.connections[0].push_fragment("world")

        assert wait_for(lambda: topic_recorder.transcripts[-1:] == ["hello world"])

    def test_acknowledge_clears_alert_only(self, controller, fake_backend,
                                           topic_recorder, wait_for):
        """Test acknowledging clears the alert but keeps the count."""
        start_active(controller)
        fake_backend.connections[0].push_fragment("_SQUAT_")
        assert wait_for(lambda: controller.alert_pending)

        controller.acknowledge_alert()

        assert controller.alert_pending is False
        assert controller.detection_count == 1
        assert topic_recorder.alert_states == [True, False]

    def test_acknowledge_without_alert(self, controller, topic_recorder):
        """Test acknowledging with no pending alert."""
        controller.acknowledge_alert()

        assert topic_recorder.alert_states == []

    def test_count_survives_restart(self, controller, fake_backend, wait_for):
        """Test the detection count carries over to a new session."""
        start_active(controller)
        fake_backend.connections[0].push_fragment("_SQUAT_")
        assert wait_for(lambda: controller.detection_count == 1)
        controller.stop_listening()

        start_active(controller)
        fake_backend.connections[1].push_fragment("_squat_")

        assert wait_for(lambda: controller.detection_count == 2)

    def test_backend_initialize_failure(self, test_config, mock_pyaudio, topic_recorder):
        """Test a backend that fails to initialize."""
        backend = Mock()
        backend.initialize.return_value = False
        controller = Controller(test_config, backend=backend)

        assert controller.start_listening() is False

        assert controller.session is None
        assert len(topic_recorder.errors) == 1
        mock_pyaudio['class'].assert_not_called()

    def test_missing_api_key_reported(self, monkeypatch, topic_recorder, mock_pyaudio):
        """Test a missing API key is reported as an error."""
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
        controller = Controller(VoiceTriggerConfig())

        assert controller.start_listening() is False

        assert "API key" in topic_recorder.errors[0]

    def test_session_failure_is_reported(self, test_config, backend_factory, mock_pyaudio,
                                         topic_recorder, wait_for):
        """Test a failed connect is reported and listening can restart."""
        backend = backend_factory(connect_error=ConnectionFailure("refused"))
        controller = Controller(test_config, backend=backend)

        controller.start_listening()

        assert wait_for(lambda: topic_recorder.errors == [SESSION_ERROR_MESSAGE])
        assert wait_for(lambda: topic_recorder.listening_states[-1:] == [False])
        assert controller.is_listening is False
        assert controller.session is None

        # A fresh session can be started afterwards
        backend.connect_error = None
        start_active(controller)
        controller.shutdown()

    def test_shutdown_cleans_up_backend(self, controller, fake_backend):
        """Test shutdown stops listening and releases the backend."""
        start_active(controller)

        controller.shutdown()

        assert controller.is_listening is False
        assert fake_backend.cleaned_up

    def test_context_manager(self, test_config, fake_backend, mock_pyaudio):
        """Test Controller as a context manager."""
        with Controller(test_config, backend=fake_backend) as controller:
            start_active(controller)

        assert controller.is_listening is False
        assert fake_backend.cleaned_up

    def test_restart_waits_for_failed_session_to_close(self, test_config, backend_factory,
                                                       mock_pyaudio, topic_recorder, wait_for):
        """Test starting again while a failed session is still closing its connection."""
        backend = backend_factory(close_delay=0.5)
        controller = Controller(test_config, backend=backend)
        try:
            first = start_active(controller)
            backend.connections[0].fail(ConnectionFailure("socket reset"))
            assert first.wait_for_state(SessionState.CLOSING, SessionState.CLOSED, timeout=2.0)

            assert controller.start_listening() is True

            second = controller.session
            assert second is not first
            assert first.state is SessionState.CLOSED
            assert backend.connections[0].closed
            assert second.wait_for_state(SessionState.ACTIVE, timeout=2.0)
            assert controller.is_listening
            assert topic_recorder.listening_states == [True, False, True]
            assert topic_recorder.errors == [SESSION_ERROR_MESSAGE]
        finally:
            controller.shutdown()

    def test_error_from_replaced_session_is_ignored(self, controller, topic_recorder):
        """Test a late failure report from an old session leaves the live one alone."""
        first = start_active(controller)
        controller.stop_listening()
        second = start_active(controller)

        first.on_error(SESSION_ERROR_MESSAGE)

        assert controller.session is second
        assert controller.is_listening
        assert topic_recorder.errors == []
        assert topic_recorder.listening_states == [True, False, True]

"""Presentation publisher for pub/sub event publishing."""

import logging
from pubsub import pub

from ..models.events import TriggerEvent

logger = logging.getLogger(__name__)

TOPIC_TRANSCRIPT = "transcript_updated"
TOPIC_AUDIO_LEVEL = "audio_level"
TOPIC_TRIGGER = "trigger_fired"
TOPIC_DETECTION_COUNT = "detection_count"
TOPIC_ALERT_STATE = "alert_state"
TOPIC_LISTENING = "listening_state"
TOPIC_ERROR = "session_error"


class EventPublisher:
    """Publishes values and events for the presentation layer using pubsub.pub."""

    def publish_transcript(self, text: str) -> None:
        pub.sendMessage(TOPIC_TRANSCRIPT, text=text)

    def publish_audio_level(self, level: float) -> None:
        pub.sendMessage(TOPIC_AUDIO_LEVEL, level=level)

    def publish_trigger(self, event: TriggerEvent) -> None:
        pub.sendMessage(TOPIC_TRIGGER, event=event)
        logger.debug(f"Published trigger event at {event.timestamp:.3f}")

    def publish_detection_count(self, count: int) -> None:
        pub.sendMessage(TOPIC_DETECTION_COUNT, count=count)

    def publish_alert_state(self, pending: bool) -> None:
        pub.sendMessage(TOPIC_ALERT_STATE, pending=pending)

    def publish_listening_state(self, is_listening: bool) -> None:
        pub.sendMessage(TOPIC_LISTENING, is_listening=is_listening)
        logger.debug(f"Published listening state: {is_listening}")

    def publish_error(self, message: str) -> None:
        pub.sendMessage(TOPIC_ERROR, message=message)

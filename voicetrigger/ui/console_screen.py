"""Terminal screen showing the live transcript, audio level and detection count."""

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from pubsub import pub
from rich.align import Align
from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..models.events import TriggerEvent
from ..services.controller import Controller
from ..transcription import publisher as topics
from .alert_sound import AlertSound
from .keyboard_input import KeyboardInputHandler

logger = logging.getLogger(__name__)

LEVEL_BAR_WIDTH = 30
# RMS speech levels sit around 0-0.2, so scale them up to fill the bar
LEVEL_DISPLAY_GAIN = 5.0

START_KEYS = ("1",)
STOP_KEYS = ("2",)
ACKNOWLEDGE_KEYS = (" ", "\r", "\n", "a")
QUIT_KEYS = ("q", "\x03")


@dataclass
class ScreenState:
    """Everything the screen displays."""
    is_listening: bool = False
    transcript: str = ""
    audio_level: float = 0.0
    detection_count: int = 0
    alert_pending: bool = False
    last_error: Optional[str] = None


def level_percent(level: float) -> float:
    return max(0.0, min(100.0, level * LEVEL_DISPLAY_GAIN * 100.0))


class ConsoleScreen:
    """Presentation layer: renders published state and turns keys into controller calls."""

    def __init__(self, controller: Controller, play_sound: bool = True):
        self.controller = controller
        self.console = Console()
        self.state = ScreenState(detection_count=controller.detection_count)
        self.alert_sound = AlertSound() if play_sound else None
        self._lock = threading.Lock()
        self._quit_event = threading.Event()

        pub.subscribe(self._on_transcript, topics.TOPIC_TRANSCRIPT)
        pub.subscribe(self._on_audio_level, topics.TOPIC_AUDIO_LEVEL)
        pub.subscribe(self._on_trigger, topics.TOPIC_TRIGGER)
        pub.subscribe(self._on_detection_count, topics.TOPIC_DETECTION_COUNT)
        pub.subscribe(self._on_alert_state, topics.TOPIC_ALERT_STATE)
        pub.subscribe(self._on_listening_state, topics.TOPIC_LISTENING)
        pub.subscribe(self._on_error, topics.TOPIC_ERROR)

    # pub/sub listeners

    def _on_transcript(self, text: str) -> None:
        with self._lock:
            self.state.transcript = text

    def _on_audio_level(self, level: float) -> None:
        with self._lock:
            self.state.audio_level = level

    def _on_trigger(self, event: TriggerEvent) -> None:
        if self.alert_sound is not None:
            self.alert_sound.play()

    def _on_detection_count(self, count: int) -> None:
        with self._lock:
            self.state.detection_count = count

    def _on_alert_state(self, pending: bool) -> None:
        with self._lock:
            self.state.alert_pending = pending

    def _on_listening_state(self, is_listening: bool) -> None:
        with self._lock:
            self.state.is_listening = is_listening
            if is_listening:
                self.state.last_error = None

    def _on_error(self, message: str) -> None:
        with self._lock:
            self.state.last_error = message

    # keyboard

    def handle_key(self, key: str) -> bool:
        """Apply a keypress. Returns False when the user asked to quit."""
        if key in QUIT_KEYS:
            self._quit_event.set()
            return False
        if key in START_KEYS:
            self.controller.start_listening()
        elif key in STOP_KEYS:
            self.controller.stop_listening()
        elif key in ACKNOWLEDGE_KEYS:
            self.controller.acknowledge_alert()
        return True

    # rendering

    def render(self):
        with self._lock:
            state = ScreenState(**vars(self.state))

        status_text = "🔴 LISTENING" if state.is_listening else "⏹️  STOPPED"
        status_style = "bold red" if state.is_listening else "bold yellow"
        header = Panel(Align.center(Text.assemble(
            ("🎙️  VoiceTrigger", "bold blue"), "  |  ", (status_text, status_style)
        )), style="bright_blue")

        stats = Table(show_header=False, box=None)
        stats.add_column("Metric", style="cyan")
        stats.add_column("Value", style="white")
        percent = level_percent(state.audio_level) if state.is_listening else 0.0
        filled = int(round(percent / 100.0 * LEVEL_BAR_WIDTH))
        stats.add_row("Audio level", f"{'█' * filled:<{LEVEL_BAR_WIDTH}} {percent:3.0f}%")
        stats.add_row("Detections", Text(str(state.detection_count), style="bold white"))

        transcript = Panel(
            Text(state.transcript or "Waiting for audio...", style="italic"),
            title="Live transcript", border_style="cyan",
        )

        parts = [header, stats, transcript]
        if state.alert_pending:
            parts.append(Panel(
                Align.center(Text("Trigger phrase detected! Press space to dismiss.",
                                  style="bold white")),
                title="Alert", border_style="bold magenta",
            ))
        if state.last_error:
            parts.append(Text(f"❌ {state.last_error}", style="red"))
        parts.append(Text("1=Start  2=Stop  space=Dismiss alert  q=Quit", style="dim"))
        return Group(*parts)

    def run(self, refresh_per_second: float = 15.0) -> None:
        """Run the interactive screen until the user quits."""
        input_handler = KeyboardInputHandler(self.handle_key)
        input_handler.start()
        try:
            with Live(self.render(), console=self.console,
                      refresh_per_second=refresh_per_second, transient=False) as live:
                while not self._quit_event.wait(1.0 / refresh_per_second):
                    live.update(self.render())
        finally:
            input_handler.stop()
            self.close()

    def close(self) -> None:
        for listener, topic in (
            (self._on_transcript, topics.TOPIC_TRANSCRIPT),
            (self._on_audio_level, topics.TOPIC_AUDIO_LEVEL),
            (self._on_trigger, topics.TOPIC_TRIGGER),
            (self._on_detection_count, topics.TOPIC_DETECTION_COUNT),
            (self._on_alert_state, topics.TOPIC_ALERT_STATE),
            (self._on_listening_state, topics.TOPIC_LISTENING),
            (self._on_error, topics.TOPIC_ERROR),
        ):
            try:
                pub.unsubscribe(listener, topic)
            except Exception as e:
                logger.warning(f"Error during unsubscribe from {topic}: {e}")

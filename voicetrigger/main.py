"""Main application entry point for VoiceTrigger."""

import sys
import time
import argparse
import logging
from pathlib import Path
from typing import Optional

from pubsub import pub

from . import __version__
from .config import VoiceTriggerConfig
from .models.events import TriggerEvent
from .services.controller import Controller
from .transcription.publisher import TOPIC_ERROR, TOPIC_TRIGGER

logger = logging.getLogger(__name__)


class Server:

    def __init__(self, config_path: Optional[str], log_level: Optional[str] = None):
        # Load configuration
        self.config = VoiceTriggerConfig(config_path)
        # Set up logging (command line overrides config)
        level = log_level or self.config.get('logging.level', 'INFO')
        setup_logging(self.config, level)
        self.controller = Controller(self.config)

    def run_auto(self, duration: int) -> int:
        """Listen headless for a fixed duration, printing each detection."""
        pub.subscribe(self._print_trigger, TOPIC_TRIGGER)
        pub.subscribe(self._print_error, TOPIC_ERROR)
        try:
            if not self.controller.start_listening():
                return 1
            print(f"🎙️  Listening for {duration}s (trigger token: {self.config.get('trigger.token')})")
            deadline = time.time() + duration
            while time.time() < deadline and self.controller.is_listening:
                time.sleep(0.2)
            print(f"✅ Detections: {self.controller.detection_count}")
            return 0
        finally:
            self.cleanup()
            pub.unsubscribe(self._print_trigger, TOPIC_TRIGGER)
            pub.unsubscribe(self._print_error, TOPIC_ERROR)

    def run_interactive(self) -> int:
        from .ui.console_screen import ConsoleScreen

        screen = ConsoleScreen(self.controller)
        try:
            screen.run()
        finally:
            self.cleanup()
        return 0

    def cleanup(self):
        self.controller.shutdown()

    def _print_trigger(self, event: TriggerEvent) -> None:
        print(f"🔔 Trigger detected! Total: {self.controller.detection_count}")

    def _print_error(self, message: str) -> None:
        print(f"❌ {message}")


def setup_logging(config, level: str = "INFO") -> None:

    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/voicetrigger.log')
    console_output = config.get('logging.console_output', True)

    # Create logs directory if it doesn't exist
    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    # Set up handlers
    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    # Console handler - only if enabled in config
    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("VoiceTrigger starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def main() -> None:
    """Main entry point for VoiceTrigger."""
    parser = argparse.ArgumentParser(
        description="VoiceTrigger - alert when a spoken trigger phrase is heard",
        epilog="Keys: 1=Start listening, 2=Stop listening, space=Dismiss alert, q=Quit"
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: built-in defaults)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: from config, INFO)"
    )

    parser.add_argument(
        "--auto",
        action="store_true",
        help="Run headless: start listening, listen for the specified duration, then stop and exit"
    )

    parser.add_argument(
        "--duration",
        type=int,
        default=30,
        help="Duration in seconds for auto mode (default: 30)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"VoiceTrigger v{__version__}"
    )

    args = parser.parse_args()

    try:
        server = Server(args.config, args.log_level)
    except (FileNotFoundError, ValueError) as e:
        print(f"❌ Configuration error: {e}")
        sys.exit(2)

    try:
        if args.auto:
            exit_code = server.run_auto(args.duration)
        else:
            exit_code = server.run_interactive()
    except KeyboardInterrupt:
        server.cleanup()
        print("\n👋 Goodbye!")
        exit_code = 0
    except Exception as e:
        print(f"❌ Error: {e}")
        logging.error(f"Application error: {e}", exc_info=True)
        server.cleanup()
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()

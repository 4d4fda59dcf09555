"""Single-key command input for the terminal screen."""

import sys
import threading
import time
from typing import Optional, Callable
import logging

logger = logging.getLogger(__name__)


class KeyboardInputHandler:
    """Reads single keypresses in a background thread and hands them to a callback."""

    def __init__(self, callback: Callable[[str], bool], poll_interval: float = 0.05):
        """Initialize keyboard handler.

        Args:
            callback: Takes a key and returns True to continue, False to quit
            poll_interval: Pause between polls when no key is waiting
        """
        self.callback = callback
        self.poll_interval = poll_interval
        self.running = False
        self.thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self.running:
            return

        self.running = True
        self.thread = threading.Thread(target=self._input_loop, daemon=True)
        self.thread.name = "KeyboardInputThread"
        self.thread.start()
        logger.info("Keyboard input handler started")

    def stop(self) -> None:
        self.running = False
        if self.thread and self.thread is not threading.current_thread():
            self.thread.join(timeout=1.0)
        logger.info("Keyboard input handler stopped")

    def _input_loop(self) -> None:
        while self.running:
            key = self._get_key()
            if key:
                logger.debug(f"Key detected: {key!r}")
                if not self.callback(key):
                    logger.info("Quit requested from keyboard")
                    break
            else:
                time.sleep(self.poll_interval)
        self.running = False

    def _get_key(self) -> Optional[str]:
        try:
            if sys.platform == "win32":
                return self._get_key_windows()
            return self._get_key_unix()
        except Exception as e:
            logger.error(f"Error getting key: {e}")
            return None

    def _get_key_windows(self) -> Optional[str]:
        import msvcrt
        if msvcrt.kbhit():
            return msvcrt.getwch().lower()
        return None

    def _get_key_unix(self) -> Optional[str]:
        import select
        import termios
        import tty

        if not sys.stdin.isatty():
            line = sys.stdin.readline()
            if not line:
                # stdin closed
                return "q"
            return line.strip().lower()[:1] or "\n"

        if select.select([sys.stdin], [], [], 0.1)[0]:
            old_settings = termios.tcgetattr(sys.stdin)
            try:
                tty.setraw(sys.stdin.fileno())
                return sys.stdin.read(1).lower()
            finally:
                termios.tcsetattr(sys.stdin, termios.TCSADRAIN, old_settings)
        return None

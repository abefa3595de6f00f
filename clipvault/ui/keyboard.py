import os
import sys
import threading
import select
import termios
import tty
from typing import Optional
from clipvault.infrastructure.event_bus import EventBus
from clipvault.domain.events import CancelRequested

CANCEL_KEYS = ('C', 'c', 'X', 'x', '\x03')


class KeyboardListener:
    """Listens for the cancel key in a background thread while an upload runs."""

    def __init__(self, event_bus: EventBus):
        self.event_bus = event_bus
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _handle_key(self, key: str) -> bool:
        """Publishes the event for ``key``. Returns True when the listener should stop."""
        if key in CANCEL_KEYS:
            self.event_bus.publish(CancelRequested())
            return True
        return False

    def _run(self):
        """Main loop for the listener thread."""
        if not sys.stdin.isatty():
            return

        fd = sys.stdin.fileno()
        old_settings = termios.tcgetattr(sys.stdin)
        try:
            tty.setcbreak(fd)

            while not self._stop_event.is_set():
                if fd in select.select([fd], [], [], 0.1)[0]:
                    try:
                        raw = os.read(fd, 1)
                    except OSError:
                        continue
                    if not raw:
                        continue
                    if self._handle_key(raw.decode('utf-8', errors='replace')):
                        break
        finally:
            termios.tcsetattr(sys.stdin, termios.TCSADRAIN, old_settings)

    def start(self):
        """Starts the listener thread."""
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def stop(self):
        """Stops the listener thread."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=1.0)

"""
Optional keep-alive thread that pings the System Store during long passes.
"""

import logging
import threading
from collections.abc import Callable

_logger = logging.getLogger(__name__)


class KeepAlive:
    """
    Call ``ping`` every ``interval`` seconds until stopped.

    Used as a context manager around a pass; a zero interval makes it a no-op.
    Ping failures are logged and never reach the pass.
    """

    def __init__(self, ping: Callable[[], None], interval: float):
        self._ping = ping
        self._interval = interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self.pings = 0

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()

    def start(self):
        if self._interval <= 0 or self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="sync-keepalive", daemon=True)
        self._thread.start()

    def stop(self):
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self):
        while not self._stop.wait(self._interval):
            try:
                self._ping()
                self.pings += 1
            except Exception as e:
                _logger.warning(f"Keep-alive ping failed: {e}")

"""
Cleanup Scheduler - periodic sweep of idle sessions and aged containers.
"""

import logging
import threading
from typing import Optional

from tutor_repl.sandbox.registry import SessionRegistry

logger = logging.getLogger(__name__)

# Default sweep interval (1 minute)
DEFAULT_INTERVAL_SECONDS = 60.0


class CleanupScheduler:
    """
    Runs ``registry.cleanup_expired_sessions`` on a fixed interval in a
    background thread. Started on init of the process, stopped on shutdown.
    """

    def __init__(self, registry: SessionRegistry, interval: float = DEFAULT_INTERVAL_SECONDS):
        self.registry = registry
        self.interval = interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background sweep thread. Calling it twice is a no-op."""
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="repl-cleanup", daemon=True)
        self._thread.start()
        logger.info("Cleanup scheduler started (every %ss)", self.interval)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the thread to stop and wait for the current sweep to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
            logger.info("Cleanup scheduler stopped")

    def run_once(self) -> int:
        """Run a single sweep. Errors are logged, not raised."""
        try:
            return self.registry.cleanup_expired_sessions()
        except Exception:
            logger.exception("Session cleanup failed")
            return 0

    def _loop(self) -> None:
        while not self._stop_event.wait(self.interval):
            self.run_once()

    def __enter__(self) -> "CleanupScheduler":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

"""Background timer that triggers a sync at a fixed interval."""
import logging
import threading
from typing import Optional

logger = logging.getLogger(__name__)


class RecurringSync:
    """
    Calls orchestrator.run_sync() every interval seconds on a daemon thread.

    The first run happens immediately after start(). stop() wakes the thread
    and waits for it to exit; a sync already running is allowed to finish.
    """

    def __init__(self, orchestrator, interval_seconds: float = 300):
        """
        Initialize the timer.

        Args:
            orchestrator: Object exposing run_sync()
            interval_seconds: Pause between the end of one run and the next
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.orchestrator = orchestrator
        self.interval_seconds = interval_seconds
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name='recurring-sync', daemon=True)
        self._thread.start()
        logger.info(f"Recurring sync started (interval: {self.interval_seconds}s)")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Recurring sync stopped")

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                outcome = self.orchestrator.run_sync()
                logger.info(f"Scheduled sync finished: {outcome.message}")
            except Exception as e:
                logger.error(f"Scheduled sync raised: {e}", exc_info=True)

            self._stop_event.wait(self.interval_seconds)

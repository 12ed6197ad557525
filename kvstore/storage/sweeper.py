"""Background expiry sweep."""

from __future__ import annotations

import logging
import threading

from .cache import CacheEngine

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL = 3600.0


class ExpirySweeper:
    """Daemon thread that periodically evicts expired records."""

    def __init__(self, cache: CacheEngine, interval: float = DEFAULT_SWEEP_INTERVAL):
        if interval <= 0:
            raise ValueError("sweep interval must be positive")
        self.cache = cache
        self.interval = interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="kvstore-sweeper", daemon=True
        )
        self._thread.start()
        logger.debug("expiry sweeper started; interval=%ss", self.interval)

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.debug("expiry sweeper stopped")

    def run_once(self) -> int:
        """Run one sweep; failures are logged and retried next cycle."""
        try:
            return self.cache.sweep()
        except Exception:
            logger.exception("expiry sweep failed")
            return 0

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            self.run_once()

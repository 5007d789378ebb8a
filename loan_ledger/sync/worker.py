"""Background sync worker."""

from __future__ import annotations

import logging
import queue
import threading
from typing import TYPE_CHECKING

from loan_ledger.config import SyncConfig

if TYPE_CHECKING:
    from loan_ledger.store.record_store import RecordStore

logger = logging.getLogger(__name__)

_SENTINEL = object()


class SyncWorker:
    """Single thread that turns dirty notices into sync cycles.

    Mutations put a notice on the queue and return immediately. The worker
    coalesces every notice queued before a cycle starts into that cycle, and
    retries a failed cycle with exponential backoff before waiting for the
    next notice.
    """

    def __init__(self, store: RecordStore, config: SyncConfig) -> None:
        self._store = store
        self._config = config
        self._queue: queue.Queue = queue.Queue()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the worker thread."""
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="loan-ledger-sync", daemon=True)
        self._thread.start()
        logger.debug("Sync worker started")

    def notify(self, reason: str) -> None:
        """Queue a dirty notice."""
        self._queue.put(reason)

    def stop(self, timeout: float | None = None) -> None:
        """Stop after the current cycle; pending notices are discarded."""
        if self._thread is None:
            return
        self._stop.set()
        self._queue.put(_SENTINEL)
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning("Sync worker did not stop within %.1fs", timeout or 0)
        else:
            logger.debug("Sync worker stopped")
        self._thread = None

    def _run(self) -> None:
        while not self._stop.is_set():
            reason = self._queue.get()
            if reason is _SENTINEL:
                break
            reasons = [reason]
            while True:
                try:
                    pending = self._queue.get_nowait()
                except queue.Empty:
                    break
                if pending is _SENTINEL:
                    return
                reasons.append(pending)
            logger.debug("Sync requested by: %s", ", ".join(reasons))
            self._sync_with_retry()

    def _sync_with_retry(self) -> None:
        attempts = self._config.max_retries + 1
        for attempt in range(1, attempts + 1):
            result = self._store.run_sync_cycle(attempt=attempt)
            if result is None or result.ok:
                return
            if attempt == attempts:
                logger.warning("Sync gave up after %d attempts; waiting for next change", attempts)
                return
            delay = self._config.backoff(attempt)
            logger.info("Retrying sync in %.1fs (attempt %d/%d)", delay, attempt + 1, attempts)
            if self._stop.wait(delay):
                return

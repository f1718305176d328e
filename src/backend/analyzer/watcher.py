"""
Status Watcher: follow one report's status record until the caller stops.

``StatusWatcher.watch`` forwards every snapshot (the initial one included)
and turns a failed subscription into a single synthesized ``error`` record.
``WatchSession`` keeps at most one job followed at a time, for callers that
let the user start a new analysis before the previous one finished.
"""
import threading
from typing import Callable

from errors import StatusStoreError
from logging_config import get_logger
from models import JobRecord

logger = get_logger(__name__)

FAILED_TO_LISTEN = "Failed to listen for report updates."

UpdateCallback = Callable[[JobRecord], None]


class StatusWatcher:
    def __init__(self, status_store):
        self.status_store = status_store

    def watch(self, report_id: str, on_update: UpdateCallback) -> Callable[[], None]:
        """
        Subscribe to ``report_id``. The returned callable cancels the
        subscription; once it returns, ``on_update`` is not called again.
        Terminal states do not cancel the subscription by themselves.
        """
        # held while a callback runs so unsubscribe() waits for in-flight delivery
        lock = threading.RLock()
        state = {"cancelled": False, "failed": False}
        store_unsubscribe = None

        def forward(record: JobRecord):
            with lock:
                if state["cancelled"] or state["failed"]:
                    return
                on_update(record)

        def fail(error: Exception):
            with lock:
                if state["cancelled"] or state["failed"]:
                    return
                state["failed"] = True
                logger.warning("status_watch_failed", report_id=report_id, error=str(error))
                on_update(JobRecord(report_id=report_id, status="error", error_message=FAILED_TO_LISTEN))

        def unsubscribe():
            with lock:
                if state["cancelled"]:
                    return
                state["cancelled"] = True
            if store_unsubscribe is not None:
                store_unsubscribe()

        try:
            store_unsubscribe = self.status_store.subscribe(report_id, forward, fail)
        except StatusStoreError as e:
            fail(e)
        # on_update may have cancelled during the initial snapshot
        if state["cancelled"] and store_unsubscribe is not None:
            store_unsubscribe()
        return unsubscribe


class WatchSession:
    """Follows the current report only; updates from superseded jobs are dropped."""

    def __init__(self, watcher: StatusWatcher):
        self.watcher = watcher
        self.report_id: str | None = None
        self._lock = threading.Lock()
        self._generation = 0
        self._unsubscribe: Callable[[], None] | None = None

    def follow(self, report_id: str, on_update: UpdateCallback) -> None:
        with self._lock:
            self._stop_locked()
            self._generation += 1
            generation = self._generation
            self.report_id = report_id

        def guarded(record: JobRecord):
            if generation != self._generation:
                logger.debug("stale_status_update_dropped", report_id=record.report_id)
                return
            on_update(record)

        unsubscribe = self.watcher.watch(report_id, guarded)
        with self._lock:
            if generation == self._generation:
                self._unsubscribe = unsubscribe
                return
        unsubscribe()

    def stop(self) -> None:
        with self._lock:
            self._generation += 1
            self._stop_locked()
            self.report_id = None

    def _stop_locked(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

"""In-process job status store with push subscriptions."""
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List

from errors import StatusStoreError
from logging_config import get_logger
from models import JobRecord, TERMINAL_STATUSES

logger = get_logger(__name__)

SnapshotCallback = Callable[[JobRecord], None]
ErrorCallback = Callable[[Exception], None]


class _Listener:
    def __init__(self, on_snapshot: SnapshotCallback, on_error: ErrorCallback | None):
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.active = True
        # version of the newest snapshot handed to on_snapshot
        self.delivered = 0
        self.lock = threading.RLock()


class InMemoryStatusStore:
    """
    One record per report id, created in ``processing`` and moved once to a
    terminal status. Listeners run on the thread that changed the record.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._records: Dict[str, JobRecord] = {}
        self._listeners: Dict[str, List[_Listener]] = {}
        self._versions: Dict[str, int] = {}
        self._seq = 0
        self._closed = False

    def create(self, report_id: str, vendor: str, standard: str, file_path: str | None = None) -> JobRecord:
        record = JobRecord(
            report_id=report_id,
            status="processing",
            vendor=vendor,
            standard=standard,
            file_path=file_path,
            created_at=datetime.now(timezone.utc),
        )
        with self._lock:
            self._ensure_open()
            if report_id in self._records:
                raise StatusStoreError(f"Report {report_id} already exists")
            self._records[report_id] = record
            version = self._bump(report_id)
        self._notify(record, version)
        return record

    def update(self, report_id: str, **changes) -> JobRecord:
        with self._lock:
            self._ensure_open()
            current = self._records.get(report_id)
            if current is None:
                raise StatusStoreError(f"Unknown report id: {report_id}")
            if current.status in TERMINAL_STATUSES:
                raise StatusStoreError(f"Report {report_id} is already {current.status}")
            if changes.get("status") in TERMINAL_STATUSES:
                changes.setdefault("completed_at", datetime.now(timezone.utc))
            record = current.model_copy(update=changes)
            self._records[report_id] = record
            version = self._bump(report_id)
        self._notify(record, version)
        return record

    def get(self, report_id: str) -> JobRecord | None:
        with self._lock:
            return self._records.get(report_id)

    def subscribe(
        self,
        report_id: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Callable[[], None]:
        """
        Deliver the current record (if any) and every later change to
        ``on_snapshot``. Returns a callable that removes the listener.
        """
        listener = _Listener(on_snapshot, on_error)
        with self._lock:
            self._ensure_open()
            self._listeners.setdefault(report_id, []).append(listener)
            current = self._records.get(report_id)
            version = self._versions.get(report_id, 0)
        if current is not None:
            self._deliver(listener, current, version)

        def unsubscribe():
            with self._lock:
                listener.active = False
                listeners = self._listeners.get(report_id, [])
                if listener in listeners:
                    listeners.remove(listener)
                if not listeners:
                    self._listeners.pop(report_id, None)

        return unsubscribe

    def close(self) -> None:
        """Stop the store; every live listener gets a StatusStoreError."""
        with self._lock:
            self._closed = True
            listeners = [l for group in self._listeners.values() for l in group]
            self._listeners.clear()
        error = StatusStoreError("Status store closed")
        for listener in listeners:
            if listener.active and listener.on_error is not None:
                listener.active = False
                listener.on_error(error)

    # ---------- internals ----------
    def _ensure_open(self):
        if self._closed:
            raise StatusStoreError("Status store closed")

    def _bump(self, report_id: str) -> int:
        self._seq += 1
        self._versions[report_id] = self._seq
        return self._seq

    def _notify(self, record: JobRecord, version: int):
        with self._lock:
            listeners = list(self._listeners.get(record.report_id, []))
        for listener in listeners:
            self._deliver(listener, record, version)

    def _deliver(self, listener: _Listener, record: JobRecord, version: int):
        # snapshots older than one already delivered are dropped
        with listener.lock:
            if not listener.active or version <= listener.delivered:
                return
            listener.delivered = version
            try:
                listener.on_snapshot(record)
            except Exception as e:
                logger.error("status_listener_failed", report_id=record.report_id, error=str(e))
                if listener.on_error is not None:
                    listener.active = False
                    listener.on_error(e)

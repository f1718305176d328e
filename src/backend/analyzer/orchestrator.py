"""
Job Orchestrator: persist the uploaded config, hand the job to the analysis
trigger and return the new report id without waiting for the result.
"""
import uuid
from typing import Callable

import requests

from errors import StorageError, TriggerError, TriggerRejected, UploadError
from logging_config import get_logger
from models import TriggerPayload
from storage import upload_path

logger = get_logger(__name__)


class JobOrchestrator:
    def __init__(self, content_store, trigger: Callable, id_factory: Callable[[], str] = None):
        self.content_store = content_store
        self.trigger = trigger
        self.id_factory = id_factory or (lambda: str(uuid.uuid4()))

    def submit(self, file_name: str, data: bytes, vendor: str, standard: str, caller: str | None = None) -> str:
        """
        Upload ``data`` to ``uploads/<report_id>/<file_name>`` and trigger the
        analysis. Every call creates a new job, identical inputs included.

        Raises ValueError for empty inputs (nothing is uploaded), UploadError
        when the content store fails and TriggerError when the trigger fails
        or rejects the job.
        """
        if not file_name or not data or not vendor or not standard:
            raise ValueError("file, vendor and standard are all required")

        report_id = self.id_factory()
        file_path = upload_path(report_id, file_name)
        log = logger.bind(report_id=report_id)

        try:
            self.content_store.put(file_path, data)
        except StorageError as e:
            log.error("upload_failed", file_path=file_path, error=str(e))
            raise UploadError(f"Failed to upload configuration file: {e}") from e

        payload = TriggerPayload(report_id=report_id, vendor=vendor, standard=standard, file_path=file_path)
        try:
            self.trigger(payload, caller)
        except TriggerRejected as e:
            log.warning("trigger_rejected", code=e.code, error=e.message)
            raise TriggerError(e.message, code=e.code) from e
        except Exception as e:
            log.error("trigger_failed", error=str(e))
            raise TriggerError(f"Failed to start analysis: {e}") from e

        log.info("job_submitted", vendor=vendor, standard=standard, file_path=file_path)
        return report_id


class HttpAnalysisTrigger:
    """Calls a remote service's ``POST /analyze`` with a bearer token."""

    def __init__(self, base_url: str, token: str | None, timeout: int = 30):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    def __call__(self, payload: TriggerPayload, caller: str | None = None) -> dict:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            r = requests.post(
                f"{self.base_url}/analyze",
                json=payload.model_dump(),
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TriggerRejected("internal", f"Analysis service unreachable: {e}") from e

        if r.status_code == 401:
            raise TriggerRejected("unauthenticated", _detail(r))
        if r.status_code in (400, 422):
            raise TriggerRejected("invalid-argument", _detail(r))
        if not r.ok:
            raise TriggerRejected("internal", _detail(r))
        return r.json()


def _detail(r: requests.Response) -> str:
    try:
        body = r.json()
    except ValueError:
        body = None
    detail = body.get("detail") if isinstance(body, dict) else None
    return str(detail or f"{r.status_code} {r.reason}")

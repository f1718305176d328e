# analyzer.py
from concurrent.futures import Executor, Future
from typing import Callable

from errors import AnalysisError, StatusStoreError, TriggerRejected
from gemini_client import GeminiClient
from logging_config import get_logger
from models import AnalysisRequest, TriggerPayload
from prompts import SYSTEM_INSTRUCTION, build_user_prompt
from utils_config import load_config_text

logger = get_logger(__name__)

EMPTY_RESPONSE_MESSAGE = "Received an empty response from the AI API."


# ---------- Model call ----------
def generate_compliance_report(client: GeminiClient, request: AnalysisRequest) -> str:
    """Send the audit prompt for ``request`` and return the raw markdown report."""
    user_prompt = build_user_prompt(request.vendor, request.standard, request.config_text)
    report = client.generate(system=SYSTEM_INSTRUCTION, user=user_prompt)
    if not report or not report.strip():
        raise AnalysisError(EMPTY_RESPONSE_MESSAGE)
    return report


# ---------- Job body ----------
def run_analysis(payload: TriggerPayload, *, content_store, status_store, client: GeminiClient) -> None:
    """
    Load the uploaded config, run the audit and move the status record to
    ``complete`` or ``error``. Runs on a worker thread; nothing is raised.
    """
    log = logger.bind(report_id=payload.report_id)
    try:
        config_text = load_config_text(content_store.get(payload.file_path))
        request = AnalysisRequest(config_text=config_text, vendor=payload.vendor, standard=payload.standard)
        report = generate_compliance_report(client, request)
    except Exception as e:
        log.error("analysis_failed", error=str(e))
        _finish(status_store, payload.report_id, status="error", error_message=str(e) or type(e).__name__)
        return

    log.info("analysis_complete", report_chars=len(report))
    _finish(status_store, payload.report_id, status="complete", report=report)


def _finish(status_store, report_id: str, **changes) -> None:
    try:
        status_store.update(report_id, **changes)
    except StatusStoreError as e:
        logger.error("status_update_failed", report_id=report_id, error=str(e))


# ---------- Trigger ----------
class AnalysisTrigger:
    """
    Accepts a job: checks the caller and the payload, creates the status
    record in ``processing`` and queues ``run_analysis``. Returns as soon as
    the job is queued.
    """

    def __init__(self, content_store, status_store, client_factory: Callable[[], GeminiClient], executor: Executor):
        self.content_store = content_store
        self.status_store = status_store
        self.client_factory = client_factory
        self.executor = executor

    def __call__(self, payload: TriggerPayload, caller: str | None = None) -> Future:
        if not caller:
            raise TriggerRejected("unauthenticated", "The analysis must be requested by an authenticated caller.")
        if not (payload.report_id and payload.vendor and payload.standard and payload.file_path):
            raise TriggerRejected("invalid-argument", "Missing required parameters for analysis.")

        if self.status_store.get(payload.report_id) is not None:
            raise TriggerRejected("invalid-argument", f"Report id already in use: {payload.report_id}")

        client = self.client_factory()
        try:
            self.status_store.create(payload.report_id, payload.vendor, payload.standard, payload.file_path)
        except StatusStoreError as e:
            raise TriggerRejected("internal", str(e)) from e
        logger.info("analysis_queued", report_id=payload.report_id, vendor=payload.vendor, standard=payload.standard)
        return self.executor.submit(
            run_analysis,
            payload,
            content_store=self.content_store,
            status_store=self.status_store,
            client=client,
        )

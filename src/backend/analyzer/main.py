import asyncio
import os
import secrets
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager

import orjson
from dotenv import load_dotenv
from fastapi import FastAPI, File, Form, Header, HTTPException, UploadFile, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from analyzer import AnalysisTrigger
from errors import TriggerError, TriggerRejected, UploadError
from gemini_client import GeminiClient
from logging_config import get_logger, setup_logging
from models import (
    OptionsResponse, ReportResponse, SubmitResponse, TriggerPayload, TriggerResponse,
)
from orchestrator import JobOrchestrator
from prompts import COMPLIANCE_STANDARDS, FIREWALL_VENDORS
from report_parser import count_violations_by_layer, parse_report
from status_store import InMemoryStatusStore
from storage import LocalContentStore
from watcher import StatusWatcher, WatchSession

load_dotenv()
setup_logging()
logger = get_logger(__name__)

# ── configurable via .env ──
GEMINI_MODEL = os.getenv("GEMINI_MODEL")
CORS_ORIGINS = os.getenv("CORS_ORIGINS").split(",")
STORAGE_DIR = os.getenv("STORAGE_DIR")
API_TOKEN = os.getenv("API_TOKEN")
ANALYSIS_WORKERS = int(os.getenv("ANALYSIS_WORKERS"))

content_store = LocalContentStore(STORAGE_DIR)
status_store = InMemoryStatusStore()
executor = ThreadPoolExecutor(max_workers=ANALYSIS_WORKERS, thread_name_prefix="analysis")
trigger = AnalysisTrigger(
    content_store, status_store,
    client_factory=lambda: GeminiClient(model=GEMINI_MODEL),
    executor=executor,
)
orchestrator = JobOrchestrator(content_store, trigger)
watcher = StatusWatcher(status_store)

TRIGGER_ERROR_STATUS = {"unauthenticated": 401, "invalid-argument": 400}


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    status_store.close()
    executor.shutdown(wait=False, cancel_futures=True)


app = FastAPI(title="Firewall Compliance Auditor (Gemini)", version="1.0.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS, allow_credentials=True,
    allow_methods=["*"], allow_headers=["*"],
)


def _caller(authorization: str | None) -> str | None:
    """Identity of the caller if the bearer token matches API_TOKEN."""
    if not API_TOKEN or not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(token.strip(), API_TOKEN):
        return None
    return "api-token"


@app.get("/health")
async def health():
    return {"status": "ok", "model": GEMINI_MODEL}


@app.get("/options", response_model=OptionsResponse)
async def options():
    return OptionsResponse(vendors=FIREWALL_VENDORS, standards=COMPLIANCE_STANDARDS)


@app.post("/reports", response_model=SubmitResponse)
async def submit_report(
    file: UploadFile = File(...),
    vendor: str = Form(""),
    standard: str = Form(""),
    authorization: str | None = Header(None),
):
    data = await file.read()
    if not data or not vendor.strip() or not standard.strip():
        raise HTTPException(status_code=400, detail="Please ensure all fields are filled and a file is uploaded.")

    try:
        report_id = orchestrator.submit(
            file.filename or "config.txt", data, vendor.strip(), standard.strip(),
            caller=_caller(authorization),
        )
    except UploadError as e:
        raise HTTPException(status_code=502, detail=f"Failed to start analysis: {e}")
    except TriggerError as e:
        raise HTTPException(status_code=TRIGGER_ERROR_STATUS.get(e.code, 502), detail=f"Failed to start analysis: {e.message}")
    return SubmitResponse(report_id=report_id)


@app.post("/analyze", response_model=TriggerResponse)
async def analyze(payload: TriggerPayload, authorization: str | None = Header(None)):
    """Start the analysis of a file already in the content store."""
    try:
        trigger(payload, _caller(authorization))
    except TriggerRejected as e:
        raise HTTPException(status_code=TRIGGER_ERROR_STATUS.get(e.code, 500), detail=e.message)
    return TriggerResponse(success=True, report_id=payload.report_id)


@app.get("/reports/{report_id}", response_model=ReportResponse)
async def get_report(report_id: str):
    record = status_store.get(report_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Unknown report id.")

    resp = ReportResponse(
        report_id=record.report_id, status=record.status,
        vendor=record.vendor, standard=record.standard,
        error_message=record.error_message,
    )
    if record.status == "complete":
        parsed = parse_report(record.report)
        resp.report = parsed
        resp.violation_counts = count_violations_by_layer(parsed.remediation_items)
    return resp


# ============== Status push ==============

async def _receive_commands(websocket: WebSocket, session: WatchSession, on_update, queue: asyncio.Queue):
    """Handle client messages; {"type": "watch", "report_id": ...} switches jobs."""
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                msg = orjson.loads(raw)
            except orjson.JSONDecodeError:
                continue
            if isinstance(msg, dict) and msg.get("type") == "watch" and msg.get("report_id"):
                session.follow(str(msg["report_id"]), on_update)
    except WebSocketDisconnect:
        queue.put_nowait(None)
    except Exception as e:
        logger.error("websocket_receive_failed", error=str(e))
        queue.put_nowait(None)


@app.websocket("/ws/reports/{report_id}")
async def report_updates(websocket: WebSocket, report_id: str):
    """Push every status snapshot of a report; closes after a terminal one."""
    await websocket.accept()
    if status_store.get(report_id) is None:
        await websocket.close(code=4404)
        return

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()
    session = WatchSession(watcher)

    def on_update(record):
        loop.call_soon_threadsafe(queue.put_nowait, record)

    session.follow(report_id, on_update)
    receiver = asyncio.create_task(_receive_commands(websocket, session, on_update, queue))
    client_gone = False
    try:
        while True:
            record = await queue.get()
            if record is None:
                client_gone = True
                break
            if record.report_id != session.report_id:
                continue
            await websocket.send_text(orjson.dumps(record.model_dump(mode="json")).decode())
            if record.is_terminal:
                break
    except WebSocketDisconnect:
        client_gone = True
    finally:
        session.stop()
        receiver.cancel()

    if not client_gone:
        await websocket.close()

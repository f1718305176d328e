"""
Integration tests for the FastAPI application.

Tests the API endpoints using TestClient (no real Gemini needed).

Covers:
  - GET  /health, GET /options
  - POST /reports         (mocked LLM, runs on the worker pool)
  - WS   /ws/reports/{id} (status push until terminal)
  - GET  /reports/{id}    (parsed report + violation counts)
  - POST /analyze         (auth + argument checks)
"""

import uuid
import pytest
from unittest.mock import patch

AUTH = {"Authorization": "Bearer test-token"}


def _get_test_client():
    from fastapi.testclient import TestClient
    from main import app
    return TestClient(app)


def _wait_for_terminal(client, report_id):
    """Read pushed snapshots until the job finishes; returns them all."""
    seen = []
    with client.websocket_connect(f"/ws/reports/{report_id}") as ws:
        while True:
            msg = ws.receive_json()
            seen.append(msg)
            if msg["status"] in ("complete", "error"):
                return seen


# ═══════════════════════════════════════════
#  GET /health, /options
# ═══════════════════════════════════════════
class TestHealthEndpoint:
    def test_health_returns_ok(self):
        client = _get_test_client()
        r = client.get("/health")
        assert r.status_code == 200
        data = r.json()
        assert data["status"] == "ok"
        assert data["model"] == "gemini-2.5-pro"

    def test_options_lists_catalogues(self):
        from prompts import FIREWALL_VENDORS, COMPLIANCE_STANDARDS
        r = _get_test_client().get("/options")
        assert r.status_code == 200
        assert r.json() == {"vendors": FIREWALL_VENDORS, "standards": COMPLIANCE_STANDARDS}


# ═══════════════════════════════════════════
#  POST /reports
# ═══════════════════════════════════════════
class TestSubmitEndpoint:
    def test_missing_vendor_rejected(self, sample_config_bytes):
        client = _get_test_client()
        r = client.post(
            "/reports",
            files={"file": ("asa.cfg", sample_config_bytes, "text/plain")},
            data={"vendor": "", "standard": "GDPR"},
            headers=AUTH,
        )
        assert r.status_code == 400
        assert r.json()["detail"] == "Please ensure all fields are filled and a file is uploaded."

    def test_empty_file_rejected(self):
        client = _get_test_client()
        r = client.post(
            "/reports",
            files={"file": ("asa.cfg", b"", "text/plain")},
            data={"vendor": "Cisco ASA", "standard": "GDPR"},
            headers=AUTH,
        )
        assert r.status_code == 400

    def test_missing_token_is_unauthenticated(self, sample_config_bytes):
        client = _get_test_client()
        r = client.post(
            "/reports",
            files={"file": ("asa.cfg", sample_config_bytes, "text/plain")},
            data={"vendor": "Cisco ASA", "standard": "GDPR"},
        )
        assert r.status_code == 401
        assert r.json()["detail"].startswith("Failed to start analysis:")

    def test_wrong_token_is_unauthenticated(self, sample_config_bytes):
        client = _get_test_client()
        r = client.post(
            "/reports",
            files={"file": ("asa.cfg", sample_config_bytes, "text/plain")},
            data={"vendor": "Cisco ASA", "standard": "GDPR"},
            headers={"Authorization": "Bearer nope"},
        )
        assert r.status_code == 401

    def test_full_flow(self, mock_gemini_client, sample_report, sample_config_bytes):
        import main
        mock_gemini_client.generate.return_value = sample_report
        client = _get_test_client()

        with patch.object(main.trigger, "client_factory", return_value=mock_gemini_client):
            r = client.post(
                "/reports",
                files={"file": ("asa.cfg", sample_config_bytes, "text/plain")},
                data={"vendor": "Cisco ASA", "standard": "PCI DSS v4.0"},
                headers=AUTH,
            )
        assert r.status_code == 200
        report_id = r.json()["report_id"]
        assert main.content_store.get(f"uploads/{report_id}/asa.cfg") == sample_config_bytes

        updates = _wait_for_terminal(client, report_id)
        assert updates[-1]["status"] == "complete"
        assert all(u["report_id"] == report_id for u in updates)

        r = client.get(f"/reports/{report_id}")
        assert r.status_code == 200
        data = r.json()
        assert data["status"] == "complete"
        assert data["vendor"] == "Cisco ASA"
        assert data["report"]["risk_level"] == "High"
        assert [i["violation_id"] for i in data["report"]["remediation_items"]] == ["R-001", "R-002", "R-003"]
        assert data["violation_counts"] == {"layer7": 1, "layer4": 1, "layer3": 1}

    def test_model_failure_reaches_watcher(self, mock_gemini_client, sample_config_bytes):
        import main
        mock_gemini_client.generate.side_effect = Exception("API key not valid")
        client = _get_test_client()

        with patch.object(main.trigger, "client_factory", return_value=mock_gemini_client):
            r = client.post(
                "/reports",
                files={"file": ("asa.cfg", sample_config_bytes, "text/plain")},
                data={"vendor": "Cisco ASA", "standard": "GDPR"},
                headers=AUTH,
            )
        report_id = r.json()["report_id"]

        updates = _wait_for_terminal(client, report_id)
        assert updates[-1]["status"] == "error"
        assert "API key not valid" in updates[-1]["error_message"]

        data = client.get(f"/reports/{report_id}").json()
        assert data["status"] == "error"
        assert data["report"] is None


# ═══════════════════════════════════════════
#  GET /reports/{id}, WS /ws/reports/{id}
# ═══════════════════════════════════════════
class TestReportLookup:
    def test_unknown_report_404(self):
        r = _get_test_client().get("/reports/does-not-exist")
        assert r.status_code == 404

    def test_unknown_report_socket_closed(self):
        from starlette.websockets import WebSocketDisconnect
        client = _get_test_client()
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/ws/reports/does-not-exist") as ws:
                ws.receive_text()
        assert exc.value.code == 4404

    def test_processing_report_has_no_body(self):
        import main
        report_id = str(uuid.uuid4())
        main.status_store.create(report_id, "Cisco ASA", "GDPR")
        data = _get_test_client().get(f"/reports/{report_id}").json()
        assert data["status"] == "processing"
        assert data["report"] is None
        assert data["violation_counts"] is None


# ═══════════════════════════════════════════
#  POST /analyze
# ═══════════════════════════════════════════
class TestAnalyzeEndpoint:
    def _payload(self, **overrides):
        report_id = str(uuid.uuid4())
        payload = {
            "report_id": report_id,
            "vendor": "Palo Alto Networks",
            "standard": "NIST SP 800-53",
            "file_path": f"uploads/{report_id}/fw.xml",
        }
        payload.update(overrides)
        return payload

    def test_requires_token(self):
        r = _get_test_client().post("/analyze", json=self._payload())
        assert r.status_code == 401

    def test_missing_argument(self):
        r = _get_test_client().post("/analyze", json=self._payload(vendor=""), headers=AUTH)
        assert r.status_code == 400

    def test_accepts_job(self, mock_gemini_client, sample_report):
        import main
        mock_gemini_client.generate.return_value = sample_report
        payload = self._payload()
        main.content_store.put(payload["file_path"], b"set deviceconfig system hostname pa-fw\n")
        client = _get_test_client()

        with patch.object(main.trigger, "client_factory", return_value=mock_gemini_client):
            r = client.post("/analyze", json=payload, headers=AUTH)
        assert r.status_code == 200
        assert r.json() == {"success": True, "report_id": payload["report_id"]}

        updates = _wait_for_terminal(client, payload["report_id"])
        assert updates[-1]["status"] == "complete"

    def test_reused_report_id(self, mock_gemini_client):
        import main
        payload = self._payload()
        main.status_store.create(payload["report_id"], "v", "s")
        with patch.object(main.trigger, "client_factory", return_value=mock_gemini_client):
            r = _get_test_client().post("/analyze", json=payload, headers=AUTH)
        assert r.status_code == 400


# ═══════════════════════════════════════════
#  Websocket command reader
# ═══════════════════════════════════════════
class TestReceiveCommands:
    def _run(self, receive_error):
        import asyncio
        from unittest.mock import AsyncMock, MagicMock
        import main

        websocket = MagicMock()
        websocket.receive_text = AsyncMock(side_effect=receive_error)

        async def run():
            queue = asyncio.Queue()
            await main._receive_commands(websocket, MagicMock(), lambda record: None, queue)
            return queue.get_nowait()

        return asyncio.run(run())

    def test_disconnect_ends_stream(self):
        from starlette.websockets import WebSocketDisconnect
        assert self._run(WebSocketDisconnect(code=1000)) is None

    def test_receive_failure_ends_stream(self):
        # a binary frame has no "text" key
        assert self._run(KeyError("text")) is None

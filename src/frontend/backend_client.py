"""Calls from the Streamlit page to the auditor service."""
import time

import orjson
import requests
from websockets.exceptions import ConnectionClosed
from websockets.sync.client import connect

TERMINAL = ("complete", "error")


class BackendError(Exception):
    """A request to the service failed; the message is ready to show."""


def start_analysis(api: str, file_name: str, data: bytes, vendor: str, standard: str,
                   token: str | None = None, timeout: int = 60) -> str:
    """Upload the config and start the job. Returns the report id."""
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    try:
        resp = requests.post(
            f"{api}/reports",
            files={"file": (file_name, data)},
            data={"vendor": vendor, "standard": standard},
            headers=headers,
            timeout=timeout,
        )
    except requests.exceptions.Timeout as e:
        raise BackendError("Request timed out while starting the analysis.") from e
    except requests.exceptions.ConnectionError as e:
        raise BackendError("Cannot connect to backend. Is the server running?") from e
    except requests.exceptions.RequestException as e:
        raise BackendError(f"Failed to start analysis: {e}") from e

    if not resp.ok:
        raise BackendError(f"Failed to start analysis: {resp.status_code}: {resp.text}")
    return resp.json()["report_id"]


def fetch_report(api: str, report_id: str, timeout: int = 60) -> dict:
    try:
        resp = requests.get(f"{api}/reports/{report_id}", timeout=timeout)
    except requests.exceptions.RequestException as e:
        raise BackendError(f"Failed to load the report: {e}") from e
    if not resp.ok:
        raise BackendError(f"Error: {resp.status_code}: {resp.text}")
    return resp.json()


def wait_for_report(ws_base: str, report_id: str, timeout: float) -> dict:
    """
    Block on the status websocket until the report is complete or failed, or
    until ``timeout`` seconds have passed. Always returns a status record.
    """
    last = {"status": "error", "error_message": "Connection closed before the report finished."}
    deadline = time.monotonic() + timeout
    try:
        with connect(f"{ws_base}/ws/reports/{report_id}") as ws:
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise TimeoutError
                last = orjson.loads(ws.recv(timeout=remaining))
                if last["status"] in TERMINAL:
                    break
    except TimeoutError:
        return {"status": "error", "error_message": "Timed out waiting for the report."}
    except ConnectionClosed:
        if last["status"] in TERMINAL:
            return last
        return {"status": "error", "error_message": "Connection closed before the report finished."}
    except OSError:
        return {"status": "error", "error_message": "Failed to listen for report updates."}
    return last

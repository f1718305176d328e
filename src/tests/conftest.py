"""
Shared fixtures for unit and integration tests.
"""

import os
import sys
import tempfile
import pytest
from unittest.mock import MagicMock

# ── Ensure backend modules are importable ──
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, os.path.join(ROOT, "backend", "analyzer"))
sys.path.insert(0, os.path.join(ROOT, "frontend"))

# ── Fake .env values used by every test ──
ENV_DEFAULTS = {
    "GEMINI_API_KEY": "test-key",
    "GEMINI_MODEL": "gemini-2.5-pro",
    "GEMINI_BASE_URL": "https://generativelanguage.googleapis.com",
    "GEMINI_TIMEOUT": "300",
    "GEMINI_TEMPERATURE": "0.2",
    "STORAGE_DIR": tempfile.mkdtemp(prefix="fw-auditor-tests-"),
    "API_TOKEN": "test-token",
    "ANALYSIS_WORKERS": "2",
    "CORS_ORIGINS": "*",
    "LOG_LEVEL": "WARNING",
    "LOG_FORMAT": "console",
    "API_BASE": "http://127.0.0.1:8000",
    "WS_BASE": "ws://127.0.0.1:8000",
    "SUBMIT_TIMEOUT": "60",
    "REPORT_TIMEOUT": "900",
}

# Modules read their settings at import time, so set them before collection too
for _k, _v in ENV_DEFAULTS.items():
    os.environ.setdefault(_k, _v)


@pytest.fixture(autouse=True)
def mock_env(monkeypatch):
    """Inject all required env vars so modules never blow up on import."""
    for k, v in ENV_DEFAULTS.items():
        monkeypatch.setenv(k, v)


SAMPLE_REPORT = """# Firewall Compliance and Remediation Report

### A. Executive Summary

The configuration shows significant gaps against PCI DSS v4.0, with 3 critical violations
caused by overly permissive access and cleartext management protocols.

Risk Level: High

### B. Findings by OSI Layer

#### Layer 7: Application Layer Findings
* Telnet management access is enabled on the outside interface.
* HTTP (not HTTPS) is allowed to the cardholder web tier.

#### Layer 4: Transport Layer Findings
- RDP (TCP 3389) is reachable from the guest zone.

#### Layer 3: Network Layer Findings
- ACL 10 permits ANY to ANY.

### C. Detailed Remediation Plan

R-001
Violation ID: R-001
The Issue/Violation: Cleartext Telnet management enabled
Rule Affected: telnet 0.0.0.0 0.0.0.0 outside
Compliance Standard: PCI DSS v4.0 Req 2.2.7
OSI Layer: Layer 7
Recommended Fix:
```cisco-cli
no telnet 0.0.0.0 0.0.0.0 outside
ssh 10.0.0.0 255.255.255.0 inside
```

R-002
Violation ID: R-002
The Issue/Violation: RDP exposed to guest zone
Rule Affected: access-list GUEST extended permit tcp any any eq 3389
Compliance Standard: PCI DSS v4.0 Req 1.3.1
OSI Layer: Layer 4
Recommended Fix:
```cisco-cli
no access-list GUEST extended permit tcp any any eq 3389
```

R-003
Violation ID: R-003
The Issue/Violation: Any/any permit rule
Rule Affected: access-list 10 permit ip any any
Compliance Standard: PCI DSS v4.0 Req 1.2.1
OSI Layer: Layer 3
Recommended Fix:
```cisco-cli
no access-list 10 permit ip any any
```
"""


@pytest.fixture
def sample_report():
    """A report written the way the system instruction asks for it."""
    return SAMPLE_REPORT


@pytest.fixture
def mock_gemini_client():
    """Return a MagicMock that behaves like GeminiClient."""
    client = MagicMock()
    client.model = "gemini-2.5-pro"
    client.base_url = "https://generativelanguage.googleapis.com"
    client.timeout = 300
    return client


@pytest.fixture
def content_store(tmp_path):
    from storage import LocalContentStore
    return LocalContentStore(str(tmp_path / "store"))


@pytest.fixture
def status_store():
    from status_store import InMemoryStatusStore
    return InMemoryStatusStore()


@pytest.fixture
def sample_config_bytes():
    return (
        b"hostname edge-fw\n"
        b"telnet 0.0.0.0 0.0.0.0 outside\n"
        b"access-list 10 permit ip any any\n"
    )

import os
import time
import pandas as pd
import requests
import streamlit as st
from dotenv import load_dotenv

from backend_client import BackendError, fetch_report, start_analysis, wait_for_report

load_dotenv()

# ── configurable via .env ──
API_BASE = os.getenv("API_BASE")
WS_BASE = os.getenv("WS_BASE")
API_TOKEN = os.getenv("API_TOKEN")
SUBMIT_TIMEOUT = int(os.getenv("SUBMIT_TIMEOUT"))
REPORT_TIMEOUT = int(os.getenv("REPORT_TIMEOUT", "900"))

FALLBACK_VENDORS = ["Cisco ASA", "Palo Alto Networks FOS", "Juniper SRX", "Fortinet FortiGate"]
FALLBACK_STANDARDS = ["PCI DSS v4.0", "HIPAA Security Rule", "ISO 27001", "NIST CSF"]

RISK_COLORS = {"High": "red", "Moderate": "orange", "Low": "green"}
RISK_ICONS = {"High": "🚨", "Moderate": "🛡️", "Low": "✅"}

st.set_page_config(page_title="Sentinel AI Firewall Auditor", page_icon="🛡️", layout="wide")
st.title("🛡️ Sentinel AI Firewall Compliance Auditor")

API = st.sidebar.text_input("API URL", API_BASE)
WS = st.sidebar.text_input("Websocket URL", WS_BASE)


@st.cache_data(ttl=300)
def load_options(api: str) -> tuple[list[str], list[str]]:
    try:
        resp = requests.get(f"{api}/options", timeout=10)
        resp.raise_for_status()
        data = resp.json()
        return data["vendors"], data["standards"]
    except requests.RequestException:
        return FALLBACK_VENDORS, FALLBACK_STANDARDS


def render_report(data: dict):
    report = data["report"]
    counts = data["violation_counts"]
    risk = report["risk_level"]

    # Executive summary
    head, badge = st.columns([4, 1])
    head.subheader(f"{RISK_ICONS.get(risk, '🛡️')} Executive Summary")
    badge.markdown(f"### :{RISK_COLORS.get(risk, 'orange')}[{risk} Risk]")
    st.markdown(report["executive_summary"] or "No summary available.")

    # Violation distribution
    total = counts["layer7"] + counts["layer4"] + counts["layer3"]
    if total:
        st.subheader("📊 Violations by OSI Layer")
        df = pd.DataFrame({
            "Layer": ["Layer 7", "Layer 4", "Layer 3"],
            "Violations": [counts["layer7"], counts["layer4"], counts["layer3"]],
        }).set_index("Layer")
        st.bar_chart(df)
        for col, (layer, n) in zip(st.columns(3), df["Violations"].items()):
            col.metric(layer, n, f"{round(n / total * 100)}%", delta_color="off")

    # Findings
    st.subheader("🔎 Findings Details")
    if report["layer_findings"]:
        for finding in report["layer_findings"]:
            with st.expander(finding["layer_label"], expanded=True):
                st.markdown(finding["body"] or "_No findings._")
    else:
        st.info("No findings detailed.")

    # Remediation plan
    st.subheader("🛠️ Detailed Remediation Plan")
    items = report["remediation_items"]
    if items:
        table = pd.DataFrame([{
            "Violation ID": i["violation_id"],
            "Issue / Violation": i["issue"],
            "Rule Affected": i["rule_affected"],
            "Standard": i["standard"],
            "OSI Layer": i["osi_layer"],
        } for i in items])
        st.dataframe(table, hide_index=True, use_container_width=True)
        for i in items:
            with st.expander(f"{i['violation_id']}: recommended fix"):
                st.code(i["fix"])
    else:
        st.info("No remediation items found.")

    dropped = report.get("dropped_remediation_blocks", 0)
    if dropped:
        st.warning(f"{dropped} remediation entr{'y' if dropped == 1 else 'ies'} could not be read from "
                   "the model output and were left out of this report.")


vendors, standards = load_options(API)

c1, c2, c3 = st.columns(3)
file = c1.file_uploader("1. Upload Config", key="config")
vendor = c2.selectbox("2. Select Vendor", vendors, index=None, placeholder="Select a vendor")
standard = c3.selectbox("3. Select Standard", standards, index=None, placeholder="Select a standard")

form_valid = bool(file and vendor and standard)

if st.button("Generate Compliance Report", disabled=not form_valid, type="primary"):
    if not form_valid:
        st.error("Please ensure all fields are filled and a file is uploaded.")
        st.stop()

    progress = st.progress(0, text="Uploading configuration...")
    try:
        report_id = start_analysis(
            API, file.name, file.getvalue(), vendor, standard,
            token=API_TOKEN, timeout=SUBMIT_TIMEOUT,
        )
    except BackendError as e:
        progress.empty()
        st.error(str(e))
        st.stop()

    # a newer submission replaces whatever this session was following
    st.session_state.report_id = report_id
    st.session_state.result = None

    progress.progress(30, text="Analyzing configuration (this may take a few minutes)...")
    record = wait_for_report(WS, report_id, REPORT_TIMEOUT)

    if st.session_state.get("report_id") == report_id:
        if record["status"] == "complete":
            progress.progress(90, text="Processing results...")
            try:
                st.session_state.result = fetch_report(API, report_id, timeout=SUBMIT_TIMEOUT)
                progress.progress(100, text="Done!")
                time.sleep(0.3)
                progress.empty()
            except BackendError as e:
                progress.empty()
                st.error(str(e))
        else:
            progress.empty()
            st.error(f"Failed to generate report: {record.get('error_message') or 'unknown error'}")

if st.session_state.get("result"):
    render_report(st.session_state.result)

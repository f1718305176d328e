from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

RiskLevel = Literal["High", "Moderate", "Low"]
JobStatus = Literal["processing", "complete", "error"]

TERMINAL_STATUSES = {"complete", "error"}


class AnalysisRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    config_text: str = Field(min_length=1)
    vendor: str = Field(min_length=1)
    standard: str = Field(min_length=1)


class RemediationItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    violation_id: str = Field(min_length=1)
    issue: str = Field(min_length=1)
    rule_affected: str = Field(min_length=1)
    standard: str = Field(min_length=1)
    osi_layer: str = Field(min_length=1)
    fix: str = Field(min_length=1)


class LayerFinding(BaseModel):
    model_config = ConfigDict(frozen=True)

    layer_label: str
    body: str


class ParsedReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    executive_summary: str = ""
    risk_level: RiskLevel = "Moderate"
    layer_findings: list[LayerFinding] = []
    remediation_items: list[RemediationItem] = []
    dropped_remediation_blocks: int = Field(0, ge=0)


class ViolationCounts(BaseModel):
    layer7: int = 0
    layer4: int = 0
    layer3: int = 0

    @property
    def total(self) -> int:
        return self.layer7 + self.layer4 + self.layer3


class TriggerPayload(BaseModel):
    report_id: str
    vendor: str
    standard: str
    file_path: str


class JobRecord(BaseModel):
    report_id: str
    status: JobStatus
    vendor: str | None = None
    standard: str | None = None
    file_path: str | None = None
    report: str | None = None
    error_message: str | None = None
    created_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


# ── API schemas ──

class SubmitResponse(BaseModel):
    report_id: str


class TriggerResponse(BaseModel):
    success: bool
    report_id: str


class OptionsResponse(BaseModel):
    vendors: list[str]
    standards: list[str]


class ReportResponse(BaseModel):
    report_id: str
    status: JobStatus
    vendor: str | None = None
    standard: str | None = None
    error_message: str | None = None
    report: ParsedReport | None = None
    violation_counts: ViolationCounts | None = None

"""
Best-effort extraction of the model's markdown report into a ParsedReport.

The model is asked for a fixed layout (see prompts.SYSTEM_INSTRUCTION) but
nothing guarantees it follows it, so every function here degrades instead of
raising: a missing section is empty, an unknown risk level is Moderate, and a
remediation entry missing any field is left out.
"""
import re
import textwrap
from typing import Iterable, List, Tuple

from pydantic import ValidationError

from logging_config import get_logger
from models import LayerFinding, ParsedReport, RemediationItem, ViolationCounts
from prompts import FINDINGS_HEADING, REMEDIATION_HEADING, SUMMARY_HEADING

logger = get_logger(__name__)

DEFAULT_RISK_LEVEL = "Moderate"

_HEADING_RE = re.compile(r"^\s{0,3}(#{1,6})\s+(.*?)[\s#]*$")
_FENCE_RE = re.compile(r"^\s*(`{3,}|~{3,})(.*)$")
# a fence opened at the end of a "Label: ```lang" line
_INLINE_FENCE_RE = re.compile(r":\s*[*_]*\s*(`{3,}|~{3,})[^`~]*$")
_RISK_RE = re.compile(
    r"[*_]*Risk Level[*_]*\s*:\s*[*_]*\s*(High|Moderate|Low)\b[*_]*[.;]?", re.IGNORECASE
)
_LAYER_RE = re.compile(r"Layer\s*(7|4|3)\b", re.IGNORECASE)
# 'R-001' at the start of a line, optionally as 'Violation ID: R-001' or decorated with markdown
_MARKER_RE = re.compile(r"^[\s*_#>-]*(Violation ID[*_\s]*:[\s*_]*)?(R-\d+)\b", re.IGNORECASE)
_LEAD_RE = re.compile(r"^[\s*_#>-]+")
_FIELD_RE = re.compile(r"^([^:`]+?)\s*:\s*(.*)$")
_HINT_RE = re.compile(r"[\w+.#-]+")
# a thematic break ('---', '***') between entries
_RULE_RE = re.compile(r"^\s*([-*_])(\s*\1){2,}\s*$")

_FIELD_ALIASES = {
    "violation id": "violation_id",
    "issue/violation": "issue",
    "issue / violation": "issue",
    "issue": "issue",
    "rule affected": "rule_affected",
    "affected rule": "rule_affected",
    "compliance standard": "standard",
    "standard": "standard",
    "osi layer": "osi_layer",
    "recommended fix": "fix",
    "fix": "fix",
}
REQUIRED_FIELDS = ("violation_id", "issue", "rule_affected", "standard", "osi_layer", "fix")


# ---------- Sections ----------
def _iter_headings(lines: List[str]) -> Iterable[Tuple[int, int, str]]:
    """Yield (line index, level, text) for every markdown heading outside code fences."""
    in_fence = False
    for idx, line in enumerate(lines):
        if _FENCE_RE.match(line) or (not in_fence and _INLINE_FENCE_RE.search(line)):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        m = _HEADING_RE.match(line)
        if m:
            yield idx, len(m.group(1)), m.group(2)


def extract_section(report: str, title: str) -> str:
    """
    Body of the first heading whose text contains ``title`` (case-insensitive),
    up to the next heading of the same or a higher level. Empty if not found.
    """
    if not report:
        return ""
    lines = report.splitlines()
    start = level = None
    for idx, depth, text in _iter_headings(lines):
        if start is None:
            if title.lower() in text.lower():
                start, level = idx + 1, depth
        elif depth <= level:
            return "\n".join(lines[start:idx]).strip()
    if start is None:
        return ""
    return "\n".join(lines[start:]).strip()


# ---------- Executive summary ----------
def parse_executive_summary(report: str) -> Tuple[str, str]:
    """Return (summary text without the risk line, risk level)."""
    section = extract_section(report, SUMMARY_HEADING)
    m = _RISK_RE.search(section)
    if not m:
        return section, DEFAULT_RISK_LEVEL

    risk = m.group(1).capitalize()
    remainder = section[:m.start()] + section[m.end():]
    # drop lines left holding only list bullets or emphasis markers
    kept = [ln.rstrip() for ln in remainder.splitlines() if ln.strip(" \t*_-.:|>") or not ln.strip()]
    content = re.sub(r"\n{3,}", "\n\n", "\n".join(kept)).strip()
    return content, risk


# ---------- Findings ----------
def _clean_label(text: str) -> str:
    return text.strip(" *_").rstrip(":").strip()


def parse_layer_findings(report: str) -> List[LayerFinding]:
    """
    Split the findings section on its Layer 7 / 4 / 3 sub-headings, in the
    order the model wrote them.
    """
    section = extract_section(report, FINDINGS_HEADING)
    findings: List[LayerFinding] = []
    label = level = None
    body: List[str] = []

    def flush():
        if label is not None:
            findings.append(LayerFinding(layer_label=label, body="\n".join(body).strip()))

    lines = section.splitlines()
    headings = {idx: (depth, text) for idx, depth, text in _iter_headings(lines)}
    for idx, line in enumerate(lines):
        if idx in headings:
            depth, text = headings[idx]
            if _LAYER_RE.search(text):
                flush()
                label, level, body = _clean_label(text), depth, []
                continue
            if label is not None and depth <= level:
                flush()
                label, level, body = None, None, []
                continue
        if label is not None:
            body.append(line)
    flush()
    return findings


# ---------- Remediation plan ----------
def _split_blocks(section: str) -> List[Tuple[str, List[str]]]:
    """
    Cut the remediation section into (marker id, lines) blocks, one per R-<n>
    marker. A 'Violation ID: R-001' line directly under an 'R-001' header
    belongs to the same block.
    """
    blocks: List[Tuple[str, List[str]]] = []
    current_id, has_id_field = None, False
    for line in section.splitlines():
        m = _MARKER_RE.match(line)
        if m:
            vid, is_field = m.group(2).upper(), bool(m.group(1))
            if not (vid == current_id and is_field and not has_id_field):
                blocks.append((vid, []))
                current_id, has_id_field = vid, False
            has_id_field = has_id_field or is_field
        if blocks:
            blocks[-1][1].append(line)
    return blocks


def _normalise_key(key: str) -> str:
    key = re.sub(r"\s+", " ", key.strip(" *_").lower())
    return key[4:] if key.startswith("the ") else key


def _clean_value(value: str) -> str:
    return value.strip().strip("*_").strip()


def _read_fix(value: str, lines: List[str], i: int) -> Tuple[str, int]:
    """
    Read the Recommended Fix starting at ``value`` (the text after the label).
    A fenced block is captured verbatim up to its closing fence; the language
    hint on the opening fence is dropped. Returns (fix text, next line index).
    """
    fence = _FENCE_RE.match(value)
    if fence is None and not value:
        j = i
        while j < len(lines) and not lines[j].strip():
            j += 1
        if j < len(lines):
            fence = _FENCE_RE.match(lines[j])
            if fence is None:
                return _read_bare_fix(lines, j)
            i = j + 1
    if fence is None:
        return value.strip("`").strip(), i

    marker, rest = fence.group(1), fence.group(2).strip()
    if marker in rest:
        return rest[:rest.index(marker)].strip(), i

    closing = re.compile(re.escape(marker[0]) + "{%d,}" % len(marker))
    captured = []
    if rest and not _HINT_RE.fullmatch(rest):
        captured.append(rest)
    while i < len(lines):
        line = lines[i]
        i += 1
        if closing.fullmatch(line.strip()):
            break
        captured.append(line)
    return textwrap.dedent("\n".join(captured)).strip(), i


def _is_field_line(line: str) -> bool:
    m = _FIELD_RE.match(_LEAD_RE.sub("", line))
    return m is not None and _normalise_key(m.group(1)) in _FIELD_ALIASES


def _read_bare_fix(lines: List[str], i: int) -> Tuple[str, int]:
    """Unfenced command lines under the label, up to the next field label or the end of the block."""
    captured = []
    while i < len(lines):
        line = lines[i]
        if _is_field_line(line) or _HEADING_RE.match(line) or _RULE_RE.match(line):
            break
        captured.append(line)
        i += 1
    return textwrap.dedent("\n".join(captured)).strip(), i


def _parse_block(marker_id: str, lines: List[str]) -> RemediationItem | None:
    fields = {}
    i = 0
    while i < len(lines):
        line = lines[i]
        i += 1
        m = _FIELD_RE.match(_LEAD_RE.sub("", line))
        if not m:
            continue
        key = _FIELD_ALIASES.get(_normalise_key(m.group(1)))
        if key is None or key in fields:
            continue
        value = _clean_value(m.group(2))
        if key == "fix":
            value, i = _read_fix(value, lines, i)
        fields[key] = value

    if not fields.get("violation_id"):
        fields["violation_id"] = marker_id
    if not all(fields.get(f) for f in REQUIRED_FIELDS):
        return None
    try:
        return RemediationItem(**fields)
    except ValidationError:
        return None


def parse_remediation_plan(report: str) -> Tuple[List[RemediationItem], int]:
    """Return (complete remediation items, number of blocks dropped as incomplete)."""
    section = extract_section(report, REMEDIATION_HEADING)
    if not section:
        return [], 0

    items: List[RemediationItem] = []
    dropped = 0
    for marker_id, lines in _split_blocks(section):
        item = _parse_block(marker_id, lines)
        if item is None:
            dropped += 1
            logger.debug("remediation_block_dropped", marker=marker_id)
        else:
            items.append(item)
    return items, dropped


# ---------- Counting ----------
def count_violations_by_layer(items: Iterable[RemediationItem]) -> ViolationCounts:
    """Bucket items by OSI layer. '7' is checked first, then '4', then '3'."""
    counts = ViolationCounts()
    for item in items or []:
        layer = item.osi_layer or ""
        if "7" in layer:
            counts.layer7 += 1
        elif "4" in layer:
            counts.layer4 += 1
        elif "3" in layer:
            counts.layer3 += 1
    return counts


# ---------- Public entrypoint ----------
def parse_report(report: str) -> ParsedReport:
    report = report or ""
    summary, risk = parse_executive_summary(report)
    items, dropped = parse_remediation_plan(report)
    return ParsedReport(
        executive_summary=summary,
        risk_level=risk,
        layer_findings=parse_layer_findings(report),
        remediation_items=items,
        dropped_remediation_blocks=dropped,
    )

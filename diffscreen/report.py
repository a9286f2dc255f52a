"""Report assembly and console rendering."""

from __future__ import annotations

import textwrap
from collections.abc import Iterable

from diffscreen.models import FileFindings, FindingKind, ReviewReport, ValidatedFinding

REPORT_WIDTH = 88
NO_FINDINGS_MESSAGE = "No issues found."

_COLORS = {
    FindingKind.ISSUE: "\x1b[38;5;196m",  # Red
    FindingKind.SUGGESTION: "\x1b[38;5;34m",  # Green
}
_RESET = "\x1b[0m"


def group_findings(findings: Iterable[ValidatedFinding]) -> list[FileFindings]:
    """Group findings by file in first-seen order, each group by line number.

    ``findings`` must be in arrival order; ties on a line keep that order.
    """
    groups: dict[str, FileFindings] = {}
    for finding in findings:
        groups.setdefault(finding.file_path, FileFindings(finding.file_path))
        groups[finding.file_path].findings.append(finding)
    for group in groups.values():
        group.findings.sort(key=lambda f: f.line_number)
    return list(groups.values())


def _wrap(text: str) -> str:
    paragraphs = [p.strip() for p in text.strip().splitlines()]
    return "\n".join(
        textwrap.fill(p, width=REPORT_WIDTH) if p else "" for p in paragraphs
    )


def render_finding(finding: ValidatedFinding, color: bool = False) -> str:
    """Render one finding as a kind/location line, a line: field and the text."""
    label = f"[{finding.kind}]"
    explanation = _wrap(finding.explanation)
    if color:
        label = f"{_COLORS[finding.kind]}{label}{_RESET}"
        explanation = f"{_COLORS[finding.kind]}{explanation}{_RESET}"
    indent = " " * (len(str(finding.kind)) + 2)
    return "\n".join(
        [
            f"{label} in: {finding.file_path}:{finding.line_number}",
            f"{indent} line: {finding.line_text.strip()}",
            explanation,
        ]
    )


def render_report(report: ReviewReport, color: bool = False) -> str:
    """Render the full console report. Pure: same report, same text."""
    title = f"Code Review Results [${report.cost:.2f}]"
    parts = [title, "=" * len(title), ""]

    blocks = [
        render_finding(finding, color=color)
        for group in report.files
        for finding in group.findings
    ]
    if blocks:
        parts.append("\n\n".join(blocks))
    else:
        parts.append(NO_FINDINGS_MESSAGE)

    return "\n".join(parts) + "\n"

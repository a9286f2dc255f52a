"""Line re-anchoring: tie model findings to real lines of the diff.

The model sees numbered diff lines but may drift or invent numbers while it
writes. A finding is only kept when it can be matched to an added or context
line of a file in the diff; the number and text reported to the user are
always taken from that line, never from the model.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from diffscreen.diff_parser import DiffFile, DiffLine
from diffscreen.exceptions import AnchorMismatch
from diffscreen.models import AnchorMatch, RawFinding, ValidatedFinding

logger = logging.getLogger(__name__)

_PATH_PREFIXES = ("./", "a/", "b/")


@dataclass
class AnchorResult:
    findings: list[ValidatedFinding] = field(default_factory=list)
    mismatches: list[AnchorMismatch] = field(default_factory=list)


def _text_variants(text: str) -> set[str]:
    """Comparable forms of a quoted line: stripped, and without a diff marker."""
    stripped = text.strip()
    variants = {stripped}
    if stripped.startswith("+") and len(stripped) > 1:
        variants.add(stripped[1:].strip())
    return variants


def _same_text(line: DiffLine, quoted: str) -> bool:
    return line.text.strip() in _text_variants(quoted)


def resolve_file(path: str, files: dict[str, DiffFile]) -> Optional[DiffFile]:
    """Find the diff file a reported path refers to."""
    if path in files:
        return files[path]
    for prefix in _PATH_PREFIXES:
        if path.startswith(prefix) and path[len(prefix) :] in files:
            return files[path[len(prefix) :]]
    return None


def anchor_finding(raw: RawFinding, diff_file: DiffFile) -> ValidatedFinding | AnchorMismatch:
    """Match one finding against the added and context lines of its file."""
    lines = diff_file.anchorable_lines()
    by_number = {l.new_line: l for l in lines}

    def validated(line: DiffLine, match: AnchorMatch) -> ValidatedFinding:
        return ValidatedFinding(
            kind=raw.kind,
            file_path=diff_file.path,
            line_number=line.new_line,
            line_text=line.text,
            explanation=raw.explanation,
            match=match,
            order=(raw.unit_index, raw.position),
        )

    def mismatch(reason: str) -> AnchorMismatch:
        return AnchorMismatch(diff_file.path, raw.line_number, raw.line_text, reason)

    if raw.line_number is not None:
        line = by_number.get(raw.line_number)
        if line is not None and (raw.line_text is None or _same_text(line, raw.line_text)):
            return validated(line, AnchorMatch.LINE)

    if raw.line_text is None:
        return mismatch(f"line {raw.line_number} is not an added or context line")

    candidates = [l for l in lines if _same_text(l, raw.line_text)]
    if len(candidates) == 1:
        return validated(candidates[0], AnchorMatch.TEXT)
    if not candidates:
        return mismatch("no added or context line has the quoted text")
    return mismatch(f"quoted text matches {len(candidates)} lines")


def anchor_findings(raw_findings: list[RawFinding], files: list[DiffFile]) -> AnchorResult:
    """Resolve raw findings against the given diff files.

    Findings whose file is not among ``files`` or whose line cannot be
    matched unambiguously are dropped and recorded as mismatches.
    """
    result = AnchorResult()
    by_path = {f.path: f for f in files if f.hunks}

    for raw in raw_findings:
        diff_file = resolve_file(raw.file_path, by_path)
        if diff_file is None:
            outcome: ValidatedFinding | AnchorMismatch = AnchorMismatch(
                raw.file_path, raw.line_number, raw.line_text, "file is not in the diff"
            )
        else:
            outcome = anchor_finding(raw, diff_file)

        if isinstance(outcome, ValidatedFinding):
            result.findings.append(outcome)
        else:
            logger.debug("Dropped finding %s", outcome)
            result.mismatches.append(outcome)

    return result

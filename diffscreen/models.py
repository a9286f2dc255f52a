"""Data models for review findings and the final report."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from diffscreen.cost import Usage
from diffscreen.exceptions import ResponseParseWarning


class FindingKind(str, Enum):
    """The two labels a finding may carry."""

    ISSUE = "Issue"
    SUGGESTION = "Suggestion"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def normalize(cls, label: object) -> Optional["FindingKind"]:
        """Map a free-text label to a kind, ignoring case and whitespace."""
        if not isinstance(label, str):
            return None
        wanted = label.strip().casefold()
        for kind in cls:
            if kind.value.casefold() == wanted:
                return kind
        return None


class AnchorMatch(str, Enum):
    """How a finding was tied to a diff line."""

    LINE = "line"  # declared line number (and text, when quoted) agreed
    TEXT = "text"  # unique text match after the line number failed

    def __str__(self) -> str:
        return self.value


@dataclass
class RawFinding:
    """A finding as the model reported it. Nothing here is trusted yet."""

    kind: FindingKind
    file_path: str
    explanation: str
    line_number: Optional[int] = None
    line_text: Optional[str] = None
    unit_index: int = 0
    position: int = 0


@dataclass(frozen=True)
class ValidatedFinding:
    """A finding tied to a real added or context line of the diff.

    ``line_number`` and ``line_text`` are copied from the matched DiffLine.
    """

    kind: FindingKind
    file_path: str
    line_number: int
    line_text: str
    explanation: str
    match: AnchorMatch
    order: tuple[int, int] = (0, 0)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["kind"] = str(self.kind)
        d["match"] = str(self.match)
        del d["order"]
        return d


@dataclass
class FileFindings:
    """All findings for one file, ordered by line number."""

    file_path: str
    findings: list[ValidatedFinding] = field(default_factory=list)


@dataclass
class ReviewReport:
    """Complete review report containing all findings."""

    files: list[FileFindings] = field(default_factory=list)
    unit_count: int = 0
    failed_units: list[int] = field(default_factory=list)
    warnings: list[ResponseParseWarning] = field(default_factory=list)
    dropped_count: int = 0
    usage: Usage = field(default_factory=Usage)
    cost: float = 0.0
    diff_stats: Optional[dict] = None
    reviewed_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    @property
    def findings(self) -> list[ValidatedFinding]:
        return [f for group in self.files for f in group.findings]

    @property
    def issue_count(self) -> int:
        return sum(1 for f in self.findings if f.kind == FindingKind.ISSUE)

    @property
    def suggestion_count(self) -> int:
        return sum(1 for f in self.findings if f.kind == FindingKind.SUGGESTION)

    def to_dict(self) -> dict:
        return {
            "stats": {
                "issues": self.issue_count,
                "suggestions": self.suggestion_count,
                "total": len(self.findings),
                "units": self.unit_count,
                "failed_units": self.failed_units,
                "parse_warnings": len(self.warnings),
                "dropped": self.dropped_count,
            },
            "files": [
                {
                    "file": group.file_path,
                    "findings": [f.to_dict() for f in group.findings],
                }
                for group in self.files
            ],
            "usage": self.usage.to_dict(),
            "cost": round(self.cost, 6),
            "reviewed_at": self.reviewed_at,
            "diff_stats": self.diff_stats,
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

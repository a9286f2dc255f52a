"""Error taxonomy for diffscreen.

Fatal conditions are exceptions. Per-entry problems found while reading the
model's reply or anchoring its findings are plain records: they are logged
and collected on the report, never raised.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


class DiffscreenError(RuntimeError):
    """Base class for errors that abort a review run."""


class ConfigError(DiffscreenError):
    """An environment variable or CLI option has an unusable value."""


class GitError(DiffscreenError):
    """A git command failed or the base revision could not be resolved."""


class DiffDecodeError(DiffscreenError):
    """The diff produced by git is not valid UTF-8."""


class MalformedDiff(DiffscreenError):
    """The diff text cannot be parsed.

    Args:
        line_no: 1-based line number in the diff text (0 when unknown)
        line: The offending line, verbatim
        reason: Human-readable explanation
    """

    def __init__(self, line_no: int, line: str, reason: str):
        super().__init__(f"Malformed diff at line {line_no}: {reason}: {line!r}")
        self.line_no = line_no
        self.line = line
        self.reason = reason


class TransportFailure(DiffscreenError):
    """The call to the model service failed."""

    def __init__(self, message: str, unit_index: Optional[int] = None):
        super().__init__(message)
        self.unit_index = unit_index


@dataclass(frozen=True)
class ResponseParseWarning:
    """A single entry of a model reply was malformed and dropped."""

    unit_index: int
    message: str
    entry: Any = None

    def __str__(self) -> str:
        return f"unit {self.unit_index}: {self.message}"


@dataclass(frozen=True)
class AnchorMismatch:
    """A finding did not correspond to an added or context line of the diff."""

    file_path: str
    line_number: Optional[int]
    line_text: Optional[str]
    reason: str

    def __str__(self) -> str:
        return f"{self.file_path}:{self.line_number} ({self.reason})"

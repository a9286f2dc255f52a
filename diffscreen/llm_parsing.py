"""LLM response parsing: extract raw findings from JSON/partial responses."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from diffscreen.exceptions import ResponseParseWarning
from diffscreen.models import FindingKind, RawFinding

logger = logging.getLogger(__name__)

# Accepted spellings for each field, first match wins
_KIND_KEYS = ("kind", "comment_type", "type")
_FILE_KEYS = ("file", "in", "file_path", "path")
_LINE_NUMBER_KEYS = ("line_number", "line_no", "lineNumber")
_LINE_TEXT_KEYS = ("line", "line_text", "code")
_EXPLANATION_KEYS = ("explanation", "comment", "message", "description")

_LIST_KEYS = ("findings", "comments")

_DIGITS_RE = re.compile(r"^\s*L?(\d+)\s*$")

_decoder = json.JSONDecoder()


@dataclass
class ParsedResponse:
    """Findings that passed the structural checks, plus what was dropped."""

    findings: list[RawFinding] = field(default_factory=list)
    warnings: list[ResponseParseWarning] = field(default_factory=list)


def _strip_code_fence(text: str) -> str:
    """Strip markdown code fences (```...```) from LLM response text.

    Only strips the closing fence if an opening fence was also found.
    """
    cleaned = text.strip()

    had_opening = False
    if cleaned.startswith("```"):
        had_opening = True
        newline_pos = cleaned.find("\n")
        if newline_pos == -1:
            return ""
        cleaned = cleaned[newline_pos + 1 :]

    if had_opening and cleaned.endswith("```"):
        cleaned = cleaned[:-3].rstrip()

    return cleaned


def _first(entry: dict, keys: tuple[str, ...]) -> Any:
    for key in keys:
        if key in entry and entry[key] is not None:
            return entry[key]
    return None


def _as_line_number(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, float) and value.is_integer():
        return int(value) if value > 0 else None
    if isinstance(value, str):
        m = _DIGITS_RE.match(value)
        if m and int(m.group(1)) > 0:
            return int(m.group(1))
    return None


def _finding_from_dict(entry: Any, unit_index: int, position: int) -> RawFinding:
    """Convert one reply entry into a RawFinding.

    Raises:
        ValueError: If the entry is missing a required field or has an
            unknown kind
    """
    if not isinstance(entry, dict):
        raise ValueError(f"entry is {type(entry).__name__}, not an object")

    raw_kind = _first(entry, _KIND_KEYS)
    if raw_kind is None:
        raise ValueError("missing kind")
    kind = FindingKind.normalize(raw_kind)
    if kind is None:
        raise ValueError(f"unrecognised kind {raw_kind!r}")

    file_path = _first(entry, _FILE_KEYS)
    if not isinstance(file_path, str) or not file_path.strip():
        raise ValueError("missing file")

    explanation = _first(entry, _EXPLANATION_KEYS)
    if not isinstance(explanation, str) or not explanation.strip():
        raise ValueError("missing explanation")

    raw_number = _first(entry, _LINE_NUMBER_KEYS)
    line_number = _as_line_number(raw_number)
    if raw_number is not None and line_number is None:
        raise ValueError(f"line number {raw_number!r} is not a positive integer")
    line_text = _first(entry, _LINE_TEXT_KEYS)
    if not isinstance(line_text, str):
        # Some replies put the number under "line"
        if line_number is None:
            line_number = _as_line_number(line_text)
        line_text = None
    elif not line_text.strip():
        line_text = None

    if line_number is None and line_text is None:
        raise ValueError("missing line number and line text")

    return RawFinding(
        kind=kind,
        file_path=file_path.strip(),
        explanation=explanation.strip(),
        line_number=line_number,
        line_text=line_text,
        unit_index=unit_index,
        position=position,
    )


def _looks_like_finding(obj: Any) -> bool:
    return isinstance(obj, dict) and any(k in obj for k in _KIND_KEYS) and any(
        k in obj for k in _FILE_KEYS
    )


def _salvage_findings_from_partial_json(text: str) -> list[dict]:
    """Extract complete finding objects from a partial/truncated JSON response.

    Tries to decode an object at every ``{`` and keeps the ones that carry
    finding-like keys, skipping past each object it accepts.
    """
    findings: list[dict] = []
    i = text.find("{")
    while i != -1:
        try:
            obj, end = _decoder.raw_decode(text, i)
        except json.JSONDecodeError:
            i = text.find("{", i + 1)
            continue
        if _looks_like_finding(obj):
            findings.append(obj)
            i = text.find("{", end)
        else:
            i = text.find("{", i + 1)
    return findings


def _entries_from_payload(
    data: Any, unit_index: int, warnings: list[ResponseParseWarning]
) -> list[Any]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in _LIST_KEYS:
            if key in data:
                entries = data[key]
                if isinstance(entries, list):
                    return entries
                warnings.append(
                    ResponseParseWarning(
                        unit_index, f"'{key}' is not a list", entries
                    )
                )
                return []
        if _looks_like_finding(data):
            return [data]
    warnings.append(
        ResponseParseWarning(unit_index, "reply has no findings list", data)
    )
    return []


def parse_review_response(response_text: str, unit_index: int = 0) -> ParsedResponse:
    """Parse the model's reply for one review unit.

    Malformed entries are dropped one at a time, each with a
    ResponseParseWarning; the rest of the reply is still used. A reply that
    is not JSON at all has complete finding objects salvaged from it.
    """
    result = ParsedResponse()
    cleaned = _strip_code_fence(response_text)
    if not cleaned:
        logger.warning("Empty reply for unit %d", unit_index)
        return result

    try:
        data = json.loads(cleaned)
        entries = _entries_from_payload(data, unit_index, result.warnings)
    except json.JSONDecodeError as e:
        entries = _salvage_findings_from_partial_json(cleaned)
        message = f"reply is not valid JSON ({e}); salvaged {len(entries)} entries"
        result.warnings.append(ResponseParseWarning(unit_index, message))

    for position, entry in enumerate(entries):
        try:
            result.findings.append(_finding_from_dict(entry, unit_index, position))
        except ValueError as e:
            result.warnings.append(ResponseParseWarning(unit_index, str(e), entry))

    for warning in result.warnings:
        logger.warning("Dropped reply content: %s", warning)

    return result

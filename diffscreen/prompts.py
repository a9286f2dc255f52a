"""System prompt and per-unit request builder."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from diffscreen.chunking import ReviewUnit
from diffscreen.config import KIND_DESCRIPTIONS, PERSONA, PERSONA_TRAITS, Settings
from diffscreen.diff_parser import DiffLine


# ── Shared persona preamble ──────────────────────────────────────────────────

_TRAITS_BLOCK = "\n".join(f"- {t}" for t in PERSONA_TRAITS)

_KINDS_BLOCK = "\n".join(f"- {k}: {d}" for k, d in KIND_DESCRIPTIONS.items())

REVIEW_PERSONA = f"""{PERSONA}

Your traits:
{_TRAITS_BLOCK}"""

# Appended to every system prompt, including user-supplied ones, so the
# reply stays machine-readable
RESPONSE_SCHEMA = f"""You must respond ONLY with valid JSON. No markdown, no commentary outside the JSON structure.

Each finding has exactly one kind:
{_KINDS_BLOCK}

Every diff line you are shown is prefixed with its line number in the new
version of the file, then a marker: "+" for an added line, " " for an
unchanged context line, "-" for a removed line (removed lines have no number).
Only comment on numbered lines. Removed lines no longer exist.

Respond with this exact JSON structure:
{{
  "findings": [
    {{
      "kind": "Issue|Suggestion",
      "file": "path/to/file as given in the diff",
      "line_number": 42,
      "line": "the full text of that line, copied exactly, without the number or marker",
      "explanation": "One or two sentences explaining the problem"
    }}
  ]
}}

If there is nothing worth reporting, respond with {{"findings": []}}."""

REVIEW_DIFF_SYSTEM = f"""{REVIEW_PERSONA}

{RESPONSE_SCHEMA}"""


@dataclass(frozen=True)
class ReviewRequest:
    """Everything needed for one model call."""

    system_prompt: str
    user_message: str
    max_tokens: int
    temperature: float
    tool: str = "review_diff"


def build_system_prompt(custom_prompt: Optional[str] = None) -> str:
    """The default system prompt, or a custom one with the schema appended."""
    if custom_prompt and custom_prompt.strip():
        return f"{custom_prompt.strip()}\n\n{RESPONSE_SCHEMA}"
    return REVIEW_DIFF_SYSTEM


def _number_width(unit: ReviewUnit) -> int:
    last = max((h.new_start + h.new_count for h in unit.hunks), default=1)
    return max(len(str(last)), 4)


def _format_line(line: DiffLine, width: int) -> str:
    number = str(line.new_line) if line.new_line is not None else ""
    return f"{number:>{width}} {line.kind.marker}{line.text}"


def build_review_message(unit: ReviewUnit) -> str:
    """Build the user message for one review unit."""
    width = _number_width(unit)
    parts = [f"## File: {unit.file_path}\n"]
    if unit.file.is_new:
        parts.append("(new file)\n")
    elif unit.file.is_renamed and unit.file.old_path:
        parts.append(f"(renamed from {unit.file.old_path})\n")

    body: list[str] = []
    for hunk in unit.hunks:
        body.append(hunk.header_line)
        body.extend(_format_line(line, width) for line in hunk.lines)
    parts.append("```diff\n" + "\n".join(body) + "\n```\n")

    parts.append(
        "Review the numbered lines above. "
        "Return ONLY the JSON structure specified in your instructions."
    )
    return "\n".join(parts)


def build_review_request(unit: ReviewUnit, settings: Settings) -> ReviewRequest:
    """Build the model request for one review unit.

    Pure function of the unit and the settings: no timestamps, no randomness.
    """
    return ReviewRequest(
        system_prompt=build_system_prompt(settings.system_prompt),
        user_message=build_review_message(unit),
        max_tokens=settings.max_tokens,
        temperature=settings.temperature,
        tool=f"review_diff[{unit.index}]",
    )

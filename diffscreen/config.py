"""Configuration for the diff screener."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from diffscreen.exceptions import ConfigError

# ── Persona ──────────────────────────────────────────────────────────────────
PERSONA = """You are a code reviewer doing a last sanity pass over a change-set before a human looks at it.
The code you are shown already compiles and passes its tests.
You only see a diff: the sections that changed plus some surrounding context.
Variables and functions may be used without their definitions being visible."""

PERSONA_TRAITS = [
    "Surface-level: look for leftover debug output, typos, obvious mistakes",
    "Precise: every finding points at one line of the diff",
    "Brief: one or two sentences per finding",
    "Quiet: report nothing rather than guess",
]

# ── Finding kinds ────────────────────────────────────────────────────────────
KIND_DESCRIPTIONS = {
    "Issue": "Problems with the code that are not purely stylistic: wrong logic, "
    "leftover debug statements, misleading names, missing error handling.",
    "Suggestion": "Improvements worth considering: simpler constructs, clearer naming, "
    "comments that restate the code and could be removed.",
}

# ── Git ──────────────────────────────────────────────────────────────────────
# Candidates tried in order when no base revision is given
DEFAULT_BASE_CANDIDATES = ["origin/main", "origin/master", "main", "master"]

# Lines of context around each change; gives the model something to read
DIFF_CONTEXT_LINES = 30

# ── Server Config ────────────────────────────────────────────────────────────
SERVER_NAME = "diffscreen-mcp"
SERVER_VERSION = "0.1.0"
SERVER_HOST = "127.0.0.1"
SERVER_PORT = 8088

# ── Bedrock Config ───────────────────────────────────────────────────────────
BEDROCK_PROFILE: Optional[str] = None
BEDROCK_REGION = "eu-west-1"
BEDROCK_MODEL_ID = "eu.anthropic.claude-sonnet-4-6"
BEDROCK_MAX_TOKENS = 8192
BEDROCK_TEMPERATURE = 0.0

# ── Diff Chunking ────────────────────────────────────────────────────────────
# Max chars of diff text per LLM call (~4 chars per token, leaves room for
# system prompt and response tokens)
DIFF_CHUNK_MAX_CHARS = 24_000

# Concurrent model calls, one per review unit
MAX_CONCURRENCY = 4


def _read_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def _read_str(name: str, default: Optional[str]) -> Optional[str]:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip()


@dataclass(frozen=True)
class Settings:
    """Run configuration, read once at start-up and never mutated."""

    base: Optional[str] = None
    max_unit_chars: int = DIFF_CHUNK_MAX_CHARS
    context_lines: int = DIFF_CONTEXT_LINES
    max_concurrency: int = MAX_CONCURRENCY
    model_id: str = BEDROCK_MODEL_ID
    aws_profile: Optional[str] = BEDROCK_PROFILE
    aws_region: str = BEDROCK_REGION
    max_tokens: int = BEDROCK_MAX_TOKENS
    temperature: float = BEDROCK_TEMPERATURE
    system_prompt: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from DIFFSCREEN_* environment variables.

        Raises:
            ConfigError: If a numeric variable is not a positive integer
        """
        return cls(
            base=_read_str("DIFFSCREEN_BASE", None),
            max_unit_chars=_read_int("DIFFSCREEN_MAX_UNIT_CHARS", DIFF_CHUNK_MAX_CHARS),
            context_lines=_read_int(
                "DIFFSCREEN_CONTEXT_LINES", DIFF_CONTEXT_LINES, minimum=0
            ),
            max_concurrency=_read_int("DIFFSCREEN_CONCURRENCY", MAX_CONCURRENCY),
            model_id=_read_str("DIFFSCREEN_MODEL_ID", BEDROCK_MODEL_ID)
            or BEDROCK_MODEL_ID,
            aws_profile=_read_str("DIFFSCREEN_AWS_PROFILE", BEDROCK_PROFILE),
            aws_region=_read_str("DIFFSCREEN_AWS_REGION", BEDROCK_REGION)
            or BEDROCK_REGION,
            max_tokens=_read_int("DIFFSCREEN_MAX_TOKENS", BEDROCK_MAX_TOKENS),
        )

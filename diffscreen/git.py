"""Obtain the diff under review from git."""

from __future__ import annotations

import logging
import subprocess
from typing import Optional

from diffscreen.config import DEFAULT_BASE_CANDIDATES, DIFF_CONTEXT_LINES
from diffscreen.exceptions import DiffDecodeError, GitError

logger = logging.getLogger(__name__)


def _git(*args: str) -> subprocess.CompletedProcess:
    try:
        return subprocess.run(["git", *args], capture_output=True)
    except OSError as e:
        raise GitError(f"Failed to run git: {e}") from e


def resolve_base(against: Optional[str] = None) -> str:
    """Commit to diff against.

    With ``against`` the revision is verified and used as is. Otherwise the
    merge base of HEAD with the first default branch that exists.
    """
    if against:
        result = _git("rev-parse", "--verify", "--quiet", f"{against}^{{commit}}")
        if result.returncode != 0:
            raise GitError(f"Invalid git revision: {against}")
        return against

    for candidate in DEFAULT_BASE_CANDIDATES:
        result = _git("merge-base", candidate, "HEAD")
        merge_base = result.stdout.decode("utf-8", errors="replace").strip()
        if result.returncode == 0 and merge_base:
            logger.info("Diffing against merge base %s of %s", merge_base, candidate)
            return merge_base

    raise GitError(
        "Failed to find a merge base with any of: " + ", ".join(DEFAULT_BASE_CANDIDATES)
    )


def get_changes(against: Optional[str] = None, context_lines: int = DIFF_CONTEXT_LINES) -> str:
    """Unified diff between the base revision and HEAD.

    Returns an empty string when there are no changes.

    Raises:
        GitError: If git fails or no base revision can be found
        DiffDecodeError: If the diff is not valid UTF-8
    """
    base = resolve_base(against)
    result = _git("diff", "--no-color", "--no-ext-diff", f"-U{context_lines}", base, "HEAD")
    if result.returncode != 0:
        stderr = result.stderr.decode("utf-8", errors="replace").strip()
        raise GitError(f"`git diff` failed with status {result.returncode}: {stderr}")

    try:
        return result.stdout.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DiffDecodeError(
            f"Diff is not valid UTF-8 at byte {e.start}: {e.reason}"
        ) from e

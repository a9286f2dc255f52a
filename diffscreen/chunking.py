"""Diff chunking: split parsed diffs into per-file review units."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from diffscreen.config import DIFF_CHUNK_MAX_CHARS
from diffscreen.diff_parser import DiffFile, DiffHunk

logger = logging.getLogger(__name__)

# Estimated chars for the file header lines that precede a unit's hunks
UNIT_HEADER_CHARS = 200


@dataclass(frozen=True)
class ReviewUnit:
    """A run of consecutive hunks from one file, sent as one model request."""

    index: int
    file: DiffFile
    hunks: tuple[DiffHunk, ...]

    @property
    def file_path(self) -> str:
        return self.file.path

    @property
    def char_size(self) -> int:
        return UNIT_HEADER_CHARS + sum(h.char_size for h in self.hunks)

    @property
    def reviewable(self) -> bool:
        """False when every line is a removal, so no finding could anchor."""
        return any(l.anchorable for h in self.hunks for l in h.lines)

    def oversized(self, max_chars: int) -> bool:
        return self.char_size > max_chars

    def describe(self) -> dict:
        return {
            "index": self.index,
            "file": self.file_path,
            "hunks": len(self.hunks),
            "chars": self.char_size,
            "reviewable": self.reviewable,
            "new_lines": [
                f"{h.new_start}-{h.new_start + max(h.new_count, 1) - 1}"
                for h in self.hunks
            ],
        }


def chunk_files(
    files: list[DiffFile], max_unit_chars: int = DIFF_CHUNK_MAX_CHARS
) -> list[ReviewUnit]:
    """Split parsed diff files into review units that fit the size budget.

    Hunks of one file are packed greedily, in order, into units of at most
    ``max_unit_chars``. Units never span files. A hunk that is larger than the
    budget on its own becomes a single oversized unit; it is never split or
    dropped. Files without hunks produce no unit.
    """
    units: list[ReviewUnit] = []

    for f in files:
        current: list[DiffHunk] = []
        current_chars = UNIT_HEADER_CHARS

        for hunk in f.hunks:
            hunk_chars = hunk.char_size
            if current and current_chars + hunk_chars > max_unit_chars:
                units.append(ReviewUnit(len(units), f, tuple(current)))
                current = []
                current_chars = UNIT_HEADER_CHARS
            current.append(hunk)
            current_chars += hunk_chars

        if current:
            units.append(ReviewUnit(len(units), f, tuple(current)))

    for unit in units:
        if unit.oversized(max_unit_chars):
            logger.warning(
                "Review unit %d (%s) is %d chars, over the %d char budget; "
                "sending it whole",
                unit.index,
                unit.file_path,
                unit.char_size,
                max_unit_chars,
            )

    return units

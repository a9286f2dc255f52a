"""Diff parsing: unified diff to structured DiffFile/DiffHunk objects."""

from __future__ import annotations

import codecs
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from diffscreen.exceptions import MalformedDiff

logger = logging.getLogger(__name__)

HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@ ?(.*)$")
_GIT_HEADER_QUOTED_RE = re.compile(
    r'^diff --git ("(?:[^"\\]|\\.)*"|\S+) ("(?:[^"\\]|\\.)*"|\S+)$'
)

# Header lines that carry no information we need
_IGNORED_PREFIXES = (
    "index ",
    "old mode ",
    "new mode ",
    "similarity index ",
    "dissimilarity index ",
)


class LineKind(str, Enum):
    """How a diff line relates the old and new versions of a file."""

    ADDED = "added"
    REMOVED = "removed"
    CONTEXT = "context"

    def __str__(self) -> str:
        return self.value

    @property
    def marker(self) -> str:
        return {"added": "+", "removed": "-", "context": " "}[self.value]


@dataclass(frozen=True)
class DiffLine:
    """A single line of a hunk body."""

    kind: LineKind
    text: str
    old_line: Optional[int] = None
    new_line: Optional[int] = None

    @property
    def anchorable(self) -> bool:
        # Removed lines no longer exist on the reviewed branch
        return self.kind is not LineKind.REMOVED

    @property
    def line_number(self) -> Optional[int]:
        return self.new_line

    def render(self) -> str:
        return f"{self.kind.marker}{self.text}"


@dataclass
class DiffHunk:
    """A single hunk from a unified diff."""

    file_path: str
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    header: str
    lines: list[DiffLine] = field(default_factory=list)

    @property
    def header_line(self) -> str:
        text = (
            f"@@ -{self.old_start},{self.old_count} "
            f"+{self.new_start},{self.new_count} @@"
        )
        return f"{text} {self.header}" if self.header else text

    @property
    def added_lines(self) -> list[tuple[int, str]]:
        return [(l.new_line, l.text) for l in self.lines if l.kind is LineKind.ADDED]

    @property
    def removed_lines(self) -> list[tuple[int, str]]:
        return [(l.old_line, l.text) for l in self.lines if l.kind is LineKind.REMOVED]

    @property
    def char_size(self) -> int:
        return len(self.header_line) + 1 + sum(len(l.text) + 2 for l in self.lines)

    def render(self) -> list[str]:
        return [self.header_line] + [l.render() for l in self.lines]


@dataclass
class DiffFile:
    """Parsed diff for a single file."""

    old_path: Optional[str]
    new_path: Optional[str]
    hunks: list[DiffHunk] = field(default_factory=list)
    is_new: bool = False
    is_deleted: bool = False
    is_renamed: bool = False
    is_binary: bool = False

    @property
    def path(self) -> str:
        return self.new_path or self.old_path or "<unknown>"

    @property
    def added_line_count(self) -> int:
        return sum(len(h.added_lines) for h in self.hunks)

    @property
    def removed_line_count(self) -> int:
        return sum(len(h.removed_lines) for h in self.hunks)

    def anchorable_lines(self) -> list[DiffLine]:
        """Added and context lines of every hunk, in diff order."""
        return [l for h in self.hunks for l in h.lines if l.anchorable]


def _unquote(path: str) -> str:
    """Undo git's C-style quoting of paths with special characters."""
    if len(path) >= 2 and path.startswith('"') and path.endswith('"'):
        raw = codecs.escape_decode(path[1:-1].encode("utf-8"))[0]
        return raw.decode("utf-8", errors="replace")
    return path


def _header_path(value: str, prefix: str) -> Optional[str]:
    """Path from a ---/+++ line: drop timestamps, quoting and the a/ or b/ prefix."""
    path = _unquote(value.split("\t", 1)[0].rstrip())
    if path == "/dev/null":
        return None
    return path.removeprefix(prefix)


def _git_header_paths(line: str) -> tuple[str, str]:
    """Old and new path from a ``diff --git a/x b/y`` line."""
    m = _GIT_HEADER_QUOTED_RE.match(line)
    if m:
        old, new = _unquote(m.group(1)), _unquote(m.group(2))
        return old.removeprefix("a/"), new.removeprefix("b/")

    # Unquoted paths containing spaces; both halves are equal unless renamed,
    # and renames are resolved later from the rename/---/+++ lines
    rest = line[len("diff --git ") :]
    half = (len(rest) - 1) // 2
    old, new = rest[:half], rest[half + 1 :]
    if old.startswith("a/") and new.startswith("b/") and old[2:] == new[2:]:
        return old[2:], new[2:]
    parts = rest.split()
    return parts[0].removeprefix("a/"), parts[-1].removeprefix("b/")


def parse_diff(diff_text: str) -> list[DiffFile]:
    """Parse a unified diff into structured DiffFile objects.

    Accepts ``git diff`` output as well as plain ``diff -u`` output. Files
    without hunks (pure renames, mode changes, binary files) are kept as
    hunk-less entries.

    Raises:
        MalformedDiff: If a hunk header is unparsable or a hunk body does not
            match the line counts its header declares
    """
    files: list[DiffFile] = []
    current_file: Optional[DiffFile] = None
    current_hunk: Optional[DiffHunk] = None
    old_remaining = new_remaining = 0
    old_no = new_no = 0
    minus_seen = False
    in_binary = False

    # Git separates lines with "\n" only; form feeds and lone CRs belong to the
    # line. A CRLF line ending loses its "\r".
    lines = diff_text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    lines = [line[:-1] if line.endswith("\r") else line for line in lines]
    for line_no, line in enumerate(lines, 1):
        # Hunk body: consume exactly what the header declared
        if current_hunk is not None and (old_remaining or new_remaining):
            if line.startswith("\\"):
                continue
            tag = line[:1]
            if tag == "+":
                if not new_remaining:
                    raise MalformedDiff(
                        line_no, line, "more added lines than the hunk header declares"
                    )
                current_hunk.lines.append(
                    DiffLine(LineKind.ADDED, line[1:], new_line=new_no)
                )
                new_no += 1
                new_remaining -= 1
            elif tag == "-":
                if not old_remaining:
                    raise MalformedDiff(
                        line_no, line, "more removed lines than the hunk header declares"
                    )
                current_hunk.lines.append(
                    DiffLine(LineKind.REMOVED, line[1:], old_line=old_no)
                )
                old_no += 1
                old_remaining -= 1
            elif tag in (" ", ""):
                if not (old_remaining and new_remaining):
                    raise MalformedDiff(
                        line_no, line, "more context lines than the hunk header declares"
                    )
                current_hunk.lines.append(
                    DiffLine(LineKind.CONTEXT, line[1:], old_line=old_no, new_line=new_no)
                )
                old_no += 1
                new_no += 1
                old_remaining -= 1
                new_remaining -= 1
            else:
                raise MalformedDiff(
                    line_no,
                    line,
                    f"hunk ended early, expected {old_remaining} more old and "
                    f"{new_remaining} more new line(s)",
                )
            continue

        # New file header
        if line.startswith("diff --git "):
            old_path, new_path = _git_header_paths(line)
            current_file = DiffFile(old_path=old_path, new_path=new_path)
            files.append(current_file)
            current_hunk = None
            minus_seen = False
            in_binary = False
            continue

        if in_binary:
            continue

        if line.startswith("--- "):
            if current_file is None or current_hunk is not None or minus_seen:
                # Plain `diff -u` output has no `diff --git` line
                current_file = DiffFile(old_path=None, new_path=None)
                files.append(current_file)
                current_hunk = None
            old_path = _header_path(line[4:], "a/")
            if old_path is None:
                current_file.is_new = True
            else:
                current_file.old_path = old_path
            minus_seen = True
            continue

        if line.startswith("+++ ") and current_file is not None and current_hunk is None:
            new_path = _header_path(line[4:], "b/")
            if new_path is None:
                current_file.is_deleted = True
                current_file.new_path = None
            else:
                current_file.new_path = new_path
            continue

        # Hunk header
        if line.startswith("@@"):
            if current_file is None:
                raise MalformedDiff(line_no, line, "hunk header before any file header")
            m = HUNK_HEADER_RE.match(line)
            if not m:
                raise MalformedDiff(line_no, line, "unparsable hunk header")
            old_start = int(m.group(1))
            old_count = int(m.group(2)) if m.group(2) is not None else 1
            new_start = int(m.group(3))
            new_count = int(m.group(4)) if m.group(4) is not None else 1
            current_hunk = DiffHunk(
                file_path=current_file.path,
                old_start=old_start,
                old_count=old_count,
                new_start=new_start,
                new_count=new_count,
                header=m.group(5).strip(),
            )
            current_file.hunks.append(current_hunk)
            old_no, new_no = old_start, new_start
            old_remaining, new_remaining = old_count, new_count
            continue

        if line.startswith("\\") or not line:
            continue

        if current_file is None:
            # Preamble such as a commit message
            continue

        # File metadata
        if line.startswith("new file"):
            current_file.is_new = True
            current_file.old_path = None
        elif line.startswith("deleted file"):
            current_file.is_deleted = True
            current_file.new_path = None
        elif line.startswith("rename from "):
            current_file.is_renamed = True
            current_file.old_path = _unquote(line[len("rename from ") :])
        elif line.startswith("rename to "):
            current_file.is_renamed = True
            current_file.new_path = _unquote(line[len("rename to ") :])
        elif line.startswith("copy from ") or line.startswith("copy to "):
            current_file.is_renamed = True
        elif line.startswith("Binary files "):
            current_file.is_binary = True
        elif line.startswith("GIT binary patch"):
            current_file.is_binary = True
            in_binary = True
        elif line.startswith(_IGNORED_PREFIXES):
            pass
        elif current_hunk is not None and line[:1] in ("+", "-", " "):
            raise MalformedDiff(
                line_no, line, "line outside of any hunk (hunk header count too small?)"
            )
        else:
            logger.debug("Ignoring unrecognised diff line %d: %r", line_no, line)

    if current_hunk is not None and (old_remaining or new_remaining):
        raise MalformedDiff(
            len(lines),
            lines[-1] if lines else "",
            f"diff ended inside a hunk, expected {old_remaining} more old and "
            f"{new_remaining} more new line(s)",
        )

    # Paths may have been corrected by rename/---/+++ lines after the hunks'
    # owner was first named
    for f in files:
        for hunk in f.hunks:
            hunk.file_path = f.path

    return files


def diff_stats(files: list[DiffFile]) -> dict:
    """Generate summary statistics for parsed diff files."""
    total_added = sum(f.added_line_count for f in files)
    total_removed = sum(f.removed_line_count for f in files)
    return {
        "files_changed": len(files),
        "lines_added": total_added,
        "lines_removed": total_removed,
        "new_files": [f.path for f in files if f.is_new],
        "deleted_files": [f.path for f in files if f.is_deleted],
        "renamed_files": [f.path for f in files if f.is_renamed],
        "binary_files": [f.path for f in files if f.is_binary],
    }

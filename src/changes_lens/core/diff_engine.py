"""Diff engine for turning diff text into structured working directory diffs.

This module provides two entry points:
1. parse_unified_diff: Parse `git diff` output (plain or combined) into hunks
2. compute_untracked_diff: Diff an untracked file's content against nothing

Both classify the result by size: text above ``large_diff_bytes`` is
LARGE_TEXT (still searchable), text above ``max_diff_bytes`` is UNRENDERABLE
and carries no hunks.
"""

import difflib
import re

from changes_lens.models.diff import (
    DiffHunk,
    DiffKind,
    DiffLine,
    DiffLineType,
    WorkingDirectoryDiff,
)

DEFAULT_LARGE_DIFF_BYTES = 1_000_000
DEFAULT_MAX_DIFF_BYTES = 5_000_000

# @@ -1,3 +1,4 @@ and the combined form @@@ -1,3 -1,3 +1,4 @@@
_HUNK_HEADER_RE = re.compile(r"^(@{2,}) (.*?) @{2,}")
_RANGE_RE = re.compile(r"^[-+](\d+)(?:,(\d+))?$")

_BINARY_MARKERS = ("Binary files ", "GIT binary patch")


def _classify_size(size: int, large_diff_bytes: int, max_diff_bytes: int) -> DiffKind:
    if size > max_diff_bytes:
        return DiffKind.UNRENDERABLE
    if size > large_diff_bytes:
        return DiffKind.LARGE_TEXT
    return DiffKind.TEXT


def _parse_range(token: str) -> tuple[int, int]:
    match = _RANGE_RE.match(token)
    if match is None:
        raise ValueError(f"Malformed hunk range: {token!r}")
    start = int(match.group(1))
    count = int(match.group(2)) if match.group(2) is not None else 1
    return start, count


def _parse_hunk_header(line: str) -> tuple[int, int, int, int, int] | None:
    """Parse a hunk header.

    Returns:
        (prefix_width, old_start, old_count, new_start, new_count), or None if
        the line is not a hunk header. prefix_width is the number of prefix
        columns on each body line (1 for plain diffs, one per parent for
        combined diffs). For combined diffs the first parent's range is used
        as the old range.
    """
    match = _HUNK_HEADER_RE.match(line)
    if match is None:
        return None
    prefix_width = len(match.group(1)) - 1
    ranges = match.group(2).split()
    if len(ranges) != prefix_width + 1:
        return None
    old_start, old_count = _parse_range(ranges[0])
    new_start, new_count = _parse_range(ranges[-1])
    return prefix_width, old_start, old_count, new_start, new_count


def _split_lines(text: str) -> list[str]:
    """Split on newlines only; form feeds and lone CRs stay inside the line."""
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def _classify_line(prefix: str) -> DiffLineType | None:
    if prefix.strip() == "":
        return DiffLineType.CONTEXT
    if "+" in prefix:
        return DiffLineType.ADDED
    if "-" in prefix:
        return DiffLineType.REMOVED
    return None


def parse_unified_diff(
    text: str,
    large_diff_bytes: int = DEFAULT_LARGE_DIFF_BYTES,
    max_diff_bytes: int = DEFAULT_MAX_DIFF_BYTES,
) -> WorkingDirectoryDiff:
    """Parse unified diff output into a WorkingDirectoryDiff.

    File headers (diff --git, index, ---/+++ and mode lines) are skipped;
    only hunk bodies are kept. ``\\ No newline at end of file`` markers are
    dropped.

    Args:
        text: Output of `git diff` for a single file
        large_diff_bytes: Size above which the diff is LARGE_TEXT
        max_diff_bytes: Size above which the diff is UNRENDERABLE

    Returns:
        WorkingDirectoryDiff with hunks (empty for binary/unrenderable)

    Raises:
        ValueError: If a hunk header carries a malformed line range
    """
    raw_lines = _split_lines(text)
    if any(line.startswith(_BINARY_MARKERS) for line in raw_lines):
        return WorkingDirectoryDiff(kind=DiffKind.BINARY)

    kind = _classify_size(len(text.encode("utf-8")), large_diff_bytes, max_diff_bytes)
    if kind == DiffKind.UNRENDERABLE:
        return WorkingDirectoryDiff(kind=kind)

    hunks: list[DiffHunk] = []
    header: str | None = None
    ranges: tuple[int, int, int, int] = (0, 0, 0, 0)
    prefix_width = 1
    lines: list[DiffLine] = []

    def flush() -> None:
        if header is not None:
            old_start, old_count, new_start, new_count = ranges
            hunks.append(
                DiffHunk(
                    header=header,
                    old_start=old_start,
                    old_count=old_count,
                    new_start=new_start,
                    new_count=new_count,
                    lines=tuple(lines),
                )
            )

    for raw in raw_lines:
        parsed = _parse_hunk_header(raw) if raw.startswith("@@") else None
        if parsed is not None:
            flush()
            prefix_width, old_start, old_count, new_start, new_count = parsed
            ranges = (old_start, old_count, new_start, new_count)
            header = raw
            lines = []
            continue

        if header is None or raw.startswith("\\"):
            continue

        line_type = _classify_line(raw[:prefix_width])
        if line_type is None:
            continue
        lines.append(DiffLine(type=line_type, text=raw[prefix_width:]))

    flush()
    return WorkingDirectoryDiff(kind=kind, hunks=tuple(hunks))


def compute_untracked_diff(
    content: bytes,
    path: str = "file",
    large_diff_bytes: int = DEFAULT_LARGE_DIFF_BYTES,
    max_diff_bytes: int = DEFAULT_MAX_DIFF_BYTES,
) -> WorkingDirectoryDiff:
    """Compute the diff of an untracked file against an empty file.

    Uses difflib.unified_diff() so the result goes through the same parser as
    git output. Content containing NUL bytes or failing to decode as UTF-8 is
    treated as binary.

    Args:
        content: Raw file content
        path: Path used in the diff file headers
        large_diff_bytes: Size above which the diff is LARGE_TEXT
        max_diff_bytes: Size above which the diff is UNRENDERABLE

    Returns:
        WorkingDirectoryDiff whose lines are all ADDED
    """
    if b"\x00" in content:
        return WorkingDirectoryDiff(kind=DiffKind.BINARY)
    try:
        decoded = content.decode("utf-8")
    except UnicodeDecodeError:
        return WorkingDirectoryDiff(kind=DiffKind.BINARY)

    if len(content) > max_diff_bytes:
        return WorkingDirectoryDiff(kind=DiffKind.UNRENDERABLE)

    diff_lines = difflib.unified_diff(
        [],
        _split_lines(decoded),
        fromfile="/dev/null",
        tofile=f"b/{path}",
        lineterm="",
    )
    return parse_unified_diff(
        "\n".join(diff_lines),
        large_diff_bytes=large_diff_bytes,
        max_diff_bytes=max_diff_bytes,
    )

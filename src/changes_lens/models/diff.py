"""Diff models for working directory changes.

A WorkingDirectoryDiff is an immutable, structured view of `git diff` output:
a sequence of hunks, each a sequence of lines tagged context/added/removed.
The kind discriminator tells consumers whether the lines are meaningful
(text, large_text) or absent (binary, unrenderable).
"""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class DiffKind(StrEnum):
    """Kind of diff produced for a file."""

    TEXT = "text"
    LARGE_TEXT = "large_text"
    BINARY = "binary"
    UNRENDERABLE = "unrenderable"


TEXTUAL_DIFF_KINDS = frozenset({DiffKind.TEXT, DiffKind.LARGE_TEXT})


class DiffLineType(StrEnum):
    """Type of a single line within a hunk."""

    CONTEXT = "context"
    ADDED = "added"
    REMOVED = "removed"


class DiffLine(BaseModel):
    """A single line of a hunk, without its diff prefix."""

    model_config = ConfigDict(frozen=True)

    type: DiffLineType
    text: str


class DiffHunk(BaseModel):
    """A contiguous region of changes introduced by an @@ header."""

    model_config = ConfigDict(frozen=True)

    header: str = Field(..., description="Raw hunk header line")
    old_start: int = Field(..., ge=0)
    old_count: int = Field(..., ge=0)
    new_start: int = Field(..., ge=0)
    new_count: int = Field(..., ge=0)
    lines: tuple[DiffLine, ...] = ()


class DiffSummary(BaseModel):
    """Summary statistics for a diff."""

    model_config = ConfigDict(frozen=True)

    lines_added: int = Field(..., description="Number of lines added")
    lines_removed: int = Field(..., description="Number of lines removed")
    hunks: int = Field(..., description="Number of hunks")


class WorkingDirectoryDiff(BaseModel):
    """Diff of one file between the working directory and the index."""

    model_config = ConfigDict(frozen=True)

    kind: DiffKind = DiffKind.TEXT
    hunks: tuple[DiffHunk, ...] = ()

    @property
    def is_textual(self) -> bool:
        return self.kind in TEXTUAL_DIFF_KINDS

    def contains_change(self, substring: str) -> bool:
        """Return True if a non-context line contains ``substring``.

        Binary and unrenderable diffs never match. The test is a
        case-sensitive substring test on the line text.
        """
        if not self.is_textual:
            return False
        return any(
            line.type != DiffLineType.CONTEXT and substring in line.text
            for hunk in self.hunks
            for line in hunk.lines
        )

    def summary(self) -> DiffSummary:
        added = 0
        removed = 0
        for hunk in self.hunks:
            for line in hunk.lines:
                if line.type == DiffLineType.ADDED:
                    added += 1
                elif line.type == DiffLineType.REMOVED:
                    removed += 1
        return DiffSummary(lines_added=added, lines_removed=removed, hunks=len(self.hunks))

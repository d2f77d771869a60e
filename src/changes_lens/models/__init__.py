"""Pydantic models for changes-lens."""

from .diff import (
    TEXTUAL_DIFF_KINDS,
    DiffHunk,
    DiffKind,
    DiffLine,
    DiffLineType,
    DiffSummary,
    WorkingDirectoryDiff,
)
from .status import (
    FileEntry,
    FileStatusKind,
    IncludeAllValue,
    SelectionType,
    WorkingDirectoryStatus,
    describe_file_count,
    describe_selected_count,
    get_include_all_value,
)

__all__ = [
    "TEXTUAL_DIFF_KINDS",
    "DiffHunk",
    "DiffKind",
    "DiffLine",
    "DiffLineType",
    "DiffSummary",
    "WorkingDirectoryDiff",
    "FileEntry",
    "FileStatusKind",
    "IncludeAllValue",
    "SelectionType",
    "WorkingDirectoryStatus",
    "describe_file_count",
    "describe_selected_count",
    "get_include_all_value",
]

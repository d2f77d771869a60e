"""Working directory status models for changes-lens.

All models use Pydantic v2 BaseModel with frozen=True. A snapshot of the
working directory is never mutated; a new one is produced on every status
listing.
"""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class FileStatusKind(StrEnum):
    """Kind of change git reports for a working directory file."""

    NEW = "new"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"
    COPIED = "copied"
    UNTRACKED = "untracked"
    CONFLICTED = "conflicted"


class SelectionType(StrEnum):
    """How much of a file's diff is included in the next commit."""

    NONE = "none"
    ALL = "all"
    PARTIAL = "partial"


class IncludeAllValue(StrEnum):
    """Tri-state value of the 'include all' checkbox."""

    ON = "on"
    OFF = "off"
    MIXED = "mixed"


class FileEntry(BaseModel):
    """A single changed file in the working directory."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Identity of the file within a snapshot")
    path: str = Field(..., description="Repository-relative path using forward slashes")
    status: FileStatusKind = Field(..., description="Kind of change")
    selection: SelectionType = Field(
        default=SelectionType.ALL, description="Which lines are included in the next commit"
    )
    old_path: str | None = Field(default=None, description="Source path for renamed or copied files")


class WorkingDirectoryStatus(BaseModel):
    """Ordered list of changed files in the working directory."""

    model_config = ConfigDict(frozen=True)

    files: tuple[FileEntry, ...] = ()

    def find_file_with_id(self, file_id: str) -> FileEntry | None:
        for entry in self.files:
            if entry.id == file_id:
                return entry
        return None

    @property
    def include_all(self) -> bool | None:
        """True if every file is fully included, False if none are, None when mixed."""
        selections = {entry.selection for entry in self.files}
        if not selections or selections == {SelectionType.ALL}:
            return True
        if selections == {SelectionType.NONE}:
            return False
        return None


def get_include_all_value(
    working_directory: WorkingDirectoryStatus,
    rebase_in_progress: bool = False,
) -> IncludeAllValue:
    """Compute the 'include all' checkbox value from the repository state.

    While a rebase is in progress untracked files are skipped by the rebase,
    so the value reflects tracked versus untracked files instead of the
    per-file selections.
    """
    files = working_directory.files
    if rebase_in_progress:
        if not files:
            return IncludeAllValue.OFF
        if all(f.status == FileStatusKind.UNTRACKED for f in files):
            return IncludeAllValue.OFF
        if all(f.status != FileStatusKind.UNTRACKED for f in files):
            return IncludeAllValue.ON
        return IncludeAllValue.MIXED

    include_all = working_directory.include_all
    if include_all is True:
        return IncludeAllValue.ON
    if include_all is False:
        return IncludeAllValue.OFF
    return IncludeAllValue.MIXED


def describe_file_count(count: int) -> str:
    """Return e.g. '1 changed file' or '3 changed files'."""
    noun = "file" if count == 1 else "files"
    return f"{count} changed {noun}"


def describe_selected_count(working_directory: WorkingDirectoryStatus) -> str:
    """Describe how many files have at least part of their diff selected."""
    selected = sum(1 for f in working_directory.files if f.selection != SelectionType.NONE)
    return f"{describe_file_count(selected)} selected"

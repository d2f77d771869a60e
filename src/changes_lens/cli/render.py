"""Rich rendering helpers shared by the status and watch commands."""

from collections.abc import Mapping, Sequence

from rich.markup import escape
from rich.table import Table

from changes_lens.core.diff_cache import CacheEntry
from changes_lens.models.diff import DiffKind
from changes_lens.models.status import FileEntry, FileStatusKind

STATUS_STYLES = {
    FileStatusKind.NEW: ("A", "green"),
    FileStatusKind.MODIFIED: ("M", "yellow"),
    FileStatusKind.DELETED: ("D", "red"),
    FileStatusKind.RENAMED: ("R", "cyan"),
    FileStatusKind.COPIED: ("C", "cyan"),
    FileStatusKind.UNTRACKED: ("?", "green"),
    FileStatusKind.CONFLICTED: ("U", "magenta"),
}


def _counts(cached: CacheEntry | None) -> tuple[str, str]:
    if cached is None:
        return "", ""
    if cached.diff.kind == DiffKind.BINARY:
        return "bin", ""
    if cached.diff.kind == DiffKind.UNRENDERABLE:
        return "large", ""
    summary = cached.diff.summary()
    return f"+{summary.lines_added}", f"-{summary.lines_removed}"


def build_changes_table(
    files: Sequence[FileEntry],
    snapshot: Mapping[str, CacheEntry],
    title: str,
    caption: str | None = None,
    selected_ids: Sequence[str] = (),
) -> Table:
    """Build a table with one row per visible file."""
    table = Table(title=escape(title), caption=escape(caption) if caption else None)
    table.add_column("", width=1)
    table.add_column("Status")
    table.add_column("Path", style="bold")
    table.add_column("Added", justify="right", style="green")
    table.add_column("Removed", justify="right", style="red")

    selected = set(selected_ids)
    for entry in files:
        letter, style = STATUS_STYLES[entry.status]
        path = entry.path if entry.old_path is None else f"{entry.old_path} -> {entry.path}"
        added, removed = _counts(snapshot.get(entry.path))
        table.add_row(
            ">" if entry.id in selected else "",
            f"[{style}]{letter}[/{style}]",
            escape(path),
            added,
            removed,
        )
    return table

"""Filtered, order-preserving view of the changed files.

The view is recomputed in full whenever the filters, the upstream file list,
or the cache snapshot change. A file is visible when its path contains the
path filter and, if a content filter is set, its cached diff has a
non-context line containing the content filter. Files without a cached diff,
and files whose diff is binary or unrenderable, never match a content filter.

After every recomputation the caller's selection is reconciled against the
visible files and a correction is reported when it is no longer valid.
"""

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

from loguru import logger

from changes_lens.models.status import FileEntry

from .diff_cache import CacheEntry

FilesCallback = Callable[[Sequence[FileEntry]], None]


@dataclass(frozen=True)
class FilterState:
    """Path and content filter text. Empty strings disable a filter."""

    path_substring: str = ""
    content_substring: str = ""

    @property
    def is_active(self) -> bool:
        return bool(self.path_substring or self.content_substring)


def matches_filters(
    entry: FileEntry,
    snapshot: Mapping[str, CacheEntry],
    filters: FilterState,
) -> bool:
    if filters.path_substring not in entry.path:
        return False
    if not filters.content_substring:
        return True
    cached = snapshot.get(entry.path)
    if cached is None:
        return False
    return cached.diff.contains_change(filters.content_substring)


def filter_files(
    files: Sequence[FileEntry],
    snapshot: Mapping[str, CacheEntry],
    filters: FilterState,
) -> tuple[FileEntry, ...]:
    """Return the files matching ``filters``, in upstream order."""
    return tuple(entry for entry in files if matches_filters(entry, snapshot, filters))


def reconcile_selection(
    filtered: Sequence[FileEntry],
    selected_ids: Sequence[str],
) -> list[FileEntry] | None:
    """Validate a selection against the visible files.

    Args:
        filtered: Visible files after filtering
        selected_ids: Ids the caller currently considers selected

    Returns:
        The corrected selection, or None when the selection is already valid
        and no correction should be reported.
    """
    requested = list(dict.fromkeys(selected_ids))
    if not filtered:
        return [] if requested else None

    visible = {entry.id: entry for entry in filtered}
    surviving = [visible[file_id] for file_id in requested if file_id in visible]
    if not surviving:
        return [filtered[0]]
    if len(surviving) < len(requested):
        return surviving
    return None


class FilteredView:
    """Derives the visible file list and keeps the selection valid.

    Args:
        selection_provider: Returns the ids the caller currently has selected
        on_filtered_set_changed: Called when visible files or their order change
        on_selection_corrected: Called with the selection the caller must adopt
    """

    def __init__(
        self,
        selection_provider: Callable[[], Sequence[str]],
        on_filtered_set_changed: FilesCallback | None = None,
        on_selection_corrected: FilesCallback | None = None,
        filters: FilterState | None = None,
    ) -> None:
        self._selection_provider = selection_provider
        self._on_filtered_set_changed = on_filtered_set_changed
        self._on_selection_corrected = on_selection_corrected
        self._filters = filters or FilterState()
        self._files: tuple[FileEntry, ...] = ()
        self._snapshot: Mapping[str, CacheEntry] = {}
        self._filtered: tuple[FileEntry, ...] = ()

    @property
    def filters(self) -> FilterState:
        return self._filters

    @property
    def filtered_files(self) -> tuple[FileEntry, ...]:
        return self._filtered

    def set_filters(self, path_substring: str, content_substring: str) -> None:
        """Replace both filters and recompute against the current snapshot."""
        self._filters = FilterState(path_substring, content_substring)
        self.recompute()

    def on_upstream_change(
        self,
        files: Sequence[FileEntry],
        snapshot: Mapping[str, CacheEntry],
    ) -> None:
        """Adopt a new file list and/or cache snapshot and recompute."""
        self._files = tuple(files)
        self._snapshot = snapshot
        self.recompute()

    def recompute(self) -> tuple[FileEntry, ...]:
        filtered = filter_files(self._files, self._snapshot, self._filters)
        if filtered != self._filtered:
            self._filtered = filtered
            logger.debug(f"Filtered set changed: {len(filtered)}/{len(self._files)} files visible")
            if self._on_filtered_set_changed is not None:
                self._on_filtered_set_changed(filtered)

        correction = reconcile_selection(filtered, list(self._selection_provider()))
        if correction is not None:
            self._report_selection(correction)
        return filtered

    def _report_selection(self, files: list[FileEntry]) -> None:
        logger.debug(f"Selection corrected to {[f.id for f in files]}")
        if self._on_selection_corrected is not None:
            self._on_selection_corrected(files)

    def selected_rows(self, selected_ids: Sequence[str]) -> list[int]:
        """Map selected ids to row indices, dropping ids that are not visible."""
        rows = {entry.id: row for row, entry in enumerate(self._filtered)}
        return [rows[file_id] for file_id in selected_ids if file_id in rows]

    def row_at(self, index: int) -> FileEntry | None:
        if 0 <= index < len(self._filtered):
            return self._filtered[index]
        return None

    def jump_to_first(self) -> FileEntry | None:
        """Select the first visible row, e.g. on arrow-down out of a filter box."""
        if not self._filtered:
            return None
        self._report_selection([self._filtered[0]])
        return self._filtered[0]

    def jump_to_last(self) -> FileEntry | None:
        """Select the last visible row, e.g. on arrow-up out of a filter box."""
        if not self._filtered:
            return None
        self._report_selection([self._filtered[-1]])
        return self._filtered[-1]

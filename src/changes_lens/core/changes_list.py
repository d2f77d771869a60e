"""Changes list: the upstream file list wired to cache, coordinator and view.

ChangesList is the entry point a presentation layer talks to. It owns the
current WorkingDirectoryStatus, a DiffCache, a RefreshCoordinator driving
that cache, and a FilteredView over both.

Flow:
    notify_upstream_files_changed -> view recomputes immediately against the
    current snapshot -> coordinator refreshes the cache -> view recomputes
    again if the cache changed.
    set_filters -> view recomputes against the current snapshot; the cache
    is never refreshed for a filter edit.
"""

import asyncio
from collections.abc import Callable, Sequence

from loguru import logger

from changes_lens.models.status import (
    FileEntry,
    IncludeAllValue,
    WorkingDirectoryStatus,
    describe_file_count,
    describe_selected_count,
    get_include_all_value,
)

from .diff_cache import ComputeDiff, DiffCache, StatModificationTime
from .filtered_view import FilesCallback, FilteredView, FilterState
from .refresh_coordinator import RefreshCoordinator


class ChangesList:
    """Live, filtered view of the changed files in a working directory.

    Args:
        stat_modification_time: Async collaborator returning a path's modification time
        compute_diff: Async collaborator returning a file's current diff
        selection_provider: Returns the ids the caller currently has selected
        on_filtered_set_changed: Called when visible files or their order change
        on_selection_corrected: Called with the selection the caller must adopt
        max_concurrent_diffs: Optional bound on concurrent diff computations
        filters: Initial filter state
    """

    def __init__(
        self,
        stat_modification_time: StatModificationTime,
        compute_diff: ComputeDiff,
        selection_provider: Callable[[], Sequence[str]],
        on_filtered_set_changed: FilesCallback | None = None,
        on_selection_corrected: FilesCallback | None = None,
        max_concurrent_diffs: int | None = None,
        filters: FilterState | None = None,
    ) -> None:
        self._working_directory = WorkingDirectoryStatus()
        self.cache = DiffCache(
            stat_modification_time,
            compute_diff,
            max_concurrent_diffs=max_concurrent_diffs,
        )
        self.view = FilteredView(
            selection_provider,
            on_filtered_set_changed=on_filtered_set_changed,
            on_selection_corrected=on_selection_corrected,
            filters=filters,
        )
        self.coordinator = RefreshCoordinator(
            self.cache,
            files_provider=lambda: self._working_directory.files,
            on_settled=self._on_refresh_settled,
        )

    @property
    def working_directory(self) -> WorkingDirectoryStatus:
        return self._working_directory

    @property
    def filtered_files(self) -> tuple[FileEntry, ...]:
        return self.view.filtered_files

    @property
    def filters(self) -> FilterState:
        return self.view.filters

    @property
    def file_count_description(self) -> str:
        return describe_file_count(len(self._working_directory.files))

    @property
    def selected_count_description(self) -> str:
        return describe_selected_count(self._working_directory)

    def include_all_value(self, rebase_in_progress: bool = False) -> IncludeAllValue:
        return get_include_all_value(self._working_directory, rebase_in_progress)

    def notify_upstream_files_changed(
        self,
        working_directory: WorkingDirectoryStatus,
        selection_changed: bool = False,
    ) -> asyncio.Task | None:
        """Adopt a new working directory snapshot.

        The view is recomputed at once so it never holds FileEntry objects
        from a previous snapshot. A refresh is requested unless
        ``selection_changed`` says only the caller's selection moved, in which
        case file contents are known not to have changed.

        Returns:
            The refresh task to await, or None if no refresh was requested
        """
        if working_directory.files == self._working_directory.files:
            return None

        self._working_directory = working_directory
        self.view.on_upstream_change(working_directory.files, self.cache.snapshot)
        if selection_changed:
            return None
        return self.coordinator.request_refresh()

    def set_filters(self, path_substring: str, content_substring: str) -> None:
        """Change the filters without waiting for, or triggering, a refresh."""
        self.view.set_filters(path_substring, content_substring)

    def refresh(self) -> asyncio.Task:
        """Force a refresh cycle against the current file list."""
        return self.coordinator.request_refresh()

    def _on_refresh_settled(self, changed: bool) -> None:
        if not changed:
            return
        logger.debug(f"Cache changed, recomputing view over {len(self._working_directory.files)} files")
        self.view.on_upstream_change(self._working_directory.files, self.cache.snapshot)

    async def wait_idle(self) -> None:
        await self.coordinator.wait_idle()

    async def close(self) -> None:
        await self.coordinator.close()

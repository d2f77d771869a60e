"""Modification-time keyed cache of working directory diffs.

DiffCache maps repository-relative paths to the diff computed for the exact
on-disk state identified by a modification time. A refresh stats every file
concurrently, keeps cached entries whose modification time is unchanged
(the same CacheEntry object, so the diff is reference-identical), recomputes
the rest, and drops paths that are no longer listed.

Snapshot semantics:
    The published snapshot is a read-only mapping that is never mutated.
    A refresh builds a new dict and swaps it in with a single assignment, so
    readers see either the previous or the new snapshot, never a mix.

Failure semantics:
    A stat or diff failure for one file omits that file from the new
    snapshot. It is retried on the next refresh. Cancellation propagates.
"""

import asyncio
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType

from loguru import logger

from changes_lens.models.diff import WorkingDirectoryDiff
from changes_lens.models.status import FileEntry

StatModificationTime = Callable[[str], Awaitable[int]]
ComputeDiff = Callable[[FileEntry], Awaitable[WorkingDirectoryDiff]]

_EMPTY: Mapping[str, "CacheEntry"] = MappingProxyType({})


@dataclass(frozen=True)
class CacheEntry:
    """Diff of a file at the modification time observed before computing it."""

    path: str
    modification_time: int
    diff: WorkingDirectoryDiff


class DiffCache:
    """Per-path diff cache refreshed against a live file list.

    Args:
        stat_modification_time: Async callable returning a path's modification time
        compute_diff: Async callable returning the current diff for a file
        max_concurrent_diffs: Optional bound on concurrent diff computations
    """

    def __init__(
        self,
        stat_modification_time: StatModificationTime,
        compute_diff: ComputeDiff,
        max_concurrent_diffs: int | None = None,
    ) -> None:
        self._stat_modification_time = stat_modification_time
        self._compute_diff = compute_diff
        self._diff_slots = (
            asyncio.Semaphore(max_concurrent_diffs) if max_concurrent_diffs else None
        )
        self._snapshot: Mapping[str, CacheEntry] = _EMPTY
        self._started_generation = 0
        self._applied_generation = 0

    @property
    def snapshot(self) -> Mapping[str, CacheEntry]:
        """The current read-only path -> CacheEntry mapping."""
        return self._snapshot

    def get(self, path: str) -> CacheEntry | None:
        return self._snapshot.get(path)

    def __len__(self) -> int:
        return len(self._snapshot)

    def __contains__(self, path: object) -> bool:
        return path in self._snapshot

    def clear(self) -> None:
        self._snapshot = _EMPTY

    async def _diff_with_slot(self, entry: FileEntry) -> WorkingDirectoryDiff:
        if self._diff_slots is None:
            return await self._compute_diff(entry)
        async with self._diff_slots:
            return await self._compute_diff(entry)

    async def _refresh_one(
        self, entry: FileEntry, previous: Mapping[str, CacheEntry]
    ) -> CacheEntry | None:
        """Return the entry for one file in the next snapshot, or None to omit it."""
        try:
            modification_time = await self._stat_modification_time(entry.path)
        except Exception as e:
            logger.debug(f"Stat failed for {entry.path}, omitting from cache: {e}")
            return None

        cached = previous.get(entry.path)
        if cached is not None and cached.modification_time == modification_time:
            return cached

        try:
            diff = await self._diff_with_slot(entry)
        except Exception as e:
            logger.debug(f"Diff failed for {entry.path}, omitting from cache: {e}")
            return None
        return CacheEntry(path=entry.path, modification_time=modification_time, diff=diff)

    async def refresh(self, files: Sequence[FileEntry]) -> bool:
        """Bring the cache in line with ``files``.

        Args:
            files: Current upstream file list

        Returns:
            True if the published snapshot changed (paths added or dropped,
            or any entry recomputed), False otherwise
        """
        self._started_generation += 1
        generation = self._started_generation
        previous = self._snapshot

        # Duplicate paths in the upstream list are refreshed once
        unique: dict[str, FileEntry] = {}
        for entry in files:
            unique.setdefault(entry.path, entry)

        results = await asyncio.gather(
            *(self._refresh_one(entry, previous) for entry in unique.values())
        )

        if generation < self._applied_generation:
            logger.debug(f"Discarding refresh generation {generation}, newer snapshot already applied")
            return False

        new_snapshot = {result.path: result for result in results if result is not None}
        changed = new_snapshot.keys() != previous.keys() or any(
            previous[path] is not cache_entry for path, cache_entry in new_snapshot.items()
        )

        self._applied_generation = generation
        if changed:
            self._snapshot = MappingProxyType(new_snapshot)
        logger.debug(
            f"Diff cache refreshed: {len(new_snapshot)}/{len(unique)} files cached, changed={changed}"
        )
        return changed

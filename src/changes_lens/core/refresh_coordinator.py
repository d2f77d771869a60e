"""Single-flight coordinator for diff cache refreshes.

At most one refresh cycle runs at a time. A request that arrives while a
cycle is in flight does not start a second cycle; it marks one follow-up
cycle as owed and joins the in-flight task. Any number of requests made
during a cycle collapse into exactly one follow-up.

State machine:
    IDLE --request_refresh--> REFRESHING --cycle done, nothing owed--> IDLE
    REFRESHING --request_refresh--> REFRESHING (follow-up owed)
    REFRESHING --cycle done, follow-up owed--> REFRESHING (one more cycle)

The coordinator never fails: exceptions escaping a cycle or the settle
callback are logged and the coordinator still returns to IDLE.
"""

import asyncio
from collections.abc import Callable, Sequence
from enum import Enum

from loguru import logger

from changes_lens.models.status import FileEntry

from .diff_cache import DiffCache


class RefreshState(Enum):
    """State of the refresh coordinator."""
    IDLE = "idle"
    REFRESHING = "refreshing"


class RefreshCoordinator:
    """Runs DiffCache refresh cycles one at a time with request coalescing.

    Args:
        cache: Cache to refresh
        files_provider: Returns the current upstream file list; called at the
            start of every cycle so a follow-up sees the newest list
        on_settled: Called after every cycle with the cache's changed flag
    """

    def __init__(
        self,
        cache: DiffCache,
        files_provider: Callable[[], Sequence[FileEntry]],
        on_settled: Callable[[bool], None] | None = None,
    ) -> None:
        self._cache = cache
        self._files_provider = files_provider
        self._on_settled = on_settled
        self._state = RefreshState.IDLE
        self._follow_up_owed = False
        self._task: asyncio.Task | None = None
        self.cycles_started = 0

    @property
    def state(self) -> RefreshState:
        return self._state

    @property
    def is_refreshing(self) -> bool:
        return self._state is RefreshState.REFRESHING

    def request_refresh(self) -> asyncio.Task:
        """Request a refresh cycle.

        Must be called from within a running event loop.

        Returns:
            The task running the current chain of cycles. Awaiting it waits
            until the cycle that covers this request has settled.
        """
        if self._state is RefreshState.REFRESHING and self._task is not None:
            self._follow_up_owed = True
            logger.debug("Refresh requested while in flight, follow-up cycle owed")
            return self._task

        self._state = RefreshState.REFRESHING
        self._follow_up_owed = False
        self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    async def _run(self) -> None:
        try:
            while True:
                self._follow_up_owed = False
                self.cycles_started += 1
                cycle = self.cycles_started
                logger.debug(f"Refresh cycle {cycle} started")
                try:
                    changed = await self._cache.refresh(list(self._files_provider()))
                except Exception:
                    logger.exception(f"Refresh cycle {cycle} failed")
                    changed = False

                if self._on_settled is not None:
                    try:
                        self._on_settled(changed)
                    except Exception:
                        logger.exception(f"Settle callback failed after refresh cycle {cycle}")

                logger.debug(f"Refresh cycle {cycle} settled, changed={changed}")
                if not self._follow_up_owed:
                    break
        finally:
            self._state = RefreshState.IDLE
            self._follow_up_owed = False
            self._task = None

    async def wait_idle(self) -> None:
        """Wait until no cycle is in flight."""
        while self._task is not None:
            await asyncio.shield(self._task)

    async def close(self) -> None:
        """Cancel the in-flight cycle. Used at shutdown only."""
        task = self._task
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

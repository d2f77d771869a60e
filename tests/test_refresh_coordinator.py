"""Tests for RefreshCoordinator single-flight and coalescing behavior."""

import asyncio

import pytest

from changes_lens.core.refresh_coordinator import RefreshCoordinator, RefreshState


class GatedCache:
    """Cache stand-in whose refresh blocks until released."""

    def __init__(self, changed=True):
        self.changed = changed
        self.calls: list[list] = []
        self.gate = asyncio.Event()
        self.entered = asyncio.Event()
        self.fail = False

    async def refresh(self, files):
        self.calls.append(list(files))
        self.entered.set()
        await self.gate.wait()
        if self.fail:
            raise RuntimeError("refresh exploded")
        return self.changed


class TestSingleFlight:
    """Test that at most one cycle runs and requests coalesce."""

    @pytest.mark.asyncio
    async def test_single_request_runs_one_cycle(self):
        cache = GatedCache()
        settled = []
        coordinator = RefreshCoordinator(cache, lambda: ["a"], on_settled=settled.append)

        task = coordinator.request_refresh()
        assert coordinator.state is RefreshState.REFRESHING
        cache.gate.set()
        await task

        assert coordinator.cycles_started == 1
        assert settled == [True]
        assert coordinator.state is RefreshState.IDLE
        assert not coordinator.is_refreshing

    @pytest.mark.asyncio
    async def test_requests_during_cycle_coalesce_into_one_follow_up(self):
        cache = GatedCache()
        coordinator = RefreshCoordinator(cache, lambda: ["a"])

        first = coordinator.request_refresh()
        await cache.entered.wait()
        joined = [coordinator.request_refresh() for _ in range(10)]

        assert all(task is first for task in joined)
        cache.gate.set()
        await first

        assert coordinator.cycles_started == 2
        assert len(cache.calls) == 2

    @pytest.mark.asyncio
    async def test_follow_up_sees_newest_file_list(self):
        cache = GatedCache()
        files = ["a"]
        coordinator = RefreshCoordinator(cache, lambda: list(files))

        task = coordinator.request_refresh()
        await cache.entered.wait()
        files.append("b")
        coordinator.request_refresh()
        cache.gate.set()
        await task

        assert cache.calls == [["a"], ["a", "b"]]

    @pytest.mark.asyncio
    async def test_sequential_requests_start_new_tasks(self):
        cache = GatedCache()
        cache.gate.set()
        coordinator = RefreshCoordinator(cache, lambda: [])

        first = coordinator.request_refresh()
        await first
        second = coordinator.request_refresh()
        await second

        assert first is not second
        assert coordinator.cycles_started == 2


class TestFailureIsolation:
    """Test that failures never wedge the coordinator."""

    @pytest.mark.asyncio
    async def test_refresh_exception_returns_to_idle(self):
        cache = GatedCache()
        cache.fail = True
        cache.gate.set()
        settled = []
        coordinator = RefreshCoordinator(cache, lambda: [], on_settled=settled.append)

        await coordinator.request_refresh()

        assert settled == [False]
        assert coordinator.state is RefreshState.IDLE

    @pytest.mark.asyncio
    async def test_settle_callback_exception_is_contained(self):
        cache = GatedCache()
        cache.gate.set()

        def explode(changed):
            raise ValueError("callback exploded")

        coordinator = RefreshCoordinator(cache, lambda: [], on_settled=explode)
        await coordinator.request_refresh()

        assert coordinator.state is RefreshState.IDLE
        await coordinator.request_refresh()
        assert coordinator.cycles_started == 2


class TestLifecycle:
    """Test wait_idle and close."""

    @pytest.mark.asyncio
    async def test_wait_idle_when_idle_returns(self):
        coordinator = RefreshCoordinator(GatedCache(), lambda: [])
        await coordinator.wait_idle()

    @pytest.mark.asyncio
    async def test_wait_idle_waits_for_follow_up(self):
        cache = GatedCache()
        coordinator = RefreshCoordinator(cache, lambda: [])

        coordinator.request_refresh()
        await cache.entered.wait()
        coordinator.request_refresh()
        cache.gate.set()
        await coordinator.wait_idle()

        assert coordinator.cycles_started == 2
        assert coordinator.state is RefreshState.IDLE

    @pytest.mark.asyncio
    async def test_close_cancels_in_flight_cycle(self):
        cache = GatedCache()
        coordinator = RefreshCoordinator(cache, lambda: [])

        task = coordinator.request_refresh()
        await cache.entered.wait()
        await coordinator.close()

        assert task.cancelled()
        assert coordinator.state is RefreshState.IDLE

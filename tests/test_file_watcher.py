"""Tests for file_watcher module.

Test categories:
1. Unit tests for path filtering and debounce/coalesce logic (no observer)
2. Unit tests for observer factory
3. Lifecycle and integration tests with a real filesystem
"""

import threading
import time
from unittest.mock import patch

import pytest
from loguru import logger

from changes_lens.core.file_watcher import FileWatcher, _DebouncedChangeHandler, _is_network_path


@pytest.fixture
def log_messages():
    """Capture loguru messages emitted during a test."""
    messages: list[str] = []
    handler_id = logger.add(lambda message: messages.append(message.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def handler(tmp_path):
    calls = []
    change_handler = _DebouncedChangeHandler(
        root=tmp_path,
        on_change=lambda: calls.append(True),
        debounce_ms=100,
        ignored_dirs=["node_modules", ".git/objects"],
    )
    # Stop the background flush thread so tests drive flushing explicitly
    change_handler.stop()
    change_handler.calls = calls
    yield change_handler


class TestNetworkPathDetection:
    """Test network path detection logic."""

    def test_unc_path_windows(self):
        assert _is_network_path(r"\\server\share\file.txt")

    def test_mnt_path_unix(self):
        assert _is_network_path("/mnt/share/file.txt")
        assert _is_network_path("/net/share/file.txt")

    def test_local_paths(self):
        assert not _is_network_path("/home/user/file.txt")
        assert not _is_network_path("./relative/path.txt")


class TestIgnoredPaths:
    """Test which relative paths count as working directory changes."""

    def test_regular_files_count(self, handler):
        assert not handler.is_ignored("src/app.py")

    def test_git_internals_ignored(self, handler):
        assert handler.is_ignored(".git")
        assert handler.is_ignored(".git/objects/ab/cdef")
        assert handler.is_ignored(".git/index.lock")
        assert handler.is_ignored(".git/COMMIT_EDITMSG")

    def test_git_index_and_head_count(self, handler):
        assert not handler.is_ignored(".git/index")
        assert not handler.is_ignored(".git/HEAD")

    def test_ignored_dirs_at_any_depth(self, handler):
        assert handler.is_ignored("node_modules/pkg/index.js")
        assert handler.is_ignored("web/node_modules/pkg/index.js")
        assert not handler.is_ignored("node_modules_backup.txt")


class TestDebounceCoalesceLogic:
    """Test debounce and coalesce logic without an observer."""

    def test_flush_after_quiet_period(self, handler, tmp_path):
        handler._add_event("modified", str(tmp_path / "a.txt"))
        handler._add_event("modified", str(tmp_path / "b.txt"))
        last = handler._last_event_at

        assert handler.flush_if_quiet(now=last + 0.05) is False
        assert handler.flush_if_quiet(now=last + 0.2) is True
        assert handler.calls == [True]
        assert handler.flush_if_quiet(now=last + 1.0) is False

    def test_create_then_delete_is_noop(self, handler, tmp_path):
        path = str(tmp_path / "temp.swp")
        handler._add_event("created", path)
        handler._add_event("deleted", path)

        assert handler._pending == {}
        assert handler.flush_if_quiet(now=time.monotonic() + 1.0) is False

    def test_delete_then_create_is_modify(self, handler, tmp_path):
        path = str(tmp_path / "a.txt")
        handler._add_event("deleted", path)
        handler._add_event("created", path)

        assert handler._pending == {"a.txt": "modified"}

    def test_ignored_and_outside_events_dropped(self, handler, tmp_path):
        handler._add_event("modified", str(tmp_path / "node_modules" / "x.js"))
        handler._add_event("modified", str(tmp_path.parent / "elsewhere.txt"))

        assert handler._pending == {}

    def test_flush_logs_change(self, handler, tmp_path, log_messages):
        handler._add_event("modified", str(tmp_path / "a.txt"))
        handler.flush_if_quiet(now=time.monotonic() + 1.0)

        assert any("Working directory changed: 1 paths" in m for m in log_messages)


class TestObserverFactory:
    """Test observer selection."""

    def test_network_path_uses_polling(self, tmp_path):
        watcher = FileWatcher(tmp_path, on_change=lambda: None)
        with patch("changes_lens.core.file_watcher.PollingObserver") as polling:
            watcher._create_observer("/mnt/share/repo")
        polling.assert_called_once_with(timeout=2)


class TestLifecycle:
    """Test start/stop behavior."""

    def test_disabled_does_not_start(self, tmp_path, log_messages):
        watcher = FileWatcher(tmp_path, on_change=lambda: None, enabled=False)
        watcher.start()

        assert not watcher.is_running
        assert any("disabled" in m for m in log_messages)

    def test_missing_root_does_not_start(self, tmp_path, log_messages):
        watcher = FileWatcher(tmp_path / "missing", on_change=lambda: None)
        watcher.start()

        assert not watcher.is_running
        assert any("does not exist" in m for m in log_messages)

    def test_stop_is_idempotent(self, tmp_path):
        watcher = FileWatcher(tmp_path, on_change=lambda: None)
        watcher.start()
        assert watcher.is_running

        watcher.stop()
        watcher.stop()
        assert not watcher.is_running

    def test_file_change_signals_once(self, tmp_path):
        changed = threading.Event()
        calls = []

        def on_change():
            calls.append(True)
            changed.set()

        watcher = FileWatcher(tmp_path, on_change=on_change, debounce_ms=100)
        try:
            watcher.start()
            target = tmp_path / "a.txt"
            target.write_text("one", encoding="utf-8")
            target.write_text("two", encoding="utf-8")

            assert changed.wait(timeout=5.0)
            time.sleep(0.3)
            assert len(calls) == 1
        finally:
            watcher.stop()

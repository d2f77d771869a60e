"""OS filesystem watcher that signals working directory changes.

This module implements FileWatcher, which monitors a repository root for
file changes and calls a callback once per quiet period so the caller can
re-list git status and refresh the changes list.

Key features:
- Debounce: events are buffered until no new event arrived for debounce_ms
- Coalesce: CREATE+DELETE on the same path within a window is a no-op
  (editor temp files, index.lock churn)
- Filtering: ignored directories are dropped; inside .git only index and
  HEAD count, since they signal staging and branch changes
- Observer fallback: native observer with polling fallback for network
  paths and inotify limits

Threading:
    on_change runs on the watcher's flush thread. Callers driving asyncio
    code must hand off with ``loop.call_soon_threadsafe``.
"""

import os
import threading
import time
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any, Optional

from loguru import logger
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from changes_lens.config import DEFAULT_IGNORED_DIRS

_GIT_DIR = ".git"
_GIT_SIGNAL_FILES = frozenset({".git/index", ".git/HEAD"})


def _is_network_path(path: str) -> bool:
    """Detect if path is on a network filesystem.

    Checks for UNC paths (\\\\server\\share) on Windows and common network
    mount points (/mnt/, /net/) on Unix systems.
    """
    if path.startswith('\\\\'):
        return True
    if path.startswith('/mnt/') or path.startswith('/net/'):
        return True
    return False


class _DebouncedChangeHandler(FileSystemEventHandler):
    """Buffer filesystem events and flush them as one change signal.

    Event processing logic:
    1. Drop events outside the repository or under ignored directories
    2. Buffer remaining events per relative path, coalescing CREATE+DELETE
    3. Once debounce_ms passed since the last event, clear the buffer and
       call on_change once

    Thread-safety:
        Uses threading.Lock for _pending access. The flush loop runs in a
        daemon thread.
    """

    def __init__(
        self,
        root: Path,
        on_change: Callable[[], None],
        debounce_ms: int,
        ignored_dirs: Sequence[str],
    ):
        super().__init__()
        self._root = root
        self._on_change = on_change
        self._debounce_seconds = debounce_ms / 1000.0
        self._ignored_dirs = tuple(d.strip("/") for d in ignored_dirs if d.strip("/"))
        self._pending: dict[str, str] = {}  # relative path -> event type
        self._last_event_at = 0.0
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._flush_thread = threading.Thread(target=self._flush_loop, daemon=True)
        self._flush_thread.start()

    def stop(self) -> None:
        """Stop the debounce flush thread."""
        self._stop_event.set()
        self._flush_thread.join(timeout=1.0)

    def _relative_path(self, path: str) -> str | None:
        try:
            relative = Path(os.path.abspath(path)).relative_to(self._root)
        except ValueError:
            return None
        return relative.as_posix()

    def is_ignored(self, relative: str) -> bool:
        if relative == _GIT_DIR or relative.startswith(_GIT_DIR + "/"):
            return relative not in _GIT_SIGNAL_FILES
        for ignored in self._ignored_dirs:
            if relative == ignored or relative.startswith(ignored + "/") or f"/{ignored}/" in f"/{relative}":
                return True
        return False

    def _add_event(self, event_type: str, path: str) -> None:
        """Add event to pending buffer with coalesce logic.

        Coalesce rules:
            - CREATE + DELETE -> remove pending (net no-op)
            - DELETE + CREATE -> MODIFY
            - anything else -> latest event type
        """
        relative = self._relative_path(path)
        if relative is None or self.is_ignored(relative):
            return

        with self._lock:
            existing = self._pending.get(relative)
            if existing == 'created' and event_type == 'deleted':
                del self._pending[relative]
                logger.trace(f"Coalesced CREATE+DELETE to no-op: {relative}")
            elif existing == 'deleted' and event_type == 'created':
                self._pending[relative] = 'modified'
            else:
                self._pending[relative] = event_type
            self._last_event_at = time.monotonic()

    def _flush_loop(self) -> None:
        """Background thread loop that flushes the buffer after a quiet period."""
        while not self._stop_event.is_set():
            try:
                self.flush_if_quiet()
            except Exception as e:
                logger.error(f"Error in flush loop: {e}")
            time.sleep(max(self._debounce_seconds / 2, 0.01))

    def flush_if_quiet(self, now: float | None = None) -> bool:
        """Signal a change if events are pending and the debounce window passed.

        Returns:
            True if on_change was called
        """
        current_time = time.monotonic() if now is None else now
        with self._lock:
            if not self._pending:
                return False
            if current_time - self._last_event_at < self._debounce_seconds:
                return False
            changed_paths = sorted(self._pending)
            self._pending.clear()

        # Call outside lock so event handlers are never blocked by the callback
        logger.debug(f"Working directory changed: {len(changed_paths)} paths")
        self._on_change()
        return True

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._add_event('created', str(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._add_event('modified', str(event.src_path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._add_event('deleted', str(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        """Handle file moved event (treat as DELETE old + CREATE new)."""
        if not event.is_directory:
            self._add_event('deleted', str(event.src_path))
            dest = getattr(event, 'dest_path', None)
            if dest:
                self._add_event('created', str(dest))


class FileWatcher:
    """OS filesystem watcher for one repository working directory.

    Lifecycle:
        1. Create FileWatcher with the repository root and a callback
        2. Call start() to begin watching
        3. Call stop() to clean up the observer and flush thread
    """

    def __init__(
        self,
        root: Path | str,
        on_change: Callable[[], None],
        enabled: bool = True,
        debounce_ms: int = 200,
        ignored_dirs: Sequence[str] = tuple(DEFAULT_IGNORED_DIRS),
    ):
        self._root = Path(os.path.abspath(root))
        self._on_change = on_change
        self._enabled = enabled
        self._debounce_ms = debounce_ms
        self._ignored_dirs = ignored_dirs
        self._observer: Optional[Any] = None  # Observer or PollingObserver
        self._event_handler: Optional[_DebouncedChangeHandler] = None

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    def _create_observer(self, path: str) -> Any:
        """Create appropriate observer for the given path.

        Selection logic:
            1. If network path -> PollingObserver
            2. Try native Observer, fall back to PollingObserver on inotify error
        """
        if _is_network_path(path):
            logger.warning(f"Network path detected, using PollingObserver: {path}")
            return PollingObserver(timeout=2)

        try:
            observer = Observer()
            # Start briefly to check for inotify errors
            observer.start()
            observer.stop()
            observer.join(timeout=1.0)
            return Observer()
        except OSError as e:
            if 'inotify' in str(e).lower() or getattr(e, 'errno', None) == 28:
                logger.warning(f"inotify limit reached, falling back to PollingObserver: {e}")
                return PollingObserver(timeout=2)
            raise

    def start(self) -> None:
        """Start watching the repository root.

        No-op when disabled, already started, or when the root does not exist.
        """
        if not self._enabled:
            logger.info("File watcher is disabled, skipping start")
            return

        if self._event_handler is not None:
            logger.warning("File watcher already started")
            return

        if not self._root.is_dir():
            logger.warning(f"Directory does not exist, skipping watch: {self._root}")
            return

        self._event_handler = _DebouncedChangeHandler(
            root=self._root,
            on_change=self._on_change,
            debounce_ms=self._debounce_ms,
            ignored_dirs=self._ignored_dirs,
        )
        try:
            observer = self._create_observer(str(self._root))
            observer.schedule(self._event_handler, str(self._root), recursive=True)
            observer.start()
        except Exception as e:
            logger.error(f"Failed to start watching {self._root}: {e}")
            self._event_handler.stop()
            self._event_handler = None
            return
        self._observer = observer
        logger.info(f"Started watching: {self._root}")

    def stop(self) -> None:
        """Stop the observer and flush thread. Safe to call multiple times."""
        if self._event_handler is not None:
            self._event_handler.stop()
            self._event_handler = None

        if self._observer is not None:
            try:
                self._observer.stop()
                self._observer.join(timeout=2.0)
            except Exception as e:
                logger.error(f"Error stopping observer: {e}")
            self._observer = None
            logger.info("File watcher stopped")

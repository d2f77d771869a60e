"""Core functionality package."""

from .changes_list import ChangesList
from .diff_cache import CacheEntry, DiffCache
from .diff_engine import compute_untracked_diff, parse_unified_diff
from .file_watcher import FileWatcher
from .filtered_view import FilteredView, FilterState, filter_files, reconcile_selection
from .git_backend import GitCommandError, GitLockedError, GitWorkingDirectory
from .refresh_coordinator import RefreshCoordinator, RefreshState

__all__ = [
    "CacheEntry",
    "ChangesList",
    "DiffCache",
    "FileWatcher",
    "FilterState",
    "FilteredView",
    "GitCommandError",
    "GitLockedError",
    "GitWorkingDirectory",
    "RefreshCoordinator",
    "RefreshState",
    "compute_untracked_diff",
    "filter_files",
    "parse_unified_diff",
    "reconcile_selection",
]

"""Live watch command: keep the changes list current and print updates."""

import asyncio
from collections.abc import Sequence
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from changes_lens.cli.render import build_changes_table
from changes_lens.config import Settings, get_settings
from changes_lens.core import (
    ChangesList,
    FileWatcher,
    FilterState,
    GitCommandError,
    GitWorkingDirectory,
)
from changes_lens.logging_setup import get_logger
from changes_lens.models.status import FileEntry

console = Console()


class WatchSession:
    """Owns the selection and re-lists git status when the tree changes."""

    def __init__(self, backend: GitWorkingDirectory, settings: Settings, filters: FilterState):
        self.backend = backend
        self.settings = settings
        self.selected_ids: list[str] = []
        self._logger = get_logger(__name__, repo=str(backend.repo_path))
        self._relist_lock = asyncio.Lock()
        self.changes = ChangesList(
            backend.stat_modification_time,
            backend.compute_diff,
            selection_provider=lambda: self.selected_ids,
            on_filtered_set_changed=self._print_files,
            on_selection_corrected=self._adopt_selection,
            max_concurrent_diffs=settings.cache.max_concurrent_diffs,
            filters=filters,
        )

    def _print_files(self, files: Sequence[FileEntry]) -> None:
        console.print(
            build_changes_table(
                files,
                self.changes.cache.snapshot,
                title=str(self.backend.repo_path),
                caption=f"{len(files)} of {self.changes.file_count_description}",
                selected_ids=self.selected_ids,
            )
        )

    def _adopt_selection(self, files: Sequence[FileEntry]) -> None:
        self.selected_ids = [entry.id for entry in files]
        if files:
            console.print(f"[cyan]Selected:[/cyan] {escape(', '.join(entry.path for entry in files))}")
        else:
            console.print("[dim]Selection cleared[/dim]")

    async def relist(self) -> None:
        """Re-list git status and refresh the cache even if the list is unchanged."""
        async with self._relist_lock:
            try:
                working_directory = await self.backend.list_changes()
            except GitCommandError as e:
                self._logger.warning(f"Could not list changes: {e}")
                return
            task = self.changes.notify_upstream_files_changed(working_directory)
            if task is None:
                task = self.changes.refresh()
        await task


async def run_watch(repo: Path, settings: Settings, filters: FilterState, interval: float | None) -> None:
    backend = await GitWorkingDirectory.discover(
        repo,
        timeout=settings.cache.git_timeout,
        large_diff_bytes=settings.cache.large_diff_bytes,
        max_diff_bytes=settings.cache.max_diff_bytes,
    )
    session = WatchSession(backend, settings, filters)
    loop = asyncio.get_running_loop()
    background: set[asyncio.Task] = set()

    def schedule_relist() -> None:
        task = loop.create_task(session.relist())
        background.add(task)
        task.add_done_callback(background.discard)

    watcher = FileWatcher(
        backend.repo_path,
        on_change=lambda: loop.call_soon_threadsafe(schedule_relist),
        enabled=settings.watcher.enabled and interval is None,
        debounce_ms=settings.watcher.debounce_ms,
        ignored_dirs=settings.watcher.ignored_dirs,
    )

    await session.relist()
    watcher.start()
    poll_seconds = interval if interval is not None else settings.watcher.poll_seconds
    try:
        while True:
            await asyncio.sleep(poll_seconds)
            if not watcher.is_running:
                await session.relist()
    finally:
        watcher.stop()
        for task in background:
            task.cancel()
        await session.changes.close()


def watch(
    ctx: typer.Context,
    repo: Path = typer.Argument(Path("."), help="Repository path"),
    path_filter: str | None = typer.Option(None, "--path", "-p", help="Only show paths containing this text"),
    content_filter: str | None = typer.Option(None, "--content", "-c", help="Only show files whose changed lines contain this text"),
    interval: float | None = typer.Option(None, "--interval", "-i", help="Poll every N seconds instead of watching the filesystem"),
):
    """Watch a repository and print the filtered changes as they move."""
    settings: Settings = ctx.obj if isinstance(ctx.obj, Settings) else get_settings()
    filters = FilterState(
        settings.filters.path if path_filter is None else path_filter,
        settings.filters.content if content_filter is None else content_filter,
    )

    try:
        asyncio.run(run_watch(repo, settings, filters, interval))
    except KeyboardInterrupt:
        console.print("[dim]Stopped[/dim]")
    except GitCommandError as e:
        console.print(f"[red]Git failed:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

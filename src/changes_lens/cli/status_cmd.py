"""One-shot status command: list, refresh once, filter, print."""

import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from changes_lens.cli.render import build_changes_table
from changes_lens.config import Settings, get_settings
from changes_lens.core import ChangesList, FilterState, GitCommandError, GitWorkingDirectory

console = Console()


async def collect_changes(
    repo: Path,
    settings: Settings,
    path_filter: str,
    content_filter: str,
) -> ChangesList:
    """List the repository's changes and run one refresh cycle."""
    backend = await GitWorkingDirectory.discover(
        repo,
        timeout=settings.cache.git_timeout,
        large_diff_bytes=settings.cache.large_diff_bytes,
        max_diff_bytes=settings.cache.max_diff_bytes,
    )
    working_directory = await backend.list_changes()

    changes = ChangesList(
        backend.stat_modification_time,
        backend.compute_diff,
        selection_provider=lambda: (),
        max_concurrent_diffs=settings.cache.max_concurrent_diffs,
        filters=FilterState(path_filter, content_filter),
    )
    task = changes.notify_upstream_files_changed(working_directory)
    if task is not None:
        await task
    return changes


def status(
    ctx: typer.Context,
    repo: Path = typer.Argument(Path("."), help="Repository path"),
    path_filter: str | None = typer.Option(None, "--path", "-p", help="Only show paths containing this text"),
    content_filter: str | None = typer.Option(None, "--content", "-c", help="Only show files whose changed lines contain this text"),
    json_output: bool = typer.Option(False, "--json", help="Output raw JSON instead of a table"),
):
    """Show the changed files of a repository, filtered."""
    settings: Settings = ctx.obj if isinstance(ctx.obj, Settings) else get_settings()
    path_text = settings.filters.path if path_filter is None else path_filter
    content_text = settings.filters.content if content_filter is None else content_filter

    try:
        changes = asyncio.run(collect_changes(repo, settings, path_text, content_text))
    except GitCommandError as e:
        console.print(f"[red]Git failed:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    files = changes.filtered_files
    if json_output:
        typer.echo(json.dumps([entry.model_dump(mode="json") for entry in files], indent=2))
        return

    if not files:
        message = "No matching changes" if changes.filters.is_active else "No changes"
        console.print(f"[dim]{message} ({changes.file_count_description})[/dim]")
        return

    table = build_changes_table(
        files,
        changes.cache.snapshot,
        title=str(repo),
        caption=f"{len(files)} of {changes.file_count_description}",
    )
    console.print(table)

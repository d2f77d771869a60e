"""CLI package for changes-lens."""

from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from changes_lens.cli import config_cmd, status_cmd, watch_cmd
from changes_lens.config import LoggingConfig, get_settings
from changes_lens.logging_setup import setup_logging_from_config
from changes_lens.paths import get_config_file_path

app = typer.Typer(
    name="changes-lens",
    help="Live, filtered view of a git working directory's changes",
    no_args_is_help=True,
)
console = Console(stderr=True)

app.add_typer(config_cmd.app, name="config", help="Configuration management")

app.command(name="status", help="Show changed files, filtered")(status_cmd.status)
app.command(name="watch", help="Watch changed files, filtered")(watch_cmd.watch)


@app.callback()
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(None, "--config", help="JSON config file (default: user config file if present)"),
    log_level: str | None = typer.Option(None, "--log-level", help="Override the configured log level"),
):
    """Load settings and configure logging before any command runs."""
    config_path = config
    if config_path is None and get_config_file_path().exists():
        config_path = get_config_file_path()

    try:
        settings = get_settings(config_path)
        if log_level is not None:
            logging_config = LoggingConfig(**{**settings.logging.model_dump(), "level": log_level})
            settings = settings.model_copy(update={"logging": logging_config})
    except ValidationError as e:
        console.print(f"[red]Invalid configuration:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    setup_logging_from_config(settings.logging)
    ctx.obj = settings


@app.command()
def version():
    """Show version information."""
    from changes_lens import __version__
    typer.echo(f"changes-lens {__version__}")


if __name__ == "__main__":
    app()

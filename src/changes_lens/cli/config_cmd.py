"""Config subcommand group for inspecting configuration."""

import json

import typer
from rich.console import Console
from rich.json import JSON
from rich.panel import Panel

from changes_lens.config import Settings, get_settings
from changes_lens.paths import get_config_file_path

app = typer.Typer(help="Configuration management")
console = Console()


@app.command()
def show(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Output raw JSON instead of formatted panel"),
):
    """Show the effective configuration (defaults, config file, environment)."""
    settings = ctx.obj if isinstance(ctx.obj, Settings) else get_settings()
    data = json.dumps(settings.model_dump(mode="json"), indent=2)

    if json_output:
        typer.echo(data)
    else:
        panel = Panel(JSON(data), title="Effective configuration", border_style="cyan")
        console.print(panel)


@app.command()
def path():
    """Show the configuration file path."""
    config_path = get_config_file_path()
    typer.echo(str(config_path))
    if not config_path.exists():
        console.print("[dim]File does not exist; defaults and environment variables apply[/dim]")

#!/usr/bin/env python3
"""
dockrs CLI - Main Entry Point
Inspect and manage containers, images, volumes and networks of a Docker daemon
"""

from typing import Optional

import typer

from . import __version__
from .commands import containers, system
from .commands.common import AppState
from .core.config import load_settings
from .utils.display import console, show_banner, show_quick_help
from .utils.logger import setup_logging

# Main app
app = typer.Typer(
    name="dockrs",
    help="🐳 dockrs - Inspect and manage Docker resources",
    add_completion=True,
    no_args_is_help=False
)

# Register listing and system commands
app.command(name="ps")(system.ps)
app.command(name="images")(system.images)
app.command(name="volumes")(system.volumes)
app.command(name="networks")(system.networks)
app.command(name="events")(system.events)
app.command(name="version")(system.version)
app.command(name="config")(system.config)

# Register resource operations
app.command(name="stop")(containers.stop)
app.command(name="rm")(containers.rm)
app.command(name="inspect")(containers.inspect)
app.command(name="logs")(containers.logs)
app.command(name="stats")(containers.stats)
app.command(name="run")(containers.run)


def _show_version(value: bool):
    if value:
        console.print(f"dockrs {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(False, "--debug", help="Verbose logging and full tracebacks"),
    version: Optional[bool] = typer.Option(
        None, "--version", callback=_show_version, is_eager=True, help="Show the version and exit"
    )
):
    """
    dockrs

    Inspect and manage the containers, images, volumes and networks of a Docker daemon.
    """
    setup_logging(debug)
    if ctx.obj is None:
        ctx.obj = AppState(settings=load_settings())

    if ctx.invoked_subcommand is None:
        # No command specified, show help
        show_banner()
        show_quick_help()


if __name__ == "__main__":
    app()

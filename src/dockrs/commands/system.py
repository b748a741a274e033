"""
System commands
Listings (ps, images, volumes, networks), daemon events, version and config
"""

import asyncio
from typing import List, Optional

import typer

from .. import __version__
from ..core.config import config_path
from ..core.models import ResourceKind
from ..core.streamer import stream_events
from ..utils.display import (
    console, container_row, create_ps_table, create_resource_table,
    format_event, resource_row, show_info_table
)
from .common import cancel_on_interrupt, get_state, parse_filters, run_with_engine

app = typer.Typer()


@app.command()
def ps(
    ctx: typer.Context,
    all: bool = typer.Option(False, "--all", "-a", help="Show all containers (including stopped)"),
    size: bool = typer.Option(False, "--size", "-s", help="Display total file sizes"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only display container ids"),
    filter: Optional[List[str]] = typer.Option(None, "--filter", "-f", help="Filter output (key=value)")
):
    """📊 List containers"""
    filters = parse_filters(filter)

    async def op(engine, state):
        return await engine.list(ResourceKind.CONTAINER, filters=filters, all=all, size=size)

    containers = run_with_engine(ctx, op, "Could not list containers")

    if quiet:
        for c in containers:
            console.print(c.handle.short_id, highlight=False)
        return

    if not containers:
        console.print("[yellow]No containers found[/yellow]")
        return

    table = create_ps_table(size)
    for c in containers:
        table.add_row(*container_row(c, size))
    console.print(table)


def _listing(ctx: typer.Context, kind: ResourceKind, filter: Optional[List[str]], quiet: bool):
    filters = parse_filters(filter)

    async def op(engine, state):
        return await engine.list(kind, filters=filters)

    descriptors = run_with_engine(ctx, op, f"Could not list {kind.plural}")

    if quiet:
        for d in descriptors:
            console.print(d.handle.short_id, highlight=False)
        return

    if not descriptors:
        console.print(f"[yellow]No {kind.plural} found[/yellow]")
        return

    table = create_resource_table(kind)
    for d in descriptors:
        table.add_row(*resource_row(d))
    console.print(table)


@app.command()
def images(
    ctx: typer.Context,
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only display image ids"),
    filter: Optional[List[str]] = typer.Option(None, "--filter", "-f", help="Filter output (key=value)")
):
    """🖼️ List images"""
    _listing(ctx, ResourceKind.IMAGE, filter, quiet)


@app.command()
def volumes(
    ctx: typer.Context,
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only display volume names"),
    filter: Optional[List[str]] = typer.Option(None, "--filter", "-f", help="Filter output (key=value)")
):
    """💾 List volumes"""
    _listing(ctx, ResourceKind.VOLUME, filter, quiet)


@app.command()
def networks(
    ctx: typer.Context,
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only display network ids"),
    filter: Optional[List[str]] = typer.Option(None, "--filter", "-f", help="Filter output (key=value)")
):
    """🌐 List networks"""
    _listing(ctx, ResourceKind.NETWORK, filter, quiet)


@app.command()
def events(
    ctx: typer.Context,
    filter: Optional[List[str]] = typer.Option(None, "--filter", "-f", help="Filter events (key=value)")
):
    """📡 Stream daemon events until interrupted"""
    filters = parse_filters(filter)

    async def op(engine, state):
        with cancel_on_interrupt(asyncio.Event()) as cancel:
            async for event in stream_events(engine, filters, cancel):
                console.print(format_event(event))

    run_with_engine(ctx, op, "Could not stream events")


@app.command()
def version(ctx: typer.Context):
    """🔖 Show version information"""

    async def op(engine, state):
        return await engine.version()

    info = run_with_engine(ctx, op, "Could not query the daemon version")

    console.print("[cyan bold]dockrs[/cyan bold]")
    console.print(f"Version: {__version__}")
    console.print(f"Docker Engine: {info.get('Version', 'unknown')} (API {info.get('ApiVersion', 'unknown')})")
    console.print(f"OS/Arch: {info.get('Os', '?')}/{info.get('Arch', '?')}")
    console.print(f"Config path: {config_path()}")


@app.command()
def config(ctx: typer.Context):
    """⚙️ Show the effective configuration"""
    settings = get_state(ctx).settings
    data = {k: "" if v is None else str(v) for k, v in settings.as_dict().items()}
    show_info_table(data, f"Settings ({config_path()})")

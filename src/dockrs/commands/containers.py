"""
Resource management commands
Batch operations (stop, rm, inspect) and container streams (logs, stats, run)
"""

import asyncio
import json as json_lib
from typing import Dict, List, Optional

import typer
from rich.live import Live

from ..core.models import BatchOutcome, ResourceHandle, ResourceKind, StreamEvent
from ..core.streamer import stream_logs, stream_stats
from ..utils.display import (
    console, create_stats_table, descriptor_info, format_log_line,
    show_info_table, show_outcomes
)
from .common import (
    AppState, cancel_on_interrupt, exit_for, get_state, make_resolver,
    resolve_and_run, run_with_engine
)

app = typer.Typer()


def _require_targets(tokens: Optional[List[str]], interactive: bool) -> List[str]:
    tokens = tokens or []
    if not tokens and not interactive:
        raise typer.BadParameter("give at least one id or name, or use --interactive to pick")
    return tokens


def _apply_concurrency(ctx: typer.Context, concurrency: Optional[int]) -> AppState:
    state = get_state(ctx)
    try:
        state.settings = state.settings.with_overrides(concurrency=concurrency)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--concurrency")
    return state


@app.command()
def stop(
    ctx: typer.Context,
    containers: Optional[List[str]] = typer.Argument(None, help="Container ids, id prefixes or names"),
    timeout: Optional[int] = typer.Option(None, "--time", "-t", help="Seconds to wait before killing"),
    interactive: bool = typer.Option(False, "--interactive", "-i", help="Pick targets interactively"),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", "-c", help="Maximum requests in flight")
):
    """⏹ Stop one or more containers"""
    tokens = _require_targets(containers, interactive)
    _apply_concurrency(ctx, concurrency)

    async def op(engine, state):
        return await resolve_and_run(
            engine, state, ResourceKind.CONTAINER, tokens, interactive,
            lambda handle: engine.stop(handle, timeout), "stop"
        )

    outcomes = run_with_engine(ctx, op, "Could not stop containers")
    show_outcomes(outcomes, "stop")
    exit_for(outcomes)


@app.command()
def rm(
    ctx: typer.Context,
    targets: Optional[List[str]] = typer.Argument(None, help="Ids, id prefixes or names"),
    kind: ResourceKind = typer.Option(ResourceKind.CONTAINER, "--kind", "-k", help="Kind of resource"),
    force: bool = typer.Option(False, "--force", "-f", help="Remove even if running or in use"),
    interactive: bool = typer.Option(False, "--interactive", "-i", help="Pick targets interactively"),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", "-c", help="Maximum requests in flight")
):
    """🗑️ Remove one or more containers, images, volumes or networks"""
    tokens = _require_targets(targets, interactive)
    _apply_concurrency(ctx, concurrency)

    async def op(engine, state):
        return await resolve_and_run(
            engine, state, kind, tokens, interactive,
            lambda handle: engine.remove(handle, force=force), "remove"
        )

    outcomes = run_with_engine(ctx, op, f"Could not remove {kind.plural}")
    show_outcomes(outcomes, "remove")
    exit_for(outcomes)


@app.command()
def inspect(
    ctx: typer.Context,
    targets: Optional[List[str]] = typer.Argument(None, help="Ids, id prefixes or names"),
    kind: ResourceKind = typer.Option(ResourceKind.CONTAINER, "--kind", "-k", help="Kind of resource"),
    json: bool = typer.Option(False, "--json", help="Output the raw daemon payload as JSON"),
    interactive: bool = typer.Option(False, "--interactive", "-i", help="Pick targets interactively"),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", "-c", help="Maximum requests in flight")
):
    """ℹ️ Show detailed information on resources"""
    tokens = _require_targets(targets, interactive)
    _apply_concurrency(ctx, concurrency)

    async def op(engine, state):
        return await resolve_and_run(engine, state, kind, tokens, interactive, engine.inspect, "inspect")

    outcomes: List[BatchOutcome] = run_with_engine(ctx, op, f"Could not inspect {kind.plural}")
    found = [o.value for o in outcomes if o.ok]
    failed = [o for o in outcomes if not o.ok]

    if json:
        console.print(json_lib.dumps([d.attrs for d in found], indent=2, default=str), markup=False)
    else:
        for descriptor in found:
            show_info_table(descriptor_info(descriptor), f"{kind.value.capitalize()}: {descriptor.handle.label}")

    if failed:
        show_outcomes(failed, "inspect")
    exit_for(outcomes)


@app.command()
def logs(
    ctx: typer.Context,
    containers: List[str] = typer.Argument(..., help="Container ids, id prefixes or names"),
    follow: bool = typer.Option(False, "--follow", "-f", help="Follow log output"),
    tail: Optional[str] = typer.Option(None, "--tail", "-n", help="Number of lines to show from the end, or 'all'"),
    interactive: bool = typer.Option(False, "--interactive", "-i", help="Pick among ambiguous matches")
):
    """📋 Show (merged) logs of one or more containers"""
    state = get_state(ctx)
    try:
        state.settings = state.settings.with_overrides(log_tail=tail)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--tail")

    async def op(engine, state):
        resolver = make_resolver(engine, state, ResourceKind.CONTAINER, interactive, "show logs for")
        handles, failures = await resolver.resolve_all(containers)
        for failure in failures:
            console.print(f"[red]❌ {failure.handle.id}: {failure.error.message}[/red]")

        failed_streams = 0
        width = max((len(h.label) for h in handles), default=0)
        with cancel_on_interrupt(asyncio.Event()) as cancel:
            merged = stream_logs(engine, handles, follow=follow, tail=state.settings.log_tail, cancel=cancel)
            async for event in merged:
                if event.failed:
                    failed_streams += 1
                console.print(format_log_line(event, width))
        return bool(failures) or failed_streams > 0

    if run_with_engine(ctx, op, "Could not read logs"):
        raise typer.Exit(1)


@app.command()
def stats(
    ctx: typer.Context,
    containers: Optional[List[str]] = typer.Argument(None, help="Containers to watch (default: all running)"),
    no_stream: bool = typer.Option(False, "--no-stream", help="Take one sample and exit")
):
    """📊 Live resource usage of containers"""

    async def op(engine, state):
        if containers:
            resolver = make_resolver(engine, state, ResourceKind.CONTAINER, False, "watch")
            handles, failures = await resolver.resolve_all(containers)
            for failure in failures:
                console.print(f"[red]❌ {failure.handle.id}: {failure.error.message}[/red]")
        else:
            failures = []
            handles = [d.handle for d in await engine.list(ResourceKind.CONTAINER, all=False)]
        if not handles:
            console.print("[yellow]No running containers[/yellow]")
            return bool(failures)

        samples: Dict[ResourceHandle, StreamEvent] = {}
        with cancel_on_interrupt(asyncio.Event()) as cancel:
            with Live(create_stats_table(samples), console=console, auto_refresh=False) as live:
                async for event in stream_stats(engine, handles, follow=not no_stream, cancel=cancel):
                    samples[event.source] = event
                    live.update(create_stats_table(samples), refresh=True)
        return bool(failures) or any(e.failed for e in samples.values())

    if run_with_engine(ctx, op, "Could not read stats"):
        raise typer.Exit(1)


@app.command()
def run(
    ctx: typer.Context,
    image: str = typer.Argument(..., help="The image to create the container from"),
    name: Optional[str] = typer.Option(None, "--name", help="Assign a name to the container"),
    network: Optional[str] = typer.Option(None, "--network", help="Connect a container to a network"),
    volume: Optional[List[str]] = typer.Option(None, "--volume", "-v", help="Bind mount a volume"),
    rm: bool = typer.Option(False, "--rm", help="Automatically remove the container when it exits")
):
    """▶ Create and run a new container from an image"""

    async def op(engine, state):
        network_mode = network
        # "host", "none" and "bridge" are listed networks; container:<id> is not
        if network and not network.startswith("container:"):
            resolver = make_resolver(engine, state, ResourceKind.NETWORK, False, "join")
            network_mode = (await resolver.resolve_one(network)).id

        with cancel_on_interrupt(asyncio.Event()) as cancel:
            output = engine.run(image, name=name, network=network_mode, volumes=volume or [], remove=rm)
            waiter = asyncio.ensure_future(cancel.wait())
            try:
                while True:
                    getter = asyncio.ensure_future(output.__anext__())
                    done, _ = await asyncio.wait({getter, waiter}, return_when=asyncio.FIRST_COMPLETED)
                    if getter not in done:
                        getter.cancel()
                        await asyncio.gather(getter, return_exceptions=True)
                        break
                    try:
                        event = getter.result()
                    except StopAsyncIteration:
                        break
                    console.print(event.text, end="", markup=False, highlight=False)
            finally:
                waiter.cancel()
                await output.aclose()

    run_with_engine(ctx, op, f"Could not run {image}")

"""
Shared plumbing for commands
Application state, engine lifecycle, filters and interrupt handling
"""

import asyncio
import signal
import sys
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Sequence

import typer
from prompt_toolkit.output import create_output

from ..core.batch import BatchExecutor, Operation
from ..core.config import Settings
from ..core.docker_ops import DockerEngineClient
from ..core.engine import EngineClient
from ..core.errors import Cancelled, EmptyBatch, EngineError
from ..core.models import BatchOutcome, ResourceKind
from ..core.resolver import Resolver
from ..utils.display import console, create_progress_context
from ..utils.logger import debug_print, get_logger, log_exception
from ..utils.selector import Selector

logger = get_logger("commands")

EngineFactory = Callable[[Settings], Awaitable[EngineClient]]


def _default_selector(title: str) -> Selector:
    if not sys.stdin.isatty():
        raise typer.BadParameter("interactive selection needs a terminal", param_hint="--interactive")
    return Selector(title=title, output=create_output(stdout=sys.stderr))


@dataclass
class AppState:
    """Per-invocation state handed to commands through the typer context"""

    settings: Settings = field(default_factory=Settings)
    engine_factory: EngineFactory = DockerEngineClient.connect
    selector_factory: Callable[[str], Selector] = _default_selector


def get_state(ctx: typer.Context) -> AppState:
    if ctx.obj is None:
        ctx.obj = AppState()
    return ctx.obj


def parse_filters(values: Optional[Sequence[str]]) -> Dict[str, List[str]]:
    """Parse repeated key=value options into the daemon's filter mapping"""
    filters: Dict[str, List[str]] = {}
    for value in values or []:
        key, sep, item = value.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"filter must look like key=value, got {value!r}")
        filters.setdefault(key.strip(), []).append(item.strip())
    return filters


def run_with_engine(ctx: typer.Context, fn: Callable[[EngineClient, AppState], Awaitable[Any]],
                    context: str = "") -> Any:
    """Connect, run ``fn`` on the event loop and map core errors to exit codes"""
    state = get_state(ctx)
    debug_print(f"Settings: {state.settings}")

    async def main():
        engine = await state.engine_factory(state.settings)
        async with engine:
            return await fn(engine, state)

    try:
        return asyncio.run(main())
    except Cancelled:
        console.print("[yellow]Cancelled[/yellow]")
        raise typer.Exit(1)
    except EmptyBatch as e:
        console.print(f"[yellow]⚠ {e}[/yellow]")
        raise typer.Exit(1)
    except EngineError as e:
        log_exception(e, context)
        raise typer.Exit(1)


@contextmanager
def cancel_on_interrupt(cancel: asyncio.Event) -> Iterator[asyncio.Event]:
    """Turn Ctrl+C into a cooperative cancellation signal while streaming"""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel.set)
        installed = True
    except (NotImplementedError, RuntimeError) as e:
        logger.debug("SIGINT handler not installed: %s", e)
        installed = False
    try:
        yield cancel
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


def make_resolver(engine: EngineClient, state: AppState, kind: ResourceKind,
                  interactive: bool, action: str) -> Resolver:
    selector = state.selector_factory(f"Select {kind.plural} to {action}") if interactive else None
    return Resolver(engine, kind, selector)


async def resolve_and_run(engine: EngineClient, state: AppState, kind: ResourceKind, tokens: Sequence[str],
                          interactive: bool, operation: Operation, action: str) -> List[BatchOutcome]:
    """Resolve every token, then run the operation on the resolved handles.

    Unresolvable tokens become failed outcomes next to the batch results.
    Nothing is issued until every token, and any interactive pick, is done.
    """
    resolver = make_resolver(engine, state, kind, interactive, action)
    handles, failures = await resolver.resolve_all(tokens)
    for failure in failures:
        logger.debug("Could not resolve %s: %s", failure.handle.id, failure.error)

    outcomes: List[BatchOutcome] = []
    if handles:
        with create_progress_context() as progress:
            task = progress.add_task(f"{action.capitalize()} {len(handles)} {kind.plural}...", total=len(handles))
            executor = BatchExecutor(engine, state.settings.concurrency,
                                     on_outcome=lambda outcome: progress.advance(task))
            outcomes = await executor.run_sorted(handles, operation)
    return outcomes + failures


def exit_for(outcomes: Sequence[BatchOutcome]) -> None:
    """Exit non-zero when any outcome failed"""
    if any(not o.ok for o in outcomes):
        raise typer.Exit(1)

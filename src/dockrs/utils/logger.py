"""
Logging utilities for the CLI
"""

import logging
import traceback
from typing import List

from rich.console import Console
from rich.logging import RichHandler

from ..core.errors import EngineError, ErrorKind

console = Console(stderr=True)

# Global debug flag
_DEBUG_MODE = False

DEBUG_TIPS = {
    ErrorKind.DAEMON_UNREACHABLE: [
        "Check that the Docker daemon is running",
        "Verify DOCKER_HOST / DOCKRS_DOCKER_HOST and the socket permissions",
    ],
    ErrorKind.PERMISSION_DENIED: [
        "Your user may need to be in the 'docker' group",
        "Check the TLS material when talking to a remote daemon",
    ],
    ErrorKind.CONFLICT: [
        "The resource is in use or running; retry with --force",
    ],
    ErrorKind.AMBIGUOUS: [
        "Use a longer id prefix or the exact name",
        "Pass --interactive to pick from the matches",
    ],
    ErrorKind.NOT_FOUND: [
        "List the resources with 'dockrs ps -a', 'dockrs images', 'dockrs volumes' or 'dockrs networks'",
    ],
}


def set_debug_mode(debug: bool):
    """Enable or disable debug mode globally"""
    global _DEBUG_MODE
    _DEBUG_MODE = debug

    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
    else:
        logging.getLogger().setLevel(logging.WARNING)


def is_debug_mode() -> bool:
    """Check if debug mode is enabled"""
    return _DEBUG_MODE


def setup_logging(debug: bool = False):
    """Setup logging configuration"""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[
            RichHandler(
                console=console,
                rich_tracebacks=True,
                tracebacks_show_locals=debug,
                show_time=debug,
                show_path=debug
            )
        ],
        force=True,
    )
    set_debug_mode(debug)

    # Set levels for noisy third-party libraries
    logging.getLogger("docker").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the dockrs namespace, e.g. get_logger("batch")"""
    return logging.getLogger(f"dockrs.{name}")


def get_debug_tips(e: Exception) -> List[str]:
    """Troubleshooting hints for an error"""
    if isinstance(e, EngineError):
        return DEBUG_TIPS.get(e.kind, [])
    return []


def log_exception(e: Exception, context: str = ""):
    """Print an error with context, and the stack trace in debug mode"""
    if context:
        console.print(f"[red]❌ {context}[/red]")

    if isinstance(e, EngineError):
        console.print(f"[red]Error ({e.kind.value}): {e.message}[/red]")
    else:
        console.print(f"[red]Error: {type(e).__name__}: {e}[/red]")

    if is_debug_mode():
        console.print("[dim]Stack trace:[/dim]")
        console.print("".join(traceback.format_tb(e.__traceback__)), style="dim", markup=False)
        for tip in get_debug_tips(e):
            console.print(f"[yellow]💡 {tip}[/yellow]")
    else:
        console.print("[yellow]💡 Tip: Run with --debug flag for detailed stack trace[/yellow]")


def debug_print(message: str):
    """Print debug message only in debug mode"""
    if _DEBUG_MODE:
        console.print(f"[dim cyan]DEBUG: {message}[/dim cyan]")

"""
Display utilities for CLI
Handles tables, progress bars, and formatted output
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich.text import Text

from ..core.models import BatchOutcome, ResourceDescriptor, ResourceKind, StreamEvent

console = Console()

SOURCE_COLORS = ["cyan", "magenta", "green", "yellow", "blue", "bright_cyan", "bright_magenta", "bright_green"]

# Decimal units, as the daemon reports them
BYTES = 1000
KILOBYTES = 1000 ** 2
MEGABYTES = 1000 ** 3
GIGABYTES = 1000 ** 4
TERABYTES = 1000 ** 5


def show_banner():
    """Show CLI banner"""
    console.print("""
╔══════════════════════════════════════════╗
║   🐳  dockrs                             ║
║   Inspect and manage Docker resources    ║
╚══════════════════════════════════════════╝
""")


def show_quick_help():
    """Show quick command reference"""
    console.print("""
[cyan]Quick Commands:[/cyan]
  dockrs ps -a                 List all containers
  dockrs images                List images
  dockrs stop <ref>...         Stop containers
  dockrs rm -i                 Pick containers to remove
  dockrs logs -f <ref>...      Follow merged container logs
  dockrs events                Watch daemon events
  dockrs stats                 Live resource usage
  dockrs --help                Full help
""")


def format_size(size: Optional[int]) -> str:
    """1125 -> 1.12kB"""
    if size is None:
        return "-"
    if size <= BYTES:
        return f"{size}B"
    if size <= KILOBYTES:
        return f"{size / BYTES:.2f}kB"
    if size <= MEGABYTES:
        return f"{size / KILOBYTES:.2f}MB"
    if size <= GIGABYTES:
        return f"{size / MEGABYTES:.2f}GB"
    if size <= TERABYTES:
        return f"{size / GIGABYTES:.2f}TB"
    return f"{size / TERABYTES:.2f}PB"


def format_created(created: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Age of a resource in minutes, e.g. '42 minutes ago'"""
    if created is None:
        return ""
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    minutes = int((now - created).total_seconds() // 60)
    return f"{minutes} minutes ago"


def format_container_status(status: str, is_running: bool) -> str:
    """Format container status with emoji and color"""
    status_emoji = "▶" if is_running else "⏹"
    status_color = "green" if is_running else "red"
    return f"[{status_color}]{status_emoji} {status}[/{status_color}]"


def create_ps_table(size: bool = False) -> Table:
    """Create a table for the ps command"""
    table = Table(box=None, pad_edge=False)
    table.add_column("CONTAINER ID", style="cyan", no_wrap=True)
    table.add_column("IMAGE", style="blue")
    table.add_column("COMMAND", overflow="ellipsis", max_width=30)
    table.add_column("CREATED")
    table.add_column("STATUS")
    table.add_column("PORTS", style="magenta")
    table.add_column("NAMES", style="cyan")
    if size:
        table.add_column("SIZE")
    return table


def container_row(descriptor: ResourceDescriptor, size: bool = False) -> List[str]:
    details = descriptor.details
    row = [
        descriptor.handle.short_id,
        details.get("image", ""),
        f'"{details.get("command", "")}"',
        format_created(descriptor.created),
        format_container_status(details.get("status") or descriptor.status, descriptor.running),
        details.get("ports", ""),
        ", ".join(descriptor.names),
    ]
    if size:
        virtual = descriptor.attrs.get("SizeRootFs")
        row.append(f"{format_size(descriptor.size or 0)} (virtual {format_size(virtual or 0)})")
    return row


def create_resource_table(kind: ResourceKind) -> Table:
    """Create a listing table for images, volumes or networks"""
    table = Table(box=None, pad_edge=False)
    if kind == ResourceKind.IMAGE:
        columns = ["IMAGE ID", "TAGS", "CREATED", "SIZE"]
    elif kind == ResourceKind.VOLUME:
        columns = ["VOLUME NAME", "DRIVER", "MOUNTPOINT"]
    elif kind == ResourceKind.NETWORK:
        columns = ["NETWORK ID", "NAME", "DRIVER", "SCOPE"]
    else:
        return create_ps_table()
    for i, column in enumerate(columns):
        table.add_column(column, style="cyan" if i == 0 else None, no_wrap=i == 0)
    return table


def resource_row(descriptor: ResourceDescriptor) -> List[str]:
    details = descriptor.details
    if descriptor.kind == ResourceKind.IMAGE:
        return [descriptor.handle.short_id, details.get("tags", ""), format_created(descriptor.created),
                format_size(descriptor.size)]
    if descriptor.kind == ResourceKind.VOLUME:
        return [descriptor.name, details.get("driver", ""), details.get("mountpoint", "")]
    if descriptor.kind == ResourceKind.NETWORK:
        return [descriptor.handle.short_id, descriptor.name, details.get("driver", ""), details.get("scope", "")]
    return container_row(descriptor)


def show_outcomes(outcomes: Iterable[BatchOutcome], action: str):
    """Show one row per handle with its result and the cause of any failure"""
    table = Table(title=f"{action.capitalize()} results")
    table.add_column("Kind", style="dim")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Result")
    table.add_column("Cause", style="red")

    success = failed = 0
    for outcome in outcomes:
        handle = outcome.handle
        if outcome.ok:
            success += 1
            table.add_row(handle.kind.value, handle.short_id, handle.display_name, "[green]✓ ok[/green]", "")
        else:
            failed += 1
            table.add_row(handle.kind.value, handle.short_id, handle.display_name,
                          f"[red]❌ {outcome.error.kind.value}[/red]", Text(outcome.error.message))

    console.print(table)
    show_operation_summary(success, failed)


def show_operation_summary(success: int, failed: int):
    """Show operation summary"""
    console.print()
    if success > 0:
        console.print(f"[green]✓ Successfully completed: {success}[/green]")
    if failed > 0:
        console.print(f"[red]❌ Failed: {failed}[/red]")


def create_progress_context():
    """Create a progress context manager"""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        console=console,
        transient=True
    )


def show_info_table(data: Dict[str, str], title: str = "Information"):
    """Show information in a table format"""
    table = Table(show_header=False, box=None)
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="white")

    for key, value in data.items():
        table.add_row(key, value)

    console.print(f"\n[cyan bold]{title}[/cyan bold]\n")
    console.print(table)
    console.print()


def descriptor_info(descriptor: ResourceDescriptor) -> Dict[str, str]:
    info = {"ID": descriptor.handle.id}
    if descriptor.names:
        info["Names"] = ", ".join(descriptor.names)
    if descriptor.status:
        info["Status"] = descriptor.status
    if descriptor.created:
        info["Created"] = descriptor.created.isoformat(timespec="seconds")
    if descriptor.size is not None:
        info["Size"] = format_size(descriptor.size)
    for key, value in descriptor.details.items():
        if value:
            info[key.replace("_", " ").capitalize()] = value
    return info


def source_color(name: str, palette: List[str] = SOURCE_COLORS) -> str:
    return palette[sum(name.encode()) % len(palette)]


def format_log_line(event: StreamEvent, width: int = 0) -> Text:
    """Prefix a log chunk with its source, or describe the stream's failure"""
    name = event.source.label
    prefix = Text(f"{name.ljust(width)} | ", style=source_color(name))
    if event.failed:
        return prefix + Text(f"stream failed ({event.error.kind.value}): {event.error.message}", style="red")
    return prefix + Text(event.text.rstrip("\n"))


def format_event(event: StreamEvent) -> Text:
    """One daemon event: time, kind, action and the resource it concerns"""
    payload = event.payload if isinstance(event.payload, dict) else {}
    when = datetime.fromtimestamp(event.timestamp).strftime("%Y-%m-%d %H:%M:%S")
    action = payload.get("Action") or payload.get("status") or event.text
    line = Text(f"{when} ", style="dim")
    line.append(f"{event.source.kind.value} ", style="blue")
    line.append(f"{action} ", style="bold")
    line.append(event.source.short_id, style="cyan")
    if event.source.display_name:
        line.append(f" ({event.source.display_name})")
    return line


def cpu_percent(stats: Dict[str, Any]) -> Optional[float]:
    cpu = stats.get("cpu_stats") or {}
    precpu = stats.get("precpu_stats") or {}
    try:
        cpu_delta = cpu["cpu_usage"]["total_usage"] - precpu["cpu_usage"]["total_usage"]
        system_delta = cpu["system_cpu_usage"] - precpu["system_cpu_usage"]
    except (KeyError, TypeError):
        return None
    if system_delta <= 0 or cpu_delta < 0:
        return 0.0
    online = cpu.get("online_cpus") or len(cpu["cpu_usage"].get("percpu_usage") or []) or 1
    return cpu_delta / system_delta * online * 100.0


def memory_usage(stats: Dict[str, Any]) -> str:
    memory = stats.get("memory_stats") or {}
    usage = memory.get("usage")
    if usage is None:
        return "-"
    cache = (memory.get("stats") or {}).get("inactive_file", 0)
    limit = memory.get("limit")
    used = format_size(usage - cache)
    return f"{used} / {format_size(limit)}" if limit else used


def network_io(stats: Dict[str, Any]) -> str:
    networks = stats.get("networks") or {}
    if not networks:
        return "-"
    rx = sum(n.get("rx_bytes", 0) for n in networks.values())
    tx = sum(n.get("tx_bytes", 0) for n in networks.values())
    return f"{format_size(rx)} / {format_size(tx)}"


def block_io(stats: Dict[str, Any]) -> str:
    entries = (stats.get("blkio_stats") or {}).get("io_service_bytes_recursive") or []
    if not entries:
        return "-"
    read = sum(e.get("value", 0) for e in entries if e.get("op", "").lower() == "read")
    write = sum(e.get("value", 0) for e in entries if e.get("op", "").lower() == "write")
    return f"{format_size(read)} / {format_size(write)}"


def create_stats_table(samples: Dict[Any, StreamEvent]) -> Table:
    """Live table of the latest stats sample per container"""
    table = Table(box=None, pad_edge=False)
    for column in ("CONTAINER ID", "NAME", "CPU %", "MEM USAGE / LIMIT", "NET I/O", "BLOCK I/O"):
        table.add_column(column, style="cyan" if column == "CONTAINER ID" else None)

    for handle, event in samples.items():
        if event.failed:
            table.add_row(handle.short_id, handle.display_name, "[red]error[/red]", Text(event.error.message), "", "")
            continue
        stats = event.payload if isinstance(event.payload, dict) else {}
        cpu = cpu_percent(stats)
        table.add_row(
            handle.short_id,
            handle.display_name,
            f"{cpu:.2f}%" if cpu is not None else "-",
            memory_usage(stats),
            network_io(stats),
            block_io(stats),
        )
    return table

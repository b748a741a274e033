"""
Configuration management for the CLI
Defaults, optional YAML config file and DOCKRS_* environment overrides
"""

import os
import yaml
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional
import typer
from rich.console import Console

console = Console(stderr=True)

DEFAULT_CONFIG_FILE = Path.home() / ".config" / "dockrs" / "config.yml"
ENV_PREFIX = "DOCKRS_"


def config_path() -> Path:
    """Location of the YAML config file, honouring $DOCKRS_CONFIG"""
    override = os.getenv("DOCKRS_CONFIG")
    return Path(override).expanduser() if override else DEFAULT_CONFIG_FILE


@dataclass(frozen=True)
class Settings:
    concurrency: int = 8
    stop_timeout: int = 10
    api_timeout: int = 60
    docker_host: Optional[str] = None
    log_tail: str = "all"
    stats_interval: float = 1.0

    def validate(self) -> "Settings":
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {self.concurrency}")
        if self.stop_timeout < 0:
            raise ValueError(f"stop_timeout must not be negative, got {self.stop_timeout}")
        if self.api_timeout <= 0:
            raise ValueError(f"api_timeout must be positive, got {self.api_timeout}")
        if self.stats_interval <= 0:
            raise ValueError(f"stats_interval must be positive, got {self.stats_interval}")
        if self.log_tail != "all" and not str(self.log_tail).isdigit():
            raise ValueError(f"log_tail must be 'all' or a number of lines, got {self.log_tail!r}")
        return self

    def with_overrides(self, **overrides: Any) -> "Settings":
        """Return a copy with the non-None overrides applied"""
        values = {k: v for k, v in overrides.items() if v is not None}
        if not values:
            return self
        return replace(self, **values).validate()

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw file/env value to the type of the Settings field"""
    if value is None:
        return None
    if name in ("concurrency", "stop_timeout", "api_timeout"):
        return int(value)
    if name == "stats_interval":
        return float(value)
    return str(value)


def _load_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}

    try:
        with path.open("r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        console.print(f"[red]❌ Failed to parse {path}: {e}[/red]")
        raise typer.Exit(1)

    if data is None:
        return {}
    if not isinstance(data, dict):
        console.print(f"[red]❌ {path} must contain a mapping of settings[/red]")
        raise typer.Exit(1)

    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(data) - known)
    if unknown:
        console.print(f"[yellow]⚠ Ignoring unknown settings in {path}: {', '.join(unknown)}[/yellow]")
    return {k: v for k, v in data.items() if k in known}


def _load_env() -> Dict[str, Any]:
    values = {}
    for f in fields(Settings):
        raw = os.getenv(f"{ENV_PREFIX}{f.name.upper()}")
        if raw is not None and raw != "":
            values[f.name] = raw
    return values


def load_settings(path: Optional[Path] = None) -> Settings:
    """Load settings: defaults, then the YAML file, then the environment"""
    path = path or config_path()
    raw = _load_file(path)
    raw.update(_load_env())

    try:
        values = {name: _coerce(name, value) for name, value in raw.items()}
        return Settings(**values).validate()
    except (TypeError, ValueError) as e:
        console.print(f"[red]❌ Invalid configuration: {e}[/red]")
        raise typer.Exit(1)

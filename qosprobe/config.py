"""Configuration loading helpers for the delivery QoS probe."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import yaml


@dataclass
class PathsConfig:
    data_dir: Path
    logs_dir: Path


@dataclass
class ProbeConfig:
    name: str = "probe"
    payload_size: int = 64
    start_sequence: int = 0
    count: int = 10
    interval_seconds: float = 0.0


@dataclass
class HistoryConfig:
    max_entries: Optional[int] = None
    retention_seconds: Optional[float] = None


@dataclass
class TransportConfig:
    kind: str = "loopback"
    url: Optional[str] = None
    timeout_seconds: float = 5.0
    loss_rate: float = 0.0
    duplicate_rate: float = 0.0
    reorder_rate: float = 0.0
    seed: Optional[int] = None


@dataclass
class WebConfig:
    host: str = "0.0.0.0"
    port: int = 8000
    secret_key: str = "change-me"
    reverse_proxy_headers: bool = False


@dataclass
class SchedulerConfig:
    enabled: bool = False
    interval_minutes: int = 30


@dataclass
class ExportConfig:
    csv_name: str = "deliveries.csv"


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file_name: str = "qosprobe.log"
    max_bytes: int = 5 * 1024 * 1024
    backup_count: int = 5
    library_level: str = "WARNING"


@dataclass
class AppConfig:
    root_dir: Path
    paths: PathsConfig
    probe: ProbeConfig = field(default_factory=ProbeConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    transport: TransportConfig = field(default_factory=TransportConfig)
    web: WebConfig = field(default_factory=WebConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _as_path(base: Path, maybe_path: Optional[str]) -> Path:
    if not maybe_path:
        raise ValueError("Path configuration entries cannot be empty")
    path = (base / maybe_path).resolve()
    path.mkdir(parents=True, exist_ok=True)
    return path


def _build_config(root_dir: Path, data: dict) -> AppConfig:
    paths_data = data.get("paths", {})
    paths = PathsConfig(
        data_dir=_as_path(root_dir, paths_data.get("data_dir", "data")),
        logs_dir=_as_path(root_dir, paths_data.get("logs_dir", "logs")),
    )

    config = AppConfig(
        root_dir=root_dir,
        paths=paths,
        probe=ProbeConfig(**data.get("probe", {})),
        history=HistoryConfig(**data.get("history", {})),
        transport=TransportConfig(**data.get("transport", {})),
        web=WebConfig(**data.get("web", {})),
        scheduler=SchedulerConfig(**data.get("scheduler", {})),
        export=ExportConfig(**data.get("export", {})),
        logging=LoggingConfig(**data.get("logging", {})),
    )

    if config.probe.payload_size < 0:
        raise ValueError("probe.payload_size must be non-negative")
    if config.transport.kind not in ("loopback", "http"):
        raise ValueError(f"Unknown transport kind {config.transport.kind!r}")
    if config.transport.kind == "http" and not config.transport.url:
        raise ValueError("transport.url is required for the http transport")

    return config


def load_config(path: Optional[str] = None) -> AppConfig:
    """Load application configuration from YAML file."""

    root_dir = Path(path).resolve().parent if path else Path.cwd()
    source_path = Path(path) if path else root_dir / "config.yaml"
    if not source_path.exists():
        raise FileNotFoundError(f"Missing configuration file at {source_path}")

    with source_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    return _build_config(root_dir, data)


def default_config(root_dir: Optional[Path] = None) -> AppConfig:
    """Configuration with every section at its defaults."""

    return _build_config(Path(root_dir).resolve() if root_dir else Path.cwd(), {})

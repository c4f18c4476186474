"""Configuration system for mprober."""

from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path

import tomlkit

PROC_ROOT = Path("/proc")
SYS_ROOT = Path("/sys")
DEV_ROOT = Path("/dev")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass
class PathsConfig:
    """Filesystem roots the parsers read from."""

    proc_root: str = str(PROC_ROOT)
    sys_root: str = str(SYS_ROOT)
    dev_root: str = str(DEV_ROOT)


@dataclass
class SamplingConfig:
    """Defaults for rate and utilization commands."""

    interval: float = 1.0  # Seconds between the two snapshots


@dataclass
class LoggingConfig:
    """Structured log file configuration."""

    level: str = "WARNING"
    log_max_bytes: int = 5 * 1024 * 1024  # Max log file size (5MB)
    log_backup_count: int = 3  # Number of backup log files to keep


def _dataclass_to_table(obj: object) -> tomlkit.items.Table:
    """Convert a dataclass instance to a tomlkit Table recursively."""
    table = tomlkit.table()
    for f in fields(obj):  # type: ignore[arg-type]
        value = getattr(obj, f.name)
        if is_dataclass(value) and not isinstance(value, type):
            table.add(f.name, _dataclass_to_table(value))
        else:
            table.add(f.name, value)
    return table


@dataclass
class Config:
    """Main configuration container."""

    paths: PathsConfig = field(default_factory=PathsConfig)
    sampling: SamplingConfig = field(default_factory=SamplingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def config_dir(self) -> Path:
        """Configuration directory."""
        return Path.home() / ".config" / "mprober"

    @property
    def config_path(self) -> Path:
        """Path to config file."""
        return self.config_dir / "config.toml"

    @property
    def state_dir(self) -> Path:
        """State directory for logs."""
        return Path.home() / ".local" / "state" / "mprober"

    @property
    def log_path(self) -> Path:
        """JSON log path."""
        return self.state_dir / "mprober.log"

    @property
    def proc_root(self) -> Path:
        return Path(self.paths.proc_root)

    @property
    def sys_root(self) -> Path:
        return Path(self.paths.sys_root)

    @property
    def dev_root(self) -> Path:
        return Path(self.paths.dev_root)

    def save(self, path: Path | None = None) -> None:
        """Save config to TOML file."""
        path = path or self.config_path
        path.parent.mkdir(parents=True, exist_ok=True)

        doc = tomlkit.document()
        for name in ("paths", "sampling", "logging"):
            doc.add(name, _dataclass_to_table(getattr(self, name)))
            doc.add(tomlkit.nl())

        path.write_text(tomlkit.dumps(doc))

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Load config from TOML file, returning defaults for missing values.

        All defaults come from the dataclass definitions.
        """
        defaults = cls()
        path = path or defaults.config_path
        if not path.exists():
            return defaults

        try:
            with open(path) as f:
                data = tomlkit.load(f)
        except tomlkit.exceptions.TOMLKitError as e:
            raise ValueError(f"Failed to parse config file {path}: {e}") from e

        return cls(
            paths=_load_paths_config(data.get("paths", {})),
            sampling=_load_sampling_config(data.get("sampling", {})),
            logging=_load_logging_config(data.get("logging", {})),
        )


def _load_paths_config(data: dict) -> PathsConfig:
    """Load filesystem roots, using dataclass defaults for missing fields."""
    d = PathsConfig()
    return PathsConfig(
        proc_root=str(data.get("proc_root", d.proc_root)),
        sys_root=str(data.get("sys_root", d.sys_root)),
        dev_root=str(data.get("dev_root", d.dev_root)),
    )


def _load_sampling_config(data: dict) -> SamplingConfig:
    """Load sampling config from TOML data."""
    d = SamplingConfig()
    interval = float(data.get("interval", d.interval))
    if interval <= 0:
        raise ValueError(f"Invalid sampling.interval: {interval!r}. Must be positive")
    return SamplingConfig(interval=interval)


def _load_logging_config(data: dict) -> LoggingConfig:
    """Load logging config from TOML data."""
    d = LoggingConfig()
    level = str(data.get("level", d.level)).upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"Invalid logging.level: {level!r}. Must be one of {LOG_LEVELS}")
    return LoggingConfig(
        level=level,
        log_max_bytes=data.get("log_max_bytes", d.log_max_bytes),
        log_backup_count=data.get("log_backup_count", d.log_backup_count),
    )

"""Configuration system for taskman."""

import math
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path

import tomlkit

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR"}


@dataclass
class SamplingConfig:
    """Process sampling configuration."""

    refresh_interval: float = 1.0  # Seconds between provider refreshes
    tick_interval: float = 0.25  # Seconds between UI ticks
    tie_break_pid: bool = False  # Break sort ties by ascending PID


@dataclass
class LoggingConfig:
    """Log file configuration."""

    level: str = "INFO"
    max_bytes: int = 2 * 1024 * 1024  # Max log file size (2MB)
    backup_count: int = 3  # Number of rotated files to keep


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

    sampling: SamplingConfig = field(default_factory=SamplingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def config_dir(self) -> Path:
        """Configuration directory."""
        return Path.home() / ".config" / "taskman"

    @property
    def config_path(self) -> Path:
        """Path to config file."""
        return self.config_dir / "config.toml"

    @property
    def state_dir(self) -> Path:
        """State directory for the view state and logs."""
        return Path.home() / ".local" / "state" / "taskman"

    @property
    def view_state_path(self) -> Path:
        """Persisted tab and sort selection."""
        return self.state_dir / "view_state.json"

    @property
    def log_path(self) -> Path:
        """Log file path."""
        return self.state_dir / "taskman.log"

    def save(self, path: Path | None = None) -> None:
        """Save config to TOML file."""
        path = path or self.config_path
        path.parent.mkdir(parents=True, exist_ok=True)

        doc = tomlkit.document()
        for name in ("sampling", "logging"):
            doc.add(name, _dataclass_to_table(getattr(self, name)))
            doc.add(tomlkit.nl())

        path.write_text(tomlkit.dumps(doc))

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Load config from TOML file, returning defaults for missing values.

        Raises:
            ValueError: If the file cannot be parsed or holds invalid values.
        """
        defaults = cls()
        path = path or defaults.config_path
        if not path.exists():
            return defaults

        try:
            with open(path) as f:
                data = tomlkit.load(f).unwrap()
        except tomlkit.exceptions.TOMLKitError as e:
            raise ValueError(f"Failed to parse config file {path}: {e}") from e

        return cls(
            sampling=_load_sampling_config(_section(data, "sampling")),
            logging=_load_logging_config(_section(data, "logging")),
        )


def _section(data: dict, name: str) -> dict:
    """Return a config table, or an empty one if the file leaves it out."""
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ValueError(f"[{name}] must be a table, got {type(section).__name__}")
    return section


def _number(data: dict, key: str, default: float) -> float:
    value = data.get(key, default)
    # bool is an int subclass, but `true` is never a valid interval
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number, got {value!r}")
    if not math.isfinite(value):
        raise ValueError(f"{key} must be finite, got {value}")
    return value


def _flag(data: dict, key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ValueError(f"{key} must be true or false, got {value!r}")
    return bool(value)


def _load_sampling_config(data: dict) -> SamplingConfig:
    """Load sampling config from TOML data, using dataclass defaults for missing fields."""
    defaults = SamplingConfig()

    refresh_interval = float(_number(data, "refresh_interval", defaults.refresh_interval))
    tick_interval = float(_number(data, "tick_interval", defaults.tick_interval))

    if refresh_interval <= 0:
        raise ValueError(f"refresh_interval must be > 0, got {refresh_interval}")
    if tick_interval <= 0:
        raise ValueError(f"tick_interval must be > 0, got {tick_interval}")

    return SamplingConfig(
        refresh_interval=refresh_interval,
        tick_interval=tick_interval,
        tie_break_pid=_flag(data, "tie_break_pid", defaults.tie_break_pid),
    )


def _load_logging_config(data: dict) -> LoggingConfig:
    """Load logging config from TOML data, using dataclass defaults for missing fields."""
    defaults = LoggingConfig()

    level = data.get("level", defaults.level)
    if not isinstance(level, str) or level.upper() not in _LOG_LEVELS:
        raise ValueError(f"Invalid log level: {level!r}. Must be one of {sorted(_LOG_LEVELS)}")
    level = level.upper()

    max_bytes = _number(data, "max_bytes", defaults.max_bytes)
    backup_count = _number(data, "backup_count", defaults.backup_count)
    if not isinstance(max_bytes, int) or max_bytes < 1:
        raise ValueError(f"max_bytes must be an integer >= 1, got {max_bytes}")
    if not isinstance(backup_count, int) or backup_count < 0:
        raise ValueError(f"backup_count must be an integer >= 0, got {backup_count}")

    return LoggingConfig(level=level, max_bytes=int(max_bytes), backup_count=int(backup_count))

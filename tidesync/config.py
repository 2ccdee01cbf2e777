"""
tidesync Configuration Management.

Handles loading, saving, and validating configuration from various sources:
- Default values
- Configuration files (TOML)
- Environment variables

This is the daemon's own configuration (paths, database, probe
intervals, logging). Per-job configuration lives in the database and is
managed by the engine's ConfigStore.
"""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, List

import yaml

# Try to import tomllib (Python 3.11+) or tomli as fallback
try:
    import tomllib
except ImportError:
    try:
        import tomli as tomllib  # type: ignore
    except ImportError:
        tomllib = None  # type: ignore


# Default configuration directory
DEFAULT_CONFIG_DIR = Path.home() / ".config" / "tidesync"
DEFAULT_CONFIG_FILE = "config.toml"
DEFAULT_DATA_DIR = Path.home() / ".local" / "share" / "tidesync"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ValidationError:
    """Validation error for configuration."""
    field: str
    message: str
    severity: str  # "error" or "warning"

    def __str__(self) -> str:
        return f"[{self.severity.upper()}] {self.field}: {self.message}"


@dataclass
class SchedulerConfig:
    """Configuration for the scheduling engine."""

    # Host job registry, as "module:attribute"
    app: str = ""

    # Issue start() when the daemon comes up
    autostart: bool = True

    # Retry backoff policy (milliseconds)
    base_retry_span_ms: int = 500
    min_retry_cap_ms: int = 5000


@dataclass
class NetworkConfig:
    """Configuration for network reachability probing."""

    poll_interval: int = 30  # seconds
    ignore_interfaces: List[str] = field(default_factory=lambda: ["lo"])


@dataclass
class PowerConfig:
    """Configuration for power state probing."""

    poll_interval: int = 60  # seconds
    # Machines without a battery are treated as always on mains power
    assume_connected_without_battery: bool = True


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[Path] = None


@dataclass
class TidesyncConfig:
    """Main configuration container for tidesync."""

    # Paths
    config_dir: Path = DEFAULT_CONFIG_DIR
    data_dir: Path = DEFAULT_DATA_DIR

    # Sub-configurations
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    power: PowerConfig = field(default_factory=PowerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Database
    database_url: str = ""

    def __post_init__(self):
        """Initialize derived values."""
        if not self.database_url:
            self.database_url = f"sqlite:///{self.data_dir}/tidesync.db"

    @property
    def pid_file(self) -> Path:
        """Path of the daemon PID file."""
        return self.data_dir / "tidesync.pid"


def load_config(
    config_path: Optional[Path] = None,
    env_prefix: str = "TIDESYNC_"
) -> TidesyncConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file
    3. Default values

    Args:
        config_path: Path to config file (default: ~/.config/tidesync/config.toml)
        env_prefix: Prefix for environment variables

    Returns:
        Loaded configuration
    """
    config = TidesyncConfig()

    # Determine config file path
    if config_path is None:
        # Check for environment variable override
        env_config_dir = os.environ.get(f"{env_prefix}CONFIG_DIR")
        if env_config_dir:
            config_path = Path(env_config_dir) / DEFAULT_CONFIG_FILE
        else:
            config_path = DEFAULT_CONFIG_DIR / DEFAULT_CONFIG_FILE

    # Load from file if exists
    if config_path.exists() and tomllib is not None:
        config = _load_from_file(config_path, config)

    # Override with environment variables
    config = _load_from_env(config, env_prefix)

    return config


def _load_from_file(path: Path, config: TidesyncConfig) -> TidesyncConfig:
    """Load configuration from a TOML file."""
    if tomllib is None:
        return config

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)

        for section in ("scheduler", "network", "power", "logging"):
            if section in data:
                section_obj = getattr(config, section)
                for key, value in data[section].items():
                    if hasattr(section_obj, key):
                        setattr(section_obj, key, value)

        if config.logging.file is not None:
            config.logging.file = Path(config.logging.file)

        # Top-level settings
        if "config_dir" in data:
            config.config_dir = Path(data["config_dir"])
        if "data_dir" in data:
            config.data_dir = Path(data["data_dir"])
            if "database_url" not in data:
                config.database_url = f"sqlite:///{config.data_dir}/tidesync.db"
        if "database_url" in data:
            config.database_url = data["database_url"]

    except Exception as e:
        print(f"Warning: Failed to load config from {path}: {e}")

    return config


def _parse_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _load_from_env(config: TidesyncConfig, prefix: str) -> TidesyncConfig:
    """Load configuration from environment variables."""

    # Scheduler settings
    if env_val := os.environ.get(f"{prefix}APP"):
        config.scheduler.app = env_val
    if env_val := os.environ.get(f"{prefix}AUTOSTART"):
        config.scheduler.autostart = _parse_bool(env_val)
    if env_val := os.environ.get(f"{prefix}BASE_RETRY_SPAN_MS"):
        config.scheduler.base_retry_span_ms = int(env_val)
    if env_val := os.environ.get(f"{prefix}MIN_RETRY_CAP_MS"):
        config.scheduler.min_retry_cap_ms = int(env_val)

    # Probe settings
    if env_val := os.environ.get(f"{prefix}NETWORK_POLL_INTERVAL"):
        config.network.poll_interval = int(env_val)
    if env_val := os.environ.get(f"{prefix}POWER_POLL_INTERVAL"):
        config.power.poll_interval = int(env_val)

    # Logging settings
    if env_val := os.environ.get(f"{prefix}LOG_LEVEL"):
        config.logging.level = env_val.upper()

    # Paths
    if env_val := os.environ.get(f"{prefix}CONFIG_DIR"):
        config.config_dir = Path(env_val)
    if env_val := os.environ.get(f"{prefix}DATA_DIR"):
        config.data_dir = Path(env_val)
        config.database_url = f"sqlite:///{config.data_dir}/tidesync.db"
    if env_val := os.environ.get(f"{prefix}DATABASE_URL"):
        config.database_url = env_val

    return config


def _toml_list(values: List[str]) -> str:
    return "[" + ", ".join(f'"{v}"' for v in values) + "]"


def save_config(config: TidesyncConfig, path: Optional[Path] = None) -> None:
    """
    Save configuration to a TOML file.

    Args:
        config: Configuration to save
        path: Path to save to (default: config.config_dir / config.toml)
    """
    if path is None:
        path = config.config_dir / DEFAULT_CONFIG_FILE

    # Ensure directory exists
    path.parent.mkdir(parents=True, exist_ok=True)

    # Build TOML content
    lines = [
        "# tidesync configuration",
        "# Generated automatically - edit with care",
        "",
        f'config_dir = "{config.config_dir}"',
        f'data_dir = "{config.data_dir}"',
        f'database_url = "{config.database_url}"',
        "",
        "[scheduler]",
        f'app = "{config.scheduler.app}"',
        f"autostart = {str(config.scheduler.autostart).lower()}",
        f"base_retry_span_ms = {config.scheduler.base_retry_span_ms}",
        f"min_retry_cap_ms = {config.scheduler.min_retry_cap_ms}",
        "",
        "[network]",
        f"poll_interval = {config.network.poll_interval}",
        f"ignore_interfaces = {_toml_list(config.network.ignore_interfaces)}",
        "",
        "[power]",
        f"poll_interval = {config.power.poll_interval}",
        f"assume_connected_without_battery = {str(config.power.assume_connected_without_battery).lower()}",
        "",
        "[logging]",
        f'level = "{config.logging.level}"',
    ]

    if config.logging.file:
        lines.append(f'file = "{config.logging.file}"')

    with open(path, "w") as f:
        f.write("\n".join(lines) + "\n")


def ensure_directories(config: TidesyncConfig) -> None:
    """Ensure all required directories exist."""
    config.config_dir.mkdir(parents=True, exist_ok=True)
    config.data_dir.mkdir(parents=True, exist_ok=True)


def get_default_config() -> TidesyncConfig:
    """Get the default configuration."""
    return TidesyncConfig()


# Global configuration instance (lazy-loaded)
_global_config: Optional[TidesyncConfig] = None


def get_config() -> TidesyncConfig:
    """Get the global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = load_config()
    return _global_config


def set_config(config: TidesyncConfig) -> None:
    """Set the global configuration instance."""
    global _global_config
    _global_config = config


def clear_config_cache() -> None:
    """Clear the global configuration cache."""
    global _global_config
    _global_config = None


def _validate_app_target(target: str) -> bool:
    """Validate a "module:attribute" registry target."""
    return bool(re.match(r"^[A-Za-z_][\w.]*:[A-Za-z_][\w.]*$", target))


def validate_config(config: Optional[TidesyncConfig] = None) -> List[ValidationError]:
    """
    Validate configuration and return list of errors.

    Args:
        config: Configuration to validate (default: loaded from file)

    Returns:
        List of validation errors (empty if valid)
    """
    if config is None:
        config = load_config()

    errors: List[ValidationError] = []

    # Scheduler validation
    if not config.scheduler.app:
        errors.append(ValidationError(
            field="scheduler.app",
            message="No job registry configured. Pass --app to 'tidesync run'.",
            severity="warning"
        ))
    elif not _validate_app_target(config.scheduler.app):
        errors.append(ValidationError(
            field="scheduler.app",
            message=f"Expected 'module:attribute', got: {config.scheduler.app}",
            severity="error"
        ))

    if config.scheduler.base_retry_span_ms <= 0:
        errors.append(ValidationError(
            field="scheduler.base_retry_span_ms",
            message="Base retry span must be positive.",
            severity="error"
        ))

    if config.scheduler.min_retry_cap_ms < config.scheduler.base_retry_span_ms:
        errors.append(ValidationError(
            field="scheduler.min_retry_cap_ms",
            message="Minimum retry cap must not be below the base retry span.",
            severity="error"
        ))

    # Probe validation
    if config.network.poll_interval <= 0:
        errors.append(ValidationError(
            field="network.poll_interval",
            message="Poll interval must be positive.",
            severity="error"
        ))

    if config.power.poll_interval <= 0:
        errors.append(ValidationError(
            field="power.poll_interval",
            message="Poll interval must be positive.",
            severity="error"
        ))

    # Logging validation
    if config.logging.level.upper() not in LOG_LEVELS:
        errors.append(ValidationError(
            field="logging.level",
            message=f"Unknown log level: {config.logging.level}",
            severity="error"
        ))

    # Path validation
    if not config.config_dir.exists():
        errors.append(ValidationError(
            field="config_dir",
            message=f"Config directory does not exist: {config.config_dir}",
            severity="warning"
        ))

    if not config.data_dir.exists():
        errors.append(ValidationError(
            field="data_dir",
            message=f"Data directory does not exist: {config.data_dir}",
            severity="warning"
        ))

    # Check if the data directory is writable
    try:
        if config.data_dir.exists():
            test_file = config.data_dir / ".write_test"
            test_file.touch()
            test_file.unlink()
    except (PermissionError, OSError):
        errors.append(ValidationError(
            field="data_dir",
            message=f"Data directory is not writable: {config.data_dir}",
            severity="error"
        ))

    return errors


def config_to_dict(config: TidesyncConfig) -> dict[str, Any]:
    """
    Convert configuration to dictionary.

    Args:
        config: Configuration to convert

    Returns:
        Dictionary representation of config
    """
    return {
        "config_dir": str(config.config_dir),
        "data_dir": str(config.data_dir),
        "database_url": config.database_url,
        "scheduler": {
            "app": config.scheduler.app,
            "autostart": config.scheduler.autostart,
            "base_retry_span_ms": config.scheduler.base_retry_span_ms,
            "min_retry_cap_ms": config.scheduler.min_retry_cap_ms,
        },
        "network": {
            "poll_interval": config.network.poll_interval,
            "ignore_interfaces": list(config.network.ignore_interfaces),
        },
        "power": {
            "poll_interval": config.power.poll_interval,
            "assume_connected_without_battery": config.power.assume_connected_without_battery,
        },
        "logging": {
            "level": config.logging.level,
            "format": config.logging.format,
            "file": str(config.logging.file) if config.logging.file else None,
        },
    }


def export_config_yaml(config: TidesyncConfig) -> str:
    """
    Export configuration as YAML string.

    Args:
        config: Configuration to export

    Returns:
        YAML string representation of config
    """
    config_dict = config_to_dict(config)
    return yaml.dump(config_dict, default_flow_style=False, sort_keys=False, allow_unicode=True)


def export_config_json(config: TidesyncConfig) -> str:
    """
    Export configuration as JSON string.

    Args:
        config: Configuration to export

    Returns:
        JSON string representation of config
    """
    return json.dumps(config_to_dict(config), indent=2)

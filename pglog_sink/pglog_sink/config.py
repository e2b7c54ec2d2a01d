"""
Sink configuration.

Sources, in order of use:
    1. SinkConfig(...) built in code
    2. pglog.yaml (``sink:`` section), see load_config()
    3. Environment variables, see SinkConfig.from_env()

Validation happens here, at setup time. A config that fails validate()
never produces a sink.

Environment Variables:
    PGLOG_CONFIG: Path to a pglog.yaml / .json file
    PGLOG_CONNECTION_STRING: Database connection string (required)
    PGLOG_TABLE_NAME: Destination table (default "Logs")
    PGLOG_MINIMUM_LEVEL: Level name or number (default all levels)
    PGLOG_STORE_TIMESTAMP_IN_UTC: true/false
    PGLOG_BATCH_SIZE: 1..1000 (default 100)
    PGLOG_FLUSH_INTERVAL_MS: Time trigger interval (default 2000)
    PGLOG_SHUTDOWN_TIMEOUT_MS: Final flush bound (default 10000)
    PGLOG_MAX_QUEUE_SIZE: Optional bound on pending events
"""

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Union

import yaml

if TYPE_CHECKING:
    from pglog_sink.handler import LevelSwitch

logger = logging.getLogger(__name__)

MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 1000
CONFIG_FILENAME = "pglog.yaml"

_TRUE_VALUES = ("1", "true", "yes", "on")
_INT_FIELDS = ("batch_size", "flush_interval_ms", "shutdown_timeout_ms", "max_queue_size")
_OPTIONAL_FIELDS = ("max_queue_size",)


class ConfigurationError(ValueError):
    """Raised at setup time for invalid sink configuration."""


def parse_level(value: Union[int, str, None]) -> int:
    """
    Convert a level name or number to a numeric level.

    None means all levels (logging.NOTSET).

    Raises:
        ConfigurationError: Unknown level name
    """
    if value is None:
        return logging.NOTSET
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text.lstrip("-").isdigit():
        return int(text)
    if text.lower() in ("minimum", "all"):
        return logging.NOTSET
    if text.lower() == "verbose":
        return 5
    level = logging.getLevelName(text.upper())
    if not isinstance(level, int):
        raise ConfigurationError(f"Unknown log level: {value!r}")
    return level


@dataclass
class SinkConfig:
    """Configuration for a PostgreSQL batching sink."""
    connection_string: str = ""
    table_name: str = "Logs"
    minimum_level: Union[int, str] = logging.NOTSET
    store_timestamp_in_utc: bool = False
    batch_size: int = 100
    level_switch: Optional["LevelSwitch"] = None
    flush_interval_ms: int = 2000
    shutdown_timeout_ms: int = 10000
    max_queue_size: Optional[int] = None

    def validate(self) -> "SinkConfig":
        """
        Check the configuration.

        Returns:
            self, for chaining

        Raises:
            ConfigurationError: On the first invalid option
        """
        if not self.connection_string:
            raise ConfigurationError("connection_string is required")
        if not self.table_name:
            raise ConfigurationError("table_name must not be empty")
        if not isinstance(self.store_timestamp_in_utc, bool):
            raise ConfigurationError("store_timestamp_in_utc must be true or false")
        for name in _INT_FIELDS:
            value = getattr(self, name)
            if value is None and name in _OPTIONAL_FIELDS:
                continue
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"{name} must be an integer, got {value!r}")
        if not MIN_BATCH_SIZE <= self.batch_size <= MAX_BATCH_SIZE:
            raise ConfigurationError(
                f"batch_size must be between {MIN_BATCH_SIZE} and {MAX_BATCH_SIZE} inclusive, "
                f"got {self.batch_size}"
            )
        if self.flush_interval_ms <= 0:
            raise ConfigurationError("flush_interval_ms must be positive")
        if self.shutdown_timeout_ms < 0:
            raise ConfigurationError("shutdown_timeout_ms must not be negative")
        if self.max_queue_size is not None and self.max_queue_size <= 0:
            raise ConfigurationError("max_queue_size must be positive")
        parse_level(self.minimum_level)
        if self.level_switch is not None:
            from pglog_sink.handler import LevelSwitch
            if not isinstance(self.level_switch, LevelSwitch):
                raise ConfigurationError(
                    f"level_switch must be a LevelSwitch, got {type(self.level_switch).__name__}"
                )
        return self

    @property
    def level(self) -> int:
        """minimum_level as a number."""
        return parse_level(self.minimum_level)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SinkConfig":
        """
        Build from a mapping. Unknown keys are ignored.

        Quoted numbers and booleans (as YAML and JSON files may hold them)
        are converted.

        Raises:
            ConfigurationError: A value cannot be converted
        """
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        ignored = set(data) - known
        if ignored:
            logger.debug(f"Ignoring unknown sink options: {sorted(ignored)}")

        for name in _INT_FIELDS:
            value = values.get(name)
            if isinstance(value, str):
                if not value.strip() and name in _OPTIONAL_FIELDS:
                    values[name] = None
                    continue
                try:
                    values[name] = int(value)
                except ValueError as e:
                    raise ConfigurationError(f"{name} must be an integer, got {value!r}") from e
        utc = values.get("store_timestamp_in_utc")
        if isinstance(utc, str):
            values["store_timestamp_in_utc"] = utc.strip().lower() in _TRUE_VALUES
        return cls(**values)

    @classmethod
    def from_env(cls) -> "SinkConfig":
        """Create config from environment variables."""
        max_queue = os.environ.get("PGLOG_MAX_QUEUE_SIZE")
        try:
            return cls(
                connection_string=os.environ.get("PGLOG_CONNECTION_STRING", ""),
                table_name=os.environ.get("PGLOG_TABLE_NAME", "Logs"),
                minimum_level=os.environ.get("PGLOG_MINIMUM_LEVEL", logging.NOTSET),
                store_timestamp_in_utc=os.environ.get(
                    "PGLOG_STORE_TIMESTAMP_IN_UTC", "false"
                ).lower() in _TRUE_VALUES,
                batch_size=int(os.environ.get("PGLOG_BATCH_SIZE", "100")),
                flush_interval_ms=int(os.environ.get("PGLOG_FLUSH_INTERVAL_MS", "2000")),
                shutdown_timeout_ms=int(os.environ.get("PGLOG_SHUTDOWN_TIMEOUT_MS", "10000")),
                max_queue_size=int(max_queue) if max_queue else None,
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid PGLOG_* environment variable: {e}") from e


def load_config(config_path: Optional[str] = None) -> SinkConfig:
    """
    Load sink configuration from pglog.yaml.

    Search order:
    1. Provided config_path
    2. PGLOG_CONFIG environment variable
    3. ./pglog.yaml in current directory
    4. pglog.yaml in parent directories (walk up the tree)

    Falls back to SinkConfig.from_env() when no file is found.

    Args:
        config_path: Optional explicit path to config file

    Returns:
        SinkConfig instance (not yet validated)
    """
    if config_path:
        return _load_from_path(config_path)

    env_path = os.environ.get("PGLOG_CONFIG")
    if env_path:
        return _load_from_path(env_path)

    current = Path.cwd()
    while True:
        config_file = current / CONFIG_FILENAME
        if config_file.exists():
            return _load_from_path(str(config_file))

        # Stop at filesystem root
        if current == current.parent:
            break
        current = current.parent

    return SinkConfig.from_env()


def _load_from_path(path: str) -> SinkConfig:
    """Load config from a specific path (YAML, or JSON for .json files)."""
    with open(path, "r", encoding="utf-8") as f:
        if path.endswith(".json"):
            document: Dict[str, Any] = json.load(f) or {}
        else:
            document = yaml.safe_load(f) or {}

    if not isinstance(document, dict):
        raise ConfigurationError(f"{path}: expected a mapping at top level")

    section = document.get("sink", document)
    if not isinstance(section, dict):
        raise ConfigurationError(f"{path}: 'sink' must be a mapping")

    logger.debug(f"Loaded sink configuration from {path}")
    return SinkConfig.from_dict(section)

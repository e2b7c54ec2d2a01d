"""
Stdlib logging integration.

BatchingLogHandler is the bridge between ``logging`` and a BatchingSink:
every record that passes the handler's level (and optional LevelSwitch)
is converted to a LogEvent and queued. Nothing on this path raises into
the code that logged.

Usage:
    import logging
    from pglog_sink import add_postgres_sink

    add_postgres_sink(
        logging.getLogger("app"),
        connection_string="postgresql://localhost/app",
        table_name="Logs",
        batch_size=50,
    )
    logging.getLogger("app").info("Order %s placed", order_id, extra={"order_id": order_id})
"""

import logging
import threading
from typing import Any, Optional, Union

from pglog_sink import selflog
from pglog_sink.config import ConfigurationError, SinkConfig, parse_level
from pglog_sink.events import LogEvent
from pglog_sink.postgres import ConnectionFactory, PostgresBatchWriter
from pglog_sink.provisioning import PostgresSchemaProvisioner
from pglog_sink.sink import BatchingSink

logger = logging.getLogger(__name__)

_OWN_LOGGER_PREFIX = "pglog_sink"


class LevelSwitch:
    """
    Minimum level that can be changed while the application runs.

    Example:
        switch = LevelSwitch("INFO")
        add_postgres_sink(connection_string=dsn, level_switch=switch)
        switch.set_level("DEBUG")
    """

    def __init__(self, minimum_level: Union[int, str] = logging.NOTSET):
        self._lock = threading.Lock()
        self._level = parse_level(minimum_level)

    @property
    def minimum_level(self) -> int:
        return self._level

    def set_level(self, level: Union[int, str]) -> None:
        """Change the minimum level. Accepts numbers and level names."""
        value = parse_level(level)
        with self._lock:
            self._level = value

    def is_enabled(self, levelno: int) -> bool:
        return levelno >= self._level


class BatchingLogHandler(logging.Handler):
    """logging.Handler that queues records on a BatchingSink."""

    def __init__(
        self,
        sink: BatchingSink,
        level: Union[int, str] = logging.NOTSET,
        level_switch: Optional[LevelSwitch] = None,
    ):
        super().__init__(parse_level(level))
        self.sink = sink
        self.level_switch = level_switch

    def emit(self, record: logging.LogRecord) -> None:
        # Sink diagnostics must not loop back into the sink
        if record.name == _OWN_LOGGER_PREFIX or record.name.startswith(_OWN_LOGGER_PREFIX + "."):
            return
        if self.level_switch is not None and not self.level_switch.is_enabled(record.levelno):
            return

        try:
            event = LogEvent.from_record(record)
        except Exception:
            self.handleError(record)
            return

        self.sink.emit(event)

    def flush(self) -> None:
        """Write pending events now."""
        if not self.sink.closed:
            self.sink.flush()

    def close(self) -> None:
        """Flush and dispose the sink, then detach from logging."""
        try:
            self.sink.close()
        finally:
            super().close()


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

def create_postgres_sink(
    config: Optional[SinkConfig],
    connection_factory: Optional[ConnectionFactory] = None,
) -> BatchingSink:
    """
    Build a PostgreSQL sink from a configuration.

    Provisions the table synchronously before returning.

    Args:
        config: Sink configuration
        connection_factory: Optional callable returning new connections

    Raises:
        ConfigurationError: config is None or invalid
    """
    if config is None:
        raise ConfigurationError("config is required")
    config.validate()

    provisioner = PostgresSchemaProvisioner(
        config.connection_string,
        table_name=config.table_name,
        connection_factory=connection_factory,
    )
    writer = PostgresBatchWriter(
        config.connection_string,
        table_name=config.table_name,
        store_timestamp_in_utc=config.store_timestamp_in_utc,
        connection_factory=connection_factory,
    )
    return BatchingSink(
        writer,
        batch_size=config.batch_size,
        flush_interval_ms=config.flush_interval_ms,
        shutdown_timeout_ms=config.shutdown_timeout_ms,
        provisioner=provisioner,
        max_queue_size=config.max_queue_size,
        name=f"pglog-flush-{config.table_name}",
    )


def add_postgres_sink(
    target: Optional[logging.Logger] = None,
    connection_string: str = "",
    table_name: str = "Logs",
    minimum_level: Union[int, str] = logging.NOTSET,
    store_timestamp_in_utc: bool = False,
    batch_size: int = 100,
    level_switch: Optional[LevelSwitch] = None,
    config: Optional[SinkConfig] = None,
    connection_factory: Optional[ConnectionFactory] = None,
    **tunables: Any,
) -> BatchingLogHandler:
    """
    Attach a PostgreSQL batching sink to a logger.

    Either pass the options directly or a ready SinkConfig via config=.

    Args:
        target: Logger to attach to (root logger if None)
        connection_string: Database connection string (required)
        table_name: Destination table
        minimum_level: Records below this level are ignored
        store_timestamp_in_utc: Convert timestamps to UTC before writing
        batch_size: Events per batch, 1..1000
        level_switch: Optional runtime-adjustable minimum level; when set
            it replaces minimum_level
        config: Complete configuration, overrides the options above
        connection_factory: Optional callable returning new connections
        **tunables: flush_interval_ms, shutdown_timeout_ms, max_queue_size

    Returns:
        The attached handler

    Raises:
        ConfigurationError: Invalid configuration; nothing is attached
    """
    if config is None:
        config = SinkConfig(
            connection_string=connection_string,
            table_name=table_name,
            minimum_level=minimum_level,
            store_timestamp_in_utc=store_timestamp_in_utc,
            batch_size=batch_size,
            level_switch=level_switch,
            **tunables,
        )
    config.validate()

    try:
        sink = create_postgres_sink(config, connection_factory=connection_factory)
    except Exception as e:
        selflog.write_line("Unable to create PostgreSQL log sink: %s", e)
        raise

    level = config.level
    if config.level_switch is not None:
        # The switch replaces the static minimum
        if level != logging.NOTSET:
            selflog.write_line(
                "minimum_level %s is ignored because a level switch is set",
                logging.getLevelName(level),
            )
        level = logging.NOTSET

    handler = BatchingLogHandler(sink, level=level, level_switch=config.level_switch)
    (target or logging.getLogger()).addHandler(handler)
    logger.debug(f"PostgreSQL log sink attached for table {config.table_name}")
    return handler

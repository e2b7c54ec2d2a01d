"""
PostgreSQL batch writer for psycopg2.

Each write() call:
    open connection → insert one row per event, in batch order → commit → close

Any error rolls the transaction back, so a failed batch leaves no rows
behind. Values are always bound as parameters; the table name is quoted
with psycopg2.sql.Identifier.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Tuple

import psycopg2
from psycopg2 import sql
from psycopg2.extensions import connection as PgConnection

from pglog_sink import selflog
from pglog_sink.batch import Batch
from pglog_sink.events import LogEvent
from pglog_sink.writer import BatchWriter, WriteResult

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[], PgConnection]

INSERT_COLUMNS = (
    "timestamp",
    "loglevel",
    "messagetemplate",
    "message",
    "exception",
    "properties",
)


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def format_timestamp(ts: datetime, to_utc: bool = False) -> str:
    """
    Format a timestamp as ``YYYY-MM-DD HH:MM:SS.fff+HH:MM``.

    Naive timestamps are treated as local time.

    Args:
        ts: The timestamp to format
        to_utc: Convert to UTC first
    """
    if ts.tzinfo is None or ts.utcoffset() is None:
        ts = ts.astimezone()
    if to_utc:
        ts = ts.astimezone(timezone.utc)

    offset_minutes = int(ts.utcoffset().total_seconds() // 60)
    sign = "-" if offset_minutes < 0 else "+"
    hours, minutes = divmod(abs(offset_minutes), 60)

    return (
        f"{ts:%Y-%m-%d %H:%M:%S}.{ts.microsecond // 1000:03d}"
        f"{sign}{hours:02d}:{minutes:02d}"
    )


def serialize_properties(properties: Mapping[str, Any]) -> str:
    """Serialize properties to JSON text. An empty mapping becomes ''."""
    if not properties:
        return ""
    return json.dumps(dict(properties), default=str)


def open_connection(dsn: str, **connect_kwargs: Any) -> PgConnection:
    """Open a new psycopg2 connection."""
    return psycopg2.connect(dsn, **connect_kwargs)


# ---------------------------------------------------------------------------
# Writer
# ---------------------------------------------------------------------------

class PostgresBatchWriter(BatchWriter):
    """
    Writes batches of log events to a PostgreSQL table.

    Example:
        writer = PostgresBatchWriter("postgresql://localhost/app", table_name="Logs")
        result = writer.write(batch)
        if not result:
            print(result.error)
    """

    def __init__(
        self,
        dsn: str,
        table_name: str = "Logs",
        store_timestamp_in_utc: bool = False,
        connection_factory: Optional[ConnectionFactory] = None,
        **connect_kwargs: Any,
    ):
        """
        Initialize the writer.

        Args:
            dsn: Database connection string
            table_name: Destination table
            store_timestamp_in_utc: Convert timestamps to UTC before writing
            connection_factory: Callable returning a new connection
                (defaults to psycopg2.connect(dsn, **connect_kwargs))
            **connect_kwargs: Additional arguments for psycopg2.connect()
        """
        self._dsn = dsn
        self.table_name = table_name
        self.store_timestamp_in_utc = store_timestamp_in_utc
        self._connection_factory = connection_factory or (
            lambda: open_connection(dsn, **connect_kwargs)
        )
        self._insert = sql.SQL("INSERT INTO {} ({}) VALUES ({})").format(
            sql.Identifier(table_name),
            sql.SQL(", ").join(sql.Identifier(c) for c in INSERT_COLUMNS),
            sql.SQL(", ").join(sql.Placeholder() for _ in INSERT_COLUMNS),
        )

    def row_params(self, event: LogEvent) -> Tuple[Any, ...]:
        """Bind parameters for one event, in INSERT_COLUMNS order."""
        return (
            format_timestamp(event.timestamp, self.store_timestamp_in_utc),
            event.level.name,
            event.message_template,
            event.rendered_message,
            event.exception,
            serialize_properties(event.properties),
        )

    def write(self, batch: Batch) -> WriteResult:
        if len(batch) == 0:
            return WriteResult.ok(0)

        conn: Optional[PgConnection] = None
        try:
            conn = self._connection_factory()
            with conn.cursor() as cur:
                for event in batch:
                    cur.execute(self._insert, self.row_params(event))
            conn.commit()
        except Exception as e:
            if conn is not None:
                self._rollback(conn)
            message = f"Failed to write batch of {len(batch)} log events to {self.table_name}: {e}"
            selflog.write_line(message)
            return WriteResult.failed(message)
        finally:
            if conn is not None:
                self._close(conn)

        logger.debug(f"Committed {len(batch)} rows to {self.table_name}")
        return WriteResult.ok(len(batch))

    def _rollback(self, conn: PgConnection) -> None:
        try:
            conn.rollback()
        except psycopg2.Error as e:
            logger.debug(f"Rollback failed: {e}")

    def _close(self, conn: PgConnection) -> None:
        try:
            conn.close()
        except psycopg2.Error as e:
            logger.debug(f"Closing connection failed: {e}")

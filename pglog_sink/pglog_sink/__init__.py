"""
pglog_sink - Batched PostgreSQL sink for Python logging

This package buffers log events in memory and writes them to a
PostgreSQL table in batches:
- Non-blocking emit from any thread
- Size and time flush triggers, one write in flight at a time
- Transactional batch writes, failed batches are reported and dropped
- Create-if-absent provisioning of the destination table
"""

from pglog_sink.batch import Batch, BatchAccumulator
from pglog_sink.config import ConfigurationError, SinkConfig, load_config
from pglog_sink.event_queue import EventQueue
from pglog_sink.events import LogEvent, LogLevel
from pglog_sink.handler import (
    BatchingLogHandler,
    LevelSwitch,
    add_postgres_sink,
    create_postgres_sink,
)
from pglog_sink.postgres import PostgresBatchWriter, format_timestamp, serialize_properties
from pglog_sink.provisioning import PostgresSchemaProvisioner, SchemaProvisioner
from pglog_sink.scheduler import FlushScheduler, FlushState
from pglog_sink.sink import BatchingSink
from pglog_sink.writer import BatchWriter, WriteResult

__version__ = "0.1.0"

__all__ = [
    # Events
    "LogEvent",
    "LogLevel",
    # Engine
    "EventQueue",
    "Batch",
    "BatchAccumulator",
    "FlushScheduler",
    "FlushState",
    "BatchingSink",
    # Writers
    "BatchWriter",
    "WriteResult",
    "PostgresBatchWriter",
    "format_timestamp",
    "serialize_properties",
    # Provisioning
    "SchemaProvisioner",
    "PostgresSchemaProvisioner",
    # Config
    "SinkConfig",
    "ConfigurationError",
    "load_config",
    # Logging
    "BatchingLogHandler",
    "LevelSwitch",
    "add_postgres_sink",
    "create_postgres_sink",
]

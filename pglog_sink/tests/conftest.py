"""Pytest fixtures for pglog_sink tests."""

import logging
import os
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Optional

import psycopg2
import pytest

from pglog_sink import selflog
from pglog_sink.batch import Batch
from pglog_sink.events import LogEvent, LogLevel
from pglog_sink.writer import BatchWriter, WriteResult


# ---------------------------------------------------------------------------
# FakeDatabase: psycopg2 connection test double
# ---------------------------------------------------------------------------

class FakeCursor:
    """Cursor that stages rows on its connection until commit."""

    def __init__(self, conn: "FakeConnection"):
        self._conn = conn

    def execute(self, statement: Any, params: Any = None) -> None:
        db = self._conn.db
        db.statements.append(statement)
        if db.statement_error is not None:
            raise db.statement_error
        if params is not None:
            if db.fail_on_row is not None and db.rows_attempted == db.fail_on_row:
                db.rows_attempted += 1
                raise psycopg2.OperationalError("server closed the connection unexpectedly")
            db.rows_attempted += 1
            self._conn.staged.append(params)

    def __enter__(self) -> "FakeCursor":
        return self

    def __exit__(self, *args) -> None:
        pass


class FakeConnection:
    def __init__(self, db: "FakeDatabase"):
        self.db = db
        self.staged: List[Any] = []
        self.closed = False
        self.committed = False
        self.rolled_back = False

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)

    def commit(self) -> None:
        self.db.rows.extend(self.staged)
        self.staged = []
        self.committed = True

    def rollback(self) -> None:
        self.staged = []
        self.rolled_back = True

    def close(self) -> None:
        self.closed = True


class FakeDatabase:
    """
    In-memory stand-in for a PostgreSQL server.

    Attributes:
        rows: Committed row parameter tuples, in commit order
        available: When False, connect() raises OperationalError
        fail_on_row: Zero-based row attempt that raises during execute
        statement_error: Raised by every execute() when set
    """

    def __init__(self):
        self.rows: List[Any] = []
        self.statements: List[Any] = []
        self.connections: List[FakeConnection] = []
        self.available = True
        self.fail_on_row: Optional[int] = None
        self.statement_error: Optional[Exception] = None
        self.rows_attempted = 0

    def connect(self) -> FakeConnection:
        if not self.available:
            raise psycopg2.OperationalError("could not connect to server: Connection refused")
        conn = FakeConnection(self)
        self.connections.append(conn)
        return conn


# ---------------------------------------------------------------------------
# RecordingWriter: BatchWriter test double
# ---------------------------------------------------------------------------

class RecordingWriter(BatchWriter):
    """Collects batches; can fail, raise or block on demand."""

    def __init__(self):
        self.batches: List[Batch] = []
        self.fail_sequences = set()
        self.raise_error: Optional[Exception] = None
        self.delay = 0.0
        self.block = threading.Event()
        self.block.set()
        self.active = 0
        self.max_active = 0
        self.closed = False
        self._lock = threading.Lock()

    def write(self, batch: Batch) -> WriteResult:
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            self.block.wait()
            if self.delay:
                time.sleep(self.delay)
            if self.raise_error is not None:
                raise self.raise_error
            if len(self.batches) in self.fail_sequences:
                self.batches.append(batch)
                return WriteResult.failed("connection unavailable")
            self.batches.append(batch)
            return WriteResult.ok(len(batch))
        finally:
            with self._lock:
                self.active -= 1

    def close(self) -> None:
        self.closed = True

    def messages(self) -> List[List[str]]:
        """Rendered messages per batch."""
        return [[e.rendered_message for e in b] for b in self.batches]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def fake_db():
    """Provide a fresh FakeDatabase."""
    return FakeDatabase()


@pytest.fixture
def recording_writer():
    """Provide a RecordingWriter."""
    return RecordingWriter()


@pytest.fixture
def make_event():
    """Factory for LogEvents with sensible defaults."""
    base = datetime(2024, 3, 1, 12, 30, 45, 123456, tzinfo=timezone(timedelta(hours=2)))

    def _make(
        message: str = "hello",
        level: LogLevel = LogLevel.INFO,
        properties: Optional[dict] = None,
        exception: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> LogEvent:
        return LogEvent(
            timestamp=timestamp or base,
            level=level,
            message_template=message,
            rendered_message=message,
            exception=exception,
            properties=properties or {},
        )

    return _make


@pytest.fixture
def wait_for():
    """Poll a predicate until it holds or the timeout passes."""
    def _wait(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()

    return _wait


@pytest.fixture
def selflog_records(caplog):
    """Capture the self-diagnostic channel."""
    caplog.set_level(logging.DEBUG, logger=selflog.CHANNEL_NAME)

    def _records() -> List[str]:
        return [
            r.getMessage() for r in caplog.records if r.name == selflog.CHANNEL_NAME
        ]

    return _records


@pytest.fixture(autouse=True)
def reset_env():
    """Reset environment variables after each test."""
    original_env = os.environ.copy()
    yield
    os.environ.clear()
    os.environ.update(original_env)

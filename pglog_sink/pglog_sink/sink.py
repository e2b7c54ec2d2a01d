"""
BatchingSink - non-blocking batched persistence of log events.

Logging must never add latency to, or crash, the code that logs.
Events go to an in-memory queue and a background thread writes them in
batches.

Architecture:
    emit() → EventQueue → BatchAccumulator → FlushScheduler thread → BatchWriter

Components:
    BatchingSink: wires the pipeline, provisions the destination once
    BatchWriter (ABC): pluggable destination (writer.py)
    PostgresBatchWriter: PostgreSQL destination (postgres.py)
"""

import atexit
import logging
from typing import Optional

from pglog_sink import selflog
from pglog_sink.batch import BatchAccumulator
from pglog_sink.event_queue import EventQueue
from pglog_sink.events import LogEvent
from pglog_sink.provisioning import SchemaProvisioner
from pglog_sink.scheduler import FlushScheduler, FlushState
from pglog_sink.writer import BatchWriter

logger = logging.getLogger(__name__)


class BatchingSink:
    """
    Buffers log events and hands them to a writer in batches.

    Features:
        - Non-blocking, never-raising emit()
        - Size trigger (batch_size) and time trigger (flush_interval_ms)
        - One write in flight at a time
        - Final bounded flush on close() and at interpreter exit
    """

    def __init__(
        self,
        writer: BatchWriter,
        batch_size: int = 100,
        flush_interval_ms: int = 2000,
        shutdown_timeout_ms: int = 10000,
        provisioner: Optional[SchemaProvisioner] = None,
        max_queue_size: Optional[int] = None,
        name: str = "pglog-flush",
    ):
        """
        Initialize the sink and start its flush thread.

        Args:
            writer: Destination for closed batches
            batch_size: Maximum events per batch (validated by SinkConfig)
            flush_interval_ms: Time trigger interval
            shutdown_timeout_ms: Bound on the final flush at close()
            provisioner: Run once before any event is accepted
            max_queue_size: Optional bound on pending events
            name: Flush thread name
        """
        self.batch_size = batch_size
        self._writer = writer
        self._closed = False

        if provisioner is not None:
            self._provision(provisioner)

        self._queue = EventQueue(max_events=max_queue_size)
        self._accumulator = BatchAccumulator(self._queue)
        self._scheduler = FlushScheduler(
            self._accumulator,
            writer,
            batch_size=batch_size,
            flush_interval_ms=flush_interval_ms,
            shutdown_timeout_ms=shutdown_timeout_ms,
            name=name,
        )
        self._scheduler.start()

        # Register cleanup on exit
        atexit.register(self.close)

    @staticmethod
    def _provision(provisioner: SchemaProvisioner) -> None:
        try:
            if not provisioner.provision():
                logger.debug("Provisioning reported failure, continuing without it")
        except Exception as e:
            selflog.write_line("Schema provisioning failed: %s", e)

    def emit(self, event: LogEvent) -> None:
        """
        Queue an event (non-blocking, never raises).

        Wakes the flush thread once a full batch is pending.
        """
        if self._queue.enqueue(event) and self._accumulator.size_reached(self.batch_size):
            self._scheduler.notify()

    def flush(self) -> None:
        """Write all pending events now (blocking)."""
        self._scheduler.flush()

    def close(self) -> None:
        """
        Stop accepting events, flush what is pending and release the writer.

        Safe to call more than once.
        """
        if self._closed:
            return
        self._closed = True
        self._queue.close()
        self._scheduler.stop()
        try:
            self._writer.close()
        except Exception as e:
            selflog.write_line("Closing batch writer failed: %s", e)
        atexit.unregister(self.close)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_count(self) -> int:
        """Number of events waiting to be flushed."""
        return len(self._queue)

    @property
    def dropped_count(self) -> int:
        """Number of events rejected by the queue."""
        return self._queue.dropped_count

    @property
    def state(self) -> FlushState:
        return self._scheduler.state

    @property
    def scheduler(self) -> FlushScheduler:
        return self._scheduler

    def __enter__(self) -> "BatchingSink":
        return self

    def __exit__(self, *args) -> None:
        self.close()

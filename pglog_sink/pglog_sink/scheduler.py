"""
FlushScheduler - background accumulate → flush cycle.

One daemon thread per sink owns the tick loop:

    wait(wake event, timeout=flush interval)
        woken by notify()   → size trigger: write full batches
        timeout expired     → time trigger: write everything pending
    on stop                 → final bounded flush, then exit

Every drain+write pair runs under a single flush lock, so the writer is
never invoked concurrently with itself and batches reach it in queue
order. An explicit flush() from another thread takes the same lock and
waits for the in-flight write to finish.

Failed batches are reported to the self-diagnostic channel and discarded;
the loop always continues with fresh events.
"""

import logging
import threading
import time
from enum import Enum
from typing import Optional

from pglog_sink import selflog
from pglog_sink.batch import Batch, BatchAccumulator
from pglog_sink.writer import BatchWriter, WriteResult

logger = logging.getLogger(__name__)


class FlushState(Enum):
    """Scheduler states. Idle → Flushing → Idle for the sink's lifetime."""
    IDLE = "idle"
    FLUSHING = "flushing"


class FlushScheduler:
    """
    Drives the accumulator and the writer from a single background thread.

    Features:
        - Size trigger via notify(), time trigger via the wait timeout
        - At most one write in flight
        - Final flush on stop(), bounded by shutdown_timeout_ms
    """

    def __init__(
        self,
        accumulator: BatchAccumulator,
        writer: BatchWriter,
        batch_size: int,
        flush_interval_ms: int = 2000,
        shutdown_timeout_ms: int = 10000,
        name: str = "pglog-flush",
    ):
        """
        Initialize the scheduler. Call start() to launch the thread.

        Args:
            accumulator: Source of batches
            writer: Destination for closed batches
            batch_size: Maximum events per batch
            flush_interval_ms: Time trigger interval
            shutdown_timeout_ms: Bound on the final flush at stop()
            name: Thread name
        """
        self._accumulator = accumulator
        self._writer = writer
        self._batch_size = batch_size
        self._flush_interval = flush_interval_ms / 1000.0
        self._shutdown_timeout = shutdown_timeout_ms / 1000.0
        self._name = name

        self._wake_event = threading.Event()
        self._stop_event = threading.Event()
        self._flush_lock = threading.Lock()
        self._stop_lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._stopped = False
        self._state = FlushState.IDLE
        self._thread: Optional[threading.Thread] = None

        self.batches_written = 0
        self.batches_failed = 0
        self.events_written = 0
        self.events_discarded = 0

    def start(self) -> None:
        """Start the background flush thread."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._flush_loop,
            daemon=True,
            name=self._name,
        )
        self._thread.start()

    def notify(self) -> None:
        """Signal the size trigger. Safe to call from any thread."""
        self._wake_event.set()

    def flush(self) -> None:
        """
        Write everything pending now (blocking).

        Waits behind any in-flight write.
        """
        self._flush_pending()

    def stop(self, timeout: Optional[float] = None) -> bool:
        """
        Stop the loop after one final best-effort flush.

        Args:
            timeout: Seconds to wait for the thread, defaults to the
                configured shutdown timeout

        Returns:
            False if the final flush did not finish in time and the
            remaining events were discarded
        """
        with self._stop_lock:
            if self._stopped:
                return True
            self._stopped = True

        if timeout is None:
            timeout = self._shutdown_timeout

        self._stop_event.set()
        self._wake_event.set()

        if self._thread is None:
            self._flush_pending(deadline=time.monotonic() + timeout)
        else:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                discarded = self._accumulator.discard_pending()
                self._count_discarded(discarded)
                selflog.write_line(
                    "Flush thread %s did not finish within %.1fs, discarded %d pending log events",
                    self._name, timeout, discarded,
                )
                return False

        logger.debug(f"Flush scheduler {self._name} stopped")
        return True

    @property
    def state(self) -> FlushState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -- Loop ---------------------------------------------------------------

    def _flush_loop(self) -> None:
        while not self._stop_event.is_set():
            woken = self._wake_event.wait(timeout=self._flush_interval)
            self._wake_event.clear()

            if self._stop_event.is_set():
                break

            if woken:
                self._flush_full_batches()
            else:
                self._flush_pending()

        self._flush_pending(deadline=time.monotonic() + self._shutdown_timeout)

    def _flush_full_batches(self) -> None:
        """Size trigger: write batches of exactly batch_size while possible."""
        while (
            self._accumulator.size_reached(self._batch_size)
            and not self._stop_event.is_set()
        ):
            self._flush_one()

    def _flush_pending(self, deadline: Optional[float] = None) -> None:
        """Time trigger: write what was pending when called, in batch_size chunks."""
        remaining = self._accumulator.pending
        while remaining > 0:
            if deadline is not None and time.monotonic() >= deadline:
                discarded = self._accumulator.discard_pending()
                self._count_discarded(discarded)
                selflog.write_line(
                    "Shutdown flush timed out, discarded %d pending log events", discarded
                )
                return
            flushed = self._flush_one()
            if flushed == 0:
                return
            remaining -= flushed

    def _flush_one(self) -> int:
        """Drain one batch and write it. Returns the batch length."""
        with self._flush_lock:
            batch = self._accumulator.drain_ready(self._batch_size)
            if not batch:
                return 0
            self._state = FlushState.FLUSHING
            try:
                self._write(batch)
            finally:
                self._state = FlushState.IDLE
        return len(batch)

    def _count_discarded(self, count: int) -> None:
        with self._stats_lock:
            self.events_discarded += count

    def _write(self, batch: Batch) -> WriteResult:
        try:
            result = self._writer.write(batch)
        except Exception as e:
            selflog.error("Batch writer raised while writing batch %d", batch.sequence, exc_info=True)
            result = WriteResult.failed(str(e))

        if result:
            with self._stats_lock:
                self.batches_written += 1
                self.events_written += len(batch)
            logger.debug(f"Wrote batch {batch.sequence} ({len(batch)} events)")
        else:
            with self._stats_lock:
                self.batches_failed += 1
                self.events_discarded += len(batch)
            selflog.write_line(
                "Discarding batch %d of %d log events: %s",
                batch.sequence, len(batch), result.error,
            )
        return result

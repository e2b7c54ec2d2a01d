"""
Batch snapshots and the accumulator that closes them.
"""

import itertools
import threading
from dataclasses import dataclass
from typing import Iterator, Tuple

from pglog_sink.event_queue import EventQueue
from pglog_sink.events import LogEvent


@dataclass(frozen=True)
class Batch:
    """Immutable, ordered snapshot of events destined for one write attempt."""
    events: Tuple[LogEvent, ...] = ()
    sequence: int = 0

    def __len__(self) -> int:
        return len(self.events)

    def __iter__(self) -> Iterator[LogEvent]:
        return iter(self.events)


class BatchAccumulator:
    """
    Drains the queue into bounded batches.

    Has no timer of its own: the FlushScheduler asks whether the size
    trigger holds and calls drain_ready() on each tick or wake.
    """

    def __init__(self, queue: EventQueue):
        self._queue = queue
        self._sequence = itertools.count(1)
        self._sequence_lock = threading.Lock()

    def size_reached(self, batch_size: int) -> bool:
        """True when at least batch_size events are pending."""
        return len(self._queue) >= batch_size

    def drain_ready(self, batch_size: int) -> Batch:
        """
        Close a batch of up to batch_size pending events.

        Ownership of the drained events moves to the returned Batch; they
        are no longer in the queue. Returns an empty Batch when nothing is
        pending.
        """
        events = self._queue.drain(batch_size)
        if not events:
            return Batch()
        with self._sequence_lock:
            sequence = next(self._sequence)
        return Batch(events=tuple(events), sequence=sequence)

    def discard_pending(self) -> int:
        """Drop everything still pending. Used when shutdown runs out of time."""
        return self._queue.clear()

    @property
    def pending(self) -> int:
        return len(self._queue)

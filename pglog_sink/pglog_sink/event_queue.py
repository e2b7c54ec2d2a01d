"""
EventQueue - thread-safe holding area for emitted events.

Producers call enqueue() from any thread; the flush path drains from the
single scheduler thread. Both sides only hold the lock for a deque
operation, so the producer never waits on database I/O.
"""

import logging
import threading
from collections import deque
from typing import Deque, List, Optional

from pglog_sink import selflog
from pglog_sink.events import LogEvent

logger = logging.getLogger(__name__)


class EventQueue:
    """
    FIFO queue of LogEvents awaiting batching.

    Unbounded by default. With max_events set, events arriving while the
    queue is full are dropped (newest first) and counted.
    """

    def __init__(self, max_events: Optional[int] = None):
        """
        Initialize the queue.

        Args:
            max_events: Optional bound on pending events
        """
        self._items: Deque[LogEvent] = deque()
        self._max_events = max_events
        self._lock = threading.Lock()
        self._closed = False
        self._dropped_count = 0

    def enqueue(self, event: LogEvent) -> bool:
        """
        Add an event (non-blocking, never raises).

        Returns:
            False if the event was dropped
        """
        with self._lock:
            if self._closed:
                reason = "queue closed"
            elif self._max_events is not None and len(self._items) >= self._max_events:
                reason = "queue full"
            else:
                self._items.append(event)
                return True

            self._dropped_count += 1
            dropped = self._dropped_count

        if dropped % 100 == 1:
            selflog.write_line(
                "Log event dropped (%s), %d events dropped so far", reason, dropped
            )
        return False

    def drain(self, max_items: int) -> List[LogEvent]:
        """
        Remove and return up to max_items events in enqueue order.

        Returns an empty list when nothing is pending.
        """
        with self._lock:
            count = min(max_items, len(self._items))
            return [self._items.popleft() for _ in range(count)]

    def clear(self) -> int:
        """Discard all pending events and return how many were discarded."""
        with self._lock:
            count = len(self._items)
            self._items.clear()
        if count:
            logger.debug(f"Cleared {count} pending log events")
        return count

    def close(self) -> None:
        """Stop accepting events. Pending events stay drainable."""
        with self._lock:
            self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def dropped_count(self) -> int:
        """Number of events dropped by enqueue()."""
        return self._dropped_count

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

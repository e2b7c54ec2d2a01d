"""
Plain Python demo of the batching sink with a custom writer.

This example demonstrates:
1. Plugging a BatchWriter other than PostgreSQL into BatchingSink
2. Attaching the sink to stdlib logging with BatchingLogHandler
3. Size-triggered and time-triggered flushes

Run this script to watch batches being closed.
"""

import logging
import time

from pglog_sink import BatchingLogHandler, BatchingSink, BatchWriter, WriteResult, selflog


class PrintWriter(BatchWriter):
    """Writes each batch to stdout."""

    def write(self, batch):
        print(f"--- batch {batch.sequence} ({len(batch)} events)")
        for event in batch:
            print(f"  {event.timestamp:%H:%M:%S.%f} {event.level.name:<8} {event.rendered_message}"
                  f" {dict(event.properties) or ''}")
        return WriteResult.ok(len(batch))


def main():
    selflog.enable()

    sink = BatchingSink(PrintWriter(), batch_size=3, flush_interval_ms=1000)
    log = logging.getLogger("demo")
    log.setLevel(logging.DEBUG)
    log.addHandler(BatchingLogHandler(sink))

    # Size trigger: the first three events are written right away
    for i in range(1, 6):
        log.info("Step %d", i, extra={"step": i})

    # Time trigger: the remaining two follow after about a second
    time.sleep(1.5)

    log.warning("Shutting down")
    sink.close()


if __name__ == "__main__":
    main()

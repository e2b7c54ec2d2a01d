#!/usr/bin/env python3
"""
Smoke test script - write log events to a real PostgreSQL database.

Provisions the log table (if absent), emits a number of events through
the stdlib logging pipeline and prints the sink counters.

Usage:
    # Using pglog.yaml from the current directory (or PGLOG_CONFIG)
    python scripts/pglog_smoke.py --count 250

    # Explicit connection
    python scripts/pglog_smoke.py --dsn postgresql://localhost/app --table Logs --batch-size 50

    # Show sink diagnostics
    python scripts/pglog_smoke.py --dsn postgresql://localhost/app -v
"""

import argparse
import logging
import sys
import time
from pathlib import Path

from pglog_sink import ConfigurationError, add_postgres_sink, load_config, selflog


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def emit_events(target: logging.Logger, count: int) -> None:
    """Emit count events with a mix of levels, properties and exceptions."""
    for i in range(count):
        if i % 50 == 49:
            try:
                raise RuntimeError(f"synthetic failure {i}")
            except RuntimeError:
                target.exception("Event %d failed", i, extra={"index": i})
        elif i % 10 == 9:
            target.warning("Event %d is slow", i, extra={"index": i, "elapsed_ms": 1200})
        else:
            target.info("Event %d processed", i, extra={"index": i})


def main():
    parser = argparse.ArgumentParser(
        description="Write synthetic log events to PostgreSQL",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to pglog.yaml configuration file",
    )
    parser.add_argument(
        "--dsn",
        type=str,
        help="Override connection string from config",
    )
    parser.add_argument(
        "--table",
        type=str,
        help="Override table name from config",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        help="Override batch size from config",
    )
    parser.add_argument(
        "--count",
        type=int,
        default=100,
        help="Number of events to emit",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable sink diagnostics",
    )

    args = parser.parse_args()

    if args.verbose:
        selflog.enable()

    config = load_config(str(args.config) if args.config else None)
    if args.dsn:
        config.connection_string = args.dsn
    if args.table:
        config.table_name = args.table
    if args.batch_size is not None:
        config.batch_size = args.batch_size

    target = logging.getLogger("pglog.smoke")
    target.setLevel(logging.DEBUG)
    target.propagate = False

    try:
        handler = add_postgres_sink(target, config=config)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(2)

    start = time.time()
    emit_events(target, args.count)
    emitted_in = time.time() - start

    handler.flush()
    stats = handler.sink.scheduler
    target.removeHandler(handler)
    handler.close()

    print("\n" + "=" * 60)
    print("SMOKE TEST SUMMARY")
    print("=" * 60)
    print(f"Table:            {config.table_name}")
    print(f"Events emitted:   {args.count} in {emitted_in * 1000:.1f}ms")
    print(f"Batches written:  {stats.batches_written}")
    print(f"Batches failed:   {stats.batches_failed}")
    print(f"Events written:   {stats.events_written}")
    print(f"Events discarded: {stats.events_discarded}")
    print(f"Events dropped:   {handler.sink.dropped_count}")

    sys.exit(0 if stats.batches_failed == 0 else 1)


if __name__ == "__main__":
    main()

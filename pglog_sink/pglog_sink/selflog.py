"""
Self-diagnostic channel for sink-level failures.

Failures on the flush path (connection errors, rejected batches, dropped
events) are never raised to the code that logged the event. They are
reported here instead, on a dedicated logger that is distinct from the
application's own log stream.

The channel is silent unless the application configures logging for the
``pglog_sink.selflog`` logger or calls :func:`enable`.

Example:
    from pglog_sink import selflog

    selflog.enable()          # diagnostics to stderr
    ...
    selflog.disable()
"""

import logging
import sys
import threading
from typing import IO, Any, Optional

CHANNEL_NAME = "pglog_sink.selflog"

_channel = logging.getLogger(CHANNEL_NAME)
_enabled_handler: Optional[logging.Handler] = None
_enable_lock = threading.Lock()


def get_channel() -> logging.Logger:
    """Return the logger backing the self-diagnostic channel."""
    return _channel


def write_line(msg: str, *args: Any) -> None:
    """Report a sink-level problem."""
    _channel.warning(msg, *args)


def error(msg: str, *args: Any, exc_info: bool = False) -> None:
    """Report a sink-level failure, optionally with the active traceback."""
    _channel.error(msg, *args, exc_info=exc_info)


def enable(stream: Optional[IO[str]] = None, level: int = logging.DEBUG) -> logging.Handler:
    """
    Route diagnostics to a stream (stderr by default).

    Calling enable() again replaces the previously installed handler.

    Args:
        stream: Text stream to write to
        level: Minimum level for the installed handler

    Returns:
        The installed handler
    """
    global _enabled_handler

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )

    with _enable_lock:
        if _enabled_handler is not None:
            _channel.removeHandler(_enabled_handler)
        _enabled_handler = handler
        _channel.addHandler(handler)
        if _channel.level == logging.NOTSET or _channel.level > level:
            _channel.setLevel(level)

    return handler


def disable() -> None:
    """Remove the handler installed by enable()."""
    global _enabled_handler

    with _enable_lock:
        if _enabled_handler is not None:
            _channel.removeHandler(_enabled_handler)
            _enabled_handler.close()
            _enabled_handler = None

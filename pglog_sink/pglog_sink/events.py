"""
Log event model.

A LogEvent is the immutable unit that flows through the sink:

    logging.LogRecord → LogEvent.from_record() → EventQueue → Batch → writer

Events are produced by the logging front-end (see handler.py) and never
change after they are emitted.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from types import MappingProxyType
from typing import Any, Mapping, Optional


class LogLevel(IntEnum):
    """Event severity, aligned with the stdlib numeric levels."""
    VERBOSE = 5
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL

    @classmethod
    def from_levelno(cls, levelno: int) -> "LogLevel":
        """Map any numeric level to the highest member not above it."""
        for member in sorted(cls, reverse=True):
            if levelno >= member:
                return member
        return cls.VERBOSE


# Attributes every LogRecord carries; anything else came in through extra=.
_STANDARD_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime", "taskName"}

_exception_formatter = logging.Formatter()


@dataclass(frozen=True)
class LogEvent:
    """
    A single structured log event.

    Attributes:
        timestamp: When the event occurred (timezone-aware)
        level: Event severity
        message_template: Format string before interpolation
        rendered_message: Fully interpolated message text
        exception: Formatted exception text, None for normal events
        properties: Structured values attached to the event
    """
    timestamp: datetime
    level: LogLevel
    message_template: str
    rendered_message: str
    exception: Optional[str] = None
    properties: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.timestamp.tzinfo is None or self.timestamp.utcoffset() is None:
            # Naive timestamps are local time
            object.__setattr__(self, "timestamp", self.timestamp.astimezone())
        if not isinstance(self.level, LogLevel):
            object.__setattr__(self, "level", LogLevel.from_levelno(int(self.level)))
        object.__setattr__(self, "properties", MappingProxyType(dict(self.properties)))

    def __hash__(self) -> int:
        # properties may hold unhashable values; equal events still hash equal
        return hash((self.timestamp, self.level, self.message_template,
                     self.rendered_message, self.exception))

    @classmethod
    def from_record(cls, record: logging.LogRecord) -> "LogEvent":
        """
        Build an event from a stdlib LogRecord.

        Keys passed with ``extra=`` become properties. Positional format
        arguments are only used to render the message.

        Args:
            record: The record handed to a logging.Handler

        Returns:
            The equivalent LogEvent
        """
        exception = None
        if record.exc_info:
            exception = _exception_formatter.formatException(record.exc_info)
        elif record.exc_text:
            exception = record.exc_text
        if record.stack_info:
            stack = _exception_formatter.formatStack(record.stack_info)
            exception = f"{exception}\n{stack}" if exception else stack

        properties = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_RECORD_ATTRS and not key.startswith("_")
        }

        return cls(
            timestamp=datetime.fromtimestamp(record.created).astimezone(),
            level=LogLevel.from_levelno(record.levelno),
            message_template=str(record.msg),
            rendered_message=record.getMessage(),
            exception=exception,
            properties=properties,
        )

"""
BatchWriter contract.

A writer receives a closed Batch and makes it durable. The scheduler only
depends on this interface, so alternate destinations plug in without
touching the flush engine.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from pglog_sink.batch import Batch


@dataclass(frozen=True)
class WriteResult:
    """Outcome of one write attempt. Truthy on success."""
    success: bool
    rows_written: int = 0
    error: Optional[str] = None

    @classmethod
    def ok(cls, rows_written: int) -> "WriteResult":
        return cls(success=True, rows_written=rows_written)

    @classmethod
    def failed(cls, error: str) -> "WriteResult":
        return cls(success=False, error=error)

    def __bool__(self) -> bool:
        return self.success


class BatchWriter(ABC):
    """
    Abstract base class for batch writers.

    Implementations MUST:
        - own their connection for the duration of write()
        - write every event of the batch, in order, in one transaction
        - commit only after all rows succeed, otherwise write nothing
        - never raise; report failures through the returned WriteResult
    """

    @abstractmethod
    def write(self, batch: Batch) -> WriteResult:
        """
        Durably write a batch.

        Args:
            batch: The batch to persist

        Returns:
            WriteResult describing success or failure of the whole batch
        """
        pass

    def close(self) -> None:
        """Release writer resources. No-op by default."""
        pass

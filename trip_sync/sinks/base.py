"""
Common interface for destination sinks.
"""

from abc import ABC, abstractmethod
from typing import List, Sequence, TypeVar

from trip_sync.ingestion.transformer import OutputSchema, ProjectedRecord

T = TypeVar('T')


def chunk(items: Sequence[T], size: int) -> List[Sequence[T]]:
    """Split a sequence into consecutive slices of at most ``size`` items."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    return [items[i:i + size] for i in range(0, len(items), size)]


class Sink(ABC):
    """Delivers projected trip records to a destination store."""

    schema: OutputSchema

    @abstractmethod
    def deliver(self, records: List[ProjectedRecord]) -> int:
        """Write the records and return how many were sent.

        An empty list must not touch the destination.
        """

    @abstractmethod
    def describe(self) -> str:
        """Short human readable name of the destination."""

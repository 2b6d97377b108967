"""Contiguous id-range chunking over an entity table."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass


@dataclass(frozen=True, order=True)
class IdRange:
    """Half-open range ``[low, high)`` of surrogate ids."""

    low: int
    high: int

    def __post_init__(self) -> None:
        if self.high <= self.low:
            raise ValueError(f"Empty id range [{self.low}, {self.high})")

    @property
    def last(self) -> int:
        """Highest id inside the range, for ``BETWEEN low AND last`` queries."""
        return self.high - 1

    def __contains__(self, item: object) -> bool:
        return isinstance(item, int) and self.low <= item < self.high

    def __len__(self) -> int:
        return self.high - self.low

    def __str__(self) -> str:
        return f"[{self.low}, {self.high})"


def iter_chunks(max_id: int, chunk_size: int) -> Iterator[IdRange]:
    """Yield consecutive ranges of width ``chunk_size`` covering ``[0, max_id]``.

    The last range is clipped so no id above ``max_id`` is covered. A negative
    ``max_id`` (empty table) yields nothing.

    >>> [str(r) for r in iter_chunks(25, 10)]
    ['[0, 10)', '[10, 20)', '[20, 26)']
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
    low = 0
    while low <= max_id:
        high = min(low + chunk_size, max_id + 1)
        yield IdRange(low, high)
        low = high


def chunk_count(max_id: int, chunk_size: int) -> int:
    if max_id < 0:
        return 0
    return -(-(max_id + 1) // chunk_size)

"""
Keyed Accumulator Store — the central data structure of an aggregation pass.

Maps a derived composite key (listing identity, channel identity, ISO week,
calendar day) to a mutable accumulator. Accumulators are created on first
observation of their key, updated in place afterwards, never deleted during
a pass, and discarded with the store when the pass ends.

A store is owned by exactly one aggregation pass; nothing is shared between
invocations.
"""

from collections.abc import Iterator
from typing import Callable, Generic, Optional, TypeVar

from pydantic import BaseModel

A = TypeVar("A", bound=BaseModel)


class KeyedAccumulatorStore(Generic[A]):
    """
    Insertion-ordered map of key -> accumulator.

    Attributes:
        factory: Builds a fresh accumulator for a key on first observation

    Example:
        >>> store = KeyedAccumulatorStore(lambda key: TrendBucket(key=key))
        >>> bucket, created = store.get_or_create("2025-01-01")
        >>> created
        True
    """

    def __init__(self, factory: Callable[..., A]):
        self.factory = factory
        self._entries: dict[str, A] = {}

    def get_or_create(self, key: str, **init) -> tuple[A, bool]:
        """
        Return the accumulator for ``key``, creating it if needed.

        Args:
            key: Deterministic identity derived from the input record
            **init: Extra factory arguments, only used on creation

        Returns:
            (accumulator, created) where created is True on first observation
        """
        entry = self._entries.get(key)
        if entry is not None:
            return entry, False
        entry = self.factory(key, **init)
        self._entries[key] = entry
        return entry, True

    def get(self, key: str) -> Optional[A]:
        return self._entries.get(key)

    def values(self) -> list[A]:
        return list(self._entries.values())

    def sorted_values(self) -> list[A]:
        """Accumulators ordered by key."""
        return [self._entries[key] for key in sorted(self._entries)]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[A]:
        return iter(self._entries.values())

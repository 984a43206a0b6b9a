"""
Direction-tagged sequences.

Every series passed between the engines is wrapped in one of two types so the
ordering convention is part of the signature rather than a comment:

  - ``NewestFirst`` — index 0 is the most recent date.
  - ``OldestFirst`` — index 0 is the earliest date.

Both are immutable; ``reversed()`` converts one into the other.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Iterable, Iterator, TypeVar, overload

T = TypeVar("T")


@dataclass(frozen=True)
class _Series(Generic[T]):
    items: tuple[T, ...] = ()

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[T]:
        return iter(self.items)

    def __bool__(self) -> bool:
        return bool(self.items)

    @overload
    def __getitem__(self, index: int) -> T: ...

    @overload
    def __getitem__(self, index: slice) -> tuple[T, ...]: ...

    def __getitem__(self, index):
        return self.items[index]


@dataclass(frozen=True)
class NewestFirst(_Series[T]):
    """Sequence whose first element is the most recent."""

    @classmethod
    def of(cls, values: Iterable[T]) -> "NewestFirst[T]":
        return cls(tuple(values))

    def head(self, n: int) -> "NewestFirst[T]":
        """The ``n`` most recent elements."""
        return NewestFirst(self.items[:n])

    def reversed(self) -> "OldestFirst[T]":
        return OldestFirst(self.items[::-1])


@dataclass(frozen=True)
class OldestFirst(_Series[T]):
    """Sequence whose first element is the earliest."""

    @classmethod
    def of(cls, values: Iterable[T]) -> "OldestFirst[T]":
        return cls(tuple(values))

    def tail(self, n: int) -> "OldestFirst[T]":
        """The ``n`` most recent elements, still oldest first."""
        if n <= 0:
            return OldestFirst()
        return OldestFirst(self.items[-n:])

    def reversed(self) -> "NewestFirst[T]":
        return NewestFirst(self.items[::-1])

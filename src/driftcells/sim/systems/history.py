from __future__ import annotations

from collections import deque
from typing import Iterable, Iterator

from ..core.errors import ConfigurationError
from ..utils.math2d import Position

Snapshot = tuple[Position, ...]


class HistoryBuffer:
    """Bounded FIFO of population snapshots, newest at the right."""

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ConfigurationError(f"history capacity must be positive, got {capacity}")
        self._capacity = capacity
        self._entries: deque[Snapshot] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def push(self, snapshot: Iterable[Position]) -> None:
        # deque(maxlen) drops the oldest entry once full.
        self._entries.append(tuple(snapshot))

    def latest(self) -> Snapshot | None:
        return self._entries[-1] if self._entries else None

    def oldest_first(self) -> Iterator[Snapshot]:
        return iter(self._entries)

    def newest_first(self) -> Iterator[Snapshot]:
        return reversed(self._entries)

    def clear(self) -> None:
        self._entries.clear()

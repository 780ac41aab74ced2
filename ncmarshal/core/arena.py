# ncmarshal/core/arena.py
from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, List


@dataclass(frozen=True)
class ArenaMark:
    index: int
    in_use: int


class Arena:
    """
    Request-scoped bump allocator.

    Buffers handed out by allocate() stay referenced by the arena until a
    reset() to an earlier mark (or the end of the enclosing scope()) drops
    them. Buffers still referenced by the caller remain valid; the arena only
    gives up its own hold on them.
    """

    def __init__(self) -> None:
        self._blocks: List[bytearray] = []
        self._in_use = 0
        self._peak = 0

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def peak(self) -> int:
        return self._peak

    def __len__(self) -> int:
        return len(self._blocks)

    def allocate(self, n_bytes: int) -> bytearray:
        n_bytes = int(n_bytes)
        if n_bytes < 0:
            raise ValueError("allocation size must be non-negative")
        buf = bytearray(n_bytes)
        self._blocks.append(buf)
        self._in_use += n_bytes
        self._peak = max(self._peak, self._in_use)
        return buf

    def mark(self) -> ArenaMark:
        return ArenaMark(index=len(self._blocks), in_use=self._in_use)

    def reset(self, mark: ArenaMark) -> None:
        if mark.index > len(self._blocks):
            raise ValueError("arena mark is newer than the current allocation state")
        del self._blocks[mark.index:]
        self._in_use = mark.in_use

    @contextmanager
    def scope(self) -> Iterator[ArenaMark]:
        m = self.mark()
        try:
            yield m
        finally:
            self.reset(m)

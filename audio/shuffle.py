from __future__ import annotations

import random
from typing import List, Optional, Sequence, TypeVar

T = TypeVar("T")


def fisher_yates(items: Sequence[T], rng: Optional[random.Random] = None) -> List[T]:
    """Return a shuffled copy of ``items``."""
    rng = rng or random.Random()
    out = list(items)
    for i in range(len(out) - 1, 0, -1):
        j = rng.randint(0, i)
        out[i], out[j] = out[j], out[i]
    return out


class ShuffleQueue:
    """
    Permutation of every track id plus a cursor.

    The track that was current when shuffle was enabled is moved to the
    front so the pass starts where the listener already is. Running off the
    end regenerates a full reshuffle.
    """

    def __init__(self, ids: Sequence[int], current: Optional[int] = None, rng: Optional[random.Random] = None):
        if not ids:
            raise ValueError("ShuffleQueue needs at least one id")
        self._ids = list(ids)
        self._rng = rng or random.Random()
        self._order = fisher_yates(self._ids, self._rng)
        if current is not None and current in self._order:
            self._order.remove(current)
            self._order.insert(0, current)
        self._cursor = 0

    def __len__(self) -> int:
        return len(self._order)

    @property
    def order(self) -> List[int]:
        return list(self._order)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def current(self) -> int:
        return self._order[self._cursor]

    @property
    def at_end(self) -> bool:
        return self._cursor >= len(self._order) - 1

    def advance(self) -> int:
        if not self.at_end:
            self._cursor += 1
            return self.current
        last = self.current
        order = fisher_yates(self._ids, self._rng)
        # avoid playing the same id twice in a row across the reshuffle
        if len(order) > 1 and order[0] == last:
            swap = self._rng.randint(1, len(order) - 1)
            order[0], order[swap] = order[swap], order[0]
        self._order = order
        self._cursor = 0
        return self.current

    def retreat(self) -> int:
        if self._cursor > 0:
            self._cursor -= 1
        return self.current

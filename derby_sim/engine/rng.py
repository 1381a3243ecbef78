from __future__ import annotations

from typing import Protocol

import numpy as np

_UINT32_SPAN = 1 << 32


class RandomSource(Protocol):
    def int32(self) -> int: ...

    def random(self) -> float: ...

    def uniform(self, n: int) -> int: ...


class RaceRng:
    """
    Seeded random stream backed by numpy's PCG64.

    Child streams are derived by seeding a new RaceRng with ``int32()`` drawn
    from the parent, which keeps every stream reproducible from the root seed.
    ``copy()`` snapshots the full generator state and ``restore()`` rewinds to a
    snapshot.
    """

    def __init__(self, seed: int = 0) -> None:
        self._gen = np.random.Generator(np.random.PCG64(seed))

    def int32(self) -> int:
        return int(self._gen.integers(0, _UINT32_SPAN))

    def random(self) -> float:
        return float(self._gen.random())

    def uniform(self, n: int) -> int:
        """Uniform integer in ``[0, n)``."""
        return int(self._gen.integers(0, n))

    def child(self) -> "RaceRng":
        return RaceRng(self.int32())

    def copy(self) -> "RaceRng":
        clone = RaceRng()
        clone._gen.bit_generator.state = self._gen.bit_generator.state
        return clone

    def restore(self, snapshot: "RaceRng") -> None:
        self._gen.bit_generator.state = snapshot._gen.bit_generator.state

from __future__ import annotations

from typing import List, Protocol

import numpy as np

from .region import Region, RegionList
from .rng import RandomSource

# Random triggers are never placed in the last few metres of a region and fire
# inside a window of this length.
RANDOM_TRIGGER_WINDOW = 10.0


class SamplePolicy(Protocol):
    name: str

    def sample(self, regions: RegionList, nsamples: int, rng: RandomSource) -> List[Region]: ...


class _ImmediatePolicy:
    """Always triggers as soon as the earliest region is reached."""

    name = "immediate"

    def sample(self, regions: RegionList, nsamples: int, rng: RandomSource) -> List[Region]:
        return [regions[0]]


class _RandomPolicy:
    """Uniformly random trigger point inside the regions, one per sample."""

    name = "random"

    def sample(self, regions: RegionList, nsamples: int, rng: RandomSource) -> List[Region]:
        lengths = np.array(
            [max(region.end - region.start - RANDOM_TRIGGER_WINDOW, 0.0) for region in regions]
        )
        if lengths.sum() <= 0.0:
            return ImmediatePolicy.sample(regions, nsamples, rng)
        bounds = np.cumsum(lengths)
        total = float(bounds[-1])
        samples: List[Region] = []
        for _ in range(nsamples):
            point = rng.random() * total
            idx = int(np.searchsorted(bounds, point, side="right"))
            idx = min(idx, len(regions) - 1)
            offset = point - (float(bounds[idx - 1]) if idx > 0 else 0.0)
            start = regions[idx].start + offset
            samples.append(Region(start, start + RANDOM_TRIGGER_WINDOW))
        return samples


ImmediatePolicy = _ImmediatePolicy()
RandomPolicy = _RandomPolicy()

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Optional


@dataclass(frozen=True)
class Region:
    """Half-open course interval ``[start, end)``."""

    start: float
    end: float

    @property
    def empty(self) -> bool:
        return self.end <= self.start

    def intersect(self, other: "Region") -> "Region":
        start = max(self.start, other.start)
        end = min(self.end, other.end)
        if end <= start:
            return Region(-1.0, -1.0)
        return Region(start, end)

    def contains(self, pos: float) -> bool:
        return self.start <= pos < self.end


class RegionList(list):
    """Ordered collection of regions."""

    def __init__(self, regions: Optional[Iterable[Region]] = None) -> None:
        super().__init__(regions or ())

    def rmap(self, fn: Callable[[Region], Region]) -> "RegionList":
        """Map every region through ``fn`` and keep the non-empty results."""
        result = RegionList()
        for region in self:
            mapped = fn(region)
            if not mapped.empty:
                result.append(mapped)
        return result

    def union(self, other: Iterable[Region]) -> "RegionList":
        """Merge two lists into sorted, non-overlapping regions."""
        ordered = sorted(list(self) + list(other), key=lambda r: (r.start, r.end))
        merged = RegionList()
        for region in ordered:
            if merged and region.start <= merged[-1].end:
                last = merged[-1]
                merged[-1] = Region(last.start, max(last.end, region.end))
            else:
                merged.append(region)
        return merged

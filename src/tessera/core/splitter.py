"""Split policies dividing a region into pass-sized pieces.

A splitter turns one requested region and a requested number of pieces
into a SplitPlan: a per-axis grid of equally sized pieces (the last piece
along an axis may be smaller). Pieces of a plan are pairwise disjoint and
their union is exactly the planned region.

- SlabSplitter: cuts along the slowest varying axis only (row slabs).
- TileSplitter: cuts across all axes, capped at one pixel per piece.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from tessera.core.region import Region

__all__ = [
    'SplitPlan',
    'SlabSplitter',
    'TileSplitter',
    'make_splitter',
    'coverage_is_exact',
]

logger = logging.getLogger(__name__)


def _ceil_div(a: int, b: int) -> int:
    return -(-a // b)


def _prime_factors(n: int) -> List[int]:
    """Prime factors of ``n``, largest first."""
    factors = []
    d = 2
    while d * d <= n:
        while n % d == 0:
            factors.append(d)
            n //= d
        d += 1
    if n > 1:
        factors.append(n)
    return sorted(factors, reverse=True)


@dataclass(frozen=True)
class SplitPlan:
    """Grid of pieces covering ``region``.

    Parameters
    ----------
    region : Region
        Region being split.
    piece_size : tuple of int
        Nominal piece extent per axis.
    counts : tuple of int
        Number of pieces per axis.
    """

    region: Region
    piece_size: Tuple[int, ...]
    counts: Tuple[int, ...]

    @classmethod
    def from_counts(cls, region: Region, counts: Sequence[int]) -> "SplitPlan":
        """Normalize per-axis counts so every piece is non-empty."""
        piece_size = []
        actual = []
        for extent, count in zip(region.size, counts):
            per_piece = max(1, _ceil_div(extent, max(1, count)))
            piece_size.append(per_piece)
            actual.append(max(1, _ceil_div(extent, per_piece)))
        return cls(region, tuple(piece_size), tuple(actual))

    @property
    def count(self) -> int:
        total = 1
        for c in self.counts:
            total *= c
        return total

    def piece(self, i: int) -> Region:
        """The ``i``-th piece, in C order over the per-axis grid."""
        if not 0 <= i < self.count:
            raise IndexError(f"piece {i} out of range for {self.count} pieces")
        if self.region.is_empty():
            return self.region
        grid_index = np.unravel_index(i, self.counts)
        index = []
        size = []
        for k, start, extent, per_piece in zip(
            grid_index, self.region.index, self.region.size, self.piece_size
        ):
            offset = int(k) * per_piece
            index.append(start + offset)
            size.append(min(per_piece, extent - offset))
        return Region(tuple(index), tuple(size))


class SlabSplitter:
    """Split along the slowest varying axis whose extent is larger than one."""

    name = "slab"

    def split_axis(self, region: Region) -> Optional[int]:
        for axis, extent in enumerate(region.size):
            if extent > 1:
                return axis
        return None

    def plan(self, region: Region, requested: int) -> SplitPlan:
        if requested < 1:
            raise ValueError(f"requested number of splits must be >= 1, got {requested}")
        counts = [1] * region.ndim
        axis = self.split_axis(region)
        if axis is not None and not region.is_empty():
            counts[axis] = min(requested, region.size[axis])
        return SplitPlan.from_counts(region, counts)

    def number_of_splits(self, region: Region, requested: int) -> int:
        return self.plan(region, requested).count

    def split(self, i: int, requested: int, region: Region) -> Region:
        return self.plan(region, requested).piece(i)


def _widest_axis(region: Region, counts: Sequence[int], factor: int) -> Optional[int]:
    """Axis with the largest piece extent that can take ``factor`` more cuts."""
    best_axis = None
    best_extent = 0.0
    for axis, extent in enumerate(region.size):
        if counts[axis] * factor > extent:
            continue
        piece_extent = extent / counts[axis]
        if piece_extent > best_extent:
            best_axis, best_extent = axis, piece_extent
    return best_axis


class TileSplitter(SlabSplitter):
    """Split across all axes, favouring the axis with the largest pieces.

    The requested count is factored into primes; each factor (largest
    first) is given to the axis whose current piece extent is largest and
    can still absorb it. A factor no axis can absorb whole is cut down to
    what the widest splittable axis still holds, so a large prime request
    still yields many small pieces. The plan never exceeds the requested
    count or the region's element count.
    """

    name = "tile"

    def plan(self, region: Region, requested: int) -> SplitPlan:
        if requested < 1:
            raise ValueError(f"requested number of splits must be >= 1, got {requested}")
        counts = [1] * region.ndim
        if region.is_empty():
            return SplitPlan.from_counts(region, counts)
        target = min(requested, region.number_of_pixels)
        for factor in _prime_factors(target):
            axis = _widest_axis(region, counts, factor)
            if axis is not None:
                counts[axis] *= factor
                continue
            axis = _widest_axis(region, counts, 2)
            if axis is None:
                logger.debug("Dropping split factor %d for %s", factor, region)
                continue
            share = region.size[axis] // counts[axis]
            logger.debug("Split factor %d reduced to %d on axis %d for %s",
                         factor, share, axis, region)
            counts[axis] *= share
        return SplitPlan.from_counts(region, counts)


_SPLITTERS = {
    SlabSplitter.name: SlabSplitter,
    TileSplitter.name: TileSplitter,
}


def make_splitter(name: str):
    """Return a splitter by name (``"slab"`` or ``"tile"``)."""
    try:
        return _SPLITTERS[name]()
    except KeyError:
        raise ValueError(
            f"Unknown splitter: {name!r} (expected one of {sorted(_SPLITTERS)})"
        ) from None


def coverage_is_exact(region: Region, pieces: Sequence[Region]) -> bool:
    """True when the union of ``pieces`` (clipped to ``region``) equals ``region``.

    Uses coordinate compression: the piece boundaries split every axis into
    a handful of intervals, and coverage is tracked per interval cell, so
    memory grows with the number of pieces rather than pixels.
    """
    if region.is_empty():
        return True
    clipped = [p.intersect(region) for p in pieces if p.ndim == region.ndim]
    clipped = [p for p in clipped if not p.is_empty()]
    if not clipped:
        return False

    edges = []
    for axis in range(region.ndim):
        points = {region.index[axis], region.upper[axis]}
        for p in clipped:
            points.add(p.index[axis])
            points.add(p.upper[axis])
        edges.append(np.array(sorted(points)))

    covered = np.zeros(tuple(len(e) - 1 for e in edges), dtype=bool)
    for p in clipped:
        cells = tuple(
            slice(
                int(np.searchsorted(e, p.index[axis])),
                int(np.searchsorted(e, p.upper[axis])),
            )
            for axis, e in enumerate(edges)
        )
        covered[cells] = True
    return bool(covered.all())

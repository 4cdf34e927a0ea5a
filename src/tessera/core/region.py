"""Axis-aligned index-space regions.

A Region is an immutable bounding box over a discrete index space,
described by a start index and a size per axis. Axes follow numpy order:
axis 0 is the slowest varying axis (rows of a 2-D image).
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple, Union

__all__ = ['Region']

IntSequence = Union[int, Sequence[int]]


def _as_tuple(values: Iterable[int]) -> Tuple[int, ...]:
    return tuple(int(v) for v in values)


@dataclass(frozen=True)
class Region:
    """Bounding box ``[index, index + size)`` over an N-D index space.

    Parameters
    ----------
    index : tuple of int
        Start index per axis.
    size : tuple of int
        Extent per axis. A zero extent on any axis makes the region empty.

    Raises
    ------
    ValueError
        If index and size differ in length or a size is negative.

    Examples
    --------
    >>> r = Region((0, 0), (100, 100))
    >>> r.intersect(Region((90, 50), (20, 20)))
    Region(index=(90, 50), size=(10, 20))
    """

    index: Tuple[int, ...]
    size: Tuple[int, ...]

    def __post_init__(self):
        index = _as_tuple(self.index)
        size = _as_tuple(self.size)
        if len(index) != len(size):
            raise ValueError(
                f"index has {len(index)} dims but size has {len(size)}"
            )
        if any(s < 0 for s in size):
            raise ValueError(f"region size must be non-negative, got {size}")
        object.__setattr__(self, "index", index)
        object.__setattr__(self, "size", size)

    # ------------------------------------------------------------------
    # Constructors
    @classmethod
    def from_shape(cls, shape: Sequence[int]) -> "Region":
        """Region at the origin spanning ``shape``."""
        return cls((0,) * len(shape), tuple(shape))

    @classmethod
    def from_bounds(cls, lower: Sequence[int], upper: Sequence[int]) -> "Region":
        """Region from inclusive lower and exclusive upper bounds."""
        size = tuple(max(0, int(u) - int(l)) for l, u in zip(lower, upper))
        return cls(tuple(lower), size)

    @classmethod
    def empty(cls, ndim: int) -> "Region":
        return cls((0,) * ndim, (0,) * ndim)

    # ------------------------------------------------------------------
    # Properties
    @property
    def ndim(self) -> int:
        return len(self.size)

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.size

    @property
    def upper(self) -> Tuple[int, ...]:
        """Exclusive upper bound per axis."""
        return tuple(i + s for i, s in zip(self.index, self.size))

    @property
    def number_of_pixels(self) -> int:
        count = 1
        for s in self.size:
            count *= s
        return count

    # ------------------------------------------------------------------
    # Predicates
    def is_empty(self) -> bool:
        return self.ndim == 0 or any(s == 0 for s in self.size)

    def contains(self, other: "Region") -> bool:
        """True when ``other`` lies entirely inside this region.

        An empty region is contained in any region of the same dimension.
        """
        if other.ndim != self.ndim:
            return False
        if other.is_empty():
            return True
        return all(
            si <= oi and ou <= su
            for si, su, oi, ou in zip(self.index, self.upper, other.index, other.upper)
        )

    def contains_index(self, index: Sequence[int]) -> bool:
        if len(index) != self.ndim:
            return False
        return all(lo <= i < hi for lo, i, hi in zip(self.index, index, self.upper))

    # ------------------------------------------------------------------
    # Arithmetic
    def intersect(self, other: "Region") -> "Region":
        """Overlap of two regions; empty (size 0 on some axis) when disjoint."""
        if other.ndim != self.ndim:
            raise ValueError(
                f"cannot intersect {self.ndim}-D region with {other.ndim}-D region"
            )
        lower = tuple(max(a, b) for a, b in zip(self.index, other.index))
        upper = tuple(min(a, b) for a, b in zip(self.upper, other.upper))
        return Region.from_bounds(lower, upper)

    def crop(self, other: "Region") -> "Region":
        """Intersect with ``other``, raising if nothing is left."""
        cropped = self.intersect(other)
        if cropped.is_empty():
            raise ValueError(f"{self} does not overlap {other}")
        return cropped

    def pad(self, radius: IntSequence) -> "Region":
        """Grow the region by ``radius`` on both sides of every axis."""
        if isinstance(radius, int):
            radius = (radius,) * self.ndim
        radius = _as_tuple(radius)
        if len(radius) != self.ndim:
            raise ValueError(f"radius has {len(radius)} dims, region has {self.ndim}")
        index = tuple(i - r for i, r in zip(self.index, radius))
        size = tuple(s + 2 * r for s, r in zip(self.size, radius))
        return Region(index, size)

    def shift(self, offset: Sequence[int]) -> "Region":
        return Region(tuple(i + o for i, o in zip(self.index, offset)), self.size)

    def slices(self, relative_to: Optional["Region"] = None) -> Tuple[slice, ...]:
        """Numpy slices addressing this region.

        Parameters
        ----------
        relative_to : Region, optional
            Region whose start maps to buffer index 0. Defaults to the
            global origin.
        """
        origin = relative_to.index if relative_to is not None else (0,) * self.ndim
        return tuple(
            slice(i - o, i - o + s) for i, o, s in zip(self.index, origin, self.size)
        )

    @staticmethod
    def bounding_union(regions: Iterable["Region"]) -> "Region":
        """Smallest region covering all non-empty ``regions``."""
        regions = [r for r in regions if not r.is_empty()]
        if not regions:
            raise ValueError("bounding_union needs at least one non-empty region")
        lower = tuple(min(vals) for vals in zip(*(r.index for r in regions)))
        upper = tuple(max(vals) for vals in zip(*(r.upper for r in regions)))
        return Region.from_bounds(lower, upper)

    def __str__(self):
        spans = ", ".join(f"{i}:{u}" for i, u in zip(self.index, self.upper))
        return f"[{spans}]"

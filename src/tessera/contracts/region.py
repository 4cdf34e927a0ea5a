"""Region contracts.

Enforce the region invariants of a data handle: a request never leaves
the largest possible region, and after generation the buffer covers the
request.
"""

from tessera.contracts.base import require
from tessera.contracts.failure import (
    ContractViolation,
    InvalidRequestedRegionError,
    SplitPolicyFailure,
)


def assert_region_within(region, largest, what: str = "requested region",
                         exc=InvalidRequestedRegionError, **details) -> None:
    """Enforce ``region`` ⊆ ``largest``.

    Parameters
    ----------
    region, largest : Region
        Region to check and the bounds it must respect.
    what : str
        Name used in the error message.
    exc : type
        Exception raised on violation.

    Raises
    ------
    InvalidRequestedRegionError
        (or ``exc``) if the region is not contained.
    """
    require(
        region.ndim == largest.ndim,
        f"Region contract violated: {what} has {region.ndim} dims, "
        f"largest possible region has {largest.ndim}",
        exc=exc, **details,
    )
    require(
        largest.contains(region),
        f"Region contract violated: {what} {region} is outside "
        f"largest possible region {largest}",
        exc=exc, **details,
    )


def assert_buffer_covers_request(image) -> None:
    """Enforce that a generated image buffers at least what was requested."""
    require(
        image.buffered_region.contains(image.requested_region),
        f"Buffer contract violated: buffered region {image.buffered_region} "
        f"does not cover requested region {image.requested_region}",
        exc=ContractViolation,
    )


def assert_exact_tiling(region, pieces, **details) -> None:
    """Enforce that ``pieces`` cover ``region`` without gaps or overflow."""
    from tessera.core.splitter import coverage_is_exact

    for piece in pieces:
        require(
            region.contains(piece),
            f"Tiling contract violated: piece {piece} leaves region {region}",
            exc=SplitPolicyFailure, **details,
        )
    require(
        coverage_is_exact(region, pieces),
        f"Tiling contract violated: {len(pieces)} pieces leave gaps in {region}",
        exc=SplitPolicyFailure, **details,
    )

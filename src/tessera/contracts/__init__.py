"""Pipeline contracts and the engine error hierarchy.

Config values are checked by the pydantic schemas. The checks here cover
what nodes hand each other at run time: regions inside the image, buffers
that cover requests and pass pieces that tile a request exactly.
"""

from tessera.contracts.failure import (
    ComputeHookFailure,
    ContractViolation,
    InvalidRequestedRegionError,
    ProcessAborted,
    SplitPolicyFailure,
    StreamingFailure,
    TesseraError,
    UpstreamPropagationFailure,
)
from tessera.contracts.base import require
from tessera.contracts.region import (
    assert_buffer_covers_request,
    assert_exact_tiling,
    assert_region_within,
)

__all__ = [
    "TesseraError",
    "ContractViolation",
    "InvalidRequestedRegionError",
    "StreamingFailure",
    "UpstreamPropagationFailure",
    "SplitPolicyFailure",
    "ComputeHookFailure",
    "ProcessAborted",
    "require",
    "assert_region_within",
    "assert_buffer_covers_request",
    "assert_exact_tiling",
]

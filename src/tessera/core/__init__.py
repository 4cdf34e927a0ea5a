"""Core value types for the streaming engine.

- region: axis-aligned index-space bounding boxes
- splitter: split policies dividing a region into pass-sized pieces
- timestamp: process-wide generation stamps
- data_object: region-aware data handles (DataObject, ImageData)
"""

from tessera.core.region import Region
from tessera.core.splitter import (
    SlabSplitter,
    SplitPlan,
    TileSplitter,
    coverage_is_exact,
    make_splitter,
)
from tessera.core.timestamp import TimeStamp, next_stamp
from tessera.core.data_object import DataObject, ImageData

__all__ = [
    "Region",
    "SplitPlan",
    "SlabSplitter",
    "TileSplitter",
    "make_splitter",
    "coverage_is_exact",
    "TimeStamp",
    "next_stamp",
    "DataObject",
    "ImageData",
]

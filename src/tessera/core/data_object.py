"""Data handles flowing between pipeline nodes.

A DataObject carries three regions:

- largest_possible_region: full logical extent of the dataset
- buffered_region: what is resident in memory
- requested_region: what the consumer currently wants

plus the stamps the generic update protocol uses to detect staleness.
ImageData adds the numpy buffer holding the buffered pixels.

Invariants (enforced by contracts):
- requested_region ⊆ largest_possible_region when a request is propagated
- after a node generates data, buffered_region covers requested_region
"""

import logging
from typing import Optional

import numpy as np
import xarray as xr

from tessera.contracts.base import require
from tessera.contracts.region import assert_region_within
from tessera.core.region import Region
from tessera.core.timestamp import TimeStamp

__all__ = ['DataObject', 'ImageData']

logger = logging.getLogger(__name__)

_DIM_NAMES = {1: ("x",), 2: ("y", "x"), 3: ("z", "y", "x")}


class DataObject:
    """Region-aware data handle participating in the update protocol.

    The handle is owned by the node that produces it (``source``); a
    handle without a source holds caller-supplied data and spans its buffer.
    """

    def __init__(self, name: Optional[str] = None):
        self.name = name
        self.source = None
        self._largest_possible_region = Region.empty(0)
        self._buffered_region = Region.empty(0)
        self._requested_region = Region.empty(0)
        self._requested_region_initialized = False
        self._last_request_was_outside_buffer = False

        self._mtime = TimeStamp()
        self._mtime.modified()
        self._update_mtime = TimeStamp()
        self.pipeline_mtime = 0

    # ------------------------------------------------------------------
    # Regions
    @property
    def largest_possible_region(self) -> Region:
        return self._largest_possible_region

    @largest_possible_region.setter
    def largest_possible_region(self, region: Region):
        self._largest_possible_region = region

    @property
    def buffered_region(self) -> Region:
        return self._buffered_region

    @buffered_region.setter
    def buffered_region(self, region: Region):
        self._buffered_region = region

    @property
    def requested_region(self) -> Region:
        return self._requested_region

    @requested_region.setter
    def requested_region(self, region: Region):
        self._requested_region = region
        self._requested_region_initialized = True

    def set_requested_region_to_largest_possible_region(self):
        self.requested_region = self._largest_possible_region

    def requested_region_is_outside_of_buffered_region(self) -> bool:
        return not self._buffered_region.contains(self._requested_region)

    # ------------------------------------------------------------------
    # Stamps
    @property
    def mtime(self) -> int:
        """Generation stamp, bumped whenever the content changes."""
        return self._mtime.value

    @property
    def update_mtime(self) -> int:
        return self._update_mtime.value

    def modified(self):
        self._mtime.modified()

    def data_has_been_generated(self):
        """Mark the buffered content as freshly produced."""
        self._mtime.modified()
        self._update_mtime.modified()

    def _needs_update(self, outside: bool) -> bool:
        return (
            self._update_mtime.value < self.pipeline_mtime
            or outside
            or self._last_request_was_outside_buffer
        )

    # ------------------------------------------------------------------
    # Update protocol
    def update(self):
        """Bring the requested region up to date (all protocol phases)."""
        self.update_output_information()
        self.propagate_requested_region()
        self.update_output_data()

    def update_largest_possible_region(self):
        """Refresh metadata, request everything, then update."""
        self.update_output_information()
        self.set_requested_region_to_largest_possible_region()
        self.propagate_requested_region()
        self.update_output_data()

    def update_output_information(self):
        if self.source is not None:
            self.source.update_output_information()
        else:
            if not self._buffered_region.is_empty():
                self._largest_possible_region = self._buffered_region
            self.pipeline_mtime = self.mtime
        if not self._requested_region_initialized or (
            self._requested_region.ndim != self._largest_possible_region.ndim
        ):
            self.set_requested_region_to_largest_possible_region()

    def propagate_requested_region(self):
        assert_region_within(self._requested_region, self._largest_possible_region)
        outside = self.requested_region_is_outside_of_buffered_region()
        if self._needs_update(outside) and self.source is not None:
            self.source.propagate_requested_region(self)
        self._last_request_was_outside_buffer = outside

    def update_output_data(self):
        outside = self.requested_region_is_outside_of_buffered_region()
        if self._needs_update(outside) and self.source is not None:
            self.source.update_output_data(self)

    def reset_pipeline(self):
        if self.source is not None:
            self.source.reset_pipeline()

    def initialize(self):
        """Release the buffer; the next update regenerates it."""
        self._buffered_region = Region.empty(self._largest_possible_region.ndim)

    def describe(self) -> str:
        return (
            f"{type(self).__name__}(name={self.name!r}, "
            f"largest={self._largest_possible_region}, "
            f"buffered={self._buffered_region}, "
            f"requested={self._requested_region}, "
            f"mtime={self.mtime}, update_mtime={self.update_mtime})"
        )

    def __repr__(self):
        return self.describe()


class ImageData(DataObject):
    """N-D image handle with a numpy buffer over ``buffered_region``.

    Parameters
    ----------
    array : array-like, optional
        Initial pixels. The handle then spans the array (index origin 0
        unless ``region`` says otherwise).
    dtype : dtype-like, optional
        Pixel type for buffers allocated later.
    name : str, optional
        Label used in logs and ``to_xarray``.
    """

    def __init__(self, array=None, dtype=None, name: Optional[str] = None):
        super().__init__(name=name)
        self._buffer: Optional[np.ndarray] = None
        self.dtype = np.dtype(dtype) if dtype is not None else None
        if array is not None:
            self.set_array(array)

    @property
    def buffer(self) -> Optional[np.ndarray]:
        return self._buffer

    def set_array(self, array, region: Optional[Region] = None):
        """Install caller data as the buffer."""
        array = np.asarray(array)
        if region is None:
            region = Region.from_shape(array.shape)
        require(
            tuple(region.shape) == tuple(array.shape),
            f"Buffer contract violated: array shape {array.shape} does not match region {region}",
        )
        self._buffer = array
        self.dtype = array.dtype
        self.buffered_region = region
        if self.source is None:
            self.largest_possible_region = region
        self.modified()

    def allocate(self, region: Optional[Region] = None):
        """Allocate a zeroed buffer for ``region`` (default: requested region)."""
        region = self.requested_region if region is None else region
        dtype = self.dtype if self.dtype is not None else np.dtype(np.float64)
        self._buffer = np.zeros(region.shape, dtype=dtype)
        self.buffered_region = region
        logger.debug("Allocated %s %s buffer for %s", region.shape, dtype, self.name or "image")

    def initialize(self):
        super().initialize()
        self._buffer = None

    def view(self, region: Region) -> np.ndarray:
        """Writable view of ``region`` inside the buffer."""
        require(
            self._buffer is not None and self.buffered_region.contains(region),
            f"Buffer contract violated: {region} is not inside buffered region "
            f"{self.buffered_region} of {self.name or 'image'}",
        )
        return self._buffer[region.slices(self.buffered_region)]

    def write(self, region: Region, values):
        self.view(region)[...] = values

    def graft(self, other: "ImageData"):
        """Share ``other``'s buffer, regions and pixel type."""
        self._buffer = other._buffer
        self.dtype = other.dtype
        self.buffered_region = other.buffered_region
        self.largest_possible_region = other.largest_possible_region
        self._requested_region = other.requested_region

    def to_numpy(self) -> np.ndarray:
        """Copy of the buffered pixels."""
        require(self._buffer is not None, f"{self.name or 'image'} has no buffer")
        return np.array(self._buffer, copy=True)

    def to_xarray(self, name: Optional[str] = None) -> xr.DataArray:
        """Buffered pixels as a DataArray indexed by global coordinates."""
        array = self.to_numpy()
        region = self.buffered_region
        dims = _DIM_NAMES.get(array.ndim, tuple(f"dim_{i}" for i in range(array.ndim)))
        coords = {
            dim: np.arange(start, stop)
            for dim, start, stop in zip(dims, region.index, region.upper)
        }
        return xr.DataArray(
            array,
            dims=dims,
            coords=coords,
            name=name or self.name,
            attrs={"largest_possible_region": str(self.largest_possible_region)},
        )

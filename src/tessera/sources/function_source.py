"""Synthetic image source computed from index grids."""

import logging
from typing import Callable, List, Optional, Sequence

import numpy as np

from tessera.core.region import Region
from tessera.pipeline.process_object import ImageSource

__all__ = ['FunctionImageSource']

logger = logging.getLogger(__name__)


class FunctionImageSource(ImageSource):
    """Image whose pixel at global index ``(i, j, ...)`` is ``func(i, j, ...)``.

    ``func`` receives one broadcastable integer grid per axis, restricted
    to the requested region, so only requested pixels are ever computed.

    Parameters
    ----------
    shape : sequence of int
        Full image extent.
    func : callable
        Vectorized function of the index grids.
    dtype : dtype-like
        Output pixel type.
    """

    def __init__(self, shape: Sequence[int], func: Callable[..., np.ndarray],
                 dtype=np.float64, name: Optional[str] = None):
        self.shape = tuple(int(s) for s in shape)
        if not self.shape or any(s < 0 for s in self.shape):
            raise ValueError(f"invalid image shape: {shape}")
        self._func = func
        self.generated_regions: List[Region] = []
        super().__init__(name=name, output_dtype=dtype)

    def generate_output_information(self):
        self.output.largest_possible_region = Region.from_shape(self.shape)
        self.output.dtype = self.output_dtype

    def generate_data(self):
        output = self.output
        region = output.requested_region
        grids = np.meshgrid(
            *(np.arange(lo, hi) for lo, hi in zip(region.index, region.upper)),
            indexing="ij",
            sparse=True,
        )
        values = np.broadcast_to(self._func(*grids), region.shape)
        output.set_array(np.array(values, dtype=self.output_dtype), region=region)
        self.generated_regions.append(region)

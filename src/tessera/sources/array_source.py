"""Image sources backed by in-memory or lazily loaded arrays.

ArrayImageSource produces only the requested region of its array. With a
lazily opened ``xarray.DataArray`` (for example a NetCDF variable) only
that slab is read from disk, which is what lets a streamed pipeline work
on data larger than memory.
"""

import logging
from pathlib import Path
from typing import List, Optional, Union

import numpy as np
import xarray as xr

from tessera.core.region import Region
from tessera.pipeline.process_object import ImageSource

__all__ = ['ArrayImageSource']

logger = logging.getLogger(__name__)

ArrayLike = Union[np.ndarray, xr.DataArray]


class ArrayImageSource(ImageSource):
    """Source node exposing an N-D array as a pipeline image.

    Parameters
    ----------
    array : numpy.ndarray or xarray.DataArray
        Pixels, axes in numpy order.
    name : str, optional
        Node label.

    Attributes
    ----------
    generated_regions : list of Region
        Every region this source produced, in order.

    Examples
    --------
    >>> source = ArrayImageSource(np.arange(12.0).reshape(3, 4))
    >>> source.update()
    >>> source.output.buffered_region
    Region(index=(0, 0), size=(3, 4))
    """

    def __init__(self, array: ArrayLike, name: Optional[str] = None):
        self._array = self._check_array(array)
        self.generated_regions: List[Region] = []
        super().__init__(name=name, output_dtype=self._array.dtype)

    @classmethod
    def from_netcdf(cls, path: Union[str, Path], variable: str,
                    name: Optional[str] = None, **open_kwargs) -> "ArrayImageSource":
        """Open ``variable`` of a NetCDF file lazily.

        Parameters
        ----------
        path : str or Path
            NetCDF file.
        variable : str
            Data variable to expose.
        **open_kwargs
            Passed to ``xarray.open_dataset`` (e.g. ``engine``).
        """
        ds = xr.open_dataset(path, **open_kwargs)
        if variable not in ds.data_vars:
            available = list(ds.data_vars)
            ds.close()
            raise KeyError(f"Variable {variable!r} not in {path} (available: {available})")
        logger.info("Opened %s:%s lazily, shape=%s", path, variable, ds[variable].shape)
        return cls(ds[variable], name=name or variable)

    @staticmethod
    def _check_array(array) -> ArrayLike:
        if not isinstance(array, xr.DataArray):
            array = np.asarray(array)
        if array.ndim == 0:
            raise ValueError("ArrayImageSource needs an array with at least one dimension")
        return array

    @property
    def array(self) -> ArrayLike:
        return self._array

    def set_array(self, array: ArrayLike):
        """Replace the pixels; the next update regenerates downstream."""
        self._array = self._check_array(array)
        self.output_dtype = self._array.dtype
        self.modified()

    def generate_output_information(self):
        output = self.output
        output.largest_possible_region = Region.from_shape(self._array.shape)
        output.dtype = np.dtype(self._array.dtype)

    def generate_data(self):
        output = self.output
        region = output.requested_region
        if isinstance(self._array, xr.DataArray):
            values = self._array.isel(
                {dim: s for dim, s in zip(self._array.dims, region.slices())}
            ).values
        else:
            values = self._array[region.slices()]
        output.set_array(np.array(values, copy=True), region=region)
        self.generated_regions.append(region)
        logger.debug("%s generated %s", self.name, region)

"""Single-pass pixel-wise filters.

These nodes process their whole requested region in one generate_data()
call. Placed downstream of a streaming node they see already computed
data; upstream of one they are driven piece by piece.
"""

import logging
from typing import Callable, Optional

import numpy as np

from tessera.core.region import Region
from tessera.pipeline.process_object import ImageToImageFilter
from tessera.schemas import InternalConfig, default_config

__all__ = ['UnaryFunctorImageFilter', 'CastImageFilter']

logger = logging.getLogger(__name__)


class UnaryFunctorImageFilter(ImageToImageFilter):
    """Apply ``func(values) -> values`` to every requested pixel.

    Parameters
    ----------
    func : callable
        Element-wise function over a numpy array.
    input : ProcessObject or DataObject, optional
        Primary input.
    output_dtype : dtype-like, optional
        Output pixel type (default: the input's).
    """

    def __init__(self, func: Callable[[np.ndarray], np.ndarray], input=None,
                 output_dtype=None, name: Optional[str] = None):
        self._func = func
        super().__init__(input=input, name=name, output_dtype=output_dtype)

    @property
    def func(self):
        return self._func

    @func.setter
    def func(self, func):
        if func is not self._func:
            self._func = func
            self.modified()

    def process_region(self, block: np.ndarray, input_region: Region,
                       output_region: Region) -> np.ndarray:
        return self._func(block[output_region.slices(input_region)])


class CastImageFilter(UnaryFunctorImageFilter):
    """Convert pixels to ``dtype`` (default: ``config.filters.cast_dtype``)."""

    def __init__(self, dtype=None, input=None, config: Optional[InternalConfig] = None,
                 name: Optional[str] = None):
        config = config if config is not None else default_config()
        self.dtype = np.dtype(dtype if dtype is not None else config.filters.cast_dtype)
        super().__init__(self._cast, input=input, output_dtype=self.dtype, name=name)
        logger.debug("%s casts to %s", self.name, self.dtype)

    def _cast(self, values: np.ndarray) -> np.ndarray:
        return values.astype(self.dtype)

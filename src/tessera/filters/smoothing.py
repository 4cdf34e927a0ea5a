"""Single-pass neighborhood filters backed by scipy.ndimage."""

import logging
from typing import Optional

import numpy as np
from scipy import ndimage

from tessera.core.region import Region
from tessera.pipeline.process_object import ImageToImageFilter
from tessera.schemas import InternalConfig, default_config

__all__ = ['GaussianImageFilter']

logger = logging.getLogger(__name__)


class GaussianImageFilter(ImageToImageFilter):
    """Gaussian smoothing of the requested region in one pass.

    The input request is the output request grown by the kernel radius
    ``int(truncate * sigma + 0.5)``, cropped to the input extent.

    Parameters
    ----------
    sigma : float, optional
        Standard deviation in pixels (default: ``config.filters.gaussian_sigma``).
    truncate : float, optional
        Kernel radius in sigmas (default: ``config.filters.gaussian_truncate``).
    mode : str
        scipy boundary mode.
    """

    def __init__(self, sigma: Optional[float] = None, truncate: Optional[float] = None,
                 input=None, config: Optional[InternalConfig] = None,
                 mode: str = "reflect", name: Optional[str] = None):
        config = config if config is not None else default_config()
        self.sigma = float(sigma if sigma is not None else config.filters.gaussian_sigma)
        self.truncate = float(truncate if truncate is not None else config.filters.gaussian_truncate)
        if self.sigma <= 0 or self.truncate <= 0:
            raise ValueError(
                f"sigma and truncate must be positive, got sigma={self.sigma}, truncate={self.truncate}"
            )
        self.mode = mode
        super().__init__(input=input, name=name, output_dtype=np.float64,
                         radius=int(self.truncate * self.sigma + 0.5))
        logger.info("%s initialized: sigma=%s, truncate=%s, radius=%d",
                    self.name, self.sigma, self.truncate, self.radius)

    def process_region(self, block: np.ndarray, input_region: Region,
                       output_region: Region) -> np.ndarray:
        smoothed = ndimage.gaussian_filter(
            np.asarray(block, dtype=np.float64),
            sigma=self.sigma,
            truncate=self.truncate,
            mode=self.mode,
        )
        return smoothed[output_region.slices(input_region)]

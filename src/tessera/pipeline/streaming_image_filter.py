"""Streaming image nodes built on StreamingProcessObject.

RegionStreamingKernel is the split policy and per-pass computation shared
by every one-input image node here. It plans passes over the output's
requested region with a splitter, asks the input for the matching piece
(grown by the kernel radius and cropped to the input extent), and writes
the piece returned by a pixel function into an output buffer allocated
once before pass 0.

Pixel functions have the signature::

    func(block, input_region, output_region) -> ndarray

where ``block`` holds the input pixels of ``input_region`` and the result
has the shape of ``output_region``.
"""

import logging
import threading
from typing import Callable, List, Optional

import numpy as np
import pandas as pd
from scipy import ndimage

from tessera.contracts.base import require
from tessera.contracts.failure import ProcessAborted
from tessera.contracts.region import assert_exact_tiling
from tessera.core.data_object import DataObject, ImageData
from tessera.core.region import Region
from tessera.core.splitter import make_splitter
from tessera.pipeline.process_object import copy_image_information
from tessera.pipeline.streaming import StreamingProcessObject
from tessera.schemas import InternalConfig, default_config

__all__ = [
    'RegionStreamingKernel',
    'StatisticsKernel',
    'StreamingImageFilter',
    'StreamingCastImageFilter',
    'StreamingGaussianImageFilter',
    'StreamingStatisticsImageFilter',
    'pass_through',
]

logger = logging.getLogger(__name__)

PixelFunction = Callable[[np.ndarray, Region, Region], np.ndarray]


def pass_through(block: np.ndarray, input_region: Region, output_region: Region) -> np.ndarray:
    """Copy the output region's pixels out of the input block."""
    return block[output_region.slices(input_region)]


def gaussian_radius(sigma: float, truncate: float) -> int:
    """Kernel half-width used by scipy.ndimage.gaussian_filter."""
    return int(truncate * float(sigma) + 0.5)


class RegionStreamingKernel:
    """Region-splitting kernel for one-input image nodes.

    Parameters
    ----------
    func : callable
        Pixel function applied per pass.
    number_of_stream_divisions : int
        Requested number of passes; the splitter may produce fewer.
    splitter : SlabSplitter or TileSplitter
        Split policy over the output's requested region.
    radius : int or tuple of int
        Extra input margin per axis needed to compute a piece.
    verify_tiling : bool
        Check after the run that the pieces tiled the requested region.
    cancel_event : threading.Event, optional
        When set, the next pass raises ProcessAborted.
    """

    def __init__(self, func: PixelFunction, number_of_stream_divisions: int,
                 splitter, radius=0, verify_tiling: bool = True,
                 cancel_event: Optional[threading.Event] = None):
        self.func = func
        self.number_of_stream_divisions = number_of_stream_divisions
        self.splitter = splitter
        self.radius = radius
        self.verify_tiling = verify_tiling
        self.cancel_event = cancel_event
        self.pieces: List[Region] = []

    def output_piece(self, node, pass_index: int) -> Region:
        return self.splitter.split(
            pass_index, self.number_of_stream_divisions, node.output.requested_region
        )

    def input_region_for(self, piece: Region, data: DataObject) -> Region:
        """Input region needed for ``piece``.

        The radius margin is cropped to the input extent; the piece itself
        is not, so a piece outside the input is still caught by the
        controller's containment check.
        """
        if not self.radius:
            return piece
        margin = piece.pad(self.radius).intersect(data.largest_possible_region)
        return Region.bounding_union([piece, margin])

    # StreamingKernel -----------------------------------------------------
    def before_run(self, node):
        self.pieces = []
        node.allocate_outputs()

    def pass_count(self, node) -> int:
        return self.splitter.number_of_splits(
            node.output.requested_region, self.number_of_stream_divisions
        )

    def regions_for_pass(self, node, pass_index: int):
        piece = self.output_piece(node, pass_index)
        for data in node.inputs:
            data.requested_region = self.input_region_for(piece, data)

    def compute_pass(self, node, pass_index: int):
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise ProcessAborted(f"{node.name} cancelled before pass {pass_index}")
        piece = self.output_piece(node, pass_index)
        data = node.get_input()
        require(data is not None, f"{node.name} has no primary input")
        input_region = data.requested_region
        result = self.func(data.view(input_region), input_region, piece)
        node.output.write(piece, result)
        self.pieces.append(piece)

    def after_run(self, node):
        if self.verify_tiling:
            assert_exact_tiling(node.output.requested_region, self.pieces)

    def __repr__(self):
        return (
            f"{type(self).__name__}(splitter={self.splitter.name!r}, "
            f"divisions={self.number_of_stream_divisions}, radius={self.radius})"
        )


class StreamingImageFilter(StreamingProcessObject):
    """Streaming node applying a pixel function piece by piece.

    Without ``func`` the node copies its input, which makes it the sink
    that turns any upstream graph into a streamed one.

    Parameters
    ----------
    func : callable, optional
        Pixel function (default: pass-through).
    input : ProcessObject or DataObject, optional
        Primary input.
    config : InternalConfig, optional
        Runtime configuration; defaults come from ParamConfig.
    number_of_stream_divisions : int, optional
        Overrides ``config.streaming.number_of_stream_divisions``.
    splitter : str or splitter, optional
        Overrides ``config.streaming.splitter``.
    radius : int or tuple of int
        Input margin the function needs around each piece.
    output_dtype : dtype-like, optional
        Output pixel type (default: the input's).
    cancel_event : threading.Event, optional
        Cooperative cancellation flag checked once per pass.
    name : str, optional
        Node label.
    """

    def __init__(self, func: Optional[PixelFunction] = None, input=None,
                 config: Optional[InternalConfig] = None,
                 number_of_stream_divisions: Optional[int] = None,
                 splitter=None, radius=0, output_dtype=None,
                 cancel_event: Optional[threading.Event] = None,
                 name: Optional[str] = None):
        self.config = config if config is not None else default_config()
        self.output_dtype = np.dtype(output_dtype) if output_dtype is not None else None

        if number_of_stream_divisions is None:
            number_of_stream_divisions = self.config.streaming.number_of_stream_divisions
        if number_of_stream_divisions < 1:
            raise ValueError(
                f"number_of_stream_divisions must be >= 1, got {number_of_stream_divisions}"
            )
        if splitter is None:
            splitter = self.config.streaming.splitter
        if isinstance(splitter, str):
            splitter = make_splitter(splitter)

        kernel = self.make_kernel(
            func or pass_through,
            number_of_stream_divisions=number_of_stream_divisions,
            splitter=splitter,
            radius=radius,
            verify_tiling=self.config.streaming.verify_tiling,
            cancel_event=cancel_event,
        )
        super().__init__(kernel=kernel, name=name)
        if input is not None:
            self.set_input(input)

        logger.info("%s initialized: splitter=%s, divisions=%d, radius=%s",
                    self.name, splitter.name, number_of_stream_divisions, radius)

    def make_kernel(self, func, **kwargs) -> RegionStreamingKernel:
        return RegionStreamingKernel(func, **kwargs)

    def make_output(self) -> ImageData:
        return ImageData(dtype=self.output_dtype, name=f"{self.name}.output")

    def generate_output_information(self):
        copy_image_information(self.get_input(), self._outputs, self.output_dtype)

    def allocate_outputs(self):
        for output in self._outputs:
            output.allocate(output.requested_region)

    # Parameters that change the result invalidate the output.
    @property
    def number_of_stream_divisions(self) -> int:
        return self.kernel.number_of_stream_divisions

    @number_of_stream_divisions.setter
    def number_of_stream_divisions(self, value: int):
        if value < 1:
            raise ValueError(f"number_of_stream_divisions must be >= 1, got {value}")
        if value != self.kernel.number_of_stream_divisions:
            self.kernel.number_of_stream_divisions = value
            self.modified()

    @property
    def splitter(self):
        return self.kernel.splitter

    @splitter.setter
    def splitter(self, value):
        if isinstance(value, str):
            value = make_splitter(value)
        self.kernel.splitter = value
        self.modified()

    @property
    def radius(self):
        return self.kernel.radius


class StreamingCastImageFilter(StreamingImageFilter):
    """Streamed pixel type conversion.

    Parameters
    ----------
    dtype : dtype-like, optional
        Target pixel type (default: ``config.filters.cast_dtype``).
    """

    def __init__(self, dtype=None, input=None, config: Optional[InternalConfig] = None,
                 **kwargs):
        config = config if config is not None else default_config()
        dtype = np.dtype(dtype if dtype is not None else config.filters.cast_dtype)
        self.dtype = dtype
        super().__init__(func=self._cast, input=input, config=config,
                         output_dtype=dtype, **kwargs)

    def _cast(self, block, input_region, output_region):
        return pass_through(block, input_region, output_region).astype(self.dtype)


class StreamingGaussianImageFilter(StreamingImageFilter):
    """Streamed Gaussian smoothing with scipy.ndimage.

    Each piece is computed from its input grown by the kernel radius, so
    the streamed result equals ``scipy.ndimage.gaussian_filter`` over the
    whole image (same ``mode``) for any number of passes.

    Parameters
    ----------
    sigma : float, optional
        Standard deviation in pixels (default: ``config.filters.gaussian_sigma``).
    truncate : float, optional
        Kernel radius in sigmas (default: ``config.filters.gaussian_truncate``).
    mode : str
        Boundary mode passed to scipy.
    """

    def __init__(self, sigma: Optional[float] = None, truncate: Optional[float] = None,
                 input=None, config: Optional[InternalConfig] = None,
                 mode: str = "reflect", **kwargs):
        config = config if config is not None else default_config()
        self.sigma = float(sigma if sigma is not None else config.filters.gaussian_sigma)
        self.truncate = float(truncate if truncate is not None else config.filters.gaussian_truncate)
        if self.sigma <= 0 or self.truncate <= 0:
            raise ValueError(
                f"sigma and truncate must be positive, got sigma={self.sigma}, truncate={self.truncate}"
            )
        self.mode = mode
        kwargs.setdefault("output_dtype", np.float64)
        super().__init__(func=self._smooth, input=input, config=config,
                         radius=gaussian_radius(self.sigma, self.truncate), **kwargs)

    def _smooth(self, block, input_region, output_region):
        smoothed = ndimage.gaussian_filter(
            np.asarray(block, dtype=np.float64),
            sigma=self.sigma,
            truncate=self.truncate,
            mode=self.mode,
        )
        return smoothed[output_region.slices(input_region)]


class StatisticsKernel(RegionStreamingKernel):
    """Pass-through kernel accumulating running statistics per pass."""

    def __init__(self, func, **kwargs):
        super().__init__(func, **kwargs)
        self.records: List[dict] = []
        self.result: dict = {}

    def before_run(self, node):
        super().before_run(node)
        self.records = []
        self.result = {}

    def compute_pass(self, node, pass_index: int):
        super().compute_pass(node, pass_index)
        piece = self.pieces[-1]
        values = np.asarray(node.output.view(piece), dtype=np.float64)
        self.records.append({
            "pass_index": pass_index,
            "region": str(piece),
            "count": int(values.size),
            "minimum": float(values.min()) if values.size else np.nan,
            "maximum": float(values.max()) if values.size else np.nan,
            "sum": float(values.sum()),
            "sum_of_squares": float(np.square(values).sum()),
        })

    def after_run(self, node):
        super().after_run(node)
        count = sum(r["count"] for r in self.records)
        total = sum(r["sum"] for r in self.records)
        total_sq = sum(r["sum_of_squares"] for r in self.records)
        if count == 0:
            self.result = {"count": 0, "minimum": np.nan, "maximum": np.nan,
                           "sum": 0.0, "mean": np.nan, "variance": np.nan, "sigma": np.nan}
            return
        mean = total / count
        # sample variance (n - 1)
        variance = (total_sq - count * mean * mean) / (count - 1) if count > 1 else 0.0
        variance = max(variance, 0.0)
        self.result = {
            "count": count,
            "minimum": min(r["minimum"] for r in self.records),
            "maximum": max(r["maximum"] for r in self.records),
            "sum": total,
            "mean": mean,
            "variance": variance,
            "sigma": float(np.sqrt(variance)),
        }
        logger.debug("Statistics finalized over %d pixels: mean=%.6g sigma=%.6g",
                     count, mean, self.result["sigma"])


class StreamingStatisticsImageFilter(StreamingImageFilter):
    """Streamed pass-through that computes whole-image statistics.

    The output request is enlarged to the largest possible region so the
    statistics always cover the full image.

    Attributes (after update)
    -------------------------
    minimum, maximum, sum, mean, variance, sigma : float
    count : int
    """

    def __init__(self, input=None, config: Optional[InternalConfig] = None, **kwargs):
        super().__init__(func=pass_through, input=input, config=config, **kwargs)

    def make_kernel(self, func, **kwargs) -> StatisticsKernel:
        return StatisticsKernel(func, **kwargs)

    def enlarge_output_requested_region(self, output: DataObject):
        output.set_requested_region_to_largest_possible_region()

    def _statistic(self, key):
        require(bool(self.kernel.result), f"{self.name} has not been updated")
        return self.kernel.result[key]

    @property
    def minimum(self) -> float:
        return self._statistic("minimum")

    @property
    def maximum(self) -> float:
        return self._statistic("maximum")

    @property
    def sum(self) -> float:
        return self._statistic("sum")

    @property
    def mean(self) -> float:
        return self._statistic("mean")

    @property
    def variance(self) -> float:
        return self._statistic("variance")

    @property
    def sigma(self) -> float:
        return self._statistic("sigma")

    @property
    def count(self) -> int:
        return self._statistic("count")

    def statistics_frame(self) -> pd.DataFrame:
        """Per-pass statistics of the last run, one row per pass."""
        columns = ["pass_index", "region", "count", "minimum", "maximum", "sum", "sum_of_squares"]
        return pd.DataFrame(self.kernel.records, columns=columns)

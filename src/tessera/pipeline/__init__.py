"""Pipeline nodes, the streaming controller and the run driver."""

from tessera.pipeline.process_object import (
    ImageSource,
    ImageToImageFilter,
    ProcessObject,
)
from tessera.pipeline.streaming import StreamingKernel, StreamingProcessObject
from tessera.pipeline.streaming_image_filter import (
    RegionStreamingKernel,
    StreamingCastImageFilter,
    StreamingGaussianImageFilter,
    StreamingImageFilter,
    StreamingStatisticsImageFilter,
)
from tessera.pipeline.runner import PipelineRunner, RunReport

__all__ = [
    'ProcessObject',
    'ImageSource',
    'ImageToImageFilter',
    'StreamingKernel',
    'StreamingProcessObject',
    'RegionStreamingKernel',
    'StreamingImageFilter',
    'StreamingCastImageFilter',
    'StreamingGaussianImageFilter',
    'StreamingStatisticsImageFilter',
    'PipelineRunner',
    'RunReport',
]

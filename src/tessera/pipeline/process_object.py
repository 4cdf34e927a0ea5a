"""Generic pipeline node protocol.

Every node (sources, filters, the streaming controller) follows the same
four-phase update, driven from the data handle a consumer asks for:

1. update_output_information: walk upstream, work out the newest change
   (pipeline mtime) and refresh output metadata when it moved
2. propagate_requested_region: translate the output request into input
   requests and push them upstream
3. update_output_data: update inputs, then generate_data() when stale
4. produce data: outputs are stamped as generated

Staleness comes from generation stamps (see tessera.core.timestamp): a
node regenerates when its output's last update predates a change to its
parameters or inputs, or when the request is not resident in the buffer.
"""

import logging
from typing import Dict, List, Optional, Union

import numpy as np

from tessera.contracts.region import assert_buffer_covers_request
from tessera.core.data_object import DataObject, ImageData
from tessera.core.region import Region
from tessera.core.timestamp import TimeStamp

__all__ = ['ProcessObject', 'ImageSource', 'ImageToImageFilter', 'copy_image_information']

logger = logging.getLogger(__name__)

PRIMARY = "primary"


def copy_image_information(source: Optional[DataObject], outputs, dtype=None):
    """Give ``outputs`` the extent (and pixel type) of ``source``."""
    for output in outputs:
        if source is not None:
            output.largest_possible_region = source.largest_possible_region
        if isinstance(output, ImageData):
            if dtype is not None:
                output.dtype = np.dtype(dtype)
            elif isinstance(source, ImageData) and source.dtype is not None:
                output.dtype = source.dtype


class ProcessObject:
    """Base node: owns named inputs and the outputs it produces.

    Parameters
    ----------
    name : str, optional
        Label used in logs and error messages (default: class name).
    """

    def __init__(self, name: Optional[str] = None):
        self.name = name or type(self).__name__
        self._inputs: Dict[str, DataObject] = {}
        self._outputs: List[DataObject] = []
        self._mtime = TimeStamp()
        self._mtime.modified()
        self._output_information_mtime = TimeStamp()
        self.updating = False

        output = self.make_output()
        output.source = self
        self._outputs.append(output)

    # ------------------------------------------------------------------
    # Graph
    def make_output(self) -> DataObject:
        return DataObject(name=f"{self.name}.output")

    @property
    def output(self) -> DataObject:
        """Primary output."""
        return self._outputs[0]

    @property
    def outputs(self) -> List[DataObject]:
        return list(self._outputs)

    def set_input(self, data: Union[DataObject, "ProcessObject"], key: str = PRIMARY):
        """Connect ``data`` (or another node's primary output) as input ``key``."""
        if isinstance(data, ProcessObject):
            data = data.output
        if self._inputs.get(key) is not data:
            self._inputs[key] = data
            self.modified()

    def get_input(self, key: str = PRIMARY) -> Optional[DataObject]:
        return self._inputs.get(key)

    @property
    def inputs(self) -> List[DataObject]:
        return list(self._inputs.values())

    @property
    def input_names(self) -> List[str]:
        return list(self._inputs)

    # ------------------------------------------------------------------
    # Stamps
    @property
    def mtime(self) -> int:
        return self._mtime.value

    def modified(self):
        """Mark parameters as changed; the next update regenerates."""
        self._mtime.modified()

    # ------------------------------------------------------------------
    # Entry points
    def update(self):
        self.output.update()

    def update_largest_possible_region(self):
        self.output.update_largest_possible_region()

    # ------------------------------------------------------------------
    # Phase 1: output information
    def update_output_information(self):
        t1 = self.mtime
        for data in self._inputs.values():
            data.update_output_information()
            t1 = max(t1, data.pipeline_mtime, data.mtime)

        if t1 > self._output_information_mtime.value:
            for output in self._outputs:
                output.pipeline_mtime = t1
            self.generate_output_information()
            self._output_information_mtime.modified()

    def generate_output_information(self):
        copy_image_information(self.get_input(), self._outputs)

    # ------------------------------------------------------------------
    # Phase 2: requested region
    def propagate_requested_region(self, output: DataObject):
        if self.updating:
            return
        self.enlarge_output_requested_region(output)
        self.generate_output_requested_region(output)
        self.generate_input_requested_region()
        for data in self._inputs.values():
            data.propagate_requested_region()

    def enlarge_output_requested_region(self, output: DataObject):
        """Hook for nodes that must produce more than requested."""

    def generate_output_requested_region(self, output: DataObject):
        for other in self._outputs:
            if other is not output:
                other.requested_region = output.requested_region

    def generate_input_requested_region(self):
        for data in self._inputs.values():
            data.set_requested_region_to_largest_possible_region()

    # ------------------------------------------------------------------
    # Phase 3: data
    def update_output_data(self, output: DataObject):
        if self.updating:
            return
        self.updating = True
        try:
            for data in self._inputs.values():
                data.update_output_data()
            logger.debug("Generating data for %s", self.name)
            self.generate_data()
            self._mark_outputs_generated()
        finally:
            self.updating = False

    def _mark_outputs_generated(self):
        for output in self._outputs:
            assert_buffer_covers_request(output)
            output.data_has_been_generated()

    def generate_data(self):
        raise NotImplementedError(f"{type(self).__name__} must implement generate_data()")

    # ------------------------------------------------------------------
    # Reset and introspection
    def reset_pipeline(self):
        """Clear update state here and upstream."""
        self.updating = False
        for data in self._inputs.values():
            data.reset_pipeline()

    def describe(self) -> str:
        lines = [
            f"{type(self).__name__} ({self.name})",
            f"  mtime: {self.mtime}",
            f"  updating: {self.updating}",
        ]
        for key, data in self._inputs.items():
            lines.append(f"  input[{key}]: {data.describe()}")
        for i, output in enumerate(self._outputs):
            lines.append(f"  output[{i}]: {output.describe()}")
        return "\n".join(lines)

    def __repr__(self):
        return f"<{type(self).__name__} {self.name!r} mtime={self.mtime}>"


class ImageSource(ProcessObject):
    """Node whose primary output is an ImageData.

    Parameters
    ----------
    name : str, optional
        Node label.
    output_dtype : dtype-like, optional
        Pixel type of the output; defaults to the primary input's.
    """

    def __init__(self, name: Optional[str] = None, output_dtype=None):
        self.output_dtype = np.dtype(output_dtype) if output_dtype is not None else None
        super().__init__(name=name)

    def make_output(self) -> ImageData:
        return ImageData(dtype=self.output_dtype, name=f"{self.name or type(self).__name__}.output")

    def generate_output_information(self):
        copy_image_information(self.get_input(), self._outputs, self.output_dtype)

    def allocate_outputs(self):
        for output in self._outputs:
            output.allocate(output.requested_region)


class ImageToImageFilter(ImageSource):
    """Single-pass filter with one primary image input.

    The input request is the output request grown by ``radius`` and
    cropped to the input's extent. Subclasses implement
    ``process_region(block, input_region, output_region)`` returning the
    output pixels for ``output_region``.
    """

    def __init__(self, input=None, name: Optional[str] = None,
                 output_dtype=None, radius=0):
        super().__init__(name=name, output_dtype=output_dtype)
        self.radius = radius
        if input is not None:
            self.set_input(input)

    def input_region_for(self, output_region: Region, data: DataObject) -> Region:
        if not self.radius:
            return output_region
        return output_region.pad(self.radius).intersect(data.largest_possible_region)

    def generate_input_requested_region(self):
        primary = self.get_input()
        if primary is None:
            return
        primary.requested_region = self.input_region_for(self.output.requested_region, primary)

    def generate_data(self):
        self.allocate_outputs()
        primary = self.get_input()
        output = self.output
        input_region = primary.requested_region
        block = primary.view(input_region)
        output.write(
            output.requested_region,
            self.process_region(block, input_region, output.requested_region),
        )

    def process_region(self, block: np.ndarray, input_region: Region,
                       output_region: Region) -> np.ndarray:
        raise NotImplementedError(f"{type(self).__name__} must implement process_region()")

"""Streaming controller: one logical request, many bounded passes.

StreamingProcessObject is a pipeline node that splits the update of its
output into N sequential passes. For each pass it narrows every input's
requested region, drives the upstream graph through the generic update
protocol for that sub-region only, then runs the per-pass compute hook.
Only one pass's upstream buffers need to be resident at a time.

Concrete behavior comes from a StreamingKernel (capability interface):

- pass_count(node) -> int                 number of passes, N >= 1
- regions_for_pass(node, i)               set each input's requested region
- compute_pass(node, i)                   produce the output piece for pass i
- before_run(node), after_run(node)       optional, once per run

Pass index state: -1 when idle, 0..N-1 while a pass runs. It is reset to
-1 when a run ends (success or failure) and by reset_pipeline(), before
any failure reaches the caller.
"""

import contextlib
import logging
from typing import Callable, Optional, Protocol, runtime_checkable

from tessera.contracts.base import require
from tessera.contracts.failure import (
    ComputeHookFailure,
    SplitPolicyFailure,
    StreamingFailure,
    UpstreamPropagationFailure,
)
from tessera.contracts.region import assert_region_within
from tessera.core.data_object import DataObject
from tessera.pipeline.process_object import ProcessObject

__all__ = ['StreamingKernel', 'StreamingProcessObject', 'ProgressCallback', 'IDLE']

logger = logging.getLogger(__name__)

IDLE = -1

ProgressCallback = Callable[[int, int], None]


@runtime_checkable
class StreamingKernel(Protocol):
    """Per-node streaming behavior plugged into StreamingProcessObject.

    ``before_run(node)`` and ``after_run(node)`` are optional; they are
    looked up by name and skipped when absent.
    """

    def pass_count(self, node: "StreamingProcessObject") -> int:
        ...

    def regions_for_pass(self, node: "StreamingProcessObject", pass_index: int) -> None:
        ...

    def compute_pass(self, node: "StreamingProcessObject", pass_index: int) -> None:
        ...


class StreamingProcessObject(ProcessObject):
    """Pipeline node that updates its inputs piece by piece.

    Parameters
    ----------
    kernel : StreamingKernel, optional
        Split policy and per-pass computation. Subclasses may instead
        override the streaming hooks directly.
    name : str, optional
        Node label.

    Notes
    -----
    Passes run strictly in order; pass k+1 starts only after pass k's
    upstream update and compute hook return. The controller holds no locks:
    concurrent update() calls on one instance must be serialized by the
    caller.
    """

    def __init__(self, kernel: Optional[StreamingKernel] = None,
                 name: Optional[str] = None):
        self._kernel = kernel
        self._current_request_number = IDLE
        self._progress: Optional[ProgressCallback] = None
        super().__init__(name=name)

    @property
    def kernel(self) -> Optional[StreamingKernel]:
        return self._kernel

    @kernel.setter
    def kernel(self, kernel: Optional[StreamingKernel]):
        if kernel is not self._kernel:
            self._kernel = kernel
            self.modified()

    def _require_kernel(self) -> StreamingKernel:
        if self._kernel is None:
            raise NotImplementedError(
                f"{self.name} has no streaming kernel; pass one or override the streaming hooks"
            )
        return self._kernel

    # ------------------------------------------------------------------
    # Streaming hooks
    def get_number_of_input_requested_regions(self) -> int:
        """Number of passes for this run (N >= 1)."""
        return int(self._require_kernel().pass_count(self))

    def generate_nth_input_requested_region(self, pass_index: int):
        """Set every input's requested region for ``pass_index``."""
        self._require_kernel().regions_for_pass(self, pass_index)

    def streamed_generate_data(self, pass_index: int):
        """Compute the output piece of ``pass_index`` from resident inputs."""
        self._require_kernel().compute_pass(self, pass_index)

    def before_streamed_generate_data(self):
        hook = getattr(self._kernel, "before_run", None)
        if hook is not None:
            hook(self)

    def after_streamed_generate_data(self):
        hook = getattr(self._kernel, "after_run", None)
        if hook is not None:
            hook(self)

    # ------------------------------------------------------------------
    # Progress and state
    def get_current_request_number(self) -> int:
        """Pass currently executing, or -1 when no run is in progress."""
        return self._current_request_number

    def reset_pipeline(self):
        super().reset_pipeline()
        self._current_request_number = IDLE

    def update(self, progress: Optional[ProgressCallback] = None):
        """Update the primary output.

        Parameters
        ----------
        progress : callable, optional
            Called as ``progress(pass_index, number_of_passes)`` after each
            pass completes. An error it raises aborts the run as a
            ComputeHookFailure for that pass.
        """
        self._progress = progress
        try:
            super().update()
        finally:
            self._progress = None

    def update_largest_possible_region(self, progress: Optional[ProgressCallback] = None):
        self._progress = progress
        try:
            super().update_largest_possible_region()
        finally:
            self._progress = None

    # ------------------------------------------------------------------
    # Generic protocol overrides
    def propagate_requested_region(self, output: DataObject):
        # Inputs receive their requests pass by pass in generate_data().
        if self.updating:
            return
        self.enlarge_output_requested_region(output)
        self.generate_output_requested_region(output)

    def update_output_data(self, output: DataObject):
        if self.updating:
            return
        self.updating = True
        try:
            self.generate_data()
            self._mark_outputs_generated()
        finally:
            self.updating = False

    def generate_data(self):
        number_of_passes = None
        try:
            with self._failure_scope(ComputeHookFailure, None, None, "before_streamed_generate_data"):
                self.before_streamed_generate_data()

            with self._failure_scope(SplitPolicyFailure, None, None, "pass count"):
                number_of_passes = self.get_number_of_input_requested_regions()
                require(
                    number_of_passes >= 1,
                    f"{self.name} asked for {number_of_passes} passes, expected at least 1",
                    exc=SplitPolicyFailure,
                )
            logger.info("Streaming %s in %d passes", self.name, number_of_passes)

            for pass_index in range(number_of_passes):
                self._current_request_number = pass_index
                self._run_pass(pass_index, number_of_passes)
                if self._progress is not None:
                    with self._failure_scope(ComputeHookFailure, pass_index, number_of_passes,
                                             "progress callback"):
                        self._progress(pass_index, number_of_passes)

            with self._failure_scope(ComputeHookFailure, None, number_of_passes,
                                     "after_streamed_generate_data",
                                     passthrough=(SplitPolicyFailure,)):
                self.after_streamed_generate_data()
        except StreamingFailure as exc:
            logger.warning("Streamed run of %s aborted: %s", self.name, exc)
            raise
        finally:
            self._current_request_number = IDLE

    def _run_pass(self, pass_index: int, number_of_passes: int):
        with self._failure_scope(SplitPolicyFailure, pass_index, number_of_passes,
                                 "generate_nth_input_requested_region"):
            self.generate_nth_input_requested_region(pass_index)
            for key, data in self._inputs.items():
                assert_region_within(
                    data.requested_region,
                    data.largest_possible_region,
                    what=f"{self.name} input {key!r} requested region",
                    exc=SplitPolicyFailure,
                    pass_index=pass_index,
                    number_of_passes=number_of_passes,
                )

        with self._failure_scope(UpstreamPropagationFailure, pass_index, number_of_passes,
                                 "upstream update"):
            for data in self._inputs.values():
                data.propagate_requested_region()
                data.update_output_data()

        logger.debug("%s pass %d/%d", self.name, pass_index + 1, number_of_passes)
        with self._failure_scope(ComputeHookFailure, pass_index, number_of_passes,
                                 "streamed_generate_data"):
            self.streamed_generate_data(pass_index)

    @contextlib.contextmanager
    def _failure_scope(self, failure_type, pass_index, number_of_passes, step: str,
                       passthrough=()):
        """Classify errors raised by ``step`` as ``failure_type``.

        Failures already of that type (or of a ``passthrough`` type) keep
        their type and only get missing pass details filled in.
        """
        try:
            yield
        except NotImplementedError:
            raise
        except (failure_type,) + tuple(passthrough) as exc:
            if exc.pass_index is None:
                exc.pass_index = pass_index
            if exc.number_of_passes is None:
                exc.number_of_passes = number_of_passes
            raise
        except Exception as exc:
            raise failure_type(
                f"{step} failed in {self.name}: {type(exc).__name__}: {exc}",
                pass_index=pass_index,
                number_of_passes=number_of_passes,
            ) from exc

    # ------------------------------------------------------------------
    # Introspection
    def describe(self) -> str:
        return "\n".join([
            super().describe(),
            f"  current_request_number: {self._current_request_number}",
            f"  kernel: {self._kernel!r}",
        ])

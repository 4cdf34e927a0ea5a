"""Error types raised by nodes and by the streaming controller.

Everything derives from TesseraError. The StreamingFailure subclasses say
which step of a streamed run broke and carry the pass index and count.
"""

from typing import Optional


class TesseraError(RuntimeError):
    """Base class for every error raised by the engine."""
    pass


class ContractViolation(TesseraError):
    """A node broke an invariant it promised, e.g. a buffer that does not
    cover its requested region.

    Bad user input is reported as ValueError or a pydantic ValidationError
    instead; this class means the node code itself is wrong.
    """
    pass


class InvalidRequestedRegionError(ContractViolation):
    """A requested region lies outside the largest possible region."""
    pass


class StreamingFailure(TesseraError):
    """A streamed run aborted.

    Parameters
    ----------
    message : str
        Description of the failure.
    pass_index : int, optional
        Pass that failed, or None when the run failed before pass 0.
    number_of_passes : int, optional
        N for the run, when already known.
    """

    def __init__(self, message: str, pass_index: Optional[int] = None,
                 number_of_passes: Optional[int] = None):
        super().__init__(message)
        self.pass_index = pass_index
        self.number_of_passes = number_of_passes

    def __str__(self):
        message = super().__str__()
        if self.pass_index is None:
            return message
        total = "?" if self.number_of_passes is None else self.number_of_passes
        return f"[pass {self.pass_index}/{total}] {message}"


class UpstreamPropagationFailure(StreamingFailure):
    """An upstream node could not produce the requested sub-region."""
    pass


class SplitPolicyFailure(StreamingFailure, ContractViolation):
    """The split policy produced regions that are invalid or do not tile."""
    pass


class ComputeHookFailure(StreamingFailure):
    """The per-pass compute hook failed."""
    pass


class ProcessAborted(ComputeHookFailure):
    """A compute hook observed a cancellation request."""
    pass

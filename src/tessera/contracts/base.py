"""``require``: the one check every contract goes through."""

from typing import Type

from tessera.contracts.failure import ContractViolation


def require(condition: bool, message: str,
            exc: Type[Exception] = ContractViolation, **details) -> None:
    """Raise ``exc(message, **details)`` unless ``condition`` holds.

    Nodes call this after a step to check what the step promised, such as
    a buffer covering its request or a pass piece staying inside the
    image. Nothing is retried or logged here; the caller decides.

    Parameters
    ----------
    condition : bool
        Invariant being checked.
    message : str
        Text of the raised error.
    exc : type, optional
        Error class, ContractViolation unless a streaming step needs a
        more specific failure.
    **details
        Passed to ``exc``, e.g. ``pass_index`` and ``number_of_passes``.

    Examples
    --------
    >>> require(n >= 1, "pass count must be at least 1",
    ...         exc=SplitPolicyFailure, number_of_passes=n)
    """
    if not condition:
        raise exc(message, **details)

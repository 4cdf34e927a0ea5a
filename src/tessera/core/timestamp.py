"""Process-wide generation stamps.

Staleness is decided by comparing stamps: a node whose inputs carry a
newer stamp than its output's last update must recompute. Stamps come
from one strictly increasing counter shared by every node and data
handle, so any two stamps are comparable.
"""

import itertools
import threading

__all__ = ['TimeStamp', 'next_stamp']

_counter = itertools.count(1)
_lock = threading.Lock()


def next_stamp() -> int:
    """Return a stamp larger than every stamp handed out before."""
    with _lock:
        return next(_counter)


class TimeStamp:
    """Mutable holder of the last modification stamp (0 = never)."""

    __slots__ = ("_value",)

    def __init__(self):
        self._value = 0

    @property
    def value(self) -> int:
        return self._value

    def modified(self) -> int:
        self._value = next_stamp()
        return self._value

    def __int__(self):
        return self._value

    def __repr__(self):
        return f"TimeStamp({self._value})"

"""Request tokens used to discard stale results of overlapping calls."""

from __future__ import annotations

import itertools
import threading


class RequestGuard:
    """Hands out monotonically increasing tokens; only the newest is current.

    Earlier calls are never cancelled. Their results are simply recognised as
    stale once a newer token has been issued.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counter = itertools.count(1)
        self._latest = 0

    def issue(self) -> int:
        with self._lock:
            self._latest = next(self._counter)
            return self._latest

    def is_current(self, token: int) -> bool:
        with self._lock:
            return token == self._latest

    @property
    def latest(self) -> int:
        return self._latest


__all__ = ["RequestGuard"]

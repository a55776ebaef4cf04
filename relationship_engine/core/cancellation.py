"""Cooperative cancellation for discovery runs."""

import threading
import time
from typing import Optional

from .errors import DiscoveryCancelledError


class CancelToken:
    """
    Cancellation signal checked before every catalog or sampling query.

    A token is cancelled either explicitly via cancel() or implicitly once its
    deadline (monotonic clock) has passed.
    """

    def __init__(self, deadline: Optional[float] = None):
        self._event = threading.Event()
        self._deadline = deadline

    @classmethod
    def with_timeout(cls, seconds: Optional[float]) -> "CancelToken":
        """Token that expires after `seconds`; None or 0 means no deadline."""
        if not seconds:
            return cls()
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise DiscoveryCancelledError("Discovery run was cancelled")
        if self._deadline is not None and time.monotonic() >= self._deadline:
            raise DiscoveryCancelledError("Discovery run exceeded its deadline")

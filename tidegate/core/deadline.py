"""Caller-supplied deadlines and cancellation for storage calls.

Every public store method takes an optional ``Deadline``. Repositories call
``check()`` before and after each round trip, and on PostgreSQL the remaining
budget also becomes a transaction-local ``statement_timeout`` so a slow query
is aborted by the server instead of hanging the caller.
"""

import threading
import time
from typing import Callable, Optional

from ..exceptions import OperationCancelledError


class Deadline:
    """A point in monotonic time plus an optional cancel signal."""

    def __init__(
        self,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._clock = clock
        self._expires_at = clock() + timeout if timeout is not None else None
        self._cancel_event = cancel_event

    @classmethod
    def from_settings(cls, timeout_seconds: float) -> Optional["Deadline"]:
        """Deadline for one request, or None when the timeout is disabled (<= 0)."""
        if timeout_seconds <= 0:
            return None
        return cls(timeout=timeout_seconds)

    def cancel(self) -> None:
        if self._cancel_event is None:
            self._cancel_event = threading.Event()
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event is not None and self._cancel_event.is_set()

    def remaining(self) -> Optional[float]:
        """Seconds left, floored at 0. None means no time limit."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0

    def check(self, operation: str) -> None:
        """Raise OperationCancelledError if the caller gave up on *operation*."""
        if self.cancelled:
            raise OperationCancelledError(operation, reason="cancelled")
        if self.expired:
            raise OperationCancelledError(operation, reason="deadline exceeded")


def check_deadline(deadline: Optional[Deadline], operation: str) -> None:
    if deadline is not None:
        deadline.check(operation)

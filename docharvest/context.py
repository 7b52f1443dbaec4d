"""Cancellation context shared by every worker of one run."""

from __future__ import annotations

import threading
import time

from .errors import Cancelled, DeadlineExceeded


class Context:
    """A cancel flag with an optional deadline.

    Workers poll ``done()`` between units of work and sleep through ``wait``
    so that cancellation interrupts backoff delays immediately.
    """

    def __init__(self, *, timeout: float | None = None) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._error: Cancelled | None = None
        self._deadline = None if timeout is None else time.monotonic() + timeout

    def cancel(self) -> None:
        self._set_error(Cancelled())

    def done(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._set_error(DeadlineExceeded())
            return True
        return False

    def error(self) -> Cancelled | None:
        if not self.done():
            return None
        with self._lock:
            return self._error

    def raise_if_done(self) -> None:
        if self.done():
            raise self.error() or Cancelled()

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True if the context ended meanwhile."""

        if seconds <= 0:
            return self.done()
        if self._deadline is not None:
            remaining = self._deadline - time.monotonic()
            if remaining <= seconds:
                if self._event.wait(max(0.0, remaining)):
                    return True
                return self.done()
        return self._event.wait(seconds)

    def _set_error(self, error: Cancelled) -> None:
        with self._lock:
            if self._error is None:
                self._error = error
        self._event.set()


__all__ = ["Context"]

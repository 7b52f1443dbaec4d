"""Retry loop with exponential backoff, written as an explicit state machine."""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

from .context import Context
from .errors import Cancelled, is_retryable, retry_after_of
from .types import RetryPolicy


logger = logging.getLogger(__name__)

T = TypeVar("T")


def parse_retry_after(value: str | None) -> int | None:
    """Parse a ``Retry-After`` header given as a non-negative integer of seconds.

    HTTP-date values and anything else unparseable yield `None`.
    """

    if value is None:
        return None
    raw = value.strip()
    if not (raw.isascii() and raw.isdigit()):
        return None
    return int(raw)


class Retrier:
    """Run an operation, retrying transient failures.

    States per call: attempt -> (success | permanent failure | exhausted |
    wait) and wait -> (attempt | cancelled). ``policy.max_retries`` retries
    means at most ``max_retries + 1`` attempts.
    """

    def __init__(self, policy: RetryPolicy | None = None, *, context: Context | None = None) -> None:
        self.policy = policy or RetryPolicy()
        self.context = context or Context()

    def backoff_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt + 1`` (attempt counts from 0)."""

        delay = self.policy.initial_interval * (self.policy.multiplier ** attempt)
        return min(self.policy.max_interval, delay)

    def delay_for(self, attempt: int, error: BaseException) -> float:
        hint = retry_after_of(error)
        if hint is not None:
            return float(hint)
        return self.backoff_for(attempt)

    def run(self, operation: Callable[[], T], *, description: str = "operation") -> T:
        attempt = 0
        while True:
            self.context.raise_if_done()
            try:
                return operation()
            except Cancelled:
                raise
            except Exception as exc:
                if not is_retryable(exc):
                    raise
                if attempt >= self.policy.max_retries:
                    logger.debug("Giving up on %s after %d attempts: %s", description, attempt + 1, exc)
                    raise

                delay = self.delay_for(attempt, exc)
                logger.debug(
                    "Retrying %s in %.2fs (attempt %d/%d): %s",
                    description,
                    delay,
                    attempt + 1,
                    self.policy.max_attempts,
                    exc,
                )

                self.context.raise_if_done()
                if self.context.wait(delay):
                    self.context.raise_if_done()
                attempt += 1


__all__ = [
    "Retrier",
    "parse_retry_after",
]

"""Error taxonomy for fetching, conversion, and strategy execution.

Every structured error keeps its underlying cause both on ``.cause`` and as
``__cause__``; helpers here walk that chain so callers can test for a kind of
failure at any wrap depth.
"""

from __future__ import annotations

from typing import Iterator, TypeVar


RETRYABLE_STATUS_CODES = frozenset({429, 502, 503, 504, *range(520, 531)})

E = TypeVar("E", bound=BaseException)


class HarvestError(Exception):
    """Base class for every error raised by docharvest."""


class NotFoundError(HarvestError):
    pass


class CacheMissError(HarvestError):
    pass


class RateLimitedError(HarvestError):
    """The remote side asked us to slow down."""


class FetchTimeoutError(HarvestError):
    """A request did not complete within its timeout."""


class NoStrategyError(HarvestError):
    pass


class ConversionError(HarvestError):
    pass


class UnsupportedCharsetError(ConversionError):
    def __init__(self, charset: str) -> None:
        super().__init__(f"unsupported charset: {charset}")
        self.charset = charset


class WriteError(HarvestError):
    pass


class RenderError(HarvestError):
    pass


class Cancelled(HarvestError):
    """The run context was cancelled."""

    def __init__(self, message: str = "context cancelled") -> None:
        super().__init__(message)


class DeadlineExceeded(Cancelled):
    def __init__(self, message: str = "context deadline exceeded") -> None:
        super().__init__(message)


class FetchError(HarvestError):
    """A request failed with a status code or a transport error."""

    def __init__(self, url: str, status_code: int = 0, cause: BaseException | str | None = None) -> None:
        self.url = url
        self.status_code = status_code
        self.cause = cause
        if isinstance(cause, BaseException):
            self.__cause__ = cause
        super().__init__(str(self))

    def __str__(self) -> str:
        message = f"fetch error for {self.url}: status {self.status_code}"
        if self.cause is not None:
            message += f": {self.cause}"
        return message


class RetryableError(HarvestError):
    """Marks a cause as transient; ``retry_after`` is a server hint in seconds."""

    def __init__(self, cause: BaseException, retry_after: int | None = None) -> None:
        self.cause = cause
        self.retry_after = retry_after
        self.__cause__ = cause
        super().__init__(str(self))

    def __str__(self) -> str:
        return f"retryable error (retry after {self.retry_after or 0}s): {self.cause}"


class ValidationError(HarvestError, ValueError):
    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(str(self))

    def __str__(self) -> str:
        return f"validation error on {self.field}: {self.message}"


class InvalidURLError(ValidationError):
    def __init__(self, message: str) -> None:
        super().__init__("url", message)


class StrategyError(HarvestError):
    """Wraps a strategy failure with the strategy name and input URL."""

    def __init__(self, strategy: str, url: str, cause: BaseException) -> None:
        self.strategy = strategy
        self.url = url
        self.cause = cause
        self.__cause__ = cause
        super().__init__(str(self))

    def __str__(self) -> str:
        return f"strategy {self.strategy} failed for {self.url}: {self.cause}"


def error_chain(exc: BaseException | None) -> Iterator[BaseException]:
    """Yield ``exc`` and each wrapped cause, outermost first."""

    seen: set[int] = set()
    current = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        cause = getattr(current, "cause", None)
        current = cause if isinstance(cause, BaseException) else current.__cause__


def find_error(exc: BaseException | None, error_type: type[E]) -> E | None:
    for item in error_chain(exc):
        if isinstance(item, error_type):
            return item
    return None


def should_retry_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS_CODES


def is_retryable(exc: BaseException | None) -> bool:
    for item in error_chain(exc):
        if isinstance(item, (RateLimitedError, FetchTimeoutError, RetryableError)):
            return True
        if isinstance(item, FetchError) and should_retry_status(item.status_code):
            return True
    return False


def retry_after_of(exc: BaseException | None) -> int | None:
    """Return the first server-supplied retry hint in the chain, if any."""

    for item in error_chain(exc):
        if isinstance(item, RetryableError) and item.retry_after is not None:
            return item.retry_after
    return None


__all__ = [
    "Cancelled",
    "CacheMissError",
    "ConversionError",
    "DeadlineExceeded",
    "FetchError",
    "FetchTimeoutError",
    "HarvestError",
    "InvalidURLError",
    "NoStrategyError",
    "NotFoundError",
    "RETRYABLE_STATUS_CODES",
    "RateLimitedError",
    "RenderError",
    "RetryableError",
    "StrategyError",
    "UnsupportedCharsetError",
    "ValidationError",
    "WriteError",
    "error_chain",
    "find_error",
    "is_retryable",
    "retry_after_of",
    "should_retry_status",
]

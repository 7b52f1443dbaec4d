"""Tests for the retry state machine."""

from __future__ import annotations

import pytest

from docharvest.context import Context
from docharvest.errors import Cancelled, FetchError, FetchTimeoutError, RetryableError
from docharvest.retry import Retrier, parse_retry_after
from docharvest.types import RetryPolicy


FAST = RetryPolicy(max_retries=2, initial_interval=0.001, max_interval=0.001, multiplier=2.0)


def status_sequence(statuses):
    """Operation that fails with the queued statuses until one is 200."""

    calls = {"count": 0}
    queue = list(statuses)

    def operation():
        calls["count"] += 1
        status = queue.pop(0) if len(queue) > 1 else queue[0]
        if status == 200:
            return "ok"
        raise RetryableError(FetchError("https://x.com", status, "retry me"))

    return operation, calls


class TestRetrier:
    def test_two_rate_limits_then_success(self):
        operation, calls = status_sequence([429, 429, 200])
        assert Retrier(FAST).run(operation) == "ok"
        assert calls["count"] == 3

    def test_exhausted_after_max_retries(self):
        operation, calls = status_sequence([429])
        with pytest.raises(RetryableError):
            Retrier(FAST).run(operation)
        assert calls["count"] == 3

    def test_permanent_failure_single_attempt(self):
        calls = {"count": 0}

        def operation():
            calls["count"] += 1
            raise FetchError("https://x.com", 404, "Not Found")

        with pytest.raises(FetchError):
            Retrier(FAST).run(operation)
        assert calls["count"] == 1

    def test_timeout_is_retried(self):
        calls = {"count": 0}

        def operation():
            calls["count"] += 1
            if calls["count"] < 2:
                raise FetchTimeoutError("slow")
            return 42

        assert Retrier(FAST).run(operation) == 42
        assert calls["count"] == 2

    def test_cancelled_before_first_attempt(self):
        ctx = Context()
        ctx.cancel()
        calls = {"count": 0}

        def operation():
            calls["count"] += 1

        with pytest.raises(Cancelled):
            Retrier(FAST, context=ctx).run(operation)
        assert calls["count"] == 0

    def test_cancellation_interrupts_backoff(self):
        ctx = Context()
        policy = RetryPolicy(max_retries=5, initial_interval=30, max_interval=30)
        calls = {"count": 0}

        def operation():
            calls["count"] += 1
            ctx.cancel()
            raise RetryableError(FetchError("https://x.com", 503))

        with pytest.raises(Cancelled):
            Retrier(policy, context=ctx).run(operation)
        assert calls["count"] == 1


class TestBackoff:
    def test_exponential_and_capped(self):
        retrier = Retrier(RetryPolicy(max_retries=3, initial_interval=1, max_interval=30, multiplier=2))
        assert retrier.backoff_for(0) == 1
        assert retrier.backoff_for(1) == 2
        assert retrier.backoff_for(3) == 8
        assert retrier.backoff_for(10) == 30

    def test_retry_after_overrides_backoff(self):
        retrier = Retrier(RetryPolicy(initial_interval=1))
        error = RetryableError(FetchError("u", 429), retry_after=7)
        assert retrier.delay_for(0, error) == 7.0
        assert retrier.delay_for(0, RetryableError(FetchError("u", 429))) == 1.0


class TestPolicy:
    def test_non_positive_values_use_defaults(self):
        policy = RetryPolicy(max_retries=0, initial_interval=0, max_interval=-1, multiplier=0)
        assert policy == RetryPolicy()
        assert policy.max_attempts == policy.max_retries + 1


class TestParseRetryAfter:
    @pytest.mark.parametrize(
        "value,expected",
        [("5", 5), (" 0 ", 0), ("120", 120), (None, None), ("", None), ("-1", None), ("1.5", None)],
    )
    def test_values(self, value, expected):
        assert parse_retry_after(value) == expected

    def test_http_date_ignored(self):
        assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") is None

    @pytest.mark.parametrize("value", ["²", "٣", "５"])
    def test_non_ascii_digits_ignored(self, value):
        assert parse_retry_after(value) is None

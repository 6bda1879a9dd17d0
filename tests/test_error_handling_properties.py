"""
Property-based tests for the fetch retry policy.
"""

import asyncio
from unittest.mock import patch

import pytest
from hypothesis import given, settings, strategies as st

from vehicle_scout.error_handling import BlockedPageError, ErrorHandler, FetchError, RetryConfig


attempt_counts = st.integers(min_value=1, max_value=5)
retryable_statuses = st.sampled_from([403, 422, 429])
other_statuses = st.sampled_from([None, 400, 404, 500, 502, 503])


@given(
    attempt=st.integers(min_value=0, max_value=8),
    initial_delay=st.floats(min_value=0.1, max_value=10.0)
)
@settings(max_examples=100)
def test_exponential_backoff(attempt, initial_delay):
    """
    **Feature: vehicle-scout, Property 20: Exponential backoff**

    For any failed attempt n, the delay before the next attempt is
    initial_delay * 2^n, so delays strictly increase.
    """
    config = RetryConfig(initial_delay_s=initial_delay)

    assert config.get_backoff_delay(attempt) == pytest.approx(initial_delay * (2 ** attempt))
    assert config.get_backoff_delay(attempt + 1) > config.get_backoff_delay(attempt)


@given(max_attempts=attempt_counts, status=retryable_statuses)
@settings(max_examples=100, deadline=None)
def test_retry_exhaustion_termination(max_attempts, status):
    """
    **Feature: vehicle-scout, Property 21: Retry exhaustion**

    For any retryable status that keeps coming back, the operation is tried
    exactly max_attempts times and the last error is raised.
    """
    handler = ErrorHandler(RetryConfig(max_attempts=max_attempts))
    call_count = 0

    async def always_throttled():
        nonlocal call_count
        call_count += 1
        raise FetchError(f"HTTP {status} #{call_count}", status=status)

    with patch('asyncio.sleep', return_value=None) as mock_sleep:
        with pytest.raises(FetchError) as exc_info:
            asyncio.run(handler.retry_with_backoff(always_throttled))

    assert call_count == max_attempts
    assert f"#{max_attempts}" in str(exc_info.value)
    assert mock_sleep.await_count == max_attempts - 1


@given(status=other_statuses)
@settings(max_examples=50, deadline=None)
def test_non_retryable_errors_fail_fast(status):
    """
    **Feature: vehicle-scout, Property 22: Non-retryable errors**

    For any status outside the retryable set, the error is raised after a
    single attempt without sleeping.
    """
    handler = ErrorHandler(RetryConfig(max_attempts=3))
    call_count = 0

    async def fails():
        nonlocal call_count
        call_count += 1
        raise FetchError("provider error", status=status)

    with patch('asyncio.sleep', return_value=None) as mock_sleep:
        with pytest.raises(FetchError):
            asyncio.run(handler.retry_with_backoff(fails))

    assert call_count == 1
    mock_sleep.assert_not_called()


@given(max_attempts=attempt_counts, success_on_attempt=st.integers(min_value=1, max_value=5))
@settings(max_examples=100, deadline=None)
def test_retry_succeeds_before_exhaustion(max_attempts, success_on_attempt):
    """
    For any operation that succeeds on attempt N <= max_attempts, the result
    is returned without further attempts.
    """
    if success_on_attempt > max_attempts:
        return

    handler = ErrorHandler(RetryConfig(max_attempts=max_attempts))
    call_count = 0

    async def fails_then_succeeds():
        nonlocal call_count
        call_count += 1
        if call_count < success_on_attempt:
            raise FetchError("HTTP 429", status=429)
        return f"Success on attempt {call_count}"

    with patch('asyncio.sleep', return_value=None):
        result = asyncio.run(handler.retry_with_backoff(fails_then_succeeds))

    assert call_count == success_on_attempt
    assert result == f"Success on attempt {success_on_attempt}"


def test_other_exceptions_are_not_retried():
    handler = ErrorHandler()
    call_count = 0

    async def broken():
        nonlocal call_count
        call_count += 1
        raise ValueError("bad selector")

    with pytest.raises(ValueError):
        asyncio.run(handler.retry_with_backoff(broken))
    assert call_count == 1


def test_error_taxonomy():
    blocked = BlockedPageError("Body too short", status=200)

    assert isinstance(blocked, FetchError)
    assert not blocked.retryable
    assert FetchError("HTTP 403", status=403).retryable
    assert not FetchError("HTTP 500", status=500).retryable
    assert not RetryConfig().is_retryable(ValueError("x"))

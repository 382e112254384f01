"""
RetryPolicy: error classification and exponential backoff.
"""

import asyncio

import pytest

from orchestration.errors import (
    NonRetryableToolError,
    RetryableToolError,
    ToolInvocationError,
    ToolTimeoutError,
    UnknownToolError,
)
from orchestration.retry import RetryPolicy, is_retryable


def test_default_backoff_doubles_and_caps():
    policy = RetryPolicy()

    assert [policy.delay_ms(n) for n in range(1, 7)] == [1000, 2000, 4000, 8000, 10000, 10000]


def test_custom_backoff():
    policy = RetryPolicy(base_delay_ms=100, backoff_multiplier=3, max_delay_ms=1000)

    assert [policy.delay_ms(n) for n in (1, 2, 3, 4)] == [100, 300, 900, 1000]


@pytest.mark.parametrize("message", [
    "Network unreachable",
    "request timed out",
    "Connection refused",
    "Internal Server Error",
    "Service Unavailable",
    "rate limit exceeded",
    "gateway timeout",
])
def test_retryable_messages(message):
    assert is_retryable(ToolInvocationError(message)) is True
    assert is_retryable(message) is True


@pytest.mark.parametrize("message", [
    "Validation failed",
    "authentication required",
    "Authorization denied",
    "contact not_found",
    "user not found",
    "invalid_input: to",
    "Invalid input",
    "something odd happened",
])
def test_non_retryable_messages(message):
    assert is_retryable(ToolInvocationError(message)) is False


def test_non_retryable_marker_wins():
    assert is_retryable("validation failed after network retry") is False


def test_explicit_error_kinds_decide_first():
    assert is_retryable(RetryableToolError("validation said no")) is True
    assert is_retryable(NonRetryableToolError("network down")) is False
    assert is_retryable(ToolTimeoutError("took too long")) is True
    assert is_retryable(UnknownToolError("Unknown tool: x")) is False
    assert is_retryable(ToolInvocationError("odd", retryable=True)) is True


def test_builtin_transient_errors_are_retryable():
    assert is_retryable(asyncio.TimeoutError()) is True
    assert is_retryable(ConnectionResetError("reset")) is True


def test_should_retry_respects_budget():
    policy = RetryPolicy(max_retries=2)
    error = RetryableToolError("network")

    assert policy.should_retry(error, attempt=1) is True
    assert policy.should_retry(error, attempt=2) is True
    assert policy.should_retry(error, attempt=3) is False
    assert policy.should_retry(NonRetryableToolError("x"), attempt=1) is False


def test_from_settings():
    class FakeSettings:
        retry_max_retries = 5
        retry_base_delay_ms = 10
        retry_backoff_multiplier = 1.5
        retry_max_delay_ms = 50

    policy = RetryPolicy.from_settings(FakeSettings())

    assert policy == RetryPolicy(max_retries=5, base_delay_ms=10, backoff_multiplier=1.5, max_delay_ms=50)

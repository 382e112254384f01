"""
Retry Policy

Classifies step errors and computes exponential backoff.

DESIGN RULES:
- Declarative thresholds (data, not code)
- Deterministic classification
- Non-retryable signals win over retryable ones
"""

import asyncio
from dataclasses import dataclass
from typing import Tuple, Union

from orchestration.errors import ToolInvocationError

NON_RETRYABLE_MARKERS: Tuple[str, ...] = (
    "validation",
    "authentication",
    "authorization",
    "not_found",
    "not found",
    "invalid_input",
    "invalid input",
)

RETRYABLE_MARKERS: Tuple[str, ...] = (
    "network",
    "timeout",
    "timed out",
    "connection",
    "server error",
    "service unavailable",
    "rate limit",
)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry configuration with tunable thresholds.

    A step is attempted at most max_retries + 1 times. The wait before
    attempt n + 1 is delay_ms(n).
    """

    max_retries: int = 3
    base_delay_ms: float = 1000
    backoff_multiplier: float = 2.0
    max_delay_ms: float = 10000

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_retries=settings.retry_max_retries,
            base_delay_ms=settings.retry_base_delay_ms,
            backoff_multiplier=settings.retry_backoff_multiplier,
            max_delay_ms=settings.retry_max_delay_ms,
        )

    def delay_ms(self, attempt: int) -> float:
        """Backoff after the given (1-based) failed attempt."""
        delay = self.base_delay_ms * (self.backoff_multiplier ** max(attempt - 1, 0))
        return min(delay, self.max_delay_ms)

    def should_retry(self, error: Union[BaseException, str], attempt: int) -> bool:
        """Whether a failed attempt may be followed by another one."""
        if attempt > self.max_retries:
            return False
        return is_retryable(error)


def is_retryable(error: Union[BaseException, str]) -> bool:
    """
    Classify an error as retryable.

    Explicit error kinds decide first; otherwise the message is matched
    case-insensitively against known markers. Unknown errors are not
    retried.
    """
    if isinstance(error, ToolInvocationError) and error.retryable is not None:
        return error.retryable
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return True

    message = str(error).lower()
    if any(marker in message for marker in NON_RETRYABLE_MARKERS):
        return False
    return any(marker in message for marker in RETRYABLE_MARKERS)

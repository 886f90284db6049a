"""
Shared utilities.
"""

from .retry import (
    RetryConfig,
    RetryResult,
    TransientError,
    calculate_delay,
    is_retryable_status,
    parse_retry_after,
    retry_with_backoff,
)

__all__ = [
    "RetryConfig",
    "RetryResult",
    "TransientError",
    "calculate_delay",
    "is_retryable_status",
    "parse_retry_after",
    "retry_with_backoff",
]

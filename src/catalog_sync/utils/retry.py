"""
Retry logic with exponential backoff for catalog API calls.

Transient conditions (HTTP 429, 5xx, dropped or reset connections) are
retried a bounded number of times; other client errors are not.
"""

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional


logger = logging.getLogger(__name__)


def is_retryable_status(status_code: int) -> bool:
    """True for 429 and any 5xx response."""
    return status_code == 429 or 500 <= status_code < 600


class TransientError(Exception):
    """
    A failure worth retrying.

    Raised by connectors from inside a retried operation when a response
    status or connection error is transient.
    """

    def __init__(self, message: str, status_code: int = None, retry_after: float = None):
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after


@dataclass
class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        max_attempts: Maximum number of attempts (including first try)
        initial_delay_ms: Initial delay in milliseconds
        max_delay_ms: Maximum delay in milliseconds
        backoff_multiplier: Multiplier for exponential backoff
        jitter: Whether to add random jitter to delay
    """
    max_attempts: int = 3
    initial_delay_ms: float = 2000.0
    max_delay_ms: float = 10000.0
    backoff_multiplier: float = 2.0
    jitter: bool = True

    @classmethod
    def from_dict(cls, config: Optional[dict]) -> "RetryConfig":
        config = config or {}
        return cls(
            max_attempts=int(config.get("max_attempts", cls.max_attempts)),
            initial_delay_ms=float(config.get("initial_delay_ms", cls.initial_delay_ms)),
            max_delay_ms=float(config.get("max_delay_ms", cls.max_delay_ms)),
            backoff_multiplier=float(config.get("backoff_multiplier", cls.backoff_multiplier)),
            jitter=bool(config.get("jitter", cls.jitter)),
        )


@dataclass
class RetryResult:
    """
    Result of a retry operation.

    Attributes:
        success: Whether the operation succeeded
        result: The result value if successful
        attempts: Number of attempts made
        error: The final error if failed
        error_history: List of errors from each attempt
    """
    success: bool
    result: Any = None
    attempts: int = 0
    error: Optional[Exception] = None
    error_history: List[str] = field(default_factory=list)


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """
    Calculate delay for a given attempt with exponential backoff.

    Args:
        attempt: Attempt number (0-based)
        config: Retry configuration

    Returns:
        Delay in seconds
    """
    delay_ms = min(
        config.initial_delay_ms * (config.backoff_multiplier ** attempt),
        config.max_delay_ms
    )

    # ±25% random variation
    if config.jitter:
        delay_ms *= 0.75 + (random.random() * 0.5)

    return delay_ms / 1000.0


def retry_with_backoff(
    operation: Callable[[], Any],
    config: RetryConfig,
    retry_on: tuple = (TransientError,),
    operation_name: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
) -> RetryResult:
    """
    Execute an operation with retry and exponential backoff.

    Args:
        operation: Callable to execute (should take no arguments)
        config: Retry configuration
        retry_on: Tuple of exception types to retry on
        operation_name: Name for logging
        sleep: Sleep function (overridable in tests)

    Returns:
        RetryResult with success/failure info
    """
    error_history: List[str] = []
    last_error: Optional[Exception] = None

    for attempt in range(config.max_attempts):
        try:
            result = operation()

            if attempt > 0:
                logger.info(f"{operation_name} succeeded after {attempt + 1} attempts")

            return RetryResult(
                success=True,
                result=result,
                attempts=attempt + 1,
                error_history=error_history,
            )

        except retry_on as e:
            last_error = e
            error_history.append(str(e))
            logger.warning(
                f"{operation_name} failed on attempt {attempt + 1}/{config.max_attempts}: {e}"
            )

            # Don't sleep after the last attempt
            if attempt < config.max_attempts - 1:
                delay = calculate_delay(attempt, config)
                retry_after = getattr(e, "retry_after", None)
                if retry_after:
                    delay = max(delay, retry_after)
                logger.debug(f"Backing off for {delay:.3f}s before retry")
                sleep(delay)

        except Exception as e:
            logger.error(f"{operation_name} failed with non-retryable error: {e}")
            error_history.append(str(e))
            return RetryResult(
                success=False,
                attempts=attempt + 1,
                error=e,
                error_history=error_history,
            )

    logger.error(f"{operation_name} exhausted all {config.max_attempts} attempts")

    return RetryResult(
        success=False,
        attempts=config.max_attempts,
        error=last_error,
        error_history=error_history,
    )


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header given in seconds."""
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None

"""Retry policy: retryability predicate and exponential backoff.

Opt-in. Nothing in the execution service retries on its own; callers wrap
whole operations with retry_with_backoff() when they want resilience
against transient network failures.
"""

import logging
from typing import Awaitable, Callable, Optional, TypeVar

from pydantic import BaseModel, Field

from src.executor.cancellation import CancellationToken, SleepFunc, cancellable_sleep
from src.executor.errors import ErrorCode, parse_error
from src.executor.schemas import ExecutionError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRYABLE_ERRORS = [ErrorCode.NETWORK_ERROR.value, ErrorCode.WEBHOOK_ERROR.value]


class RetryConfig(BaseModel):
    max_attempts: int = Field(default=3, ge=1)
    delay_ms: int = Field(default=1000, ge=0)
    backoff_multiplier: float = Field(default=2, ge=1)
    retryable_errors: list[str] = Field(
        default_factory=lambda: list(DEFAULT_RETRYABLE_ERRORS)
    )


DEFAULT_RETRY_CONFIG = RetryConfig()


def is_retryable_error(
    error: ExecutionError,
    retryable_errors: Optional[list[str]] = None,
) -> bool:
    """Only NETWORK_ERROR and WEBHOOK_ERROR are retryable by default."""
    if retryable_errors is None:
        retryable_errors = DEFAULT_RETRYABLE_ERRORS
    return error.code in retryable_errors


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    config: Optional[RetryConfig] = None,
    *,
    cancel_token: Optional[CancellationToken] = None,
    sleep: Optional[SleepFunc] = None,
    label: str = "",
) -> T:
    """Run an async operation, retrying retryable failures with backoff.

    With the defaults: up to 3 attempts, waiting 1000ms then 2000ms.

    Args:
        operation: Zero-argument coroutine function to run
        config: Retry settings (DEFAULT_RETRY_CONFIG when omitted)
        cancel_token: Aborts a pending backoff wait when cancelled
        sleep: Awaitable sleep(seconds), injectable for tests
        label: Human-readable label for logging

    Returns:
        The operation's result

    Raises:
        The original exception from the last attempt, or from the first
        non-retryable failure, untouched.
    """
    config = config or DEFAULT_RETRY_CONFIG
    label = label or getattr(operation, "__name__", "operation")
    delay_ms = float(config.delay_ms)

    for attempt in range(1, config.max_attempts + 1):
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        try:
            return await operation()
        except Exception as e:
            parsed = parse_error(e)

            if not is_retryable_error(parsed, config.retryable_errors):
                raise

            if attempt == config.max_attempts:
                logger.error(
                    f"[{label}] Failed after {config.max_attempts} attempts: "
                    f"{parsed.code} {parsed.message}"
                )
                raise

            logger.warning(
                f"[{label}] Attempt {attempt}/{config.max_attempts} failed "
                f"({parsed.code}: {parsed.message}), retrying in {delay_ms:.0f}ms"
            )
            await cancellable_sleep(delay_ms / 1000, cancel_token, sleep)
            delay_ms *= config.backoff_multiplier

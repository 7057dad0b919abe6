"""Tests for the retry policy."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from pydantic import ValidationError as PydanticValidationError

from src.executor.cancellation import CancellationToken
from src.executor.errors import (
    ExecutionTimeoutError,
    NetworkError,
    ValidationError,
    WebhookError,
    parse_error,
)
from src.executor.retry import RetryConfig, is_retryable_error, retry_with_backoff


def test_default_retryable_errors():
    assert is_retryable_error(parse_error(NetworkError("refused")))
    assert is_retryable_error(parse_error(WebhookError(500, "boom")))
    assert not is_retryable_error(parse_error(ValidationError("prompt", "too short")))
    assert not is_retryable_error(parse_error(ExecutionTimeoutError("e", 1)))
    assert not is_retryable_error(parse_error(RuntimeError("?")))


async def test_connection_refused_is_retried_with_backoff(fake_time):
    operation = AsyncMock(
        side_effect=[
            NetworkError("refused", ConnectionRefusedError()),
            NetworkError("refused", ConnectionRefusedError()),
            "done",
        ]
    )

    result = await retry_with_backoff(operation, sleep=fake_time.sleep)

    assert result == "done"
    assert operation.await_count == 3
    assert fake_time.sleeps == [1.0, 2.0]


async def test_last_failure_is_reraised_untouched(fake_time):
    errors = [NetworkError("refused") for _ in range(3)]
    operation = AsyncMock(side_effect=errors)

    with pytest.raises(NetworkError) as exc_info:
        await retry_with_backoff(operation, sleep=fake_time.sleep)

    assert exc_info.value is errors[-1]
    assert operation.await_count == 3
    assert fake_time.sleeps == [1.0, 2.0]


async def test_single_attempt_reraises_without_waiting(fake_time):
    error = NetworkError("refused")
    operation = AsyncMock(side_effect=error)

    with pytest.raises(NetworkError) as exc_info:
        await retry_with_backoff(operation, RetryConfig(max_attempts=1), sleep=fake_time.sleep)

    assert exc_info.value is error
    assert operation.await_count == 1
    assert fake_time.sleeps == []


def test_max_attempts_must_be_positive():
    with pytest.raises(PydanticValidationError):
        RetryConfig(max_attempts=0)


async def test_non_retryable_error_fails_immediately(fake_time):
    error = ValidationError("prompt", "This field is required")
    operation = AsyncMock(side_effect=error)

    with pytest.raises(ValidationError) as exc_info:
        await retry_with_backoff(operation, sleep=fake_time.sleep)

    assert exc_info.value is error
    assert operation.await_count == 1
    assert fake_time.sleeps == []


async def test_generic_exception_is_not_retried(fake_time):
    operation = AsyncMock(side_effect=KeyError("x"))

    with pytest.raises(KeyError):
        await retry_with_backoff(operation, sleep=fake_time.sleep)

    assert operation.await_count == 1


async def test_custom_config(fake_time):
    config = RetryConfig(
        max_attempts=4,
        delay_ms=500,
        backoff_multiplier=3,
        retryable_errors=["EXECUTION_TIMEOUT"],
    )
    operation = AsyncMock(side_effect=[ExecutionTimeoutError("e", 1)] * 3 + ["ok"])

    result = await retry_with_backoff(operation, config, sleep=fake_time.sleep)

    assert result == "ok"
    assert fake_time.sleeps == [0.5, 1.5, 4.5]


async def test_cancelled_token_aborts_backoff():
    token = CancellationToken("exec-1")

    async def cancelling_sleep(seconds: float) -> None:
        token.cancel()

    operation = AsyncMock(side_effect=NetworkError("refused"))

    with pytest.raises(asyncio.CancelledError):
        await retry_with_backoff(operation, cancel_token=token, sleep=cancelling_sleep)

    assert operation.await_count == 1


async def test_token_wait_wakes_early_when_cancelled():
    token = CancellationToken("exec-2")
    operation = AsyncMock(side_effect=NetworkError("refused"))

    async def cancel_soon() -> None:
        await asyncio.sleep(0)
        token.cancel()

    canceller = asyncio.create_task(cancel_soon())
    with pytest.raises(asyncio.CancelledError):
        # Real 1s backoff; cancellation must cut it short
        await asyncio.wait_for(
            retry_with_backoff(operation, cancel_token=token), timeout=0.5
        )
    await canceller

"""Tests for the polling procedure."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from src.agents.schemas import OutputSchemaType
from src.executor.cancellation import CancellationToken
from src.executor.errors import NetworkError
from src.executor.poller import poll_for_result
from src.executor.schemas import ExecutionStatus, WebhookResponse

PROCESSING = WebhookResponse(status="processing", execution_id="engine-7", poll_url="/proxy/executions/engine-7")


def status_source(*responses):
    source = AsyncMock()
    source.get_execution_status = AsyncMock(side_effect=list(responses))
    return source


async def test_initial_data_returns_immediately(fake_time):
    source = status_source()
    initial = WebhookResponse(status="completed", data="https://x/v.mp4")

    result = await poll_for_result(
        "local-1", 10000, 1000, initial, source, OutputSchemaType.VIDEO,
        sleep=fake_time.sleep, clock=fake_time.clock,
    )

    assert result.status == ExecutionStatus.COMPLETED
    assert result.output.data == "https://x/v.mp4"
    source.get_execution_status.assert_not_awaited()
    assert fake_time.sleeps == []


async def test_loops_until_completed(fake_time):
    source = status_source(
        WebhookResponse(status="processing"),
        WebhookResponse(status="processing"),
        WebhookResponse(status="completed", data={"url": "https://x/v.mp4", "duration": 5}),
    )

    result = await poll_for_result(
        "local-1", 10000, 1000, PROCESSING, source, OutputSchemaType.VIDEO,
        sleep=fake_time.sleep, clock=fake_time.clock,
    )

    assert result.status == ExecutionStatus.COMPLETED
    assert result.output.data == "https://x/v.mp4"
    assert result.output.metadata["duration"] == 5
    assert fake_time.sleeps == [1.0, 1.0, 1.0]
    # Every query uses the engine's id and poll URL
    for call in source.get_execution_status.await_args_list:
        assert call.args == ("engine-7", "/proxy/executions/engine-7")


async def test_failed_status_is_terminal(fake_time):
    source = status_source(WebhookResponse(status="failed", message="render farm down"))

    result = await poll_for_result(
        "local-1", 10000, 1000, PROCESSING, source, OutputSchemaType.VIDEO,
        sleep=fake_time.sleep, clock=fake_time.clock,
    )

    assert result.status == ExecutionStatus.FAILED
    assert result.error.code == "EXECUTION_FAILED"
    assert result.error.message == "render farm down"


async def test_status_source_errors_are_polled_through(fake_time):
    source = status_source(
        NetworkError("refused"),
        WebhookResponse(status="completed", data="https://x/v.mp4"),
    )

    result = await poll_for_result(
        "local-1", 10000, 1000, PROCESSING, source, OutputSchemaType.VIDEO,
        sleep=fake_time.sleep, clock=fake_time.clock,
    )

    assert result.status == ExecutionStatus.COMPLETED
    assert source.get_execution_status.await_count == 2


async def test_times_out_without_terminal_state(fake_time):
    source = AsyncMock()
    source.get_execution_status = AsyncMock(return_value=WebhookResponse(status="processing"))

    result = await poll_for_result(
        "local-1", 5000, 1000, PROCESSING, source, OutputSchemaType.VIDEO,
        sleep=fake_time.sleep, clock=fake_time.clock,
    )

    assert result.status == ExecutionStatus.FAILED
    assert result.error.code == "EXECUTION_TIMEOUT"
    assert source.get_execution_status.await_count == 5
    assert result.output is None


async def test_falls_back_to_local_id(fake_time):
    source = status_source(WebhookResponse(status="completed", data="https://x/v.mp4"))

    await poll_for_result(
        "local-1", 10000, 1000, WebhookResponse(status="processing"), source,
        OutputSchemaType.VIDEO, sleep=fake_time.sleep, clock=fake_time.clock,
    )

    source.get_execution_status.assert_awaited_once_with("local-1", None)


async def test_cancel_token_stops_polling(fake_time):
    token = CancellationToken("local-1")
    source = AsyncMock()

    async def cancel_then_processing(*args):
        token.cancel()
        return WebhookResponse(status="processing")

    source.get_execution_status = AsyncMock(side_effect=cancel_then_processing)

    with pytest.raises(asyncio.CancelledError):
        await poll_for_result(
            "local-1", 10000, 1000, PROCESSING, source, OutputSchemaType.VIDEO,
            cancel_token=token, sleep=fake_time.sleep, clock=fake_time.clock,
        )

    assert source.get_execution_status.await_count == 1

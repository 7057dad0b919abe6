"""Tests for the execution orchestrator."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.executor.errors import (
    AgentNotFoundError,
    AgentUnavailableError,
    NetworkError,
    ValidationError,
    WebhookError,
)
from src.executor.execution_service import (
    ExecutionService,
    build_payload,
    resolve_webhook_path,
)
from src.executor.execution_store import ExecutionStore
from src.executor.schemas import ExecutionInput, ExecutionStatus, WebhookResponse
from src.persistence.db import MemoryKeyValueStore, QuotaExceededError
from src.persistence.storage import StorageService
from src.transport.webhook_client import WebhookClient


@pytest.fixture
def client():
    mock = MagicMock(spec=WebhookClient)
    mock.trigger = AsyncMock()
    mock.get_execution_status = AsyncMock()
    return mock


@pytest.fixture
def service(client, registry, execution_store, cancellations, fake_time):
    return ExecutionService(
        client,
        registry,
        execution_store,
        cancellations,
        sleep=fake_time.sleep,
        clock=fake_time.clock,
    )


# --- Payload and path ---


def test_text_payload(text_agent):
    assert build_payload(text_agent, ExecutionInput(prompt="a red fox")) == {"prompt": "a red fox"}
    assert build_payload(text_agent, ExecutionInput()) == {"prompt": ""}


def test_form_payload_uses_defaults_and_merges_parameters(form_agent):
    payload = build_payload(
        form_agent,
        ExecutionInput(prompt="sunset", parameters={"length": 8, "seed": 42}),
    )
    assert payload == {"style": "cinematic", "length": 8, "prompt": "sunset", "seed": 42}


def test_file_payload(agent_factory):
    agent = agent_factory(input_schema={"type": "file"})
    payload = build_payload(agent, ExecutionInput(parameters={"file": "data:...", "lang": "en"}))
    assert payload == {"file": "data:...", "lang": "en"}


def test_extra_parameters_are_merged_last(text_agent):
    payload = build_payload(
        text_agent,
        ExecutionInput(prompt="a red fox", parameters={"aspectRatio": "16:9"}),
    )
    assert payload == {"prompt": "a red fox", "aspectRatio": "16:9"}


@pytest.mark.parametrize(
    "webhook_url,expected",
    [
        ("/proxy/webhook/veo3-video-generate", "/proxy/webhook/veo3-video-generate"),
        ("https://engine.example.com/webhook/form-flow", "form-flow"),
        ("/webhook/abc/def", "abc/def"),
        ("//abc", "abc"),
        ("plain-path", "plain-path"),
    ],
)
def test_resolve_webhook_path(webhook_url, expected):
    assert resolve_webhook_path(webhook_url) == expected


# --- execute_agent ---


async def test_red_fox_text_agent_sends_prompt_payload(service, client):
    client.trigger.return_value = WebhookResponse(status="completed", data="https://x/fox.mp4")

    await service.execute_agent("video-agent", ExecutionInput(prompt="a red fox"))

    client.trigger.assert_awaited_once_with(
        "/proxy/webhook/veo3-video-generate", {"prompt": "a red fox"}
    )


async def test_immediate_result_completes(service, client, execution_store, storage):
    client.trigger.return_value = WebhookResponse(
        data={"url": "https://x/vid.mp4", "duration": 5}
    )

    execution = await service.execute_agent("video-agent", ExecutionInput(prompt="a red fox"))

    assert execution.status == ExecutionStatus.COMPLETED
    assert execution.output.data == "https://x/vid.mp4"
    assert execution.output.metadata["duration"] == 5
    assert execution.completed_at is not None
    assert execution_store.current_execution == execution
    assert storage.load_executions("video-agent") == [execution]


async def test_missing_agent_raises_and_records_nothing(service, client, execution_store, storage):
    with pytest.raises(AgentNotFoundError):
        await service.execute_agent("missing-agent", ExecutionInput(prompt="x"))

    client.trigger.assert_not_awaited()
    assert execution_store.current_execution is None
    assert storage.get_agent_ids_with_executions() == []


async def test_inactive_agent_is_unavailable(service, client, storage):
    with pytest.raises(AgentUnavailableError):
        await service.execute_agent("retired-agent", ExecutionInput(prompt="x"))

    client.trigger.assert_not_awaited()
    assert storage.get_agent_ids_with_executions() == []


async def test_invalid_input_records_nothing(service, client, storage):
    with pytest.raises(ValidationError):
        await service.execute_agent("form-agent", ExecutionInput(parameters={}))

    client.trigger.assert_not_awaited()
    assert storage.get_agent_ids_with_executions() == []


async def test_dispatch_failure_is_recorded_and_reraised(service, client, execution_store):
    error = NetworkError("refused", ConnectionRefusedError("Connection refused"))
    client.trigger.side_effect = error

    with pytest.raises(NetworkError) as exc_info:
        await service.execute_agent("video-agent", ExecutionInput(prompt="a red fox"))

    assert exc_info.value is error
    [recorded] = execution_store.get_executions_by_agent("video-agent")
    assert recorded.status == ExecutionStatus.FAILED
    assert recorded.completed_at is not None
    assert recorded.error.code == "EXECUTION_FAILED"
    assert recorded.error.message == "Network error: refused"
    assert recorded.error.details["code"] == "NETWORK_ERROR"
    assert not execution_store.is_executing


async def test_explicit_failed_response(service, client):
    client.trigger.return_value = WebhookResponse(status="failed", message="bad prompt")

    execution = await service.execute_agent("video-agent", ExecutionInput(prompt="a red fox"))

    assert execution.status == ExecutionStatus.FAILED
    assert execution.error.code == "EXECUTION_FAILED"
    assert execution.error.message == "bad prompt"


async def test_no_data_and_no_polling_stays_processing(service, client, execution_store):
    client.trigger.return_value = WebhookResponse(message="Workflow was started")

    execution = await service.execute_agent("video-agent", ExecutionInput(prompt="a red fox"))

    assert execution.status == ExecutionStatus.PROCESSING
    assert not execution.is_terminal
    assert execution.output is None
    assert execution.completed_at is None
    assert execution_store.is_executing


async def test_long_running_job_is_polled(service, client, fake_time):
    client.trigger.return_value = WebhookResponse(
        status="processing", execution_id="engine-1", poll_url="/proxy/executions/engine-1"
    )
    client.get_execution_status.side_effect = [
        WebhookResponse(status="processing"),
        WebhookResponse(status="completed", data={"videoUrl": "https://x/v.mp4"}),
    ]

    execution = await service.execute_agent("polling-agent", ExecutionInput(prompt="a red fox"))

    assert execution.status == ExecutionStatus.COMPLETED
    assert execution.output.data == "https://x/v.mp4"
    assert fake_time.sleeps == [1.0, 1.0]
    client.get_execution_status.assert_awaited_with("engine-1", "/proxy/executions/engine-1")


async def test_polling_timeout_fails_execution(service, client):
    client.trigger.return_value = WebhookResponse(status="processing", execution_id="e")
    client.get_execution_status.return_value = WebhookResponse(status="processing")

    execution = await service.execute_agent("polling-agent", ExecutionInput(prompt="a red fox"))

    assert execution.status == ExecutionStatus.FAILED
    assert execution.error.code == "EXECUTION_TIMEOUT"
    assert client.get_execution_status.await_count == 10


async def test_webhook_error_keeps_original_exception(service, client):
    client.trigger.side_effect = WebhookError(404, "not found")

    with pytest.raises(WebhookError):
        await service.execute_agent("video-agent", ExecutionInput(prompt="a red fox"))


async def test_clearing_history_cancels_polling(service, client, execution_store):
    client.trigger.return_value = WebhookResponse(status="processing", execution_id="e")

    async def clear_while_polling(*args):
        execution_store.clear_history("polling-agent")
        return WebhookResponse(status="processing")

    client.get_execution_status.side_effect = clear_while_polling

    execution = await service.execute_agent("polling-agent", ExecutionInput(prompt="a red fox"))

    assert execution.status == ExecutionStatus.FAILED
    assert execution.error.message == "Execution was cancelled"
    assert client.get_execution_status.await_count == 1
    assert execution_store.get_executions_by_agent("polling-agent") == []


async def test_works_without_store(client, registry, fake_time):
    service = ExecutionService(client, registry, sleep=fake_time.sleep, clock=fake_time.clock)
    client.trigger.return_value = WebhookResponse(data="https://x/v.mp4")

    execution = await service.execute_agent("video-agent", ExecutionInput(prompt="a red fox"))

    assert execution.status == ExecutionStatus.COMPLETED


async def test_concurrent_executions_for_two_agents(service, client, execution_store):
    async def respond(path, payload):
        await asyncio.sleep(0)
        return WebhookResponse(data={"url": f"https://x/{path}.out"})

    client.trigger.side_effect = respond

    first, second = await asyncio.gather(
        service.execute_agent("video-agent", ExecutionInput(prompt="fox")),
        service.execute_agent("form-agent", ExecutionInput(parameters={"length": 3})),
    )

    assert first.status == second.status == ExecutionStatus.COMPLETED
    assert execution_store.get_execution(first.id) == first
    assert execution_store.get_execution(second.id) == second


async def test_storage_failure_on_record_dispatches_nothing(client, registry, cancellations, fake_time):
    class FullStore(MemoryKeyValueStore):
        def set_item(self, key: str, value: str) -> None:
            raise QuotaExceededError()

    store = ExecutionStore(StorageService(FullStore(), namespace="test-hub"), cancellations)
    service = ExecutionService(
        client, registry, store, cancellations, sleep=fake_time.sleep, clock=fake_time.clock
    )

    with pytest.raises(QuotaExceededError):
        await service.execute_agent("video-agent", ExecutionInput(prompt="a red fox"))

    client.trigger.assert_not_awaited()
    assert not store.is_executing
    assert store.current_execution is None
    assert store.get_executions_by_agent("video-agent") == []
    assert len(cancellations) == 0


async def test_restart_keeps_history_when_executing(client, registry, storage, fake_time):
    client.trigger.return_value = WebhookResponse(data="https://x/v.mp4")

    def run(store):
        service = ExecutionService(
            client, registry, store, sleep=fake_time.sleep, clock=fake_time.clock
        )
        return service.execute_agent("video-agent", ExecutionInput(prompt="a red fox"))

    first = await run(ExecutionStore(storage))
    second = await run(ExecutionStore(storage))

    assert [e.id for e in storage.load_executions("video-agent")] == [second.id, first.id]

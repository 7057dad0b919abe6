"""Shared fixtures for agent-hub tests."""

from typing import Any

import pytest

from src.agents.registry import AgentRegistry
from src.agents.schemas import AgentConfig
from src.executor.cancellation import CancellationRegistry
from src.executor.execution_store import ExecutionStore
from src.persistence.db import MemoryKeyValueStore
from src.persistence.storage import StorageService


def build_agent(**overrides: Any) -> AgentConfig:
    data: dict[str, Any] = {
        "id": "video-agent",
        "name": "Video Agent",
        "description": "Generates videos from text",
        "webhook_url": "/proxy/webhook/veo3-video-generate",
        "input_schema": {"type": "text"},
        "output_schema": {"type": "video", "format": "mp4"},
    }
    data.update(overrides)
    return AgentConfig.model_validate(data)


class FakeTime:
    """Monotonic clock that only moves when sleep() is awaited."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def clock(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def agent_factory():
    return build_agent


@pytest.fixture
def text_agent() -> AgentConfig:
    """Text in, video out, no polling configured."""
    return build_agent()


@pytest.fixture
def polling_agent() -> AgentConfig:
    return build_agent(
        id="polling-agent",
        name="Polling Agent",
        settings={"max_execution_time": 10000, "polling_interval": 1000, "retry_attempts": 3},
    )


@pytest.fixture
def form_agent() -> AgentConfig:
    return build_agent(
        id="form-agent",
        name="Form Agent",
        webhook_url="https://engine.example.com/webhook/form-flow",
        input_schema={
            "type": "form",
            "fields": [
                {"name": "style", "label": "Style", "default_value": "cinematic"},
                {"name": "length", "label": "Length", "type": "number", "required": True},
            ],
        },
        output_schema={"type": "json"},
    )


@pytest.fixture
def inactive_agent() -> AgentConfig:
    return build_agent(id="retired-agent", name="Retired", status="maintenance")


@pytest.fixture
def registry(text_agent, polling_agent, form_agent, inactive_agent) -> AgentRegistry:
    return AgentRegistry([text_agent, polling_agent, form_agent, inactive_agent])


@pytest.fixture
def kv_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def storage(kv_store) -> StorageService:
    return StorageService(kv_store, namespace="test-hub")


@pytest.fixture
def cancellations() -> CancellationRegistry:
    return CancellationRegistry()


@pytest.fixture
def execution_store(storage, cancellations) -> ExecutionStore:
    return ExecutionStore(storage, cancellations)


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()

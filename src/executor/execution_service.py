"""Execution orchestrator: run one agent request from input to terminal record.

Flow for execute_agent():
1. Resolve the agent from the registry (missing/inactive -> raise, nothing recorded)
2. Record a pending Execution
3. Build the outbound payload from the agent's input schema
4. Resolve the dispatch path and trigger the engine webhook -> processing
5. Interpret the response: immediate data, explicit failure, polling, or
   an indeterminate result that stays processing

Any failure during steps 3-5 is recorded on the Execution (status failed,
code EXECUTION_FAILED) and then re-raised unchanged to the caller.

Retry is not applied here. Callers that want resilience around transient
network failures wrap execute_agent() in retry_with_backoff() themselves.
"""

import asyncio
import logging
import re
import time
from typing import Any, Callable, Optional
from urllib.parse import urlparse

from src.agents.registry import AgentRegistry
from src.agents.schemas import AgentConfig, AgentStatus, InputSchemaType
from src.executor.cancellation import CancellationRegistry, SleepFunc
from src.executor.errors import AgentUnavailableError, ErrorCode, parse_error
from src.executor.execution_store import ExecutionStore
from src.executor.output_parser import BlobStore, parse_output
from src.executor.poller import DEFAULT_POLLING_INTERVAL_MS, poll_for_result
from src.executor.schemas import (
    Execution,
    ExecutionError,
    ExecutionInput,
    ExecutionStatus,
    utcnow,
)
from src.executor.validation import validate_execution_input
from src.persistence.db import StorageError
from src.transport.webhook_client import PROXY_PREFIX, WebhookClient

logger = logging.getLogger(__name__)

_WEBHOOK_PREFIX_RE = re.compile(r"^/webhook/")


def build_payload(agent: AgentConfig, execution_input: ExecutionInput) -> dict[str, Any]:
    """Build the webhook request body for an agent's input schema.

    Every entry of input.parameters is merged onto the payload last, so
    extra parameters are always sent even when they share a name with a
    schema field.
    """
    parameters = dict(execution_input.parameters or {})
    payload: dict[str, Any] = {}
    input_type = agent.input_schema.type

    if input_type == InputSchemaType.TEXT:
        payload["prompt"] = execution_input.prompt or ""

    elif input_type == InputSchemaType.FORM:
        for field in agent.input_schema.fields or []:
            value = parameters.get(field.name)
            payload[field.name] = field.default_value if value is None else value
        if execution_input.prompt:
            payload["prompt"] = execution_input.prompt

    elif input_type == InputSchemaType.FILE:
        payload["file"] = parameters.get("file")
        if execution_input.prompt:
            payload["prompt"] = execution_input.prompt

    payload.update(parameters)
    return payload


def resolve_webhook_path(webhook_url: str) -> str:
    """Path handed to the transport client for an agent's webhook URL.

    Forwarding paths (/proxy/...) are used verbatim. Anything else is
    reduced to a bare path: absolute URLs lose their origin, then any
    leading /webhook/ and leading slashes are stripped.
    """
    if webhook_url.startswith(PROXY_PREFIX):
        return webhook_url

    path = urlparse(webhook_url).path if "://" in webhook_url else webhook_url
    path = _WEBHOOK_PREFIX_RE.sub("", path)
    return path.lstrip("/")


class ExecutionService:
    """Runs agent executions against the workflow engine.

    All collaborators are injected. Without a store the service still
    returns the final Execution, it just keeps no history.
    """

    def __init__(
        self,
        client: WebhookClient,
        registry: AgentRegistry,
        store: Optional[ExecutionStore] = None,
        cancellations: Optional[CancellationRegistry] = None,
        blob_store: Optional[BlobStore] = None,
        *,
        validate: bool = True,
        sleep: Optional[SleepFunc] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.registry = registry
        self.store = store
        self.cancellations = cancellations
        self.blob_store = blob_store or BlobStore()
        self.validate = validate
        self._sleep = sleep
        self._clock = clock

    def get_agent(self, agent_id: str) -> AgentConfig:
        """Resolve an agent that can be executed.

        Raises:
            AgentNotFoundError: unknown id
            AgentUnavailableError: agent exists but is not active
        """
        agent = self.registry.get_or_raise(agent_id)
        if agent.status != AgentStatus.ACTIVE:
            raise AgentUnavailableError(agent_id, f"agent status is {agent.status.value}")
        return agent

    async def execute_agent(self, agent_id: str, execution_input: ExecutionInput) -> Execution:
        """Execute an agent and return its final Execution.

        Returns a non-terminal (processing) Execution when the engine gave
        no data and the agent has no polling configured: the outcome is
        unknown and has to be followed up externally.

        Raises:
            AgentNotFoundError / AgentUnavailableError: before anything is recorded
            ValidationError: input violates the agent's rules, nothing recorded
            StorageError: the pending Execution could not be persisted,
            nothing recorded and nothing dispatched
            Any error from dispatch or polling, after it was recorded on the
            Execution
        """
        agent = self.get_agent(agent_id)
        if self.validate:
            validate_execution_input(agent, execution_input)

        execution = Execution(agent_id=agent_id, input=execution_input)
        if self.store is not None:
            self.store.add(execution)
        logger.info(f"Created execution {execution.id} for agent {agent_id}")

        token = (
            self.cancellations.token_for(execution.id)
            if self.cancellations is not None
            else None
        )

        try:
            payload = build_payload(agent, execution_input)
            path = resolve_webhook_path(agent.webhook_url)
            response = await self.client.trigger(path, payload)

            execution = self._apply(execution, status=ExecutionStatus.PROCESSING)
            output_type = agent.output_schema.type

            if response.has_data:
                output = parse_output(
                    response.data, output_type, self.blob_store, metadata=response.metadata
                )
                execution = self._apply(
                    execution,
                    status=ExecutionStatus.COMPLETED,
                    output=output,
                    completed_at=utcnow(),
                )

            elif response.is_failed:
                execution = self._apply(
                    execution,
                    status=ExecutionStatus.FAILED,
                    error=ExecutionError(
                        code=ErrorCode.EXECUTION_FAILED.value,
                        message=response.message or "Workflow execution failed",
                        details=response.model_dump(by_alias=True, exclude_none=True),
                    ),
                    completed_at=utcnow(),
                )

            elif agent.settings and agent.settings.max_execution_time:
                result = await poll_for_result(
                    execution.id,
                    agent.settings.max_execution_time,
                    agent.settings.polling_interval or DEFAULT_POLLING_INTERVAL_MS,
                    response,
                    self.client,
                    output_type,
                    blob_store=self.blob_store,
                    cancel_token=token,
                    sleep=self._sleep,
                    clock=self._clock,
                )
                execution = self._apply(
                    execution,
                    status=result.status,
                    output=result.output,
                    error=result.error,
                    completed_at=utcnow(),
                )

            else:
                logger.warning(
                    f"Execution {execution.id}: engine returned no data and agent "
                    f"{agent_id} has no polling configured, outcome unknown"
                )

        except asyncio.CancelledError:
            if token is None or not token.cancelled:
                raise
            logger.info(f"Execution {execution.id} cancelled, history was cleared")
            return execution.with_updates(
                status=ExecutionStatus.FAILED,
                error=ExecutionError(
                    code=ErrorCode.EXECUTION_FAILED.value,
                    message="Execution was cancelled",
                ),
                completed_at=utcnow(),
            )

        except Exception as e:
            parsed = parse_error(e)
            logger.error(f"Execution {execution.id} failed: {parsed.code}: {parsed.message}")
            try:
                self._apply(
                    execution,
                    status=ExecutionStatus.FAILED,
                    error=ExecutionError(
                        code=ErrorCode.EXECUTION_FAILED.value,
                        message=parsed.message,
                        details=parsed.model_dump(),
                    ),
                    completed_at=utcnow(),
                )
            except (ValueError, StorageError) as record_error:
                # Already terminal in the store, or storage itself is what failed
                logger.error(
                    f"Could not record failure of execution {execution.id}: {record_error}"
                )
            raise

        finally:
            if token is not None:
                self.cancellations.release(execution.id)

        logger.info(f"Execution {execution.id} finished with status {execution.status.value}")
        return execution

    def _apply(self, execution: Execution, **fields: Any) -> Execution:
        """Merge fields into an execution, through the store when there is one."""
        if self.store is not None:
            updated = self.store.update(execution.id, **fields)
            if updated is not None:
                return updated
        return execution.with_updates(**fields)

"""Execution API routes.

Endpoints:
    POST   /v1/agents/{agent_id}/executions   Run an agent (200 terminal, 202 indeterminate)
    GET    /v1/agents/{agent_id}/executions   Execution history, newest first
    DELETE /v1/agents/{agent_id}/executions   Clear history (aborts pending polls)
    GET    /v1/executions/current             Current execution + is_executing
    GET    /v1/executions/{execution_id}      One execution
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel

from src.agents.registry import AgentRegistry
from src.api.dependencies import get_execution_service, get_execution_store, get_registry
from src.executor.execution_service import ExecutionService
from src.executor.execution_store import ExecutionStore
from src.executor.retry import RetryConfig, retry_with_backoff
from src.executor.schemas import Execution, ExecutionInput

logger = logging.getLogger(__name__)

router = APIRouter(tags=["executions"])


class ExecutionRequest(ExecutionInput):
    """Execution input plus request options."""

    retry: bool = False


class CurrentExecutionResponse(BaseModel):
    execution: Optional[Execution] = None
    is_executing: bool


class ClearHistoryResponse(BaseModel):
    agent_id: str
    cleared: int


@router.post("/agents/{agent_id}/executions", response_model=Execution)
async def create_execution(
    agent_id: str,
    request: ExecutionRequest,
    response: Response,
    service: ExecutionService = Depends(get_execution_service),
) -> Execution:
    """Run an agent.

    With retry=true, network and webhook failures are retried with
    backoff, up to the agent's retry_attempts (3 by default). Every
    attempt is its own Execution in the history.
    """
    agent = service.get_agent(agent_id)
    execution_input = ExecutionInput(prompt=request.prompt, parameters=request.parameters)

    if request.retry:
        config = RetryConfig()
        if agent.settings and agent.settings.retry_attempts:
            config = RetryConfig(max_attempts=agent.settings.retry_attempts)
        execution = await retry_with_backoff(
            lambda: service.execute_agent(agent_id, execution_input),
            config,
            label=f"execute {agent_id}",
        )
    else:
        execution = await service.execute_agent(agent_id, execution_input)

    if not execution.is_terminal:
        response.status_code = 202
    return execution


@router.get("/agents/{agent_id}/executions", response_model=list[Execution])
async def list_executions(
    agent_id: str,
    limit: Optional[int] = Query(None, ge=1, le=50, description="Max executions to return"),
    registry: AgentRegistry = Depends(get_registry),
    store: ExecutionStore = Depends(get_execution_store),
) -> list[Execution]:
    """Execution history for an agent, newest first."""
    registry.get_or_raise(agent_id)
    executions = store.load_history(agent_id)
    return executions[:limit] if limit else executions


@router.delete("/agents/{agent_id}/executions", response_model=ClearHistoryResponse)
async def clear_executions(
    agent_id: str,
    registry: AgentRegistry = Depends(get_registry),
    store: ExecutionStore = Depends(get_execution_store),
) -> ClearHistoryResponse:
    """Clear an agent's history, in memory and in storage."""
    registry.get_or_raise(agent_id)
    cleared = store.clear_history(agent_id)
    return ClearHistoryResponse(agent_id=agent_id, cleared=cleared)


@router.get("/executions/current", response_model=CurrentExecutionResponse)
async def get_current_execution(
    store: ExecutionStore = Depends(get_execution_store),
) -> CurrentExecutionResponse:
    return CurrentExecutionResponse(
        execution=store.current_execution,
        is_executing=store.is_executing,
    )


@router.get("/executions/{execution_id}", response_model=Execution)
async def get_execution(
    execution_id: str,
    store: ExecutionStore = Depends(get_execution_store),
) -> Execution:
    execution = store.get_execution(execution_id)
    if execution is None:
        raise HTTPException(status_code=404, detail=f"Execution not found: {execution_id}")
    return execution

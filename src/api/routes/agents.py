"""Agent registry API routes."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from src.agents.registry import AgentRegistry
from src.agents.schemas import AgentCategory, AgentConfig, AgentStatus, AgentSummary
from src.api.dependencies import get_registry

router = APIRouter(prefix="/agents", tags=["agents"])


@router.get("", response_model=list[AgentSummary])
async def list_agents(
    category: Optional[AgentCategory] = Query(None, description="Filter by category"),
    status: Optional[AgentStatus] = Query(None, description="Filter by status"),
    registry: AgentRegistry = Depends(get_registry),
) -> list[AgentSummary]:
    """List all agents with optional filtering."""
    summaries = registry.list_summaries()
    if category:
        summaries = [s for s in summaries if s.category == category]
    if status:
        summaries = [s for s in summaries if s.status == status]
    return summaries


@router.get("/{agent_id}", response_model=AgentConfig)
async def get_agent(
    agent_id: str,
    registry: AgentRegistry = Depends(get_registry),
) -> AgentConfig:
    """Get the full configuration of an agent."""
    return registry.get_or_raise(agent_id)

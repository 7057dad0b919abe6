"""Preferences and storage administration routes."""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Response

from src.agents.registry import AgentRegistry
from src.api.dependencies import get_execution_store, get_registry, get_storage
from src.executor.execution_store import ExecutionStore
from src.persistence.storage import StorageService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["storage"])


# --- Preferences ---


@router.get("/preferences")
async def get_preferences(storage: StorageService = Depends(get_storage)) -> dict[str, Any]:
    return storage.load_preferences()


@router.put("/preferences")
async def put_preferences(
    preferences: dict[str, Any] = Body(...),
    storage: StorageService = Depends(get_storage),
) -> dict[str, Any]:
    """Replace all preferences."""
    storage.save_preferences(preferences)
    return preferences


@router.delete("/preferences", status_code=204)
async def delete_preferences(storage: StorageService = Depends(get_storage)) -> Response:
    storage.clear_preferences()
    return Response(status_code=204)


# --- Storage ---


@router.get("/storage/info")
async def storage_info(storage: StorageService = Depends(get_storage)) -> dict[str, Any]:
    """Usage against the quota, plus which agents have stored history."""
    return {
        **storage.get_storage_info(),
        "agents_with_executions": storage.get_agent_ids_with_executions(),
    }


@router.get("/storage/export")
async def export_storage(storage: StorageService = Depends(get_storage)) -> Response:
    """Every key under the namespace as one JSON document."""
    return Response(
        content=storage.export_data(),
        media_type="application/json",
        headers={"Content-Disposition": 'attachment; filename="agent-hub-export.json"'},
    )


@router.post("/storage/import")
async def import_storage(
    document: dict[str, Any] = Body(...),
    storage: StorageService = Depends(get_storage),
) -> dict[str, int]:
    """Write back every namespaced key of an exported document.

    Histories already loaded in memory are not refreshed.
    """
    imported = storage.import_data(document)
    return {"imported": imported}


@router.delete("/storage")
async def clear_storage(
    registry: AgentRegistry = Depends(get_registry),
    store: ExecutionStore = Depends(get_execution_store),
    storage: StorageService = Depends(get_storage),
) -> dict[str, int]:
    """Remove everything under the namespace, including in-memory history."""
    cleared = sum(store.clear_history(agent.id) for agent in registry.list_all())
    storage.clear_all()
    return {"cleared_executions": cleared}

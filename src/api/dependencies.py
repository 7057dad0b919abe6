"""Request-scoped access to the objects built in the app lifespan.

Nothing here is a module-level singleton: everything lives on app.state
and is torn down with the app.
"""

from fastapi import Request

from src.agents.registry import AgentRegistry
from src.executor.execution_service import ExecutionService
from src.executor.execution_store import ExecutionStore
from src.persistence.storage import StorageService
from src.transport.webhook_client import WebhookClient


def get_registry(request: Request) -> AgentRegistry:
    return request.app.state.registry


def get_execution_service(request: Request) -> ExecutionService:
    return request.app.state.execution_service


def get_execution_store(request: Request) -> ExecutionStore:
    return request.app.state.execution_store


def get_storage(request: Request) -> StorageService:
    return request.app.state.storage


def get_engine_client(request: Request) -> WebhookClient:
    """Client that always talks to the engine directly (never via the proxy)."""
    return request.app.state.engine_client

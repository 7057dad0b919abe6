"""Agent Hub API - agent execution service.

This API runs AI agents backed by workflow-engine webhooks:
- Agent definitions (registry of configured agents)
- Executions (submit input, poll long-running jobs, keep history)
- Storage (preferences, export/import of persisted data)
- A same-origin forwarding proxy to the engine
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from src import __version__
from src.agents.registry import load_agent_registry
from src.api.errors import register_exception_handlers
from src.api.routes import agents, executions, proxy, storage
from src.config import Settings
from src.executor.cancellation import CancellationRegistry
from src.executor.execution_service import ExecutionService
from src.executor.execution_store import ExecutionStore
from src.persistence.db import SQLiteKeyValueStore
from src.persistence.storage import StorageService
from src.transport.webhook_client import WebhookClient

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the application.

    Args:
        settings: Defaults to Settings.from_env()
        transport: httpx transport for outbound engine calls (tests)
    """
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Build every dependency on startup, release it on shutdown."""
        logger.info("Loading agent definitions...")
        registry = load_agent_registry(settings.agents_dir)
        logger.info(f"Loaded {registry.count()} agents")

        logger.info(f"Opening storage at {settings.storage_path}...")
        kv_store = SQLiteKeyValueStore(settings.storage_path, settings.storage_quota_bytes)
        storage_service = StorageService(kv_store, namespace=settings.namespace)

        client = WebhookClient.from_settings(settings, transport=transport)
        engine_client = WebhookClient(
            settings.engine_base_url,
            proxy_origin=settings.proxy_origin,
            use_proxy=False,
            engine_api_key=settings.engine_api_key,
            timeout=settings.request_timeout,
            transport=transport,
        )
        cancellations = CancellationRegistry()
        execution_store = ExecutionStore(storage_service, cancellations)

        app.state.settings = settings
        app.state.registry = registry
        app.state.storage = storage_service
        app.state.client = client
        app.state.engine_client = engine_client
        app.state.execution_store = execution_store
        app.state.execution_service = ExecutionService(
            client, registry, execution_store, cancellations
        )
        logger.info(
            f"Agent Hub API ready (engine {settings.engine_base_url}, "
            f"proxy {'on' if settings.use_proxy else 'off'})"
        )
        yield
        # Shutdown
        logger.info("Shutting down Agent Hub API")
        cancellations.cancel_all()
        await client.aclose()
        await engine_client.aclose()
        kv_store.close()

    app = FastAPI(
        title="Agent Hub API",
        description="""
## Agent Execution Service

Submits user input to AI agents implemented as workflow-engine webhooks,
follows long-running jobs to completion and keeps a per-agent history.

### Key Endpoints

- `GET /v1/agents` - List agents
- `POST /v1/agents/{agent_id}/executions` - Run an agent
- `GET /v1/agents/{agent_id}/executions` - Execution history
- `GET /v1/executions/current` - Currently running execution
- `GET /v1/storage/export` - Export persisted data
""",
        version=__version__,
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    # Include routers with /v1 prefix
    app.include_router(agents.router, prefix="/v1")
    app.include_router(executions.router, prefix="/v1")
    app.include_router(storage.router, prefix="/v1")
    app.include_router(proxy.router)

    @app.get("/")
    async def root():
        """Root endpoint with API info."""
        return {
            "service": "Agent Hub API",
            "version": __version__,
            "description": "Agent execution service",
            "docs": "/docs",
            "endpoints": {
                "agents": "/v1/agents",
                "executions": "/v1/agents/{agent_id}/executions",
                "current_execution": "/v1/executions/current",
                "preferences": "/v1/preferences",
                "storage": "/v1/storage/info",
                "proxy": "/proxy/webhook/{path}",
            },
        }

    @app.get("/health")
    async def health(request: Request):
        """Health check endpoint."""
        state = request.app.state
        return {
            "status": "healthy",
            "agents_loaded": state.registry.count(),
            "engine_available": await state.engine_client.check_availability(),
            "is_executing": state.execution_store.is_executing,
            "storage": state.storage.get_storage_info(),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("src.api.main:app", host="0.0.0.0", port=8001, reload=False)

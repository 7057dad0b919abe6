"""Same-origin forwarding proxy to the workflow engine.

Endpoints (no /v1 prefix):
    POST     /proxy/webhook/{path}          Forward a webhook call
    GET      /proxy/executions              Newest engine jobs
    GET      /proxy/executions/{id}         One engine job, mapped to the job contract
    GET|HEAD /proxy/health                  Engine reachability (503 when down)

The engine answers a webhook whose workflow responds asynchronously with
{"message": "Workflow was started"}. That is turned into the long-running
job contract {status: "processing", executionId, pollUrl, estimatedTime}
so the caller knows to poll.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse

from src.api.dependencies import get_engine_client
from src.executor.errors import ExecutionBaseError, NetworkError, WebhookError
from src.transport.webhook_client import PROXY_EXECUTIONS_PREFIX, WebhookClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/proxy", tags=["proxy"])

WORKFLOW_STARTED_MESSAGE = "Workflow was started"
# Engine error raised when a workflow is triggered without reaching its response node
UNUSED_RESPOND_MARKER = "Unused Respond to Webhook"
ESTIMATED_TIME_MS = 180000


def _error_response(error: ExecutionBaseError) -> JSONResponse:
    if isinstance(error, WebhookError) and error.status_code >= 400:
        return JSONResponse(
            status_code=error.status_code,
            content={"error": "Webhook request failed", "details": error.response_body},
        )
    if isinstance(error, NetworkError):
        return JSONResponse(
            status_code=503,
            content={"error": "Failed to connect to the workflow engine", "message": error.message},
        )
    return JSONResponse(
        status_code=502,
        content={"error": "Invalid response from the workflow engine", "message": error.message},
    )


async def _started_response(
    engine: WebhookClient, path: str, execution_id: Optional[str]
) -> dict[str, Any]:
    if execution_id is None:
        try:
            execution_id = await engine.find_recent_execution_id(path)
        except ExecutionBaseError as e:
            logger.warning(f"Could not look up the engine job for {path}: {e.message}")

    body: dict[str, Any] = {
        "status": "processing",
        "message": "Workflow started, poll for the result",
        "estimatedTime": ESTIMATED_TIME_MS,
    }
    if execution_id:
        body["executionId"] = execution_id
        body["pollUrl"] = f"{PROXY_EXECUTIONS_PREFIX}{execution_id}"
    logger.info(f"Workflow {path} started (engine job {execution_id or 'unknown'})")
    return body


@router.post("/webhook/{path:path}")
async def forward_webhook(
    path: str,
    payload: dict[str, Any] = Body(default_factory=dict),
    engine: WebhookClient = Depends(get_engine_client),
):
    """Forward a webhook call to the engine."""
    try:
        result = await engine.trigger(path, payload)
    except WebhookError as e:
        if e.status_code == 500 and UNUSED_RESPOND_MARKER in e.response_body:
            return await _started_response(engine, path, None)
        return _error_response(e)
    except NetworkError as e:
        return _error_response(e)

    if result.message == WORKFLOW_STARTED_MESSAGE and not result.has_data:
        return await _started_response(engine, path, result.execution_id)
    return result.model_dump(by_alias=True, exclude_none=True)


@router.get("/executions")
async def recent_executions(
    limit: int = Query(10, ge=1, le=100),
    engine: WebhookClient = Depends(get_engine_client),
):
    """Newest engine jobs, for finding the one a webhook call started."""
    try:
        records = await engine.list_recent_executions(limit)
    except ExecutionBaseError as e:
        return _error_response(e)
    return [
        {
            "executionId": str(r.get("id")),
            "status": "completed" if r.get("finished") else "processing",
            "startedAt": r.get("startedAt"),
            "stoppedAt": r.get("stoppedAt"),
            "workflowName": (r.get("workflowData") or {}).get("name"),
        }
        for r in records
    ]


@router.get("/executions/{execution_id}")
async def execution_status(
    execution_id: str,
    engine: WebhookClient = Depends(get_engine_client),
):
    """One engine job in the {status, data, metadata} / {status, message} shape."""
    try:
        result = await engine.get_engine_execution(execution_id)
    except ExecutionBaseError as e:
        return _error_response(e)
    return result.model_dump(by_alias=True, exclude_none=True)


@router.api_route("/health", methods=["GET", "HEAD"])
async def engine_health(engine: WebhookClient = Depends(get_engine_client)):
    """HEAD-probe the engine; 2xx or 404 counts as reachable."""
    available = await engine.check_availability()
    if not available:
        return JSONResponse(
            status_code=503,
            content={"status": "error", "engine_available": False},
        )
    return {"status": "ok", "engine_available": True}

"""HTTP client for the external workflow engine.

Triggers engine webhooks with a JSON POST, either directly
({engine_base_url}/webhook/{path}) or through this service's same-origin
forwarding proxy ({proxy_origin}/proxy/webhook/{path}), and classifies
failures into the execution error taxonomy:

- 502/503            -> NetworkError (service temporarily unavailable)
- 404                -> WebhookError (webhook not found / not activated)
- other non-2xx      -> WebhookError(status, body)
- transport failures -> NetworkError wrapping the cause

No retries here; see src.executor.retry.
"""

import logging
import re
from typing import Any, Optional

import httpx

from src.executor.errors import NetworkError, WebhookError
from src.executor.schemas import WebhookResponse

logger = logging.getLogger(__name__)

PROXY_PREFIX = "/proxy/"
PROXY_WEBHOOK_PREFIX = "/proxy/webhook/"
PROXY_EXECUTIONS_PREFIX = "/proxy/executions/"
PROXY_HEALTH_PATH = "/proxy/health"

SERVICE_UNAVAILABLE_MESSAGE = (
    "Service temporarily unavailable. Please check if the workflow engine is running."
)
WEBHOOK_NOT_FOUND_MESSAGE = (
    "Webhook not found. Make sure the workflow is activated and the webhook path is correct."
)
CONNECTION_FAILED_MESSAGE = (
    "Unable to connect to the service. Please check if the workflow engine is running."
)

# Node whose output carries the generated file in the stock video workflow
DEFAULT_RESULT_NODE = "Convert to File"


def classify_response(response: httpx.Response) -> None:
    """Raise the taxonomy error for a non-2xx response; no-op on success."""
    if response.is_success:
        return
    if response.status_code in (502, 503):
        raise NetworkError(SERVICE_UNAVAILABLE_MESSAGE)
    if response.status_code == 404:
        raise WebhookError(404, WEBHOOK_NOT_FOUND_MESSAGE)
    raise WebhookError(response.status_code, response.text)


def engine_execution_to_response(
    execution_data: dict[str, Any],
    execution_id: str,
) -> WebhookResponse:
    """Map an engine executions-API record onto the job response contract.

    Finished runs take the first output item of the last executed node
    (falling back to the file-conversion node); an item with binary data is
    returned whole so the output parser can pass the binary through.
    """
    status = str(execution_data.get("status") or "").lower()
    result_data = (execution_data.get("data") or {}).get("resultData") or {}

    if status in ("error", "crashed", "failed"):
        error = result_data.get("error") or {}
        return WebhookResponse(
            status="failed",
            message=error.get("message") or "Workflow execution failed",
            execution_id=execution_id,
        )

    finished = bool(execution_data.get("finished")) or status == "success"
    if not finished:
        return WebhookResponse(status="processing", execution_id=execution_id)

    run_data = result_data.get("runData") or {}
    node_name = result_data.get("lastNodeExecuted")
    if node_name not in run_data:
        node_name = DEFAULT_RESULT_NODE

    item: Optional[dict[str, Any]] = None
    node_runs = run_data.get(node_name) or []
    if node_runs:
        main = (node_runs[-1].get("data") or {}).get("main") or []
        if main and main[0]:
            item = main[0][0]

    metadata = {
        "description": "Workflow completed",
        "executionId": execution_id,
        "startedAt": execution_data.get("startedAt"),
        "stoppedAt": execution_data.get("stoppedAt"),
    }
    if item is None:
        return WebhookResponse(
            status="completed",
            data=execution_data,
            metadata=metadata,
            message="Execution completed but no node output found",
            execution_id=execution_id,
        )
    if item.get("binary"):
        return WebhookResponse(
            status="completed",
            data={"binary": item["binary"], "metadata": item.get("json") or {}},
            metadata=metadata,
            execution_id=execution_id,
        )
    return WebhookResponse(
        status="completed",
        data=item.get("json"),
        metadata=metadata,
        execution_id=execution_id,
    )


class WebhookClient:
    """Async client for triggering engine webhooks and checking job status.

    Usage:
        async with WebhookClient(engine_base_url="http://localhost:5678") as client:
            response = await client.trigger("veo3-video-generate", {"prompt": "..."})
    """

    def __init__(
        self,
        engine_base_url: str = "http://localhost:5678",
        *,
        proxy_origin: str = "http://localhost:8001",
        use_proxy: bool = True,
        engine_api_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.engine_base_url = engine_base_url.rstrip("/")
        self.proxy_origin = proxy_origin.rstrip("/")
        self.use_proxy = use_proxy
        self.engine_api_key = engine_api_key
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    @classmethod
    def from_settings(cls, settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        return cls(
            settings.engine_base_url,
            proxy_origin=settings.proxy_origin,
            use_proxy=settings.use_proxy,
            engine_api_key=settings.engine_api_key,
            timeout=settings.request_timeout,
            transport=transport,
        )

    def resolve_url(self, path: str) -> str:
        """Resolve a webhook path to the URL that will be called."""
        if path.startswith(PROXY_PREFIX):
            return f"{self.proxy_origin}{path}"
        path = path.lstrip("/")
        if self.use_proxy:
            return f"{self.proxy_origin}{PROXY_WEBHOOK_PREFIX}{path}"
        return f"{self.engine_base_url}/webhook/{path}"

    async def trigger(self, path: str, payload: dict[str, Any]) -> WebhookResponse:
        """POST a JSON payload to a webhook.

        Args:
            path: Forwarding path (/proxy/webhook/...) or bare webhook path
            payload: JSON-serializable request body

        Returns:
            The parsed response body

        Raises:
            WebhookError: non-2xx response (other than 502/503) or non-JSON body
            NetworkError: 502/503 or the engine could not be reached
        """
        url = self.resolve_url(path)
        logger.info(f"Triggering webhook {url}")
        response = await self._request("POST", url, json=payload)
        return self._parse_body(response)

    async def get_execution_status(
        self,
        execution_id: str,
        poll_url: Optional[str] = None,
    ) -> WebhookResponse:
        """Query the status of a long-running engine job.

        Uses the pollUrl from the job response when there is one; otherwise
        the proxy's executions route, or the engine executions API directly.
        """
        if poll_url:
            url = poll_url if poll_url.startswith("http") else f"{self.proxy_origin}{poll_url}"
            response = await self._request("GET", url)
            return self._parse_body(response)

        if self.use_proxy:
            url = f"{self.proxy_origin}{PROXY_EXECUTIONS_PREFIX}{execution_id}"
            response = await self._request("GET", url)
            return self._parse_body(response)

        return await self.get_engine_execution(execution_id)

    async def get_engine_execution(self, execution_id: str) -> WebhookResponse:
        """Read one job from the engine executions API, mapped to the contract."""
        url = f"{self.engine_base_url}/api/v1/executions/{execution_id}"
        response = await self._request(
            "GET", url, params={"includeData": "true"}, headers=self._api_headers()
        )
        try:
            execution_data = response.json()
        except ValueError:
            raise WebhookError(response.status_code, response.text)
        return engine_execution_to_response(execution_data, execution_id)

    async def list_recent_executions(self, limit: int = 10) -> list[dict[str, Any]]:
        """Newest jobs from the engine executions API."""
        url = f"{self.engine_base_url}/api/v1/executions"
        response = await self._request(
            "GET", url, params={"limit": limit}, headers=self._api_headers()
        )
        try:
            body = response.json()
        except ValueError:
            raise WebhookError(response.status_code, response.text)
        return list(body.get("data") or []) if isinstance(body, dict) else []

    async def find_recent_execution_id(self, webhook_path: str) -> Optional[str]:
        """Id of the newest engine job whose workflow name matches a webhook path.

        A workflow matches when its name contains any word (3+ chars) of the
        path, e.g. "veo3-video-generate" matches "Veo3 Generator". The
        engine's "Workflow was started" answer carries no job id, so this is
        how a freshly triggered job gets something to poll.
        """
        words = [w for w in re.split(r"[-_/.]+", webhook_path.lower()) if len(w) >= 3]
        if not words:
            return None
        for record in await self.list_recent_executions():
            name = str((record.get("workflowData") or {}).get("name") or "").lower()
            if any(word in name for word in words):
                return str(record.get("id"))
        return None

    def _api_headers(self) -> Optional[dict[str, str]]:
        return {"X-N8N-API-KEY": self.engine_api_key} if self.engine_api_key else None

    async def check_availability(self) -> bool:
        """HEAD probe. 2xx or 404 means the service is up. Never raises."""
        url = (
            f"{self.proxy_origin}{PROXY_HEALTH_PATH}"
            if self.use_proxy
            else self.engine_base_url
        )
        try:
            response = await self._client.head(url)
        except httpx.HTTPError as e:
            logger.warning(f"Availability check failed for {url}: {e}")
            return False
        return response.is_success or response.status_code == 404

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            logger.error(f"{method} {url} failed: {type(e).__name__}: {e}")
            raise NetworkError(CONNECTION_FAILED_MESSAGE, e) from e

        if not response.is_success:
            logger.warning(
                f"{method} {url} returned {response.status_code}: {response.text[:500]}"
            )
        classify_response(response)
        return response

    @staticmethod
    def _parse_body(response: httpx.Response) -> WebhookResponse:
        try:
            body = response.json()
        except ValueError:
            raise WebhookError(response.status_code, response.text)
        if not isinstance(body, dict):
            # Engines answering with a bare value are treated as immediate data
            return WebhookResponse(status="completed", data=body)
        return WebhookResponse.model_validate(body)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "WebhookClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

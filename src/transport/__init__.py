"""Transport to the external workflow engine."""

from src.transport.webhook_client import (
    WebhookClient,
    classify_response,
    engine_execution_to_response,
)

__all__ = [
    "WebhookClient",
    "classify_response",
    "engine_execution_to_response",
]

"""Execution error taxonomy.

A closed set of error kinds, each with a stable code, a human message and
structured details. parse_error() maps anything that was caught into this
taxonomy; unrecognised failures degrade to UNKNOWN_ERROR.
"""

import traceback
from enum import Enum
from typing import Any, Optional

from src.executor.schemas import ExecutionError


class ErrorCode(str, Enum):
    EXECUTION_TIMEOUT = "EXECUTION_TIMEOUT"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    WEBHOOK_ERROR = "WEBHOOK_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    AGENT_NOT_FOUND = "AGENT_NOT_FOUND"
    AGENT_UNAVAILABLE = "AGENT_UNAVAILABLE"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    # Record-only: stamped on failed Executions, never raised
    EXECUTION_FAILED = "EXECUTION_FAILED"


USER_FRIENDLY_MESSAGES: dict[str, str] = {
    ErrorCode.EXECUTION_TIMEOUT.value: "The request took too long to complete. Please try again.",
    ErrorCode.VALIDATION_ERROR.value: "Please check your input and try again.",
    ErrorCode.WEBHOOK_ERROR.value: "Failed to connect to the service. Please try again later.",
    ErrorCode.NETWORK_ERROR.value: "Network connection failed. Please check your internet connection.",
    ErrorCode.AGENT_NOT_FOUND.value: "The selected agent could not be found.",
    ErrorCode.AGENT_UNAVAILABLE.value: "The agent is currently unavailable. Please try again later.",
    ErrorCode.UNKNOWN_ERROR.value: "An unexpected error occurred. Please try again.",
}


class ExecutionBaseError(Exception):
    """Base class for all typed execution errors."""

    code: ErrorCode = ErrorCode.UNKNOWN_ERROR

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_execution_error(self) -> ExecutionError:
        return ExecutionError(
            code=self.code.value,
            message=self.message,
            details=self.details,
        )


class ExecutionTimeoutError(ExecutionBaseError):
    """Polling exceeded the configured bound."""

    code = ErrorCode.EXECUTION_TIMEOUT

    def __init__(self, execution_id: str, timeout_ms: int):
        super().__init__(
            f"Execution {execution_id} timed out after {timeout_ms}ms",
            {"execution_id": execution_id, "timeout_ms": timeout_ms},
        )
        self.execution_id = execution_id
        self.timeout_ms = timeout_ms


class ValidationError(ExecutionBaseError):
    """Caller-supplied input violated a declared rule."""

    code = ErrorCode.VALIDATION_ERROR

    def __init__(self, field: str, constraint: str, value: Any = None):
        super().__init__(
            f"Validation failed for {field}: {constraint}",
            {"field": field, "constraint": constraint, "value": value},
        )
        self.field = field
        self.constraint = constraint
        self.value = value


class WebhookError(ExecutionBaseError):
    """The external engine answered with a non-2xx status."""

    code = ErrorCode.WEBHOOK_ERROR

    def __init__(self, status_code: int, response_body: str):
        super().__init__(
            f"Webhook request failed with status {status_code}",
            {"status_code": status_code, "response_body": response_body},
        )
        self.status_code = status_code
        self.response_body = response_body


class NetworkError(ExecutionBaseError):
    """The external engine could not be reached."""

    code = ErrorCode.NETWORK_ERROR

    def __init__(self, message: str, original_error: Optional[BaseException] = None):
        super().__init__(
            f"Network error: {message}",
            {"original_error": str(original_error) if original_error else None},
        )
        self.original_error = original_error


class AgentNotFoundError(ExecutionBaseError):
    code = ErrorCode.AGENT_NOT_FOUND

    def __init__(self, agent_id: str):
        super().__init__(f"Agent not found: {agent_id}", {"agent_id": agent_id})
        self.agent_id = agent_id


class AgentUnavailableError(ExecutionBaseError):
    code = ErrorCode.AGENT_UNAVAILABLE

    def __init__(self, agent_id: str, reason: str):
        super().__init__(
            f"Agent {agent_id} is unavailable: {reason}",
            {"agent_id": agent_id, "reason": reason},
        )
        self.agent_id = agent_id
        self.reason = reason


def parse_error(error: Any) -> ExecutionError:
    """Normalize any caught error into an ExecutionError. Never raises."""
    if isinstance(error, ExecutionBaseError):
        return error.to_execution_error()

    if isinstance(error, ExecutionError):
        return error

    if isinstance(error, BaseException):
        return ExecutionError(
            code=ErrorCode.UNKNOWN_ERROR.value,
            message=str(error) or type(error).__name__,
            details={
                "name": type(error).__name__,
                "traceback": "".join(
                    traceback.format_exception(type(error), error, error.__traceback__)
                ),
            },
        )

    if isinstance(error, str):
        return ExecutionError(code=ErrorCode.UNKNOWN_ERROR.value, message=error)

    return ExecutionError(
        code=ErrorCode.UNKNOWN_ERROR.value,
        message="An unknown error occurred",
        details=error,
    )


def get_user_friendly_message(error: ExecutionError) -> str:
    """Human message for an error code, falling back to the raw message."""
    return (
        USER_FRIENDLY_MESSAGES.get(error.code)
        or error.message
        or USER_FRIENDLY_MESSAGES[ErrorCode.UNKNOWN_ERROR.value]
    )

"""Execution schemas: lifecycle state, input, output and errors.

An Execution is immutable. Every state change produces a new object via
Execution.with_updates(), which re-validates the lifecycle invariants:

- completed_at is set iff status is terminal (completed/failed)
- output only on completed, error only on failed
- status only moves forward: pending -> processing -> completed/failed
  (pending -> failed covers failures before dispatch)
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.agents.schemas import OutputSchemaType


class ExecutionStatus(str, Enum):
    """Execution lifecycle states."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({ExecutionStatus.COMPLETED, ExecutionStatus.FAILED})
ACTIVE_STATUSES = frozenset({ExecutionStatus.PENDING, ExecutionStatus.PROCESSING})

_ALLOWED_TRANSITIONS: dict[ExecutionStatus, frozenset[ExecutionStatus]] = {
    ExecutionStatus.PENDING: frozenset(
        {ExecutionStatus.PROCESSING, ExecutionStatus.FAILED}
    ),
    ExecutionStatus.PROCESSING: frozenset(
        {ExecutionStatus.COMPLETED, ExecutionStatus.FAILED}
    ),
    ExecutionStatus.COMPLETED: frozenset(),
    ExecutionStatus.FAILED: frozenset(),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InvalidTransitionError(ValueError):
    """Raised when an update would move an execution backwards or out of a terminal state."""


class ExecutionInput(BaseModel):
    """User-supplied input for one execution."""

    model_config = ConfigDict(frozen=True)

    prompt: Optional[str] = None
    parameters: Optional[dict[str, Any]] = None


class ExecutionOutput(BaseModel):
    """Parsed engine result.

    data is a URL string, a blob: handle, or a JSON value depending on type.
    """

    model_config = ConfigDict(frozen=True)

    type: OutputSchemaType
    data: Any = None
    metadata: Optional[dict[str, Any]] = None


class ExecutionError(BaseModel):
    """Failure recorded on an execution."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    details: Any = None


class Execution(BaseModel):
    """One request/response lifecycle against an agent.

    Serialized with camelCase keys (agentId, createdAt, completedAt), the
    shape of stored history and exported documents. Snake_case names are
    accepted on input too.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    agent_id: str = Field(..., alias="agentId")
    status: ExecutionStatus = ExecutionStatus.PENDING
    input: ExecutionInput = Field(default_factory=ExecutionInput)
    output: Optional[ExecutionOutput] = None
    error: Optional[ExecutionError] = None
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    completed_at: Optional[datetime] = Field(default=None, alias="completedAt")

    @model_validator(mode="after")
    def _check_lifecycle_invariants(self) -> "Execution":
        terminal = self.status in TERMINAL_STATUSES
        if terminal and self.completed_at is None:
            raise ValueError(f"completed_at is required when status is {self.status.value}")
        if not terminal and self.completed_at is not None:
            raise ValueError(f"completed_at must be unset while status is {self.status.value}")
        if self.output is not None and self.status != ExecutionStatus.COMPLETED:
            raise ValueError("output is only allowed on completed executions")
        if self.error is not None and self.status != ExecutionStatus.FAILED:
            raise ValueError("error is only allowed on failed executions")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def with_updates(self, **fields: Any) -> "Execution":
        """Return a new Execution with fields merged in.

        Applying the same update twice yields the same record.

        Raises:
            InvalidTransitionError: if the status change is not allowed
            pydantic.ValidationError: if the result breaks a lifecycle invariant
        """
        unknown = set(fields) - set(type(self).model_fields)
        if unknown:
            raise ValueError(f"Unknown execution fields: {sorted(unknown)}")

        if "status" in fields:
            new_status = ExecutionStatus(fields["status"])
            if new_status != self.status and new_status not in _ALLOWED_TRANSITIONS[self.status]:
                raise InvalidTransitionError(
                    f"Execution {self.id}: cannot move from "
                    f"{self.status.value} to {new_status.value}"
                )

        data = dict(self)
        data.update(fields)
        return type(self).model_validate(data)


class WebhookResponse(BaseModel):
    """Response contract from the engine or the forwarding proxy.

    {status: "processing", pollUrl, estimatedTime, executionId}
    {status: "completed", data, metadata}
    {status: "failed", message}

    Unknown keys are kept so nothing the engine sent is lost.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    status: Optional[str] = None
    data: Any = None
    metadata: Optional[dict[str, Any]] = None
    message: Optional[str] = None
    execution_id: Optional[str] = Field(default=None, alias="executionId")
    poll_url: Optional[str] = Field(default=None, alias="pollUrl")
    estimated_time: Optional[int] = Field(default=None, alias="estimatedTime")

    @property
    def has_data(self) -> bool:
        return self.data is not None and self.data != "" and self.data != {}

    @property
    def is_failed(self) -> bool:
        return (self.status or "").lower() == "failed"

    @property
    def is_completed(self) -> bool:
        return (self.status or "").lower() == "completed"


class PollResult(BaseModel):
    """Terminal outcome of the polling procedure."""

    status: ExecutionStatus
    output: Optional[ExecutionOutput] = None
    error: Optional[ExecutionError] = None

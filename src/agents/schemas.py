"""Agent definition schemas.

An agent is a named target configuration for one kind of generated
artifact: where its webhook lives, how its input is shaped into a payload,
how the engine's answer is parsed, and how long to wait for it.
"""

from enum import Enum
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class AgentStatus(str, Enum):
    """Agent availability states."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    MAINTENANCE = "maintenance"


class AgentCategory(str, Enum):
    VIDEO = "video"
    IMAGE = "image"
    TEXT = "text"
    AUDIO = "audio"
    DATA = "data"
    OTHER = "other"


class InputSchemaType(str, Enum):
    """Discriminates outbound payload construction."""
    TEXT = "text"
    FORM = "form"
    FILE = "file"


class OutputSchemaType(str, Enum):
    """Discriminates result parsing."""
    VIDEO = "video"
    IMAGE = "image"
    TEXT = "text"
    JSON = "json"


class FormFieldType(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    SELECT = "select"
    CHECKBOX = "checkbox"


class FormField(BaseModel):
    """A declared input field for form-based agents."""

    name: str
    label: str
    type: FormFieldType = FormFieldType.TEXT
    default_value: Any = None
    options: Optional[list[str]] = None
    required: bool = False


class ValidationRules(BaseModel):
    """Declarative validation rules for a single input value.

    `custom` is code, not data: it never comes from a JSON definition and
    is excluded from serialization.
    """

    required: bool = False
    min_length: Optional[int] = Field(default=None, ge=0)
    max_length: Optional[int] = Field(default=None, ge=0)
    pattern: Optional[str] = None
    custom: Optional[Callable[[Any], Union[bool, str]]] = Field(
        default=None, exclude=True
    )


class InputSchema(BaseModel):
    type: InputSchemaType
    fields: Optional[list[FormField]] = None
    validation: Optional[ValidationRules] = None


class OutputSchema(BaseModel):
    type: OutputSchemaType
    format: Optional[str] = Field(default=None, description="e.g. 'mp4'")


class AgentSettings(BaseModel):
    """Execution timing settings (all in milliseconds)."""

    max_execution_time: Optional[int] = Field(
        default=None, description="Upper bound on polling; 0/None disables polling"
    )
    polling_interval: Optional[int] = None
    retry_attempts: Optional[int] = None


class AgentConfig(BaseModel):
    """Full agent configuration. Read-only to the execution core."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., examples=["veo3-video-generator"])
    name: str
    description: str
    icon: str = Field(default="", description="Icon name or emoji")
    webhook_url: str = Field(
        ...,
        description="Forwarding path (/proxy/webhook/...), absolute URL or bare path",
    )
    category: Optional[AgentCategory] = None
    status: AgentStatus = AgentStatus.ACTIVE
    input_schema: InputSchema
    output_schema: OutputSchema
    settings: Optional[AgentSettings] = None
    default_parameters: dict[str, Any] = Field(
        default_factory=dict,
        description="Suggested parameter values shown to users (not merged automatically)",
    )


class AgentSummary(BaseModel):
    """Lightweight agent listing entry."""

    id: str
    name: str
    description: str
    icon: str = ""
    category: Optional[AgentCategory] = None
    status: AgentStatus
    input_type: InputSchemaType
    output_type: OutputSchemaType

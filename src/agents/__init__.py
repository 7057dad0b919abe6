"""Agent definitions module.

The registry lives in src.agents.registry and is imported from there; it
depends on src.executor.errors, which itself needs these schemas.
"""

from src.agents.schemas import (
    AgentCategory,
    AgentConfig,
    AgentSettings,
    AgentStatus,
    AgentSummary,
    FormField,
    InputSchema,
    InputSchemaType,
    OutputSchema,
    OutputSchemaType,
    ValidationRules,
)

__all__ = [
    "AgentCategory",
    "AgentConfig",
    "AgentSettings",
    "AgentStatus",
    "AgentSummary",
    "FormField",
    "InputSchema",
    "InputSchemaType",
    "OutputSchema",
    "OutputSchemaType",
    "ValidationRules",
]

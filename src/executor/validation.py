"""Declarative input validation.

Rules are checked in order (required, min_length, max_length, pattern,
custom); the first failing rule raises a ValidationError. An empty value
that isn't required skips every other check.
"""

import re
from typing import Any, Optional

from src.agents.schemas import AgentConfig, InputSchemaType, ValidationRules
from src.executor.errors import ValidationError
from src.executor.schemas import ExecutionInput


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def validate_input(value: Any, field: str, rules: Optional[ValidationRules]) -> None:
    """Validate one value against its rules.

    Raises:
        ValidationError: on the first failing rule
    """
    if rules is None:
        return

    if rules.required and _is_empty(value):
        raise ValidationError(field, "This field is required")

    if not value and not rules.required:
        return

    if isinstance(value, str):
        if rules.min_length is not None and len(value) < rules.min_length:
            raise ValidationError(
                field, f"Must be at least {rules.min_length} characters", value
            )
        if rules.max_length is not None and len(value) > rules.max_length:
            raise ValidationError(
                field, f"Must be at most {rules.max_length} characters", value
            )
        if rules.pattern and re.search(rules.pattern, value) is None:
            raise ValidationError(field, "Invalid format", value)

    if rules.custom is not None:
        result = rules.custom(value)
        if result is False:
            raise ValidationError(field, "Custom validation failed", value)
        if isinstance(result, str):
            raise ValidationError(field, result, value)


def validate_execution_input(agent: AgentConfig, execution_input: ExecutionInput) -> None:
    """Apply an agent's declared rules to a submission.

    The schema-level rules cover the prompt; form agents additionally
    require every field marked required (unless it has a default).
    """
    schema = agent.input_schema
    validate_input(execution_input.prompt, "prompt", schema.validation)

    if schema.type == InputSchemaType.FORM and schema.fields:
        parameters = execution_input.parameters or {}
        for form_field in schema.fields:
            if not form_field.required:
                continue
            value = parameters.get(form_field.name, form_field.default_value)
            validate_input(value, form_field.name, ValidationRules(required=True))

"""Agent registry - validated, read-only catalog of agent configurations.

The registry is built once from a list of AgentConfig objects (or from the
JSON files in src/agents/definitions/) and validated at construction. It is
passed explicitly to whoever needs it; there is no module-level instance.
"""

import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping, Optional
from urllib.parse import urlparse

from src.agents.schemas import (
    AgentCategory,
    AgentConfig,
    AgentStatus,
    AgentSummary,
)
from src.executor.errors import AgentNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_DEFINITIONS_DIR = Path(__file__).parent / "definitions"


class AgentValidationError(ValueError):
    """Raised when an agent configuration is invalid."""

    def __init__(self, message: str, agent_id: Optional[str] = None):
        super().__init__(message)
        self.agent_id = agent_id


def _is_valid_webhook_url(url: str) -> bool:
    if url.startswith("/"):
        return True
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_agent(agent: AgentConfig) -> None:
    """Check the parts of an agent config that pydantic types can't express.

    Raises:
        AgentValidationError: on the first problem found
    """
    if not agent.id.strip():
        raise AgentValidationError("Agent ID is required and must be a string")
    if not agent.name.strip():
        raise AgentValidationError("Agent name is required", agent.id)
    if not agent.description.strip():
        raise AgentValidationError("Agent description is required", agent.id)
    if not agent.webhook_url.strip():
        raise AgentValidationError("Agent webhook URL is required", agent.id)
    if not _is_valid_webhook_url(agent.webhook_url):
        raise AgentValidationError(
            f"Invalid webhook URL format: {agent.webhook_url}", agent.id
        )

    settings = agent.settings
    if settings is None:
        return
    if settings.max_execution_time is not None and settings.max_execution_time <= 0:
        raise AgentValidationError(
            "Invalid max_execution_time: must be a positive number", agent.id
        )
    if settings.polling_interval is not None and settings.polling_interval <= 0:
        raise AgentValidationError(
            "Invalid polling_interval: must be a positive number", agent.id
        )
    if settings.retry_attempts is not None and settings.retry_attempts < 0:
        raise AgentValidationError(
            "Invalid retry_attempts: must be a non-negative number", agent.id
        )


class AgentRegistry:
    """Immutable map of agent id -> AgentConfig.

    Every agent is validated when the registry is constructed; lookups
    never trigger loading or validation.
    """

    def __init__(self, agents: Iterable[AgentConfig]):
        registered: dict[str, AgentConfig] = {}
        for agent in agents:
            validate_agent(agent)
            if agent.id in registered:
                raise AgentValidationError(f"Duplicate agent ID: {agent.id}", agent.id)
            registered[agent.id] = agent
        self._agents: Mapping[str, AgentConfig] = MappingProxyType(registered)

    def get(self, agent_id: str) -> Optional[AgentConfig]:
        """Get agent config by id."""
        return self._agents.get(agent_id)

    def get_or_raise(self, agent_id: str) -> AgentConfig:
        """Get agent config by id, raising AgentNotFoundError if missing."""
        agent = self._agents.get(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return agent

    def has(self, agent_id: str) -> bool:
        return agent_id in self._agents

    def list_all(self) -> list[AgentConfig]:
        return list(self._agents.values())

    def list_summaries(self) -> list[AgentSummary]:
        return [
            AgentSummary(
                id=a.id,
                name=a.name,
                description=a.description,
                icon=a.icon,
                category=a.category,
                status=a.status,
                input_type=a.input_schema.type,
                output_type=a.output_schema.type,
            )
            for a in self._agents.values()
        ]

    def list_by_category(self, category: AgentCategory) -> list[AgentConfig]:
        return [a for a in self._agents.values() if a.category == category]

    def list_by_status(self, status: AgentStatus) -> list[AgentConfig]:
        return [a for a in self._agents.values() if a.status == status]

    def list_active(self) -> list[AgentConfig]:
        return self.list_by_status(AgentStatus.ACTIVE)

    def count(self) -> int:
        return len(self._agents)


def load_agent_registry(definitions_dir: Optional[Path] = None) -> AgentRegistry:
    """Build a registry from the *.json agent definitions in a directory.

    A file that doesn't parse fails the whole load: a half-populated
    registry would silently turn configured agents into AGENT_NOT_FOUND.
    """
    if definitions_dir is None:
        definitions_dir = DEFAULT_DEFINITIONS_DIR

    agents: list[AgentConfig] = []
    if not definitions_dir.exists():
        logger.warning(f"Agent definitions directory not found: {definitions_dir}")
        return AgentRegistry(agents)

    for json_file in sorted(definitions_dir.glob("*.json")):
        try:
            with open(json_file, "r") as f:
                data = json.load(f)
            agents.append(AgentConfig.model_validate(data))
        except (OSError, ValueError) as e:
            raise AgentValidationError(
                f"Failed to load agent from {json_file.name}: {e}"
            ) from e
        logger.debug(f"Loaded agent definition: {json_file.name}")

    registry = AgentRegistry(agents)
    logger.info(f"Loaded {registry.count()} agents from {definitions_dir}")
    return registry

"""In-memory execution state, mirrored to durable storage.

Holds agent_id -> list of executions (newest first, capped at 50) plus a
"current" execution pointer. Every mutation persists the affected agent's
list through the StorageService; this store is the only writer of
execution data.

Mutations are synchronous and never await, so on a single event loop they
run to completion without interleaving. List order is the order in which
add()/update() calls complete.
"""

import logging
from typing import Any, Optional

from src.executor.cancellation import CancellationRegistry
from src.executor.schemas import Execution
from src.persistence.storage import MAX_EXECUTIONS_PER_AGENT, StorageService

logger = logging.getLogger(__name__)


class ExecutionStore:
    """Canonical per-agent execution history."""

    def __init__(
        self,
        storage: StorageService,
        cancellations: Optional[CancellationRegistry] = None,
    ):
        self.storage = storage
        self.cancellations = cancellations
        self._executions: dict[str, list[Execution]] = {}
        self._hydrated: set[str] = set()
        self._current: Optional[Execution] = None

    @property
    def current_execution(self) -> Optional[Execution]:
        return self._current

    @property
    def is_executing(self) -> bool:
        """True while the current execution is pending or processing."""
        return self._current is not None and self._current.is_active

    def set_current_execution(self, execution: Optional[Execution]) -> None:
        self._current = execution

    def add(self, execution: Execution) -> Execution:
        """Record a new execution as the newest entry for its agent.

        Stored history is hydrated first so it is prepended to, not
        overwritten. Evicts the oldest entries beyond the cap, persists the
        agent's list and marks the execution as current. If persisting
        fails nothing changes in memory.

        Raises:
            StorageError: the list could not be persisted
        """
        agent_executions = self.load_history(execution.agent_id)
        updated = [execution, *agent_executions][:MAX_EXECUTIONS_PER_AGENT]
        evicted = len(agent_executions) + 1 - len(updated)

        self.storage.save_executions(execution.agent_id, updated)

        self._executions[execution.agent_id] = updated
        self._current = execution
        if evicted:
            logger.debug(
                f"Evicted {evicted} oldest execution(s) for agent {execution.agent_id}"
            )
        return execution

    def update(self, execution_id: str, **fields: Any) -> Optional[Execution]:
        """Merge fields into an execution, wherever its agent is.

        Position in the list is preserved. Applying the same update twice
        gives the same record.

        Returns:
            The updated execution, or None if the id is unknown
        """
        for agent_id, agent_executions in self._executions.items():
            for index, existing in enumerate(agent_executions):
                if existing.id == execution_id:
                    break
            else:
                continue

            updated_execution = existing.with_updates(**fields)
            updated_list = list(agent_executions)
            updated_list[index] = updated_execution
            self._executions[agent_id] = updated_list

            if self._current is not None and self._current.id == execution_id:
                self._current = updated_execution

            if updated_execution.is_terminal and self.cancellations is not None:
                self.cancellations.release(execution_id)

            self.storage.save_executions(agent_id, updated_list)
            return updated_execution

        logger.warning(f"Execution not found: {execution_id}")
        return None

    def load_history(self, agent_id: str) -> list[Execution]:
        """Hydrate an agent's history from storage, once per store lifetime.

        Later calls are no-ops: changes written to storage by someone else
        after the first load are not picked up.
        """
        if agent_id in self._hydrated:
            return self.get_executions_by_agent(agent_id)

        stored = self.storage.load_executions(agent_id)
        in_memory = self._executions.get(agent_id, [])
        known = {e.id for e in in_memory}
        merged = [*in_memory, *(e for e in stored if e.id not in known)]
        self._executions[agent_id] = merged[:MAX_EXECUTIONS_PER_AGENT]
        self._hydrated.add(agent_id)
        logger.info(f"Loaded {len(stored)} stored execution(s) for agent {agent_id}")
        return self.get_executions_by_agent(agent_id)

    def clear_history(self, agent_id: str) -> int:
        """Drop an agent's history in memory and in storage.

        Pending poll loops and backoff waits of the dropped executions are
        cancelled.

        Returns:
            Number of executions dropped from memory
        """
        dropped = self._executions.pop(agent_id, [])
        self._hydrated.add(agent_id)

        if self._current is not None and self._current.agent_id == agent_id:
            self._current = None

        if self.cancellations is not None:
            for execution in dropped:
                self.cancellations.cancel(execution.id)

        self.storage.clear_executions(agent_id)
        logger.info(f"Cleared {len(dropped)} execution(s) for agent {agent_id}")
        return len(dropped)

    def get_executions_by_agent(self, agent_id: str) -> list[Execution]:
        return list(self._executions.get(agent_id, []))

    def get_execution(self, execution_id: str) -> Optional[Execution]:
        for agent_executions in self._executions.values():
            for execution in agent_executions:
                if execution.id == execution_id:
                    return execution
        return None

"""Storage service for execution history and user preferences.

Key space (all under one namespace):
    {namespace}:executions:{agent_id}  -> JSON array of executions, newest first
    {namespace}:preferences            -> JSON object

Writes degrade under quota pressure instead of failing outright:
    executions:  full list (<=50) -> 10 newest -> free up space, 5 newest -> QuotaExceededError
    preferences: write -> free up space, retry once -> QuotaExceededError
"Free up space" trims every agent's stored history to its 10 newest entries.

Reads never raise: a missing key is empty, malformed JSON is logged and
treated as absent.
"""

import json
import logging
from typing import Any, Optional, Union

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from src.executor.schemas import Execution
from src.persistence.db import (
    KeyValueStore,
    QuotaExceededError,
    StorageError,
)

logger = logging.getLogger(__name__)

MAX_EXECUTIONS_PER_AGENT = 50
REDUCED_EXECUTIONS = 10
MINIMAL_EXECUTIONS = 5

_executions_adapter = TypeAdapter(list[Execution])


class StorageService:
    """Namespaced persistence of execution history and preferences."""

    def __init__(self, store: KeyValueStore, namespace: str = "agent-hub"):
        self.store = store
        self.namespace = namespace
        self.namespace_prefix = f"{namespace}:"
        self.execution_prefix = f"{namespace}:executions:"
        self.preferences_key = f"{namespace}:preferences"

    def execution_key(self, agent_id: str) -> str:
        return f"{self.execution_prefix}{agent_id}"

    @staticmethod
    def _serialize_executions(executions: list[Execution]) -> str:
        return _executions_adapter.dump_json(executions, by_alias=True).decode("utf-8")

    # --- Executions ---

    def save_executions(self, agent_id: str, executions: list[Execution]) -> None:
        """Persist an agent's execution list (newest first, capped at 50).

        Raises:
            QuotaExceededError: if even the 5 newest entries don't fit
        """
        key = self.execution_key(agent_id)
        limited = executions[:MAX_EXECUTIONS_PER_AGENT]
        try:
            self.store.set_item(key, self._serialize_executions(limited))
        except QuotaExceededError:
            logger.error(
                f"Storage quota exceeded saving {len(limited)} executions for agent {agent_id}"
            )
            self._handle_quota_exceeded(agent_id, executions)

    def _handle_quota_exceeded(self, agent_id: str, executions: list[Execution]) -> None:
        key = self.execution_key(agent_id)
        logger.warning("Storage quota exceeded, attempting to reduce stored data")

        try:
            self.store.set_item(
                key, self._serialize_executions(executions[:REDUCED_EXECUTIONS])
            )
            logger.info(
                f"Reduced executions for agent {agent_id} to {REDUCED_EXECUTIONS} most recent"
            )
            return
        except QuotaExceededError:
            logger.error(
                f"Failed to save even after reducing executions for agent {agent_id}"
            )

        self.free_up_space()

        try:
            self.store.set_item(
                key, self._serialize_executions(executions[:MINIMAL_EXECUTIONS])
            )
        except QuotaExceededError as e:
            logger.error(f"Failed to save executions for agent {agent_id} after all attempts")
            raise QuotaExceededError() from e
        logger.info(
            f"Reduced executions for agent {agent_id} to {MINIMAL_EXECUTIONS} most recent"
        )

    def load_executions(self, agent_id: str) -> list[Execution]:
        """Load an agent's stored executions. Never raises."""
        key = self.execution_key(agent_id)
        try:
            raw = self.store.get_item(key)
        except StorageError as e:
            logger.error(f"Failed to read executions for agent {agent_id}: {e}")
            return []
        if not raw:
            return []
        try:
            return _executions_adapter.validate_json(raw)
        except PydanticValidationError as e:
            logger.error(
                f"Discarding malformed execution history for agent {agent_id}: "
                f"{e.error_count()} error(s), first: {e.errors()[0].get('msg')}"
            )
            return []

    def clear_executions(self, agent_id: str) -> None:
        self.store.remove_item(self.execution_key(agent_id))

    def clear_all_executions(self) -> None:
        for key in self.store.keys(self.execution_prefix):
            self.store.remove_item(key)

    def get_agent_ids_with_executions(self) -> list[str]:
        return [
            key[len(self.execution_prefix):]
            for key in self.store.keys(self.execution_prefix)
        ]

    def free_up_space(self) -> None:
        """Trim every agent's stored history to its 10 newest entries.

        Each agent is trimmed independently; one failing agent doesn't stop
        the others.
        """
        logger.info("Attempting to free up storage space")
        for agent_id in self.get_agent_ids_with_executions():
            executions = self.load_executions(agent_id)
            if len(executions) <= REDUCED_EXECUTIONS:
                continue
            try:
                self.store.set_item(
                    self.execution_key(agent_id),
                    self._serialize_executions(executions[:REDUCED_EXECUTIONS]),
                )
            except StorageError as e:
                logger.error(f"Failed to trim history for agent {agent_id}: {e}")
                continue
            logger.info(
                f"Trimmed stored history for agent {agent_id}: "
                f"{len(executions)} -> {REDUCED_EXECUTIONS}"
            )

    # --- Preferences ---

    def save_preferences(self, preferences: dict[str, Any]) -> None:
        """Persist user preferences.

        Raises:
            QuotaExceededError: if the write fails even after freeing space
        """
        serialized = json.dumps(preferences, ensure_ascii=False)
        try:
            self.store.set_item(self.preferences_key, serialized)
            return
        except QuotaExceededError:
            logger.error("Storage quota exceeded saving preferences")

        self.free_up_space()
        try:
            self.store.set_item(self.preferences_key, serialized)
        except QuotaExceededError as e:
            logger.error("Failed to save preferences after freeing space")
            raise QuotaExceededError() from e

    def load_preferences(self) -> dict[str, Any]:
        """Load user preferences. Never raises."""
        try:
            raw = self.store.get_item(self.preferences_key)
        except StorageError as e:
            logger.error(f"Failed to read preferences: {e}")
            return {}
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Discarding malformed preferences: {e}")
            return {}
        if not isinstance(data, dict):
            logger.error(f"Discarding preferences of type {type(data).__name__}")
            return {}
        return data

    def clear_preferences(self) -> None:
        self.store.remove_item(self.preferences_key)

    def update_preference(self, key: str, value: Any) -> None:
        preferences = self.load_preferences()
        preferences[key] = value
        self.save_preferences(preferences)

    def get_preference(self, key: str) -> Optional[Any]:
        return self.load_preferences().get(key)

    # --- Whole-namespace operations ---

    def get_storage_info(self) -> dict[str, float]:
        """Usage against the configured quota."""
        used = self.store.usage_bytes()
        limit = self.store.quota_bytes
        return {
            "used": used,
            "available": max(limit - used, 0),
            "percentage": min(used / limit * 100, 100.0) if limit else 0.0,
        }

    def clear_all(self) -> None:
        """Remove every key under this namespace."""
        keys = self.store.keys(self.namespace_prefix)
        for key in keys:
            self.store.remove_item(key)
        logger.info(f"Cleared {len(keys)} key(s) under namespace {self.namespace}")

    def export_data(self) -> str:
        """Serialize every namespaced key into one JSON document."""
        data: dict[str, Any] = {}
        for key in self.store.keys(self.namespace_prefix):
            value = self.store.get_item(key)
            if not value:
                continue
            try:
                data[key] = json.loads(value)
            except json.JSONDecodeError:
                data[key] = value
        return json.dumps(data, indent=2, ensure_ascii=False)

    def import_data(self, document: Union[str, dict[str, Any]]) -> int:
        """Write back every namespaced key found in an exported document.

        Values may be pre-serialized strings or structured JSON values.
        Keys outside the namespace are ignored.

        Returns:
            Number of keys written

        Raises:
            StorageError: (code IMPORT_ERROR) if the document isn't a JSON object
        """
        if isinstance(document, str):
            try:
                document = json.loads(document)
            except json.JSONDecodeError as e:
                logger.error(f"Failed to import data: {e}")
                raise StorageError("Failed to import data", "IMPORT_ERROR") from e
        if not isinstance(document, dict):
            raise StorageError("Failed to import data", "IMPORT_ERROR")

        written = 0
        for key, value in document.items():
            if not key.startswith(self.namespace_prefix):
                continue
            serialized = value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)
            self.store.set_item(key, serialized)
            written += 1
        logger.info(f"Imported {written} key(s) into namespace {self.namespace}")
        return written

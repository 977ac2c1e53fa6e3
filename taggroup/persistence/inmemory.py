"""In-memory implementation of the execution repository."""

from __future__ import annotations

from typing import Dict

from ..execution import TagGroupExecution
from .repository import ExecutionRepository
from .serialization import deserialize, serialize


class InMemoryExecutionRepository(ExecutionRepository):
    """Store execution state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Records are kept as serialized JSON
    so that a save/load cycle behaves like the durable backends.
    """

    def __init__(self) -> None:
        self._records: Dict[str, str] = {}

    async def save(self, execution: TagGroupExecution) -> None:
        self._records[execution.id] = serialize(execution)

    async def load(self, execution_id: str) -> TagGroupExecution | None:
        return deserialize(execution_id, self._records.get(execution_id))

    async def clear(self, execution_id: str) -> None:
        self._records.pop(execution_id, None)

    async def list_active(self) -> list[str]:
        return list(self._records)

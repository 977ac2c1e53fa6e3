"""Repository abstraction for tag-group execution state."""

from __future__ import annotations

from typing import Protocol

from ..execution import TagGroupExecution


class ExecutionRepository(Protocol):
    """Protocol for execution state persistence backends."""

    async def save(self, execution: TagGroupExecution) -> None:
        """Store the full aggregate under ``execution.id``, replacing any prior state."""

    async def load(self, execution_id: str) -> TagGroupExecution | None:
        """Return the stored execution, or ``None`` if absent or unreadable."""

    async def clear(self, execution_id: str) -> None:
        """Remove stored state for ``execution_id``."""

    async def list_active(self) -> list[str]:
        """Return ids of all stored executions."""

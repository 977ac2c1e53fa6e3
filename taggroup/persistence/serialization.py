"""JSON encoding of stored executions."""

from __future__ import annotations

import logging
from typing import Optional

from ..execution import TagGroupExecution

logger = logging.getLogger(__name__)


def serialize(execution: TagGroupExecution) -> str:
    return execution.model_dump_json()


def deserialize(execution_id: str, data: Optional[str | bytes]) -> TagGroupExecution | None:
    """Decode a stored record, treating unreadable state as missing."""
    if data is None:
        return None
    try:
        return TagGroupExecution.model_validate_json(data)
    except ValueError as exc:
        logger.warning(f"Discarding unreadable state for execution {execution_id}: {exc}")
        return None

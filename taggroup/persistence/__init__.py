"""Persistence layer for tag-group executions."""

from __future__ import annotations

from typing import Optional

from ..config import TaggroupConfig, load_config
from .inmemory import InMemoryExecutionRepository
from .repository import ExecutionRepository
from .sqlite import SQLiteExecutionRepository

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresExecutionRepository
except ImportError:  # pragma: no cover - optional dependency
    PostgresExecutionRepository = None  # type: ignore

_repository_instance: ExecutionRepository | None = None


def get_repository(
    database_url: Optional[str] = None, config: Optional[TaggroupConfig] = None
) -> ExecutionRepository:
    """Return the execution repository for the configured database.

    ``database_url`` wins over configuration, which already carries the
    ``TAGGROUP_DATABASE_URL`` / ``DATABASE_URL`` overrides applied by
    :func:`load_config`. Without a database the state lives in memory for
    the current process only. The last repository built is reused when
    neither argument is given.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    database_url = database_url or (config or load_config()).database_url

    if not database_url:
        _repository_instance = InMemoryExecutionRepository()
        return _repository_instance

    scheme, _, location = database_url.partition("://")
    if scheme == "sqlite":
        _repository_instance = SQLiteExecutionRepository(location)
    elif scheme in ("postgres", "postgresql"):
        if PostgresExecutionRepository is None:
            raise RuntimeError(
                "Postgres state requires asyncpg; install taggroup[postgres]"
            )
        _repository_instance = PostgresExecutionRepository(database_url)
    else:
        raise ValueError(f"Unsupported execution state database scheme: {scheme!r}")

    return _repository_instance


__all__ = [
    "ExecutionRepository",
    "InMemoryExecutionRepository",
    "PostgresExecutionRepository",
    "SQLiteExecutionRepository",
    "get_repository",
]

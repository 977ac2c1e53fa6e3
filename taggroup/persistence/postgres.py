"""PostgreSQL implementation of the execution repository."""

from __future__ import annotations

import asyncpg

from ..execution import TagGroupExecution
from .repository import ExecutionRepository
from .serialization import deserialize, serialize


class PostgresExecutionRepository(ExecutionRepository):
    """Persist execution state using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS tag_group_executions (
                seq SERIAL PRIMARY KEY,
                execution_id TEXT NOT NULL UNIQUE,
                group_name TEXT NOT NULL,
                status TEXT NOT NULL,
                state JSONB NOT NULL
            )
            """
        )

    # ------------------------------------------------------------------
    async def save(self, execution: TagGroupExecution) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO tag_group_executions (execution_id, group_name, status, state)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (execution_id) DO UPDATE SET
                    group_name = EXCLUDED.group_name,
                    status = EXCLUDED.status,
                    state = EXCLUDED.state
                """,
                execution.id,
                execution.group_name,
                execution.status,
                serialize(execution),
            )
        finally:
            await conn.close()

    async def load(self, execution_id: str) -> TagGroupExecution | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT state FROM tag_group_executions WHERE execution_id = $1",
                execution_id,
            )
        finally:
            await conn.close()
        if not row:
            return None
        return deserialize(execution_id, row["state"])

    async def clear(self, execution_id: str) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                "DELETE FROM tag_group_executions WHERE execution_id = $1",
                execution_id,
            )
        finally:
            await conn.close()

    async def list_active(self) -> list[str]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                "SELECT execution_id FROM tag_group_executions ORDER BY seq"
            )
        finally:
            await conn.close()
        return [r["execution_id"] for r in rows]

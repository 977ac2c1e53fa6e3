"""SQLite implementation of the execution repository."""

from __future__ import annotations

import asyncio
import sqlite3
from pathlib import Path
from typing import Any

from ..execution import TagGroupExecution
from .repository import ExecutionRepository
from .serialization import deserialize, serialize


class SQLiteExecutionRepository(ExecutionRepository):
    """Persist execution state using SQLite, one row per execution."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS tag_group_executions (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                execution_id TEXT NOT NULL UNIQUE,
                group_name TEXT NOT NULL,
                status TEXT NOT NULL,
                state TEXT NOT NULL
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    # ------------------------------------------------------------------
    # Repository API
    async def save(self, execution: TagGroupExecution) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO tag_group_executions (execution_id, group_name, status, state)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(execution_id) DO UPDATE SET
                group_name = excluded.group_name,
                status = excluded.status,
                state = excluded.state
            """,
            execution.id,
            execution.group_name,
            execution.status,
            serialize(execution),
        )

    async def load(self, execution_id: str) -> TagGroupExecution | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT state FROM tag_group_executions WHERE execution_id = ?",
            execution_id,
        )
        if row is None:
            return None
        return deserialize(execution_id, row["state"])

    async def clear(self, execution_id: str) -> None:
        await asyncio.to_thread(
            self._execute,
            "DELETE FROM tag_group_executions WHERE execution_id = ?",
            execution_id,
        )

    async def list_active(self) -> list[str]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT execution_id FROM tag_group_executions ORDER BY seq",
        )
        return [r["execution_id"] for r in rows]

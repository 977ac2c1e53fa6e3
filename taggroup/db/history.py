from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlmodel import SQLModel, select

from ..contracts import ExecutionResult
from ..execution import Step
from .models import PromptRun


class ExecutionHistoryDB:
    """Append-only log of every prompt run made while driving executions."""

    def __init__(self, database_url: str) -> None:
        connect_args = (
            {"check_same_thread": False} if database_url.startswith("sqlite") else {}
        )
        self.engine = create_async_engine(
            database_url, echo=False, future=True, connect_args=connect_args
        )
        self._initialized = False

    async def init_db(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        self._initialized = True

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with AsyncSession(self.engine, expire_on_commit=False) as session:
            yield session

    async def record_step_start(
        self, execution_id: str, step: Step, resolved_prompt: str = ""
    ) -> PromptRun:
        if not self._initialized:
            await self.init_db()
        run = PromptRun(
            execution_id=execution_id,
            step_id=step.id,
            template_id=step.template_id,
            template_name=step.template_name,
            inputs=dict(step.inputs),
            resolved_prompt=resolved_prompt,
        )
        async with self.session() as session:
            session.add(run)
            await session.commit()
            await session.refresh(run)
        return run

    async def record_step_result(self, run_id: UUID, result: ExecutionResult) -> None:
        async with self.session() as session:
            run = await session.get(PromptRun, run_id)
            if run is None:
                return
            run.status = "completed"
            run.output_raw = result.output_raw
            run.execution_time_ms = result.execution_time_ms
            if result.resolved_prompt:
                run.resolved_prompt = result.resolved_prompt
            run.finished_at = datetime.now(timezone.utc)
            await session.commit()

    async def record_step_error(self, run_id: UUID, error: str) -> None:
        async with self.session() as session:
            run = await session.get(PromptRun, run_id)
            if run is None:
                return
            run.status = "failed"
            run.error_message = error
            run.finished_at = datetime.now(timezone.utc)
            await session.commit()

    async def list_runs(self, execution_id: str) -> list[PromptRun]:
        async with self.session() as session:
            result = await session.execute(
                select(PromptRun)
                .where(PromptRun.execution_id == execution_id)
                .order_by(PromptRun.started_at)
            )
            return list(result.scalars().all())

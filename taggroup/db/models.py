from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, Text
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PromptRun(SQLModel, table=True):
    """One attempt at running a step's prompt."""

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    execution_id: str = Field(index=True)
    step_id: str
    template_id: str
    template_name: str
    status: str = Field(default="running")
    inputs: dict = Field(default_factory=dict, sa_column=Column(JSON))
    resolved_prompt: str = Field(default="", sa_column=Column(Text))
    output_raw: Optional[str] = Field(default=None, sa_column=Column(Text))
    error_message: Optional[str] = None
    execution_time_ms: Optional[int] = None
    started_at: datetime = Field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None

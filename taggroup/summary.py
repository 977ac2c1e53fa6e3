"""Summaries and export documents for finished (or partial) executions."""

from __future__ import annotations

import json
import time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .execution import TagGroupExecution, calculate_progress


class ExecutionStatistics(BaseModel):
    total: int
    completed: int
    skipped: int
    failed: int
    success_rate: float
    total_execution_time_ms: int


class StepSummary(BaseModel):
    step_name: str
    status: str
    execution_time_ms: Optional[int] = None
    has_output: bool = False


class ExecutionSummary(BaseModel):
    summary: str
    statistics: ExecutionStatistics
    results: List[StepSummary] = Field(default_factory=list)


def generate_execution_summary(execution: TagGroupExecution) -> ExecutionSummary:
    progress = calculate_progress(execution)
    total_time = sum(
        step.result.execution_time_ms for step in execution.steps if step.result
    )
    success_rate = (
        round(progress.completed_steps / progress.total_steps * 100, 1)
        if progress.total_steps
        else 0.0
    )

    results = [
        StepSummary(
            step_name=step.template_name,
            status=step.status,
            execution_time_ms=step.result.execution_time_ms if step.result else None,
            has_output=bool(step.result and step.result.output_raw),
        )
        for step in execution.steps
    ]

    summary = (
        f"Tag Group '{execution.group_name}' execution {execution.status}. "
        f"{progress.completed_steps}/{progress.total_steps} steps successful "
        f"({success_rate:.1f}% success rate). "
        f"Total execution time: {total_time / 1000:.2f}s."
    )
    return ExecutionSummary(
        summary=summary,
        statistics=ExecutionStatistics(
            total=progress.total_steps,
            completed=progress.completed_steps,
            skipped=progress.skipped_steps,
            failed=progress.failed_steps,
            success_rate=success_rate,
            total_execution_time_ms=total_time,
        ),
        results=results,
    )


def build_export(execution: TagGroupExecution) -> Dict[str, Any]:
    """Document describing an execution, suitable for a downloadable file."""
    summary = generate_execution_summary(execution)
    return {
        "group_name": execution.group_name,
        "project_id": execution.project_id,
        "summary": summary.summary,
        "statistics": summary.statistics.model_dump(),
        "steps": [
            {
                "template_name": step.template_name,
                "status": step.status,
                "inputs": step.inputs,
                "output": step.result.output_raw if step.result else None,
                "notes": step.notes,
                "execution_time_ms": (
                    step.result.execution_time_ms if step.result else None
                ),
            }
            for step in execution.steps
        ],
    }


def export_json(execution: TagGroupExecution) -> str:
    return json.dumps(build_export(execution), indent=2, default=str)


def export_filename(execution: TagGroupExecution) -> str:
    return f"{execution.group_name}-execution-{int(time.time() * 1000)}.json"

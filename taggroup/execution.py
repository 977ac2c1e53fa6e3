"""Step-by-step state machine for running a tag group of prompt templates."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from .carryover import VariableExtractor, extract_carry_over_variables
from .contracts import (
    EmptyGroupError,
    ExecutionResult,
    PromptTemplate,
    StepInProgressError,
)
from .tags import group_templates, template_order

logger = logging.getLogger(__name__)

StepStatus = Literal["pending", "running", "completed", "skipped", "failed"]
ExecutionStatus = Literal["pending", "running", "paused", "completed"]

DONE_STATUSES = ("completed", "skipped")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _is_unset(value: Any) -> bool:
    return value is None or value == ""


class Step(BaseModel):
    """One template run inside a tag-group execution."""

    id: str = Field(default_factory=lambda: f"step-{uuid.uuid4().hex[:12]}")
    template_id: str
    template_name: str
    order: int = 0
    variable_names: List[str] = Field(default_factory=list)
    status: StepStatus = "pending"
    inputs: Dict[str, Any] = Field(default_factory=dict)
    notes: str = ""
    result: Optional[ExecutionResult] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_done(self) -> bool:
        return self.status in DONE_STATUSES


class Progress(BaseModel):
    """Counts describing how far an execution has come."""

    execution_id: str
    total_steps: int
    current_step: int
    completed_steps: int = 0
    skipped_steps: int = 0
    failed_steps: int = 0


class TagGroupExecution(BaseModel):
    """Aggregate root: the ordered steps of one group run and its cursor.

    Mutating methods act on the step under the cursor and change the
    aggregate in place. Navigation methods return ``False`` instead of
    raising when a move is out of bounds.
    """

    id: str = Field(default_factory=lambda: f"tg-exec-{uuid.uuid4().hex}")
    group_name: str
    project_id: Optional[str] = None
    steps: List[Step] = Field(default_factory=list)
    current_step_index: int = 0
    status: ExecutionStatus = "pending"
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _cursor_within_steps(self) -> "TagGroupExecution":
        if self.steps and not 0 <= self.current_step_index < len(self.steps):
            raise ValueError(
                f"current_step_index {self.current_step_index} is outside "
                f"0..{len(self.steps) - 1}"
            )
        return self

    # ------------------------------------------------------------------
    # Cursor
    @property
    def current_step(self) -> Optional[Step]:
        if not self.steps:
            return None
        return self.steps[self.current_step_index]

    def can_advance(self) -> bool:
        return self.current_step_index < len(self.steps) - 1

    def can_retreat(self) -> bool:
        return self.current_step_index > 0

    def advance(self) -> bool:
        """Move the cursor forward one step, whatever the current step's state."""
        if not self.can_advance():
            return False
        self.current_step_index += 1
        logger.debug(f"Execution {self.id} advanced to step {self.current_step_index}")
        return True

    def retreat(self) -> bool:
        if not self.can_retreat():
            return False
        self.current_step_index -= 1
        logger.debug(f"Execution {self.id} retreated to step {self.current_step_index}")
        return True

    def jump_to_step(self, index: int) -> bool:
        """Place the cursor on ``index``.

        Whether a caller may jump ahead of unfinished steps is its own
        policy; the engine only checks bounds.
        """
        if index < 0 or index >= len(self.steps):
            return False
        self.current_step_index = index
        return True

    # ------------------------------------------------------------------
    # Step mutation
    def update_inputs(self, inputs: Dict[str, Any]) -> None:
        """Replace the current step's inputs with ``inputs``."""
        step = self.current_step
        if step is not None:
            step.inputs = dict(inputs)

    def update_notes(self, notes: str) -> None:
        step = self.current_step
        if step is not None:
            step.notes = notes

    def start_step(self) -> Step:
        """Flag the current step as running.

        Raises:
            StepInProgressError: If any step is already running.
        """
        running = next((s for s in self.steps if s.status == "running"), None)
        if running is not None:
            raise StepInProgressError(
                f"Step '{running.template_name}' is already running"
            )
        step = self.current_step
        if step is None:
            raise StepInProgressError("Execution has no steps to run")

        step.status = "running"
        step.started_at = _now()
        if self.status in ("pending", "paused"):
            self.start()
        self._refresh_status()
        return step

    def mark_completed(self, result: ExecutionResult) -> None:
        step = self.current_step
        if step is None:
            return
        step.status = "completed"
        step.result = result
        step.completed_at = _now()
        logger.info(f"Step '{step.template_name}' completed in execution {self.id}")
        self._refresh_status()

    def mark_skipped(self) -> None:
        """Skip the current step. Also serves to force past a failed step."""
        step = self.current_step
        if step is None:
            return
        step.status = "skipped"
        step.completed_at = _now()
        logger.info(f"Step '{step.template_name}' skipped in execution {self.id}")
        self._refresh_status()

    def mark_failed(self, error_message: str) -> None:
        step = self.current_step
        if step is None:
            return
        step.status = "failed"
        annotation = f"Error: {error_message}"
        step.notes = f"{step.notes}\n\n{annotation}" if step.notes else annotation
        step.completed_at = _now()
        logger.error(
            f"Step '{step.template_name}' failed in execution {self.id}: {error_message}"
        )
        self._refresh_status()

    def retry_step(self) -> bool:
        """Return a failed, skipped or stuck running current step to ``pending``."""
        step = self.current_step
        if step is None or step.status not in ("failed", "skipped", "running"):
            return False
        step.status = "pending"
        step.result = None
        step.started_at = None
        step.completed_at = None
        self._refresh_status()
        return True

    def release_interrupted_steps(self) -> List[Step]:
        """Return steps left ``running`` by an interrupted run to ``pending``."""
        released = [step for step in self.steps if step.status == "running"]
        for step in released:
            step.status = "pending"
            step.started_at = None
            logger.warning(
                f"Step '{step.template_name}' of execution {self.id} was interrupted; "
                "returned to pending"
            )
        return released

    def _refresh_status(self) -> None:
        if self.steps and all(step.is_done for step in self.steps):
            if self.status != "completed":
                self.status = "completed"
                self.completed_at = _now()
                logger.info(f"Execution {self.id} of group '{self.group_name}' completed")
        elif self.status == "completed":
            self.status = "running"
            self.completed_at = None

    # ------------------------------------------------------------------
    # Run control
    def start(self) -> None:
        self.status = "running"
        self.started_at = self.started_at or _now()

    def pause(self) -> None:
        if self.status != "completed":
            self.status = "paused"

    def resume(self) -> None:
        if self.status == "paused":
            self.status = "running"

    def reset(self) -> None:
        """Discard all step progress and return to the first step."""
        for step in self.steps:
            step.status = "pending"
            step.inputs = {}
            step.notes = ""
            step.result = None
            step.started_at = None
            step.completed_at = None
        self.current_step_index = 0
        self.status = "pending"
        self.started_at = None
        self.completed_at = None

    # ------------------------------------------------------------------
    # Carry-over
    def available_variables(
        self, extractor: VariableExtractor = extract_carry_over_variables
    ) -> Dict[str, str]:
        """Variables extracted from completed steps; later steps win."""
        variables: Dict[str, str] = {}
        for step in self.steps:
            if step.status == "completed" and step.result and step.result.output_raw:
                variables.update(extractor(step.result.output_raw))
        return variables

    def apply_carry_over(
        self, extractor: VariableExtractor = extract_carry_over_variables
    ) -> Dict[str, str]:
        """Fill the current step's unset declared inputs from earlier output.

        Returns the values that were applied. Inputs that already hold a
        value are never overwritten.
        """
        step = self.current_step
        if step is None:
            return {}
        available = self.available_variables(extractor)
        applied = {
            name: available[name]
            for name in step.variable_names
            if name in available and _is_unset(step.inputs.get(name))
        }
        if applied:
            step.inputs = {**step.inputs, **applied}
            logger.debug(
                f"Carried over {sorted(applied)} into step '{step.template_name}'"
            )
        return applied

    def progress(self) -> Progress:
        return calculate_progress(self)


def create_execution(
    group_name: str,
    templates: List[PromptTemplate],
    project_id: Optional[str] = None,
) -> TagGroupExecution:
    """Build a fresh execution for the templates belonging to ``group_name``.

    Raises:
        EmptyGroupError: If no template belongs to the group.
    """
    members = group_templates(templates, group_name)
    if not members:
        raise EmptyGroupError(group_name)

    steps = [
        Step(
            template_id=template.id,
            template_name=template.name,
            order=template_order(template, group_name),
            variable_names=template.variable_names(),
        )
        for template in members
    ]
    execution = TagGroupExecution(
        group_name=group_name, project_id=project_id, steps=steps
    )
    logger.info(
        f"Created execution {execution.id} for group '{group_name}' with {len(steps)} steps"
    )
    return execution


def calculate_progress(execution: TagGroupExecution) -> Progress:
    counts = {"completed": 0, "skipped": 0, "failed": 0}
    for step in execution.steps:
        if step.status in counts:
            counts[step.status] += 1
    return Progress(
        execution_id=execution.id,
        total_steps=len(execution.steps),
        current_step=execution.current_step_index + 1,
        completed_steps=counts["completed"],
        skipped_steps=counts["skipped"],
        failed_steps=counts["failed"],
    )

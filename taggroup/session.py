"""Caller-side driver that owns one live tag-group execution."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from .carryover import VariableExtractor, extract_carry_over_variables
from .config import TaggroupConfig
from .contracts import ExecutionResult, PromptTemplate
from .db import ExecutionHistoryDB
from .execution import Progress, Step, TagGroupExecution, create_execution
from .executors import StepExecutor
from .persistence import ExecutionRepository, InMemoryExecutionRepository
from .resolver import resolve
from .summary import build_export

logger = logging.getLogger(__name__)


class TagGroupSession:
    """Drive a :class:`TagGroupExecution` on behalf of a single caller.

    The session is the only writer of its execution. It applies carry-over
    variables when the cursor lands on a fresh step, persists state after
    every change when ``auto_save`` is on, and turns executor failures into
    failed steps.
    """

    def __init__(
        self,
        execution: TagGroupExecution,
        templates: Iterable[PromptTemplate],
        repository: Optional[ExecutionRepository] = None,
        *,
        auto_save: bool = True,
        enable_carry_over: bool = True,
        auto_advance: bool = False,
        extractor: VariableExtractor = extract_carry_over_variables,
        history: Optional[ExecutionHistoryDB] = None,
    ) -> None:
        self.execution = execution
        self._templates = {template.id: template for template in templates}
        self._repository = repository or InMemoryExecutionRepository()
        self.auto_save = auto_save
        self.enable_carry_over = enable_carry_over
        self.auto_advance = auto_advance
        self._extractor = extractor
        self._history = history

    # ------------------------------------------------------------------
    # Construction
    @classmethod
    async def create(
        cls,
        group_name: str,
        templates: List[PromptTemplate],
        project_id: Optional[str] = None,
        repository: Optional[ExecutionRepository] = None,
        **options: Any,
    ) -> "TagGroupSession":
        """Start a new run of ``group_name``.

        Raises:
            EmptyGroupError: If no template belongs to the group.
        """
        execution = create_execution(group_name, templates, project_id)
        session = cls(execution, templates, repository, **options)
        await session._autosave()
        return session

    @classmethod
    async def resume(
        cls,
        execution_id: str,
        templates: List[PromptTemplate],
        repository: ExecutionRepository,
        **options: Any,
    ) -> Optional["TagGroupSession"]:
        """Reopen a stored execution, or return ``None`` if none is stored.

        Steps still marked ``running`` in the stored state were cut off by
        the previous run and come back as ``pending``.
        """
        execution = await repository.load(execution_id)
        if execution is None:
            logger.info(f"No stored state for execution {execution_id}")
            return None
        session = cls(execution, templates, repository, **options)
        if execution.release_interrupted_steps():
            await session._autosave()
        return session

    # ------------------------------------------------------------------
    # Views
    @property
    def current_step(self) -> Optional[Step]:
        return self.execution.current_step

    @property
    def current_template(self) -> Optional[PromptTemplate]:
        step = self.current_step
        return self._templates.get(step.template_id) if step else None

    @property
    def progress(self) -> Progress:
        return self.execution.progress()

    @property
    def can_advance(self) -> bool:
        return self.execution.can_advance()

    @property
    def can_retreat(self) -> bool:
        return self.execution.can_retreat()

    def preview_prompt(self) -> str:
        """Current step's prompt with the inputs filled in so far."""
        template = self.current_template
        step = self.current_step
        if template is None or step is None:
            return ""
        return resolve(template.template_text, step.inputs)

    def available_variables(self) -> Dict[str, str]:
        if not self.enable_carry_over:
            return {}
        return self.execution.available_variables(self._extractor)

    def export(self) -> Dict[str, Any]:
        return build_export(self.execution)

    # ------------------------------------------------------------------
    # Navigation
    async def advance(self) -> bool:
        return await self._moved(self.execution.advance())

    async def retreat(self) -> bool:
        return await self._moved(self.execution.retreat())

    async def jump_to_step(self, index: int) -> bool:
        return await self._moved(self.execution.jump_to_step(index))

    async def _moved(self, moved: bool) -> bool:
        if not moved:
            return False
        step = self.current_step
        if self.enable_carry_over and step is not None and step.status == "pending":
            self.execution.apply_carry_over(self._extractor)
        await self._autosave()
        return True

    # ------------------------------------------------------------------
    # Step actions
    async def update_inputs(self, inputs: Dict[str, Any]) -> None:
        self.execution.update_inputs(inputs)
        await self._autosave()

    async def update_notes(self, notes: str) -> None:
        self.execution.update_notes(notes)
        await self._autosave()

    async def apply_carry_over(self) -> Dict[str, str]:
        if not self.enable_carry_over:
            return {}
        applied = self.execution.apply_carry_over(self._extractor)
        if applied:
            await self._autosave()
        return applied

    async def skip_current_step(self) -> None:
        self.execution.mark_skipped()
        await self._autosave()

    async def retry_current_step(self) -> bool:
        retried = self.execution.retry_step()
        if retried:
            await self._autosave()
        return retried

    async def run_current_step(
        self, executor: StepExecutor, auto_advance: Optional[bool] = None
    ) -> ExecutionResult:
        """Execute the current step through ``executor`` and record the outcome.

        ``auto_advance`` falls back to the session setting when not given.
        If the run is interrupted, or recording history fails, before the
        outcome is known, the step is marked failed and saved before the
        error propagates.

        Raises:
            StepInProgressError: If a step is already running.
        """
        step = self.execution.start_step()
        await self._autosave()

        try:
            result = await self._execute_step(step, executor)
        except BaseException as exc:
            if step.status == "running":
                self.execution.mark_failed(str(exc) or exc.__class__.__name__)
            await self._autosave()
            raise

        if auto_advance is None:
            auto_advance = self.auto_advance
        moved = auto_advance and result.succeeded and await self.advance()
        if not moved:
            await self._autosave()
        return result

    async def _execute_step(self, step: Step, executor: StepExecutor) -> ExecutionResult:
        run_id = None
        if self._history is not None:
            template = self.current_template
            prompt = resolve(template.template_text, step.inputs) if template else ""
            run_id = (
                await self._history.record_step_start(self.execution.id, step, prompt)
            ).id

        try:
            result = await executor(step.template_id, dict(step.inputs))
        except Exception as exc:
            logger.error(f"Executor raised for step '{step.template_name}': {exc}")
            result = ExecutionResult(status="failed", error_message=str(exc))

        if result.succeeded:
            self.execution.mark_completed(result)
            if run_id is not None:
                await self._history.record_step_result(run_id, result)
        else:
            message = result.error_message or "Step execution failed"
            self.execution.mark_failed(message)
            if run_id is not None:
                await self._history.record_step_error(run_id, message)
        return result

    # ------------------------------------------------------------------
    # Run control
    async def start(self) -> None:
        self.execution.start()
        await self._autosave()

    async def pause(self) -> None:
        self.execution.pause()
        await self._autosave()

    async def resume_run(self) -> None:
        self.execution.resume()
        await self._autosave()

    async def reset(self) -> None:
        self.execution.reset()
        await self._autosave()

    async def save(self) -> None:
        await self._repository.save(self.execution)
        logger.debug(f"Saved execution {self.execution.id}")

    async def clear(self) -> None:
        await self._repository.clear(self.execution.id)
        logger.info(f"Cleared stored state for execution {self.execution.id}")

    async def _autosave(self) -> None:
        if self.auto_save:
            await self.save()


def session_options(config: TaggroupConfig) -> Dict[str, Any]:
    """Keyword arguments for :class:`TagGroupSession` taken from configuration."""
    options: Dict[str, Any] = {
        "auto_save": config.engine.auto_save,
        "enable_carry_over": config.engine.enable_carry_over,
        "auto_advance": config.engine.auto_advance,
    }
    if config.history_url:
        options["history"] = ExecutionHistoryDB(config.history_url)
    return options

"""Session driver tests."""

import asyncio

import pytest

from taggroup import (
    EmptyGroupError,
    ExecutionResult,
    StepInProgressError,
    TagGroupSession,
)
from taggroup.config import EngineConfig, TaggroupConfig
from taggroup.db import ExecutionHistoryDB
from taggroup.persistence import InMemoryExecutionRepository
from taggroup.session import session_options


class ScriptedExecutor:
    """Returns queued outputs; an Exception instance in the queue is raised."""

    def __init__(self, *outputs):
        self.outputs = list(outputs)
        self.calls = []

    async def __call__(self, template_id, inputs):
        self.calls.append((template_id, dict(inputs)))
        output = self.outputs.pop(0)
        if isinstance(output, Exception):
            raise output
        if isinstance(output, ExecutionResult):
            return output
        return ExecutionResult(output_raw=output, execution_time_ms=5)


@pytest.mark.asyncio
async def test_create_saves_initial_state(main_reference_templates):
    repo = InMemoryExecutionRepository()
    session = await TagGroupSession.create(
        "mainReference", main_reference_templates, repository=repo
    )
    stored = await repo.load(session.execution.id)
    assert stored == session.execution


@pytest.mark.asyncio
async def test_create_with_empty_group_raises(main_reference_templates):
    with pytest.raises(EmptyGroupError):
        await TagGroupSession.create("nothing", main_reference_templates)


@pytest.mark.asyncio
async def test_run_advance_and_carry_over(main_reference_templates):
    repo = InMemoryExecutionRepository()
    session = await TagGroupSession.create(
        "mainReference", main_reference_templates, repository=repo
    )
    executor = ScriptedExecutor("characterName: Sarah\ngenre: noir", "done")

    await session.update_inputs({"genre": "noir"})
    assert session.preview_prompt() == "Invent a protagonist for a noir film"

    result = await session.run_current_step(executor, auto_advance=True)

    assert result.succeeded
    assert executor.calls == [("t1", {"genre": "noir"})]
    assert session.execution.current_step_index == 1
    assert session.current_step.inputs == {"characterName": "Sarah", "genre": "noir"}
    assert session.preview_prompt() == "Describe Sarah in a noir scene"

    stored = await repo.load(session.execution.id)
    assert stored.current_step_index == 1
    assert stored.steps[0].status == "completed"
    assert stored.steps[1].inputs == {"characterName": "Sarah", "genre": "noir"}


@pytest.mark.asyncio
async def test_executor_exception_marks_step_failed(main_reference_templates):
    session = await TagGroupSession.create("mainReference", main_reference_templates)
    executor = ScriptedExecutor(RuntimeError("backend down"))

    result = await session.run_current_step(executor, auto_advance=True)

    assert result.status == "failed"
    assert session.execution.current_step_index == 0
    assert session.current_step.status == "failed"
    assert session.current_step.notes == "Error: backend down"


@pytest.mark.asyncio
async def test_failed_result_marks_step_failed(main_reference_templates):
    session = await TagGroupSession.create("mainReference", main_reference_templates)
    executor = ScriptedExecutor(ExecutionResult(status="failed", error_message="bad input"))

    await session.run_current_step(executor)

    assert session.current_step.status == "failed"
    assert "bad input" in session.current_step.notes


@pytest.mark.asyncio
async def test_retry_then_complete(main_reference_templates):
    session = await TagGroupSession.create("mainReference", main_reference_templates)
    executor = ScriptedExecutor(RuntimeError("flaky"), "ok")

    await session.run_current_step(executor)
    assert await session.retry_current_step() is True
    await session.run_current_step(executor)

    assert session.current_step.status == "completed"


@pytest.mark.asyncio
async def test_running_step_cannot_be_started_twice(main_reference_templates):
    session = await TagGroupSession.create("mainReference", main_reference_templates)
    session.execution.start_step()

    with pytest.raises(StepInProgressError):
        await session.run_current_step(ScriptedExecutor("never"))


@pytest.mark.asyncio
async def test_carry_over_never_overwrites_existing_inputs(main_reference_templates):
    session = await TagGroupSession.create("mainReference", main_reference_templates)
    await session.run_current_step(ScriptedExecutor("characterName: Sarah"))
    await session.jump_to_step(2)
    await session.update_inputs({"characterName": "Kyle"})
    await session.retreat()
    await session.advance()

    assert session.current_step.inputs == {"characterName": "Kyle"}


@pytest.mark.asyncio
async def test_carry_over_can_be_disabled(main_reference_templates):
    session = await TagGroupSession.create(
        "mainReference", main_reference_templates, enable_carry_over=False
    )
    await session.run_current_step(ScriptedExecutor("genre: noir"))
    await session.advance()

    assert session.current_step.inputs == {}
    assert session.available_variables() == {}


@pytest.mark.asyncio
async def test_navigation_out_of_bounds_is_a_no_op(main_reference_templates):
    session = await TagGroupSession.create("mainReference", main_reference_templates)
    assert await session.retreat() is False
    assert await session.jump_to_step(7) is False
    assert session.can_advance
    assert not session.can_retreat


@pytest.mark.asyncio
async def test_resume_restores_stored_state(main_reference_templates):
    repo = InMemoryExecutionRepository()
    session = await TagGroupSession.create(
        "mainReference", main_reference_templates, repository=repo
    )
    await session.run_current_step(ScriptedExecutor("genre: noir"), auto_advance=True)

    resumed = await TagGroupSession.resume(
        session.execution.id, main_reference_templates, repo
    )
    assert resumed is not None
    assert resumed.execution.current_step_index == 1
    assert resumed.progress.completed_steps == 1

    assert await TagGroupSession.resume("missing", main_reference_templates, repo) is None


@pytest.mark.asyncio
async def test_clear_and_reset(main_reference_templates):
    repo = InMemoryExecutionRepository()
    session = await TagGroupSession.create(
        "mainReference", main_reference_templates, repository=repo
    )
    await session.run_current_step(ScriptedExecutor("x: 1"))
    await session.reset()
    assert session.current_step.status == "pending"

    await session.clear()
    assert await repo.load(session.execution.id) is None


@pytest.mark.asyncio
async def test_auto_save_off_requires_explicit_save(main_reference_templates):
    repo = InMemoryExecutionRepository()
    session = await TagGroupSession.create(
        "mainReference", main_reference_templates, repository=repo, auto_save=False
    )
    assert await repo.load(session.execution.id) is None

    await session.save()
    assert await repo.load(session.execution.id) is not None


@pytest.mark.asyncio
async def test_full_run_exports_summary(main_reference_templates):
    session = await TagGroupSession.create("mainReference", main_reference_templates)
    executor = ScriptedExecutor("characterName: Sarah", "scene", "tagline")
    for _ in range(3):
        await session.run_current_step(executor, auto_advance=True)

    assert session.execution.status == "completed"
    exported = session.export()
    assert exported["statistics"]["success_rate"] == 100.0
    assert [s["output"] for s in exported["steps"]] == [
        "characterName: Sarah",
        "scene",
        "tagline",
    ]


@pytest.mark.asyncio
async def test_session_options_from_config(main_reference_templates, tmp_path):
    config = TaggroupConfig(
        engine=EngineConfig(auto_save=False, auto_advance=True),
        history_url=f"sqlite+aiosqlite:///{tmp_path / 'history.db'}",
    )
    options = session_options(config)
    assert isinstance(options["history"], ExecutionHistoryDB)

    repo = InMemoryExecutionRepository()
    session = await TagGroupSession.create(
        "mainReference", main_reference_templates, repository=repo, **options
    )
    await session.run_current_step(ScriptedExecutor("genre: noir"))

    assert session.execution.current_step_index == 1
    assert await repo.list_active() == []
    assert len(await options["history"].list_runs(session.execution.id)) == 1


@pytest.mark.asyncio
async def test_pause_and_resume_are_persisted(main_reference_templates):
    repo = InMemoryExecutionRepository()
    session = await TagGroupSession.create(
        "mainReference", main_reference_templates, repository=repo
    )
    await session.start()
    await session.pause()
    assert (await repo.load(session.execution.id)).status == "paused"

    await session.resume_run()
    assert (await repo.load(session.execution.id)).status == "running"


class InterruptingExecutor:
    async def __call__(self, template_id, inputs):
        raise asyncio.CancelledError()


class BrokenHistory:
    async def record_step_start(self, execution_id, step, resolved_prompt):
        raise RuntimeError("history database unavailable")


@pytest.mark.asyncio
async def test_interrupted_run_leaves_a_retryable_step(main_reference_templates):
    repo = InMemoryExecutionRepository()
    session = await TagGroupSession.create(
        "mainReference", main_reference_templates, repository=repo
    )

    with pytest.raises(asyncio.CancelledError):
        await session.run_current_step(InterruptingExecutor())

    stored = await repo.load(session.execution.id)
    assert stored.current_step.status == "failed"

    resumed = await TagGroupSession.resume(
        session.execution.id, main_reference_templates, repo
    )
    assert await resumed.retry_current_step() is True
    await resumed.run_current_step(ScriptedExecutor("genre: noir"))
    assert resumed.current_step.status == "completed"


@pytest.mark.asyncio
async def test_resume_releases_step_left_running(main_reference_templates):
    repo = InMemoryExecutionRepository()
    session = await TagGroupSession.create(
        "mainReference", main_reference_templates, repository=repo
    )
    session.execution.start_step()
    await session.save()

    resumed = await TagGroupSession.resume(
        session.execution.id, main_reference_templates, repo
    )

    assert resumed.current_step.status == "pending"
    assert (await repo.load(session.execution.id)).current_step.status == "pending"
    await resumed.run_current_step(ScriptedExecutor("genre: noir"))
    assert resumed.current_step.status == "completed"


@pytest.mark.asyncio
async def test_history_failure_still_records_step_outcome(main_reference_templates):
    repo = InMemoryExecutionRepository()
    session = await TagGroupSession.create(
        "mainReference", main_reference_templates, repository=repo, history=BrokenHistory()
    )
    executor = ScriptedExecutor("never called")

    with pytest.raises(RuntimeError, match="history database unavailable"):
        await session.run_current_step(executor)

    assert executor.calls == []
    stored = await repo.load(session.execution.id)
    assert stored.current_step.status == "failed"
    assert stored.current_step.notes == "Error: history database unavailable"

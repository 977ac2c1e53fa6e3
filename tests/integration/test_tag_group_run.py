"""End-to-end run of a tag group with durable state and a real executor stack."""

import pytest

from taggroup import TagGroupSession, TemplateStepExecutor
from taggroup.persistence import SQLiteExecutionRepository


class MovieBackend:
    """Stands in for the LLM: answers each prompt with structured lines."""

    def __init__(self):
        self.prompts = []

    async def __call__(self, prompt, model):
        self.prompts.append(prompt)
        if prompt.startswith("Invent"):
            return "characterName: Sarah\nbackstory: waitress turned fighter"
        if prompt.startswith("Describe"):
            return "sceneTitle: Diner at midnight"
        return "Tagline: The future is not set."


@pytest.mark.asyncio
async def test_run_interrupt_and_resume(tmp_path, main_reference_templates):
    db_path = tmp_path / "runs.db"
    backend = MovieBackend()
    executor = TemplateStepExecutor(main_reference_templates, backend)

    session = await TagGroupSession.create(
        "mainReference",
        main_reference_templates,
        project_id="terminator",
        repository=SQLiteExecutionRepository(db_path),
    )
    await session.update_inputs({"genre": "noir"})
    await session.run_current_step(executor, auto_advance=True)
    execution_id = session.execution.id

    # simulate a page reload: new repository handle, new session
    resumed = await TagGroupSession.resume(
        execution_id, main_reference_templates, SQLiteExecutionRepository(db_path)
    )
    assert resumed.execution.current_step_index == 1
    assert resumed.current_step.inputs == {"characterName": "Sarah"}

    # genre is not carried over, so the step is filled in by hand
    await resumed.update_inputs({**resumed.current_step.inputs, "genre": "noir"})
    await resumed.run_current_step(executor, auto_advance=True)
    assert resumed.current_step.inputs == {"characterName": "Sarah"}
    await resumed.run_current_step(executor, auto_advance=True)

    assert resumed.execution.status == "completed"
    assert backend.prompts == [
        "Invent a protagonist for a noir film",
        "Describe Sarah in a noir scene",
        "Write a poster tagline for Sarah",
    ]

    final = await SQLiteExecutionRepository(db_path).load(execution_id)
    assert final.status == "completed"
    assert final.project_id == "terminator"
    exported = resumed.export()
    assert exported["statistics"]["completed"] == 3
    assert exported["statistics"]["success_rate"] == 100.0


@pytest.mark.asyncio
async def test_failed_step_blocks_then_force_skip_completes(tmp_path, main_reference_templates):
    async def executor(template_id, inputs):
        raise TimeoutError("generation timed out")

    repo = SQLiteExecutionRepository(tmp_path / "runs.db")
    session = await TagGroupSession.create(
        "mainReference", main_reference_templates, repository=repo
    )
    await session.run_current_step(executor)
    await session.advance()
    await session.skip_current_step()
    await session.advance()
    await session.skip_current_step()
    assert session.execution.status != "completed"

    await session.jump_to_step(0)
    await session.skip_current_step()
    assert session.execution.status == "completed"

    stored = await repo.load(session.execution.id)
    assert [s.status for s in stored.steps] == ["skipped", "skipped", "skipped"]
    assert "Error: generation timed out" in stored.steps[0].notes

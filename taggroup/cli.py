"""Command line interface for inspecting and managing tag-group executions."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer

from taggroup import (
    EmptyGroupError,
    calculate_progress,
    create_execution,
    extract_tag_groups,
    get_repository,
    load_templates,
)
from taggroup.config import configure_logging, load_config
from taggroup.persistence import InMemoryExecutionRepository
from taggroup.summary import export_filename, export_json

app = typer.Typer(help="CLI for tag-group prompt executions")

groups_app = typer.Typer(help="Commands for inspecting tag groups")
execution_app = typer.Typer(help="Commands for managing executions")

app.add_typer(groups_app, name="groups")
app.add_typer(execution_app, name="execution")


@app.callback()
def main() -> None:
    """Taggroup CLI entry point."""
    configure_logging(load_config())


@groups_app.command("list")
def groups_list(templates_file: Path) -> None:
    """
    List the tag groups defined in a templates file.

    Example:
        taggroup groups list templates.yaml
        # Output: mainReference    3 templates
    """
    templates = load_templates(templates_file)
    groups = extract_tag_groups(templates)
    if not groups:
        typer.echo("No tag groups found")
        return
    for group in groups:
        typer.echo(f"{group.name}\t{group.count} templates")


@execution_app.command("start")
def execution_start(
    templates_file: Path,
    group: str,
    project_id: Optional[str] = typer.Option(None, help="Project the run belongs to"),
) -> None:
    """
    Create a new execution for GROUP and store it.

    Example:
        taggroup execution start templates.yaml mainReference
        # Output: tg-exec-3f2a...
    """
    templates = load_templates(templates_file)
    try:
        execution = create_execution(group, templates, project_id)
    except EmptyGroupError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)

    repo = get_repository()
    if isinstance(repo, InMemoryExecutionRepository):
        typer.secho(
            "Warning: no database configured; the execution is kept in memory "
            "and will not be visible to later commands. Set TAGGROUP_DATABASE_URL "
            "or database_url in the config file.",
            fg=typer.colors.YELLOW,
            err=True,
        )
    asyncio.run(repo.save(execution))
    typer.echo(execution.id)


@execution_app.command("list")
def execution_list() -> None:
    """List stored executions with their group and status."""
    repo = get_repository()

    async def _collect():
        found = []
        for execution_id in await repo.list_active():
            execution = await repo.load(execution_id)
            if execution is not None:
                found.append(execution)
        return found

    executions = asyncio.run(_collect())
    if not executions:
        typer.echo("No executions found")
        return
    for execution in executions:
        typer.echo(f"{execution.id}\t{execution.group_name}\t{execution.status}")


@execution_app.command("show")
def execution_show(execution_id: str) -> None:
    """
    Show progress and per-step status of an execution.

    Example:
        taggroup execution show tg-exec-3f2a...
        # Output: Execution tg-exec-3f2a... (mainReference): running
        #         Step 2/3, 1 completed, 0 skipped, 0 failed
        #         > 1. Character Brief: completed
        #           2. Scene Outline: pending
    """
    repo = get_repository()
    execution = asyncio.run(repo.load(execution_id))
    if execution is None:
        typer.echo("Execution not found")
        raise typer.Exit(code=1)

    progress = calculate_progress(execution)
    typer.echo(f"Execution {execution.id} ({execution.group_name}): {execution.status}")
    typer.echo(
        f"Step {progress.current_step}/{progress.total_steps}, "
        f"{progress.completed_steps} completed, {progress.skipped_steps} skipped, "
        f"{progress.failed_steps} failed"
    )
    for index, step in enumerate(execution.steps):
        marker = ">" if index == execution.current_step_index else " "
        typer.echo(f"{marker} {index + 1}. {step.template_name}: {step.status}")


@execution_app.command("export")
def execution_export(
    execution_id: str,
    output: Optional[Path] = typer.Option(None, help="Directory or file to write"),
) -> None:
    """Print an execution's export document, or write it to OUTPUT."""
    repo = get_repository()
    execution = asyncio.run(repo.load(execution_id))
    if execution is None:
        typer.echo("Execution not found")
        raise typer.Exit(code=1)

    document = export_json(execution)
    if output is None:
        typer.echo(document)
        return
    target = output / export_filename(execution) if output.is_dir() else output
    target.write_text(document)
    typer.echo(f"Exported to {target}")


@execution_app.command("clear")
def execution_clear(execution_id: str) -> None:
    """Remove an execution's stored state."""
    repo = get_repository()
    if asyncio.run(repo.load(execution_id)) is None:
        typer.echo("Execution not found")
        raise typer.Exit(code=1)
    asyncio.run(repo.clear(execution_id))
    typer.echo(f"Cleared {execution_id}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()

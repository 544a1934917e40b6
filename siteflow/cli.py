"""Command line interface for siteflow workflows."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional

import typer
import yaml

from siteflow import ExecutionStatus, create_runtime, get_queue, get_repository
from siteflow.cli_utils.definitions import iter_definition_files, load_definitions
from siteflow.contracts import (
    ExecutionResult,
    TriggerType,
    Workflow,
    WorkflowNotFoundError,
)
from siteflow.persistence import WorkflowRepository

app = typer.Typer(help="CLI for siteflow workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for managing workflow definitions")
execution_app = typer.Typer(help="Commands for inspecting execution history")
worker_app = typer.Typer(help="Commands for running the delayed-step worker")
queue_app = typer.Typer(help="Commands for inspecting the delayed-job queue")

app.add_typer(workflow_app, name="workflow")
app.add_typer(execution_app, name="execution")
app.add_typer(worker_app, name="worker")
app.add_typer(queue_app, name="queue")


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", help="Root logging level"),
) -> None:
    """siteflow CLI entry point."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _collect(path: Path) -> List[Workflow]:
    if not path.exists():
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    workflows: List[Workflow] = []
    for file in iter_definition_files(path):
        try:
            workflows.extend(load_definitions(file))
        except (ValueError, yaml.YAMLError) as exc:
            typer.secho(f"Skipping {file}: {exc}", fg=typer.colors.RED)
    return workflows


async def _save_all(repo: WorkflowRepository, workflows: List[Workflow]) -> None:
    for wf in workflows:
        await repo.save_workflow(wf)


@workflow_app.command("load")
def workflow_load(path: Path) -> None:
    """
    Load workflow definitions from a YAML/JSON file or directory.

    Example:
        siteflow workflow load ./workflows/welcome.yaml
        # Output: Loaded wf-welcome (form_submit, 2 steps)
    """
    workflows = _collect(path)
    if not workflows:
        typer.echo("No workflows found")
        return
    repo = get_repository()
    asyncio.run(_save_all(repo, workflows))
    for wf in workflows:
        typer.echo(f"Loaded {wf.id} ({wf.trigger_type.value}, {len(wf.steps)} steps)")


@workflow_app.command("list")
def workflow_list(site: Optional[str] = typer.Option(None, help="Filter by site")) -> None:
    """
    List stored workflows.

    Example:
        siteflow workflow list --site site-1
        # Output: wf-welcome    site-1    form_submit    active
    """
    repo = get_repository()
    workflows = asyncio.run(repo.list_workflows(site))
    if not workflows:
        typer.echo("No workflows found")
        return
    for wf in workflows:
        state = "active" if wf.active else "inactive"
        typer.echo(f"{wf.id}\t{wf.site_id}\t{wf.trigger_type.value}\t{state}")


@workflow_app.command("run")
def workflow_run(
    workflow_id: str,
    payload: str = typer.Option("{}", help="Trigger payload as JSON"),
) -> None:
    """
    Run one workflow manually, regardless of its trigger type.

    Example:
        siteflow workflow run wf-welcome --payload '{"email": "john@example.com"}'
        # Output: wf-welcome: completed (execution 5f0c...)
    """
    data = _parse_payload(payload)

    async def _run():
        runtime = create_runtime(repository=get_repository())
        try:
            return await runtime.executor.execute(
                workflow_id, TriggerType.MANUAL, data
            )
        finally:
            await runtime.aclose()

    try:
        outcome = asyncio.run(_run())
    except WorkflowNotFoundError as exc:
        typer.secho(f"{workflow_id}: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(_outcome_line(workflow_id, outcome))
    if not outcome.success:
        raise typer.Exit(code=1)


def _parse_payload(payload: str) -> dict:
    try:
        return json.loads(payload)
    except json.JSONDecodeError as exc:
        typer.secho(f"Invalid payload: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _outcome_line(workflow_id: str, outcome: ExecutionResult) -> str:
    line = f"{workflow_id}: {'completed' if outcome.success else 'failed'}"
    if outcome.execution_id:
        line += f" (execution {outcome.execution_id})"
    if outcome.error:
        line += f" - {outcome.error}"
    return line


@app.command("trigger")
def trigger(
    site_id: str,
    trigger_type: str,
    payload: str = typer.Option("{}", help="Trigger payload as JSON"),
    definitions: Optional[Path] = typer.Option(
        None, help="Load definitions from this path before triggering"
    ),
) -> None:
    """
    Fire a business event and run every matching active workflow.

    Example:
        siteflow trigger site-1 form_submit --payload '{"name": "John"}'
        # Output: Executed 1 workflow(s)
        #         wf-welcome: completed (execution 5f0c...)
    """
    try:
        TriggerType(trigger_type)
    except ValueError:
        typer.secho(f"Unknown trigger type: {trigger_type}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    data = _parse_payload(payload)
    workflows = _collect(definitions) if definitions else []

    async def _run():
        runtime = create_runtime(repository=get_repository())
        try:
            await _save_all(runtime.repository, workflows)
            return await runtime.dispatcher.trigger_workflows(
                site_id, trigger_type, data
            )
        finally:
            await runtime.aclose()

    result = asyncio.run(_run())
    typer.echo(f"Executed {result.executed_count} workflow(s)")
    for workflow_id, outcome in result.results.items():
        typer.echo(_outcome_line(workflow_id, outcome))


@execution_app.command("list")
def execution_list(
    workflow: Optional[str] = typer.Option(None, help="Filter by workflow id"),
    status: Optional[ExecutionStatus] = typer.Option(None, help="Filter by status"),
) -> None:
    """
    List executions, newest first.

    Example:
        siteflow execution list --status failed
    """
    repo = get_repository()
    executions = asyncio.run(repo.list_executions(workflow, status))
    if not executions:
        typer.echo("No executions found")
        return
    for ex in executions:
        typer.echo(
            f"{ex.id}\t{ex.workflow_id}\t{ex.trigger_type.value}\t{ex.status.value}"
        )


@execution_app.command("show")
def execution_show(execution_id: str) -> None:
    """
    Show one execution with its step-by-step audit trail.

    Example:
        siteflow execution show 5f0c...
        # Output: Execution 5f0c...: completed
        #         Trigger: {"name": "John"}
        #         - step-email: completed (2024-01-01 10:00 -> 10:00)
    """
    repo = get_repository()

    async def _load():
        return await repo.get_execution(execution_id), await repo.list_step_logs(
            execution_id
        )

    ex, logs = asyncio.run(_load())
    if ex is None:
        typer.echo("Execution not found")
        raise typer.Exit(code=1)
    typer.echo(f"Execution {ex.id}: {ex.status.value}")
    typer.echo(f"Workflow: {ex.workflow_id}")
    typer.echo(f"Trigger: {json.dumps(ex.trigger_payload)}")
    if ex.error:
        typer.echo(f"Error: {ex.error}")
    for log in logs:
        typer.echo(
            f"- {log.step_id}: {log.status.value}"
            + (
                f" ({log.started_at} -> {log.completed_at})"
                if log.started_at or log.completed_at
                else ""
            )
            + (f" error={log.error}" if log.error else "")
        )


@worker_app.command("run")
def worker_run(
    lifespan: Optional[float] = typer.Option(
        None, help="Worker timeout in seconds (default: run indefinitely)"
    ),
) -> None:
    """
    Run the delayed-step worker.

    Resumes workflows whose long delays have elapsed.

    Example:
        siteflow worker run --lifespan 300
    """
    runtime = create_runtime(repository=get_repository())
    if runtime.queue is None:
        typer.secho("Queue backend is disabled", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    async def _run() -> None:
        try:
            await runtime.worker().start(lifespan=lifespan)
        finally:
            await runtime.aclose()

    typer.echo("Starting delayed-step worker")
    asyncio.run(_run())


@queue_app.command("stats")
def queue_stats() -> None:
    """
    Show delayed-job queue counters.

    Example:
        siteflow queue stats
        # Output: delayed=2 processing=0 failed=1
    """
    queue = get_queue()
    if queue is None:
        typer.echo("Queue backend is disabled")
        return

    async def _stats():
        try:
            return await queue.stats()
        finally:
            await queue.disconnect()

    stats = asyncio.run(_stats())
    typer.echo(
        f"delayed={stats.delayed} processing={stats.processing} failed={stats.failed}"
    )


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()

"""Command line interface for running tempora workers."""

from __future__ import annotations

import asyncio
import importlib
import json
import logging
from typing import List, Optional

import typer

from tempora import REGISTRY, WorkflowEngine, get_repository
from tempora.errors import WorkflowNotRegisteredError

app = typer.Typer(help="CLI for tempora workflows")

# Command groups
worker_app = typer.Typer(help="Commands for running workers")
workflow_app = typer.Typer(help="Commands for managing workflows")

app.add_typer(worker_app, name="worker")
app.add_typer(workflow_app, name="workflow")

MODULE_OPTION = typer.Option(
    None,
    "--module",
    "-m",
    help="Module that registers workflow types; may be repeated",
)


@app.callback()
def main() -> None:
    """tempora CLI entry point."""
    pass


def _import_modules(modules: Optional[List[str]]) -> None:
    for name in modules or []:
        importlib.import_module(name)


async def _serve(engine: WorkflowEngine, lifespan: Optional[float]) -> None:
    stop = asyncio.Event()
    if lifespan is not None:
        asyncio.get_running_loop().call_later(lifespan, stop.set)
    await engine.start(stop)


@worker_app.command("run")
def worker_run(
    module: Optional[List[str]] = MODULE_OPTION,
    database_url: Optional[str] = typer.Option(None, help="Record store URL"),
    lifespan: Optional[float] = typer.Option(
        None, help="Stop after this many seconds (default: run indefinitely)"
    ),
    log_level: str = typer.Option("INFO", help="Logging level"),
) -> None:
    """
    Run a worker process that executes due workflows.

    Imports the given modules so their workflow types get registered, then
    polls the configured record store until stopped or until the lifespan
    expires.

    Example:
        tempora worker run -m myapp.workflows
        tempora worker run -m myapp.workflows --database-url sqlite://wf.db --lifespan 300
    """
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _import_modules(module)
    repository = get_repository(database_url) if database_url else get_repository()
    engine = WorkflowEngine(repository)
    names = ", ".join(engine.registry.names()) or "(none)"
    typer.echo(f"Starting worker for workflows: {names}")
    asyncio.run(_serve(engine, lifespan))


@workflow_app.command("list")
def workflow_list() -> None:
    """
    List all workflows with their current state.

    Returns:
        Tab-separated id, name, state and due time, or "No workflows found"

    Example:
        tempora workflow list
        # Output: 0b7c...    SendWorkflow    pending    2026-01-01T10:00:00+00:00
    """
    repo = get_repository()
    workflows = asyncio.run(repo.list_workflows())
    if not workflows:
        typer.echo("No workflows found")
        return
    for wf in workflows:
        typer.echo(f"{wf.id}\t{wf.name}\t{wf.state.value}\t{wf.eta.isoformat()}")


@workflow_app.command("show")
def workflow_show(workflow_id: str) -> None:
    """
    Show a workflow record and the steps it has memoized.

    Example:
        tempora workflow show 0b7c...
        # Output: Workflow 0b7c... (SendWorkflow): done
        #         - delay: done (2026-01-01 11:00:00+00:00)
        #         - send_mail: done (2026-01-01 11:00:30+00:00)
    """
    repo = get_repository()
    wf = asyncio.run(repo.get_workflow(workflow_id))
    if wf is None:
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)
    typer.echo(f"Workflow {wf.id} ({wf.name}): {wf.state.value}")
    typer.echo(f"Queued: {wf.queued.isoformat()}  Due: {wf.eta.isoformat()}")
    if wf.parent_id:
        typer.echo(f"Parent: {wf.parent_id}")
    if wf.output is not None:
        typer.echo(f"Output: {wf.output}")
    if wf.error:
        typer.echo(f"Error: {wf.error}")
    for step in asyncio.run(repo.list_steps(workflow_id)):
        typer.echo(f"- {step.name}: {step.state.value} ({step.updated})")


@workflow_app.command("queue")
def workflow_queue(
    name: str,
    input: Optional[str] = typer.Option(None, help="Workflow input as JSON"),
    workflow_id: Optional[str] = typer.Option(None, "--id", help="Workflow id"),
    module: Optional[List[str]] = MODULE_OPTION,
) -> None:
    """
    Queue a registered workflow and print its id.

    Example:
        tempora workflow queue SendWorkflow -m myapp.workflows --input '"a"'
        # Output: Workflow queued: 0b7c...
    """
    _import_modules(module)
    try:
        schema = REGISTRY.get_by_name(name)
    except WorkflowNotRegisteredError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)

    payload = json.loads(input) if input else None
    engine = WorkflowEngine(get_repository())
    queued_id = asyncio.run(engine.queue(schema.workflow_type, payload, id=workflow_id))
    typer.echo(f"Workflow queued: {queued_id}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()

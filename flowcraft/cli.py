"""Command line interface for running Flowcraft workers and workflows."""

from __future__ import annotations

import asyncio
import json
import logging
import signal
from pathlib import Path
from typing import Any, Dict, Optional

import typer

from flowcraft import WorkflowDispatcher, WorkflowEngine, get_queue, get_repository
from flowcraft.cli_utils.workflow import import_workflow, load_definition
from flowcraft.config import FlowcraftConfig, WorkerConfig, load_config
from flowcraft.errors import FlowcraftError
from flowcraft.models import RunStatus, WorkflowRun
from flowcraft.worker import WorkerPool

app = typer.Typer(help="CLI for Flowcraft workflows")

# Command groups
run_app = typer.Typer(help="Commands for submitting and inspecting runs")
workflow_app = typer.Typer(help="Commands for managing workflows")
node_types_app = typer.Typer(help="Commands for inspecting node types")

app.add_typer(run_app, name="run")
app.add_typer(workflow_app, name="workflow")
app.add_typer(node_types_app, name="node-types")


@app.callback()
def main(
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level"),
) -> None:
    """Flowcraft CLI entry point."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _parse_input(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except ValueError as e:
        typer.secho(f"Invalid input JSON: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if not isinstance(data, dict):
        typer.secho("Input must be a JSON object", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    return data


def _echo_run(run: WorkflowRun) -> None:
    typer.echo(f"Run {run.id} (workflow {run.workflow_id}): {run.status.value}")
    typer.echo(f"Input: {run.input_data}")
    if run.error_message:
        typer.echo(f"Error: {run.error_message}")
    for step in run.steps:
        line = f"- node {step.node_id}: {step.status.value}"
        if step.started_at or step.completed_at:
            line += f" ({step.started_at} -> {step.completed_at})"
        if step.error_message:
            line += f" [{step.error_message}]"
        typer.echo(line)
    if run.output_data and run.output_data != "{}":
        typer.echo(f"Output: {run.output_data}")


@app.command("worker")
def worker(
    workers: Optional[int] = typer.Option(
        None, "--workers", help="Number of concurrent worker loops"
    ),
    queue: Optional[str] = typer.Option(None, "--queue", help="Queue to consume"),
    poll_interval: Optional[str] = typer.Option(
        None, "--poll-interval", help="Dequeue wait, e.g. 5s"
    ),
    execution_timeout: Optional[str] = typer.Option(
        None, "--execution-timeout", help="Per-run budget, e.g. 30m"
    ),
    shutdown_grace: Optional[str] = typer.Option(
        None, "--shutdown-grace", help="Wait for in-flight runs on shutdown"
    ),
    config_path: Optional[Path] = typer.Option(
        None, "--config", help="Path to flowcraft.yaml"
    ),
) -> None:
    """
    Run a worker pool consuming workflow tasks.

    Options override the ``worker`` section of the configuration file.
    SIGINT or SIGTERM stops the pool, waiting up to the shutdown grace
    period for in-flight runs.

    Example:
        flowcraft worker --workers 4 --poll-interval 2s
    """
    config = load_config(str(config_path) if config_path else None)
    overrides = {
        "workers": workers,
        "queue": queue,
        "poll_interval": poll_interval,
        "execution_timeout": execution_timeout,
        "shutdown_grace": shutdown_grace,
    }
    try:
        worker_config = WorkerConfig.model_validate(
            {
                **config.worker.model_dump(),
                **{k: v for k, v in overrides.items() if v is not None},
            }
        )
    except ValueError as e:
        typer.secho(f"Invalid worker options: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    asyncio.run(_serve(config, worker_config))


async def _serve(config: FlowcraftConfig, worker_config: WorkerConfig) -> None:
    repository = get_repository(config=config)
    task_queue = get_queue(config=config)
    await task_queue.connect()
    pool = WorkerPool(task_queue, WorkflowEngine(repository), worker_config)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, pool.request_stop)
        except NotImplementedError:  # pragma: no cover - platform specific
            pass
    try:
        await pool.run()
    finally:
        await task_queue.disconnect()


@run_app.command("submit")
def run_submit(
    workflow_id: int,
    input_json: Optional[str] = typer.Option(
        None, "--input", help="JSON object delivered to the source nodes"
    ),
) -> None:
    """
    Create a pending run and enqueue it for the workers.

    Example:
        flowcraft run submit 3 --input '{"user": "ada"}'
    """
    input_data = _parse_input(input_json)

    async def _submit() -> WorkflowRun:
        task_queue = get_queue()
        await task_queue.connect()
        try:
            dispatcher = WorkflowDispatcher(
                get_repository(), task_queue, load_config().worker.queue
            )
            return await dispatcher.dispatch_workflow(workflow_id, input_data)
        finally:
            await task_queue.disconnect()

    try:
        run = asyncio.run(_submit())
    except FlowcraftError as e:
        typer.secho(f"Submit failed: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Run {run.id} submitted")


@run_app.command("execute")
def run_execute(
    workflow_id: int,
    input_json: Optional[str] = typer.Option(
        None, "--input", help="JSON object delivered to the source nodes"
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Execution budget in seconds"
    ),
) -> None:
    """Create a run and execute it in this process, bypassing the queue."""
    input_data = _parse_input(input_json)

    async def _execute() -> Optional[WorkflowRun]:
        repository = get_repository()
        if await repository.get_workflow(workflow_id) is None:
            return None
        run = await repository.create_run(workflow_id, json.dumps(input_data))
        return await WorkflowEngine(repository).execute_run(run.id, timeout=timeout)

    run = asyncio.run(_execute())
    if run is None:
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)
    _echo_run(run)
    if run.status != RunStatus.COMPLETED:
        raise typer.Exit(code=1)


@run_app.command("show")
def run_show(run_id: int) -> None:
    """Show a run's status, input, output and step-runs."""
    run = asyncio.run(get_repository().get_run(run_id))
    if run is None:
        typer.echo("Run not found")
        raise typer.Exit(code=1)
    _echo_run(run)


@run_app.command("list")
def run_list(
    workflow_id: Optional[int] = typer.Option(
        None, "--workflow", help="Only list runs of this workflow"
    ),
) -> None:
    """List runs with their current status."""
    runs = asyncio.run(get_repository().list_runs(workflow_id))
    if not runs:
        typer.echo("No runs found")
        return
    for run in runs:
        typer.echo(f"{run.id}\t{run.workflow_id}\t{run.status.value}")


@workflow_app.command("import")
def workflow_import(path: Path) -> None:
    """
    Store a workflow defined in a YAML or JSON file.

    Example file:

        name: greet
        nodes:
          - key: shape
            type: transform
            config: {mapping: {greeting: "Hello {{name}}"}}
        connections: []
    """
    if not path.exists():
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    try:
        definition = load_definition(path)
    except ValueError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)

    workflow = asyncio.run(import_workflow(get_repository(), definition))
    typer.echo(
        f"Imported workflow {workflow.id} '{workflow.name}' "
        f"({len(workflow.nodes)} nodes, {len(workflow.connections)} connections)"
    )


@workflow_app.command("show")
def workflow_show(workflow_id: int) -> None:
    """Show a workflow's nodes and connections."""
    workflow = asyncio.run(get_repository().get_workflow(workflow_id))
    if workflow is None:
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)
    typer.echo(f"Workflow {workflow.id}: {workflow.name}")
    for node in workflow.nodes:
        typer.echo(f"- node {node.id} [{node.node_type}] {node.name}: {node.config}")
    for conn in workflow.connections:
        typer.echo(
            f"- {conn.source_node_id}.{conn.source_handle} -> "
            f"{conn.target_node_id}.{conn.target_handle}"
        )


@node_types_app.command("list")
def node_types_list() -> None:
    """List registered node types and the executors behind them."""
    entries = asyncio.run(get_repository().list_node_types())
    for entry in entries:
        typer.echo(f"{entry.key}\t{entry.category}\t{entry.executor_class}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()

"""Command line interface for research runs and workers."""

from __future__ import annotations

import asyncio
import logging
import os
import uuid
from typing import Optional

import typer
from pydantic import ValidationError

from .config import load_config
from .constants import RESEARCH_INITIATED
from .contracts import (
    AutonomousDiscovery,
    IterativeDiscovery,
    ResearchRequest,
    RetryOptions,
    StandardDiscovery,
    TriggerEvent,
)
from .dispatch import TriggerDispatcher
from .orchestrator import ResearchOrchestrator
from .persistence import get_store
from .transports import get_transport
from .worker import RunWorker

app = typer.Typer(help="CLI for researchflow runs")

run_app = typer.Typer(help="Commands for managing research runs")
worker_app = typer.Typer(help="Commands for running workers")

app.add_typer(run_app, name="run")
app.add_typer(worker_app, name="worker")

_STRATEGIES = {
    "standard": StandardDiscovery,
    "iterative": IterativeDiscovery,
    "autonomous": AutonomousDiscovery,
}


@app.callback()
def main(
    log_level: str = typer.Option(
        os.getenv("RESEARCHFLOW_LOG_LEVEL", "INFO"), help="Logging level"
    ),
) -> None:
    """researchflow CLI entry point."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@run_app.command("start")
def run_start(
    prompt: str,
    job_id: Optional[str] = typer.Option(None, help="Job id guarding concurrent runs"),
    strategy: str = typer.Option("standard", help="standard, iterative or autonomous"),
    scope: str = typer.Option("general", help="general or lead_generation"),
    wait: bool = typer.Option(False, help="Execute in this process instead of queueing"),
) -> None:
    """
    Start a research run.

    Without ``--wait`` the trigger is published on the configured transport
    for a worker to pick up. With ``--wait`` the run executes here and its
    final status is printed.

    Example:
        researchflow run start "EV charging market in Spain" --strategy iterative
    """
    if strategy not in _STRATEGIES:
        typer.secho(f"Unknown strategy: {strategy}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    request = ResearchRequest(prompt=prompt, scope=scope, strategy=_STRATEGIES[strategy]())

    if wait:
        run_id = str(uuid.uuid4())
        event = TriggerEvent(
            name=RESEARCH_INITIATED,
            run_id=run_id,
            job_id=job_id or run_id,
            payload=request.model_dump(mode="json"),
        )
        run = asyncio.run(ResearchOrchestrator().start(event))
        typer.echo(f"{run.run_id}\t{run.status.value}\t{run.progress}")
        if run.error_message:
            typer.echo(f"Error: {run.error_message}")
        return

    dispatcher = TriggerDispatcher(get_transport())
    event = asyncio.run(dispatcher.dispatch_research(request, job_id=job_id))
    typer.echo(event.run_id)


@run_app.command("retry")
def run_retry(
    run_id: str,
    skip_discovery: bool = typer.Option(False, help="Reuse the sources already found"),
    provider: Optional[str] = typer.Option(None, help="Inference provider override"),
    model: Optional[str] = typer.Option(None, help="Model override"),
) -> None:
    """Re-trigger a failed or cancelled run; finished steps are not repeated."""
    try:
        options = RetryOptions(skip_discovery=skip_discovery, provider=provider, model=model)
    except ValidationError as exc:
        typer.secho(f"Invalid retry options: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    dispatcher = TriggerDispatcher(get_transport())
    event = asyncio.run(dispatcher.dispatch_retry(get_store(), run_id, options))
    typer.echo(f"Retry dispatched for {event.run_id}")


@run_app.command("cancel")
def run_cancel(run_id: str) -> None:
    """Request cooperative cancellation of a run."""
    store = get_store()

    async def _cancel() -> bool:
        if await store.get_run(run_id) is None:
            return False
        await store.request_cancel(run_id)
        return True

    if not asyncio.run(_cancel()):
        typer.echo("Run not found")
        raise typer.Exit(code=1)
    typer.echo(f"Cancellation requested for {run_id}")


@run_app.command("list")
def run_list() -> None:
    """List all runs with status and progress."""
    runs = asyncio.run(get_store().list_runs())
    if not runs:
        typer.echo("No runs found")
        return
    for run in runs:
        typer.echo(f"{run.run_id}\t{run.job_id}\t{run.status.value}\t{run.progress}")


@run_app.command("show")
def run_show(run_id: str) -> None:
    """Show a run with its step checkpoints."""
    store = get_store()

    async def _load():
        return await store.get_run(run_id), await store.list_steps(run_id)

    run, steps = asyncio.run(_load())
    if run is None:
        typer.echo("Run not found")
        raise typer.Exit(code=1)
    typer.echo(f"Run {run.run_id}: {run.status.value} ({run.progress}%)")
    if run.error_message:
        typer.echo(f"Error: {run.error_message}")
    if run.summary:
        typer.echo(f"Summary: {run.summary}")
    for step in steps:
        typer.echo(
            f"- {step.step_name}: {step.status.value} (attempts={step.attempts})"
        )


@worker_app.command("start")
def worker_start(
    lifespan: Optional[float] = typer.Option(None, help="Seconds to run (default: forever)"),
    max_concurrent: Optional[int] = typer.Option(None, help="Concurrent runs"),
) -> None:
    """Run a worker that executes queued research runs."""
    config = load_config()
    orchestrator = ResearchOrchestrator(config=config)
    worker = RunWorker(
        get_transport(config=config), orchestrator, max_concurrent=max_concurrent
    )
    typer.echo(f"Starting worker (max {worker.max_concurrent} concurrent runs)")
    asyncio.run(worker.start(lifespan=lifespan))


if __name__ == "__main__":
    app()

from __future__ import annotations

import json
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import click

from fleetplan.assignment import StaticWorkerDirectory, WorkerInfo
from fleetplan.config import FleetplanConfig, configure_logging, load_config, save_config
from fleetplan.drafts import WorkPlanDraft
from fleetplan.errors import WorkPlanError
from fleetplan.events import TASK_STARTED
from fleetplan.models import WorkPlan
from fleetplan.registry import PlanRegistry
from fleetplan.scheduler import WorkPlanExecutor


@dataclass(slots=True)
class Runtime:
    config: FleetplanConfig
    registry: PlanRegistry
    executor: WorkPlanExecutor


def _resolve_config_path(config_value: str) -> Path:
    config_path = Path(config_value)
    if not config_path.is_absolute():
        config_path = Path.cwd() / config_path
    return config_path.resolve()


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"{path}: invalid JSON ({exc})") from exc


def _load_draft(path: Path) -> WorkPlanDraft:
    try:
        return WorkPlanDraft.from_dict(_read_json(path))
    except WorkPlanError as exc:
        raise click.ClickException(str(exc)) from exc


def _load_workers(path: Path | None) -> list[WorkerInfo]:
    if path is None:
        return []
    payload = _read_json(path)
    if not isinstance(payload, list):
        raise click.ClickException(f"{path}: expected a list of workers")
    try:
        return [WorkerInfo.from_dict(item) for item in payload]
    except (KeyError, TypeError, ValueError) as exc:
        raise click.ClickException(f"{path}: invalid worker entry ({exc})") from exc


def _build_runtime(config_value: str, creator: str, workers: list[WorkerInfo]) -> Runtime:
    config = load_config(_resolve_config_path(config_value))
    configure_logging(config.logging)
    registry = PlanRegistry(StaticWorkerDirectory({creator: workers}))
    return Runtime(
        config=config,
        registry=registry,
        executor=WorkPlanExecutor(registry, config),
    )


def _describe_event(event: str, payload: Any) -> str:
    if event == TASK_STARTED:
        task = payload["task"]
        return f"{event}: {task.id} -> {payload['worker_id']}"
    if isinstance(payload, WorkPlan):
        return (
            f"{event}: {payload.status} "
            f"({payload.completed_tasks}/{payload.total_tasks} tasks)"
        )
    if isinstance(payload, dict) and "id" in payload:
        return f"{event}: {payload['id']}"
    return event


@click.group()
def cli() -> None:
    """Fleetplan CLI."""


@cli.command("init")
@click.option("--config", "config_value", default="fleetplan.toml", show_default=True)
def init_command(config_value: str) -> None:
    config_path = _resolve_config_path(config_value)
    config = load_config(config_path)
    save_config(config_path, config)
    click.echo(f"Config: {config_path}")


@cli.command("validate")
@click.argument("draft_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def validate_command(draft_path: Path) -> None:
    draft = _load_draft(draft_path)
    tasks = draft.task_drafts()
    click.echo(f"Valid work plan: {draft.name}")
    click.echo(f"Phases: {len(draft.phases)}")
    click.echo(f"Tasks: {len(tasks)}")


@cli.command("describe")
@click.argument("draft_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def describe_command(draft_path: Path) -> None:
    draft = _load_draft(draft_path)
    click.echo(f"Work plan: {draft.name}")
    if draft.description:
        click.echo(draft.description)
    for phase in draft.phases:
        click.echo(f"- {phase.id}: {phase.name} [{phase.execution}] deps={phase.depends_on}")
        for task in phase.tasks:
            assignee = task.assign_to_worker or task.suggested_class or "any"
            click.echo(
                f"  - {task.id} ({task.priority}, {assignee}) "
                f"blocked_by={task.blocked_by}: {task.description}"
            )


@cli.command("simulate")
@click.argument("draft_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--workers",
    "workers_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
)
@click.option("--creator", default="supervisor", show_default=True)
@click.option("--config", "config_value", default="fleetplan.toml", show_default=True)
def simulate_command(
    draft_path: Path, workers_path: Path | None, creator: str, config_value: str
) -> None:
    """Run a draft to completion, finishing each task as soon as it starts."""
    draft = _load_draft(draft_path)
    runtime = _build_runtime(config_value, creator, _load_workers(workers_path))
    started: deque[str] = deque()

    def _listener(event: str, payload: Any) -> None:
        click.echo(_describe_event(event, payload))
        if event == TASK_STARTED:
            started.append(payload["task"].id)

    runtime.registry.subscribe(_listener)
    try:
        plan = runtime.registry.create_work_plan(creator, draft)
        runtime.registry.approve_work_plan(plan.id)
        runtime.executor.execute_work_plan(plan.id)
        while started and plan.status == "executing":
            task_id = started.popleft()
            runtime.executor.complete_task(plan.id, task_id, result=f"simulated: {task_id}")
    except WorkPlanError as exc:
        raise click.ClickException(str(exc)) from exc

    blocked = [task.id for task in plan.all_tasks() if task.status == "blocked"]
    click.echo(f"Plan status: {plan.status}")
    click.echo(f"Tasks: {plan.completed_tasks}/{plan.total_tasks}")
    if blocked:
        click.echo(f"Blocked tasks: {', '.join(blocked)}")


@cli.command("show")
@click.argument("draft_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--creator", default="supervisor", show_default=True)
def show_command(draft_path: Path, creator: str) -> None:
    """Print the plan record a draft would produce, as JSON."""
    registry = PlanRegistry()
    try:
        plan = registry.create_work_plan(creator, _load_draft(draft_path))
    except WorkPlanError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(json.dumps(plan.to_dict(), ensure_ascii=False, indent=2))

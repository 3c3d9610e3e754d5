"""Phase/task state machine for approved work plans.

Completion cascades eagerly: finishing a task releases the tasks blocked by
it, finishing a phase releases the phases depending on it, and the plan
completes once every phase has. Every public method runs under the registry
lock and publishes its events after the lock is released.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fleetplan.assignment import select_worker
from fleetplan.config import FleetplanConfig
from fleetplan.errors import InvalidTransitionError, TaskNotFoundError, WorkerNotFoundError
from fleetplan.events import TASK_STARTED, WORK_PLAN_UPDATED
from fleetplan.models import (
    TERMINAL_TASK_STATUSES,
    WorkPlan,
    WorkPlanPhase,
    WorkPlanTask,
    utcnow_iso,
)
from fleetplan.registry import EventBuffer, PlanRegistry

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Delegation:
    worker_id: str
    worker_name: str
    command: str
    reasoning: str
    confidence: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "worker_id": self.worker_id,
            "worker_name": self.worker_name,
            "command": self.command,
            "reasoning": self.reasoning,
            "confidence": self.confidence,
        }


def convert_tasks_to_delegations(plan: WorkPlan) -> list[Delegation]:
    """Tasks that can be handed out right away: no phase deps, no blockers, assigned."""
    delegations: list[Delegation] = []
    for phase in plan.phases:
        if phase.depends_on:
            continue
        for task in phase.tasks:
            if task.blocked_by or not task.assigned_worker_id:
                continue
            delegations.append(
                Delegation(
                    worker_id=task.assigned_worker_id,
                    worker_name=task.assigned_worker_name or task.assigned_worker_id,
                    command=task.description,
                    reasoning=f"Work plan task: {phase.name} ({phase.execution})",
                    confidence=task.priority,
                )
            )
    return delegations


class WorkPlanExecutor:
    def __init__(self, registry: PlanRegistry, config: FleetplanConfig | None = None) -> None:
        self.registry = registry
        self.config = config or FleetplanConfig.default()

    @staticmethod
    def _refuse(plan: WorkPlan, action: str, expected: tuple[str, ...]) -> InvalidTransitionError:
        logger.warning("Cannot %s plan %r: status is %s", action, plan.name, plan.status)
        return InvalidTransitionError(
            f"Cannot {action} work plan {plan.id}: status is {plan.status}",
            current=plan.status,
            expected=expected,
        )

    # -- lifecycle ------------------------------------------------------------

    def execute_work_plan(self, plan_id: str) -> WorkPlan:
        with self.registry.mutation() as events:
            plan = self.registry.require_work_plan(plan_id)
            if plan.status != "approved":
                raise self._refuse(plan, "execute", ("approved",))
            plan.status = "executing"
            plan.touch()
            for phase in plan.phases:
                if phase.status == "pending" and not phase.depends_on:
                    self._start_phase(plan, phase, events)
            events.queue(WORK_PLAN_UPDATED, plan)
        logger.info("Started executing work plan %r", plan.name)
        return plan

    def pause_work_plan(self, plan_id: str) -> WorkPlan:
        with self.registry.mutation() as events:
            plan = self.registry.require_work_plan(plan_id)
            if plan.status != "executing":
                raise self._refuse(plan, "pause", ("executing",))
            plan.status = "paused"
            plan.touch()
            events.queue(WORK_PLAN_UPDATED, plan)
        logger.info("Paused work plan %r", plan.name)
        return plan

    def resume_work_plan(self, plan_id: str) -> WorkPlan:
        with self.registry.mutation() as events:
            plan = self.registry.require_work_plan(plan_id)
            if plan.status != "paused":
                raise self._refuse(plan, "resume", ("paused",))
            plan.status = "executing"
            plan.touch()
            self._start_ready_work(plan, events)
            events.queue(WORK_PLAN_UPDATED, plan)
        logger.info("Resumed work plan %r", plan.name)
        return plan

    def cancel_work_plan(self, plan_id: str) -> WorkPlan:
        with self.registry.mutation() as events:
            plan = self.registry.require_work_plan(plan_id)
            if plan.is_terminal:
                raise self._refuse(plan, "cancel", ("draft", "approved", "executing", "paused"))
            for phase in plan.phases:
                if phase.status in ("pending", "in_progress"):
                    phase.status = "cancelled"
                for task in phase.tasks:
                    if task.status not in TERMINAL_TASK_STATUSES:
                        task.status = "cancelled"
            plan.status = "cancelled"
            plan.touch()
            events.queue(WORK_PLAN_UPDATED, plan)
        logger.info("Cancelled work plan %r", plan.name)
        return plan

    # -- task callbacks -------------------------------------------------------

    def complete_task(self, plan_id: str, task_id: str, result: str | None = None) -> WorkPlan:
        with self.registry.mutation() as events:
            plan = self.registry.require_work_plan(plan_id)
            if plan.status not in ("executing", "paused"):
                raise self._refuse(plan, "complete tasks of", ("executing", "paused"))
            located = plan.locate_task(task_id)
            if located is None:
                logger.warning("Task %s not found in plan %s", task_id, plan_id)
                raise TaskNotFoundError(task_id)
            phase, task = located
            if task.status not in ("in_progress", "blocked") or phase.status != "in_progress":
                logger.warning("Cannot complete task %s: status is %s", task_id, task.status)
                raise InvalidTransitionError(
                    f"Cannot complete task {task_id}: status is {task.status}, "
                    f"phase {phase.id} is {phase.status}",
                    current=task.status,
                    expected=("in_progress", "blocked"),
                )

            task.status = "completed"
            task.completed_at = utcnow_iso()
            task.result = result
            plan.completed_tasks += 1
            logger.info("Completed task %r", task.description)

            self._release_blocked_tasks(plan, task.id, events)
            if (
                phase.execution == "sequential"
                and phase.status == "in_progress"
                and not phase.has_task_in_progress()
            ):
                self._advance_sequential(plan, phase, events)
            if phase.status != "completed" and phase.all_tasks_completed():
                self._complete_phase(plan, phase, events)

            plan.touch()
            events.queue(WORK_PLAN_UPDATED, plan)
        return plan

    def assign_task(self, plan_id: str, task_id: str, worker_id: str) -> WorkPlan:
        """Manually (re)assign a task; a blocked task is restarted when possible."""
        with self.registry.mutation() as events:
            plan = self.registry.require_work_plan(plan_id)
            located = plan.locate_task(task_id)
            if located is None:
                raise TaskNotFoundError(task_id)
            phase, task = located
            if task.status in TERMINAL_TASK_STATUSES:
                raise InvalidTransitionError(
                    f"Cannot assign task {task_id}: status is {task.status}",
                    current=task.status,
                    expected=("pending", "in_progress", "blocked"),
                )
            worker = self.registry.workers.get_worker(worker_id)
            if worker is None:
                raise WorkerNotFoundError(worker_id)

            task.assigned_worker_id = worker.id
            task.assigned_worker_name = worker.name
            logger.info("Assigned task %r to %s", task.description, worker.name)

            if task.status == "blocked":
                # back to the ready pool; started now if the phase allows it
                task.status = "pending"
                if self._can_start(plan) and phase.status == "in_progress":
                    if phase.execution == "parallel" or not phase.has_task_in_progress():
                        self._start_task(plan, phase, task, events)

            plan.touch()
            events.queue(WORK_PLAN_UPDATED, plan)
        return plan

    # -- state machine --------------------------------------------------------

    @staticmethod
    def _can_start(plan: WorkPlan) -> bool:
        return plan.status == "executing"

    def _start_phase(self, plan: WorkPlan, phase: WorkPlanPhase, events: EventBuffer) -> None:
        phase.status = "in_progress"
        phase.started_at = utcnow_iso()
        logger.info("Started phase %r (%s)", phase.name, phase.execution)

        if not phase.tasks and self.config.scheduler.start_empty_phases:
            self._complete_phase(plan, phase, events)
            return

        ready = phase.ready_tasks()
        if phase.execution == "parallel":
            for task in ready:
                self._start_task(plan, phase, task, events)
        elif ready:
            self._start_task(plan, phase, ready[0], events)

    def _resolve_worker(
        self, plan: WorkPlan, task: WorkPlanTask
    ) -> tuple[str | None, str | None]:
        """Pick the worker for a task without touching the task itself."""
        workers = self.registry.workers
        worker_id, worker_name = task.assigned_worker_id, task.assigned_worker_name
        if not worker_id and self.config.scheduler.auto_assign:
            worker = select_worker(
                workers.list_workers(plan.created_by),
                task.suggested_class,
                idle_status=self.config.assignment.idle_status,
            )
            if worker is not None:
                worker_id, worker_name = worker.id, worker.name
        if worker_id:
            known = workers.get_worker(worker_id)
            if known is not None:
                worker_name = known.name
        return worker_id, worker_name

    def _start_task(
        self,
        plan: WorkPlan,
        phase: WorkPlanPhase,
        task: WorkPlanTask,
        events: EventBuffer,
    ) -> None:
        try:
            worker_id, worker_name = self._resolve_worker(plan, task)
        except Exception:
            logger.exception("Worker lookup failed for task %r", task.description)
            worker_id = worker_name = None

        task.started_at = utcnow_iso()
        if worker_id:
            task.status = "in_progress"
            task.assigned_worker_id = worker_id
            task.assigned_worker_name = worker_name
            logger.info(
                "Started task %r -> %s",
                task.description,
                task.assigned_worker_name or task.assigned_worker_id,
            )
            events.queue(
                TASK_STARTED,
                {
                    "plan_id": plan.id,
                    "phase_id": phase.id,
                    "task": task,
                    "worker_id": task.assigned_worker_id,
                },
            )
        else:
            logger.warning("No worker available for task %r", task.description)
            task.status = "blocked"

        plan.touch()
        events.queue(WORK_PLAN_UPDATED, plan)

    def _advance_sequential(
        self, plan: WorkPlan, phase: WorkPlanPhase, events: EventBuffer
    ) -> None:
        if not self._can_start(plan):
            return
        ready = phase.ready_tasks()
        if ready:
            self._start_task(plan, phase, ready[0], events)

    def _release_blocked_tasks(self, plan: WorkPlan, task_id: str, events: EventBuffer) -> None:
        for phase in plan.phases:
            for task in phase.tasks:
                if task_id not in task.blocked_by:
                    continue
                task.blocked_by = [blocker for blocker in task.blocked_by if blocker != task_id]
                if task.blocked_by or task.status != "pending":
                    continue
                if phase.status != "in_progress" or not self._can_start(plan):
                    continue
                if phase.execution == "parallel" or not phase.has_task_in_progress():
                    self._start_task(plan, phase, task, events)

    def _complete_phase(self, plan: WorkPlan, phase: WorkPlanPhase, events: EventBuffer) -> None:
        phase.status = "completed"
        phase.completed_at = utcnow_iso()
        logger.info("Completed phase %r", phase.name)

        for other in plan.phases:
            if other is phase or phase.id not in other.depends_on:
                continue
            other.depends_on = [dep for dep in other.depends_on if dep != phase.id]
            if not other.depends_on and other.status == "pending" and self._can_start(plan):
                self._start_phase(plan, other, events)

        if plan.status in ("executing", "paused") and all(
            item.status == "completed" for item in plan.phases
        ):
            plan.status = "completed"
            logger.info("Completed work plan %r", plan.name)

    def _start_ready_work(self, plan: WorkPlan, events: EventBuffer) -> None:
        for phase in plan.phases:
            if phase.status == "pending" and not phase.depends_on:
                self._start_phase(plan, phase, events)
            elif phase.status == "in_progress":
                if phase.execution == "parallel":
                    for task in phase.ready_tasks():
                        self._start_task(plan, phase, task, events)
                elif not phase.has_task_in_progress():
                    self._advance_sequential(plan, phase, events)

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

PlanStatus = Literal["draft", "approved", "executing", "paused", "completed", "cancelled"]
PhaseStatus = Literal["pending", "in_progress", "completed", "cancelled"]
TaskStatus = Literal["pending", "in_progress", "blocked", "completed", "cancelled"]
AnalysisStatus = Literal["pending", "in_progress", "completed"]
ExecutionMode = Literal["parallel", "sequential"]
TaskPriority = Literal["high", "medium", "low"]

EXECUTION_MODES = ("parallel", "sequential")
TASK_PRIORITIES = ("high", "medium", "low")
TERMINAL_PLAN_STATUSES = frozenset({"completed", "cancelled"})
TERMINAL_TASK_STATUSES = frozenset({"completed", "cancelled"})


def utcnow_iso() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat()


@dataclass(slots=True)
class WorkPlanTask:
    id: str
    description: str
    suggested_class: str
    priority: TaskPriority = "medium"
    blocked_by: list[str] = field(default_factory=list)
    status: TaskStatus = "pending"
    assigned_worker_id: str | None = None
    assigned_worker_name: str | None = None
    started_at: str | None = None
    completed_at: str | None = None
    result: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "suggested_class": self.suggested_class,
            "priority": self.priority,
            "blocked_by": list(self.blocked_by),
            "status": self.status,
            "assigned_worker_id": self.assigned_worker_id,
            "assigned_worker_name": self.assigned_worker_name,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "result": self.result,
        }


@dataclass(slots=True)
class WorkPlanPhase:
    id: str
    name: str
    execution: ExecutionMode
    depends_on: list[str] = field(default_factory=list)
    tasks: list[WorkPlanTask] = field(default_factory=list)
    status: PhaseStatus = "pending"
    started_at: str | None = None
    completed_at: str | None = None

    def find_task(self, task_id: str) -> WorkPlanTask | None:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def all_tasks_completed(self) -> bool:
        return all(task.status == "completed" for task in self.tasks)

    def has_task_in_progress(self) -> bool:
        return any(task.status == "in_progress" for task in self.tasks)

    def ready_tasks(self) -> list[WorkPlanTask]:
        return [task for task in self.tasks if task.status == "pending" and not task.blocked_by]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "execution": self.execution,
            "depends_on": list(self.depends_on),
            "status": self.status,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "tasks": [task.to_dict() for task in self.tasks],
        }


@dataclass(slots=True)
class WorkPlan:
    id: str
    name: str
    created_by: str
    description: str = ""
    phases: list[WorkPlanPhase] = field(default_factory=list)
    status: PlanStatus = "draft"
    total_tasks: int = 0
    completed_tasks: int = 0
    parallelizable_tasks: list[str] = field(default_factory=list)
    created_at: str = field(default_factory=utcnow_iso)
    updated_at: str = field(default_factory=utcnow_iso)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PLAN_STATUSES

    def touch(self) -> None:
        self.updated_at = utcnow_iso()

    def all_tasks(self) -> list[WorkPlanTask]:
        return [task for phase in self.phases for task in phase.tasks]

    def find_phase(self, phase_id: str) -> WorkPlanPhase | None:
        for phase in self.phases:
            if phase.id == phase_id:
                return phase
        return None

    def locate_task(self, task_id: str) -> tuple[WorkPlanPhase, WorkPlanTask] | None:
        for phase in self.phases:
            task = phase.find_task(task_id)
            if task is not None:
                return phase, task
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_by": self.created_by,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "status": self.status,
            "total_tasks": self.total_tasks,
            "completed_tasks": self.completed_tasks,
            "parallelizable_tasks": list(self.parallelizable_tasks),
            "phases": [phase.to_dict() for phase in self.phases],
        }


@dataclass(slots=True)
class AnalysisRequest:
    id: str
    requested_by: str
    target_worker_id: str
    query: str
    focus: str | None = None
    target_worker_name: str | None = None
    status: AnalysisStatus = "pending"
    requested_at: str = field(default_factory=utcnow_iso)
    completed_at: str | None = None
    result: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "requested_by": self.requested_by,
            "target_worker_id": self.target_worker_id,
            "target_worker_name": self.target_worker_name,
            "query": self.query,
            "focus": self.focus,
            "status": self.status,
            "requested_at": self.requested_at,
            "completed_at": self.completed_at,
            "result": self.result,
        }

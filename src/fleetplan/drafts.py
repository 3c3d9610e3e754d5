"""Draft contracts handed over by the plan extraction step.

Drafts arrive as loosely-typed mappings decoded from JSON. They use the
camelCase keys of the extraction format (``dependsOn``, ``blockedBy``,
``suggestedClass``, ``assignToAgent``); snake_case keys are accepted too.
Validation collects every problem before raising, so a caller can report
them all at once.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from fleetplan.errors import InvalidDraftError
from fleetplan.models import EXECUTION_MODES, TASK_PRIORITIES, ExecutionMode, TaskPriority


def _pick(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload:
            return payload[key]
    return None


def _string_list(value: Any, where: str, problems: list[str]) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        problems.append(f"{where} must be a list of strings")
        return []
    return list(value)


def _required_string(value: Any, where: str, problems: list[str]) -> str:
    if not isinstance(value, str) or not value.strip():
        problems.append(f"{where} is required")
        return ""
    return value


@dataclass(slots=True)
class TaskDraft:
    id: str
    description: str
    suggested_class: str = ""
    priority: TaskPriority = "medium"
    blocked_by: list[str] = field(default_factory=list)
    assign_to_worker: str | None = None

    @classmethod
    def from_dict(cls, payload: Any, where: str, problems: list[str]) -> TaskDraft | None:
        if not isinstance(payload, Mapping):
            problems.append(f"{where} must be an object")
            return None
        task_id = _required_string(payload.get("id"), f"{where}.id", problems)
        description = _required_string(payload.get("description"), f"{where}.description", problems)
        suggested_class = _pick(payload, "suggestedClass", "suggested_class") or ""
        if not isinstance(suggested_class, str):
            problems.append(f"{where}.suggestedClass must be a string")
            suggested_class = ""
        priority = payload.get("priority") or "medium"
        if priority not in TASK_PRIORITIES:
            problems.append(f"{where}.priority must be one of {', '.join(TASK_PRIORITIES)}")
            priority = "medium"
        assign_to = _pick(payload, "assignToAgent", "assign_to_worker")
        if assign_to is not None and not isinstance(assign_to, str):
            problems.append(f"{where}.assignToAgent must be a string")
            assign_to = None
        blocked_by = _string_list(
            _pick(payload, "blockedBy", "blocked_by"), f"{where}.blockedBy", problems
        )
        return cls(
            id=task_id,
            description=description,
            suggested_class=suggested_class,
            priority=priority,
            blocked_by=blocked_by,
            assign_to_worker=assign_to or None,
        )


@dataclass(slots=True)
class PhaseDraft:
    id: str
    name: str
    execution: ExecutionMode
    depends_on: list[str] = field(default_factory=list)
    tasks: list[TaskDraft] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: Any, where: str, problems: list[str]) -> PhaseDraft | None:
        if not isinstance(payload, Mapping):
            problems.append(f"{where} must be an object")
            return None
        phase_id = _required_string(payload.get("id"), f"{where}.id", problems)
        name = _required_string(payload.get("name"), f"{where}.name", problems)
        execution = payload.get("execution")
        if execution not in EXECUTION_MODES:
            problems.append(f"{where}.execution must be one of {', '.join(EXECUTION_MODES)}")
            execution = "sequential"
        depends_on = _string_list(
            _pick(payload, "dependsOn", "depends_on"), f"{where}.dependsOn", problems
        )
        raw_tasks = payload.get("tasks")
        tasks: list[TaskDraft] = []
        if not isinstance(raw_tasks, list):
            problems.append(f"{where}.tasks must be a list")
        else:
            for index, raw_task in enumerate(raw_tasks):
                task = TaskDraft.from_dict(raw_task, f"{where}.tasks[{index}]", problems)
                if task is not None:
                    tasks.append(task)
        return cls(
            id=phase_id,
            name=name,
            execution=execution,
            depends_on=depends_on,
            tasks=tasks,
        )


@dataclass(slots=True)
class WorkPlanDraft:
    name: str
    phases: list[PhaseDraft]
    description: str = ""

    @classmethod
    def from_dict(cls, payload: Any) -> WorkPlanDraft:
        if not isinstance(payload, Mapping):
            raise InvalidDraftError("Work plan draft must be an object.")
        problems: list[str] = []
        name = _required_string(payload.get("name"), "name", problems)
        description = payload.get("description") or ""
        if not isinstance(description, str):
            problems.append("description must be a string")
            description = ""
        raw_phases = payload.get("phases")
        phases: list[PhaseDraft] = []
        if not isinstance(raw_phases, list):
            problems.append("phases must be a list")
        else:
            for index, raw_phase in enumerate(raw_phases):
                phase = PhaseDraft.from_dict(raw_phase, f"phases[{index}]", problems)
                if phase is not None:
                    phases.append(phase)
        if problems:
            raise _invalid("work plan", problems)
        draft = cls(name=name, phases=phases, description=description)
        draft.validate()
        return draft

    def task_drafts(self) -> list[TaskDraft]:
        return [task for phase in self.phases for task in phase.tasks]

    def validate(self) -> None:
        """Check the graph: ids, references and cycles."""
        problems: list[str] = []
        if not self.name or not self.name.strip():
            problems.append("name is required")
        if not self.phases:
            problems.append("phases must contain at least one phase")

        phase_ids = [phase.id for phase in self.phases]
        task_ids = [task.id for task in self.task_drafts()]
        problems.extend(f"duplicate phase id: {item}" for item in _duplicates(phase_ids))
        problems.extend(f"duplicate task id: {item}" for item in _duplicates(task_ids))

        known_phases = set(phase_ids)
        known_tasks = set(task_ids)
        for phase in self.phases:
            if phase.execution not in EXECUTION_MODES:
                problems.append(f"phase {phase.id} has unknown execution mode {phase.execution}")
            for dep in phase.depends_on:
                if dep == phase.id:
                    problems.append(f"phase {phase.id} depends on itself")
                elif dep not in known_phases:
                    problems.append(f"phase {phase.id} depends on unknown phase {dep}")
            for task in phase.tasks:
                if task.priority not in TASK_PRIORITIES:
                    problems.append(f"task {task.id} has unknown priority {task.priority}")
                for blocker in task.blocked_by:
                    if blocker == task.id:
                        problems.append(f"task {task.id} is blocked by itself")
                    elif blocker not in known_tasks:
                        problems.append(f"task {task.id} is blocked by unknown task {blocker}")

        if not problems:
            stuck = _unreachable_nodes(self)
            if stuck:
                problems.append("dependency cycle involving: " + ", ".join(stuck))
        if problems:
            raise _invalid("work plan", problems)


@dataclass(slots=True)
class AnalysisRequestDraft:
    target_worker: str
    query: str
    focus: str | None = None

    @classmethod
    def from_dict(cls, payload: Any) -> AnalysisRequestDraft:
        if not isinstance(payload, Mapping):
            raise InvalidDraftError("Analysis request draft must be an object.")
        problems: list[str] = []
        target = _required_string(
            _pick(payload, "targetAgent", "target_worker"), "targetAgent", problems
        )
        query = _required_string(payload.get("query"), "query", problems)
        focus = payload.get("focus")
        if focus is not None and not isinstance(focus, str):
            problems.append("focus must be a string")
        if problems:
            raise _invalid("analysis request", problems)
        return cls(target_worker=target, query=query, focus=focus or None)

    def validate(self) -> None:
        problems: list[str] = []
        if not self.target_worker or not self.target_worker.strip():
            problems.append("targetAgent is required")
        if not self.query or not self.query.strip():
            problems.append("query is required")
        if problems:
            raise _invalid("analysis request", problems)


def _invalid(kind: str, problems: list[str]) -> InvalidDraftError:
    return InvalidDraftError(f"Invalid {kind} draft: " + "; ".join(problems), problems=problems)


def _duplicates(items: list[str]) -> list[str]:
    seen: set[str] = set()
    dupes: list[str] = []
    for item in items:
        if item in seen and item not in dupes:
            dupes.append(item)
        seen.add(item)
    return dupes


def _unreachable_nodes(draft: WorkPlanDraft) -> list[str]:
    # Nodes: phase start, task, phase done. A node waits on every prerequisite;
    # whatever never becomes runnable sits on a cycle or behind one.
    prerequisites: dict[str, set[str]] = {}
    for phase in draft.phases:
        start = f"phase:{phase.id}"
        done = f"phase-done:{phase.id}"
        prerequisites[start] = {f"phase-done:{dep}" for dep in phase.depends_on}
        prerequisites[done] = {f"task:{task.id}" for task in phase.tasks}
        for task in phase.tasks:
            prerequisites[f"task:{task.id}"] = {start} | {
                f"task:{blocker}" for blocker in task.blocked_by
            }

    resolved: set[str] = set()
    progress = True
    while progress:
        progress = False
        for node, needs in prerequisites.items():
            if node not in resolved and needs <= resolved:
                resolved.add(node)
                progress = True

    stuck: list[str] = []
    for node in prerequisites:
        if node in resolved or node.startswith("phase-done:"):
            continue
        stuck.append(node.split(":", 1)[1])
    return stuck

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any
from uuid import uuid4

from fleetplan.assignment import StaticWorkerDirectory, WorkerDirectory
from fleetplan.drafts import AnalysisRequestDraft, WorkPlanDraft
from fleetplan.errors import (
    AnalysisRequestNotFoundError,
    InvalidTransitionError,
    WorkPlanNotFoundError,
)
from fleetplan.events import (
    ANALYSIS_REQUEST_COMPLETED,
    ANALYSIS_REQUEST_CREATED,
    ANALYSIS_REQUEST_STARTED,
    WORK_PLAN_CREATED,
    WORK_PLAN_DELETED,
    WORK_PLAN_UPDATED,
    EventListener,
    EventNotifier,
)
from fleetplan.models import (
    AnalysisRequest,
    WorkPlan,
    WorkPlanPhase,
    WorkPlanTask,
    utcnow_iso,
)

logger = logging.getLogger(__name__)


class EventBuffer:
    """Events queued while the registry lock is held.

    Payloads are copied when queued so listeners see the state right after
    the mutation that produced the event, not whatever came later.
    """

    def __init__(self) -> None:
        self._events: list[tuple[str, Any]] = []

    def __len__(self) -> int:
        return len(self._events)

    def queue(self, event: str, payload: Any) -> None:
        self._events.append((event, copy.deepcopy(payload)))

    def flush(self, notifier: EventNotifier) -> None:
        events, self._events = self._events, []
        for event, payload in events:
            notifier.emit(event, payload)


class PlanRegistry:
    """Authoritative in-memory store for work plans and analysis requests."""

    def __init__(
        self,
        workers: WorkerDirectory | None = None,
        notifier: EventNotifier | None = None,
    ) -> None:
        self.workers = workers or StaticWorkerDirectory()
        self.notifier = notifier or EventNotifier()
        self._plans: dict[str, WorkPlan] = {}
        self._requests: dict[str, AnalysisRequest] = {}
        self._lock = threading.RLock()
        self._local = threading.local()

    @contextmanager
    def mutation(self) -> Iterator[EventBuffer]:
        """Hold the store lock; publish queued events once it is released.

        Nested use on the same thread shares the outermost buffer.
        """
        outer: EventBuffer | None = getattr(self._local, "buffer", None)
        buffer = outer if outer is not None else EventBuffer()
        try:
            with self._lock:
                self._local.buffer = buffer
                try:
                    yield buffer
                finally:
                    self._local.buffer = outer
        finally:
            if outer is None:
                buffer.flush(self.notifier)

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        return self.notifier.subscribe(listener)

    # -- work plans -----------------------------------------------------------

    def create_work_plan(
        self, creator_id: str, draft: WorkPlanDraft | Mapping[str, Any]
    ) -> WorkPlan:
        if isinstance(draft, WorkPlanDraft):
            draft.validate()
        else:
            draft = WorkPlanDraft.from_dict(draft)

        phases = [
            WorkPlanPhase(
                id=phase.id,
                name=phase.name,
                execution=phase.execution,
                depends_on=list(phase.depends_on),
                tasks=[
                    WorkPlanTask(
                        id=task.id,
                        description=task.description,
                        suggested_class=task.suggested_class,
                        priority=task.priority,
                        blocked_by=list(task.blocked_by),
                        assigned_worker_id=task.assign_to_worker,
                    )
                    for task in phase.tasks
                ],
            )
            for phase in draft.phases
        ]
        now = utcnow_iso()
        plan = WorkPlan(
            id=uuid4().hex,
            name=draft.name,
            description=draft.description,
            created_by=creator_id,
            phases=phases,
            total_tasks=sum(len(phase.tasks) for phase in phases),
            parallelizable_tasks=[
                task.id
                for phase in phases
                if phase.execution == "parallel"
                for task in phase.tasks
            ],
            created_at=now,
            updated_at=now,
        )
        with self.mutation() as events:
            self._plans[plan.id] = plan
            events.queue(WORK_PLAN_CREATED, plan)
        logger.info("Created work plan %r with %d tasks", plan.name, plan.total_tasks)
        return plan

    def get_work_plan(self, plan_id: str) -> WorkPlan | None:
        with self._lock:
            return self._plans.get(plan_id)

    def require_work_plan(self, plan_id: str) -> WorkPlan:
        plan = self.get_work_plan(plan_id)
        if plan is None:
            raise WorkPlanNotFoundError(plan_id)
        return plan

    def list_work_plans_for_creator(self, creator_id: str) -> list[WorkPlan]:
        with self._lock:
            return [plan for plan in self._plans.values() if plan.created_by == creator_id]

    def list_all_work_plans(self) -> list[WorkPlan]:
        with self._lock:
            return list(self._plans.values())

    def approve_work_plan(self, plan_id: str) -> WorkPlan:
        with self.mutation() as events:
            plan = self.require_work_plan(plan_id)
            if plan.status != "draft":
                logger.warning("Cannot approve plan %r: status is %s", plan.name, plan.status)
                raise InvalidTransitionError(
                    f"Cannot approve work plan {plan_id}: status is {plan.status}",
                    current=plan.status,
                    expected=("draft",),
                )
            plan.status = "approved"
            plan.touch()
            events.queue(WORK_PLAN_UPDATED, plan)
        logger.info("Approved work plan %r", plan.name)
        return plan

    def delete_work_plan(self, plan_id: str) -> None:
        with self.mutation() as events:
            plan = self._plans.pop(plan_id, None)
            if plan is None:
                raise WorkPlanNotFoundError(plan_id)
            events.queue(WORK_PLAN_DELETED, {"id": plan_id})
        logger.info("Deleted work plan %r", plan.name)

    # -- analysis requests ----------------------------------------------------

    def create_analysis_request(
        self, creator_id: str, draft: AnalysisRequestDraft | Mapping[str, Any]
    ) -> AnalysisRequest:
        if isinstance(draft, AnalysisRequestDraft):
            draft.validate()
        else:
            draft = AnalysisRequestDraft.from_dict(draft)

        worker = self.workers.get_worker(draft.target_worker)
        request = AnalysisRequest(
            id=uuid4().hex,
            requested_by=creator_id,
            target_worker_id=draft.target_worker,
            target_worker_name=worker.name if worker else None,
            query=draft.query,
            focus=draft.focus,
        )
        with self.mutation() as events:
            self._requests[request.id] = request
            events.queue(ANALYSIS_REQUEST_CREATED, request)
        logger.info(
            "Created analysis request for %s", request.target_worker_name or request.target_worker_id
        )
        return request

    def get_analysis_request(self, request_id: str) -> AnalysisRequest | None:
        with self._lock:
            return self._requests.get(request_id)

    def _require_request(self, request_id: str) -> AnalysisRequest:
        request = self._requests.get(request_id)
        if request is None:
            raise AnalysisRequestNotFoundError(request_id)
        return request

    def start_analysis_request(self, request_id: str) -> AnalysisRequest:
        with self.mutation() as events:
            request = self._require_request(request_id)
            if request.status != "pending":
                raise InvalidTransitionError(
                    f"Cannot start analysis request {request_id}: status is {request.status}",
                    current=request.status,
                    expected=("pending",),
                )
            request.status = "in_progress"
            events.queue(ANALYSIS_REQUEST_STARTED, request)
        return request

    def complete_analysis_request(self, request_id: str, result: str) -> AnalysisRequest:
        with self.mutation() as events:
            request = self._require_request(request_id)
            if request.status != "in_progress":
                raise InvalidTransitionError(
                    f"Cannot complete analysis request {request_id}: status is {request.status}",
                    current=request.status,
                    expected=("in_progress",),
                )
            request.status = "completed"
            request.result = result
            request.completed_at = utcnow_iso()
            events.queue(ANALYSIS_REQUEST_COMPLETED, request)
        logger.info(
            "Completed analysis request from %s",
            request.target_worker_name or request.target_worker_id,
        )
        return request

    def list_pending_analysis_requests_for_workers(
        self, worker_ids: Iterable[str]
    ) -> list[AnalysisRequest]:
        wanted = set(worker_ids)
        with self._lock:
            return [
                request
                for request in self._requests.values()
                if request.status == "pending" and request.target_worker_id in wanted
            ]

    def list_pending_analysis_requests_for_creator(self, creator_id: str) -> list[AnalysisRequest]:
        worker_ids = [worker.id for worker in self.workers.list_workers(creator_id)]
        return self.list_pending_analysis_requests_for_workers(worker_ids)

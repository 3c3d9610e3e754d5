from fleetplan.assignment import StaticWorkerDirectory, WorkerDirectory, WorkerInfo, select_worker
from fleetplan.drafts import AnalysisRequestDraft, PhaseDraft, TaskDraft, WorkPlanDraft
from fleetplan.errors import (
    AnalysisRequestNotFoundError,
    InvalidDraftError,
    InvalidTransitionError,
    NotFoundError,
    TaskNotFoundError,
    WorkerNotFoundError,
    WorkPlanError,
    WorkPlanNotFoundError,
)
from fleetplan.events import EventNotifier
from fleetplan.models import AnalysisRequest, WorkPlan, WorkPlanPhase, WorkPlanTask
from fleetplan.registry import PlanRegistry
from fleetplan.scheduler import Delegation, WorkPlanExecutor, convert_tasks_to_delegations

__version__ = "0.1.0"

__all__ = [
    "AnalysisRequest",
    "AnalysisRequestDraft",
    "AnalysisRequestNotFoundError",
    "Delegation",
    "EventNotifier",
    "InvalidDraftError",
    "InvalidTransitionError",
    "NotFoundError",
    "PhaseDraft",
    "PlanRegistry",
    "StaticWorkerDirectory",
    "TaskDraft",
    "TaskNotFoundError",
    "WorkPlan",
    "WorkPlanDraft",
    "WorkPlanError",
    "WorkPlanExecutor",
    "WorkPlanNotFoundError",
    "WorkPlanPhase",
    "WorkPlanTask",
    "WorkerDirectory",
    "WorkerInfo",
    "WorkerNotFoundError",
    "__version__",
    "convert_tasks_to_delegations",
    "select_worker",
]

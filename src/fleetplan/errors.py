from __future__ import annotations

from collections.abc import Iterable


class WorkPlanError(RuntimeError):
    """Base class for all work-plan engine failures."""


class InvalidDraftError(WorkPlanError):
    """Raised when a plan or analysis draft is structurally incomplete."""

    def __init__(self, message: str, *, problems: list[str] | None = None) -> None:
        super().__init__(message)
        self.problems = list(problems or [])


class InvalidTransitionError(WorkPlanError):
    """Raised when a lifecycle operation is invoked from an incompatible status."""

    def __init__(
        self,
        message: str,
        *,
        current: str | None = None,
        expected: Iterable[str] = (),
    ) -> None:
        super().__init__(message)
        self.current = current
        self.expected = tuple(expected)


class NotFoundError(WorkPlanError, LookupError):
    """Raised when an operation references an unknown identifier."""

    kind = "entity"

    def __init__(self, identifier: str, message: str | None = None) -> None:
        super().__init__(message or f"Unknown {self.kind}: {identifier}")
        self.identifier = identifier


class WorkPlanNotFoundError(NotFoundError):
    kind = "work plan"


class TaskNotFoundError(NotFoundError):
    kind = "task"


class AnalysisRequestNotFoundError(NotFoundError):
    kind = "analysis request"


class WorkerNotFoundError(NotFoundError):
    kind = "worker"

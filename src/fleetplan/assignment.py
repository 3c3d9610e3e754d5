from __future__ import annotations

import math
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class WorkerInfo:
    """Snapshot of a worker as reported by the worker runtime."""

    id: str
    name: str
    worker_class: str
    status: str = "idle"
    context_used: int = 0
    context_limit: int = 0

    @property
    def context_ratio(self) -> float:
        if self.context_limit <= 0:
            return math.inf
        return self.context_used / self.context_limit

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> WorkerInfo:
        return cls(
            id=str(payload["id"]),
            name=str(payload.get("name") or payload["id"]),
            worker_class=str(payload.get("class") or payload.get("worker_class") or ""),
            status=str(payload.get("status") or "idle"),
            context_used=int(payload.get("contextUsed", payload.get("context_used", 0))),
            context_limit=int(payload.get("contextLimit", payload.get("context_limit", 0))),
        )


class WorkerDirectory(ABC):
    @abstractmethod
    def list_workers(self, creator_id: str) -> list[WorkerInfo]:
        """Return the subordinate workers currently known for a creator."""

    @abstractmethod
    def get_worker(self, worker_id: str) -> WorkerInfo | None:
        """Look up a single worker by id."""


class StaticWorkerDirectory(WorkerDirectory):
    """In-memory directory keyed by creator id."""

    def __init__(self, subordinates: Mapping[str, Iterable[WorkerInfo]] | None = None) -> None:
        self._subordinates: dict[str, list[WorkerInfo]] = {
            creator_id: list(workers) for creator_id, workers in (subordinates or {}).items()
        }

    def set_workers(self, creator_id: str, workers: Iterable[WorkerInfo]) -> None:
        self._subordinates[creator_id] = list(workers)

    def update_worker(self, worker: WorkerInfo) -> None:
        for workers in self._subordinates.values():
            for index, existing in enumerate(workers):
                if existing.id == worker.id:
                    workers[index] = worker

    def list_workers(self, creator_id: str) -> list[WorkerInfo]:
        return list(self._subordinates.get(creator_id, []))

    def get_worker(self, worker_id: str) -> WorkerInfo | None:
        for workers in self._subordinates.values():
            for worker in workers:
                if worker.id == worker_id:
                    return worker
        return None


def _lowest_context(workers: Sequence[WorkerInfo]) -> WorkerInfo | None:
    best: WorkerInfo | None = None
    for worker in workers:
        # strict comparison keeps the earliest candidate on exact ties
        if best is None or worker.context_ratio < best.context_ratio:
            best = worker
    return best


def select_worker(
    candidates: Sequence[WorkerInfo],
    suggested_class: str,
    *,
    idle_status: str = "idle",
) -> WorkerInfo | None:
    """Choose the best worker for a task, or ``None`` for an empty pool.

    Preference order: idle worker of the suggested class, any idle worker,
    least-loaded worker of the suggested class, least-loaded worker overall.
    Load is ``context_used / context_limit``.
    """
    same_class = [worker for worker in candidates if worker.worker_class == suggested_class]
    for worker in same_class:
        if worker.status == idle_status:
            return worker
    for worker in candidates:
        if worker.status == idle_status:
            return worker
    if same_class:
        return _lowest_context(same_class)
    return _lowest_context(candidates)

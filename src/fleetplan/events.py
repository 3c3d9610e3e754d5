from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

WORK_PLAN_CREATED = "work_plan_created"
WORK_PLAN_UPDATED = "work_plan_updated"
WORK_PLAN_DELETED = "work_plan_deleted"
TASK_STARTED = "task_started"
ANALYSIS_REQUEST_CREATED = "analysis_request_created"
ANALYSIS_REQUEST_STARTED = "analysis_request_started"
ANALYSIS_REQUEST_COMPLETED = "analysis_request_completed"

EVENT_NAMES = (
    WORK_PLAN_CREATED,
    WORK_PLAN_UPDATED,
    WORK_PLAN_DELETED,
    TASK_STARTED,
    ANALYSIS_REQUEST_CREATED,
    ANALYSIS_REQUEST_STARTED,
    ANALYSIS_REQUEST_COMPLETED,
)

EventListener = Callable[[str, Any], None]


class EventNotifier:
    """Synchronous fan-out of ``(event, payload)`` pairs to subscribers."""

    def __init__(self) -> None:
        self._listeners: list[EventListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                try:
                    self._listeners.remove(listener)
                except ValueError:
                    pass

        return _unsubscribe

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def emit(self, event: str, payload: Any) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event, payload)
            except Exception:
                logger.exception("Listener %r failed while handling %s", listener, event)

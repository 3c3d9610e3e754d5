import logging

import pytest

from fleetplan.events import EVENT_NAMES, EventNotifier


def test_listeners_run_in_subscription_order() -> None:
    notifier = EventNotifier()
    calls: list[tuple[str, str, object]] = []
    notifier.subscribe(lambda event, payload: calls.append(("first", event, payload)))
    notifier.subscribe(lambda event, payload: calls.append(("second", event, payload)))

    notifier.emit("work_plan_created", {"id": "p1"})

    assert calls == [
        ("first", "work_plan_created", {"id": "p1"}),
        ("second", "work_plan_created", {"id": "p1"}),
    ]


def test_unsubscribe_stops_delivery_and_is_idempotent() -> None:
    notifier = EventNotifier()
    seen: list[str] = []
    unsubscribe = notifier.subscribe(lambda event, payload: seen.append(event))

    notifier.emit("work_plan_updated", None)
    unsubscribe()
    unsubscribe()
    notifier.emit("work_plan_updated", None)

    assert seen == ["work_plan_updated"]
    assert notifier.listener_count == 0


def test_failing_listener_does_not_stop_others(caplog: pytest.LogCaptureFixture) -> None:
    notifier = EventNotifier()
    seen: list[str] = []

    def _broken(event: str, payload: object) -> None:
        raise RuntimeError("listener exploded")

    notifier.subscribe(_broken)
    notifier.subscribe(lambda event, payload: seen.append(event))

    with caplog.at_level(logging.ERROR, logger="fleetplan.events"):
        notifier.emit("task_started", {})

    assert seen == ["task_started"]
    assert "listener exploded" in caplog.text


def test_listener_may_unsubscribe_during_emit() -> None:
    notifier = EventNotifier()
    seen: list[str] = []
    handles: list = []

    def _once(event: str, payload: object) -> None:
        seen.append("once")
        handles[0]()

    handles.append(notifier.subscribe(_once))
    notifier.subscribe(lambda event, payload: seen.append("always"))

    notifier.emit("work_plan_updated", None)
    notifier.emit("work_plan_updated", None)

    assert seen == ["once", "always", "always"]


def test_event_vocabulary() -> None:
    assert set(EVENT_NAMES) == {
        "work_plan_created",
        "work_plan_updated",
        "work_plan_deleted",
        "task_started",
        "analysis_request_created",
        "analysis_request_started",
        "analysis_request_completed",
    }

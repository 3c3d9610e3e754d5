from typing import Any

import pytest

from fleetplan.drafts import AnalysisRequestDraft, PhaseDraft, TaskDraft, WorkPlanDraft
from fleetplan.errors import InvalidDraftError


def _draft_payload() -> dict[str, Any]:
    return {
        "name": "Refactor",
        "description": "Split the monolith",
        "phases": [
            {
                "id": "P1",
                "name": "Prepare",
                "execution": "parallel",
                "dependsOn": [],
                "tasks": [
                    {
                        "id": "T1",
                        "description": "Map modules",
                        "suggestedClass": "scout",
                        "priority": "high",
                        "blockedBy": [],
                    },
                    {
                        "id": "T2",
                        "description": "Freeze API",
                        "suggestedClass": "builder",
                        "assignToAgent": "w-7",
                        "priority": "low",
                        "blockedBy": [],
                    },
                ],
            },
            {
                "id": "P2",
                "name": "Execute",
                "execution": "sequential",
                "dependsOn": ["P1"],
                "tasks": [
                    {
                        "id": "T3",
                        "description": "Move code",
                        "suggestedClass": "builder",
                        "priority": "medium",
                        "blockedBy": ["T1"],
                    }
                ],
            },
        ],
    }


def test_from_dict_reads_camel_case_contract() -> None:
    draft = WorkPlanDraft.from_dict(_draft_payload())

    assert draft.name == "Refactor"
    assert draft.description == "Split the monolith"
    assert [phase.id for phase in draft.phases] == ["P1", "P2"]
    assert draft.phases[1].depends_on == ["P1"]
    assert draft.phases[1].execution == "sequential"
    second = draft.phases[0].tasks[1]
    assert second.assign_to_worker == "w-7"
    assert second.suggested_class == "builder"
    assert second.priority == "low"
    assert draft.phases[1].tasks[0].blocked_by == ["T1"]


def test_from_dict_accepts_snake_case_and_defaults() -> None:
    draft = WorkPlanDraft.from_dict(
        {
            "name": "Docs",
            "phases": [
                {
                    "id": "P1",
                    "name": "Write",
                    "execution": "parallel",
                    "tasks": [{"id": "T1", "description": "Write README", "suggested_class": "writer"}],
                }
            ],
        }
    )

    task = draft.phases[0].tasks[0]
    assert draft.description == ""
    assert draft.phases[0].depends_on == []
    assert task.suggested_class == "writer"
    assert task.priority == "medium"
    assert task.blocked_by == []
    assert task.assign_to_worker is None


@pytest.mark.parametrize(
    "mutate",
    [
        lambda payload: payload.pop("name"),
        lambda payload: payload.update(name="   "),
        lambda payload: payload.pop("phases"),
        lambda payload: payload.update(phases="P1"),
        lambda payload: payload.update(phases=[]),
        lambda payload: payload["phases"][0].update(execution="eventually"),
        lambda payload: payload["phases"][0].pop("tasks"),
        lambda payload: payload["phases"][0]["tasks"][0].pop("description"),
        lambda payload: payload["phases"][0]["tasks"][0].update(priority="urgent"),
        lambda payload: payload["phases"][0]["tasks"][0].update(blockedBy="T2"),
    ],
)
def test_incomplete_drafts_are_rejected(mutate) -> None:
    payload = _draft_payload()
    mutate(payload)

    with pytest.raises(InvalidDraftError):
        WorkPlanDraft.from_dict(payload)


def test_non_mapping_draft_is_rejected() -> None:
    with pytest.raises(InvalidDraftError):
        WorkPlanDraft.from_dict(["not", "a", "plan"])


def test_problems_are_collected_together() -> None:
    payload = _draft_payload()
    payload.pop("name")
    payload["phases"][0]["execution"] = "whenever"

    with pytest.raises(InvalidDraftError) as excinfo:
        WorkPlanDraft.from_dict(payload)

    assert "name is required" in excinfo.value.problems
    assert any("execution" in problem for problem in excinfo.value.problems)


def test_duplicate_ids_are_rejected() -> None:
    payload = _draft_payload()
    payload["phases"][1]["tasks"][0]["id"] = "T1"

    with pytest.raises(InvalidDraftError, match="duplicate task id: T1"):
        WorkPlanDraft.from_dict(payload)


def test_dangling_references_are_rejected() -> None:
    payload = _draft_payload()
    payload["phases"][1]["dependsOn"] = ["P9"]
    payload["phases"][1]["tasks"][0]["blockedBy"] = ["T9"]

    with pytest.raises(InvalidDraftError) as excinfo:
        WorkPlanDraft.from_dict(payload)

    problems = excinfo.value.problems
    assert "phase P2 depends on unknown phase P9" in problems
    assert "task T3 is blocked by unknown task T9" in problems


def test_phase_dependency_cycle_is_rejected() -> None:
    payload = _draft_payload()
    payload["phases"][0]["dependsOn"] = ["P2"]

    with pytest.raises(InvalidDraftError, match="dependency cycle"):
        WorkPlanDraft.from_dict(payload)


def test_task_blocked_by_later_phase_is_a_cycle() -> None:
    # T1 waits on T3, but T3's phase waits on T1's phase.
    payload = _draft_payload()
    payload["phases"][0]["tasks"][0]["blockedBy"] = ["T3"]

    with pytest.raises(InvalidDraftError, match="dependency cycle"):
        WorkPlanDraft.from_dict(payload)


def test_task_cycle_inside_phase_is_rejected() -> None:
    payload = _draft_payload()
    payload["phases"][0]["tasks"][0]["blockedBy"] = ["T2"]
    payload["phases"][0]["tasks"][1]["blockedBy"] = ["T1"]

    with pytest.raises(InvalidDraftError, match="dependency cycle"):
        WorkPlanDraft.from_dict(payload)


def test_constructed_draft_validates_graph() -> None:
    draft = WorkPlanDraft(
        name="Loop",
        phases=[
            PhaseDraft(
                id="P1",
                name="Only",
                execution="parallel",
                tasks=[TaskDraft(id="T1", description="spin", blocked_by=["T1"])],
            )
        ],
    )

    with pytest.raises(InvalidDraftError, match="blocked by itself"):
        draft.validate()


def test_analysis_request_draft_requires_target_and_query() -> None:
    draft = AnalysisRequestDraft.from_dict(
        {"targetAgent": "w-1", "query": "Where is auth handled?", "focus": "security"}
    )

    assert draft.target_worker == "w-1"
    assert draft.focus == "security"

    with pytest.raises(InvalidDraftError):
        AnalysisRequestDraft.from_dict({"targetAgent": "w-1"})
    with pytest.raises(InvalidDraftError):
        AnalysisRequestDraft.from_dict({"query": "anything"})

"""Tests for devflow models and request parsing."""

from __future__ import annotations

import re

import pydantic
import pytest

from devflow.errors import ValidationError
from devflow.models import (
    ConfirmationRequest,
    FinishRequest,
    FlowResult,
    Phase,
    ProjectRecord,
    RequirementRequest,
    Task,
    TodoRequest,
    parse_request,
)


class TestPhase:
    def test_ranks_follow_workflow_order(self):
        ranks = [p.rank for p in Phase if p is not Phase.STATUS]
        assert ranks == list(range(7))
        assert Phase.FINISH.rank == 6

    def test_status_has_no_rank(self):
        with pytest.raises(ValueError):
            Phase.STATUS.rank


class TestTask:
    def test_defaults(self):
        task = Task(id="t1", title="Do it")
        assert task.description == ""
        assert task.priority == "medium"
        assert task.estimated_hours is None

    def test_accepts_camel_case(self):
        task = Task.model_validate({"id": "t1", "title": "T", "estimatedHours": 3})
        assert task.estimated_hours == 3

    def test_is_frozen(self):
        task = Task(id="t1", title="T")
        with pytest.raises(pydantic.ValidationError):
            task.title = "changed"

    @pytest.mark.parametrize(
        "fields",
        [
            {"id": "", "title": "T"},
            {"id": "bad id", "title": "T"},
            {"id": "t1", "title": ""},
            {"id": "t1", "title": "T", "priority": "urgent"},
            {"id": "t1", "title": "T", "estimatedHours": 0},
        ],
    )
    def test_invalid(self, fields):
        with pytest.raises(pydantic.ValidationError):
            Task.model_validate(fields)


class TestProjectRecord:
    def test_new_record(self):
        record = ProjectRecord(name="New")
        assert re.match(r"^proj_\d+_[a-z0-9]{6}$", record.id)
        assert record.phase == Phase.INIT
        assert record.tasks == []
        assert record.confirmed_phase is None

    def test_ids_unique(self):
        assert len({ProjectRecord(name="x").id for _ in range(50)}) == 50

    def test_status_not_storable(self):
        with pytest.raises(pydantic.ValidationError):
            ProjectRecord(name="x", phase="status")

    def test_completed_tasks_deduplicated(self):
        record = ProjectRecord(name="x", completed_tasks=["a", "b", "a"])
        assert record.completed_tasks == ["a", "b"]

    def test_duplicate_task_ids_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            ProjectRecord(
                name="x",
                tasks=[Task(id="t", title="A"), Task(id="t", title="B")],
            )

    def test_loads_legacy_camel_case_layout(self):
        record = ProjectRecord.model_validate({
            "id": "proj_1700000000000_abc123",
            "name": "Legacy",
            "phase": "todo",
            "createdAt": "2024-01-01T00:00:00.000Z",
            "updatedAt": "2024-01-02T00:00:00.000Z",
            "functionalRequirements": ["F"],
            "systemDesign": "S",
            "tasks": [{"id": "t1", "title": "T", "estimatedHours": 4}],
            "completedTasks": None,
        })
        assert record.functional_requirements == ["F"]
        assert record.system_design == "S"
        assert record.completed_tasks == []

    def test_progress_helpers(self):
        record = ProjectRecord(
            name="x",
            tasks=[Task(id="a", title="A"), Task(id="b", title="B"), Task(id="c", title="C")],
            completed_tasks=["a", "c", "ghost"],
        )
        assert [t.id for t in record.pending_tasks()] == ["b"]
        assert [t.id for t in record.finished_tasks()] == ["a", "c"]
        assert record.completion_rate() == 67
        assert record.task("b").title == "B"
        assert record.task("zzz") is None

    @pytest.mark.parametrize(("done", "expected"), [(1, 13), (3, 38), (5, 63), (7, 88)])
    def test_completion_rate_rounds_half_up(self, done, expected):
        tasks = [Task(id=f"t{i}", title="T") for i in range(8)]
        record = ProjectRecord(
            name="x", tasks=tasks, completed_tasks=[t.id for t in tasks[:done]]
        )
        assert record.completion_rate() == expected

    def test_completion_rate_without_tasks(self):
        assert ProjectRecord(name="x").completion_rate() == 0

    def test_effective_rank(self):
        record = ProjectRecord(name="x", phase=Phase.CONFIRMATION)
        assert record.effective_rank == Phase.CONFIRMATION.rank
        record.confirmed_phase = Phase.TODO
        assert record.effective_rank == Phase.TODO.rank
        record.confirmed_phase = Phase.REQUIREMENT
        assert record.effective_rank == Phase.CONFIRMATION.rank

    def test_to_response(self):
        record = ProjectRecord(name="x")
        summary = record.to_response()
        assert summary["_v"] == "1.0"
        assert set(summary) == {"_v", "id", "name", "phase", "updatedAt"}
        full = record.to_response(detail="full")
        assert "completedTasks" in full


class TestParseRequest:
    def test_dispatches_on_action(self):
        assert isinstance(parse_request({"action": "requirement"}), RequirementRequest)
        assert isinstance(parse_request({"action": "finish"}), FinishRequest)

    def test_none_treated_as_absent(self):
        request = parse_request({"action": "confirmation", "confirmed": None, "force": None})
        assert isinstance(request, ConfirmationRequest)
        assert request.confirmed is None

    def test_extra_fields_ignored(self):
        request = parse_request({"action": "finish", "force": True, "architecture": "x"})
        assert isinstance(request, FinishRequest)
        assert request.force is True

    def test_tasks_validated(self):
        request = parse_request({"action": "todo", "tasks": [{"id": "t1", "title": "T"}]})
        assert isinstance(request, TodoRequest)
        assert request.tasks[0].priority == "medium"

    def test_errors_aggregated(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_request({
                "action": "todo",
                "tasks": [{"id": "t1"}, {"id": "bad id", "title": "T"}],
            })
        err = exc_info.value
        assert err.phase == "todo"
        assert len(err.errors) == 2
        assert err.code == "VALIDATION_ERROR"

    def test_unknown_action(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_request({"action": "launch"})
        assert exc_info.value.phase is None

    def test_missing_action(self):
        with pytest.raises(ValidationError):
            parse_request({"projectName": "x"})


def test_flow_result_response_drops_none():
    result = FlowResult(message="ok", phase=Phase.INIT, project_id="p1")
    response = result.to_response()
    assert response == {
        "success": True,
        "message": "ok",
        "projectId": "p1",
        "phase": "init",
        "nextSteps": [],
        "_v": "1.0",
    }

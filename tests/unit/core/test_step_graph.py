"""Tests for the workflow step graph."""

from datetime import date, datetime

import pytest

from closeflow.core.errors import (
    InvalidGraph,
    PrerequisiteNotMet,
    StepNotFound,
    TaskNotFound,
    TasksIncomplete,
    ValidationError,
)
from closeflow.core.workflow import StepGraph, StepStatus, WorkflowStep, WorkflowTask, build_steps


def linear_steps():
    return [
        WorkflowStep(id="load", name="Load"),
        WorkflowStep(id="validate", name="Validate", dependencies=("load",)),
        WorkflowStep(id="report", name="Report", dependencies=("validate",)),
    ]


@pytest.fixture
def graph():
    return StepGraph(linear_steps())


class TestConstruction:
    """Test graph validation and initial status derivation."""

    def test_initial_statuses(self, graph):
        assert graph.get("load").status == StepStatus.NOT_STARTED
        assert graph.get("validate").status == StepStatus.BLOCKED
        assert graph.get("report").status == StepStatus.BLOCKED
        assert graph.step_ids == ["load", "validate", "report"]

    def test_cycle_rejected(self):
        steps = [
            WorkflowStep(id="a", name="A", dependencies=("b",)),
            WorkflowStep(id="b", name="B", dependencies=("a",)),
        ]
        with pytest.raises(InvalidGraph) as exc_info:
            StepGraph(steps)
        assert exc_info.value.steps == ["a", "b"]

    def test_unknown_dependency_rejected(self):
        with pytest.raises(InvalidGraph):
            StepGraph([WorkflowStep(id="a", name="A", dependencies=("ghost",))])

    def test_self_dependency_rejected(self):
        with pytest.raises(InvalidGraph):
            StepGraph([WorkflowStep(id="a", name="A", dependencies=("a",))])

    def test_duplicate_id_rejected(self):
        with pytest.raises(InvalidGraph):
            StepGraph([WorkflowStep(id="a", name="A"), WorkflowStep(id="a", name="Again")])

    def test_complete_step_with_unfinished_tasks_rejected(self):
        steps = build_steps([
            {"id": "load", "name": "Load", "status": "complete"},
            {"id": "report", "name": "Report", "dependencies": ["load"], "status": "complete",
             "tasks": [{"name": "Sign off", "completed": False}]},
        ])
        with pytest.raises(InvalidGraph) as exc_info:
            StepGraph(steps)
        assert exc_info.value.steps == ["report"]

    def test_complete_step_with_incomplete_dependency_rejected(self):
        steps = [
            WorkflowStep(id="load", name="Load"),
            WorkflowStep(id="report", name="Report", dependencies=("load",), status=StepStatus.COMPLETE),
        ]
        with pytest.raises(InvalidGraph) as exc_info:
            StepGraph(steps)
        assert exc_info.value.steps == ["report", "load"]

    def test_consistent_completed_steps_accepted(self):
        graph = StepGraph([
            WorkflowStep(id="load", name="Load", status=StepStatus.COMPLETE,
                         tasks=[WorkflowTask(id="t1", name="Pull files", completed=True)]),
            WorkflowStep(id="report", name="Report", dependencies=("load",)),
        ])
        assert graph.get("load").status == StepStatus.COMPLETE
        assert graph.get("report").status == StepStatus.NOT_STARTED

    def test_input_steps_are_copied(self):
        steps = linear_steps()
        graph = StepGraph(steps)
        graph.mark_complete("load")
        assert steps[0].status == StepStatus.NOT_STARTED

    def test_in_progress_definition_counts_as_started(self):
        graph = StepGraph([WorkflowStep(id="a", name="A", status=StepStatus.IN_PROGRESS)])
        assert graph.get("a").status == StepStatus.IN_PROGRESS


class TestMarkComplete:
    """Test completion and cascading unblocks."""

    def test_blocked_step_cannot_complete(self, graph):
        with pytest.raises(PrerequisiteNotMet) as exc_info:
            graph.mark_complete("validate")
        assert exc_info.value.missing == ["Load"]
        assert graph.get("validate").status == StepStatus.BLOCKED

    def test_completion_unblocks_next_step_only(self, graph):
        """Load complete: Validate opens, Report stays blocked."""
        assert graph.mark_complete("load", "ops", at=datetime(2024, 2, 1, 10, 0)) is True

        load = graph.get("load")
        assert load.status == StepStatus.COMPLETE
        assert load.completed_by == "ops"
        assert load.completed_at == datetime(2024, 2, 1, 10, 0)
        assert graph.get("validate").status == StepStatus.NOT_STARTED
        assert graph.get("report").status == StepStatus.BLOCKED

        graph.mark_complete("validate")
        assert graph.get("report").status == StepStatus.NOT_STARTED

    def test_complete_is_idempotent(self, graph):
        graph.mark_complete("load", "ops")
        first = graph.get("load").completed_at
        assert graph.mark_complete("load", "someone.else") is False
        assert graph.get("load").completed_by == "ops"
        assert graph.get("load").completed_at == first

    def test_pending_tasks_block_completion(self):
        graph = StepGraph([
            WorkflowStep(id="a", name="A", tasks=[
                WorkflowTask(id="t1", name="Load Bloomberg data"),
                WorkflowTask(id="t2", name="Load NAV files", completed=True),
            ]),
        ])
        with pytest.raises(TasksIncomplete) as exc_info:
            graph.mark_complete("a")
        assert exc_info.value.pending == ["Load Bloomberg data"]

        graph.toggle_task("a", "t1")
        assert graph.mark_complete("a") is True

    def test_diamond_needs_both_branches(self):
        graph = StepGraph([
            WorkflowStep(id="load", name="Load"),
            WorkflowStep(id="left", name="Left", dependencies=("load",)),
            WorkflowStep(id="right", name="Right", dependencies=("load",)),
            WorkflowStep(id="join", name="Join", dependencies=("left", "right")),
        ])
        graph.mark_complete("load")
        graph.mark_complete("left")
        assert graph.get("join").status == StepStatus.BLOCKED
        graph.mark_complete("right")
        assert graph.get("join").status == StepStatus.NOT_STARTED

    def test_unknown_step(self, graph):
        with pytest.raises(StepNotFound):
            graph.mark_complete("nope")


class TestEdits:
    """Test owner, due date and task edits."""

    def test_assign_owner(self, graph):
        graph.assign_owner("load", " ops.team ")
        assert graph.get("load").owner == "ops.team"

    def test_assign_blank_owner(self, graph):
        with pytest.raises(ValidationError):
            graph.assign_owner("load", "  ")

    def test_due_date_before_prerequisite_warns(self, graph):
        assert graph.set_due_date("load", date(2024, 2, 5)) == []

        warnings = graph.set_due_date("validate", date(2024, 2, 3))
        assert len(warnings) == 1
        assert "Load" in warnings[0]
        # The date is still applied
        assert graph.get("validate").due_date == date(2024, 2, 3)

    def test_due_date_after_prerequisite_is_clean(self, graph):
        graph.set_due_date("load", date(2024, 2, 5))
        assert graph.set_due_date("validate", date(2024, 2, 6)) == []

    def test_add_and_toggle_task(self, graph):
        task = graph.add_task("load", "  Load custodian files ", "/files")
        assert task.name == "Load custodian files"
        assert task.link == "/files"
        assert graph.get("load").status == StepStatus.NOT_STARTED

        toggled = graph.toggle_task("load", task.id)
        assert toggled.completed is True
        assert graph.get("load").status == StepStatus.IN_PROGRESS

        assert graph.toggle_task("load", task.id).completed is False

    def test_blank_task_name(self, graph):
        with pytest.raises(ValidationError):
            graph.add_task("load", " ")

    def test_unknown_task(self, graph):
        with pytest.raises(TaskNotFound):
            graph.toggle_task("load", "task-missing")

    def test_completed_step_tasks_are_frozen(self, graph):
        graph.mark_complete("load")
        with pytest.raises(ValidationError):
            graph.add_task("load", "Late task")

    def test_comment_count(self, graph):
        assert graph.increment_comment_count("report") == 1
        assert graph.increment_comment_count("report") == 2
        assert graph.get("report").comment_count == 2

    def test_get_returns_copies(self, graph):
        step = graph.get("load")
        step.owner = "mutated"
        assert graph.get("load").owner is None

    def test_dependents_and_prerequisites(self, graph):
        assert graph.dependents("load") == ["validate"]
        assert [s.id for s in graph.prerequisites("report")] == ["validate"]
        assert graph.prerequisites("load") == []

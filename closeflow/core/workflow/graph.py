"""Dependency graph of monthly process steps for one batch."""

import copy
import logging
import uuid
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

from closeflow.core.errors import (
    PrerequisiteNotMet,
    StepNotFound,
    TaskNotFound,
    TasksIncomplete,
    ValidationError,
)
from . import analyzer
from .models import StepStatus, WorkflowStep, WorkflowTask

logger = logging.getLogger(__name__)


class StepGraph:
    """
    Holds the workflow steps of one batch and their dependency edges.

    The definition is validated on construction, so a cyclic or dangling
    template never produces a graph. Every mutation is followed by
    ``analyzer.recompute`` so blocked flags always reflect the dependencies.
    """

    def __init__(self, steps: Iterable[WorkflowStep]):
        ordered = [copy.deepcopy(step) for step in steps]
        for index, step in enumerate(ordered):
            step.index = index
            step.dependencies = tuple(step.dependencies)
            if step.status == StepStatus.IN_PROGRESS:
                step.started = True
        analyzer.validate(ordered)

        self._steps: Dict[str, WorkflowStep] = {step.id: step for step in ordered}
        self.recompute()

    def __len__(self) -> int:
        return len(self._steps)

    def __contains__(self, step_id: str) -> bool:
        return step_id in self._steps

    @property
    def step_ids(self) -> List[str]:
        return list(self._steps)

    def snapshot(self) -> List[WorkflowStep]:
        """Deep copies of every step in creation order."""
        return [copy.deepcopy(step) for step in self._steps.values()]

    def get(self, step_id: str) -> WorkflowStep:
        return copy.deepcopy(self._get(step_id))

    def dependents(self, step_id: str) -> List[str]:
        self._get(step_id)
        return [s.id for s in self._steps.values() if step_id in s.dependencies]

    def prerequisites(self, step_id: str) -> List[WorkflowStep]:
        step = self._get(step_id)
        return [copy.deepcopy(self._steps[dep]) for dep in step.dependencies]

    def mark_complete(
        self,
        step_id: str,
        actor: Optional[str] = None,
        *,
        at: Optional[datetime] = None,
    ) -> bool:
        """
        Complete a step and unblock its dependents.

        Returns False when the step was already complete.

        Raises:
            PrerequisiteNotMet: a dependency is not complete
            TasksIncomplete: a task on the step is unfinished
        """
        step = self._get(step_id)
        if step.status == StepStatus.COMPLETE:
            return False

        blocking = analyzer.blocked_by(list(self._steps.values()), step_id)
        if blocking:
            raise PrerequisiteNotMet(
                f"Step '{step.name}' is blocked by: {', '.join(blocking)}",
                missing=blocking,
            )
        pending = step.pending_tasks
        if pending:
            raise TasksIncomplete(step_id, [t.name for t in pending])

        step.status = StepStatus.COMPLETE
        step.started = True
        step.completed_at = at or datetime.utcnow()
        step.completed_by = actor
        changed = self.recompute()
        logger.info("Step %s completed by %s; status changes: %s", step_id, actor, changed)
        return True

    def assign_owner(self, step_id: str, user_id: str) -> None:
        step = self._get(step_id)
        user_id = (user_id or "").strip()
        if not user_id:
            raise ValidationError("Owner is required", field="userId")
        step.owner = user_id

    def set_due_date(self, step_id: str, due_date: date) -> List[str]:
        """
        Set a due date. Returns non-fatal warnings when it falls before the
        due date of a prerequisite.
        """
        step = self._get(step_id)
        warnings = []
        for dep in step.dependencies:
            prerequisite = self._steps[dep]
            if prerequisite.due_date and due_date < prerequisite.due_date:
                warnings.append(
                    f"Due date is before prerequisite '{prerequisite.name}' "
                    f"(due {prerequisite.due_date.isoformat()})"
                )
        step.due_date = due_date
        return warnings

    def add_task(self, step_id: str, name: str, link: Optional[str] = None) -> WorkflowTask:
        step = self._get(step_id)
        self._ensure_editable(step)
        name = (name or "").strip()
        if not name:
            raise ValidationError("Task name is required", field="name")
        task = WorkflowTask(id=f"task-{uuid.uuid4().hex[:8]}", name=name, link=link)
        step.tasks.append(task)
        self.recompute()
        return copy.deepcopy(task)

    def toggle_task(self, step_id: str, task_id: str) -> WorkflowTask:
        step = self._get(step_id)
        self._ensure_editable(step)
        for task in step.tasks:
            if task.id == task_id:
                task.completed = not task.completed
                if task.completed:
                    step.started = True
                self.recompute()
                return copy.deepcopy(task)
        raise TaskNotFound(step_id, task_id)

    def increment_comment_count(self, step_id: str) -> int:
        step = self._get(step_id)
        step.comment_count += 1
        return step.comment_count

    def recompute(self) -> Dict[str, StepStatus]:
        """Apply ``analyzer.recompute``; returns the steps whose status changed."""
        statuses = analyzer.recompute(list(self._steps.values()))
        changed = {}
        for step_id, status in statuses.items():
            step = self._steps[step_id]
            if step.status != status:
                changed[step_id] = status
                step.status = status
        return changed

    def _get(self, step_id: str) -> WorkflowStep:
        try:
            return self._steps[step_id]
        except KeyError:
            raise StepNotFound(step_id) from None

    @staticmethod
    def _ensure_editable(step: WorkflowStep) -> None:
        if step.status == StepStatus.COMPLETE:
            raise ValidationError(f"Tasks of completed step '{step.name}' cannot be changed")

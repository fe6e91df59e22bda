"""Read-only computations over a workflow step snapshot.

Every function here is pure: it never mutates the steps it is given and
returns the same result for the same snapshot and ``today``.
"""

import heapq
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from closeflow.core.errors import InvalidGraph
from .models import CriticalPath, StepStatus, WorkflowProgress, WorkflowStep


def _index(steps: Iterable[WorkflowStep]) -> Dict[str, WorkflowStep]:
    return {step.id: step for step in steps}


def validate(steps: Sequence[WorkflowStep]) -> None:
    """
    Check ids and edges form a DAG and declared completions are consistent.

    Raises:
        InvalidGraph: duplicate ids, unknown or self dependencies, a cycle,
            or a complete step with unfinished tasks or incomplete dependencies
    """
    seen = set()
    for step in steps:
        if step.id in seen:
            raise InvalidGraph(f"Duplicate workflow step id: {step.id}", [step.id])
        seen.add(step.id)

    for step in steps:
        for dep in step.dependencies:
            if dep == step.id:
                raise InvalidGraph(f"Step {step.id} depends on itself", [step.id])
            if dep not in seen:
                raise InvalidGraph(f"Step {step.id} depends on unknown step {dep}", [step.id, dep])

    topological_order(steps)

    by_id = _index(steps)
    for step in steps:
        if step.status != StepStatus.COMPLETE:
            continue
        if step.pending_tasks:
            raise InvalidGraph(f"Step {step.id} is complete but has unfinished tasks", [step.id])
        open_deps = [dep for dep in step.dependencies if by_id[dep].status != StepStatus.COMPLETE]
        if open_deps:
            raise InvalidGraph(
                f"Step {step.id} is complete but depends on incomplete steps: {', '.join(open_deps)}",
                [step.id, *open_deps],
            )


def topological_order(steps: Sequence[WorkflowStep]) -> List[str]:
    """Kahn's algorithm; among ready steps the earliest created comes first."""
    by_id = _index(steps)
    remaining = {step.id: len(set(step.dependencies)) for step in steps}
    dependents: Dict[str, List[str]] = {step.id: [] for step in steps}
    for step in steps:
        for dep in set(step.dependencies):
            if dep in dependents:
                dependents[dep].append(step.id)

    ready = [(step.index, step.id) for step in steps if remaining[step.id] == 0]
    heapq.heapify(ready)
    order: List[str] = []
    while ready:
        _, step_id = heapq.heappop(ready)
        order.append(step_id)
        for child in dependents[step_id]:
            remaining[child] -= 1
            if remaining[child] == 0:
                heapq.heappush(ready, (by_id[child].index, child))

    if len(order) != len(steps):
        cyclic = sorted(sid for sid, count in remaining.items() if count > 0)
        raise InvalidGraph(f"Workflow dependencies contain a cycle: {', '.join(cyclic)}", cyclic)
    return order


def is_started(step: WorkflowStep) -> bool:
    return (
        step.status in (StepStatus.IN_PROGRESS, StepStatus.COMPLETE)
        or step.started
        or any(task.completed for task in step.tasks)
    )


def recompute(steps: Sequence[WorkflowStep]) -> Dict[str, StepStatus]:
    """
    Derive every step's status from its dependencies.

    Evaluated in topological order, so completing one step clears blocks
    along the whole chain in a single call.
    """
    by_id = _index(steps)
    statuses: Dict[str, StepStatus] = {}
    for step_id in topological_order(steps):
        step = by_id[step_id]
        if step.status == StepStatus.COMPLETE:
            statuses[step_id] = StepStatus.COMPLETE
        elif any(statuses[dep] != StepStatus.COMPLETE for dep in step.dependencies):
            statuses[step_id] = StepStatus.BLOCKED
        elif is_started(step):
            statuses[step_id] = StepStatus.IN_PROGRESS
        else:
            statuses[step_id] = StepStatus.NOT_STARTED
    return statuses


def blocked_steps(steps: Sequence[WorkflowStep]) -> List[str]:
    statuses = recompute(steps)
    return [step.id for step in steps if statuses[step.id] == StepStatus.BLOCKED]


def blocked_by(steps: Sequence[WorkflowStep], step_id: str) -> List[str]:
    """Names of the dependencies of ``step_id`` that are not complete."""
    by_id = _index(steps)
    step = by_id[step_id]
    if step.status == StepStatus.COMPLETE:
        return []
    return [
        by_id[dep].name
        for dep in step.dependencies
        if by_id[dep].status != StepStatus.COMPLETE
    ]


def step_progress(step: WorkflowStep) -> int:
    if step.status == StepStatus.COMPLETE:
        return 100
    if not step.tasks:
        return 0
    done = sum(1 for task in step.tasks if task.completed)
    return _round_percent(done, len(step.tasks))


def is_overdue(step: WorkflowStep, today: date) -> bool:
    return step.due_date is not None and step.due_date < today and step.status != StepStatus.COMPLETE


def overdue_steps(steps: Sequence[WorkflowStep], today: date) -> List[str]:
    return [step.id for step in steps if is_overdue(step, today)]


def critical_path(steps: Sequence[WorkflowStep], today: date) -> CriticalPath:
    """
    Longest dependency chain from a step without dependencies to a step
    without dependents.

    Length is the step count, or the summed ``estimated_days`` when any step
    declares a duration (undeclared durations count as one day). Ties go to
    the earliest created step.
    """
    if not steps:
        return CriticalPath(step_ids=(), length=0, estimated_completion_date=None)

    by_id = _index(steps)
    weighted = any(step.estimated_days is not None for step in steps)

    def weight(step: WorkflowStep) -> int:
        if weighted and step.estimated_days is not None:
            return step.estimated_days
        return 1

    best: Dict[str, int] = {}
    previous: Dict[str, Optional[str]] = {}
    for step_id in topological_order(steps):
        step = by_id[step_id]
        chosen: Optional[str] = None
        for dep in sorted(set(step.dependencies), key=lambda d: by_id[d].index):
            if chosen is None or best[dep] > best[chosen]:
                chosen = dep
        best[step_id] = weight(step) + (best[chosen] if chosen else 0)
        previous[step_id] = chosen

    has_dependents = {dep for step in steps for dep in step.dependencies}
    end: Optional[str] = None
    for step in sorted(steps, key=lambda s: s.index):
        if step.id in has_dependents:
            continue
        if end is None or best[step.id] > best[end]:
            end = step.id

    path: List[str] = []
    cursor: Optional[str] = end
    while cursor is not None:
        path.append(cursor)
        cursor = previous[cursor]
    path.reverse()

    remaining_days = sum(_remaining_days(by_id[sid], weight(by_id[sid])) for sid in path)
    return CriticalPath(
        step_ids=tuple(path),
        length=best[end],
        estimated_completion_date=today + timedelta(days=remaining_days),
    )


def progress(batch_id: str, steps: Sequence[WorkflowStep], today: date) -> WorkflowProgress:
    """Roll step completion up into a batch-level percentage and status."""
    total = len(steps)
    if total == 0:
        return WorkflowProgress(batch_id, 0, 0, 0, StepStatus.NOT_STARTED, None)

    completed = sum(1 for step in steps if step.status == StepStatus.COMPLETE)
    percentage = _round_percent(completed, total)
    if completed < total:
        # 100 is reserved for a fully complete workflow
        percentage = min(percentage, 99)

    if percentage == 100:
        status = StepStatus.COMPLETE
    elif any(is_started(step) for step in steps):
        status = StepStatus.IN_PROGRESS
    else:
        status = StepStatus.NOT_STARTED

    estimated = None
    if status != StepStatus.COMPLETE:
        estimated = critical_path(steps, today).estimated_completion_date
    return WorkflowProgress(batch_id, total, completed, percentage, status, estimated)


def _round_percent(part: int, whole: int) -> int:
    """round(100 * part / whole) with halves rounded up, in integer arithmetic."""
    return (200 * part + whole) // (2 * whole)


def _remaining_days(step: WorkflowStep, duration: int) -> int:
    if step.status == StepStatus.COMPLETE:
        return 0
    left = 100 - step_progress(step)
    return -(-duration * left // 100)

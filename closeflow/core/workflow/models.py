"""Workflow step types for the monthly process."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class StepStatus(str, Enum):
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    BLOCKED = "blocked"
    COMPLETE = "complete"


@dataclass
class WorkflowTask:
    id: str
    name: str
    completed: bool = False
    link: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"id": self.id, "name": self.name, "completed": self.completed}
        if self.link:
            data["link"] = self.link
        return data


@dataclass
class WorkflowStep:
    """
    One unit of the monthly process.

    ``status`` is owned by the graph: BLOCKED and NOT_STARTED/IN_PROGRESS are
    recomputed from the dependencies after every mutation. ``dependencies``
    keeps declaration order for display but is treated as a set.
    """

    id: str
    name: str
    description: str = ""
    status: StepStatus = StepStatus.NOT_STARTED
    dependencies: Tuple[str, ...] = ()
    owner: Optional[str] = None
    due_date: Optional[date] = None
    estimated_days: Optional[int] = None
    tasks: List[WorkflowTask] = field(default_factory=list)
    comment_count: int = 0
    started: bool = False
    completed_at: Optional[datetime] = None
    completed_by: Optional[str] = None
    index: int = 0  # creation order, used for deterministic tie-breaks

    @property
    def is_complete(self) -> bool:
        return self.status == StepStatus.COMPLETE

    @property
    def pending_tasks(self) -> List[WorkflowTask]:
        return [t for t in self.tasks if not t.completed]


@dataclass(frozen=True)
class CriticalPath:
    step_ids: Tuple[str, ...]
    length: int
    estimated_completion_date: Optional[date] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stepIds": list(self.step_ids),
            "length": self.length,
            "estimatedCompletionDate": (
                self.estimated_completion_date.isoformat() if self.estimated_completion_date else None
            ),
        }


@dataclass(frozen=True)
class WorkflowProgress:
    batch_id: str
    total_steps: int
    completed_steps: int
    percentage: int
    status: StepStatus
    estimated_completion_date: Optional[date] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "batchId": self.batch_id,
            "totalSteps": self.total_steps,
            "completedSteps": self.completed_steps,
            "percentage": self.percentage,
            "status": self.status.value,
        }
        if self.estimated_completion_date:
            data["estimatedCompletionDate"] = self.estimated_completion_date.isoformat()
        return data

"""Immutable audit records: approval decisions and comments."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class ApprovalAction(str, Enum):
    """Decision recorded at an approval level."""

    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


# Level recorded for a rejection issued after final approval
REVERSAL_LEVEL = 0


@dataclass(frozen=True)
class ApprovalRecord:
    """One decision at one level. Never mutated once created."""

    id: str
    batch_id: str
    level: int
    action: ApprovalAction
    approver: str
    timestamp: datetime
    reason: Optional[str] = None
    sequence: int = 0

    @property
    def is_reversal(self) -> bool:
        return self.level == REVERSAL_LEVEL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "batchId": self.batch_id,
            "level": self.level,
            "action": self.action.value,
            "user": self.approver,
            "timestamp": self.timestamp.isoformat(),
            "reason": self.reason,
        }


@dataclass(frozen=True)
class Comment:
    """Free-text annotation on a batch."""

    id: str
    batch_id: str
    author: str
    text: str
    timestamp: datetime
    sequence: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "author": self.author,
            "timestamp": self.timestamp.isoformat(),
            "text": self.text,
        }


@dataclass(frozen=True)
class WorkflowComment:
    """Free-text annotation on one workflow step."""

    id: str
    batch_id: str
    step_id: str
    author: str
    text: str
    timestamp: datetime
    sequence: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "stepId": self.step_id,
            "username": self.author,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
        }

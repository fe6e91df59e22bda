"""Audit trail of approval decisions and comments."""

from .records import ApprovalAction, ApprovalRecord, Comment, WorkflowComment, REVERSAL_LEVEL
from .store import MemoryAuditStore, SqlAuditStore
from .trail import AuditTrail

__all__ = [
    "ApprovalAction",
    "ApprovalRecord",
    "Comment",
    "WorkflowComment",
    "REVERSAL_LEVEL",
    "MemoryAuditStore",
    "SqlAuditStore",
    "AuditTrail",
]

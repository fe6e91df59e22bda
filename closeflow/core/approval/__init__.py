"""Three-level approval workflow for report batches.

Implements the approval status table and the per-batch state machine.
"""

from .states import ApprovalStatus, ApprovalTransition, VALID_TRANSITIONS
from .machine import ApprovalStateMachine

__all__ = [
    "ApprovalStatus",
    "ApprovalTransition",
    "VALID_TRANSITIONS",
    "ApprovalStateMachine",
]

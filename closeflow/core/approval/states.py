"""Approval workflow states and transitions.

State Machine Diagram:

    ┌──────────────┐  RESUBMIT   ┌──────────────┐
    │ READY_FOR_L1 │◄────────────┤ L1_REJECTED  │
    └──────┬───────┘             └──────▲───────┘
           │ APPROVE_L1                 │ REJECT_L1 (from READY_FOR_L1)
    ┌──────▼───────┐  REJECT_L2  ┌──────┴───────┐
    │ L1_APPROVED  ├────────────►│ L2_REJECTED  │──► RESUBMIT
    └──────┬───────┘             └──────────────┘
           │ APPROVE_L2
    ┌──────▼───────┐  REJECT_L3  ┌──────────────┐
    │ L2_APPROVED  ├────────────►│ L3_REJECTED  │──► RESUBMIT
    └──────┬───────┘             └──────────────┘
           │ APPROVE_L3
    ┌──────▼─────────┐
    │ APPROVED_FINAL │──► REJECT_FINAL ──► READY_FOR_L1 (reopened)
    └────────────────┘

Every rejection resets the chain: after RESUBMIT all three levels must
approve again.
"""

from enum import Enum
from typing import Dict, FrozenSet, NamedTuple, Optional, Set

from closeflow.core.rbac.permissions import Action, Permission, Resource


class ApprovalStatus(str, Enum):
    """Approval status of a report batch."""

    READY_FOR_L1 = "READY_FOR_L1"
    L1_APPROVED = "L1_APPROVED"
    L2_APPROVED = "L2_APPROVED"
    APPROVED_FINAL = "APPROVED_FINAL"
    L1_REJECTED = "L1_REJECTED"
    L2_REJECTED = "L2_REJECTED"
    L3_REJECTED = "L3_REJECTED"


class ApprovalTransition(str, Enum):
    """Actions that trigger state transitions."""

    APPROVE_L1 = "approve_l1"        # READY_FOR_L1 → L1_APPROVED
    APPROVE_L2 = "approve_l2"        # L1_APPROVED → L2_APPROVED
    APPROVE_L3 = "approve_l3"        # L2_APPROVED → APPROVED_FINAL
    REJECT_L1 = "reject_l1"          # READY_FOR_L1 → L1_REJECTED
    REJECT_L2 = "reject_l2"          # L1_APPROVED → L2_REJECTED
    REJECT_L3 = "reject_l3"          # L2_APPROVED → L3_REJECTED
    REJECT_FINAL = "reject_final"    # APPROVED_FINAL → READY_FOR_L1 (reopened)
    RESUBMIT = "resubmit"            # L{n}_REJECTED → READY_FOR_L1


class TransitionRule(NamedTuple):
    """Defines a valid state transition."""
    from_state: ApprovalStatus
    to_state: ApprovalStatus
    transition: ApprovalTransition
    requires_permission: Optional[str] = None
    min_reason_length: int = 0  # 0 = no reason required


def _perm(action: Action) -> str:
    return str(Permission(Resource.APPROVALS, action))


# Minimum trimmed reason lengths
REJECT_REASON_MIN = 1
L3_REJECT_REASON_MIN = 20
FINAL_REJECT_REASON_MIN = 30


TRANSITION_RULES: list[TransitionRule] = [
    # Approval chain
    TransitionRule(ApprovalStatus.READY_FOR_L1, ApprovalStatus.L1_APPROVED,
                   ApprovalTransition.APPROVE_L1, _perm(Action.LEVEL1)),
    TransitionRule(ApprovalStatus.L1_APPROVED, ApprovalStatus.L2_APPROVED,
                   ApprovalTransition.APPROVE_L2, _perm(Action.LEVEL2)),
    TransitionRule(ApprovalStatus.L2_APPROVED, ApprovalStatus.APPROVED_FINAL,
                   ApprovalTransition.APPROVE_L3, _perm(Action.LEVEL3)),

    # Rejections from the pending state of each level
    TransitionRule(ApprovalStatus.READY_FOR_L1, ApprovalStatus.L1_REJECTED,
                   ApprovalTransition.REJECT_L1, _perm(Action.LEVEL1), REJECT_REASON_MIN),
    TransitionRule(ApprovalStatus.L1_APPROVED, ApprovalStatus.L2_REJECTED,
                   ApprovalTransition.REJECT_L2, _perm(Action.LEVEL2), REJECT_REASON_MIN),
    TransitionRule(ApprovalStatus.L2_APPROVED, ApprovalStatus.L3_REJECTED,
                   ApprovalTransition.REJECT_L3, _perm(Action.LEVEL3), L3_REJECT_REASON_MIN),

    # Reopening a fully approved batch
    TransitionRule(ApprovalStatus.APPROVED_FINAL, ApprovalStatus.READY_FOR_L1,
                   ApprovalTransition.REJECT_FINAL, _perm(Action.REJECT_FINAL), FINAL_REJECT_REASON_MIN),

    # Rework after a rejection
    TransitionRule(ApprovalStatus.L1_REJECTED, ApprovalStatus.READY_FOR_L1,
                   ApprovalTransition.RESUBMIT, _perm(Action.RESUBMIT)),
    TransitionRule(ApprovalStatus.L2_REJECTED, ApprovalStatus.READY_FOR_L1,
                   ApprovalTransition.RESUBMIT, _perm(Action.RESUBMIT)),
    TransitionRule(ApprovalStatus.L3_REJECTED, ApprovalStatus.READY_FOR_L1,
                   ApprovalTransition.RESUBMIT, _perm(Action.RESUBMIT)),
]

# Build lookup tables for efficient access
VALID_TRANSITIONS: Dict[ApprovalStatus, Set[ApprovalTransition]] = {}
TRANSITION_TARGETS: Dict[tuple[ApprovalStatus, ApprovalTransition], TransitionRule] = {}

for rule in TRANSITION_RULES:
    VALID_TRANSITIONS.setdefault(rule.from_state, set()).add(rule.transition)
    TRANSITION_TARGETS[(rule.from_state, rule.transition)] = rule


APPROVE_TRANSITIONS: Dict[int, ApprovalTransition] = {
    1: ApprovalTransition.APPROVE_L1,
    2: ApprovalTransition.APPROVE_L2,
    3: ApprovalTransition.APPROVE_L3,
}

REJECT_TRANSITIONS: Dict[int, ApprovalTransition] = {
    1: ApprovalTransition.REJECT_L1,
    2: ApprovalTransition.REJECT_L2,
    3: ApprovalTransition.REJECT_L3,
}

# The only status from which level N may be approved or rejected
LEVEL_PREDECESSOR: Dict[int, ApprovalStatus] = {
    1: ApprovalStatus.READY_FOR_L1,
    2: ApprovalStatus.L1_APPROVED,
    3: ApprovalStatus.L2_APPROVED,
}

# Statuses in which level N counts as approved in the current chain
LEVEL_SATISFIED: Dict[int, FrozenSet[ApprovalStatus]] = {
    1: frozenset({ApprovalStatus.L1_APPROVED, ApprovalStatus.L2_APPROVED, ApprovalStatus.APPROVED_FINAL}),
    2: frozenset({ApprovalStatus.L2_APPROVED, ApprovalStatus.APPROVED_FINAL}),
    3: frozenset({ApprovalStatus.APPROVED_FINAL}),
}

REJECTED_STATES: FrozenSet[ApprovalStatus] = frozenset({
    ApprovalStatus.L1_REJECTED,
    ApprovalStatus.L2_REJECTED,
    ApprovalStatus.L3_REJECTED,
})

REJECTED_AT_LEVEL: Dict[ApprovalStatus, int] = {
    ApprovalStatus.L1_REJECTED: 1,
    ApprovalStatus.L2_REJECTED: 2,
    ApprovalStatus.L3_REJECTED: 3,
}

# Display labels used by the level pages
OVERALL_STATUS_LABELS: Dict[ApprovalStatus, str] = {
    ApprovalStatus.READY_FOR_L1: "Ready for Approval",
    ApprovalStatus.L1_APPROVED: "Level 1 Approved",
    ApprovalStatus.L2_APPROVED: "Level 2 Approved",
    ApprovalStatus.APPROVED_FINAL: "Approved (Final)",
    ApprovalStatus.L1_REJECTED: "Rejected at Level 1",
    ApprovalStatus.L2_REJECTED: "Rejected at Level 2",
    ApprovalStatus.L3_REJECTED: "Rejected at Level 3",
}


def can_transition(from_state: ApprovalStatus, transition: ApprovalTransition) -> bool:
    """Check if a transition is valid from the given state."""
    return transition in VALID_TRANSITIONS.get(from_state, set())


def get_transition_rule(
    from_state: ApprovalStatus, transition: ApprovalTransition
) -> Optional[TransitionRule]:
    """Get the transition rule for a state/action combination."""
    return TRANSITION_TARGETS.get((from_state, transition))


def get_target_state(
    from_state: ApprovalStatus, transition: ApprovalTransition
) -> Optional[ApprovalStatus]:
    rule = get_transition_rule(from_state, transition)
    return rule.to_state if rule else None


def is_level_approved(status: ApprovalStatus, level: int) -> bool:
    return status in LEVEL_SATISFIED[level]

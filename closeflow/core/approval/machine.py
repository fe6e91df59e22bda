"""Approval state machine implementation.

Handles level-by-level transitions for one report batch with validation,
permission checking, audit recording and post-commit callbacks.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from closeflow.core.audit import ApprovalAction, ApprovalRecord, AuditTrail, Comment, REVERSAL_LEVEL
from closeflow.core.errors import AlreadyApproved, PrerequisiteNotMet, ValidationError
from closeflow.core.rbac.checker import PermissionChecker, ensure_permission
from .states import (
    APPROVE_TRANSITIONS,
    LEVEL_PREDECESSOR,
    REJECT_TRANSITIONS,
    REJECTED_AT_LEVEL,
    ApprovalStatus,
    ApprovalTransition,
    TransitionRule,
    can_transition,
    get_transition_rule,
    is_level_approved,
)

logger = logging.getLogger(__name__)

LEVELS = (1, 2, 3)


class ApprovalStateMachine:
    """
    State machine for one batch's three-level approval.

    Manages transitions between approval statuses with:
    - Sequencing (level N only from level N's predecessor status)
    - Level-specific reason rules for rejections
    - Permission checking when the caller's permissions are supplied
    - Audit recording of every decision
    - Callback hooks for side effects such as notifications
    """

    def __init__(
        self,
        batch_id: str,
        audit: AuditTrail,
        *,
        status: ApprovalStatus = ApprovalStatus.READY_FOR_L1,
    ):
        self.batch_id = batch_id
        self.audit = audit
        self._status = status
        self.reopened = False
        self.reopen_count = 0
        self._transition_history: List[Dict[str, Any]] = []
        self._callbacks: Dict[ApprovalTransition, List[Callable]] = {}

    @property
    def status(self) -> ApprovalStatus:
        return self._status

    def can_perform(
        self,
        transition: ApprovalTransition,
        permissions: Optional[Iterable[str]] = None,
    ) -> bool:
        """Check if a transition can be performed from the current status."""
        rule = get_transition_rule(self._status, transition)
        if rule is None:
            return False
        if permissions is not None and rule.requires_permission:
            return PermissionChecker(permissions).has_permission(rule.requires_permission)
        return True

    def get_available_transitions(
        self, permissions: Optional[Iterable[str]] = None
    ) -> List[ApprovalTransition]:
        permissions = list(permissions) if permissions is not None else None
        return [t for t in ApprovalTransition if self.can_perform(t, permissions)]

    def approve(
        self,
        level: int,
        approver: str,
        *,
        permissions: Optional[Iterable[str]] = None,
    ) -> ApprovalRecord:
        """
        Approve the batch at ``level``.

        Raises:
            AccessDenied: caller lacks the level permission
            AlreadyApproved: level already approved in the current chain
            PrerequisiteNotMet: batch is not at the level's predecessor status
        """
        rule = self._level_rule(level, APPROVE_TRANSITIONS, permissions)
        record = self.audit.record_decision(self.batch_id, level, ApprovalAction.APPROVED, approver)
        self._commit(rule, approver, record)
        if self._status == ApprovalStatus.APPROVED_FINAL:
            self.reopened = False
        return record

    def reject(
        self,
        level: int,
        approver: str,
        reason: Optional[str],
        *,
        permissions: Optional[Iterable[str]] = None,
    ) -> ApprovalRecord:
        """
        Reject the batch at ``level`` and reset the approval chain.

        Level 1 and 2 need any non-empty reason; level 3 needs 20 characters.
        """
        rule = self._level_rule(level, REJECT_TRANSITIONS, permissions)
        reason = self._validate_reason(reason, rule, f"level {level} rejection")
        record = self.audit.record_decision(
            self.batch_id, level, ApprovalAction.REJECTED, approver, reason
        )
        self._commit(rule, approver, record)
        return record

    def reject_final(
        self,
        approver: str,
        reason: Optional[str],
        *,
        permissions: Optional[Iterable[str]] = None,
    ) -> ApprovalRecord:
        """
        Reopen a fully approved batch.

        Earlier approvals stay in history but no longer satisfy any level.
        """
        rule = get_transition_rule(ApprovalStatus.APPROVED_FINAL, ApprovalTransition.REJECT_FINAL)
        ensure_permission(permissions, rule.requires_permission)
        if self._status != ApprovalStatus.APPROVED_FINAL:
            raise PrerequisiteNotMet(
                "Only fully approved batches can be rejected after final approval",
                missing=[ApprovalStatus.APPROVED_FINAL.value],
            )
        reason = self._validate_reason(reason, rule, "post-approval rejection")

        record = self.audit.record_decision(
            self.batch_id, REVERSAL_LEVEL, ApprovalAction.REJECTED, approver, reason
        )
        self.reopened = True
        self.reopen_count += 1
        self._commit(rule, approver, record)
        return record

    def resubmit(
        self,
        actor: str,
        *,
        permissions: Optional[Iterable[str]] = None,
    ) -> ApprovalStatus:
        """Return a rejected batch to READY_FOR_L1 so level 1 can approve again."""
        ensure_permission(
            permissions,
            get_transition_rule(ApprovalStatus.L1_REJECTED, ApprovalTransition.RESUBMIT).requires_permission,
        )
        if not can_transition(self._status, ApprovalTransition.RESUBMIT):
            raise PrerequisiteNotMet(
                f"Only rejected batches can be resubmitted (current status {self._status.value})"
            )
        rule = get_transition_rule(self._status, ApprovalTransition.RESUBMIT)
        self._commit(rule, actor, None)
        return self._status

    def history(self) -> List[ApprovalRecord]:
        return self.audit.history(self.batch_id)

    def add_comment(self, author: str, text: str) -> Comment:
        return self.audit.add_comment(self.batch_id, author, text)

    def effective_approvals(self) -> Dict[int, ApprovalRecord]:
        """APPROVED records per level since the latest rejection or reversal."""
        approvals: Dict[int, ApprovalRecord] = {}
        for record in self.history():
            if record.action == ApprovalAction.REJECTED:
                approvals.clear()
            else:
                approvals[record.level] = record
        return {level: r for level, r in approvals.items() if is_level_approved(self._status, level)}

    def latest_rejection(self) -> Optional[ApprovalRecord]:
        for record in reversed(self.history()):
            if record.action == ApprovalAction.REJECTED:
                return record
        return None

    def check_level_prerequisite(self, level: int) -> None:
        """Raise PrerequisiteNotMet when level N-1 is not approved in the current chain."""
        if level == 1:
            return
        if not is_level_approved(self._status, level - 1):
            raise PrerequisiteNotMet(
                f"Level {level - 1} approval required first",
                missing=[f"level{level - 1}"],
            )

    def register_callback(
        self,
        transition: ApprovalTransition,
        callback: Callable[[Dict[str, Any]], None],
    ) -> None:
        """Register a callback to be executed after a committed transition."""
        self._callbacks.setdefault(transition, []).append(callback)

    def get_transition_history(self) -> List[Dict[str, Any]]:
        return self._transition_history.copy()

    def _level_rule(
        self,
        level: int,
        transitions: Dict[int, ApprovalTransition],
        permissions: Optional[Iterable[str]],
    ) -> TransitionRule:
        if level not in LEVELS:
            raise ValidationError(f"Invalid approval level: {level}", field="level")

        transition = transitions[level]
        predecessor = LEVEL_PREDECESSOR[level]
        rule = get_transition_rule(predecessor, transition)
        ensure_permission(permissions, rule.requires_permission)

        if is_level_approved(self._status, level):
            if level == 3 and transition == ApprovalTransition.REJECT_L3:
                raise AlreadyApproved(
                    level,
                    "Level 3 has already been approved; use post-approval rejection to reopen the batch",
                )
            raise AlreadyApproved(level)

        if self._status != predecessor:
            rejected_level = REJECTED_AT_LEVEL.get(self._status)
            if rejected_level is not None:
                raise PrerequisiteNotMet(
                    f"Batch was rejected at level {rejected_level}; resubmit before approving again",
                    missing=["resubmit"],
                )
            self.check_level_prerequisite(level)
            raise PrerequisiteNotMet(
                f"Batch must be {predecessor.value} for level {level} (currently {self._status.value})"
            )
        return rule

    @staticmethod
    def _validate_reason(reason: Optional[str], rule: TransitionRule, label: str) -> str:
        text = (reason or "").strip()
        if not text:
            raise ValidationError("Rejection reason is required", field="reason")
        if len(text) < rule.min_reason_length:
            raise ValidationError(
                f"Minimum {rule.min_reason_length} characters required for {label}",
                field="reason",
            )
        return text

    def _commit(self, rule: TransitionRule, actor: str, record: Optional[ApprovalRecord]) -> None:
        from_state = self._status
        self._status = rule.to_state

        transition_record = {
            "batch_id": self.batch_id,
            "from_state": from_state.value,
            "to_state": self._status.value,
            "transition": rule.transition.value,
            "actor": actor,
            "level": record.level if record else None,
            "reason": record.reason if record else None,
            "record_id": record.id if record else None,
            "reopened": self.reopened,
            "timestamp": record.timestamp if record else datetime.utcnow(),
        }
        self._transition_history.append(transition_record)
        logger.info(
            "Batch %s: %s -> %s (%s by %s)",
            self.batch_id, from_state.value, self._status.value, rule.transition.value, actor,
        )
        self._execute_callbacks(rule.transition, transition_record)

    def _execute_callbacks(self, transition: ApprovalTransition, record: Dict[str, Any]) -> None:
        for callback in self._callbacks.get(transition, []):
            try:
                callback(record)
            except Exception:
                # The transition is already committed
                logger.exception("Callback error for %s on batch %s", transition.value, self.batch_id)

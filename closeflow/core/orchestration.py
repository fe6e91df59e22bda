"""Orchestration facade for report batches.

The single entry point callers use for approvals and the monthly workflow.
Handles:
- Batch registration and lookup
- Per-batch serialization of mutations and consistent reads
- Revision counters so callers can detect stale views
- Outbound notification events after committed changes
- Snapshot-based exports
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from closeflow.core.approval import ApprovalStateMachine, ApprovalStatus, ApprovalTransition
from closeflow.core.approval.states import (
    APPROVE_TRANSITIONS,
    OVERALL_STATUS_LABELS,
    REJECT_TRANSITIONS,
    is_level_approved,
)
from closeflow.core.audit import ApprovalRecord, AuditTrail, SqlAuditStore
from closeflow.core.config import Settings
from closeflow.core.errors import BatchNotFound, InvalidGraph, ValidationError
from closeflow.core.rbac import ensure_permission, level_permission
from closeflow.core.rbac.permissions import Action, Permission, Resource
from closeflow.core.workflow import StepGraph, analyzer, build_steps, default_template, load_template
from closeflow.core.workflow.models import StepStatus, WorkflowStep
from closeflow.db.session import init_db, make_engine, make_session_factory
from closeflow.services import export
from closeflow.services.notifications import (
    NotificationDispatcher,
    NotificationEvent,
    NotificationEventType,
)

logger = logging.getLogger(__name__)

Permissions = Optional[Iterable[str]]

SUMMARY_FIELDS = (
    ("file_count", "fileCount"),
    ("record_count", "recordCount"),
    ("portfolio_count", "portfolioCount"),
)

TRANSITION_EVENTS = {
    ApprovalTransition.APPROVE_L1: NotificationEventType.APPROVAL_APPROVED,
    ApprovalTransition.APPROVE_L2: NotificationEventType.APPROVAL_APPROVED,
    ApprovalTransition.APPROVE_L3: NotificationEventType.APPROVAL_APPROVED,
    ApprovalTransition.REJECT_L1: NotificationEventType.APPROVAL_REJECTED,
    ApprovalTransition.REJECT_L2: NotificationEventType.APPROVAL_REJECTED,
    ApprovalTransition.REJECT_L3: NotificationEventType.APPROVAL_REJECTED,
    ApprovalTransition.REJECT_FINAL: NotificationEventType.BATCH_REOPENED,
    ApprovalTransition.RESUBMIT: NotificationEventType.BATCH_RESUBMITTED,
}


def _perm(resource: Resource, action: Action) -> Permission:
    return Permission(resource, action)


def _iso(value: Optional[Union[date, datetime]]) -> Optional[str]:
    return value.isoformat() if value else None


def _data_summary(raw: Optional[Dict[str, Any]]) -> Dict[str, int]:
    raw = raw or {}
    return {camel: int(raw.get(snake, raw.get(camel, 0)) or 0) for snake, camel in SUMMARY_FIELDS}


@dataclass
class BatchState:
    """Everything the facade holds for one batch. Guarded by ``lock``."""

    batch_id: str
    batch_date: date
    machine: ApprovalStateMachine
    graph: Optional[StepGraph] = None
    workflow_error: Optional[InvalidGraph] = None
    data_summary: Dict[str, int] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    revision: int = 0
    outbox: List[NotificationEvent] = field(default_factory=list)
    lock: Any = field(default_factory=threading.RLock, repr=False)

    def workflow(self) -> StepGraph:
        if self.workflow_error is not None:
            raise InvalidGraph(
                f"Workflow for batch {self.batch_id} is unavailable: {self.workflow_error.message}",
                self.workflow_error.steps,
            )
        return self.graph


class OrchestrationFacade:
    """
    Composes the approval state machine, the step graph and the audit trail
    for every registered batch.

    Each batch has its own re-entrant lock held for the whole of every
    operation on it, so mutations on one batch are serialized and reads never
    see a half-applied change. Operations on different batches never contend.
    Results are plain dicts and copies; callers never hold live engine state.
    """

    def __init__(
        self,
        audit: Optional[AuditTrail] = None,
        *,
        notifier: Optional[NotificationDispatcher] = None,
        template: Optional[List[Dict[str, Any]]] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
        today: Optional[Callable[[], date]] = None,
    ):
        self.audit = audit if audit is not None else AuditTrail(clock=clock)
        self.notifier = notifier
        self.template = template if template is not None else default_template()
        self._clock = clock
        self._today = today or date.today
        self._batches: Dict[str, BatchState] = {}
        self._registry_lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        notifier: Optional[NotificationDispatcher] = None,
    ) -> "OrchestrationFacade":
        """Build a facade with the configured audit store, template and notifier."""
        store = None
        if settings.database_url:
            engine = make_engine(settings.database_url)
            init_db(engine)
            store = SqlAuditStore(make_session_factory(engine))
            logger.info("Audit trail stored in %s", engine.url.render_as_string(hide_password=True))

        template = None
        if settings.workflow_template_path:
            template = load_template(settings.workflow_template_path)
            logger.info("Loaded workflow template from %s", settings.workflow_template_path)

        if notifier is None:
            notifier = NotificationDispatcher.from_settings(settings)
        return cls(AuditTrail(store), notifier=notifier, template=template)

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def register_batch(
        self,
        batch_id: str,
        batch_date: date,
        data_summary: Optional[Dict[str, Any]] = None,
        steps: Optional[List[Dict[str, Any]]] = None,
        *,
        permissions: Permissions = None,
    ) -> Dict[str, Any]:
        """
        Register a batch at READY_FOR_L1 with a workflow built from the template.

        Raises:
            ValidationError: blank or duplicate batch id
            InvalidGraph: the workflow definition is invalid; the batch stays
                registered for approvals but its workflow is never served
        """
        ensure_permission(permissions, _perm(Resource.BATCHES, Action.CREATE))
        batch_id = (batch_id or "").strip()
        if not batch_id:
            raise ValidationError("Batch id is required", field="batchId")

        state = BatchState(
            batch_id=batch_id,
            batch_date=batch_date,
            machine=ApprovalStateMachine(batch_id, self.audit),
            data_summary=_data_summary(data_summary),
            created_at=self._clock(),
        )
        definitions = steps if steps is not None else self.template
        try:
            state.graph = StepGraph(build_steps(definitions, batch_date))
        except InvalidGraph as e:
            state.workflow_error = e
        except (ValueError, TypeError) as e:
            state.workflow_error = InvalidGraph(f"Invalid workflow step definition: {e}")
        for transition in ApprovalTransition:
            state.machine.register_callback(transition, self._transition_listener(state))

        with self._registry_lock:
            if batch_id in self._batches:
                raise ValidationError(f"Batch {batch_id} already exists", field="batchId")
            self._batches[batch_id] = state

        if state.workflow_error is not None:
            logger.error("Batch %s registered without a workflow: %s", batch_id, state.workflow_error.message)
            raise InvalidGraph(state.workflow_error.message, state.workflow_error.steps)
        logger.info("Registered batch %s for %s", batch_id, batch_date.isoformat())
        with state.lock:
            return self._batch_summary(state)

    def list_batches(self, status: Optional[Union[ApprovalStatus, str]] = None) -> List[Dict[str, Any]]:
        if status is not None:
            status = ApprovalStatus(status)
        summaries = []
        for state in self._all_states():
            with state.lock:
                if status is None or state.machine.status == status:
                    summaries.append(self._batch_summary(state))
        return summaries

    def get_batch(self, batch_id: str) -> Dict[str, Any]:
        state = self._state(batch_id)
        with state.lock:
            return self._batch_summary(state)

    def current_batch(self) -> Optional[Dict[str, Any]]:
        """Most recently registered batch that is not fully approved."""
        for state in reversed(self._all_states()):
            with state.lock:
                if state.machine.status != ApprovalStatus.APPROVED_FINAL:
                    return self._batch_summary(state)
        return None

    def final_approved_batches(self) -> List[Dict[str, Any]]:
        """Fully approved batches, with who gave the final approval and when."""
        batches = []
        for state in self._all_states():
            with state.lock:
                if state.machine.status != ApprovalStatus.APPROVED_FINAL:
                    continue
                summary = self._batch_summary(state)
                final = state.machine.effective_approvals().get(3)
                summary["finalApprovedBy"] = final.approver if final else None
                summary["finalApprovedAt"] = _iso(final.timestamp) if final else None
                batches.append(summary)
        return batches

    def revision(self, batch_id: str) -> int:
        state = self._state(batch_id)
        with state.lock:
            return state.revision

    # ------------------------------------------------------------------
    # Approvals
    # ------------------------------------------------------------------

    def approval_view(self, batch_id: str, level: int, *, permissions: Permissions = None) -> Dict[str, Any]:
        """
        Status summary for the level-N page.

        Raises:
            AccessDenied: caller lacks the level permission
            PrerequisiteNotMet: level N-1 is not approved in the current chain
        """
        self._check_level(level)
        ensure_permission(permissions, level_permission(level))
        state = self._state(batch_id)
        with state.lock:
            machine = state.machine
            machine.check_level_prerequisite(level)
            approvals = machine.effective_approvals()
            rejection = machine.latest_rejection()
            permissions = list(permissions) if permissions is not None else None

            view = self._batch_summary(state)
            view.update({
                "level": level,
                "levelApproved": is_level_approved(machine.status, level),
                "canApprove": machine.can_perform(APPROVE_TRANSITIONS[level], permissions),
                "canReject": machine.can_perform(REJECT_TRANSITIONS[level], permissions),
                "latestRejection": rejection.to_dict() if rejection else None,
            })
            for n in (1, 2, 3):
                record = approvals.get(n)
                view[f"level{n}Approval"] = record.to_dict() if record else None
            return view

    def approve(self, batch_id: str, level: int, approver: str, *, permissions: Permissions = None) -> Dict[str, Any]:
        state = self._state(batch_id)
        with state.lock:
            record = state.machine.approve(level, approver, permissions=permissions)
            result = self._decision_result(state, record)
        self._dispatch(state)
        return result

    def reject(
        self,
        batch_id: str,
        level: int,
        approver: str,
        reason: Optional[str],
        *,
        permissions: Permissions = None,
    ) -> Dict[str, Any]:
        state = self._state(batch_id)
        with state.lock:
            record = state.machine.reject(level, approver, reason, permissions=permissions)
            result = self._decision_result(state, record)
        self._dispatch(state)
        return result

    def reject_final(
        self,
        batch_id: str,
        approver: str,
        reason: Optional[str],
        *,
        permissions: Permissions = None,
    ) -> Dict[str, Any]:
        state = self._state(batch_id)
        with state.lock:
            record = state.machine.reject_final(approver, reason, permissions=permissions)
            result = self._decision_result(state, record)
            result["reopened"] = state.machine.reopened
        self._dispatch(state)
        return result

    def resubmit(self, batch_id: str, actor: str, *, permissions: Permissions = None) -> Dict[str, Any]:
        state = self._state(batch_id)
        with state.lock:
            new_status = state.machine.resubmit(actor, permissions=permissions)
            self._bump(state)
            result = {"success": True, "newStatus": new_status.value, "revision": state.revision}
        self._dispatch(state)
        return result

    def history(self, batch_id: str) -> Dict[str, Any]:
        """
        Approval records oldest first.

        Batches unknown to this process still return whatever the audit store
        holds for them, which is an empty list for a fresh store.
        """
        with self._registry_lock:
            state = self._batches.get(batch_id)
        if state is None:
            records = self.audit.history(batch_id)
            return {"batchId": batch_id, "revision": 0, "records": [r.to_dict() for r in records]}
        with state.lock:
            records = state.machine.history()
            return {"batchId": batch_id, "revision": state.revision, "records": [r.to_dict() for r in records]}

    def add_comment(self, batch_id: str, author: str, text: str, *, permissions: Permissions = None) -> Dict[str, Any]:
        ensure_permission(permissions, _perm(Resource.COMMENTS, Action.CREATE))
        state = self._state(batch_id)
        with state.lock:
            comment = state.machine.add_comment(author, text)
            self._bump(state)
            state.outbox.append(NotificationEvent(
                NotificationEventType.COMMENT_ADDED,
                batch_id,
                {"actor": author, "text": comment.text},
            ))
        self._dispatch(state)
        return comment.to_dict()

    def comments(self, batch_id: str) -> Dict[str, Any]:
        state = self._state(batch_id)
        with state.lock:
            comments = self.audit.comments(batch_id)
            return {"batchId": batch_id, "revision": state.revision, "comments": [c.to_dict() for c in comments]}

    def approval_logs(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
        level: Optional[int] = None,
        *,
        permissions: Permissions = None,
    ) -> List[Dict[str, Any]]:
        """Approval records across batches within an inclusive date range."""
        ensure_permission(permissions, _perm(Resource.APPROVAL_LOGS, Action.LIST))
        if start and end and start > end:
            raise ValidationError("Start date must not be after end date", field="startDate")
        if level is not None and level not in (0, 1, 2, 3):
            raise ValidationError(f"Invalid approval level: {level}", field="level")

        with self._registry_lock:
            batch_dates = {bid: s.batch_date for bid, s in self._batches.items()}
        entries = []
        for record in self.audit.query(start, end, level):
            entry = record.to_dict()
            entry["batchDate"] = _iso(batch_dates.get(record.batch_id))
            entries.append(entry)
        return entries

    def export_approval_logs(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
        level: Optional[int] = None,
        *,
        cancel_event: Optional[threading.Event] = None,
        permissions: Permissions = None,
    ) -> bytes:
        ensure_permission(permissions, _perm(Resource.APPROVAL_LOGS, Action.EXPORT))
        entries = self.approval_logs(start, end, level)
        return export.approval_logs_workbook(entries, cancel_event)

    # ------------------------------------------------------------------
    # Workflow
    # ------------------------------------------------------------------

    def workflow_steps(self, batch_id: str) -> Dict[str, Any]:
        state = self._state(batch_id)
        with state.lock:
            steps = state.workflow().snapshot()
            return {
                "batchId": batch_id,
                "revision": state.revision,
                "steps": self._step_views(steps),
            }

    def step_details(self, batch_id: str, step_id: str) -> Dict[str, Any]:
        state = self._state(batch_id)
        with state.lock:
            graph = state.workflow()
            detail = self._step_view(state, step_id)
            detail["prerequisites"] = [
                {"id": s.id, "name": s.name, "status": s.status.value}
                for s in graph.prerequisites(step_id)
            ]
            detail["dependents"] = graph.dependents(step_id)
            detail["comments"] = [c.to_dict() for c in self.audit.step_comments(batch_id, step_id)]
            detail["revision"] = state.revision
            return detail

    def mark_step_complete(
        self,
        batch_id: str,
        step_id: str,
        actor: str,
        *,
        confirmed: bool = True,
        permissions: Permissions = None,
    ) -> Dict[str, Any]:
        """
        Complete a step; dependents whose dependencies are now all complete
        leave the blocked state in the same call.

        Completing an already complete step changes nothing and reports
        ``changed=False``.
        """
        ensure_permission(permissions, _perm(Resource.WORKFLOW, Action.COMPLETE))
        if not confirmed:
            raise ValidationError("Step completion must be confirmed", field="confirmed")
        state = self._state(batch_id)
        with state.lock:
            graph = state.workflow()
            before = {s.id: s.status for s in graph.snapshot()}
            changed = graph.mark_complete(step_id, actor, at=self._clock())
            unblocked: List[str] = []
            if changed:
                unblocked = [
                    s.id for s in graph.snapshot()
                    if before[s.id] == StepStatus.BLOCKED and s.status != StepStatus.BLOCKED
                ]
                self._bump(state)
                state.outbox.append(NotificationEvent(
                    NotificationEventType.STEP_COMPLETED,
                    batch_id,
                    {
                        "actor": actor,
                        "step_id": step_id,
                        "step_name": graph.get(step_id).name,
                        "unblocked": [graph.get(sid).name for sid in unblocked],
                    },
                ))
            result = {
                "success": True,
                "changed": changed,
                "step": self._step_view(state, step_id),
                "unblocked": unblocked,
                "revision": state.revision,
            }
        self._dispatch(state)
        return result

    def assign_owner(
        self,
        batch_id: str,
        step_id: str,
        user_id: str,
        *,
        permissions: Permissions = None,
    ) -> Dict[str, Any]:
        ensure_permission(permissions, _perm(Resource.WORKFLOW, Action.ASSIGN))
        state = self._state(batch_id)
        with state.lock:
            state.workflow().assign_owner(step_id, user_id)
            self._bump(state)
            return {"success": True, "step": self._step_view(state, step_id), "revision": state.revision}

    def set_due_date(
        self,
        batch_id: str,
        step_id: str,
        due_date: Union[date, str],
        *,
        permissions: Permissions = None,
    ) -> Dict[str, Any]:
        """Set a step due date; ``warnings`` lists prerequisites due later."""
        ensure_permission(permissions, _perm(Resource.WORKFLOW, Action.UPDATE))
        if isinstance(due_date, str):
            try:
                due_date = date.fromisoformat(due_date)
            except ValueError:
                raise ValidationError(f"Invalid due date: {due_date}", field="dueDate") from None
        state = self._state(batch_id)
        with state.lock:
            warnings = state.workflow().set_due_date(step_id, due_date)
            self._bump(state)
            return {
                "success": True,
                "step": self._step_view(state, step_id),
                "warnings": warnings,
                "revision": state.revision,
            }

    def add_task(
        self,
        batch_id: str,
        step_id: str,
        name: str,
        link: Optional[str] = None,
        *,
        permissions: Permissions = None,
    ) -> Dict[str, Any]:
        ensure_permission(permissions, _perm(Resource.WORKFLOW, Action.UPDATE))
        state = self._state(batch_id)
        with state.lock:
            task = state.workflow().add_task(step_id, name, link)
            self._bump(state)
            return {
                "success": True,
                "task": task.to_dict(),
                "step": self._step_view(state, step_id),
                "revision": state.revision,
            }

    def toggle_task(
        self,
        batch_id: str,
        step_id: str,
        task_id: str,
        *,
        permissions: Permissions = None,
    ) -> Dict[str, Any]:
        ensure_permission(permissions, _perm(Resource.WORKFLOW, Action.UPDATE))
        state = self._state(batch_id)
        with state.lock:
            task = state.workflow().toggle_task(step_id, task_id)
            self._bump(state)
            return {
                "success": True,
                "task": task.to_dict(),
                "step": self._step_view(state, step_id),
                "revision": state.revision,
            }

    def add_step_comment(
        self,
        batch_id: str,
        step_id: str,
        author: str,
        text: str,
        *,
        permissions: Permissions = None,
    ) -> Dict[str, Any]:
        ensure_permission(permissions, _perm(Resource.COMMENTS, Action.CREATE))
        state = self._state(batch_id)
        with state.lock:
            graph = state.workflow()
            step = graph.get(step_id)
            comment = self.audit.add_step_comment(batch_id, step_id, author, text)
            graph.increment_comment_count(step_id)
            self._bump(state)
            state.outbox.append(NotificationEvent(
                NotificationEventType.COMMENT_ADDED,
                batch_id,
                {"actor": author, "text": comment.text, "step_id": step_id, "step_name": step.name},
            ))
        self._dispatch(state)
        return comment.to_dict()

    def step_comments(self, batch_id: str, step_id: str) -> Dict[str, Any]:
        state = self._state(batch_id)
        with state.lock:
            state.workflow().get(step_id)
            comments = self.audit.step_comments(batch_id, step_id)
            return {
                "batchId": batch_id,
                "stepId": step_id,
                "revision": state.revision,
                "comments": [c.to_dict() for c in comments],
            }

    def progress(self, batch_id: str) -> Dict[str, Any]:
        state = self._state(batch_id)
        with state.lock:
            steps = state.workflow().snapshot()
            data = analyzer.progress(batch_id, steps, self._today()).to_dict()
            data["revision"] = state.revision
            return data

    def critical_path(self, batch_id: str) -> Dict[str, Any]:
        state = self._state(batch_id)
        with state.lock:
            steps = state.workflow().snapshot()
            data = analyzer.critical_path(steps, self._today()).to_dict()
            data["batchId"] = batch_id
            data["revision"] = state.revision
            return data

    def export_workflow(
        self,
        batch_id: str,
        *,
        cancel_event: Optional[threading.Event] = None,
        permissions: Permissions = None,
    ) -> bytes:
        """XLSX export of the workflow; rendering happens outside the batch lock."""
        ensure_permission(permissions, _perm(Resource.WORKFLOW, Action.EXPORT))
        state = self._state(batch_id)
        with state.lock:
            steps = state.workflow().snapshot()
            views = self._step_views(steps)
            summary = analyzer.progress(batch_id, steps, self._today()).to_dict()
        return export.workflow_workbook(batch_id, views, summary, cancel_event)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _state(self, batch_id: str) -> BatchState:
        with self._registry_lock:
            state = self._batches.get(batch_id)
        if state is None:
            raise BatchNotFound(batch_id)
        return state

    def _all_states(self) -> List[BatchState]:
        with self._registry_lock:
            return list(self._batches.values())

    @staticmethod
    def _check_level(level: int) -> None:
        if level not in (1, 2, 3):
            raise ValidationError(f"Invalid approval level: {level}", field="level")

    @staticmethod
    def _bump(state: BatchState) -> None:
        state.revision += 1

    def _decision_result(self, state: BatchState, record: ApprovalRecord) -> Dict[str, Any]:
        self._bump(state)
        return {
            "success": True,
            "newStatus": state.machine.status.value,
            "record": record.to_dict(),
            "revision": state.revision,
        }

    def _batch_summary(self, state: BatchState) -> Dict[str, Any]:
        machine = state.machine
        return {
            "batchId": state.batch_id,
            "batchDate": _iso(state.batch_date),
            "status": machine.status.value,
            "overallStatus": OVERALL_STATUS_LABELS[machine.status],
            "dataSummary": dict(state.data_summary),
            "reopened": machine.reopened,
            "reopenCount": machine.reopen_count,
            "workflowAvailable": state.workflow_error is None,
            "revision": state.revision,
            "createdAt": _iso(state.created_at),
        }

    def _step_views(self, steps: List[WorkflowStep]) -> List[Dict[str, Any]]:
        today = self._today()
        on_path = set(analyzer.critical_path(steps, today).step_ids)
        return [self._render_step(step, steps, on_path, today) for step in steps]

    def _step_view(self, state: BatchState, step_id: str) -> Dict[str, Any]:
        graph = state.workflow()
        step = graph.get(step_id)
        steps = graph.snapshot()
        today = self._today()
        on_path = set(analyzer.critical_path(steps, today).step_ids)
        return self._render_step(step, steps, on_path, today)

    @staticmethod
    def _render_step(step: WorkflowStep, steps: List[WorkflowStep], on_path: set, today: date) -> Dict[str, Any]:
        return {
            "id": step.id,
            "name": step.name,
            "description": step.description,
            "status": step.status.value,
            "dependencies": list(step.dependencies),
            "owner": step.owner,
            "dueDate": _iso(step.due_date),
            "estimatedDays": step.estimated_days,
            "tasks": [task.to_dict() for task in step.tasks],
            "commentCount": step.comment_count,
            "progress": analyzer.step_progress(step),
            "isOnCriticalPath": step.id in on_path,
            "isOverdue": analyzer.is_overdue(step, today),
            "blockedBy": analyzer.blocked_by(steps, step.id),
            "completedAt": _iso(step.completed_at),
            "completedBy": step.completed_by,
        }

    @staticmethod
    def _transition_listener(state: BatchState) -> Callable[[Dict[str, Any]], None]:
        def listener(record: Dict[str, Any]) -> None:
            transition = ApprovalTransition(record["transition"])
            state.outbox.append(NotificationEvent(
                TRANSITION_EVENTS[transition],
                state.batch_id,
                {
                    "actor": record["actor"],
                    "level": record["level"],
                    "reason": record["reason"],
                    "from_state": record["from_state"],
                    "to_state": record["to_state"],
                    "reopened": record["reopened"],
                },
            ))
        return listener

    def _dispatch(self, state: BatchState) -> None:
        """Hand queued events to the notifier once the batch lock is released."""
        with state.lock:
            events = list(state.outbox)
            state.outbox.clear()
        if self.notifier is None:
            return
        for event in events:
            try:
                self.notifier.publish(event)
            except Exception:
                logger.exception("Failed to publish %s for batch %s", event.event_type.value, event.batch_id)

"""Append-only audit trail for approval decisions and comments."""

import logging
import threading
import uuid
from datetime import date, datetime, time
from typing import Callable, Dict, List, Optional, Union

from closeflow.core.errors import EmptyComment, ValidationError
from .records import ApprovalAction, ApprovalRecord, Comment, REVERSAL_LEVEL, WorkflowComment
from .store import MemoryAuditStore, SqlAuditStore

logger = logging.getLogger(__name__)

AuditStore = Union[MemoryAuditStore, SqlAuditStore]


class AuditTrail:
    """
    Records decisions and comments for every batch.

    Assigns ids, timestamps and a global sequence number. Timestamps never go
    backwards within a batch, so history ordering by timestamp matches the
    order entries were appended.
    """

    def __init__(
        self,
        store: Optional[AuditStore] = None,
        *,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = store if store is not None else MemoryAuditStore()
        self._clock = clock
        self._lock = threading.Lock()
        self._sequence = self.store.last_sequence()
        self._last_seen: Dict[str, datetime] = {}

    def record_decision(
        self,
        batch_id: str,
        level: int,
        action: ApprovalAction,
        approver: str,
        reason: Optional[str] = None,
    ) -> ApprovalRecord:
        """Append an approval or rejection decision."""
        if level not in (REVERSAL_LEVEL, 1, 2, 3):
            raise ValidationError(f"Invalid approval level: {level}", field="level")
        if action == ApprovalAction.REJECTED and not (reason and reason.strip()):
            raise ValidationError("Rejection reason is required", field="reason")
        if action == ApprovalAction.APPROVED:
            reason = None

        sequence, timestamp = self._stamp(batch_id)
        record = ApprovalRecord(
            id=str(uuid.uuid4()),
            batch_id=batch_id,
            level=level,
            action=action,
            approver=approver,
            timestamp=timestamp,
            reason=reason.strip() if reason else None,
            sequence=sequence,
        )
        self.store.append_record(record)
        logger.info(
            "Recorded %s at level %s for batch %s by %s",
            action.value, level, batch_id, approver,
        )
        return record

    def history(self, batch_id: str) -> List[ApprovalRecord]:
        """All decisions for a batch, oldest first. Empty for unknown batches."""
        return sorted(self.store.records(batch_id), key=lambda r: (r.timestamp, r.sequence))

    def query(
        self,
        start: Optional[Union[date, datetime]] = None,
        end: Optional[Union[date, datetime]] = None,
        level: Optional[int] = None,
    ) -> List[ApprovalRecord]:
        """Decisions across all batches within an inclusive date range."""
        if isinstance(start, date) and not isinstance(start, datetime):
            start = datetime.combine(start, time.min)
        if isinstance(end, date) and not isinstance(end, datetime):
            end = datetime.combine(end, time.max)
        records = self.store.all_records(start, end)
        if level is not None:
            records = [r for r in records if r.level == level]
        return records

    def add_comment(self, batch_id: str, author: str, text: str) -> Comment:
        text = (text or "").strip()
        if not text:
            raise EmptyComment()

        sequence, timestamp = self._stamp(batch_id)
        comment = Comment(
            id=str(uuid.uuid4()),
            batch_id=batch_id,
            author=author,
            text=text,
            timestamp=timestamp,
            sequence=sequence,
        )
        self.store.append_comment(comment)
        return comment

    def comments(self, batch_id: str) -> List[Comment]:
        return sorted(self.store.comments(batch_id), key=lambda c: (c.timestamp, c.sequence))

    def add_step_comment(self, batch_id: str, step_id: str, author: str, text: str) -> WorkflowComment:
        text = (text or "").strip()
        if not text:
            raise EmptyComment()

        sequence, timestamp = self._stamp(batch_id)
        comment = WorkflowComment(
            id=str(uuid.uuid4()),
            batch_id=batch_id,
            step_id=step_id,
            author=author,
            text=text,
            timestamp=timestamp,
            sequence=sequence,
        )
        self.store.append_step_comment(comment)
        return comment

    def step_comments(self, batch_id: str, step_id: str) -> List[WorkflowComment]:
        return sorted(
            self.store.step_comments(batch_id, step_id),
            key=lambda c: (c.timestamp, c.sequence),
        )

    def _stamp(self, batch_id: str) -> tuple[int, datetime]:
        with self._lock:
            self._sequence += 1
            now = self._clock()
            previous = self._last_seen.get(batch_id)
            if previous is not None and now < previous:
                now = previous
            self._last_seen[batch_id] = now
            return self._sequence, now

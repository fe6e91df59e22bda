"""Append-only storage backends for the audit trail.

Both stores expose inserts and ordered reads only.
"""

import threading
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from .records import ApprovalAction, ApprovalRecord, Comment, WorkflowComment


class MemoryAuditStore:
    """Process-local store; the default when no database is configured."""

    def __init__(self):
        self._lock = threading.Lock()
        self._records: Dict[str, List[ApprovalRecord]] = {}
        self._comments: Dict[str, List[Comment]] = {}
        self._step_comments: Dict[Tuple[str, str], List[WorkflowComment]] = {}

    def last_sequence(self) -> int:
        return 0

    def append_record(self, record: ApprovalRecord) -> None:
        with self._lock:
            self._records.setdefault(record.batch_id, []).append(record)

    def records(self, batch_id: str) -> List[ApprovalRecord]:
        with self._lock:
            return list(self._records.get(batch_id, []))

    def all_records(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[ApprovalRecord]:
        with self._lock:
            rows = [r for batch in self._records.values() for r in batch]
        if start is not None:
            rows = [r for r in rows if r.timestamp >= start]
        if end is not None:
            rows = [r for r in rows if r.timestamp <= end]
        return sorted(rows, key=lambda r: (r.timestamp, r.sequence))

    def append_comment(self, comment: Comment) -> None:
        with self._lock:
            self._comments.setdefault(comment.batch_id, []).append(comment)

    def comments(self, batch_id: str) -> List[Comment]:
        with self._lock:
            return list(self._comments.get(batch_id, []))

    def append_step_comment(self, comment: WorkflowComment) -> None:
        with self._lock:
            key = (comment.batch_id, comment.step_id)
            self._step_comments.setdefault(key, []).append(comment)

    def step_comments(self, batch_id: str, step_id: str) -> List[WorkflowComment]:
        with self._lock:
            return list(self._step_comments.get((batch_id, step_id), []))


class SqlAuditStore:
    """SQLAlchemy-backed store over the approval_records and comment tables."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory
        # A single in-memory SQLite connection is shared between threads
        self._lock = threading.Lock()

    def last_sequence(self) -> int:
        from closeflow.db.models import ApprovalRecordRow, ReportCommentRow, WorkflowCommentRow

        with self._lock, self._session_factory() as session:
            highest = 0
            for model in (ApprovalRecordRow, ReportCommentRow, WorkflowCommentRow):
                value = session.execute(select(func.max(model.sequence))).scalar()
                highest = max(highest, value or 0)
            return highest

    def append_record(self, record: ApprovalRecord) -> None:
        from closeflow.db.models import ApprovalRecordRow

        row = ApprovalRecordRow(
            id=record.id,
            batch_id=record.batch_id,
            level=record.level,
            action=record.action.value,
            approver=record.approver,
            reason=record.reason,
            sequence=record.sequence,
            created_at=record.timestamp,
        )
        self._insert(row)

    def records(self, batch_id: str) -> List[ApprovalRecord]:
        from closeflow.db.models import ApprovalRecordRow

        stmt = (
            select(ApprovalRecordRow)
            .where(ApprovalRecordRow.batch_id == batch_id)
            .order_by(ApprovalRecordRow.sequence.asc())
        )
        return [self._to_record(row) for row in self._select(stmt)]

    def all_records(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[ApprovalRecord]:
        from closeflow.db.models import ApprovalRecordRow

        stmt = select(ApprovalRecordRow)
        if start is not None:
            stmt = stmt.where(ApprovalRecordRow.created_at >= start)
        if end is not None:
            stmt = stmt.where(ApprovalRecordRow.created_at <= end)
        stmt = stmt.order_by(ApprovalRecordRow.created_at.asc(), ApprovalRecordRow.sequence.asc())
        return [self._to_record(row) for row in self._select(stmt)]

    def append_comment(self, comment: Comment) -> None:
        from closeflow.db.models import ReportCommentRow

        self._insert(ReportCommentRow(
            id=comment.id,
            batch_id=comment.batch_id,
            author=comment.author,
            text=comment.text,
            sequence=comment.sequence,
            created_at=comment.timestamp,
        ))

    def comments(self, batch_id: str) -> List[Comment]:
        from closeflow.db.models import ReportCommentRow

        stmt = (
            select(ReportCommentRow)
            .where(ReportCommentRow.batch_id == batch_id)
            .order_by(ReportCommentRow.sequence.asc())
        )
        return [
            Comment(
                id=row.id,
                batch_id=row.batch_id,
                author=row.author,
                text=row.text,
                timestamp=row.created_at,
                sequence=row.sequence,
            )
            for row in self._select(stmt)
        ]

    def append_step_comment(self, comment: WorkflowComment) -> None:
        from closeflow.db.models import WorkflowCommentRow

        self._insert(WorkflowCommentRow(
            id=comment.id,
            batch_id=comment.batch_id,
            step_id=comment.step_id,
            author=comment.author,
            text=comment.text,
            sequence=comment.sequence,
            created_at=comment.timestamp,
        ))

    def step_comments(self, batch_id: str, step_id: str) -> List[WorkflowComment]:
        from closeflow.db.models import WorkflowCommentRow

        stmt = (
            select(WorkflowCommentRow)
            .where(
                WorkflowCommentRow.batch_id == batch_id,
                WorkflowCommentRow.step_id == step_id,
            )
            .order_by(WorkflowCommentRow.sequence.asc())
        )
        return [
            WorkflowComment(
                id=row.id,
                batch_id=row.batch_id,
                step_id=row.step_id,
                author=row.author,
                text=row.text,
                timestamp=row.created_at,
                sequence=row.sequence,
            )
            for row in self._select(stmt)
        ]

    def _insert(self, row) -> None:
        with self._lock, self._session_factory() as session:
            with session.begin():
                session.add(row)

    def _select(self, stmt) -> list:
        with self._lock, self._session_factory() as session:
            return list(session.execute(stmt).scalars().all())

    @staticmethod
    def _to_record(row) -> ApprovalRecord:
        return ApprovalRecord(
            id=row.id,
            batch_id=row.batch_id,
            level=row.level,
            action=ApprovalAction(row.action),
            approver=row.approver,
            timestamp=row.created_at,
            reason=row.reason,
            sequence=row.sequence,
        )

"""Tests for the append-only audit trail and its storage backends."""

from datetime import date, datetime, timedelta

import pytest

from closeflow.core.audit import ApprovalAction, AuditTrail, MemoryAuditStore, SqlAuditStore
from closeflow.core.errors import EmptyComment, ValidationError
from closeflow.db import init_db, make_engine, make_session_factory


@pytest.fixture
def sql_store():
    engine = make_engine("sqlite://")
    init_db(engine)
    yield SqlAuditStore(make_session_factory(engine))
    engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def trail(request, clock):
    if request.param == "memory":
        return AuditTrail(MemoryAuditStore(), clock=clock)
    return AuditTrail(request.getfixturevalue("sql_store"), clock=clock)


class TestDecisions:
    """Test recording and reading approval decisions."""

    def test_history_in_append_order(self, trail):
        trail.record_decision("b1", 1, ApprovalAction.APPROVED, "john.smith")
        trail.record_decision("b1", 2, ApprovalAction.APPROVED, "mary.jones")
        trail.record_decision("b1", 3, ApprovalAction.REJECTED, "jane.doe", "Holdings data discrepancy found")

        history = trail.history("b1")
        assert [r.level for r in history] == [1, 2, 3]
        assert [r.approver for r in history] == ["john.smith", "mary.jones", "jane.doe"]
        assert history[-1].action == ApprovalAction.REJECTED
        assert history[-1].reason == "Holdings data discrepancy found"

    def test_history_of_unknown_batch_is_empty(self, trail):
        assert trail.history("missing") == []

    def test_history_is_per_batch(self, trail):
        trail.record_decision("b1", 1, ApprovalAction.APPROVED, "john.smith")
        trail.record_decision("b2", 1, ApprovalAction.APPROVED, "john.smith")
        assert len(trail.history("b1")) == 1
        assert trail.history("b2")[0].batch_id == "b2"

    def test_approval_drops_reason(self, trail):
        record = trail.record_decision("b1", 1, ApprovalAction.APPROVED, "john.smith", "looks fine")
        assert record.reason is None

    def test_rejection_requires_reason(self, trail):
        with pytest.raises(ValidationError):
            trail.record_decision("b1", 1, ApprovalAction.REJECTED, "john.smith", "  ")
        assert trail.history("b1") == []

    def test_invalid_level(self, trail):
        with pytest.raises(ValidationError):
            trail.record_decision("b1", 5, ApprovalAction.APPROVED, "john.smith")

    def test_sequence_increases(self, trail):
        first = trail.record_decision("b1", 1, ApprovalAction.APPROVED, "a")
        second = trail.record_decision("b2", 1, ApprovalAction.APPROVED, "b")
        assert second.sequence > first.sequence


class TestTimestampClamping:
    """Test that timestamps never go backwards within a batch."""

    def test_clock_going_backwards_is_clamped(self):
        times = iter([
            datetime(2024, 2, 1, 10, 0, 0),
            datetime(2024, 2, 1, 9, 0, 0),
        ])
        trail = AuditTrail(clock=lambda: next(times))

        first = trail.record_decision("b1", 1, ApprovalAction.APPROVED, "john.smith")
        second = trail.record_decision("b1", 2, ApprovalAction.APPROVED, "mary.jones")

        assert second.timestamp == first.timestamp
        assert [r.level for r in trail.history("b1")] == [1, 2]

    def test_equal_timestamps_keep_append_order(self):
        fixed = datetime(2024, 2, 1, 10, 0, 0)
        trail = AuditTrail(clock=lambda: fixed)
        for level in (1, 2, 3):
            trail.record_decision("b1", level, ApprovalAction.APPROVED, "x")
        assert [r.level for r in trail.history("b1")] == [1, 2, 3]


class TestComments:
    """Test batch and step comments."""

    def test_comments_are_trimmed_and_ordered(self, trail):
        trail.add_comment("b1", "john.smith", "  First pass done  ")
        trail.add_comment("b1", "mary.jones", "Checked FX rates")

        comments = trail.comments("b1")
        assert [c.text for c in comments] == ["First pass done", "Checked FX rates"]
        assert comments[0].author == "john.smith"

    @pytest.mark.parametrize("text", ["", "   ", None])
    def test_blank_comment_rejected(self, trail, text):
        with pytest.raises(EmptyComment):
            trail.add_comment("b1", "john.smith", text)
        assert trail.comments("b1") == []

    def test_step_comments_are_scoped_to_step(self, trail):
        trail.add_step_comment("b1", "load", "ops", "Files arrived late")
        trail.add_step_comment("b1", "validate", "ops", "Two breaks")

        comments = trail.step_comments("b1", "load")
        assert len(comments) == 1
        assert comments[0].to_dict()["stepId"] == "load"
        assert comments[0].to_dict()["username"] == "ops"

    def test_blank_step_comment_rejected(self, trail):
        with pytest.raises(EmptyComment):
            trail.add_step_comment("b1", "load", "ops", " ")


class TestQuery:
    """Test cross-batch queries for the approval log."""

    def test_query_by_level(self, trail):
        trail.record_decision("b1", 1, ApprovalAction.APPROVED, "a")
        trail.record_decision("b1", 2, ApprovalAction.APPROVED, "b")
        trail.record_decision("b2", 1, ApprovalAction.APPROVED, "a")

        assert len(trail.query(level=1)) == 2
        assert len(trail.query(level=3)) == 0

    def test_query_by_inclusive_date_range(self, trail):
        trail.record_decision("b1", 1, ApprovalAction.APPROVED, "a")
        # SteppingClock starts on 2024-02-01
        assert len(trail.query(date(2024, 2, 1), date(2024, 2, 1))) == 1
        assert trail.query(date(2024, 2, 2), date(2024, 2, 3)) == []
        assert trail.query(date(2024, 1, 1), date(2024, 1, 31)) == []

    def test_query_is_time_ordered(self, trail):
        trail.record_decision("b2", 1, ApprovalAction.APPROVED, "a")
        trail.record_decision("b1", 1, ApprovalAction.APPROVED, "a")
        trail.record_decision("b2", 2, ApprovalAction.APPROVED, "b")

        timestamps = [r.timestamp for r in trail.query()]
        assert timestamps == sorted(timestamps)


class TestSqlAuditStore:
    """Test the SQLAlchemy backend specifics."""

    def test_sequence_resumes_from_database(self, sql_store, clock):
        first = AuditTrail(sql_store, clock=clock)
        first.record_decision("b1", 1, ApprovalAction.APPROVED, "a")
        first.add_comment("b1", "a", "note")

        reopened = AuditTrail(sql_store, clock=clock)
        record = reopened.record_decision("b1", 2, ApprovalAction.APPROVED, "b")
        assert record.sequence == 3
        assert [r.level for r in reopened.history("b1")] == [1, 2]

    def test_records_round_trip_fields(self, sql_store):
        stamp = datetime(2024, 2, 1, 9, 0, 0)
        trail = AuditTrail(sql_store, clock=lambda: stamp + timedelta(0))
        original = trail.record_decision("b1", 0, ApprovalAction.REJECTED, "jane.doe", "Restated NAV for two fund positions")

        stored = trail.history("b1")[0]
        assert stored == original
        assert stored.is_reversal

"""Pytest configuration and shared fixtures."""

from datetime import date, datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from closeflow.api.main import create_app
from closeflow.core.audit import AuditTrail
from closeflow.core.config import Settings
from closeflow.core.orchestration import OrchestrationFacade


BATCH_ID = "batch-2024-01-001"
BATCH_DATE = date(2024, 1, 31)
TODAY = date(2024, 2, 5)

# Load -> Validate -> Report
LINEAR_TEMPLATE = [
    {"id": "load", "name": "Load"},
    {"id": "validate", "name": "Validate", "dependencies": ["load"]},
    {"id": "report", "name": "Report", "dependencies": ["validate"]},
]


class SteppingClock:
    """Clock that advances one second per call."""

    def __init__(self, start: datetime = datetime(2024, 2, 1, 9, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def clock():
    return SteppingClock()


@pytest.fixture
def audit(clock):
    return AuditTrail(clock=clock)


@pytest.fixture
def facade(audit, clock):
    """Facade over the built-in monthly template with a fixed 'today'."""
    return OrchestrationFacade(audit, clock=clock, today=lambda: TODAY)


@pytest.fixture
def linear_facade(audit, clock):
    """Facade whose batches get the three-step Load/Validate/Report workflow."""
    return OrchestrationFacade(audit, template=LINEAR_TEMPLATE, clock=clock, today=lambda: TODAY)


@pytest.fixture
def batch(facade):
    """A registered batch at READY_FOR_L1."""
    facade.register_batch(
        BATCH_ID,
        BATCH_DATE,
        {"file_count": 12, "record_count": 48210, "portfolio_count": 37},
    )
    return BATCH_ID


@pytest.fixture
def settings(tmp_path):
    return Settings(log_to_file=False, log_dir=str(tmp_path), export_timeout=5.0)


@pytest.fixture
def client(facade, settings):
    """Test client bound to the ``facade`` fixture."""
    return TestClient(create_app(facade=facade, settings=settings))


@pytest.fixture
def as_user():
    """Build identity headers: as_user("jane.doe", "approver_l3")."""

    def _headers(username: str, *roles: str) -> dict:
        return {"X-User": username, "X-Roles": ",".join(roles)}

    return _headers

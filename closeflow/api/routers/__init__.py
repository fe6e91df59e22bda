"""API routers for closeflow."""

from . import health
from . import report_batches
from . import approvals
from . import comments
from . import approval_logs
from . import workflow

__all__ = [
    "health",
    "report_batches",
    "approvals",
    "comments",
    "approval_logs",
    "workflow",
]

"""Services for closeflow."""

from closeflow.services.notifications import (
    NotificationDispatcher,
    NotificationEvent,
    NotificationEventType,
)
from closeflow.services.export import approval_logs_workbook, workflow_workbook

__all__ = [
    "NotificationDispatcher",
    "NotificationEvent",
    "NotificationEventType",
    "approval_logs_workbook",
    "workflow_workbook",
]

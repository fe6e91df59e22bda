"""Error taxonomy for the approval and workflow engine.

Every error carries a human readable message describing the precise unmet
condition, and the HTTP status the API layer maps it to.
"""

from typing import Optional, Sequence


class CloseflowError(Exception):
    """Base class for all engine errors."""

    http_status: int = 400
    code: str = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CloseflowError):
    """Caller-correctable input problem (empty or too-short reason, blank comment)."""

    http_status = 422
    code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class EmptyComment(ValidationError):
    """Comment text is blank after trimming."""

    code = "empty_comment"

    def __init__(self, message: str = "Comment text is required"):
        super().__init__(message, field="text")


class PrerequisiteNotMet(CloseflowError):
    """A lower approval level or a step dependency is not satisfied."""

    http_status = 409
    code = "prerequisite_not_met"

    def __init__(self, message: str, missing: Sequence[str] = ()):
        super().__init__(message)
        self.missing = list(missing)


class AlreadyApproved(CloseflowError):
    """The requested level has already been approved in the current chain."""

    http_status = 409
    code = "already_approved"

    def __init__(self, level: int, message: Optional[str] = None):
        super().__init__(message or f"Level {level} has already been approved")
        self.level = level


class TasksIncomplete(CloseflowError):
    """A step cannot be completed while any of its tasks is unfinished."""

    http_status = 409
    code = "tasks_incomplete"

    def __init__(self, step_id: str, pending: Sequence[str]):
        super().__init__("All tasks must be completed first")
        self.step_id = step_id
        self.pending = list(pending)


class AccessDenied(CloseflowError):
    """Caller lacks the role required for the action."""

    http_status = 403
    code = "access_denied"

    def __init__(self, required_permission: str):
        super().__init__(f"Access denied: requires {required_permission}")
        self.required_permission = required_permission


class InvalidGraph(CloseflowError):
    """Workflow dependency definition is cyclic or references unknown steps."""

    http_status = 500
    code = "invalid_graph"

    def __init__(self, message: str, steps: Sequence[str] = ()):
        super().__init__(message)
        self.steps = list(steps)


class TransientIO(CloseflowError):
    """Notification or export failure; safe to retry."""

    http_status = 503
    code = "transient_io"


class ExportCancelled(TransientIO):
    """Export was cancelled or timed out before it finished."""

    code = "export_cancelled"

    def __init__(self, message: str = "Export was cancelled"):
        super().__init__(message)


class BatchNotFound(CloseflowError):
    http_status = 404
    code = "batch_not_found"

    def __init__(self, batch_id: str):
        super().__init__(f"Batch {batch_id} not found")
        self.batch_id = batch_id


class StepNotFound(CloseflowError):
    http_status = 404
    code = "step_not_found"

    def __init__(self, step_id: str):
        super().__init__(f"Workflow step {step_id} not found")
        self.step_id = step_id


class TaskNotFound(CloseflowError):
    http_status = 404
    code = "task_not_found"

    def __init__(self, step_id: str, task_id: str):
        super().__init__(f"Task {task_id} not found on step {step_id}")
        self.step_id = step_id
        self.task_id = task_id

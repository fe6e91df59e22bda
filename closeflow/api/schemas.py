"""Request and response schemas for the closeflow API.

Field names are snake_case in Python and camelCase on the wire.
"""

from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Requests
class DataSummary(CamelModel):
    file_count: int = Field(0, ge=0)
    record_count: int = Field(0, ge=0)
    portfolio_count: int = Field(0, ge=0)


class BatchCreate(CamelModel):
    batch_id: str
    batch_date: date
    data_summary: Optional[DataSummary] = None
    steps: Optional[List[Dict[str, Any]]] = None


class RejectRequest(CamelModel):
    reason: Optional[str] = None


class CommentCreate(CamelModel):
    batch_id: str
    text: Optional[str] = None


class StepCommentCreate(CamelModel):
    text: Optional[str] = None


class StepCompleteRequest(CamelModel):
    confirmed: bool = False


class AssignRequest(CamelModel):
    user_id: Optional[str] = None


class DueDateRequest(CamelModel):
    due_date: date


class TaskCreate(CamelModel):
    name: Optional[str] = None
    link: Optional[str] = None


# Responses
class ApprovalRecordResponse(CamelModel):
    id: str
    batch_id: str
    level: int
    action: str
    user: str
    timestamp: str
    reason: Optional[str] = None


class CommentResponse(CamelModel):
    id: str
    author: str
    timestamp: str
    text: str


class StepCommentResponse(CamelModel):
    id: str
    step_id: str
    username: str
    text: str
    timestamp: str


class BatchSummary(CamelModel):
    batch_id: str
    batch_date: str
    status: str
    overall_status: str
    data_summary: DataSummary
    reopened: bool
    reopen_count: int
    workflow_available: bool
    revision: int
    created_at: Optional[str] = None


class DecisionResponse(CamelModel):
    success: bool
    new_status: str
    revision: int
    record: Optional[ApprovalRecordResponse] = None
    reopened: Optional[bool] = None


class TaskResponse(CamelModel):
    id: str
    name: str
    completed: bool
    link: Optional[str] = None


class StepResponse(CamelModel):
    id: str
    name: str
    description: str = ""
    status: str
    dependencies: List[str]
    owner: Optional[str] = None
    due_date: Optional[str] = None
    estimated_days: Optional[int] = None
    tasks: List[TaskResponse]
    comment_count: int
    progress: int
    is_on_critical_path: bool
    is_overdue: bool
    blocked_by: List[str]
    completed_at: Optional[str] = None
    completed_by: Optional[str] = None


class StepUpdateResponse(CamelModel):
    success: bool
    step: StepResponse
    revision: int
    changed: Optional[bool] = None
    unblocked: Optional[List[str]] = None
    warnings: Optional[List[str]] = None
    task: Optional[TaskResponse] = None

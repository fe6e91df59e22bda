"""Monthly process workflow endpoints."""

from fastapi import APIRouter, Depends, Request, status

from closeflow.api.deps import CurrentUser, get_app_settings, get_current_user, get_facade
from closeflow.api.responses import run_export, versioned_response, xlsx_response
from closeflow.api.schemas import (
    AssignRequest,
    DueDateRequest,
    StepCommentCreate,
    StepCommentResponse,
    StepCompleteRequest,
    StepUpdateResponse,
    TaskCreate,
)
from closeflow.core.config import Settings
from closeflow.core.orchestration import OrchestrationFacade
from closeflow.core.rbac import require_permission

router = APIRouter(prefix="/monthly-workflow", tags=["workflow"])


@router.get("/{batch_id}")
@require_permission("workflow:read")
async def list_steps(
    batch_id: str,
    request: Request,
    facade: OrchestrationFacade = Depends(get_facade),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Workflow steps in creation order with derived status flags."""
    workflow = facade.workflow_steps(batch_id)
    return versioned_response(request, workflow["steps"], batch_id, workflow["revision"])


@router.get("/{batch_id}/progress")
@require_permission("workflow:read")
async def get_progress(
    batch_id: str,
    request: Request,
    facade: OrchestrationFacade = Depends(get_facade),
    current_user: CurrentUser = Depends(get_current_user),
):
    progress = facade.progress(batch_id)
    return versioned_response(request, progress, batch_id, progress["revision"])


@router.get("/{batch_id}/critical-path")
@require_permission("workflow:read")
async def get_critical_path(
    batch_id: str,
    request: Request,
    facade: OrchestrationFacade = Depends(get_facade),
    current_user: CurrentUser = Depends(get_current_user),
):
    path = facade.critical_path(batch_id)
    return versioned_response(request, path, batch_id, path["revision"])


@router.get("/{batch_id}/export")
@require_permission("workflow:export")
async def export_workflow(
    batch_id: str,
    facade: OrchestrationFacade = Depends(get_facade),
    settings: Settings = Depends(get_app_settings),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Spreadsheet of step status; 503 if it does not finish in time."""
    content = await run_export(facade.export_workflow, batch_id, timeout=settings.export_timeout)
    return xlsx_response(content, f"workflow-{batch_id}.xlsx")


@router.get("/{batch_id}/steps/{step_id}")
@require_permission("workflow:read")
async def get_step(
    batch_id: str,
    step_id: str,
    request: Request,
    facade: OrchestrationFacade = Depends(get_facade),
    current_user: CurrentUser = Depends(get_current_user),
):
    step = facade.step_details(batch_id, step_id)
    return versioned_response(request, step, batch_id, step["revision"])


@router.post("/{batch_id}/steps/{step_id}/complete", response_model=StepUpdateResponse)
async def complete_step(
    batch_id: str,
    step_id: str,
    body: StepCompleteRequest,
    facade: OrchestrationFacade = Depends(get_facade),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Mark a step complete. Requires every dependency and task to be done."""
    return facade.mark_step_complete(
        batch_id,
        step_id,
        current_user.username,
        confirmed=body.confirmed,
        permissions=current_user.permissions,
    )


@router.post("/{batch_id}/steps/{step_id}/assign", response_model=StepUpdateResponse)
async def assign_step(
    batch_id: str,
    step_id: str,
    body: AssignRequest,
    facade: OrchestrationFacade = Depends(get_facade),
    current_user: CurrentUser = Depends(get_current_user),
):
    return facade.assign_owner(batch_id, step_id, body.user_id, permissions=current_user.permissions)


@router.post("/{batch_id}/steps/{step_id}/due-date", response_model=StepUpdateResponse)
async def set_due_date(
    batch_id: str,
    step_id: str,
    body: DueDateRequest,
    facade: OrchestrationFacade = Depends(get_facade),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Set a due date. Dates before a prerequisite's due date come back as warnings."""
    return facade.set_due_date(batch_id, step_id, body.due_date, permissions=current_user.permissions)


@router.get("/{batch_id}/steps/{step_id}/comments")
@require_permission("comments:read")
async def list_step_comments(
    batch_id: str,
    step_id: str,
    request: Request,
    facade: OrchestrationFacade = Depends(get_facade),
    current_user: CurrentUser = Depends(get_current_user),
):
    comments = facade.step_comments(batch_id, step_id)
    return versioned_response(request, comments["comments"], batch_id, comments["revision"])


@router.post(
    "/{batch_id}/steps/{step_id}/comments",
    response_model=StepCommentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_step_comment(
    batch_id: str,
    step_id: str,
    body: StepCommentCreate,
    facade: OrchestrationFacade = Depends(get_facade),
    current_user: CurrentUser = Depends(get_current_user),
):
    return facade.add_step_comment(
        batch_id, step_id, current_user.username, body.text, permissions=current_user.permissions
    )


@router.post(
    "/{batch_id}/steps/{step_id}/tasks",
    response_model=StepUpdateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_task(
    batch_id: str,
    step_id: str,
    body: TaskCreate,
    facade: OrchestrationFacade = Depends(get_facade),
    current_user: CurrentUser = Depends(get_current_user),
):
    return facade.add_task(batch_id, step_id, body.name, body.link, permissions=current_user.permissions)


@router.post("/{batch_id}/steps/{step_id}/tasks/{task_id}/toggle", response_model=StepUpdateResponse)
async def toggle_task(
    batch_id: str,
    step_id: str,
    task_id: str,
    facade: OrchestrationFacade = Depends(get_facade),
    current_user: CurrentUser = Depends(get_current_user),
):
    return facade.toggle_task(batch_id, step_id, task_id, permissions=current_user.permissions)

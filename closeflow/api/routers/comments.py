"""Report comment endpoints."""

from fastapi import APIRouter, Depends, Query, Request, status

from closeflow.api.deps import CurrentUser, get_current_user, get_facade
from closeflow.api.responses import versioned_response
from closeflow.api.schemas import CommentCreate, CommentResponse
from closeflow.core.orchestration import OrchestrationFacade
from closeflow.core.rbac import require_permission

router = APIRouter(prefix="/report-comments", tags=["comments"])


@router.get("")
@require_permission("comments:read")
async def list_comments(
    request: Request,
    batch_id: str = Query(..., alias="batchId"),
    facade: OrchestrationFacade = Depends(get_facade),
    current_user: CurrentUser = Depends(get_current_user),
):
    comments = facade.comments(batch_id)
    return versioned_response(request, comments["comments"], batch_id, comments["revision"])


@router.post("", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
async def add_comment(
    body: CommentCreate,
    facade: OrchestrationFacade = Depends(get_facade),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Add a comment to a batch. Blank text is rejected."""
    return facade.add_comment(
        body.batch_id, current_user.username, body.text, permissions=current_user.permissions
    )

"""Three-level approval API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Request, status

from closeflow.api.deps import CurrentUser, get_current_user, get_facade
from closeflow.api.errors import error_response
from closeflow.api.responses import versioned_response
from closeflow.api.schemas import BatchSummary, DecisionResponse, RejectRequest
from closeflow.core.errors import PrerequisiteNotMet
from closeflow.core.orchestration import OrchestrationFacade
from closeflow.core.rbac import require_permission

router = APIRouter(prefix="/approvals", tags=["approvals"])


@router.get("/current-batch", response_model=BatchSummary)
@require_permission("approvals:read")
async def get_current_batch(
    facade: OrchestrationFacade = Depends(get_facade),
    current_user: CurrentUser = Depends(get_current_user),
):
    """The most recent batch still moving through approval."""
    batch = facade.current_batch()
    if batch is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No batch is awaiting approval",
        )
    return batch


@router.get("/reject-final")
@require_permission("approvals:reject_final")
async def list_final_approved(
    facade: OrchestrationFacade = Depends(get_facade),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Fully approved batches that may be reopened."""
    return facade.final_approved_batches()


@router.post("/reject-final/{batch_id}", response_model=DecisionResponse)
async def reject_final(
    batch_id: str,
    body: RejectRequest,
    facade: OrchestrationFacade = Depends(get_facade),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Reopen a fully approved batch. The reason needs at least 30 characters."""
    return facade.reject_final(
        batch_id, current_user.username, body.reason, permissions=current_user.permissions
    )


@router.post("/{batch_id}/resubmit", response_model=DecisionResponse)
async def resubmit(
    batch_id: str,
    facade: OrchestrationFacade = Depends(get_facade),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Return a rejected batch to level 1."""
    return facade.resubmit(batch_id, current_user.username, permissions=current_user.permissions)


@router.get("/{batch_id}/history")
@require_permission("approvals:read")
async def get_history(
    batch_id: str,
    request: Request,
    facade: OrchestrationFacade = Depends(get_facade),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Approval records, oldest first. Empty when the batch has none."""
    history = facade.history(batch_id)
    return versioned_response(request, history["records"], batch_id, history["revision"])


@router.get("/level{level}/{batch_id}")
async def get_level_view(
    level: int,
    batch_id: str,
    request: Request,
    facade: OrchestrationFacade = Depends(get_facade),
    current_user: CurrentUser = Depends(get_current_user),
):
    """
    Status and summary for the level page.

    403 without the level role; 400 when the previous level is not approved.
    """
    try:
        view = facade.approval_view(batch_id, level, permissions=current_user.permissions)
    except PrerequisiteNotMet as e:
        return error_response(e, status.HTTP_400_BAD_REQUEST)
    return versioned_response(request, view, batch_id, view["revision"])


@router.post("/level{level}/{batch_id}/approve", response_model=DecisionResponse)
async def approve(
    level: int,
    batch_id: str,
    facade: OrchestrationFacade = Depends(get_facade),
    current_user: CurrentUser = Depends(get_current_user),
):
    return facade.approve(batch_id, level, current_user.username, permissions=current_user.permissions)


@router.post("/level{level}/{batch_id}/reject", response_model=DecisionResponse)
async def reject(
    level: int,
    batch_id: str,
    body: RejectRequest,
    facade: OrchestrationFacade = Depends(get_facade),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Reject at a level. Level 3 needs a reason of at least 20 characters."""
    return facade.reject(
        batch_id, level, current_user.username, body.reason, permissions=current_user.permissions
    )

"""Report batch endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status

from closeflow.api.deps import CurrentUser, get_current_user, get_facade
from closeflow.api.responses import versioned_response
from closeflow.api.schemas import BatchCreate, BatchSummary
from closeflow.core.approval import ApprovalStatus
from closeflow.core.orchestration import OrchestrationFacade
from closeflow.core.rbac import require_permission

router = APIRouter(prefix="/report-batches", tags=["report-batches"])


@router.get("", response_model=List[BatchSummary])
@require_permission("batches:list")
async def list_batches(
    facade: OrchestrationFacade = Depends(get_facade),
    current_user: CurrentUser = Depends(get_current_user),
    batch_status: Optional[ApprovalStatus] = Query(None, alias="status"),
):
    """List registered batches, oldest first."""
    return facade.list_batches(batch_status)


@router.post("", response_model=BatchSummary, status_code=status.HTTP_201_CREATED)
async def create_batch(
    body: BatchCreate,
    facade: OrchestrationFacade = Depends(get_facade),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Register a batch and instantiate its monthly workflow."""
    return facade.register_batch(
        body.batch_id,
        body.batch_date,
        body.data_summary.model_dump() if body.data_summary else None,
        body.steps,
        permissions=current_user.permissions,
    )


@router.get("/{batch_id}")
@require_permission("batches:read")
async def get_batch(
    batch_id: str,
    request: Request,
    facade: OrchestrationFacade = Depends(get_facade),
    current_user: CurrentUser = Depends(get_current_user),
):
    batch = facade.get_batch(batch_id)
    return versioned_response(request, batch, batch_id, batch["revision"])

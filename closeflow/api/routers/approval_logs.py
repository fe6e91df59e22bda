"""Cross-batch approval log endpoints."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from closeflow.api.deps import CurrentUser, get_app_settings, get_current_user, get_facade
from closeflow.api.responses import run_export, xlsx_response
from closeflow.core.config import Settings
from closeflow.core.orchestration import OrchestrationFacade
from closeflow.core.rbac import require_permission

router = APIRouter(prefix="/approval-logs", tags=["approval-logs"])


@router.get("")
@require_permission("approval_logs:list")
async def list_approval_logs(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    level: Optional[int] = Query(None, ge=0, le=3),
    facade: OrchestrationFacade = Depends(get_facade),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Approval decisions across batches, oldest first. Level 0 is a post-approval rejection."""
    return facade.approval_logs(start_date, end_date, level)


@router.get("/export")
@require_permission("approval_logs:export")
async def export_approval_logs(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    level: Optional[int] = Query(None, ge=0, le=3),
    facade: OrchestrationFacade = Depends(get_facade),
    settings: Settings = Depends(get_app_settings),
    current_user: CurrentUser = Depends(get_current_user),
):
    content = await run_export(
        facade.export_approval_logs,
        start_date,
        end_date,
        level,
        timeout=settings.export_timeout,
    )
    return xlsx_response(content, "approval-logs.xlsx")

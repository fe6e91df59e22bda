from typing import List, Optional

from fastapi import Header, HTTPException, Request, status
from pydantic import BaseModel

from closeflow.core.config import Settings
from closeflow.core.orchestration import OrchestrationFacade
from closeflow.core.rbac import permissions_for_roles


class CurrentUser(BaseModel):
    """Caller identity forwarded by the upstream gateway."""
    username: str
    roles: List[str] = []
    permissions: List[str] = []


def get_facade(request: Request) -> OrchestrationFacade:
    """Facade dependency."""
    return request.app.state.facade


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_current_user(
    x_user: Optional[str] = Header(None),
    x_roles: Optional[str] = Header(None),
) -> CurrentUser:
    """Build the caller from the X-User and X-Roles headers."""
    username = (x_user or "").strip()
    if not username:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    roles = [role.strip().lower() for role in (x_roles or "").split(",") if role.strip()]
    return CurrentUser(username=username, roles=roles, permissions=permissions_for_roles(roles))


"""Access checks shared by the engine and the HTTP routers.

Held permissions may use wildcards: ``workflow:*`` covers every workflow
action and ``*:*`` covers everything (the admin role).
"""

from functools import wraps
from typing import Callable, Iterable, Optional, Union, List

from fastapi import HTTPException, status

from closeflow.core.errors import AccessDenied
from .permissions import Permission, Resource, Action

PermissionLike = Union[str, Permission]


def _as_string(permission: PermissionLike) -> str:
    return str(permission) if isinstance(permission, Permission) else permission


def _covering(perm_str: str) -> set[str]:
    """Held entries that would grant ``perm_str``."""
    resource, _, _ = perm_str.partition(":")
    return {perm_str, f"{resource}:*", "*:*"}


class PermissionChecker:
    """Answers permission questions for one caller's permission set."""

    def __init__(self, user_permissions: Iterable[str]):
        self.permissions = frozenset(user_permissions)

    def has_permission(self, permission: PermissionLike) -> bool:
        return not self.permissions.isdisjoint(_covering(_as_string(permission)))

    def has_any_permission(self, permissions: List[PermissionLike]) -> bool:
        return any(self.has_permission(p) for p in permissions)

    def has_all_permissions(self, permissions: List[PermissionLike]) -> bool:
        return all(self.has_permission(p) for p in permissions)

    def can_access_resource(self, resource: Resource, action: Action) -> bool:
        return self.has_permission(Permission(resource, action))


def ensure_permission(user_permissions: Optional[Iterable[str]], permission: PermissionLike) -> None:
    """
    Raise AccessDenied unless the permission is held.

    ``None`` stands for a trusted in-process caller (jobs, tests) and always
    passes; an empty list holds nothing.
    """
    if user_permissions is None:
        return
    if not PermissionChecker(user_permissions).has_permission(permission):
        raise AccessDenied(_as_string(permission))


def require_permission(*permissions: PermissionLike, require_all: bool = False):
    """
    Guard a FastAPI endpoint on the caller's permissions.

    The endpoint must take ``current_user`` as a keyword dependency. A denied
    caller gets the same ``access_denied`` body the engine produces.

    Usage:
        @router.get("/approval-logs")
        @require_permission("approval_logs:list")
        async def list_logs(current_user: CurrentUser = Depends(get_current_user)):
            ...
    """
    required = [_as_string(p) for p in permissions]

    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            current_user = kwargs.get("current_user")
            if current_user is None:
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Authentication required"
                )

            checker = PermissionChecker(current_user.permissions)
            granted = checker.has_all_permissions(required) if require_all else checker.has_any_permission(required)
            if not granted:
                raise AccessDenied((", " if require_all else " or ").join(required))

            return await func(*args, **kwargs)

        return wrapper
    return decorator

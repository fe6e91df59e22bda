"""RBAC (Role-Based Access Control) for closeflow.

Defines the permission model, the default close-process roles, and access
control utilities.
"""

from .permissions import Permission, Resource, Action, PERMISSION_DEFINITIONS, level_permission
from .checker import PermissionChecker, ensure_permission, require_permission
from .roles import DEFAULT_ROLES, permissions_for_roles

__all__ = [
    "Permission",
    "Resource",
    "Action",
    "PERMISSION_DEFINITIONS",
    "level_permission",
    "PermissionChecker",
    "ensure_permission",
    "require_permission",
    "DEFAULT_ROLES",
    "permissions_for_roles",
]

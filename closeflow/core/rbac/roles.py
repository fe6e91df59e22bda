"""Default role definitions for closeflow.

Roles mirror the people involved in a monthly close:
1. Admin - everything
2. Preparer - runs the monthly process steps and resubmits rejected batches
3. Level 1/2/3 approvers - one approval gate each
4. Auditor - read-only plus approval log export
5. Viewer - read-only
"""

from typing import Dict, List

from .permissions import Resource, Action, Permission


def _build_permissions(*perms: tuple) -> List[str]:
    """Build permission strings from (Resource, Action) tuples."""
    return [str(Permission(r, a)) for r, a in perms]


ADMIN_PERMISSIONS = [
    "*:*"  # Global wildcard - all permissions
]

VIEWER_PERMISSIONS = _build_permissions(
    (Resource.BATCHES, Action.READ),
    (Resource.BATCHES, Action.LIST),
    (Resource.APPROVALS, Action.READ),
    (Resource.COMMENTS, Action.READ),
    (Resource.WORKFLOW, Action.READ),
)

# Reviewers of every level can read and discuss the batch
_REVIEWER_BASE = VIEWER_PERMISSIONS + _build_permissions(
    (Resource.COMMENTS, Action.CREATE),
)

PREPARER_PERMISSIONS = _REVIEWER_BASE + _build_permissions(
    (Resource.BATCHES, Action.CREATE),
    (Resource.APPROVALS, Action.RESUBMIT),
    (Resource.WORKFLOW, Action.COMPLETE),
    (Resource.WORKFLOW, Action.ASSIGN),
    (Resource.WORKFLOW, Action.UPDATE),
    (Resource.WORKFLOW, Action.EXPORT),
)

APPROVER_L1_PERMISSIONS = _REVIEWER_BASE + _build_permissions(
    (Resource.APPROVALS, Action.LEVEL1),
)

APPROVER_L2_PERMISSIONS = _REVIEWER_BASE + _build_permissions(
    (Resource.APPROVALS, Action.LEVEL2),
)

# Final approvers may also reopen a fully approved batch
APPROVER_L3_PERMISSIONS = _REVIEWER_BASE + _build_permissions(
    (Resource.APPROVALS, Action.LEVEL3),
    (Resource.APPROVALS, Action.REJECT_FINAL),
    (Resource.APPROVAL_LOGS, Action.LIST),
)

AUDITOR_PERMISSIONS = VIEWER_PERMISSIONS + _build_permissions(
    (Resource.APPROVAL_LOGS, Action.LIST),
    (Resource.APPROVAL_LOGS, Action.EXPORT),
    (Resource.WORKFLOW, Action.EXPORT),
)


DEFAULT_ROLES: Dict[str, Dict] = {
    "admin": {
        "description": "Full access to every batch and action",
        "permissions": ADMIN_PERMISSIONS,
    },
    "preparer": {
        "description": "Runs the monthly process and resubmits rejected batches",
        "permissions": PREPARER_PERMISSIONS,
    },
    "approver_l1": {
        "description": "First-level approval",
        "permissions": APPROVER_L1_PERMISSIONS,
    },
    "approver_l2": {
        "description": "Second-level approval",
        "permissions": APPROVER_L2_PERMISSIONS,
    },
    "approver_l3": {
        "description": "Final approval and post-approval reopening",
        "permissions": APPROVER_L3_PERMISSIONS,
    },
    "auditor": {
        "description": "Read-only access with approval log export",
        "permissions": AUDITOR_PERMISSIONS,
    },
    "viewer": {
        "description": "Read-only access",
        "permissions": VIEWER_PERMISSIONS,
    },
}


def get_default_role_permissions(role_name: str) -> List[str]:
    """Get permissions for a default role by name."""
    role = DEFAULT_ROLES.get(role_name.lower())
    if not role:
        raise ValueError(f"Unknown default role: {role_name}")
    return list(role["permissions"])


def permissions_for_roles(role_names: List[str]) -> List[str]:
    """Union of the permissions of several default roles; unknown names are ignored."""
    permissions: List[str] = []
    for name in role_names:
        role = DEFAULT_ROLES.get(name.strip().lower())
        if not role:
            continue
        for perm in role["permissions"]:
            if perm not in permissions:
                permissions.append(perm)
    return permissions

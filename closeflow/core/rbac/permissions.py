"""Permission model for closeflow RBAC.

Uses a matrix approach: permissions = actions x resources.

Permission string format: "resource:action"
Examples:
  - approvals:level2
  - approvals:reject_final
  - workflow:complete
  - approval_logs:export
"""

from enum import Enum
from typing import NamedTuple, FrozenSet


class Resource(str, Enum):
    """Resources that can be protected by permissions."""

    BATCHES = "batches"               # Report batches (monthly cycles)
    APPROVALS = "approvals"           # Three-level approval decisions
    COMMENTS = "comments"             # Report comments
    APPROVAL_LOGS = "approval_logs"   # Cross-batch approval history
    WORKFLOW = "workflow"             # Monthly process steps


class Action(str, Enum):
    """Actions that can be performed on resources."""

    READ = "read"
    LIST = "list"
    CREATE = "create"
    EXPORT = "export"

    # Approval gates
    LEVEL1 = "level1"
    LEVEL2 = "level2"
    LEVEL3 = "level3"
    REJECT_FINAL = "reject_final"
    RESUBMIT = "resubmit"

    # Workflow step changes
    COMPLETE = "complete"
    ASSIGN = "assign"
    UPDATE = "update"


class Permission(NamedTuple):
    """A permission is a combination of resource and action."""
    resource: Resource
    action: Action

    def __str__(self) -> str:
        return f"{self.resource.value}:{self.action.value}"

    @classmethod
    def from_string(cls, perm_str: str) -> "Permission":
        """Parse a permission string like 'approvals:level1'."""
        parts = perm_str.split(":")
        if len(parts) != 2:
            raise ValueError(f"Invalid permission format: {perm_str}")
        return cls(Resource(parts[0]), Action(parts[1]))


PERMISSION_MATRIX: dict[Resource, FrozenSet[Action]] = {
    Resource.BATCHES: frozenset([
        Action.READ, Action.LIST, Action.CREATE,
    ]),
    Resource.APPROVALS: frozenset([
        Action.READ, Action.LEVEL1, Action.LEVEL2, Action.LEVEL3,
        Action.REJECT_FINAL, Action.RESUBMIT,
    ]),
    Resource.COMMENTS: frozenset([
        Action.READ, Action.CREATE,
    ]),
    Resource.APPROVAL_LOGS: frozenset([
        Action.LIST, Action.EXPORT,
    ]),
    Resource.WORKFLOW: frozenset([
        Action.READ, Action.COMPLETE, Action.ASSIGN, Action.UPDATE, Action.EXPORT,
    ]),
}

LEVEL_ACTIONS: dict[int, Action] = {
    1: Action.LEVEL1,
    2: Action.LEVEL2,
    3: Action.LEVEL3,
}


def level_permission(level: int) -> str:
    """Permission string gating approval level 1, 2 or 3."""
    if level not in LEVEL_ACTIONS:
        raise ValueError(f"Unknown approval level: {level}")
    return str(Permission(Resource.APPROVALS, LEVEL_ACTIONS[level]))


def _generate_permission_definitions() -> dict[str, Permission]:
    permissions = {}
    for resource, actions in PERMISSION_MATRIX.items():
        for action in actions:
            perm = Permission(resource, action)
            permissions[str(perm)] = perm
    return permissions


# All valid permissions as a dictionary: "resource:action" -> Permission
PERMISSION_DEFINITIONS = _generate_permission_definitions()


def is_valid_permission(perm_str: str) -> bool:
    """Check if a permission string is valid."""
    return perm_str in PERMISSION_DEFINITIONS


def get_permissions_for_resource(resource: Resource) -> list[str]:
    """Get all valid permission strings for a resource."""
    return [
        str(Permission(resource, action))
        for action in PERMISSION_MATRIX.get(resource, set())
    ]


def get_all_permissions() -> list[str]:
    """Get all valid permission strings."""
    return list(PERMISSION_DEFINITIONS.keys())

"""Role + ownership permission engine."""

from .engine import (
    Permission,
    Role,
    Scope,
    DenialReason,
    AccessRule,
    ACCESS_RULES,
    DEFAULT_GRANTS,
    BUDDY_FIELDS,
    ResourceOwners,
    AuthorizationResult,
    resolve_grants,
    has_permission,
    has_any_permission,
    has_all_permissions,
    authorize,
    can_edit_buddy_field,
    get_disabled_buddy_fields,
    denied_buddy_fields,
    can_update_buddy_progress,
    can_edit_task,
    can_update_task_status,
)

__all__ = [
    "Permission",
    "Role",
    "Scope",
    "DenialReason",
    "AccessRule",
    "ACCESS_RULES",
    "DEFAULT_GRANTS",
    "BUDDY_FIELDS",
    "ResourceOwners",
    "AuthorizationResult",
    "resolve_grants",
    "has_permission",
    "has_any_permission",
    "has_all_permissions",
    "authorize",
    "can_edit_buddy_field",
    "get_disabled_buddy_fields",
    "denied_buddy_fields",
    "can_update_buddy_progress",
    "can_edit_task",
    "can_update_task_status",
]

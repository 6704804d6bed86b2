"""
Permission engine.

Evaluates role + ownership + explicit permission grants into an allow/deny
decision. Every function here is pure: no I/O, no exceptions for denials.
Callers that need to enforce a decision raise PermissionDeniedError from the
returned AuthorizationResult.

Ownership rules:
- Manager: holds the management superset. Operational progress actions are
  the exception and are never granted to a manager.
- Mentor: allowed only on resources whose assigned mentor is the actor.
- Buddy: allowed only on resources whose buddy user is the actor.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional


class Permission(str, Enum):
    """Fixed permission keys; must match the grant strings stored on users."""
    # Mentor management
    CAN_CREATE_MENTOR = "can_create_mentor"
    CAN_EDIT_MENTOR = "can_edit_mentor"
    CAN_DELETE_MENTOR = "can_delete_mentor"
    CAN_VIEW_MENTORS = "can_view_mentors"

    # Buddy management
    CAN_CREATE_BUDDY = "can_create_buddy"
    CAN_EDIT_BUDDY_ALL = "can_edit_buddy_all"
    CAN_EDIT_BUDDY_NAME = "can_edit_buddy_name"
    CAN_EDIT_BUDDY_ROLE = "can_edit_buddy_role"
    CAN_EDIT_BUDDY_STATUS = "can_edit_buddy_status"
    CAN_EDIT_BUDDY_MENTOR = "can_edit_buddy_mentor"
    CAN_DELETE_BUDDY = "can_delete_buddy"
    CAN_VIEW_BUDDIES = "can_view_buddies"
    CAN_VIEW_OWN_PROFILE = "can_view_own_profile"

    # Task management
    CAN_CREATE_TASK = "can_create_task"
    CAN_EDIT_OWN_TASK = "can_edit_own_task"
    CAN_EDIT_ANY_TASK = "can_edit_any_task"
    CAN_DELETE_OWN_TASK = "can_delete_own_task"
    CAN_DELETE_ANY_TASK = "can_delete_any_task"
    CAN_UPDATE_TASK_STATUS = "can_update_task_status"
    CAN_VIEW_TASKS = "can_view_tasks"

    # Progress management
    CAN_UPDATE_OWN_PROGRESS = "can_update_own_progress"
    CAN_UPDATE_ASSIGNED_BUDDY_PROGRESS = "can_update_assigned_buddy_progress"
    CAN_UPDATE_ANY_PROGRESS = "can_update_any_progress"
    CAN_VIEW_PROGRESS = "can_view_progress"

    # Curriculum and review workflow
    CAN_MANAGE_CURRICULUM = "can_manage_curriculum"
    CAN_ASSIGN_CURRICULUM = "can_assign_curriculum"
    CAN_SUBMIT_OWN_TASK = "can_submit_own_task"
    CAN_REVIEW_SUBMISSION = "can_review_submission"
    CAN_ADD_FEEDBACK = "can_add_feedback"

    # Dashboard & analytics
    CAN_VIEW_DASHBOARD = "can_view_dashboard"
    CAN_VIEW_ANALYTICS = "can_view_analytics"
    CAN_EXPORT_DATA = "can_export_data"


P = Permission


class Role(str, Enum):
    MANAGER = "manager"
    MENTOR = "mentor"
    BUDDY = "buddy"


class Scope(str, Enum):
    """How far a role's grant reaches for one action."""
    ANY = "any"            # no ownership check
    ASSIGNED = "assigned"  # actor must be the buddy's assigned mentor
    SELF = "self"          # actor must be the buddy
    CREATOR = "creator"    # actor must have created the resource
    NONE = "none"          # never allowed for this role


class DenialReason(str, Enum):
    UNKNOWN_ROLE = "unknown_role"
    ROLE_NOT_PERMITTED = "role_not_permitted"
    NOT_OWNER = "not_owner"
    MISSING_GRANT = "missing_grant"
    FIELD_IMMUTABLE = "field_immutable"


# Default grant sets, used when a user carries no explicit grant list
DEFAULT_GRANTS: Dict[Role, FrozenSet[str]] = {
    Role.MANAGER: frozenset(p.value for p in Permission if p not in {
        P.CAN_EDIT_BUDDY_NAME,
        P.CAN_UPDATE_OWN_PROGRESS,
        P.CAN_UPDATE_ASSIGNED_BUDDY_PROGRESS,
        P.CAN_SUBMIT_OWN_TASK,
        P.CAN_VIEW_OWN_PROFILE,
    }),
    Role.MENTOR: frozenset(p.value for p in (
        P.CAN_VIEW_BUDDIES,
        P.CAN_VIEW_MENTORS,
        P.CAN_CREATE_TASK,
        P.CAN_EDIT_OWN_TASK,
        P.CAN_DELETE_OWN_TASK,
        P.CAN_VIEW_TASKS,
        P.CAN_UPDATE_ASSIGNED_BUDDY_PROGRESS,
        P.CAN_VIEW_PROGRESS,
        P.CAN_REVIEW_SUBMISSION,
        P.CAN_ADD_FEEDBACK,
        P.CAN_VIEW_DASHBOARD,
    )),
    Role.BUDDY: frozenset(p.value for p in (
        P.CAN_VIEW_OWN_PROFILE,
        P.CAN_EDIT_BUDDY_NAME,
        P.CAN_VIEW_TASKS,
        P.CAN_UPDATE_TASK_STATUS,
        P.CAN_UPDATE_OWN_PROGRESS,
        P.CAN_SUBMIT_OWN_TASK,
        P.CAN_ADD_FEEDBACK,
        P.CAN_VIEW_PROGRESS,
        P.CAN_VIEW_DASHBOARD,
    )),
}


@dataclass(frozen=True)
class AccessRule:
    manager: Scope = Scope.ANY
    mentor: Scope = Scope.ASSIGNED
    buddy: Scope = Scope.SELF

    def scope_for(self, role: Role) -> Scope:
        return getattr(self, role.value)


# Actions not listed use the default AccessRule()
ACCESS_RULES: Dict[str, AccessRule] = {
    # Operational progress entry: reserved for the people closest to the work
    P.CAN_UPDATE_OWN_PROGRESS.value: AccessRule(manager=Scope.NONE, mentor=Scope.NONE),
    P.CAN_UPDATE_ASSIGNED_BUDDY_PROGRESS.value: AccessRule(manager=Scope.NONE, buddy=Scope.NONE),
    P.CAN_SUBMIT_OWN_TASK.value: AccessRule(manager=Scope.NONE, mentor=Scope.NONE),
    # Review decisions: managers and the assigned mentor only
    P.CAN_REVIEW_SUBMISSION.value: AccessRule(buddy=Scope.NONE),
    # Feedback: reviewers always, buddies on their own submissions
    P.CAN_ADD_FEEDBACK.value: AccessRule(mentor=Scope.ANY),
    # Buddy may only ever touch their own name
    P.CAN_EDIT_BUDDY_NAME.value: AccessRule(manager=Scope.NONE, mentor=Scope.NONE),
    # Task ownership is by creator, not assignment
    P.CAN_CREATE_TASK.value: AccessRule(mentor=Scope.ANY, buddy=Scope.NONE),
    P.CAN_EDIT_OWN_TASK.value: AccessRule(mentor=Scope.CREATOR, buddy=Scope.NONE),
    P.CAN_DELETE_OWN_TASK.value: AccessRule(mentor=Scope.CREATOR, buddy=Scope.NONE),
    P.CAN_EDIT_ANY_TASK.value: AccessRule(mentor=Scope.NONE, buddy=Scope.NONE),
    P.CAN_DELETE_ANY_TASK.value: AccessRule(mentor=Scope.NONE, buddy=Scope.NONE),
    P.CAN_VIEW_ANALYTICS.value: AccessRule(mentor=Scope.NONE, buddy=Scope.NONE),
    # Content is readable by everyone holding the grant
    P.CAN_VIEW_TASKS.value: AccessRule(mentor=Scope.ANY, buddy=Scope.ANY),
    # Management-only actions
    P.CAN_MANAGE_CURRICULUM.value: AccessRule(mentor=Scope.NONE, buddy=Scope.NONE),
    P.CAN_ASSIGN_CURRICULUM.value: AccessRule(mentor=Scope.NONE, buddy=Scope.NONE),
    P.CAN_EDIT_BUDDY_ALL.value: AccessRule(mentor=Scope.NONE, buddy=Scope.NONE),
    P.CAN_EDIT_BUDDY_STATUS.value: AccessRule(mentor=Scope.NONE, buddy=Scope.NONE),
    P.CAN_EDIT_BUDDY_MENTOR.value: AccessRule(mentor=Scope.NONE, buddy=Scope.NONE),
    P.CAN_CREATE_BUDDY.value: AccessRule(mentor=Scope.NONE, buddy=Scope.NONE),
    P.CAN_DELETE_BUDDY.value: AccessRule(mentor=Scope.NONE, buddy=Scope.NONE),
    P.CAN_CREATE_MENTOR.value: AccessRule(mentor=Scope.NONE, buddy=Scope.NONE),
    P.CAN_EDIT_MENTOR.value: AccessRule(mentor=Scope.NONE, buddy=Scope.NONE),
    P.CAN_DELETE_MENTOR.value: AccessRule(mentor=Scope.NONE, buddy=Scope.NONE),
}


@dataclass(frozen=True)
class ResourceOwners:
    """Owner ids relevant to an authorization decision."""
    buddy_user_id: Optional[str] = None
    assigned_mentor_user_id: Optional[str] = None
    creator_user_id: Optional[str] = None


@dataclass(frozen=True)
class AuthorizationResult:
    allowed: bool
    permission: str
    reason: Optional[DenialReason] = None

    def __bool__(self) -> bool:
        return self.allowed


def _allow(permission: str) -> AuthorizationResult:
    return AuthorizationResult(True, permission)


def _deny(permission: str, reason: DenialReason) -> AuthorizationResult:
    return AuthorizationResult(False, permission, reason)


def _key(permission) -> str:
    return permission.value if isinstance(permission, Permission) else str(permission)


def _role(role) -> Optional[Role]:
    try:
        return Role(role)
    except ValueError:
        return None


def resolve_grants(role, grants: Optional[Iterable[str]] = None) -> FrozenSet[str]:
    """Explicit grants win; otherwise the role's default set."""
    if grants is not None:
        return frozenset(_key(g) for g in grants)
    parsed = _role(role)
    return DEFAULT_GRANTS.get(parsed, frozenset()) if parsed else frozenset()


def has_permission(grants: Optional[Iterable[str]], permission) -> bool:
    if not grants:
        return False
    return _key(permission) in set(grants)


def has_any_permission(grants: Optional[Iterable[str]], permissions: Iterable) -> bool:
    if not grants:
        return False
    held = set(grants)
    return any(_key(p) in held for p in permissions)


def has_all_permissions(grants: Optional[Iterable[str]], permissions: Iterable) -> bool:
    if not grants:
        return False
    held = set(grants)
    return all(_key(p) in held for p in permissions)


def authorize(
    actor_role,
    actor_id: str,
    action,
    owners: Optional[ResourceOwners] = None,
    grants: Optional[Iterable[str]] = None,
) -> AuthorizationResult:
    """
    Decide whether an actor may perform an action on a resource.

    Args:
        actor_role: manager, mentor or buddy
        actor_id: the actor's user id
        action: permission key naming the action
        owners: owner ids of the resource
        grants: the actor's explicit grants; None means the role defaults

    Returns:
        AuthorizationResult (truthy when allowed)
    """
    permission = _key(action)
    role = _role(actor_role)
    if role is None:
        return _deny(permission, DenialReason.UNKNOWN_ROLE)

    owners = owners or ResourceOwners()
    scope = ACCESS_RULES.get(permission, AccessRule()).scope_for(role)

    if scope == Scope.NONE:
        return _deny(permission, DenialReason.ROLE_NOT_PERMITTED)
    if scope == Scope.ASSIGNED and (not actor_id or owners.assigned_mentor_user_id != actor_id):
        return _deny(permission, DenialReason.NOT_OWNER)
    if scope == Scope.SELF and (not actor_id or owners.buddy_user_id != actor_id):
        return _deny(permission, DenialReason.NOT_OWNER)
    if scope == Scope.CREATOR and (not actor_id or owners.creator_user_id != actor_id):
        return _deny(permission, DenialReason.NOT_OWNER)

    if permission not in resolve_grants(role, grants):
        return _deny(permission, DenialReason.MISSING_GRANT)

    return _allow(permission)


# ==================== FIELD-LEVEL BUDDY EDITS ====================

BUDDY_FIELDS = ("name", "email", "domainRole", "status", "assignedMentorId")


def can_edit_buddy_field(
    grants: Optional[Iterable[str]],
    actor_role,
    actor_id: str,
    buddy_user_id: str,
    field: str,
) -> bool:
    """Check if the actor can edit one field of a buddy record."""
    if not grants or field not in BUDDY_FIELDS:
        return False

    # Email is immutable for everyone
    if field == "email":
        return False

    role = _role(actor_role)
    if role == Role.MANAGER:
        return has_permission(grants, P.CAN_EDIT_BUDDY_ALL)

    # Mentors never edit buddy fields directly
    if role == Role.MENTOR:
        return False

    if role == Role.BUDDY and actor_id and actor_id == buddy_user_id:
        return field == "name" and has_permission(grants, P.CAN_EDIT_BUDDY_NAME)

    return False


def get_disabled_buddy_fields(
    grants: Optional[Iterable[str]],
    actor_role,
    actor_id: str,
    buddy_user_id: str,
) -> Dict[str, bool]:
    """Map of buddy field -> True when the field must be read-only for this actor."""
    return {
        field: not can_edit_buddy_field(grants, actor_role, actor_id, buddy_user_id, field)
        for field in BUDDY_FIELDS
    }


def denied_buddy_fields(
    grants: Optional[Iterable[str]],
    actor_role,
    actor_id: str,
    buddy_user_id: str,
    fields: Iterable[str],
) -> list:
    """Fields in an edit payload the actor may not change."""
    return [
        field for field in fields
        if not can_edit_buddy_field(grants, actor_role, actor_id, buddy_user_id, field)
    ]


# ==================== PROGRESS & TASK HELPERS ====================

def can_update_buddy_progress(
    grants: Optional[Iterable[str]],
    actor_role,
    actor_id: str,
    buddy_user_id: str,
    assigned_mentor_user_id: Optional[str] = None,
) -> bool:
    """
    Only the buddy's assigned mentor and the buddy themself may enter progress.

    Managers and unassigned mentors are denied even though managers pass the
    broad management checks elsewhere.
    """
    if not grants:
        return False

    role = _role(actor_role)
    if role == Role.MENTOR and actor_id and assigned_mentor_user_id == actor_id:
        return has_permission(grants, P.CAN_UPDATE_ASSIGNED_BUDDY_PROGRESS)

    if role == Role.BUDDY and actor_id and actor_id == buddy_user_id:
        return has_permission(grants, P.CAN_UPDATE_OWN_PROGRESS)

    return False


def can_edit_task(
    grants: Optional[Iterable[str]],
    actor_role,
    actor_id: str,
    task_creator_user_id: Optional[str],
) -> bool:
    if not grants:
        return False

    if has_permission(grants, P.CAN_EDIT_ANY_TASK):
        return True

    if _role(actor_role) == Role.MENTOR and actor_id and actor_id == task_creator_user_id:
        return has_permission(grants, P.CAN_EDIT_OWN_TASK)

    return False


def can_update_task_status(
    grants: Optional[Iterable[str]],
    actor_role,
    actor_id: str,
    task_assigned_to_user_id: Optional[str],
) -> bool:
    """Buddies may move the status of their own tasks; reviewers need an edit grant."""
    if not grants:
        return False

    role = _role(actor_role)
    if role in (Role.MANAGER, Role.MENTOR):
        return has_any_permission(grants, [P.CAN_EDIT_ANY_TASK, P.CAN_EDIT_OWN_TASK])

    if role == Role.BUDDY and actor_id and actor_id == task_assigned_to_user_id:
        return has_permission(grants, P.CAN_UPDATE_TASK_STATUS)

    return False

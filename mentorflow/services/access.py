"""
Shared enforcement helpers for the command surface.

Every mutating command calls `require()` before touching storage. A denial
is audited and surfaced as PermissionDeniedError carrying the failing key.
"""

import logging
from typing import Optional, Type, TypeVar, Union, Dict, Any

from pydantic import BaseModel, ValidationError

from ..database.exceptions import PermissionDeniedError, ValidationFailedError
from ..models.actor import Actor
from ..permissions import Permission, ResourceOwners, authorize, AuthorizationResult
from ..utils.audit_logger import AuditAction, AuditLevel, log_audit_event

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


async def require(
    actor: Actor,
    action: Permission,
    owners: Optional[ResourceOwners] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
) -> AuthorizationResult:
    """Authorize or raise PermissionDeniedError."""
    decision = authorize(actor.role, actor.id, action, owners, actor.permissions)
    if decision:
        return decision

    reason = decision.reason.value if decision.reason else None
    logger.warning(
        f"Permission denied: {actor.role} {actor.id} lacks {decision.permission} "
        f"on {entity_type}:{entity_id} ({reason})"
    )
    await log_audit_event(
        action=AuditAction.PERMISSION_DENIED,
        actor_id=actor.id,
        actor_role=actor.role,
        entity_type=entity_type,
        entity_id=entity_id,
        details={"permission": decision.permission, "reason": reason},
        level=AuditLevel.WARNING,
    )
    raise PermissionDeniedError(
        f"{actor.role} {actor.id} may not {decision.permission} on {entity_type}:{entity_id}",
        permission=decision.permission,
        reason=reason,
    )


async def require_any(
    actor: Actor,
    actions,
    owners: Optional[ResourceOwners] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
) -> AuthorizationResult:
    """Authorize against the first action that allows; raise on the last denial."""
    actions = list(actions)
    for action in actions[:-1]:
        decision = authorize(actor.role, actor.id, action, owners, actor.permissions)
        if decision:
            return decision
    return await require(actor, actions[-1], owners, entity_type, entity_id)


def progress_permission(actor: Actor) -> Permission:
    """Buddies enter their own progress; everyone else needs the assigned-mentor grant."""
    if actor.is_buddy:
        return Permission.CAN_UPDATE_OWN_PROGRESS
    return Permission.CAN_UPDATE_ASSIGNED_BUDDY_PROGRESS


def parse_payload(model: Type[M], payload: Union[M, Dict[str, Any]]) -> M:
    """Coerce a dict payload into its input model; pydantic errors become ValidationFailedError."""
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise ValidationFailedError(f"Invalid {model.__name__}: {'; '.join(errors)}", errors=errors)

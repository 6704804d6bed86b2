"""
Buddy and mentor management service.

Buddy edits are gated per field: email is immutable, a buddy may rename
themself, and only a manager holding can_edit_buddy_all changes the rest.
A payload containing any refused field is rejected whole.
"""

import logging
from typing import Optional, List, Union, Dict, Any

from ..database.exceptions import EntityNotFoundError, PermissionDeniedError
from ..database.models import UserDB, BuddyDB, UserRoleEnum
from ..database.repositories import get_user_repository, UserRepository
from ..models.actor import Actor
from ..models.people import UserCreate, BuddyCreate, BuddyUpdate
from ..permissions import (
    Permission,
    DenialReason,
    ResourceOwners,
    get_disabled_buddy_fields,
    denied_buddy_fields,
    can_update_buddy_progress,
)
from ..utils.audit_logger import AuditAction, AuditLevel, log_audit_event
from .access import require, require_any, parse_payload
from .enrollment import get_enrollment_service

logger = logging.getLogger(__name__)

# BuddyUpdate attribute -> field name used by the field-level gate
UPDATE_FIELDS = {
    "name": "name",
    "email": "email",
    "domain_role": "domainRole",
    "status": "status",
    "assigned_mentor_user_id": "assignedMentorId",
}


class BuddyService:
    """Service for users, buddy profiles and field-level edit gating."""

    def __init__(self):
        self.users: UserRepository = get_user_repository()

    async def _buddy(self, buddy_id: str) -> BuddyDB:
        buddy = await self.users.get_buddy(buddy_id)
        if buddy is None:
            raise EntityNotFoundError(f"Buddy {buddy_id} not found")
        return buddy

    @staticmethod
    def _owners(buddy: BuddyDB) -> ResourceOwners:
        return ResourceOwners(
            buddy_user_id=buddy.user_id,
            assigned_mentor_user_id=buddy.assigned_mentor_user_id,
        )

    # ==================== CREATE ====================

    async def create_mentor(self, actor: Actor, payload: Union[UserCreate, Dict[str, Any]]) -> UserDB:
        await require(actor, Permission.CAN_CREATE_MENTOR, entity_type="user")
        payload = parse_payload(UserCreate, payload)
        return await self.users.create_user(
            name=payload.name,
            email=payload.email,
            role=UserRoleEnum.MENTOR.value,
            permissions=payload.permissions,
        )

    async def create_buddy(self, actor: Actor, payload: Union[BuddyCreate, Dict[str, Any]]) -> BuddyDB:
        """
        Create a buddy user and profile.

        With auto_enroll set, the buddy is enrolled in the published
        curriculum for their domain role when one exists.
        """
        await require(actor, Permission.CAN_CREATE_BUDDY, entity_type="buddy")
        payload = parse_payload(BuddyCreate, payload)

        buddy = await self.users.create_buddy(
            name=payload.name,
            email=payload.email,
            domain_role=payload.domain_role,
            assigned_mentor_user_id=payload.assigned_mentor_user_id,
            permissions=payload.permissions,
        )

        if payload.auto_enroll:
            await get_enrollment_service().enroll_in_domain_curriculum(actor, buddy.id)

        return await self._buddy(buddy.id)

    # ==================== READ ====================

    async def get_buddy(self, actor: Actor, buddy_id: str) -> BuddyDB:
        buddy = await self._buddy(buddy_id)
        await require_any(actor, [Permission.CAN_VIEW_BUDDIES, Permission.CAN_VIEW_OWN_PROFILE],
                          self._owners(buddy), "buddy", buddy_id)
        return buddy

    async def list_buddies(self, actor: Actor, status: Optional[str] = None) -> List[BuddyDB]:
        """Managers see every buddy; a mentor sees the buddies assigned to them."""
        mentor_user_id = actor.id if actor.is_mentor else None
        await require(actor, Permission.CAN_VIEW_BUDDIES,
                      ResourceOwners(assigned_mentor_user_id=mentor_user_id), "buddy")
        return await self.users.list_buddies(mentor_user_id=mentor_user_id, status=status)

    # ==================== UPDATE ====================

    async def get_buddy_field_access(self, actor: Actor, buddy_id: str) -> Dict[str, bool]:
        """Map of buddy field -> True when read-only for this actor."""
        buddy = await self._buddy(buddy_id)
        return get_disabled_buddy_fields(actor.grants, actor.role, actor.id, buddy.user_id)

    async def update_buddy(
        self,
        actor: Actor,
        buddy_id: str,
        payload: Union[BuddyUpdate, Dict[str, Any]],
    ) -> BuddyDB:
        """
        Apply a buddy edit after checking every field it touches.

        Raises:
            PermissionDeniedError: any field in the payload is not editable
                by the actor (reason field_immutable for email)
        """
        buddy = await self._buddy(buddy_id)
        payload = parse_payload(BuddyUpdate, payload)
        changes = payload.model_dump(exclude_unset=True)
        if not changes:
            return buddy

        fields = [UPDATE_FIELDS[key] for key in changes]
        denied = denied_buddy_fields(actor.grants, actor.role, actor.id, buddy.user_id, fields)
        if denied:
            reason = DenialReason.FIELD_IMMUTABLE if denied == ["email"] else DenialReason.NOT_OWNER
            logger.warning(f"{actor.role} {actor.id} may not edit buddy {buddy_id} fields {denied}")
            await log_audit_event(
                action=AuditAction.PERMISSION_DENIED,
                actor_id=actor.id,
                actor_role=actor.role,
                entity_type="buddy",
                entity_id=buddy_id,
                details={"permission": Permission.CAN_EDIT_BUDDY_ALL.value, "fields": denied},
                level=AuditLevel.WARNING,
            )
            raise PermissionDeniedError(
                f"{actor.role} {actor.id} may not edit {', '.join(denied)} of buddy {buddy_id}",
                permission=Permission.CAN_EDIT_BUDDY_ALL.value,
                reason=reason.value,
            )

        return await self.users.update_buddy(buddy_id, changes)

    async def can_update_progress(self, actor: Actor, buddy_id: str) -> bool:
        """True only for the buddy themself or their assigned mentor."""
        buddy = await self._buddy(buddy_id)
        return can_update_buddy_progress(
            actor.grants, actor.role, actor.id, buddy.user_id, buddy.assigned_mentor_user_id
        )

    async def set_permissions(self, actor: Actor, user_id: str, permissions: Optional[List[str]]) -> UserDB:
        """Replace a user's explicit grants. None restores the role defaults."""
        await require(actor, Permission.CAN_EDIT_MENTOR, entity_type="user", entity_id=user_id)
        user = await self.users.set_permissions(user_id, permissions)
        logger.info(f"Permissions of user {user_id} replaced by {actor.id}")
        return user


# Singleton
_buddy_service: Optional[BuddyService] = None


def get_buddy_service() -> BuddyService:
    """Get the buddy service singleton."""
    global _buddy_service
    if _buddy_service is None:
        _buddy_service = BuddyService()
    return _buddy_service

"""
Enrollment and progress service.

Enrollment fans a curriculum out into week progress rows and assignments in
one transaction. Progress is never entered by hand; the recompute commands
below only re-derive it from assignment state.
"""

import logging
from typing import Optional, List, Union, Dict, Any

from ..database.exceptions import EntityNotFoundError
from ..database.models import BuddyCurriculumDB, BuddyWeekProgressDB
from ..database.repositories import (
    get_enrollment_repository,
    get_curriculum_repository,
    get_user_repository,
    EnrollmentRepository,
    CurriculumRepository,
    UserRepository,
)
from ..models.actor import Actor
from ..models.curriculum import EnrollmentOptions
from ..permissions import Permission, ResourceOwners
from ..utils.audit_logger import AuditAction, audit_log, log_audit_event
from .access import require, parse_payload

logger = logging.getLogger(__name__)


class EnrollmentService:
    """Service for enrollments and progress reads."""

    def __init__(self):
        self.enrollments: EnrollmentRepository = get_enrollment_repository()
        self.curricula: CurriculumRepository = get_curriculum_repository()
        self.users: UserRepository = get_user_repository()

    async def _owners(self, buddy_id: str) -> ResourceOwners:
        return await self.users.owners_for_buddy(buddy_id)

    async def enroll(
        self,
        actor: Actor,
        buddy_id: str,
        curriculum_id: str,
        options: Optional[Union[EnrollmentOptions, Dict[str, Any]]] = None,
    ) -> BuddyCurriculumDB:
        """
        Enroll a buddy in a published curriculum.

        Either the enrollment and every week/assignment row exist afterwards,
        or none of them do.
        """
        owners = await self._owners(buddy_id)
        await require(actor, Permission.CAN_ASSIGN_CURRICULUM, owners, "buddy", buddy_id)
        options = parse_payload(EnrollmentOptions, options or {})

        enrollment = await self.enrollments.enroll(
            buddy_id=buddy_id,
            curriculum_id=curriculum_id,
            target_completion_date=options.target_completion_date,
            due_in_days=options.due_in_days,
        )
        await log_audit_event(
            action=AuditAction.ENROLLMENT_CREATE,
            actor_id=actor.id,
            actor_role=actor.role,
            entity_type="enrollment",
            entity_id=enrollment.id,
            details={"buddy_id": buddy_id, "curriculum_id": curriculum_id},
        )
        return enrollment

    async def enroll_in_domain_curriculum(self, actor: Actor, buddy_id: str) -> Optional[BuddyCurriculumDB]:
        """Enroll a buddy in the published curriculum for their domain role, if one exists."""
        buddy = await self.users.get_buddy(buddy_id)
        if buddy is None:
            raise EntityNotFoundError(f"Buddy {buddy_id} not found")

        curriculum = await self.curricula.get_published_for_domain(buddy.domain_role)
        if curriculum is None:
            logger.info(f"No published curriculum for domain '{buddy.domain_role}'; buddy {buddy_id} not enrolled")
            return None
        return await self.enroll(actor, buddy_id, curriculum.id)

    async def get_enrollment(self, actor: Actor, buddy_id: str) -> Optional[BuddyCurriculumDB]:
        """The buddy's open enrollment, or their latest one."""
        owners = await self._owners(buddy_id)
        await require(actor, Permission.CAN_VIEW_PROGRESS, owners, "buddy", buddy_id)
        return await self.enrollments.get_active_enrollment(buddy_id)

    @audit_log(AuditAction.ENROLLMENT_STATUS_CHANGE, entity_type="enrollment", extract_entity_from="enrollment_id")
    async def set_enrollment_status(self, actor: Actor, enrollment_id: str, status: str) -> BuddyCurriculumDB:
        """Pause, resume or drop an enrollment."""
        enrollment = await self.enrollments.get_enrollment(enrollment_id)
        if enrollment is None:
            raise EntityNotFoundError(f"Enrollment {enrollment_id} not found")
        owners = await self.users.owners_for_buddy(enrollment.buddy_id)
        await require(actor, Permission.CAN_ASSIGN_CURRICULUM, owners, "enrollment", enrollment_id)

        updated = await self.enrollments.set_status(enrollment_id, status)
        logger.info(f"Enrollment {enrollment_id} set to {status} by {actor.id}")
        return updated

    # ==================== PROGRESS ====================

    async def list_week_progress(self, actor: Actor, buddy_id: str) -> List[BuddyWeekProgressDB]:
        owners = await self._owners(buddy_id)
        await require(actor, Permission.CAN_VIEW_PROGRESS, owners, "buddy", buddy_id)
        enrollment = await self.enrollments.get_active_enrollment(buddy_id)
        if enrollment is None:
            return []
        return await self.enrollments.list_week_progress(enrollment.id)

    async def recompute_week_progress(self, actor: Actor, week_id: str, buddy_id: str) -> BuddyWeekProgressDB:
        """
        Re-derive one buddy's progress for one week from assignment state.

        Safe to call any number of times: the result depends only on the
        current assignment statuses.
        """
        owners = await self._owners(buddy_id)
        await require(actor, Permission.CAN_VIEW_PROGRESS, owners, "buddy", buddy_id)

        row = await self.enrollments.recompute_week_progress(week_id, buddy_id)
        await log_audit_event(
            action=AuditAction.PROGRESS_RECOMPUTE,
            actor_id=actor.id,
            actor_role=actor.role,
            entity_type="week_progress",
            entity_id=row.id,
            details={"buddy_id": buddy_id, "week_id": week_id, "progress": row.progress_percentage},
        )
        return row

    async def overall_progress(self, actor: Actor, buddy_id: str, curriculum_id: str) -> int:
        """Task-weighted progress across the whole curriculum (0-100)."""
        owners = await self._owners(buddy_id)
        await require(actor, Permission.CAN_VIEW_PROGRESS, owners, "buddy", buddy_id)
        return await self.enrollments.overall_progress(buddy_id, curriculum_id)


# Singleton
_enrollment_service: Optional[EnrollmentService] = None


def get_enrollment_service() -> EnrollmentService:
    """Get the enrollment service singleton."""
    global _enrollment_service
    if _enrollment_service is None:
        _enrollment_service = EnrollmentService()
    return _enrollment_service

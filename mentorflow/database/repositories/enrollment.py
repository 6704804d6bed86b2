"""
Enrollment and progress repository.

Handles:
- Atomic enrollment fan-out (enrollment, week progress rows, assignments)
- Week progress recomputation from assignment state
- Curriculum-level progress materialised on the enrollment

Progress columns have a single writer: the recompute functions below. They
are plain functions of the assignment statuses, so re-running them is safe.
"""

import logging
from datetime import datetime
from typing import Optional, List

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from config import settings
from ..models import (
    new_id,
    BuddyDB,
    CurriculumDB,
    CurriculumWeekDB,
    TaskTemplateDB,
    BuddyCurriculumDB,
    BuddyWeekProgressDB,
    TaskAssignmentDB,
    AssignmentStatusEnum,
    CurriculumStatusEnum,
    BuddyCurriculumStatusEnum,
    WeekProgressStatusEnum,
)
from ..exceptions import (
    DatabaseOperationError,
    EntityNotFoundError,
    InvalidTransitionError,
    MentorflowError,
    ValidationFailedError,
)
from .base import BaseRepository
from ...utils.datetime_utils import get_now, add_days
from ...workflow.progress import (
    WeekProgress,
    compute_week_progress,
    overall_progress,
    current_week_number,
)

logger = logging.getLogger(__name__)

OPEN_ENROLLMENT_STATUSES = (
    BuddyCurriculumStatusEnum.ACTIVE.value,
    BuddyCurriculumStatusEnum.PAUSED.value,
)


# ==================== IN-SESSION RECOMPUTE ====================

async def recompute_week_in_session(
    session: AsyncSession,
    week_progress_id: str,
    now: Optional[datetime] = None,
) -> BuddyWeekProgressDB:
    """Rewrite one week progress row from its assignments' statuses."""
    await session.flush()
    row = await session.get(BuddyWeekProgressDB, week_progress_id)
    if row is None:
        raise EntityNotFoundError(f"Week progress {week_progress_id} not found")

    result = await session.execute(
        select(TaskAssignmentDB.status)
        .where(TaskAssignmentDB.buddy_week_progress_id == week_progress_id)
    )
    progress = compute_week_progress(result.scalars().all())
    now = now or get_now()

    row.total_tasks = progress.total_tasks
    row.completed_tasks = progress.completed_tasks
    row.progress_percentage = progress.progress_percentage
    row.status = progress.status
    if progress.status == WeekProgressStatusEnum.NOT_STARTED.value:
        row.started_at = None
    elif row.started_at is None:
        row.started_at = now
    if progress.status == WeekProgressStatusEnum.COMPLETED.value:
        row.completed_at = row.completed_at or now
    else:
        row.completed_at = None

    await session.flush()
    return row


async def recompute_enrollment_in_session(
    session: AsyncSession,
    enrollment_id: str,
    now: Optional[datetime] = None,
) -> BuddyCurriculumDB:
    """Recompute every week of an enrollment, then its overall progress."""
    enrollment = await session.get(BuddyCurriculumDB, enrollment_id)
    if enrollment is None:
        raise EntityNotFoundError(f"Enrollment {enrollment_id} not found")

    now = now or get_now()
    result = await session.execute(
        select(BuddyWeekProgressDB.id)
        .where(BuddyWeekProgressDB.buddy_curriculum_id == enrollment_id)
    )
    rows = [await recompute_week_in_session(session, row_id, now) for row_id in result.scalars().all()]

    weeks = [_snapshot(row) for row in rows]
    enrollment.overall_progress = overall_progress(weeks)
    enrollment.current_week = current_week_number([(row.week_number, _snapshot(row)) for row in rows])

    total = sum(w.total_tasks for w in weeks)
    finished = total > 0 and all(w.completed_tasks == w.total_tasks for w in weeks)
    if finished and enrollment.status == BuddyCurriculumStatusEnum.ACTIVE.value:
        enrollment.status = BuddyCurriculumStatusEnum.COMPLETED.value
        enrollment.completed_at = now
    elif not finished and enrollment.status == BuddyCurriculumStatusEnum.COMPLETED.value:
        enrollment.status = BuddyCurriculumStatusEnum.ACTIVE.value
        enrollment.completed_at = None

    await session.flush()
    return enrollment


async def recompute_for_assignment_in_session(
    session: AsyncSession,
    assignment: TaskAssignmentDB,
    now: Optional[datetime] = None,
) -> BuddyCurriculumDB:
    """Recompute the week and enrollment an assignment belongs to."""
    return await recompute_enrollment_in_session(session, assignment.buddy_curriculum_id, now)


def _snapshot(row: BuddyWeekProgressDB) -> WeekProgress:
    return WeekProgress(
        total_tasks=row.total_tasks,
        completed_tasks=row.completed_tasks,
        progress_percentage=row.progress_percentage,
        status=row.status,
    )


def _build_assignment(
    enrollment: BuddyCurriculumDB,
    week_progress: BuddyWeekProgressDB,
    template: TaskTemplateDB,
    assigned_at: datetime,
    due_in_days: Optional[int],
) -> TaskAssignmentDB:
    return TaskAssignmentDB(
        id=new_id(),
        buddy_id=enrollment.buddy_id,
        task_template_id=template.id,
        buddy_curriculum_id=enrollment.id,
        buddy_week_progress_id=week_progress.id,
        status=AssignmentStatusEnum.NOT_STARTED.value,
        assigned_at=assigned_at,
        due_date=add_days(assigned_at, due_in_days) if due_in_days else None,
        submission_count=0,
    )


class EnrollmentRepository(BaseRepository):
    """Repository for enrollments and derived progress."""

    # ==================== ENROLLMENT ====================

    async def enroll(
        self,
        buddy_id: str,
        curriculum_id: str,
        target_completion_date: Optional[datetime] = None,
        due_in_days: Optional[int] = None,
    ) -> BuddyCurriculumDB:
        """
        Enroll a buddy in a published curriculum.

        Creates the enrollment, one progress row per week and one assignment
        per active task template in a single transaction: either every row
        exists afterwards or none does.
        """
        due_in_days = due_in_days or settings.default_task_due_days

        async with self.db.session() as session:
            try:
                buddy = await session.get(BuddyDB, buddy_id)
                if buddy is None:
                    raise EntityNotFoundError(f"Buddy {buddy_id} not found")

                result = await session.execute(
                    select(CurriculumDB)
                    .options(selectinload(CurriculumDB.weeks).selectinload(CurriculumWeekDB.tasks))
                    .where(CurriculumDB.id == curriculum_id)
                )
                curriculum = result.scalar_one_or_none()
                if curriculum is None:
                    raise EntityNotFoundError(f"Curriculum {curriculum_id} not found")
                if curriculum.status != CurriculumStatusEnum.PUBLISHED.value or not curriculum.is_active:
                    raise InvalidTransitionError(
                        f"Curriculum {curriculum_id} is '{curriculum.status}'; only published curricula accept enrollments",
                        current_status=curriculum.status,
                    )

                result = await session.execute(
                    select(BuddyCurriculumDB)
                    .where(BuddyCurriculumDB.buddy_id == buddy_id)
                )
                for existing in result.scalars().all():
                    if existing.status in OPEN_ENROLLMENT_STATUSES:
                        raise ValidationFailedError(
                            f"Buddy {buddy_id} already has an active enrollment ({existing.curriculum_id})"
                        )
                    if existing.curriculum_id == curriculum_id:
                        raise ValidationFailedError(
                            f"Buddy {buddy_id} was already enrolled in curriculum {curriculum_id}"
                        )

                now = get_now()
                enrollment = BuddyCurriculumDB(
                    id=new_id(),
                    buddy_id=buddy_id,
                    curriculum_id=curriculum_id,
                    status=BuddyCurriculumStatusEnum.ACTIVE.value,
                    started_at=now,
                    target_completion_date=target_completion_date,
                    current_week=1,
                    overall_progress=0,
                )
                session.add(enrollment)

                assignment_count = 0
                weeks = sorted(curriculum.weeks, key=lambda w: w.week_number)
                for week in weeks:
                    templates = [t for t in week.tasks if t.is_active]
                    week_progress = BuddyWeekProgressDB(
                        id=new_id(),
                        buddy_curriculum_id=enrollment.id,
                        buddy_id=buddy_id,
                        curriculum_week_id=week.id,
                        week_number=week.week_number,
                        total_tasks=len(templates),
                        completed_tasks=0,
                        progress_percentage=0,
                        status=WeekProgressStatusEnum.NOT_STARTED.value,
                    )
                    session.add(week_progress)
                    for template in templates:
                        session.add(_build_assignment(enrollment, week_progress, template, now, due_in_days))
                        assignment_count += 1

                if weeks:
                    enrollment.current_week = weeks[0].week_number

                await session.flush()
                logger.info(
                    f"Enrolled buddy {buddy_id} in curriculum {curriculum_id}: "
                    f"{len(weeks)} weeks, {assignment_count} assignments"
                )
                return enrollment

            except MentorflowError:
                raise

            except IntegrityError as e:
                logger.error(f"Constraint violation enrolling buddy {buddy_id}: {e}")
                raise ValidationFailedError(
                    f"Cannot enroll buddy {buddy_id} in {curriculum_id}: duplicate enrollment or assignment"
                )

            except Exception as e:
                logger.error(f"CRITICAL: Enrollment failed for buddy {buddy_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to enroll buddy {buddy_id}: {e}")

    async def get_enrollment(self, enrollment_id: str) -> Optional[BuddyCurriculumDB]:
        async with self.db.session() as session:
            result = await session.execute(
                select(BuddyCurriculumDB)
                .options(selectinload(BuddyCurriculumDB.week_progress))
                .where(BuddyCurriculumDB.id == enrollment_id)
            )
            return result.scalar_one_or_none()

    async def get_enrollment_for(self, buddy_id: str, curriculum_id: str) -> Optional[BuddyCurriculumDB]:
        async with self.db.session() as session:
            result = await session.execute(
                select(BuddyCurriculumDB)
                .options(selectinload(BuddyCurriculumDB.week_progress))
                .where(
                    BuddyCurriculumDB.buddy_id == buddy_id,
                    BuddyCurriculumDB.curriculum_id == curriculum_id,
                )
            )
            return result.scalar_one_or_none()

    async def get_active_enrollment(self, buddy_id: str) -> Optional[BuddyCurriculumDB]:
        """The buddy's open enrollment, falling back to the latest one."""
        async with self.db.session() as session:
            result = await session.execute(
                select(BuddyCurriculumDB)
                .options(selectinload(BuddyCurriculumDB.week_progress))
                .where(BuddyCurriculumDB.buddy_id == buddy_id)
                .order_by(BuddyCurriculumDB.started_at.desc())
            )
            enrollments = list(result.scalars().all())
            for enrollment in enrollments:
                if enrollment.status in OPEN_ENROLLMENT_STATUSES:
                    return enrollment
            return enrollments[0] if enrollments else None

    async def list_for_curriculum(self, curriculum_id: str) -> List[BuddyCurriculumDB]:
        async with self.db.session() as session:
            result = await session.execute(
                select(BuddyCurriculumDB)
                .options(selectinload(BuddyCurriculumDB.week_progress))
                .where(BuddyCurriculumDB.curriculum_id == curriculum_id)
            )
            return list(result.scalars().all())

    async def set_status(self, enrollment_id: str, status: str) -> BuddyCurriculumDB:
        """Pause, resume or drop an enrollment. Completion is derived, not set."""
        allowed = {
            BuddyCurriculumStatusEnum.ACTIVE.value,
            BuddyCurriculumStatusEnum.PAUSED.value,
            BuddyCurriculumStatusEnum.DROPPED.value,
        }
        if status not in allowed:
            raise ValidationFailedError(f"Invalid enrollment status '{status}'")

        async with self.db.session() as session:
            enrollment = await session.get(BuddyCurriculumDB, enrollment_id)
            if enrollment is None:
                raise EntityNotFoundError(f"Enrollment {enrollment_id} not found")
            if enrollment.status == BuddyCurriculumStatusEnum.COMPLETED.value:
                raise InvalidTransitionError(
                    f"Enrollment {enrollment_id} is completed", current_status=enrollment.status
                )
            enrollment.status = status
            await session.flush()
            return enrollment

    # ==================== PROGRESS ====================

    async def get_week_progress(self, buddy_id: str, week_id: str) -> Optional[BuddyWeekProgressDB]:
        async with self.db.session() as session:
            result = await session.execute(
                select(BuddyWeekProgressDB).where(
                    BuddyWeekProgressDB.buddy_id == buddy_id,
                    BuddyWeekProgressDB.curriculum_week_id == week_id,
                )
            )
            return result.scalar_one_or_none()

    async def list_week_progress(self, enrollment_id: str) -> List[BuddyWeekProgressDB]:
        async with self.db.session() as session:
            result = await session.execute(
                select(BuddyWeekProgressDB)
                .where(BuddyWeekProgressDB.buddy_curriculum_id == enrollment_id)
                .order_by(BuddyWeekProgressDB.week_number)
            )
            return list(result.scalars().all())

    async def recompute_week_progress(self, week_id: str, buddy_id: str) -> BuddyWeekProgressDB:
        """Recompute one buddy's progress for one curriculum week (and the enrollment totals)."""
        async with self.db.session() as session:
            result = await session.execute(
                select(BuddyWeekProgressDB).where(
                    BuddyWeekProgressDB.buddy_id == buddy_id,
                    BuddyWeekProgressDB.curriculum_week_id == week_id,
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                raise EntityNotFoundError(f"No progress row for buddy {buddy_id} in week {week_id}")

            await recompute_enrollment_in_session(session, row.buddy_curriculum_id)
            return row

    async def overall_progress(self, buddy_id: str, curriculum_id: str) -> int:
        """Task-weighted curriculum progress for one buddy."""
        async with self.db.session() as session:
            result = await session.execute(
                select(BuddyWeekProgressDB)
                .join(BuddyCurriculumDB, BuddyCurriculumDB.id == BuddyWeekProgressDB.buddy_curriculum_id)
                .where(
                    BuddyCurriculumDB.buddy_id == buddy_id,
                    BuddyCurriculumDB.curriculum_id == curriculum_id,
                )
            )
            rows = list(result.scalars().all())
            if not rows:
                enrollment = await session.execute(
                    select(BuddyCurriculumDB.id).where(
                        BuddyCurriculumDB.buddy_id == buddy_id,
                        BuddyCurriculumDB.curriculum_id == curriculum_id,
                    )
                )
                if enrollment.scalar_one_or_none() is None:
                    raise EntityNotFoundError(
                        f"Buddy {buddy_id} is not enrolled in curriculum {curriculum_id}"
                    )
            return overall_progress([_snapshot(row) for row in rows])


# Singleton
_enrollment_repository: Optional[EnrollmentRepository] = None


def get_enrollment_repository() -> EnrollmentRepository:
    """Get the enrollment repository singleton."""
    global _enrollment_repository
    if _enrollment_repository is None:
        _enrollment_repository = EnrollmentRepository()
    return _enrollment_repository

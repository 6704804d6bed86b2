"""
Task assignment repository.

Handles:
- Assignment reads with template and week context
- start (idempotent)
- Submission version allocation

Version numbers come from a single UPDATE ... SET submission_count =
submission_count + 1 RETURNING submission_count, so two concurrent submits
can never read the same counter value. The unique (assignment, version)
index turns any remaining collision into ConflictingVersionError.
"""

import logging
from typing import Optional, List, Dict, Any, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from ..models import (
    new_id,
    TaskAssignmentDB,
    TaskTemplateDB,
    CurriculumWeekDB,
    SubmissionDB,
    SubmissionResourceDB,
    AssignmentStatusEnum,
    ReviewStatusEnum,
)
from ..exceptions import (
    ConflictingVersionError,
    DatabaseOperationError,
    EntityNotFoundError,
    InvalidTransitionError,
    MentorflowError,
)
from .base import BaseRepository
from .enrollment import recompute_for_assignment_in_session
from ...utils.datetime_utils import get_now
from ...workflow.state_machine import AssignmentEvent, VERSIONABLE, next_status, target_status

logger = logging.getLogger(__name__)


class AssignmentRepository(BaseRepository):
    """Repository for task assignment lifecycle writes."""

    # ==================== READS ====================

    async def get_by_id(self, assignment_id: str) -> Optional[TaskAssignmentDB]:
        """Get an assignment with its template and week loaded."""
        async with self.db.session() as session:
            result = await session.execute(
                select(TaskAssignmentDB)
                .options(
                    selectinload(TaskAssignmentDB.task_template).selectinload(TaskTemplateDB.week),
                )
                .where(TaskAssignmentDB.id == assignment_id)
            )
            return result.scalar_one_or_none()

    async def list_for_buddy(
        self,
        buddy_id: str,
        status: Optional[str] = None,
        week_number: Optional[int] = None,
    ) -> List[TaskAssignmentDB]:
        """Assignments of one buddy ordered by week and display order."""
        async with self.db.session() as session:
            query = (
                select(TaskAssignmentDB)
                .join(TaskTemplateDB, TaskTemplateDB.id == TaskAssignmentDB.task_template_id)
                .join(CurriculumWeekDB, CurriculumWeekDB.id == TaskTemplateDB.curriculum_week_id)
                .options(selectinload(TaskAssignmentDB.task_template).selectinload(TaskTemplateDB.week))
                .where(TaskAssignmentDB.buddy_id == buddy_id)
                .order_by(CurriculumWeekDB.week_number, TaskTemplateDB.display_order)
            )
            if status:
                query = query.where(TaskAssignmentDB.status == status)
            if week_number is not None:
                query = query.where(CurriculumWeekDB.week_number == week_number)

            result = await session.execute(query)
            return list(result.scalars().all())

    async def count_submissions(self, assignment_id: str) -> Tuple[int, List[int]]:
        """(stored submission_count, sorted versions of stored submissions)."""
        async with self.db.session() as session:
            assignment = await session.get(TaskAssignmentDB, assignment_id)
            if assignment is None:
                raise EntityNotFoundError(f"Assignment {assignment_id} not found")
            result = await session.execute(
                select(SubmissionDB.version)
                .where(SubmissionDB.task_assignment_id == assignment_id)
                .order_by(SubmissionDB.version)
            )
            return assignment.submission_count, list(result.scalars().all())

    # ==================== TRANSITIONS ====================

    async def start(self, assignment_id: str) -> Tuple[TaskAssignmentDB, bool]:
        """
        Move not_started -> in_progress.

        Returns:
            (assignment, changed). Starting an already-started assignment is a
            no-op success with changed=False.
        """
        async with self.db.session() as session:
            now = get_now()
            result = await session.execute(
                update(TaskAssignmentDB)
                .where(
                    TaskAssignmentDB.id == assignment_id,
                    TaskAssignmentDB.status == AssignmentStatusEnum.NOT_STARTED.value,
                )
                .values(
                    status=target_status(AssignmentEvent.START),
                    started_at=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            changed = result.rowcount == 1

            assignment = await session.get(TaskAssignmentDB, assignment_id, populate_existing=True)
            if assignment is None:
                raise EntityNotFoundError(f"Assignment {assignment_id} not found")

            if changed:
                await recompute_for_assignment_in_session(session, assignment, now)
                logger.info(f"Assignment {assignment_id} started")
            return assignment, changed

    async def create_submission(
        self,
        assignment_id: str,
        buddy_id: str,
        description: str,
        notes: Optional[str] = None,
        resources: Optional[List[Dict[str, Any]]] = None,
    ) -> SubmissionDB:
        """
        Allocate the next version and store a submission.

        The caller has already checked the transition against the state it
        read. The allocation itself only refuses states no submission may
        come from (not_started, completed), so two submits that both passed
        that check each obtain their own version.
        """
        async with self.db.session() as session:
            try:
                now = get_now()
                result = await session.execute(
                    update(TaskAssignmentDB)
                    .where(
                        TaskAssignmentDB.id == assignment_id,
                        TaskAssignmentDB.status.in_(VERSIONABLE),
                    )
                    .values(
                        submission_count=TaskAssignmentDB.submission_count + 1,
                        status=AssignmentStatusEnum.SUBMITTED.value,
                        first_submission_at=func.coalesce(TaskAssignmentDB.first_submission_at, now),
                        updated_at=now,
                    )
                    .returning(TaskAssignmentDB.submission_count)
                    .execution_options(synchronize_session=False)
                )
                version = result.scalar_one_or_none()

                if version is None:
                    assignment = await session.get(TaskAssignmentDB, assignment_id)
                    if assignment is None:
                        raise EntityNotFoundError(f"Assignment {assignment_id} not found")
                    # Raises with the precise reason for the current status
                    next_status(assignment.status, AssignmentEvent.SUBMIT)
                    raise InvalidTransitionError(
                        f"Cannot submit assignment {assignment_id} in status '{assignment.status}'",
                        current_status=assignment.status,
                    )

                submission = SubmissionDB(
                    id=new_id(),
                    task_assignment_id=assignment_id,
                    buddy_id=buddy_id,
                    version=version,
                    description=description,
                    notes=notes,
                    review_status=ReviewStatusEnum.PENDING.value,
                    submitted_at=now,
                )
                session.add(submission)
                for order, resource in enumerate(resources or []):
                    session.add(SubmissionResourceDB(
                        id=new_id(),
                        submission_id=submission.id,
                        type=resource["type"],
                        label=resource["label"],
                        url=resource["url"],
                        filename=resource.get("filename"),
                        filesize=resource.get("filesize"),
                        display_order=order,
                    ))
                await session.flush()

                assignment = await session.get(TaskAssignmentDB, assignment_id, populate_existing=True)
                await recompute_for_assignment_in_session(session, assignment, now)

                logger.info(f"Assignment {assignment_id} submitted as version {version}")
                return submission

            except MentorflowError:
                raise

            except IntegrityError as e:
                logger.warning(f"Version collision on assignment {assignment_id}: {e}")
                raise ConflictingVersionError(
                    f"Submission version for assignment {assignment_id} was allocated concurrently; retry explicitly"
                )

            except Exception as e:
                logger.error(f"CRITICAL: Submission failed for assignment {assignment_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to submit assignment {assignment_id}: {e}")


# Singleton
_assignment_repository: Optional[AssignmentRepository] = None


def get_assignment_repository() -> AssignmentRepository:
    """Get the assignment repository singleton."""
    global _assignment_repository
    if _assignment_repository is None:
        _assignment_repository = AssignmentRepository()
    return _assignment_repository

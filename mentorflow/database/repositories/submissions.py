"""
Submission repository.

Handles:
- Version history reads (explicit max(version) for the current submission)
- Review decisions (begin review, approve, request revision, reject)
- Grading and pending-submission edits

Review decisions are compare-and-set updates on the submission row: the
WHERE clause requires an open review status and the highest version for the
assignment. When two reviewers race, exactly one update matches; the other
observes the resolved status and gets AlreadyReviewedError.
"""

import logging
from typing import Optional, List, Dict, Any

from sqlalchemy import select, update, func
from sqlalchemy.orm import selectinload

from ..models import (
    new_id,
    SubmissionDB,
    SubmissionFeedbackDB,
    TaskAssignmentDB,
    AssignmentStatusEnum,
    ReviewStatusEnum,
)
from ..exceptions import (
    AlreadyReviewedError,
    DatabaseOperationError,
    EntityNotFoundError,
    InvalidTransitionError,
    MentorflowError,
)
from .base import BaseRepository
from .enrollment import recompute_for_assignment_in_session
from ...utils.datetime_utils import get_now
from ...workflow.state_machine import (
    AssignmentEvent,
    OPEN_REVIEW_STATUSES,
    allowed_sources,
    is_review_open,
    next_status,
    review_verdict,
)

logger = logging.getLogger(__name__)


def _latest_version(assignment_id: str):
    return (
        select(func.max(SubmissionDB.version))
        .where(SubmissionDB.task_assignment_id == assignment_id)
        .scalar_subquery()
    )


class SubmissionRepository(BaseRepository):
    """Repository for submissions and their review verdicts."""

    # ==================== READS ====================

    async def get_by_id(self, submission_id: str) -> Optional[SubmissionDB]:
        async with self.db.session() as session:
            result = await session.execute(
                select(SubmissionDB)
                .options(selectinload(SubmissionDB.resources))
                .where(SubmissionDB.id == submission_id)
            )
            return result.scalar_one_or_none()

    async def list_for_assignment(self, assignment_id: str) -> List[SubmissionDB]:
        """Every version of an assignment, oldest first."""
        async with self.db.session() as session:
            result = await session.execute(
                select(SubmissionDB)
                .options(selectinload(SubmissionDB.resources))
                .where(SubmissionDB.task_assignment_id == assignment_id)
                .order_by(SubmissionDB.version)
            )
            return list(result.scalars().all())

    async def get_current(self, assignment_id: str) -> Optional[SubmissionDB]:
        """The highest-version submission of an assignment."""
        async with self.db.session() as session:
            result = await session.execute(
                select(SubmissionDB)
                .options(selectinload(SubmissionDB.resources))
                .where(SubmissionDB.task_assignment_id == assignment_id)
                .order_by(SubmissionDB.version.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def list_for_buddy(self, buddy_id: str, limit: int = 20) -> List[SubmissionDB]:
        async with self.db.session() as session:
            result = await session.execute(
                select(SubmissionDB)
                .options(selectinload(SubmissionDB.resources))
                .where(SubmissionDB.buddy_id == buddy_id)
                .order_by(SubmissionDB.submitted_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    # ==================== REVIEW DECISIONS ====================

    async def resolve_review(
        self,
        submission_id: str,
        event: AssignmentEvent,
        reviewer_id: str,
        reviewer_role: Optional[str] = None,
        grade: Optional[str] = None,
        message: Optional[str] = None,
        feedback_type: Optional[str] = None,
    ) -> SubmissionDB:
        """
        Record a review verdict and move the assignment accordingly.

        Args:
            submission_id: Submission being reviewed
            event: APPROVE, REQUEST_REVISION or REJECT
            reviewer_id: User id of the reviewer
            reviewer_role: Reviewer role, stored on the feedback row
            grade: Optional grade (approve only)
            message: Feedback message appended to the thread when given
            feedback_type: Feedback type for that message

        Raises:
            EntityNotFoundError, AlreadyReviewedError, InvalidTransitionError
        """
        verdict = review_verdict(event)
        if event == AssignmentEvent.BEGIN_REVIEW or verdict is None:
            raise ValueError(f"{event} is not a review verdict")

        async with self.db.session() as session:
            try:
                submission = await session.get(SubmissionDB, submission_id)
                if submission is None:
                    raise EntityNotFoundError(f"Submission {submission_id} not found")
                if not is_review_open(submission.review_status):
                    raise AlreadyReviewedError(
                        f"Submission {submission_id} was already reviewed ({submission.review_status})",
                        review_status=submission.review_status,
                    )

                assignment = await session.get(TaskAssignmentDB, submission.task_assignment_id)
                new_status = next_status(assignment.status, event)

                now = get_now()
                values: Dict[str, Any] = {
                    "review_status": verdict,
                    "reviewed_by": reviewer_id,
                    "reviewed_at": now,
                    "updated_at": now,
                }
                if event == AssignmentEvent.APPROVE and grade is not None:
                    values["grade"] = grade

                await self._compare_and_set(session, submission, OPEN_REVIEW_STATUSES, values)

                assignment_values: Dict[str, Any] = {"status": new_status, "updated_at": now}
                if new_status == AssignmentStatusEnum.COMPLETED.value:
                    assignment_values["completed_at"] = now

                result = await session.execute(
                    update(TaskAssignmentDB)
                    .where(
                        TaskAssignmentDB.id == assignment.id,
                        TaskAssignmentDB.status.in_(allowed_sources(event)),
                    )
                    .values(**assignment_values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise InvalidTransitionError(
                        f"Assignment {assignment.id} changed while reviewing submission {submission_id}"
                    )

                if message:
                    session.add(SubmissionFeedbackDB(
                        id=new_id(),
                        submission_id=submission_id,
                        author_id=reviewer_id,
                        author_role=reviewer_role or "mentor",
                        message=message,
                        feedback_type=feedback_type,
                        created_at=now,
                    ))

                assignment = await session.get(TaskAssignmentDB, assignment.id, populate_existing=True)
                await recompute_for_assignment_in_session(session, assignment, now)

                submission = await self._reload(session, submission_id)
                logger.info(
                    f"Submission {submission_id} v{submission.version} {verdict} by {reviewer_id}; "
                    f"assignment {assignment.id} -> {new_status}"
                )
                return submission

            except MentorflowError:
                raise

            except Exception as e:
                logger.error(f"CRITICAL: Review of submission {submission_id} failed: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to review submission {submission_id}: {e}")

    async def begin_review(self, submission_id: str, reviewer_id: str) -> SubmissionDB:
        """
        Mark the current submission as under review.

        Already under review is a no-op success; a resolved verdict raises
        AlreadyReviewedError.
        """
        async with self.db.session() as session:
            submission = await session.get(SubmissionDB, submission_id)
            if submission is None:
                raise EntityNotFoundError(f"Submission {submission_id} not found")
            if submission.review_status == ReviewStatusEnum.UNDER_REVIEW.value:
                return await self._reload(session, submission_id)
            if not is_review_open(submission.review_status):
                raise AlreadyReviewedError(
                    f"Submission {submission_id} was already reviewed ({submission.review_status})",
                    review_status=submission.review_status,
                )

            assignment = await session.get(TaskAssignmentDB, submission.task_assignment_id)
            new_status = next_status(assignment.status, AssignmentEvent.BEGIN_REVIEW)

            now = get_now()
            await self._compare_and_set(
                session,
                submission,
                {ReviewStatusEnum.PENDING.value},
                {"review_status": ReviewStatusEnum.UNDER_REVIEW.value, "updated_at": now},
            )
            result = await session.execute(
                update(TaskAssignmentDB)
                .where(
                    TaskAssignmentDB.id == assignment.id,
                    TaskAssignmentDB.status.in_(allowed_sources(AssignmentEvent.BEGIN_REVIEW)),
                )
                .values(status=new_status, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidTransitionError(
                    f"Assignment {assignment.id} changed while starting review of submission {submission_id}"
                )
            logger.info(f"Review of submission {submission_id} started by {reviewer_id}")
            return await self._reload(session, submission_id)

    async def set_grade(self, submission_id: str, grade: str) -> SubmissionDB:
        """Grade (or re-grade) an approved submission without touching its verdict."""
        async with self.db.session() as session:
            submission = await session.get(SubmissionDB, submission_id)
            if submission is None:
                raise EntityNotFoundError(f"Submission {submission_id} not found")
            if submission.review_status != ReviewStatusEnum.APPROVED.value:
                raise InvalidTransitionError(
                    f"Only approved submissions can be graded; {submission_id} is '{submission.review_status}'",
                    current_status=submission.review_status,
                )
            submission.grade = grade
            await session.flush()
            return await self._reload(session, submission_id)

    async def update_pending(
        self,
        submission_id: str,
        description: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> SubmissionDB:
        """Edit description/notes of the current submission while it is still pending."""
        values: Dict[str, Any] = {}
        if description is not None:
            values["description"] = description
        if notes is not None:
            values["notes"] = notes

        async with self.db.session() as session:
            submission = await session.get(SubmissionDB, submission_id)
            if submission is None:
                raise EntityNotFoundError(f"Submission {submission_id} not found")
            if not values:
                return await self._reload(session, submission_id)

            values["updated_at"] = get_now()
            result = await session.execute(
                update(SubmissionDB)
                .where(
                    SubmissionDB.id == submission_id,
                    SubmissionDB.review_status == ReviewStatusEnum.PENDING.value,
                    SubmissionDB.version == _latest_version(submission.task_assignment_id),
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidTransitionError(
                    f"Submission {submission_id} is no longer editable "
                    f"(status '{submission.review_status}', version {submission.version})",
                    current_status=submission.review_status,
                )
            return await self._reload(session, submission_id)

    # ==================== HELPERS ====================

    async def _compare_and_set(
        self,
        session,
        submission: SubmissionDB,
        expected_statuses,
        values: Dict[str, Any],
    ) -> None:
        result = await session.execute(
            update(SubmissionDB)
            .where(
                SubmissionDB.id == submission.id,
                SubmissionDB.review_status.in_(list(expected_statuses)),
                SubmissionDB.version == _latest_version(submission.task_assignment_id),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return

        current = await session.execute(
            select(SubmissionDB.review_status).where(SubmissionDB.id == submission.id)
        )
        review_status = current.scalar_one()
        if not is_review_open(review_status):
            raise AlreadyReviewedError(
                f"Submission {submission.id} was already reviewed ({review_status})",
                review_status=review_status,
            )
        raise InvalidTransitionError(
            f"Submission {submission.id} (v{submission.version}) is not the current submission",
            current_status=review_status,
        )

    async def _reload(self, session, submission_id: str) -> SubmissionDB:
        result = await session.execute(
            select(SubmissionDB)
            .options(selectinload(SubmissionDB.resources))
            .where(SubmissionDB.id == submission_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()


# Singleton
_submission_repository: Optional[SubmissionRepository] = None


def get_submission_repository() -> SubmissionRepository:
    """Get the submission repository singleton."""
    global _submission_repository
    if _submission_repository is None:
        _submission_repository = SubmissionRepository()
    return _submission_repository

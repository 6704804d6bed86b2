"""
Feedback repository.

Feedback rows form a reply tree through parent_feedback_id. Threads are
rebuilt from one query ordered by created_at; a reply is always created
strictly after its parent. Deleting a row never touches its replies, which
then surface as roots.
"""

import logging
from datetime import timedelta
from typing import Optional, List

from sqlalchemy import select

from ..models import new_id, SubmissionDB, SubmissionFeedbackDB, FeedbackTypeEnum
from ..exceptions import (
    DatabaseOperationError,
    EntityNotFoundError,
    MentorflowError,
    ValidationFailedError,
)
from .base import BaseRepository
from ...utils.datetime_utils import get_now

logger = logging.getLogger(__name__)

_ONE_TICK = timedelta(microseconds=1)


class FeedbackRepository(BaseRepository):
    """Repository for submission feedback threads."""

    async def add(
        self,
        submission_id: str,
        author_id: str,
        author_role: str,
        message: str,
        feedback_type: str = FeedbackTypeEnum.COMMENT.value,
        parent_feedback_id: Optional[str] = None,
    ) -> SubmissionFeedbackDB:
        """
        Append a feedback row.

        Raises:
            EntityNotFoundError: submission or parent missing
            ValidationFailedError: parent belongs to another submission
        """
        async with self.db.session() as session:
            try:
                submission = await session.get(SubmissionDB, submission_id)
                if submission is None:
                    raise EntityNotFoundError(f"Submission {submission_id} not found")

                now = get_now()
                if parent_feedback_id:
                    parent = await session.get(SubmissionFeedbackDB, parent_feedback_id)
                    if parent is None:
                        raise EntityNotFoundError(f"Feedback {parent_feedback_id} not found")
                    if parent.submission_id != submission_id:
                        raise ValidationFailedError(
                            f"Feedback {parent_feedback_id} belongs to another submission"
                        )
                    # Replies sort strictly after their parent
                    if now <= parent.created_at:
                        now = parent.created_at + _ONE_TICK

                feedback = SubmissionFeedbackDB(
                    id=new_id(),
                    submission_id=submission_id,
                    author_id=author_id,
                    author_role=author_role,
                    message=message,
                    feedback_type=feedback_type,
                    parent_feedback_id=parent_feedback_id,
                    created_at=now,
                    updated_at=now,
                )
                session.add(feedback)
                await session.flush()

                logger.info(f"Feedback {feedback.id} ({feedback_type}) added to submission {submission_id}")
                return feedback

            except MentorflowError:
                raise

            except Exception as e:
                logger.error(f"CRITICAL: Adding feedback to {submission_id} failed: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to add feedback to submission {submission_id}: {e}")

    async def get_by_id(self, feedback_id: str) -> Optional[SubmissionFeedbackDB]:
        async with self.db.session() as session:
            return await session.get(SubmissionFeedbackDB, feedback_id)

    async def list_for_submission(self, submission_id: str) -> List[SubmissionFeedbackDB]:
        """All feedback of a submission in creation order."""
        async with self.db.session() as session:
            result = await session.execute(
                select(SubmissionFeedbackDB)
                .where(SubmissionFeedbackDB.submission_id == submission_id)
                .order_by(SubmissionFeedbackDB.created_at, SubmissionFeedbackDB.id)
            )
            return list(result.scalars().all())

    async def update_message(self, feedback_id: str, message: str) -> SubmissionFeedbackDB:
        """Change the message only; authorship and linkage are fixed."""
        async with self.db.session() as session:
            feedback = await session.get(SubmissionFeedbackDB, feedback_id)
            if feedback is None:
                raise EntityNotFoundError(f"Feedback {feedback_id} not found")
            feedback.message = message
            feedback.updated_at = get_now()
            await session.flush()
            return feedback

    async def delete(self, feedback_id: str) -> SubmissionFeedbackDB:
        """Hard-delete one row. Replies are left in place."""
        async with self.db.session() as session:
            feedback = await session.get(SubmissionFeedbackDB, feedback_id)
            if feedback is None:
                raise EntityNotFoundError(f"Feedback {feedback_id} not found")
            await session.delete(feedback)
            await session.flush()
            logger.info(f"Feedback {feedback_id} deleted from submission {feedback.submission_id}")
            return feedback


# Singleton
_feedback_repository: Optional[FeedbackRepository] = None


def get_feedback_repository() -> FeedbackRepository:
    """Get the feedback repository singleton."""
    global _feedback_repository
    if _feedback_repository is None:
        _feedback_repository = FeedbackRepository()
    return _feedback_repository

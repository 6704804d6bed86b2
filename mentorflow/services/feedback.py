"""
Feedback service.

Feedback is additive: edits change the message only, deletes are hard and
leave replies behind as root-level entries.
"""

import logging
from typing import Optional, List, Dict, Union, Any

from ..database.exceptions import EntityNotFoundError, PermissionDeniedError, ValidationFailedError
from ..database.models import SubmissionFeedbackDB
from ..database.repositories import (
    get_feedback_repository,
    get_submission_repository,
    get_user_repository,
    FeedbackRepository,
    SubmissionRepository,
    UserRepository,
)
from ..models.actor import Actor
from ..models.dashboard import FeedbackView
from ..models.submission import FeedbackCreate
from ..permissions import Permission, ResourceOwners
from ..utils.audit_logger import AuditAction, log_audit_event
from .access import require, parse_payload

logger = logging.getLogger(__name__)


def build_feedback_threads(rows: List[SubmissionFeedbackDB]) -> List[FeedbackView]:
    """
    Group feedback rows into reply trees.

    Rows are sorted by created_at first. A row whose parent is missing (deleted,
    or never on this submission) is treated as a root.
    """
    ordered = sorted(rows, key=lambda r: (r.created_at, r.id))
    views: Dict[str, FeedbackView] = {
        row.id: FeedbackView.model_validate(row, from_attributes=True) for row in ordered
    }

    roots: List[FeedbackView] = []
    for row in ordered:
        view = views[row.id]
        parent = views.get(row.parent_feedback_id) if row.parent_feedback_id else None
        if parent is None:
            roots.append(view)
        else:
            parent.replies.append(view)
    return roots


class FeedbackService:
    """Service for submission feedback threads."""

    def __init__(self):
        self.feedback: FeedbackRepository = get_feedback_repository()
        self.submissions: SubmissionRepository = get_submission_repository()
        self.users: UserRepository = get_user_repository()

    async def _owners(self, submission_id: str) -> ResourceOwners:
        submission = await self.submissions.get_by_id(submission_id)
        if submission is None:
            raise EntityNotFoundError(f"Submission {submission_id} not found")
        return await self.users.owners_for_buddy(submission.buddy_id)

    async def add_feedback(
        self,
        actor: Actor,
        submission_id: str,
        payload: Union[FeedbackCreate, Dict[str, Any]],
    ) -> SubmissionFeedbackDB:
        """
        Add a message to a submission's thread.

        Mentors and managers may comment on any submission; a buddy only on
        their own. A parent must be feedback on the same submission.
        """
        owners = await self._owners(submission_id)
        await require(actor, Permission.CAN_ADD_FEEDBACK, owners, "submission", submission_id)

        payload = parse_payload(FeedbackCreate, payload)
        return await self.feedback.add(
            submission_id=submission_id,
            author_id=actor.id,
            author_role=actor.role,
            message=payload.message,
            feedback_type=payload.feedback_type,
            parent_feedback_id=payload.parent_feedback_id,
        )

    async def get_submission_feedback(self, actor: Actor, submission_id: str) -> List[FeedbackView]:
        """Thread roots in creation order, each carrying its replies."""
        owners = await self._owners(submission_id)
        await require(actor, Permission.CAN_VIEW_PROGRESS, owners, "submission", submission_id)
        rows = await self.feedback.list_for_submission(submission_id)
        return build_feedback_threads(rows)

    async def update_feedback(self, actor: Actor, feedback_id: str, message: str) -> SubmissionFeedbackDB:
        """Change the message of one's own feedback."""
        feedback = await self._editable(actor, feedback_id, "edit")
        message = (message or "").strip()
        if not message:
            raise ValidationFailedError("Feedback message cannot be empty")
        return await self.feedback.update_message(feedback.id, message)

    async def delete_feedback(self, actor: Actor, feedback_id: str) -> SubmissionFeedbackDB:
        """Hard-delete feedback. Its replies stay and surface as roots."""
        feedback = await self._editable(actor, feedback_id, "delete")
        deleted = await self.feedback.delete(feedback.id)
        await log_audit_event(
            action=AuditAction.FEEDBACK_DELETE,
            actor_id=actor.id,
            actor_role=actor.role,
            entity_type="feedback",
            entity_id=feedback_id,
            details={"submission_id": deleted.submission_id},
        )
        return deleted

    async def _editable(self, actor: Actor, feedback_id: str, verb: str) -> SubmissionFeedbackDB:
        """Authors may change their own feedback; managers may change any."""
        feedback = await self.feedback.get_by_id(feedback_id)
        if feedback is None:
            raise EntityNotFoundError(f"Feedback {feedback_id} not found")

        owners = await self._owners(feedback.submission_id)
        await require(actor, Permission.CAN_ADD_FEEDBACK, owners, "feedback", feedback_id)
        if feedback.author_id != actor.id and not actor.is_manager:
            logger.warning(f"{actor.role} {actor.id} tried to {verb} feedback {feedback_id} by {feedback.author_id}")
            raise PermissionDeniedError(
                f"Only the author may {verb} feedback {feedback_id}",
                permission=Permission.CAN_ADD_FEEDBACK.value,
                reason="not_owner",
            )
        return feedback


# Singleton
_feedback_service: Optional[FeedbackService] = None


def get_feedback_service() -> FeedbackService:
    """Get the feedback service singleton."""
    global _feedback_service
    if _feedback_service is None:
        _feedback_service = FeedbackService()
    return _feedback_service

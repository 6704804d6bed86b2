"""
Assignment and review service.

Command surface for the task lifecycle:
- start / submit (buddy, or the assigned mentor for start)
- begin review / approve / request revision / reject / grade (reviewers)
- edit of a still-pending submission

Each command authorizes first, checks the transition against the state it
read, then hands the write to the repository. Nothing is written when
either check fails.
"""

import logging
from typing import Optional, List, Union, Dict, Any, Tuple

from ..database.exceptions import EntityNotFoundError, ValidationFailedError
from ..database.models import (
    TaskAssignmentDB,
    SubmissionDB,
    FeedbackTypeEnum,
)
from ..database.repositories import (
    get_assignment_repository,
    get_submission_repository,
    get_user_repository,
    AssignmentRepository,
    SubmissionRepository,
    UserRepository,
)
from ..models.actor import Actor
from ..models.submission import SubmitTaskPayload, SubmissionUpdate
from ..permissions import Permission, ResourceOwners
from ..utils.audit_logger import AuditAction, log_audit_event
from ..utils.validation import validate_submission_resources, validate_submission_text
from ..workflow.state_machine import AssignmentEvent, next_status
from .access import require, progress_permission, parse_payload

logger = logging.getLogger(__name__)

# Feedback type recorded with each review verdict's message
VERDICT_FEEDBACK = {
    AssignmentEvent.APPROVE: FeedbackTypeEnum.APPROVAL.value,
    AssignmentEvent.REQUEST_REVISION: FeedbackTypeEnum.REVISION_REQUEST.value,
    AssignmentEvent.REJECT: FeedbackTypeEnum.COMMENT.value,
}

VERDICT_AUDIT = {
    AssignmentEvent.APPROVE: AuditAction.SUBMISSION_APPROVE,
    AssignmentEvent.REQUEST_REVISION: AuditAction.SUBMISSION_REVISION_REQUEST,
    AssignmentEvent.REJECT: AuditAction.SUBMISSION_REJECT,
}


class AssignmentService:
    """Service for assignment lifecycle and review decisions."""

    def __init__(self):
        self.assignments: AssignmentRepository = get_assignment_repository()
        self.submissions: SubmissionRepository = get_submission_repository()
        self.users: UserRepository = get_user_repository()

    # ==================== LOOKUPS ====================

    async def _assignment(self, assignment_id: str) -> Tuple[TaskAssignmentDB, ResourceOwners]:
        assignment = await self.assignments.get_by_id(assignment_id)
        if assignment is None:
            raise EntityNotFoundError(f"Assignment {assignment_id} not found")
        owners = await self.users.owners_for_buddy(assignment.buddy_id)
        return assignment, owners

    async def _submission(
        self, submission_id: str
    ) -> Tuple[SubmissionDB, TaskAssignmentDB, ResourceOwners]:
        submission = await self.submissions.get_by_id(submission_id)
        if submission is None:
            raise EntityNotFoundError(f"Submission {submission_id} not found")
        assignment, owners = await self._assignment(submission.task_assignment_id)
        return submission, assignment, owners

    # ==================== READS ====================

    async def get_assignment(self, actor: Actor, assignment_id: str) -> TaskAssignmentDB:
        assignment, owners = await self._assignment(assignment_id)
        await require(actor, Permission.CAN_VIEW_PROGRESS, owners, "assignment", assignment_id)
        return assignment

    async def list_submissions(self, actor: Actor, assignment_id: str) -> List[SubmissionDB]:
        """Every version of an assignment, oldest first."""
        _, owners = await self._assignment(assignment_id)
        await require(actor, Permission.CAN_VIEW_PROGRESS, owners, "assignment", assignment_id)
        return await self.submissions.list_for_assignment(assignment_id)

    async def get_current_submission(self, actor: Actor, assignment_id: str) -> Optional[SubmissionDB]:
        _, owners = await self._assignment(assignment_id)
        await require(actor, Permission.CAN_VIEW_PROGRESS, owners, "assignment", assignment_id)
        return await self.submissions.get_current(assignment_id)

    # ==================== BUDDY COMMANDS ====================

    async def start(self, actor: Actor, assignment_id: str) -> TaskAssignmentDB:
        """
        Start an assignment. Starting one that has already left not_started
        is a no-op success.
        """
        _, owners = await self._assignment(assignment_id)
        await require(actor, progress_permission(actor), owners, "assignment", assignment_id)

        assignment, changed = await self.assignments.start(assignment_id)
        if changed:
            await log_audit_event(
                action=AuditAction.ASSIGNMENT_START,
                actor_id=actor.id,
                actor_role=actor.role,
                entity_type="assignment",
                entity_id=assignment_id,
            )
        return assignment

    async def submit(
        self,
        actor: Actor,
        assignment_id: str,
        payload: Union[SubmitTaskPayload, Dict[str, Any]],
    ) -> SubmissionDB:
        """
        Create the next submission version.

        Raises:
            PermissionDeniedError: actor is not the assignment's buddy
            InvalidTransitionError: assignment not in_progress / needs_revision
            ValidationFailedError: payload or resources invalid for the template
        """
        assignment, owners = await self._assignment(assignment_id)
        await require(actor, Permission.CAN_SUBMIT_OWN_TASK, owners, "assignment", assignment_id)
        next_status(assignment.status, AssignmentEvent.SUBMIT)

        payload = parse_payload(SubmitTaskPayload, payload)
        resources = [r.model_dump() for r in payload.resources]

        errors: List[str] = []
        text_check = validate_submission_text(payload.description, payload.notes)
        errors.extend(text_check.errors)
        resource_check = validate_submission_resources(
            resources, assignment.task_template.expected_resource_types
        )
        errors.extend(resource_check.errors)
        if errors:
            raise ValidationFailedError(f"Submission for assignment {assignment_id} is invalid", errors=errors)
        for warning in text_check.warnings + resource_check.warnings:
            logger.debug(f"Submission warning on {assignment_id}: {warning}")

        created = await self.assignments.create_submission(
            assignment_id=assignment_id,
            buddy_id=assignment.buddy_id,
            description=payload.description,
            notes=payload.notes,
            resources=resources,
        )
        submission = await self.submissions.get_by_id(created.id) or created

        await log_audit_event(
            action=AuditAction.SUBMISSION_CREATE,
            actor_id=actor.id,
            actor_role=actor.role,
            entity_type="submission",
            entity_id=submission.id,
            details={"assignment_id": assignment_id, "version": submission.version},
        )
        return submission

    async def update_submission(
        self,
        actor: Actor,
        submission_id: str,
        payload: Union[SubmissionUpdate, Dict[str, Any]],
    ) -> SubmissionDB:
        """Edit description/notes of the current submission while still pending."""
        _, _, owners = await self._submission(submission_id)
        await require(actor, Permission.CAN_SUBMIT_OWN_TASK, owners, "submission", submission_id)

        payload = parse_payload(SubmissionUpdate, payload)
        if payload.description is not None:
            check = validate_submission_text(payload.description, payload.notes)
            if not check.is_valid:
                raise ValidationFailedError(f"Submission {submission_id} update is invalid", errors=check.errors)

        return await self.submissions.update_pending(
            submission_id, description=payload.description, notes=payload.notes
        )

    # ==================== REVIEW COMMANDS ====================

    async def begin_review(self, actor: Actor, submission_id: str) -> SubmissionDB:
        _, _, owners = await self._submission(submission_id)
        await require(actor, Permission.CAN_REVIEW_SUBMISSION, owners, "submission", submission_id)

        submission = await self.submissions.begin_review(submission_id, actor.id)
        await log_audit_event(
            action=AuditAction.REVIEW_BEGIN,
            actor_id=actor.id,
            actor_role=actor.role,
            entity_type="submission",
            entity_id=submission_id,
        )
        return submission

    async def approve(
        self,
        actor: Actor,
        submission_id: str,
        grade: Optional[str] = None,
        message: Optional[str] = None,
    ) -> SubmissionDB:
        """Approve the current submission; the assignment completes."""
        return await self._decide(actor, submission_id, AssignmentEvent.APPROVE, message, grade)

    async def request_revision(self, actor: Actor, submission_id: str, message: str) -> SubmissionDB:
        """Send the current submission back; the buddy resubmits."""
        return await self._decide(actor, submission_id, AssignmentEvent.REQUEST_REVISION, message)

    async def reject(self, actor: Actor, submission_id: str, message: str) -> SubmissionDB:
        """Reject this attempt; the assignment still awaits a new submission."""
        return await self._decide(actor, submission_id, AssignmentEvent.REJECT, message)

    async def grade(self, actor: Actor, submission_id: str, grade: str) -> SubmissionDB:
        """Set or change the grade of an approved submission."""
        _, _, owners = await self._submission(submission_id)
        await require(actor, Permission.CAN_REVIEW_SUBMISSION, owners, "submission", submission_id)
        if not grade or not grade.strip():
            raise ValidationFailedError("Grade cannot be empty")

        submission = await self.submissions.set_grade(submission_id, grade.strip())
        await log_audit_event(
            action=AuditAction.SUBMISSION_GRADE,
            actor_id=actor.id,
            actor_role=actor.role,
            entity_type="submission",
            entity_id=submission_id,
            details={"grade": submission.grade},
        )
        return submission

    async def _decide(
        self,
        actor: Actor,
        submission_id: str,
        event: AssignmentEvent,
        message: Optional[str],
        grade: Optional[str] = None,
    ) -> SubmissionDB:
        _, assignment, owners = await self._submission(submission_id)
        await require(actor, Permission.CAN_REVIEW_SUBMISSION, owners, "submission", submission_id)

        message = (message or "").strip() or None
        grade = (grade or "").strip() or None
        if event != AssignmentEvent.APPROVE and not message:
            raise ValidationFailedError(f"A message is required to {event.value} a submission")

        submission = await self.submissions.resolve_review(
            submission_id=submission_id,
            event=event,
            reviewer_id=actor.id,
            reviewer_role=actor.role,
            grade=grade,
            message=message,
            feedback_type=VERDICT_FEEDBACK[event],
        )

        await log_audit_event(
            action=VERDICT_AUDIT[event],
            actor_id=actor.id,
            actor_role=actor.role,
            entity_type="submission",
            entity_id=submission_id,
            details={
                "assignment_id": assignment.id,
                "version": submission.version,
                "review_status": submission.review_status,
                "grade": submission.grade,
            },
        )
        return submission


# Singleton
_assignment_service: Optional[AssignmentService] = None


def get_assignment_service() -> AssignmentService:
    """Get the assignment service singleton."""
    global _assignment_service
    if _assignment_service is None:
        _assignment_service = AssignmentService()
    return _assignment_service

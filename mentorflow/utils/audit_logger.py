"""
Audit logging for workflow decisions and content changes.

Tracks: curriculum lifecycle, destructive content edits, enrollments,
submissions, review verdicts, feedback deletion, permission denials.
"""

import logging
import functools
import inspect
from typing import Optional, Dict, Any, Callable
from enum import Enum

logger = logging.getLogger(__name__)


class AuditAction(str, Enum):
    """Types of auditable actions."""
    # Content
    CURRICULUM_CREATE = "curriculum_create"
    CURRICULUM_PUBLISH = "curriculum_publish"
    CURRICULUM_UNPUBLISH = "curriculum_unpublish"
    CURRICULUM_ARCHIVE = "curriculum_archive"
    CURRICULUM_DUPLICATE = "curriculum_duplicate"
    CURRICULUM_DELETE = "curriculum_delete"
    WEEK_DELETE = "week_delete"
    TASK_TEMPLATE_DELETE = "task_template_delete"
    TASK_TEMPLATE_ARCHIVE = "task_template_archive"
    TASK_TEMPLATE_RESTORE = "task_template_restore"

    # Enrollment
    ENROLLMENT_CREATE = "enrollment_create"
    ENROLLMENT_STATUS_CHANGE = "enrollment_status_change"
    PROGRESS_RECOMPUTE = "progress_recompute"

    # Workflow
    ASSIGNMENT_START = "assignment_start"
    SUBMISSION_CREATE = "submission_create"
    REVIEW_BEGIN = "review_begin"
    SUBMISSION_APPROVE = "submission_approve"
    SUBMISSION_REVISION_REQUEST = "submission_revision_request"
    SUBMISSION_REJECT = "submission_reject"
    SUBMISSION_GRADE = "submission_grade"
    FEEDBACK_DELETE = "feedback_delete"

    # Security
    PERMISSION_DENIED = "permission_denied"


class AuditLevel(str, Enum):
    """Severity levels for audit events."""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


async def log_audit_event(
    action: AuditAction,
    actor_id: Optional[str] = None,
    actor_role: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    level: AuditLevel = AuditLevel.INFO,
) -> bool:
    """
    Log an audit event to database and system logs.

    Must be called outside any open session; it writes in its own.

    Args:
        action: Type of action performed
        actor_id: ID of user performing action
        actor_role: Role of that user
        entity_type: Type of entity affected (submission, curriculum, ...)
        entity_id: ID of affected entity
        details: Additional context
        level: Severity level

    Returns:
        True if logged successfully
    """
    try:
        from ..database.repositories import get_audit_repository

        audit_repo = get_audit_repository()
        await audit_repo.create(
            action=action.value,
            actor_id=actor_id,
            actor_role=actor_role,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details or {},
            level=level.value,
        )

        log_message = f"AUDIT: {action.value} by {actor_id or 'system'}"
        if entity_type and entity_id:
            log_message += f" on {entity_type}:{entity_id}"

        if level == AuditLevel.CRITICAL:
            logger.critical(log_message, extra={"audit": True, "details": details})
        elif level == AuditLevel.WARNING:
            logger.warning(log_message, extra={"audit": True, "details": details})
        else:
            logger.info(log_message, extra={"audit": True, "details": details})

        return True

    except Exception as e:
        # Never fail the operation due to audit logging failure
        logger.error(f"Failed to log audit event: {e}")
        return False


def audit_log(
    action: AuditAction,
    entity_type: Optional[str] = None,
    level: AuditLevel = AuditLevel.INFO,
    extract_actor_from: str = "actor",
    extract_entity_from: Optional[str] = None,
):
    """
    Decorator to audit a service call after it succeeds.

    Usage:
        @audit_log(AuditAction.CURRICULUM_PUBLISH, entity_type="curriculum",
                   extract_entity_from="curriculum_id")
        async def publish(self, actor: Actor, curriculum_id: str):
            ...

    The actor is read from the named argument (positional or keyword) and
    must expose `id` and `role`. Failures are not audited here; taxonomy
    errors are surfaced to the caller unchanged.
    """
    def decorator(func: Callable):
        signature = inspect.signature(func)

        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            result = await func(*args, **kwargs)

            bound = signature.bind(*args, **kwargs).arguments
            actor = bound.get(extract_actor_from)
            entity_id = bound.get(extract_entity_from) if extract_entity_from else None
            if entity_id is None and result is not None:
                entity_id = getattr(result, "id", None)

            await log_audit_event(
                action=action,
                actor_id=getattr(actor, "id", None),
                actor_role=getattr(actor, "role", None),
                entity_type=entity_type,
                entity_id=entity_id,
                details={"function": func.__name__},
                level=level,
            )
            return result

        return wrapper
    return decorator

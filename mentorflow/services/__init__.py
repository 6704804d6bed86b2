"""
Services for business logic.

Each service is the command surface for one area: authorize, check the
transition, call the repository, then record the audit event.
"""

from .access import require, require_any, progress_permission
from .content import ContentService, get_content_service
from .enrollment import EnrollmentService, get_enrollment_service
from .buddies import BuddyService, get_buddy_service
from .assignments import AssignmentService, get_assignment_service
from .feedback import FeedbackService, get_feedback_service, build_feedback_threads
from .dashboards import DashboardService, get_dashboard_service

__all__ = [
    "require",
    "require_any",
    "progress_permission",
    "ContentService",
    "get_content_service",
    "EnrollmentService",
    "get_enrollment_service",
    "BuddyService",
    "get_buddy_service",
    "AssignmentService",
    "get_assignment_service",
    "FeedbackService",
    "get_feedback_service",
    "build_feedback_threads",
    "DashboardService",
    "get_dashboard_service",
]

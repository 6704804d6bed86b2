"""
Repository classes for database operations.

Each repository handles CRUD and complex queries for its aggregate and is
reached through a `get_*_repository()` singleton.
"""

from .base import BaseRepository
from .audit import AuditRepository, get_audit_repository
from .users import UserRepository, get_user_repository
from .curriculum import CurriculumRepository, get_curriculum_repository
from .enrollment import EnrollmentRepository, get_enrollment_repository
from .assignments import AssignmentRepository, get_assignment_repository
from .submissions import SubmissionRepository, get_submission_repository
from .feedback import FeedbackRepository, get_feedback_repository
from .dashboards import DashboardRepository, get_dashboard_repository

__all__ = [
    "BaseRepository",
    "AuditRepository",
    "get_audit_repository",
    "UserRepository",
    "get_user_repository",
    "CurriculumRepository",
    "get_curriculum_repository",
    "EnrollmentRepository",
    "get_enrollment_repository",
    "AssignmentRepository",
    "get_assignment_repository",
    "SubmissionRepository",
    "get_submission_repository",
    "FeedbackRepository",
    "get_feedback_repository",
    "DashboardRepository",
    "get_dashboard_repository",
]

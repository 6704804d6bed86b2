"""
Database module for Mentorflow.

Handles:
- Curriculum content (curricula, weeks, task templates)
- Enrollments with derived week and curriculum progress
- Task assignments, versioned submissions and feedback threads
- Users, buddy ownership data and audit logs

PostgreSQL (asyncpg) in production, SQLite (aiosqlite) locally and in tests.
"""

from .connection import (
    get_database,
    set_database,
    Database,
    init_database,
    close_database,
)
from .models import (
    Base,
    UserDB,
    BuddyDB,
    CurriculumDB,
    CurriculumWeekDB,
    TaskTemplateDB,
    BuddyCurriculumDB,
    BuddyWeekProgressDB,
    TaskAssignmentDB,
    SubmissionDB,
    SubmissionResourceDB,
    SubmissionFeedbackDB,
    AuditLogDB,
)

__all__ = [
    "get_database",
    "set_database",
    "Database",
    "init_database",
    "close_database",
    "Base",
    "UserDB",
    "BuddyDB",
    "CurriculumDB",
    "CurriculumWeekDB",
    "TaskTemplateDB",
    "BuddyCurriculumDB",
    "BuddyWeekProgressDB",
    "TaskAssignmentDB",
    "SubmissionDB",
    "SubmissionResourceDB",
    "SubmissionFeedbackDB",
    "AuditLogDB",
]

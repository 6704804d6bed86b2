"""
SQLAlchemy models for the mentorship database.

Schema includes:
- Users and buddy profiles (role + mentor assignment, used for ownership checks)
- Curriculum content (curricula, weeks, task templates)
- Enrollments with per-week progress rows
- Task assignments with versioned submissions
- Submission resources and feedback threads
- Audit logs
"""

import enum
import uuid
from datetime import datetime
from typing import Optional, List

from sqlalchemy import (
    String,
    Text,
    Integer,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    JSON,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship, Mapped, mapped_column

from ..utils.datetime_utils import get_now


def new_id() -> str:
    """Generate a string primary key."""
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# ==================== ENUMS ====================

class UserRoleEnum(str, enum.Enum):
    MANAGER = "manager"
    MENTOR = "mentor"
    BUDDY = "buddy"


class DomainRoleEnum(str, enum.Enum):
    FRONTEND = "frontend"
    BACKEND = "backend"
    FULLSTACK = "fullstack"
    DEVOPS = "devops"
    QA = "qa"
    HR = "hr"


class BuddyStatusEnum(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    EXITED = "exited"


class CurriculumStatusEnum(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class TaskDifficultyEnum(str, enum.Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class BuddyCurriculumStatusEnum(str, enum.Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    DROPPED = "dropped"


class WeekProgressStatusEnum(str, enum.Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class AssignmentStatusEnum(str, enum.Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    NEEDS_REVISION = "needs_revision"
    COMPLETED = "completed"


class ReviewStatusEnum(str, enum.Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    NEEDS_REVISION = "needs_revision"
    REJECTED = "rejected"


class FeedbackTypeEnum(str, enum.Enum):
    COMMENT = "comment"
    QUESTION = "question"
    APPROVAL = "approval"
    REVISION_REQUEST = "revision_request"
    REPLY = "reply"


# ==================== PEOPLE ====================

class UserDB(Base):
    """Platform user (manager, mentor or buddy) with explicit permission grants."""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    # None means "use the role's default grant set"
    permissions: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=get_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=get_now, onupdate=get_now)

    __table_args__ = (
        Index("idx_users_role", "role"),
    )


class BuddyDB(Base):
    """Buddy profile: the trainee record mentors and managers act on."""
    __tablename__ = "buddies"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, unique=True)
    domain_role: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=BuddyStatusEnum.ACTIVE.value)
    assigned_mentor_user_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=get_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=get_now, onupdate=get_now)

    user: Mapped["UserDB"] = relationship("UserDB", foreign_keys=[user_id])

    __table_args__ = (
        Index("idx_buddies_mentor", "assigned_mentor_user_id"),
    )


# ==================== CONTENT ====================

class CurriculumDB(Base):
    """Curriculum template for one domain role."""
    __tablename__ = "curricula"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    domain_role: Mapped[str] = mapped_column(String(20), nullable=False)
    total_weeks: Mapped[int] = mapped_column(Integer, default=0)  # advisory only
    status: Mapped[str] = mapped_column(String(20), default=CurriculumStatusEnum.DRAFT.value)
    version: Mapped[str] = mapped_column(String(20), default="1.0")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    tags: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    last_modified_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=get_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=get_now, onupdate=get_now)

    weeks: Mapped[List["CurriculumWeekDB"]] = relationship(
        "CurriculumWeekDB",
        back_populates="curriculum",
        cascade="all, delete-orphan",
        order_by="CurriculumWeekDB.display_order",
    )

    __table_args__ = (
        Index("idx_curricula_domain_status", "domain_role", "status"),
    )


class CurriculumWeekDB(Base):
    """One week of a curriculum."""
    __tablename__ = "curriculum_weeks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    curriculum_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("curricula.id", ondelete="CASCADE"), nullable=False
    )
    week_number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    learning_objectives: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    resources: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=get_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=get_now, onupdate=get_now)

    curriculum: Mapped["CurriculumDB"] = relationship("CurriculumDB", back_populates="weeks")
    tasks: Mapped[List["TaskTemplateDB"]] = relationship(
        "TaskTemplateDB",
        back_populates="week",
        cascade="all, delete-orphan",
        order_by="TaskTemplateDB.display_order",
    )

    __table_args__ = (
        UniqueConstraint("curriculum_id", "week_number", name="uq_week_number"),
    )


class TaskTemplateDB(Base):
    """Reusable task definition inside a week."""
    __tablename__ = "task_templates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    curriculum_week_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("curriculum_weeks.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    requirements: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    difficulty: Mapped[str] = mapped_column(String(10), default=TaskDifficultyEnum.MEDIUM.value)
    estimated_hours: Mapped[float] = mapped_column(Float, default=0)
    # [{"type": "github", "label": "Repository", "required": true}, ...]
    expected_resource_types: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    resources: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=get_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=get_now, onupdate=get_now)

    week: Mapped["CurriculumWeekDB"] = relationship("CurriculumWeekDB", back_populates="tasks")


# ==================== ENROLLMENT & PROGRESS ====================

class BuddyCurriculumDB(Base):
    """A buddy's enrollment in a curriculum."""
    __tablename__ = "buddy_curricula"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    buddy_id: Mapped[str] = mapped_column(String(36), ForeignKey("buddies.id"), nullable=False)
    curriculum_id: Mapped[str] = mapped_column(String(36), ForeignKey("curricula.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=BuddyCurriculumStatusEnum.ACTIVE.value)
    started_at: Mapped[datetime] = mapped_column(DateTime, default=get_now)
    target_completion_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    current_week: Mapped[int] = mapped_column(Integer, default=1)
    # Materialised by the progress recompute, never written from input
    overall_progress: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=get_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=get_now, onupdate=get_now)

    week_progress: Mapped[List["BuddyWeekProgressDB"]] = relationship(
        "BuddyWeekProgressDB",
        back_populates="enrollment",
        cascade="all, delete-orphan",
        order_by="BuddyWeekProgressDB.week_number",
    )
    assignments: Mapped[List["TaskAssignmentDB"]] = relationship(
        "TaskAssignmentDB",
        back_populates="enrollment",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("buddy_id", "curriculum_id", name="uq_buddy_curriculum"),
        Index("idx_enrollment_buddy_status", "buddy_id", "status"),
    )


class BuddyWeekProgressDB(Base):
    """Per-week progress row; every counter here is derived from assignments."""
    __tablename__ = "buddy_week_progress"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    buddy_curriculum_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("buddy_curricula.id", ondelete="CASCADE"), nullable=False
    )
    buddy_id: Mapped[str] = mapped_column(String(36), ForeignKey("buddies.id"), nullable=False)
    curriculum_week_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("curriculum_weeks.id"), nullable=False
    )
    week_number: Mapped[int] = mapped_column(Integer, nullable=False)
    total_tasks: Mapped[int] = mapped_column(Integer, default=0)
    completed_tasks: Mapped[int] = mapped_column(Integer, default=0)
    progress_percentage: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(20), default=WeekProgressStatusEnum.NOT_STARTED.value)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=get_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=get_now, onupdate=get_now)

    enrollment: Mapped["BuddyCurriculumDB"] = relationship("BuddyCurriculumDB", back_populates="week_progress")

    __table_args__ = (
        UniqueConstraint("buddy_id", "curriculum_week_id", name="uq_buddy_week"),
    )


# ==================== ASSIGNMENTS & SUBMISSIONS ====================

class TaskAssignmentDB(Base):
    """Per-buddy instance of a task template; owns the lifecycle status."""
    __tablename__ = "task_assignments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    buddy_id: Mapped[str] = mapped_column(String(36), ForeignKey("buddies.id"), nullable=False)
    task_template_id: Mapped[str] = mapped_column(String(36), ForeignKey("task_templates.id"), nullable=False)
    buddy_curriculum_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("buddy_curricula.id", ondelete="CASCADE"), nullable=False
    )
    buddy_week_progress_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("buddy_week_progress.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), default=AssignmentStatusEnum.NOT_STARTED.value)
    assigned_at: Mapped[datetime] = mapped_column(DateTime, default=get_now)
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    first_submission_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    # Version sequence for submissions; only ever incremented in SQL
    submission_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=get_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=get_now, onupdate=get_now)

    enrollment: Mapped["BuddyCurriculumDB"] = relationship("BuddyCurriculumDB", back_populates="assignments")
    task_template: Mapped["TaskTemplateDB"] = relationship("TaskTemplateDB")
    submissions: Mapped[List["SubmissionDB"]] = relationship(
        "SubmissionDB",
        back_populates="assignment",
        cascade="all, delete-orphan",
        order_by="SubmissionDB.version",
    )

    __table_args__ = (
        UniqueConstraint("buddy_id", "task_template_id", name="uq_assignment_buddy_template"),
        Index("idx_assignments_week_progress", "buddy_week_progress_id"),
        Index("idx_assignments_status", "status"),
    )


class SubmissionDB(Base):
    """One versioned attempt at an assignment."""
    __tablename__ = "submissions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    task_assignment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("task_assignments.id", ondelete="CASCADE"), nullable=False
    )
    buddy_id: Mapped[str] = mapped_column(String(36), ForeignKey("buddies.id"), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    review_status: Mapped[str] = mapped_column(String(20), default=ReviewStatusEnum.PENDING.value)
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    grade: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(DateTime, default=get_now)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=get_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=get_now, onupdate=get_now)

    assignment: Mapped["TaskAssignmentDB"] = relationship("TaskAssignmentDB", back_populates="submissions")
    resources: Mapped[List["SubmissionResourceDB"]] = relationship(
        "SubmissionResourceDB",
        back_populates="submission",
        cascade="all, delete-orphan",
        order_by="SubmissionResourceDB.display_order",
    )
    feedback: Mapped[List["SubmissionFeedbackDB"]] = relationship(
        "SubmissionFeedbackDB",
        back_populates="submission",
        cascade="all, delete-orphan",
        order_by="SubmissionFeedbackDB.created_at",
    )

    __table_args__ = (
        UniqueConstraint("task_assignment_id", "version", name="uq_submission_version"),
        Index("idx_submissions_review_status", "review_status"),
    )


class SubmissionResourceDB(Base):
    """Link or file attached to a submission."""
    __tablename__ = "submission_resources"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    submission_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)  # github, hosted_url, pdf, ...
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    filename: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    filesize: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=get_now)

    submission: Mapped["SubmissionDB"] = relationship("SubmissionDB", back_populates="resources")


class SubmissionFeedbackDB(Base):
    """Feedback message; parent_feedback_id forms a reply tree ordered by created_at."""
    __tablename__ = "submission_feedback"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    submission_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False
    )
    author_id: Mapped[str] = mapped_column(String(36), nullable=False)
    author_role: Mapped[str] = mapped_column(String(20), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    feedback_type: Mapped[str] = mapped_column(String(30), default=FeedbackTypeEnum.COMMENT.value)
    # Plain column, not a foreign key: deleting a parent leaves replies in place
    parent_feedback_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=get_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=get_now, onupdate=get_now)

    submission: Mapped["SubmissionDB"] = relationship("SubmissionDB", back_populates="feedback")

    __table_args__ = (
        Index("idx_feedback_submission_created", "submission_id", "created_at"),
    )


# ==================== AUDIT LOGS ====================

class AuditLogDB(Base):
    """Audit trail for content changes, workflow decisions and denials."""
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    action: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    entity_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    actor_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    actor_role: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    level: Mapped[str] = mapped_column(String(20), default="info")
    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=get_now)

    __table_args__ = (
        Index("idx_audit_action", "action"),
        Index("idx_audit_timestamp", "timestamp"),
        Index("idx_audit_entity", "entity_type", "entity_id"),
    )

"""Read projections. Query-only views derived from the stored state."""

from datetime import datetime
from typing import Optional, List, Dict, Literal

from pydantic import BaseModel, Field


class ResourceView(BaseModel):
    type: str
    label: str
    url: str
    filename: Optional[str] = None

    model_config = {"from_attributes": True}


class SubmissionView(BaseModel):
    id: str
    task_assignment_id: str
    buddy_id: str
    version: int
    description: str
    notes: Optional[str] = None
    review_status: str
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    grade: Optional[str] = None
    submitted_at: datetime
    resources: List[ResourceView] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class FeedbackView(BaseModel):
    id: str
    submission_id: str
    author_id: str
    author_role: str
    message: str
    feedback_type: str
    parent_feedback_id: Optional[str] = None
    created_at: datetime
    replies: List["FeedbackView"] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class AssignmentView(BaseModel):
    id: str
    buddy_id: str
    task_template_id: str
    task_title: str
    week_number: int
    status: str
    assigned_at: datetime
    due_date: Optional[datetime] = None
    started_at: Optional[datetime] = None
    first_submission_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    submission_count: int = 0


class WeekProgressView(BaseModel):
    id: str
    curriculum_week_id: str
    week_number: int
    total_tasks: int
    completed_tasks: int
    progress_percentage: int
    status: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class WeekAssignments(BaseModel):
    """One week of a buddy's dashboard: its progress and the assignments under it."""
    progress: WeekProgressView
    assignments: List[AssignmentView] = Field(default_factory=list)


class EnrollmentView(BaseModel):
    id: str
    buddy_id: str
    curriculum_id: str
    status: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    current_week: int
    overall_progress: int

    model_config = {"from_attributes": True}


class BuddyStatistics(BaseModel):
    overall_progress: int
    completed_tasks: int
    total_tasks: int
    current_week: int
    total_weeks: int
    days_active: int
    pending_submissions: int


class BuddyDashboardData(BaseModel):
    enrollment: EnrollmentView
    weeks: List[WeekAssignments]
    upcoming_tasks: List[AssignmentView]
    recent_submissions: List[SubmissionView]
    statistics: BuddyStatistics


class ReviewQueueItem(BaseModel):
    submission_id: str
    task_assignment_id: str
    buddy_id: str
    buddy_name: str
    task_template_id: str
    task_title: str
    week_number: int
    week_title: str
    submitted_at: datetime
    version: int
    resource_count: int
    previous_feedback_count: int
    days_waiting: int


class MentorReviewQueue(BaseModel):
    urgent: List[ReviewQueueItem] = Field(default_factory=list)
    recent: List[ReviewQueueItem] = Field(default_factory=list)
    all: List[ReviewQueueItem] = Field(default_factory=list)


class ReviewQueueFilters(BaseModel):
    buddy_id: Optional[str] = None
    week_number: Optional[int] = Field(None, ge=1)
    task_template_id: Optional[str] = None
    sort_by: Literal["oldest", "newest", "priority"] = "oldest"


class BuddyProgressSummary(BaseModel):
    buddy_id: str
    buddy_name: str
    progress: int
    current_week: int


class MentorDashboard(BaseModel):
    total_buddies: int
    active_buddies: int
    pending_reviews: int
    urgent_reviews: int
    recent_submissions: List[SubmissionView]
    buddy_progress: List[BuddyProgressSummary]


class WeekCompletionRate(BaseModel):
    week_number: int
    completion_rate: float


class CurriculumAnalytics(BaseModel):
    curriculum_id: str
    total_buddies: int
    active_buddies: int
    completed_buddies: int
    average_progress: float
    average_completion_time: float  # days
    task_completion_rate: float
    week_completion_rates: List[WeekCompletionRate]
    grade_distribution: Dict[str, int] = Field(default_factory=dict)
    average_submissions_per_completed_task: float = 0.0

from .actor import Actor
from .curriculum import (
    ExpectedResourceType,
    LinkResource,
    CurriculumCreate,
    CurriculumUpdate,
    CurriculumFilters,
    WeekCreate,
    WeekUpdate,
    TaskTemplateCreate,
    TaskTemplateUpdate,
    ReorderItem,
    EnrollmentOptions,
)
from .submission import (
    SubmissionResourceInput,
    SubmitTaskPayload,
    SubmissionUpdate,
    FeedbackCreate,
)
from .people import UserCreate, BuddyCreate, BuddyUpdate
from .dashboard import (
    ResourceView,
    SubmissionView,
    FeedbackView,
    AssignmentView,
    WeekProgressView,
    WeekAssignments,
    EnrollmentView,
    BuddyStatistics,
    BuddyDashboardData,
    ReviewQueueItem,
    MentorReviewQueue,
    ReviewQueueFilters,
    BuddyProgressSummary,
    MentorDashboard,
    WeekCompletionRate,
    CurriculumAnalytics,
)

__all__ = [
    "Actor",
    "ExpectedResourceType",
    "LinkResource",
    "CurriculumCreate",
    "CurriculumUpdate",
    "CurriculumFilters",
    "WeekCreate",
    "WeekUpdate",
    "TaskTemplateCreate",
    "TaskTemplateUpdate",
    "ReorderItem",
    "EnrollmentOptions",
    "SubmissionResourceInput",
    "SubmitTaskPayload",
    "SubmissionUpdate",
    "FeedbackCreate",
    "UserCreate",
    "BuddyCreate",
    "BuddyUpdate",
    "ResourceView",
    "SubmissionView",
    "FeedbackView",
    "AssignmentView",
    "WeekProgressView",
    "WeekAssignments",
    "EnrollmentView",
    "BuddyStatistics",
    "BuddyDashboardData",
    "ReviewQueueItem",
    "MentorReviewQueue",
    "ReviewQueueFilters",
    "BuddyProgressSummary",
    "MentorDashboard",
    "WeekCompletionRate",
    "CurriculumAnalytics",
]

"""Pure workflow rules: assignment lifecycle and progress aggregation."""

from .state_machine import (
    AssignmentEvent,
    TRANSITIONS,
    AWAITING_REVIEW,
    OPEN_REVIEW_STATUSES,
    VERSIONABLE,
    allowed_sources,
    target_status,
    can_transition,
    next_status,
    is_awaiting_review,
    is_review_open,
    review_verdict,
)
from .progress import (
    WeekProgress,
    percentage,
    derive_week_status,
    compute_week_progress,
    overall_progress,
    current_week_number,
)

__all__ = [
    "AssignmentEvent",
    "TRANSITIONS",
    "AWAITING_REVIEW",
    "OPEN_REVIEW_STATUSES",
    "VERSIONABLE",
    "allowed_sources",
    "target_status",
    "can_transition",
    "next_status",
    "is_awaiting_review",
    "is_review_open",
    "review_verdict",
    "WeekProgress",
    "percentage",
    "derive_week_status",
    "compute_week_progress",
    "overall_progress",
    "current_week_number",
]

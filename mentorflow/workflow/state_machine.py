"""
Task assignment lifecycle.

    not_started -> in_progress -> submitted -> under_review -> completed
                        ^              |            |
                        |              +------------+--> needs_revision
                        +-------------------------------------+

`submitted` and `under_review` both mean "awaiting review"; approval or a
revision request (or rejection) resolves either of them.
"""

from enum import Enum
from typing import Dict, FrozenSet, Optional

from ..database.exceptions import InvalidTransitionError
from ..database.models import AssignmentStatusEnum, ReviewStatusEnum

S = AssignmentStatusEnum


class AssignmentEvent(str, Enum):
    START = "start"
    SUBMIT = "submit"
    BEGIN_REVIEW = "begin_review"
    APPROVE = "approve"
    REQUEST_REVISION = "request_revision"
    REJECT = "reject"


E = AssignmentEvent

# event -> (allowed source states, target state)
TRANSITIONS: Dict[AssignmentEvent, tuple] = {
    E.START: (frozenset({S.NOT_STARTED}), S.IN_PROGRESS),
    E.SUBMIT: (frozenset({S.IN_PROGRESS, S.NEEDS_REVISION}), S.SUBMITTED),
    E.BEGIN_REVIEW: (frozenset({S.SUBMITTED}), S.UNDER_REVIEW),
    E.APPROVE: (frozenset({S.SUBMITTED, S.UNDER_REVIEW}), S.COMPLETED),
    E.REQUEST_REVISION: (frozenset({S.SUBMITTED, S.UNDER_REVIEW}), S.NEEDS_REVISION),
    E.REJECT: (frozenset({S.SUBMITTED, S.UNDER_REVIEW}), S.NEEDS_REVISION),
}

# Submission verdict written by each review event
REVIEW_VERDICTS: Dict[AssignmentEvent, ReviewStatusEnum] = {
    E.BEGIN_REVIEW: ReviewStatusEnum.UNDER_REVIEW,
    E.APPROVE: ReviewStatusEnum.APPROVED,
    E.REQUEST_REVISION: ReviewStatusEnum.NEEDS_REVISION,
    E.REJECT: ReviewStatusEnum.REJECTED,
}

AWAITING_REVIEW: FrozenSet[str] = frozenset({S.SUBMITTED.value, S.UNDER_REVIEW.value})
OPEN_REVIEW_STATUSES: FrozenSet[str] = frozenset({
    ReviewStatusEnum.PENDING.value,
    ReviewStatusEnum.UNDER_REVIEW.value,
})
# States from which a submission may still allocate a version
VERSIONABLE: FrozenSet[str] = frozenset(
    s.value for s in S if s not in (S.NOT_STARTED, S.COMPLETED)
)


def allowed_sources(event: AssignmentEvent) -> FrozenSet[str]:
    return frozenset(s.value for s in TRANSITIONS[event][0])


def target_status(event: AssignmentEvent) -> str:
    return TRANSITIONS[event][1].value


def can_transition(current: str, event: AssignmentEvent) -> bool:
    return current in allowed_sources(event)


def next_status(current: str, event: AssignmentEvent) -> str:
    """Target status for event from current, or InvalidTransitionError."""
    if not can_transition(current, event):
        raise InvalidTransitionError(
            f"Cannot {event.value} an assignment in status '{current}'",
            current_status=current,
        )
    return target_status(event)


def is_awaiting_review(status: str) -> bool:
    return status in AWAITING_REVIEW


def is_review_open(review_status: str) -> bool:
    return review_status in OPEN_REVIEW_STATUSES


def review_verdict(event: AssignmentEvent) -> Optional[str]:
    verdict = REVIEW_VERDICTS.get(event)
    return verdict.value if verdict else None

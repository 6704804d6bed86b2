"""
Read projections: buddy dashboard, mentor review queue, mentor dashboard and
curriculum analytics.

Everything here is derived from stored state on each call and never writes.
"""

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Optional, List, Union, Dict, Any

from config import settings
from ..database.models import (
    TaskAssignmentDB,
    AssignmentStatusEnum,
    BuddyCurriculumStatusEnum,
    BuddyStatusEnum,
)
from ..database.repositories.enrollment import OPEN_ENROLLMENT_STATUSES
from ..database.repositories import (
    get_assignment_repository,
    get_dashboard_repository,
    get_enrollment_repository,
    get_submission_repository,
    get_user_repository,
    AssignmentRepository,
    DashboardRepository,
    EnrollmentRepository,
    SubmissionRepository,
    UserRepository,
)
from ..models.actor import Actor
from ..models.dashboard import (
    AssignmentView,
    BuddyDashboardData,
    BuddyProgressSummary,
    BuddyStatistics,
    CurriculumAnalytics,
    EnrollmentView,
    MentorDashboard,
    MentorReviewQueue,
    ReviewQueueFilters,
    ReviewQueueItem,
    SubmissionView,
    WeekAssignments,
    WeekCompletionRate,
    WeekProgressView,
)
from ..permissions import Permission, ResourceOwners
from ..utils.datetime_utils import get_now, days_between
from ..workflow.state_machine import AWAITING_REVIEW
from .access import require, parse_payload

logger = logging.getLogger(__name__)

UPCOMING_STATUSES = (
    AssignmentStatusEnum.NOT_STARTED.value,
    AssignmentStatusEnum.IN_PROGRESS.value,
    AssignmentStatusEnum.NEEDS_REVISION.value,
)
UPCOMING_LIMIT = 5
RECENT_SUBMISSIONS_LIMIT = 10


# ==================== PURE HELPERS ====================

def assignment_view(assignment: TaskAssignmentDB) -> AssignmentView:
    template = assignment.task_template
    return AssignmentView(
        id=assignment.id,
        buddy_id=assignment.buddy_id,
        task_template_id=assignment.task_template_id,
        task_title=template.title,
        week_number=template.week.week_number,
        status=assignment.status,
        assigned_at=assignment.assigned_at,
        due_date=assignment.due_date,
        started_at=assignment.started_at,
        first_submission_at=assignment.first_submission_at,
        completed_at=assignment.completed_at,
        submission_count=assignment.submission_count,
    )


def review_item(row: Dict[str, Any], now: Optional[datetime] = None) -> ReviewQueueItem:
    """Build a queue item from a dashboard repository row."""
    submission = row["submission"]
    return ReviewQueueItem(
        submission_id=submission.id,
        task_assignment_id=submission.task_assignment_id,
        buddy_id=submission.buddy_id,
        buddy_name=row["buddy_name"],
        task_template_id=row["template"].id,
        task_title=row["template"].title,
        week_number=row["week"].week_number,
        week_title=row["week"].title,
        submitted_at=submission.submitted_at,
        version=submission.version,
        resource_count=row["resource_count"],
        previous_feedback_count=row["previous_feedback_count"],
        days_waiting=days_between(submission.submitted_at, now),
    )


def is_urgent(item: ReviewQueueItem, urgent_after_days: Optional[int] = None) -> bool:
    threshold = settings.review_urgent_after_days if urgent_after_days is None else urgent_after_days
    return item.days_waiting >= threshold


def sort_review_items(
    items: List[ReviewQueueItem],
    sort_by: str = "oldest",
    urgent_after_days: Optional[int] = None,
) -> List[ReviewQueueItem]:
    """
    Order queue items.

    oldest/newest sort by submission time. priority puts urgent items first,
    then resubmissions (higher version) ahead of first attempts, then oldest.
    """
    if sort_by == "newest":
        return sorted(items, key=lambda i: i.submitted_at, reverse=True)
    if sort_by == "priority":
        return sorted(items, key=lambda i: (
            not is_urgent(i, urgent_after_days),
            -i.version,
            i.submitted_at,
        ))
    return sorted(items, key=lambda i: i.submitted_at)


def build_review_queue(
    items: List[ReviewQueueItem],
    sort_by: str = "oldest",
    urgent_after_days: Optional[int] = None,
) -> MentorReviewQueue:
    ordered = sort_review_items(items, sort_by, urgent_after_days)
    return MentorReviewQueue(
        urgent=[i for i in ordered if is_urgent(i, urgent_after_days)],
        recent=[i for i in ordered if not is_urgent(i, urgent_after_days)],
        all=ordered,
    )


def _rate(part: int, whole: int) -> float:
    return round(part * 100.0 / whole, 1) if whole else 0.0


def _mean(values: List[float]) -> float:
    return round(sum(values) / len(values), 1) if values else 0.0


class DashboardService:
    """Builds the read projections."""

    def __init__(self):
        self.assignments: AssignmentRepository = get_assignment_repository()
        self.dashboards: DashboardRepository = get_dashboard_repository()
        self.enrollments: EnrollmentRepository = get_enrollment_repository()
        self.submissions: SubmissionRepository = get_submission_repository()
        self.users: UserRepository = get_user_repository()

    @staticmethod
    def _scope(actor: Actor) -> Optional[str]:
        """Mentors see their assigned buddies; managers see everyone."""
        return actor.id if actor.is_mentor else None

    # ==================== BUDDY ====================

    async def buddy_dashboard(self, actor: Actor, buddy_id: str) -> Optional[BuddyDashboardData]:
        """
        Dashboard for one buddy's current enrollment.

        Returns None when the buddy has never been enrolled.
        """
        owners = await self.users.owners_for_buddy(buddy_id)
        await require(actor, Permission.CAN_VIEW_DASHBOARD, owners, "buddy", buddy_id)

        enrollment = await self.enrollments.get_active_enrollment(buddy_id)
        if enrollment is None:
            return None

        now = get_now()
        rows = await self.enrollments.list_week_progress(enrollment.id)
        assignments = [
            a for a in await self.assignments.list_for_buddy(buddy_id)
            if a.buddy_curriculum_id == enrollment.id
        ]
        by_week: Dict[str, List[AssignmentView]] = {}
        for assignment in assignments:
            by_week.setdefault(assignment.buddy_week_progress_id, []).append(assignment_view(assignment))

        weeks = [
            WeekAssignments(
                progress=WeekProgressView.model_validate(row, from_attributes=True),
                assignments=by_week.get(row.id, []),
            )
            for row in rows
        ]
        upcoming = [assignment_view(a) for a in assignments if a.status in UPCOMING_STATUSES][:UPCOMING_LIMIT]
        recent = await self.submissions.list_for_buddy(buddy_id, limit=RECENT_SUBMISSIONS_LIMIT)

        statistics = BuddyStatistics(
            overall_progress=enrollment.overall_progress,
            completed_tasks=sum(r.completed_tasks for r in rows),
            total_tasks=sum(r.total_tasks for r in rows),
            current_week=enrollment.current_week,
            total_weeks=len(rows),
            days_active=days_between(enrollment.started_at, now),
            pending_submissions=sum(1 for a in assignments if a.status in AWAITING_REVIEW),
        )

        return BuddyDashboardData(
            enrollment=EnrollmentView.model_validate(enrollment, from_attributes=True),
            weeks=weeks,
            upcoming_tasks=upcoming,
            recent_submissions=[SubmissionView.model_validate(s, from_attributes=True) for s in recent],
            statistics=statistics,
        )

    # ==================== MENTOR ====================

    async def review_queue(
        self,
        actor: Actor,
        filters: Optional[Union[ReviewQueueFilters, Dict[str, Any]]] = None,
    ) -> MentorReviewQueue:
        """Current submissions awaiting review, split into urgent and recent."""
        mentor_user_id = self._scope(actor)
        await require(actor, Permission.CAN_REVIEW_SUBMISSION,
                      ResourceOwners(assigned_mentor_user_id=mentor_user_id), "review_queue")
        filters = parse_payload(ReviewQueueFilters, filters or {})

        rows = await self.dashboards.review_queue(
            mentor_user_id=mentor_user_id,
            buddy_id=filters.buddy_id,
            week_number=filters.week_number,
            task_template_id=filters.task_template_id,
        )
        now = get_now()
        return build_review_queue([review_item(row, now) for row in rows], filters.sort_by)

    async def mentor_dashboard(self, actor: Actor) -> MentorDashboard:
        mentor_user_id = self._scope(actor)
        await require(actor, Permission.CAN_VIEW_DASHBOARD,
                      ResourceOwners(assigned_mentor_user_id=mentor_user_id), "mentor_dashboard")

        buddies = await self.users.list_buddies(mentor_user_id=mentor_user_id)
        buddy_ids = [b.id for b in buddies]

        now = get_now()
        queue = build_review_queue([
            review_item(row, now)
            for row in await self.dashboards.review_queue(mentor_user_id=mentor_user_id)
        ])

        cutoff = now - timedelta(days=settings.recent_submission_days)
        recent = [
            s for s in await self.dashboards.recent_submissions_for_buddies(buddy_ids, RECENT_SUBMISSIONS_LIMIT)
            if s.submitted_at >= cutoff
        ]

        # Enrollments come newest first; keep each buddy's open one, else its latest
        current: Dict[str, Any] = {}
        for enrollment in await self.dashboards.enrollments_for_buddies(buddy_ids):
            held = current.get(enrollment.buddy_id)
            if held is None or (
                held.status not in OPEN_ENROLLMENT_STATUSES
                and enrollment.status in OPEN_ENROLLMENT_STATUSES
            ):
                current[enrollment.buddy_id] = enrollment

        progress = []
        for buddy in buddies:
            enrollment = current.get(buddy.id)
            progress.append(BuddyProgressSummary(
                buddy_id=buddy.id,
                buddy_name=buddy.user.name,
                progress=enrollment.overall_progress if enrollment else 0,
                current_week=enrollment.current_week if enrollment else 0,
            ))

        return MentorDashboard(
            total_buddies=len(buddies),
            active_buddies=sum(1 for b in buddies if b.status == BuddyStatusEnum.ACTIVE.value),
            pending_reviews=len(queue.all),
            urgent_reviews=len(queue.urgent),
            recent_submissions=[SubmissionView.model_validate(s, from_attributes=True) for s in recent],
            buddy_progress=progress,
        )

    # ==================== ANALYTICS ====================

    async def curriculum_analytics(self, actor: Actor, curriculum_id: str) -> CurriculumAnalytics:
        await require(actor, Permission.CAN_VIEW_ANALYTICS, entity_type="curriculum", entity_id=curriculum_id)

        enrollments = await self.enrollments.list_for_curriculum(curriculum_id)
        rows = await self.dashboards.curriculum_assignments(curriculum_id)
        grades = await self.dashboards.approved_grades(curriculum_id)

        completed_enrollments = [
            e for e in enrollments if e.status == BuddyCurriculumStatusEnum.COMPLETED.value
        ]
        completion_days = [
            (e.completed_at - e.started_at).total_seconds() / 86400
            for e in completed_enrollments if e.completed_at
        ]

        done = AssignmentStatusEnum.COMPLETED.value
        per_week: Dict[int, List[int]] = {}
        for row in rows:
            counts = per_week.setdefault(row["week_number"], [0, 0])
            counts[1] += 1
            if row["assignment"].status == done:
                counts[0] += 1
        completed_assignments = [row["assignment"] for row in rows if row["assignment"].status == done]

        return CurriculumAnalytics(
            curriculum_id=curriculum_id,
            total_buddies=len(enrollments),
            active_buddies=sum(1 for e in enrollments if e.status == BuddyCurriculumStatusEnum.ACTIVE.value),
            completed_buddies=len(completed_enrollments),
            average_progress=_mean([e.overall_progress for e in enrollments]),
            average_completion_time=_mean(completion_days),
            task_completion_rate=_rate(len(completed_assignments), len(rows)),
            week_completion_rates=[
                WeekCompletionRate(week_number=number, completion_rate=_rate(c[0], c[1]))
                for number, c in sorted(per_week.items())
            ],
            grade_distribution=dict(Counter(g for g in grades if g)),
            average_submissions_per_completed_task=_mean([a.submission_count for a in completed_assignments]),
        )


# Singleton
_dashboard_service: Optional[DashboardService] = None


def get_dashboard_service() -> DashboardService:
    """Get the dashboard service singleton."""
    global _dashboard_service
    if _dashboard_service is None:
        _dashboard_service = DashboardService()
    return _dashboard_service

"""
Dashboard query repository.

Read-only queries backing the review queue, mentor dashboard and
curriculum analytics projections. Nothing here writes.
"""

import logging
from typing import Optional, List, Dict, Any, Iterable

from sqlalchemy import select, func
from sqlalchemy.orm import aliased, selectinload

from ..models import (
    BuddyDB,
    UserDB,
    CurriculumWeekDB,
    TaskTemplateDB,
    BuddyCurriculumDB,
    TaskAssignmentDB,
    SubmissionDB,
    SubmissionFeedbackDB,
    ReviewStatusEnum,
)
from .base import BaseRepository
from ...workflow.state_machine import AWAITING_REVIEW, OPEN_REVIEW_STATUSES

logger = logging.getLogger(__name__)


class DashboardRepository(BaseRepository):
    """Queries for read projections."""

    async def review_queue(
        self,
        mentor_user_id: Optional[str] = None,
        buddy_id: Optional[str] = None,
        week_number: Optional[int] = None,
        task_template_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Current submissions awaiting review.

        A row qualifies when its assignment is submitted or under review and
        the submission is the highest version for that assignment.

        Args:
            mentor_user_id: Restrict to buddies assigned to this mentor
            buddy_id: Restrict to one buddy
            week_number: Restrict to one curriculum week number
            task_template_id: Restrict to one task template
        """
        latest = aliased(SubmissionDB)
        latest_version = (
            select(func.max(latest.version))
            .where(latest.task_assignment_id == SubmissionDB.task_assignment_id)
            .correlate(SubmissionDB)
            .scalar_subquery()
        )

        async with self.db.session() as session:
            query = (
                select(SubmissionDB, TaskAssignmentDB, TaskTemplateDB, CurriculumWeekDB, UserDB.name)
                .join(TaskAssignmentDB, TaskAssignmentDB.id == SubmissionDB.task_assignment_id)
                .join(TaskTemplateDB, TaskTemplateDB.id == TaskAssignmentDB.task_template_id)
                .join(CurriculumWeekDB, CurriculumWeekDB.id == TaskTemplateDB.curriculum_week_id)
                .join(BuddyDB, BuddyDB.id == TaskAssignmentDB.buddy_id)
                .join(UserDB, UserDB.id == BuddyDB.user_id)
                .options(selectinload(SubmissionDB.resources))
                .where(
                    TaskAssignmentDB.status.in_(list(AWAITING_REVIEW)),
                    SubmissionDB.review_status.in_(list(OPEN_REVIEW_STATUSES)),
                    SubmissionDB.version == latest_version,
                )
            )
            if mentor_user_id:
                query = query.where(BuddyDB.assigned_mentor_user_id == mentor_user_id)
            if buddy_id:
                query = query.where(TaskAssignmentDB.buddy_id == buddy_id)
            if week_number is not None:
                query = query.where(CurriculumWeekDB.week_number == week_number)
            if task_template_id:
                query = query.where(TaskAssignmentDB.task_template_id == task_template_id)

            result = await session.execute(query.order_by(SubmissionDB.submitted_at))
            rows = result.all()
            if not rows:
                return []

            assignment_ids = [row[1].id for row in rows]
            feedback_counts = await session.execute(
                select(
                    SubmissionDB.task_assignment_id,
                    SubmissionDB.version,
                    func.count(SubmissionFeedbackDB.id),
                )
                .join(SubmissionFeedbackDB, SubmissionFeedbackDB.submission_id == SubmissionDB.id)
                .where(SubmissionDB.task_assignment_id.in_(assignment_ids))
                .group_by(SubmissionDB.task_assignment_id, SubmissionDB.version)
            )
            per_version: Dict[str, List[tuple]] = {}
            for assignment_id, version, count in feedback_counts.all():
                per_version.setdefault(assignment_id, []).append((version, count))

            items = []
            for submission, assignment, template, week, buddy_name in rows:
                previous = sum(
                    count for version, count in per_version.get(assignment.id, [])
                    if version < submission.version
                )
                items.append({
                    "submission": submission,
                    "assignment": assignment,
                    "template": template,
                    "week": week,
                    "buddy_name": buddy_name,
                    "resource_count": len(submission.resources),
                    "previous_feedback_count": previous,
                })
            return items

    async def enrollments_for_buddies(self, buddy_ids: Iterable[str]) -> List[BuddyCurriculumDB]:
        buddy_ids = list(buddy_ids)
        if not buddy_ids:
            return []
        async with self.db.session() as session:
            result = await session.execute(
                select(BuddyCurriculumDB)
                .where(BuddyCurriculumDB.buddy_id.in_(buddy_ids))
                .order_by(BuddyCurriculumDB.started_at.desc())
            )
            return list(result.scalars().all())

    async def recent_submissions_for_buddies(
        self,
        buddy_ids: Iterable[str],
        limit: int = 10,
    ) -> List[SubmissionDB]:
        buddy_ids = list(buddy_ids)
        if not buddy_ids:
            return []
        async with self.db.session() as session:
            result = await session.execute(
                select(SubmissionDB)
                .options(selectinload(SubmissionDB.resources))
                .where(SubmissionDB.buddy_id.in_(buddy_ids))
                .order_by(SubmissionDB.submitted_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def curriculum_assignments(self, curriculum_id: str) -> List[Dict[str, Any]]:
        """Every assignment of a curriculum's enrollments with its week number."""
        async with self.db.session() as session:
            result = await session.execute(
                select(TaskAssignmentDB, CurriculumWeekDB.week_number)
                .join(BuddyCurriculumDB, BuddyCurriculumDB.id == TaskAssignmentDB.buddy_curriculum_id)
                .join(TaskTemplateDB, TaskTemplateDB.id == TaskAssignmentDB.task_template_id)
                .join(CurriculumWeekDB, CurriculumWeekDB.id == TaskTemplateDB.curriculum_week_id)
                .where(BuddyCurriculumDB.curriculum_id == curriculum_id)
            )
            return [
                {"assignment": assignment, "week_number": week_number}
                for assignment, week_number in result.all()
            ]

    async def approved_grades(self, curriculum_id: str) -> List[Optional[str]]:
        """Grades of approved submissions across a curriculum (None when ungraded)."""
        async with self.db.session() as session:
            result = await session.execute(
                select(SubmissionDB.grade)
                .join(TaskAssignmentDB, TaskAssignmentDB.id == SubmissionDB.task_assignment_id)
                .join(BuddyCurriculumDB, BuddyCurriculumDB.id == TaskAssignmentDB.buddy_curriculum_id)
                .where(
                    BuddyCurriculumDB.curriculum_id == curriculum_id,
                    SubmissionDB.review_status == ReviewStatusEnum.APPROVED.value,
                )
            )
            return list(result.scalars().all())


# Singleton
_dashboard_repository: Optional[DashboardRepository] = None


def get_dashboard_repository() -> DashboardRepository:
    """Get the dashboard repository singleton."""
    global _dashboard_repository
    if _dashboard_repository is None:
        _dashboard_repository = DashboardRepository()
    return _dashboard_repository

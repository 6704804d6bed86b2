"""
Integration tests for the dashboard, review queue and analytics projections.
"""

from datetime import timedelta

import pytest
from sqlalchemy import update

from mentorflow.database.exceptions import PermissionDeniedError
from mentorflow.database.models import SubmissionDB
from mentorflow.services import get_assignment_service, get_buddy_service, get_dashboard_service
from mentorflow.utils.datetime_utils import get_now


@pytest.fixture
def dashboards():
    return get_dashboard_service()


async def submitted(program, payload, index=0):
    service = get_assignment_service()
    assignment_id = program.assignments[index].id
    await service.start(program.buddy_actor, assignment_id)
    return await service.submit(program.buddy_actor, assignment_id, payload)


class TestBuddyDashboard:
    """Tests for the buddy dashboard projection."""

    @pytest.mark.asyncio
    async def test_fresh_enrollment(self, dashboards, program):
        data = await dashboards.buddy_dashboard(program.buddy_actor, program.buddy.id)

        assert data.enrollment.id == program.enrollment.id
        assert [w.progress.week_number for w in data.weeks] == [1, 2]
        assert [len(w.assignments) for w in data.weeks] == [2, 2]
        assert [t.task_title for t in data.upcoming_tasks] == ["Task 1.1", "Task 1.2", "Task 2.1", "Task 2.2"]
        assert data.recent_submissions == []
        assert data.statistics.total_tasks == 4
        assert data.statistics.completed_tasks == 0
        assert data.statistics.total_weeks == 2
        assert data.statistics.current_week == 1
        assert data.statistics.pending_submissions == 0

    @pytest.mark.asyncio
    async def test_pending_submission_counted(self, dashboards, program, submission_payload):
        await submitted(program, submission_payload)
        data = await dashboards.buddy_dashboard(program.mentor, program.buddy.id)

        assert data.statistics.pending_submissions == 1
        assert [s.version for s in data.recent_submissions] == [1]
        assert "Task 1.1" not in [t.task_title for t in data.upcoming_tasks]

    @pytest.mark.asyncio
    async def test_unenrolled_buddy(self, dashboards, people):
        other = await get_buddy_service().create_buddy(people.manager, {
            "name": "Una Enrolled",
            "email": "una@example.com",
            "domain_role": "qa",
            "auto_enroll": False,
        })
        assert await dashboards.buddy_dashboard(people.manager, other.id) is None

    @pytest.mark.asyncio
    async def test_other_mentor_denied(self, dashboards, program):
        with pytest.raises(PermissionDeniedError):
            await dashboards.buddy_dashboard(program.other_mentor, program.buddy.id)


class TestReviewQueue:
    """Tests for the mentor review queue."""

    @pytest.mark.asyncio
    async def test_queue_contents_and_filters(self, dashboards, program, submission_payload):
        await submitted(program, submission_payload, 0)
        await submitted(program, submission_payload, 2)

        queue = await dashboards.review_queue(program.mentor)
        assert [i.task_title for i in queue.all] == ["Task 1.1", "Task 2.1"]
        assert queue.urgent == []
        assert queue.all[0].buddy_name == "Bea Buddy"
        assert queue.all[0].resource_count == 1

        week_two = await dashboards.review_queue(program.mentor, {"week_number": 2})
        assert [i.task_title for i in week_two.all] == ["Task 2.1"]

        newest = await dashboards.review_queue(program.manager, {"sort_by": "newest"})
        assert [i.task_title for i in newest.all] == ["Task 2.1", "Task 1.1"]

    @pytest.mark.asyncio
    async def test_scoped_to_assigned_mentor(self, dashboards, program, submission_payload):
        await submitted(program, submission_payload)
        queue = await dashboards.review_queue(program.other_mentor)
        assert queue.all == []

        with pytest.raises(PermissionDeniedError):
            await dashboards.review_queue(program.buddy_actor)

    @pytest.mark.asyncio
    async def test_resolved_and_superseded_leave_queue(self, dashboards, program, submission_payload):
        """Only the current version of an assignment awaiting review is listed."""
        service = get_assignment_service()
        v1 = await submitted(program, submission_payload)
        await service.request_revision(program.mentor, v1.id, "Use semantic headings")
        assert (await dashboards.review_queue(program.mentor)).all == []

        v2 = await service.submit(program.buddy_actor, program.assignments[0].id, submission_payload)
        queue = await dashboards.review_queue(program.mentor)
        assert [(i.submission_id, i.version) for i in queue.all] == [(v2.id, 2)]
        assert queue.all[0].previous_feedback_count == 1

    @pytest.mark.asyncio
    async def test_old_submissions_are_urgent(self, dashboards, database, program, submission_payload):
        stale = await submitted(program, submission_payload, 0)
        await submitted(program, submission_payload, 1)
        async with database.session() as session:
            await session.execute(
                update(SubmissionDB)
                .where(SubmissionDB.id == stale.id)
                .values(submitted_at=get_now() - timedelta(days=5))
            )

        queue = await dashboards.review_queue(program.mentor, {"sort_by": "priority"})
        assert [i.submission_id for i in queue.urgent] == [stale.id]
        assert queue.urgent[0].days_waiting == 5
        assert len(queue.recent) == 1
        assert queue.all[0].submission_id == stale.id


class TestMentorDashboard:
    """Tests for the mentor dashboard."""

    @pytest.mark.asyncio
    async def test_counts(self, dashboards, program, submission_payload):
        await submitted(program, submission_payload)
        data = await dashboards.mentor_dashboard(program.mentor)

        assert data.total_buddies == 1
        assert data.active_buddies == 1
        assert data.pending_reviews == 1
        assert data.urgent_reviews == 0
        assert len(data.recent_submissions) == 1
        assert [(p.buddy_name, p.progress, p.current_week) for p in data.buddy_progress] == [
            ("Bea Buddy", 0, 1),
        ]

    @pytest.mark.asyncio
    async def test_other_mentor_sees_nothing(self, dashboards, program, submission_payload):
        await submitted(program, submission_payload)
        data = await dashboards.mentor_dashboard(program.other_mentor)
        assert data.total_buddies == 0
        assert data.pending_reviews == 0
        assert data.buddy_progress == []


class TestAnalytics:
    """Tests for curriculum analytics."""

    @pytest.mark.asyncio
    async def test_after_one_approval(self, dashboards, program, submission_payload):
        submission = await submitted(program, submission_payload)
        await get_assignment_service().approve(program.mentor, submission.id, grade="A")

        analytics = await dashboards.curriculum_analytics(program.manager, program.curriculum.id)

        assert analytics.total_buddies == 1
        assert analytics.active_buddies == 1
        assert analytics.completed_buddies == 0
        assert analytics.average_progress == 25.0
        assert analytics.task_completion_rate == 25.0
        assert [(w.week_number, w.completion_rate) for w in analytics.week_completion_rates] == [
            (1, 50.0),
            (2, 0.0),
        ]
        assert analytics.grade_distribution == {"A": 1}
        assert analytics.average_submissions_per_completed_task == 1.0

    @pytest.mark.asyncio
    async def test_managers_only(self, dashboards, program):
        with pytest.raises(PermissionDeniedError) as exc:
            await dashboards.curriculum_analytics(program.mentor, program.curriculum.id)
        assert exc.value.permission == "can_view_analytics"

"""
Race tests for version allocation and review verdicts.

Both racers are held after their authorization read until the other has
read too, so each passes its precondition check against the same state
before either writes.
"""

import asyncio

import pytest
from sqlalchemy import update

from mentorflow.database.exceptions import AlreadyReviewedError, InvalidTransitionError
from mentorflow.database.models import TaskAssignmentDB
from mentorflow.database.repositories import get_assignment_repository, get_enrollment_repository
from mentorflow.database.repositories.submissions import SubmissionRepository
from mentorflow.services import get_assignment_service
from mentorflow.services.assignments import AssignmentService


@pytest.fixture
def hold_reads(monkeypatch):
    """Patch AssignmentService._assignment so the first two callers wait for each other."""
    original = AssignmentService._assignment
    state = {"arrived": 0}
    both_read = asyncio.Event()

    async def gated(self, assignment_id):
        result = await original(self, assignment_id)
        state["arrived"] += 1
        if state["arrived"] >= 2:
            both_read.set()
        await asyncio.wait_for(both_read.wait(), timeout=10)
        return result

    def install():
        monkeypatch.setattr(AssignmentService, "_assignment", gated)

    return install


@pytest.mark.asyncio
async def test_concurrent_resubmits_get_distinct_versions(program, submission_payload, hold_reads):
    service = get_assignment_service()
    assignment_id = program.assignments[0].id
    await service.start(program.buddy_actor, assignment_id)
    v1 = await service.submit(program.buddy_actor, assignment_id, submission_payload)
    await service.request_revision(program.mentor, v1.id, "Please split the component")

    hold_reads()
    results = await asyncio.gather(
        service.submit(program.buddy_actor, assignment_id, submission_payload),
        service.submit(program.buddy_actor, assignment_id, submission_payload),
    )

    assert sorted(s.version for s in results) == [2, 3]
    assert await get_assignment_repository().count_submissions(assignment_id) == (3, [1, 2, 3])


@pytest.mark.asyncio
async def test_concurrent_approvals_single_winner(program, submission_payload, hold_reads):
    service = get_assignment_service()
    assignment_id = program.assignments[0].id
    await service.start(program.buddy_actor, assignment_id)
    submission = await service.submit(program.buddy_actor, assignment_id, submission_payload)

    hold_reads()
    results = await asyncio.gather(
        service.approve(program.mentor, submission.id, grade="A"),
        service.approve(program.manager, submission.id, grade="B"),
        return_exceptions=True,
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], AlreadyReviewedError)

    current = await service.get_current_submission(program.mentor, assignment_id)
    assert current.review_status == "approved"
    assert current.reviewed_by == winners[0].reviewed_by
    assert current.grade == winners[0].grade

    week = await get_enrollment_repository().get_week_progress(program.buddy.id, program.week_ids[0])
    assert week.completed_tasks == 1


@pytest.mark.asyncio
async def test_approve_races_revision_request(program, submission_payload, hold_reads):
    """Conflicting verdicts: exactly one lands and the assignment matches it."""
    service = get_assignment_service()
    assignment_id = program.assignments[0].id
    await service.start(program.buddy_actor, assignment_id)
    submission = await service.submit(program.buddy_actor, assignment_id, submission_payload)

    hold_reads()
    results = await asyncio.gather(
        service.approve(program.mentor, submission.id),
        service.request_revision(program.manager, submission.id, "Needs another pass"),
        return_exceptions=True,
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    assert len(winners) == 1
    assert sum(isinstance(r, AlreadyReviewedError) for r in results) == 1

    assignment = await service.get_assignment(program.mentor, assignment_id)
    expected = {"approved": "completed", "needs_revision": "needs_revision"}
    assert assignment.status == expected[winners[0].review_status]


@pytest.mark.asyncio
async def test_begin_review_detects_assignment_moved(program, submission_payload, monkeypatch):
    """If the assignment leaves the awaiting-review states mid-call, nothing is written."""
    service = get_assignment_service()
    assignment_id = program.assignments[0].id
    await service.start(program.buddy_actor, assignment_id)
    submission = await service.submit(program.buddy_actor, assignment_id, submission_payload)

    original = SubmissionRepository._compare_and_set

    async def moved_underneath(self, session, target, expected_statuses, values):
        await original(self, session, target, expected_statuses, values)
        await session.execute(
            update(TaskAssignmentDB)
            .where(TaskAssignmentDB.id == target.task_assignment_id)
            .values(status="in_progress")
        )

    monkeypatch.setattr(SubmissionRepository, "_compare_and_set", moved_underneath)

    with pytest.raises(InvalidTransitionError):
        await service.begin_review(program.mentor, submission.id)

    current = await service.get_current_submission(program.mentor, assignment_id)
    assert current.review_status == "pending"
    assignment = await service.get_assignment(program.mentor, assignment_id)
    assert assignment.status == "submitted"

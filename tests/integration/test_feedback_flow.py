"""
Integration tests for feedback threads on submissions.
"""

import pytest

from mentorflow.database.exceptions import (
    EntityNotFoundError,
    PermissionDeniedError,
    ValidationFailedError,
)
from mentorflow.services import get_assignment_service, get_feedback_service


async def submitted(program, payload, index=0):
    service = get_assignment_service()
    assignment_id = program.assignments[index].id
    await service.start(program.buddy_actor, assignment_id)
    return await service.submit(program.buddy_actor, assignment_id, payload)


class TestThreads:
    """Tests for adding and reading threaded feedback."""

    @pytest.mark.asyncio
    async def test_reply_nests_under_parent(self, program, submission_payload):
        feedback = get_feedback_service()
        submission = await submitted(program, submission_payload)

        question = await feedback.add_feedback(program.mentor, submission.id, {
            "message": "Why grid instead of flexbox?",
            "feedback_type": "question",
        })
        answer = await feedback.add_feedback(program.buddy_actor, submission.id, {
            "message": "The layout is two-dimensional",
            "parent_feedback_id": question.id,
        })
        assert answer.created_at > question.created_at
        assert answer.author_role == "buddy"

        threads = await feedback.get_submission_feedback(program.buddy_actor, submission.id)
        assert [t.id for t in threads] == [question.id]
        assert threads[0].feedback_type == "question"
        assert [r.id for r in threads[0].replies] == [answer.id]

    @pytest.mark.asyncio
    async def test_parent_must_share_submission(self, program, submission_payload):
        feedback = get_feedback_service()
        first = await submitted(program, submission_payload, 0)
        second = await submitted(program, submission_payload, 1)
        comment = await feedback.add_feedback(program.mentor, first.id, {"message": "Looks good so far"})

        with pytest.raises(ValidationFailedError):
            await feedback.add_feedback(program.mentor, second.id, {
                "message": "Replying across submissions",
                "parent_feedback_id": comment.id,
            })

    @pytest.mark.asyncio
    async def test_missing_parent(self, program, submission_payload):
        submission = await submitted(program, submission_payload)
        with pytest.raises(EntityNotFoundError):
            await get_feedback_service().add_feedback(program.mentor, submission.id, {
                "message": "Reply to nothing",
                "parent_feedback_id": "missing",
            })

    @pytest.mark.asyncio
    async def test_deleted_parent_promotes_reply(self, program, submission_payload):
        feedback = get_feedback_service()
        submission = await submitted(program, submission_payload)
        parent = await feedback.add_feedback(program.mentor, submission.id, {"message": "Check the README"})
        reply = await feedback.add_feedback(program.buddy_actor, submission.id, {
            "message": "Updated it",
            "parent_feedback_id": parent.id,
        })

        await feedback.delete_feedback(program.mentor, parent.id)

        threads = await feedback.get_submission_feedback(program.mentor, submission.id)
        assert [t.id for t in threads] == [reply.id]
        assert threads[0].parent_feedback_id == parent.id

    @pytest.mark.asyncio
    async def test_any_mentor_may_comment(self, program, submission_payload):
        """Commenting is open to every mentor; verdicts are not."""
        submission = await submitted(program, submission_payload)
        note = await get_feedback_service().add_feedback(
            program.other_mentor, submission.id, {"message": "Nice use of semantic tags"}
        )
        assert note.author_id == program.other_mentor.id

    @pytest.mark.asyncio
    async def test_blank_message_rejected(self, program, submission_payload):
        submission = await submitted(program, submission_payload)
        with pytest.raises(ValidationFailedError):
            await get_feedback_service().add_feedback(program.mentor, submission.id, {"message": "   "})


class TestEditing:
    """Tests for editing and deleting feedback."""

    @pytest.mark.asyncio
    async def test_author_edits_own_message(self, program, submission_payload):
        feedback = get_feedback_service()
        submission = await submitted(program, submission_payload)
        note = await feedback.add_feedback(program.mentor, submission.id, {"message": "Typo in heading"})

        edited = await feedback.update_feedback(program.mentor, note.id, "Typo in the page heading")
        assert edited.message == "Typo in the page heading"

    @pytest.mark.asyncio
    async def test_buddy_cannot_edit_mentor_feedback(self, program, submission_payload):
        feedback = get_feedback_service()
        submission = await submitted(program, submission_payload)
        note = await feedback.add_feedback(program.mentor, submission.id, {"message": "Add alt text"})

        with pytest.raises(PermissionDeniedError) as exc:
            await feedback.update_feedback(program.buddy_actor, note.id, "Never mind")
        assert exc.value.reason == "not_owner"

        with pytest.raises(PermissionDeniedError):
            await feedback.delete_feedback(program.other_mentor, note.id)

    @pytest.mark.asyncio
    async def test_manager_deletes_any(self, program, submission_payload):
        feedback = get_feedback_service()
        submission = await submitted(program, submission_payload)
        note = await feedback.add_feedback(program.buddy_actor, submission.id, {"message": "Ready for review"})

        await feedback.delete_feedback(program.manager, note.id)
        assert await feedback.get_submission_feedback(program.manager, submission.id) == []

"""
Integration tests for buddy management and field-level edit gating.
"""

import pytest
from sqlalchemy import select

from mentorflow.database.exceptions import PermissionDeniedError, ValidationFailedError
from mentorflow.database.models import UserDB
from mentorflow.database.repositories import get_assignment_repository, get_audit_repository
from mentorflow.models.actor import Actor
from mentorflow.services import get_assignment_service, get_buddy_service, get_enrollment_service


@pytest.fixture
def buddies():
    return get_buddy_service()


class TestFieldGating:
    """Tests for per-field buddy edits."""

    @pytest.mark.asyncio
    async def test_email_is_immutable(self, buddies, people):
        with pytest.raises(PermissionDeniedError) as exc:
            await buddies.update_buddy(people.manager, people.buddy.id, {"email": "new@example.com"})
        assert exc.value.reason == "field_immutable"

        history = await get_audit_repository().get_entity_history("buddy", people.buddy.id)
        denial = next(h for h in history if h.action == "permission_denied")
        assert denial.details["fields"] == ["email"]

    @pytest.mark.asyncio
    async def test_buddy_renames_self_only(self, buddies, people):
        renamed = await buddies.update_buddy(people.buddy_actor, people.buddy.id, {"name": "Bea B."})
        assert renamed.user.name == "Bea B."

        with pytest.raises(PermissionDeniedError) as exc:
            await buddies.update_buddy(people.buddy_actor, people.buddy.id, {"status": "inactive"})
        assert exc.value.reason == "not_owner"

    @pytest.mark.asyncio
    async def test_mixed_payload_rejected_whole(self, buddies, people):
        """A payload with one refused field applies nothing."""
        with pytest.raises(PermissionDeniedError):
            await buddies.update_buddy(people.buddy_actor, people.buddy.id, {
                "name": "Bea Renamed",
                "domain_role": "backend",
            })
        buddy = await buddies.get_buddy(people.manager, people.buddy.id)
        assert buddy.user.name == "Bea Buddy"
        assert buddy.domain_role == "frontend"

    @pytest.mark.asyncio
    async def test_mentor_cannot_edit_buddies(self, buddies, people):
        with pytest.raises(PermissionDeniedError) as exc:
            await buddies.update_buddy(people.mentor, people.buddy.id, {"name": "Renamed by mentor"})
        assert exc.value.permission == "can_edit_buddy_all"

    @pytest.mark.asyncio
    async def test_manager_reassigns_mentor(self, buddies, people):
        updated = await buddies.update_buddy(
            people.manager, people.buddy.id, {"assigned_mentor_user_id": people.other_mentor.id}
        )
        assert updated.assigned_mentor_user_id == people.other_mentor.id

        with pytest.raises(ValidationFailedError):
            await buddies.update_buddy(
                people.manager, people.buddy.id, {"assigned_mentor_user_id": people.manager.id}
            )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["name", "domain_role", "status"])
    async def test_required_fields_cannot_be_cleared(self, buddies, people, field):
        with pytest.raises(ValidationFailedError):
            await buddies.update_buddy(people.manager, people.buddy.id, {field: None})

        buddy = await buddies.get_buddy(people.manager, people.buddy.id)
        assert buddy.user.name == "Bea Buddy"
        assert buddy.domain_role == "frontend"
        assert buddy.status == "active"

    @pytest.mark.asyncio
    async def test_field_access_map(self, buddies, people):
        as_buddy = await buddies.get_buddy_field_access(people.buddy_actor, people.buddy.id)
        assert as_buddy == {
            "name": False,
            "email": True,
            "domainRole": True,
            "status": True,
            "assignedMentorId": True,
        }

        as_manager = await buddies.get_buddy_field_access(people.manager, people.buddy.id)
        assert [field for field, disabled in as_manager.items() if disabled] == ["email"]

        as_mentor = await buddies.get_buddy_field_access(people.mentor, people.buddy.id)
        assert all(as_mentor.values())


class TestVisibility:
    """Tests for reading buddy records."""

    @pytest.mark.asyncio
    async def test_list_is_scoped_to_mentor(self, buddies, people):
        assert [b.id for b in await buddies.list_buddies(people.manager)] == [people.buddy.id]
        assert [b.id for b in await buddies.list_buddies(people.mentor)] == [people.buddy.id]
        assert await buddies.list_buddies(people.other_mentor) == []

        with pytest.raises(PermissionDeniedError):
            await buddies.list_buddies(people.buddy_actor)

    @pytest.mark.asyncio
    async def test_buddy_reads_own_profile(self, buddies, people):
        buddy = await buddies.get_buddy(people.buddy_actor, people.buddy.id)
        assert buddy.user.email == "bea@example.com"

        with pytest.raises(PermissionDeniedError):
            await buddies.get_buddy(people.other_mentor, people.buddy.id)

    @pytest.mark.asyncio
    async def test_progress_gate(self, buddies, people):
        assert await buddies.can_update_progress(people.buddy_actor, people.buddy.id) is True
        assert await buddies.can_update_progress(people.mentor, people.buddy.id) is True
        assert await buddies.can_update_progress(people.other_mentor, people.buddy.id) is False
        assert await buddies.can_update_progress(people.manager, people.buddy.id) is False


class TestCreate:
    """Tests for creating buddies and mentors."""

    @pytest.mark.asyncio
    async def test_auto_enroll_in_domain_curriculum(self, buddies, people, published):
        buddy = await buddies.create_buddy(people.manager, {
            "name": "Finn Frontend",
            "email": "finn@example.com",
            "domain_role": "frontend",
            "assigned_mentor_user_id": people.mentor.id,
        })

        enrollment = await get_enrollment_service().get_enrollment(people.manager, buddy.id)
        assert enrollment is not None
        assert enrollment.status == "active"
        assert len(await get_assignment_repository().list_for_buddy(buddy.id)) == 4

    @pytest.mark.asyncio
    async def test_no_curriculum_for_domain(self, buddies, people, published):
        buddy = await buddies.create_buddy(people.manager, {
            "name": "Bo Backend",
            "email": "bo@example.com",
            "domain_role": "backend",
        })
        assert await get_enrollment_service().get_enrollment(people.manager, buddy.id) is None

    @pytest.mark.asyncio
    async def test_duplicate_email_rejected(self, buddies, people):
        with pytest.raises(ValidationFailedError):
            await buddies.create_buddy(people.manager, {
                "name": "Another Bea",
                "email": "BEA@example.com",
                "domain_role": "frontend",
                "auto_enroll": False,
            })

    @pytest.mark.asyncio
    async def test_failed_create_leaves_no_user(self, buddies, people, database):
        with pytest.raises(ValidationFailedError):
            await buddies.create_buddy(people.manager, {
                "name": "Olly Orphan",
                "email": "olly@example.com",
                "domain_role": "frontend",
                "assigned_mentor_user_id": people.manager.id,
                "auto_enroll": False,
            })

        async with database.session() as session:
            result = await session.execute(select(UserDB).where(UserDB.email == "olly@example.com"))
            assert result.scalar_one_or_none() is None

        buddy = await buddies.create_buddy(people.manager, {
            "name": "Olly Orphan",
            "email": "olly@example.com",
            "domain_role": "frontend",
            "assigned_mentor_user_id": people.mentor.id,
            "auto_enroll": False,
        })
        assert buddy.user.email == "olly@example.com"
        assert buddy.assigned_mentor_user_id == people.mentor.id

    @pytest.mark.asyncio
    async def test_only_managers_create(self, buddies, people):
        with pytest.raises(PermissionDeniedError):
            await buddies.create_buddy(people.mentor, {
                "name": "Sneaky",
                "email": "sneaky@example.com",
                "domain_role": "frontend",
            })
        with pytest.raises(PermissionDeniedError):
            await buddies.create_mentor(people.mentor, {"name": "Mo", "email": "mo@example.com"})

        mentor = await buddies.create_mentor(people.manager, {"name": "Mo", "email": "mo@example.com"})
        assert mentor.role == "mentor"


class TestExplicitGrants:
    """Tests for explicit permission lists."""

    @pytest.mark.asyncio
    async def test_narrowed_mentor_cannot_review(self, buddies, program, submission_payload):
        user = await buddies.set_permissions(
            program.manager, program.mentor.id, ["can_view_buddies", "can_view_progress"]
        )
        assert user.permissions == ["can_view_buddies", "can_view_progress"]

        service = get_assignment_service()
        assignment_id = program.assignments[0].id
        await service.start(program.buddy_actor, assignment_id)
        submission = await service.submit(program.buddy_actor, assignment_id, submission_payload)

        narrowed = Actor(id=program.mentor.id, role="mentor", permissions=user.permissions)
        with pytest.raises(PermissionDeniedError) as exc:
            await service.approve(narrowed, submission.id)
        assert exc.value.reason == "missing_grant"

        # Still an assigned mentor for reads
        assert (await service.get_assignment(narrowed, assignment_id)).status == "submitted"

    @pytest.mark.asyncio
    async def test_mentor_cannot_change_grants(self, buddies, people):
        with pytest.raises(PermissionDeniedError):
            await buddies.set_permissions(people.mentor, people.other_mentor.id, [])

"""
Tests for mentorflow/permissions/engine.py

The engine is pure, so these tests drive it directly with role, actor id,
owner ids and grant lists.
"""

import pytest
from mentorflow.permissions import (
    Permission,
    Role,
    DenialReason,
    DEFAULT_GRANTS,
    ResourceOwners,
    resolve_grants,
    has_permission,
    has_any_permission,
    has_all_permissions,
    authorize,
    can_edit_buddy_field,
    get_disabled_buddy_fields,
    denied_buddy_fields,
    can_update_buddy_progress,
    can_edit_task,
    can_update_task_status,
)

P = Permission

MENTOR_ID = "mentor-1"
OTHER_MENTOR_ID = "mentor-2"
BUDDY_USER_ID = "buddy-user-1"
MANAGER_ID = "manager-1"

OWNED = ResourceOwners(buddy_user_id=BUDDY_USER_ID, assigned_mentor_user_id=MENTOR_ID)

MANAGER_GRANTS = DEFAULT_GRANTS[Role.MANAGER]
MENTOR_GRANTS = DEFAULT_GRANTS[Role.MENTOR]
BUDDY_GRANTS = DEFAULT_GRANTS[Role.BUDDY]


class TestGrantHelpers:
    """Tests for grant set lookups."""

    def test_empty_or_missing_grants_deny(self):
        assert has_permission(None, P.CAN_VIEW_TASKS) is False
        assert has_permission([], P.CAN_VIEW_TASKS) is False
        assert has_any_permission(None, [P.CAN_VIEW_TASKS]) is False
        assert has_all_permissions([], [P.CAN_VIEW_TASKS]) is False

    def test_accepts_enum_or_string_keys(self):
        grants = ["can_view_tasks"]
        assert has_permission(grants, P.CAN_VIEW_TASKS) is True
        assert has_permission(grants, "can_view_tasks") is True

    def test_any_and_all(self):
        grants = [P.CAN_VIEW_TASKS.value, P.CAN_ADD_FEEDBACK.value]
        assert has_any_permission(grants, [P.CAN_EXPORT_DATA, P.CAN_ADD_FEEDBACK]) is True
        assert has_all_permissions(grants, [P.CAN_VIEW_TASKS, P.CAN_ADD_FEEDBACK]) is True
        assert has_all_permissions(grants, [P.CAN_VIEW_TASKS, P.CAN_EXPORT_DATA]) is False

    def test_explicit_grants_replace_defaults(self):
        assert resolve_grants("mentor", ["can_view_tasks"]) == frozenset({"can_view_tasks"})
        assert resolve_grants("mentor") == MENTOR_GRANTS
        assert resolve_grants("janitor") == frozenset()

    def test_manager_defaults_exclude_operational_progress(self):
        """Managers hold the management superset but not progress entry."""
        assert P.CAN_UPDATE_OWN_PROGRESS.value not in MANAGER_GRANTS
        assert P.CAN_UPDATE_ASSIGNED_BUDDY_PROGRESS.value not in MANAGER_GRANTS
        assert P.CAN_SUBMIT_OWN_TASK.value not in MANAGER_GRANTS
        assert P.CAN_MANAGE_CURRICULUM.value in MANAGER_GRANTS
        assert P.CAN_REVIEW_SUBMISSION.value in MANAGER_GRANTS


class TestAuthorize:
    """Tests for role + ownership decisions."""

    def test_unknown_role(self):
        result = authorize("janitor", "x", P.CAN_VIEW_TASKS)
        assert not result
        assert result.reason == DenialReason.UNKNOWN_ROLE

    def test_manager_reviews_any_submission(self):
        assert authorize("manager", MANAGER_ID, P.CAN_REVIEW_SUBMISSION, ResourceOwners())

    def test_assigned_mentor_reviews(self):
        assert authorize("mentor", MENTOR_ID, P.CAN_REVIEW_SUBMISSION, OWNED)

    def test_unassigned_mentor_denied(self):
        result = authorize("mentor", OTHER_MENTOR_ID, P.CAN_REVIEW_SUBMISSION, OWNED)
        assert not result
        assert result.reason == DenialReason.NOT_OWNER
        assert result.permission == P.CAN_REVIEW_SUBMISSION.value

    def test_buddy_never_reviews(self):
        result = authorize("buddy", BUDDY_USER_ID, P.CAN_REVIEW_SUBMISSION, OWNED)
        assert result.reason == DenialReason.ROLE_NOT_PERMITTED

    @pytest.mark.parametrize("action", [
        P.CAN_UPDATE_OWN_PROGRESS,
        P.CAN_UPDATE_ASSIGNED_BUDDY_PROGRESS,
        P.CAN_SUBMIT_OWN_TASK,
    ])
    def test_manager_denied_progress_actions(self, action):
        """Even with every grant listed explicitly, managers cannot enter progress."""
        every_grant = [p.value for p in Permission]
        result = authorize("manager", MANAGER_ID, action, OWNED, every_grant)
        assert not result
        assert result.reason == DenialReason.ROLE_NOT_PERMITTED

    def test_buddy_submits_own_task_only(self):
        assert authorize("buddy", BUDDY_USER_ID, P.CAN_SUBMIT_OWN_TASK, OWNED)
        other = authorize("buddy", "someone-else", P.CAN_SUBMIT_OWN_TASK, OWNED)
        assert other.reason == DenialReason.NOT_OWNER

    def test_mentor_cannot_submit(self):
        assert not authorize("mentor", MENTOR_ID, P.CAN_SUBMIT_OWN_TASK, OWNED)

    def test_missing_grant(self):
        """Scope passes but the explicit grant list lacks the key."""
        result = authorize("mentor", MENTOR_ID, P.CAN_REVIEW_SUBMISSION, OWNED, [P.CAN_VIEW_TASKS.value])
        assert result.reason == DenialReason.MISSING_GRANT

    def test_mentor_feedback_on_any_submission(self):
        assert authorize("mentor", OTHER_MENTOR_ID, P.CAN_ADD_FEEDBACK, OWNED)

    def test_buddy_feedback_on_own_submission_only(self):
        assert authorize("buddy", BUDDY_USER_ID, P.CAN_ADD_FEEDBACK, OWNED)
        assert not authorize("buddy", "buddy-user-2", P.CAN_ADD_FEEDBACK, OWNED)

    def test_creator_scope_for_task_edits(self):
        owners = ResourceOwners(creator_user_id=MENTOR_ID)
        assert authorize("mentor", MENTOR_ID, P.CAN_EDIT_OWN_TASK, owners)
        assert not authorize("mentor", OTHER_MENTOR_ID, P.CAN_EDIT_OWN_TASK, owners)

    def test_curriculum_management_is_manager_only(self):
        assert authorize("manager", MANAGER_ID, P.CAN_MANAGE_CURRICULUM)
        assert not authorize("mentor", MENTOR_ID, P.CAN_MANAGE_CURRICULUM)
        assert not authorize("buddy", BUDDY_USER_ID, P.CAN_MANAGE_CURRICULUM)

    def test_content_readable_by_all_roles(self):
        for role, actor_id in (("manager", MANAGER_ID), ("mentor", MENTOR_ID), ("buddy", BUDDY_USER_ID)):
            assert authorize(role, actor_id, P.CAN_VIEW_TASKS)


class TestBuddyFields:
    """Tests for field-level buddy edit gating."""

    def test_email_immutable_for_everyone(self):
        every_grant = [p.value for p in Permission]
        for role, actor_id in (("manager", MANAGER_ID), ("buddy", BUDDY_USER_ID)):
            assert can_edit_buddy_field(every_grant, role, actor_id, BUDDY_USER_ID, "email") is False

    def test_manager_edits_all_but_email(self):
        disabled = get_disabled_buddy_fields(MANAGER_GRANTS, "manager", MANAGER_ID, BUDDY_USER_ID)
        assert disabled == {
            "name": False,
            "email": True,
            "domainRole": False,
            "status": False,
            "assignedMentorId": False,
        }

    def test_buddy_edits_only_own_name(self):
        disabled = get_disabled_buddy_fields(BUDDY_GRANTS, "buddy", BUDDY_USER_ID, BUDDY_USER_ID)
        assert [f for f, off in disabled.items() if not off] == ["name"]

    def test_buddy_cannot_edit_another_buddy(self):
        assert can_edit_buddy_field(BUDDY_GRANTS, "buddy", "buddy-user-2", BUDDY_USER_ID, "name") is False

    def test_mentor_edits_nothing(self):
        disabled = get_disabled_buddy_fields(MENTOR_GRANTS, "mentor", MENTOR_ID, BUDDY_USER_ID)
        assert all(disabled.values())

    def test_unknown_field(self):
        assert can_edit_buddy_field(MANAGER_GRANTS, "manager", MANAGER_ID, BUDDY_USER_ID, "salary") is False

    def test_denied_fields_from_payload(self):
        denied = denied_buddy_fields(
            BUDDY_GRANTS, "buddy", BUDDY_USER_ID, BUDDY_USER_ID, ["name", "status"]
        )
        assert denied == ["status"]


class TestProgressAndTaskHelpers:
    """Tests for progress entry and task edit helpers."""

    def test_assigned_mentor_updates_progress(self):
        assert can_update_buddy_progress(MENTOR_GRANTS, "mentor", MENTOR_ID, BUDDY_USER_ID, MENTOR_ID)

    def test_unassigned_mentor_denied(self):
        assert not can_update_buddy_progress(MENTOR_GRANTS, "mentor", OTHER_MENTOR_ID, BUDDY_USER_ID, MENTOR_ID)

    def test_buddy_updates_own_progress(self):
        assert can_update_buddy_progress(BUDDY_GRANTS, "buddy", BUDDY_USER_ID, BUDDY_USER_ID, MENTOR_ID)

    def test_manager_denied_progress(self):
        every_grant = [p.value for p in Permission]
        assert not can_update_buddy_progress(every_grant, "manager", MANAGER_ID, BUDDY_USER_ID, MENTOR_ID)

    def test_edit_task(self):
        assert can_edit_task(MANAGER_GRANTS, "manager", MANAGER_ID, MENTOR_ID)
        assert can_edit_task(MENTOR_GRANTS, "mentor", MENTOR_ID, MENTOR_ID)
        assert not can_edit_task(MENTOR_GRANTS, "mentor", OTHER_MENTOR_ID, MENTOR_ID)
        assert not can_edit_task(BUDDY_GRANTS, "buddy", BUDDY_USER_ID, BUDDY_USER_ID)

    def test_update_task_status(self):
        assert can_update_task_status(BUDDY_GRANTS, "buddy", BUDDY_USER_ID, BUDDY_USER_ID)
        assert not can_update_task_status(BUDDY_GRANTS, "buddy", BUDDY_USER_ID, "buddy-user-2")
        assert can_update_task_status(MENTOR_GRANTS, "mentor", MENTOR_ID, BUDDY_USER_ID)

"""
WorkspaceCore facade: suspension precedence, authorization, rate gating and
admin tooling wired together over the in-memory store.
"""
from __future__ import annotations

import pytest

from boards.capabilities import Capability
from boards.domain import MembershipState
from boards.errors import (
    Duplicate,
    Forbidden,
    InvalidPolicy,
    NotPending,
    PrincipalNotFound,
    RateLimited,
    Suspended,
    TooFast,
    UnknownCapability,
    WorkspaceError,
)
from identity_access.domain import DEFAULT_SUSPENSION_REASON, Role
from moderation.rate_guard import ActionClass
from workspace import telemetry


def _suspend(core, target="student-1", reason="spam"):
    return core.set_suspension("admin-1", target, True, reason)


# --- Suspension ---------------------------------------------------------------


def test_suspended_admin_is_denied_everything(core, store):
    board = store.create_board(owner_id="teacher-1")
    core.set_suspension("admin-1", "admin-1", True, "compromised")
    with pytest.raises(Suspended) as err:
        core.authorize("admin-1", board.id, Capability.MANAGE_BOARD)
    assert err.value.reason == "compromised"
    with pytest.raises(Suspended):
        core.set_role("admin-1", "student-1", "teacher")


def test_suspended_principal_cannot_join_or_send(core, store):
    board = store.create_board(owner_id="teacher-1")
    _suspend(core)
    with pytest.raises(Suspended):
        core.request_join("student-1", board.id)
    with pytest.raises(Suspended):
        core.gate_action("student-1", ActionClass.CHAT_MESSAGE, "hello")
    assert core.membership_state("student-1", board.id) is MembershipState.NONE


def test_suspended_principal_can_read_reason_and_log_out(core):
    _suspend(core, reason="Flooding the chat")
    assert core.suspension_reason("student-1") == "Flooding the chat"
    core.logout("student-1")


def test_suspension_without_reason_uses_default(core):
    updated = core.set_suspension("admin-1", "student-1", True, "   ")
    assert updated.suspension_reason == DEFAULT_SUSPENSION_REASON
    assert core.suspension_reason("student-1") == DEFAULT_SUSPENSION_REASON


def test_lifting_suspension_clears_reason(core, store):
    board = store.create_board(owner_id="teacher-1")
    _suspend(core)
    core.set_suspension("admin-1", "student-1", False)
    assert core.suspension_reason("student-1") is None
    assert core.request_join("student-1", board.id) is MembershipState.MEMBER


def test_suspension_reason_is_none_for_active_principal(core):
    assert core.suspension_reason("student-2") is None


# --- Authorization ------------------------------------------------------------


def test_pin_note_override_for_students(core, store):
    board = store.create_board(owner_id="teacher-1", members=["student-1"])
    assert core.authorize("student-1", board.id, Capability.PIN_NOTE) is False
    core.update_policy("admin-1", {"student": {"pinNote": True}})
    assert core.authorize("student-1", board.id, Capability.PIN_NOTE) is True
    assert core.authorize("student-2", board.id, Capability.PIN_NOTE) is False


def test_require_raises_forbidden_and_counts_denial(core, store):
    board = store.create_board(owner_id="teacher-1", members=["student-1"])
    with pytest.raises(Forbidden) as err:
        core.require("student-1", board.id, "lockComments")
    assert err.value.detail == "lockComments"
    assert telemetry.counter_value(telemetry.AUTHORIZATION_DENIALS, capability="lockComments") == 1


def test_capabilities_of_owner_cover_everything(core, store):
    board = store.create_board(owner_id="student-1")
    assert core.capabilities("student-1", board.id) == frozenset(Capability)


def test_unknown_principal_raises_not_found(core, store):
    board = store.create_board(owner_id="teacher-1")
    with pytest.raises(PrincipalNotFound):
        core.authorize("nobody", board.id, Capability.PIN_NOTE)


def test_unknown_capability_is_a_typed_error(core, store):
    board = store.create_board(owner_id="teacher-1", members=["student-1"])
    with pytest.raises(UnknownCapability) as err:
        core.authorize("student-1", board.id, "launchRockets")
    assert isinstance(err.value, WorkspaceError)
    assert err.value.code == "unknown_capability"
    assert err.value.detail == "launchRockets"
    with pytest.raises(UnknownCapability):
        core.require("student-1", board.id, "")


# --- Membership through the facade --------------------------------------------


def test_request_approve_flow_with_notifications(core, store, notifier):
    board = store.create_board(owner_id="teacher-1", require_member_approval=True)
    assert core.request_join("student-1", board.id) is MembershipState.PENDING
    assert core.approve("teacher-2", board.id, "student-1") is MembershipState.MEMBER
    assert [e[0] for e in notifier.events] == ["member_request", "member_approved"]
    assert telemetry.counter_value(telemetry.MEMBERSHIP_TRANSITIONS, transition="approve", outcome="ok") == 1


def test_second_approve_of_same_request_is_not_pending(core, store):
    board = store.create_board(owner_id="student-2", require_member_approval=True)
    assert core.request_join("student-1", board.id) is MembershipState.PENDING
    assert core.approve("teacher-1", board.id, "student-1") is MembershipState.MEMBER
    with pytest.raises(NotPending):
        core.approve("teacher-1", board.id, "student-1")
    assert store.get_board(board.id).members == frozenset({"student-1"})


def test_rejoin_as_member_is_idempotent(core, store):
    board = store.create_board(owner_id="teacher-1")
    core.request_join("student-1", board.id)
    assert core.request_join("student-1", board.id) is MembershipState.MEMBER
    assert store.get_board(board.id).members == frozenset({"student-1"})


def test_leave_remove_and_transfer_through_facade(core, store):
    board = store.create_board(owner_id="teacher-1", members=["student-1", "student-2"])
    assert core.leave("student-1", board.id) is MembershipState.NONE
    assert core.remove("teacher-2", board.id, "student-2") is MembershipState.NONE
    core.request_join("student-1", board.id)
    assert core.transfer_ownership("teacher-1", board.id, "student-1") is MembershipState.OWNER
    assert core.membership_state("teacher-1", board.id) is MembershipState.MEMBER


# --- Rate gate ----------------------------------------------------------------


def test_gate_action_raises_typed_denials(core, clock):
    core.gate_action("student-1", ActionClass.CHAT_MESSAGE, "hello")
    with pytest.raises(TooFast) as fast:
        core.gate_action("student-1", ActionClass.CHAT_MESSAGE, "again")
    assert fast.value.retry_after == pytest.approx(0.5)

    clock.advance(1.0)
    with pytest.raises(Duplicate):
        core.gate_action("student-1", ActionClass.CHAT_MESSAGE, "  HELLO ")

    for i in range(9):
        clock.advance(1.0)
        core.gate_action("student-1", ActionClass.CHAT_MESSAGE, f"msg {i}")
    clock.advance(1.0)
    with pytest.raises(RateLimited) as limited:
        core.gate_action("student-1", ActionClass.CHAT_MESSAGE, "one more")
    assert limited.value.retry_after == pytest.approx(49.0)
    assert telemetry.counter_value(telemetry.RATE_GUARD_DENIALS, reason="rate_limited") == 1


def test_logout_clears_rate_tracking(core, clock):
    core.gate_action("student-1", ActionClass.COMMENT, "first")
    core.logout("student-1")
    core.gate_action("student-1", ActionClass.COMMENT, "first")


def test_suspension_drops_rate_tracking(core):
    core.gate_action("student-1", ActionClass.NOTE, "x")
    assert core.rate_guard.tracked_entries() == 1
    _suspend(core)
    assert core.rate_guard.tracked_entries() == 0


# --- Admin tooling ------------------------------------------------------------


def test_admin_operations_require_admin_role(core):
    with pytest.raises(Forbidden) as err:
        core.set_role("teacher-1", "student-1", Role.TEACHER)
    assert err.value.detail == "admin_only"
    with pytest.raises(Forbidden):
        core.set_suspension("teacher-1", "student-1", True)
    with pytest.raises(Forbidden):
        core.update_policy("teacher-1", {"student": {"pinNote": True}})


def test_set_role_changes_resolution(core, store):
    board = store.create_board(owner_id="teacher-1", members=["student-1"])
    assert core.authorize("student-1", board.id, Capability.GRADE_ASSIGNMENT) is False
    updated = core.set_role("admin-1", "student-1", "teacher")
    assert updated.role is Role.TEACHER
    assert core.authorize("student-1", board.id, Capability.GRADE_ASSIGNMENT) is True


def test_set_role_rejects_unknown_role(core):
    with pytest.raises(ValueError):
        core.set_role("admin-1", "student-1", "superuser")


def test_update_policy_merges_and_persists(core, store):
    core.update_policy("admin-1", {"student": {"pinNote": True}})
    merged = core.update_policy("admin-1", {"teacher": {"canGradeAssignments": False}})
    assert merged.to_document() == {
        "student": {"pinNote": True},
        "teacher": {"gradeAssignment": False},
    }
    assert store.get_policy() == merged


def test_invalid_policy_update_leaves_policy_unchanged(core, store):
    core.update_policy("admin-1", {"student": {"pinNote": True}})
    before = store.get_policy()
    with pytest.raises(InvalidPolicy):
        core.update_policy("admin-1", {"student": {"pinNote": "true"}})
    assert store.get_policy() == before


def test_refresh_policy_picks_up_store_changes(core, store):
    from boards.policy import PermissionPolicy

    board = store.create_board(owner_id="teacher-1", members=["student-1"])
    store.save_policy(PermissionPolicy.from_document({"student": {"lockComments": True}}))
    assert core.authorize("student-1", board.id, Capability.LOCK_COMMENTS) is False
    core.refresh_policy()
    assert core.authorize("student-1", board.id, Capability.LOCK_COMMENTS) is True

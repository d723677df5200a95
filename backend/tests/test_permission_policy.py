"""Unit tests for PermissionPolicy parsing and PermissionPolicyStore resolution.

Focus:
    - Empty policy behaves exactly like the hard-coded defaults
    - Overrides win for teacher/student; admin is never overridden
    - Legacy `can*` keys map onto typed capabilities
    - Malformed documents fail with InvalidPolicy instead of silently coercing
"""
from __future__ import annotations

import pytest

from boards.capabilities import OVERRIDABLE, ROLE_DEFAULTS, Capability
from boards.errors import InvalidPolicy
from boards.policy import PermissionPolicy, PermissionPolicyStore
from identity_access.domain import Role


def test_empty_store_matches_default_table_for_every_capability():
    store = PermissionPolicyStore()
    for cap, defaults in ROLE_DEFAULTS.items():
        assert store.effective(Role.TEACHER, cap) is defaults[Role.TEACHER]
        assert store.effective(Role.STUDENT, cap) is defaults[Role.STUDENT]


def test_default_table_covers_all_capabilities():
    assert set(ROLE_DEFAULTS) == set(Capability)
    assert OVERRIDABLE <= set(Capability)


def test_admin_is_true_even_with_negative_overrides():
    # Admin overrides are accepted in stored documents but never consulted.
    policy = PermissionPolicy.from_document({"admin": {"pinNote": False}, "teacher": {"pinNote": False}})
    store = PermissionPolicyStore(policy)
    for cap in Capability:
        assert store.effective(Role.ADMIN, cap) is True
    assert store.effective(Role.TEACHER, Capability.PIN_NOTE) is False


def test_student_override_enables_capability():
    store = PermissionPolicyStore(PermissionPolicy.from_document({"student": {"pinNote": True}}))
    assert store.effective(Role.STUDENT, Capability.PIN_NOTE) is True
    assert store.effective(Role.STUDENT, Capability.LOCK_COMMENTS) is False


def test_legacy_keys_are_accepted():
    policy = PermissionPolicy.from_document({
        "teacher": {"canGradeAssignments": False},
        "student": {"canDeleteComments": True},
    })
    assert policy.override_for(Role.TEACHER, Capability.GRADE_ASSIGNMENT) is False
    assert policy.override_for(Role.STUDENT, Capability.DELETE_ANY_COMMENT) is True
    assert policy.to_document(legacy_keys=True) == {
        "teacher": {"canGradeAssignments": False},
        "student": {"canDeleteComments": True},
    }


def test_string_capability_names_resolve_through_store():
    store = PermissionPolicyStore()
    assert store.effective("teacher", "canPinNotes") is True
    assert store.effective("student", "pinNote") is False


@pytest.mark.parametrize(
    "document",
    [
        {"student": {"flyToMoon": True}},
        {"guest": {"pinNote": True}},
        {"student": {"pinNote": "yes"}},
        {"student": {"pinNote": 1}},
        {"teacher": {"manageMembers": False}},
        {"student": {"approveMembers": True}},
        {"teacher": {"manageBoard": False}},
        {"student": ["pinNote"]},
    ],
)
def test_invalid_documents_raise_invalid_policy(document):
    with pytest.raises(InvalidPolicy):
        PermissionPolicy.from_document(document)


def test_none_and_empty_documents_give_empty_policy():
    assert PermissionPolicy.from_document(None).overrides == {}
    assert PermissionPolicy.from_document({}).overrides == {}


def test_merged_keeps_existing_and_lets_newer_win():
    base = PermissionPolicy.from_document({"student": {"pinNote": True, "lockComments": True}})
    update = PermissionPolicy.from_document({"student": {"lockComments": False}, "teacher": {"pinNote": False}})
    merged = base.merged(update)
    assert merged.override_for(Role.STUDENT, Capability.PIN_NOTE) is True
    assert merged.override_for(Role.STUDENT, Capability.LOCK_COMMENTS) is False
    assert merged.override_for(Role.TEACHER, Capability.PIN_NOTE) is False
    # Inputs stay untouched.
    assert base.override_for(Role.STUDENT, Capability.LOCK_COMMENTS) is True


def test_refresh_pulls_from_source_and_keeps_last_good_policy_on_failure():
    calls = {"n": 0}

    def source():
        calls["n"] += 1
        if calls["n"] == 1:
            return PermissionPolicy.from_document({"student": {"pinNote": True}})
        raise ConnectionError("store down")

    store = PermissionPolicyStore(source=source)
    assert store.effective(Role.STUDENT, Capability.PIN_NOTE) is False
    store.refresh()
    assert store.effective(Role.STUDENT, Capability.PIN_NOTE) is True
    store.refresh()
    assert store.effective(Role.STUDENT, Capability.PIN_NOTE) is True


def test_matrix_lists_every_role_and_capability():
    matrix = PermissionPolicyStore().matrix()
    assert set(matrix) == {"student", "teacher", "admin"}
    assert all(matrix["admin"].values())
    assert matrix["teacher"]["gradeAssignment"] is True
    assert matrix["student"]["gradeAssignment"] is False

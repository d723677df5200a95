from __future__ import annotations

import pytest

from boards.errors import Suspended
from boards.repo_memory import InMemoryBoardStore
from identity_access.domain import Principal, Role
from identity_access.elevation import ElevationPolicy
from identity_access.suspension import SuspensionEnforcer


def test_elevates_by_email_case_insensitively():
    policy = ElevationPolicy(["Head@School.example"])
    p = Principal(id="u-1", display_name="Head", email="head@school.EXAMPLE")
    assert policy.should_elevate(p)
    assert policy.apply(p).role is Role.ADMIN


def test_elevates_by_id_and_ignores_unlisted():
    policy = ElevationPolicy(["u-2", "  "])
    assert policy.identifiers == frozenset({"u-2"})
    assert policy.apply(Principal(id="u-2", display_name="x")).is_admin
    other = Principal(id="u-3", display_name="y")
    assert policy.apply(other) is other


def test_existing_admin_is_left_alone():
    admin = Principal(id="u-2", display_name="x", role=Role.ADMIN)
    assert ElevationPolicy(["u-2"]).apply(admin) is admin


def test_memory_store_persists_elevation():
    store = InMemoryBoardStore(elevation=ElevationPolicy(["teacher@school.example"]))
    store.add_principal(Principal(id="t-1", display_name="T", role=Role.TEACHER, email="teacher@school.example"))
    assert store.get_principal("t-1").role is Role.ADMIN
    # A later role change by tooling is overridden again on the next read.
    store.save_principal(store.get_principal("t-1").with_role(Role.STUDENT))
    assert store.get_principal("t-1").role is Role.ADMIN


def test_principal_validation():
    with pytest.raises(ValueError):
        Principal(id=" ", display_name="blank")
    assert Principal(id="u", display_name="x", role="Teacher").role is Role.TEACHER
    with pytest.raises(ValueError):
        Principal(id="u", display_name="x", role="guest")


def test_suspension_enforcer_carries_reason():
    enforcer = SuspensionEnforcer()
    active = Principal(id="u", display_name="x")
    assert enforcer.allow(active)
    suspended = active.with_suspension(True, "Harassment")
    assert not enforcer.allow(suspended)
    with pytest.raises(Suspended) as err:
        enforcer.ensure_allowed(suspended)
    assert err.value.reason == "Harassment"
    assert err.value.code == "suspended"

"""
Workspace core facade: the operations exposed to the hosting application.

Why:
    Adapters (HTTP handlers, workers, admin tooling) should not wire the
    suspension guard, role resolver, ledger and rate guard themselves. This
    facade fixes the order of checks and owns the one automatic retry.

Call paths:
    - authorize: suspension → role resolver
    - membership transitions: suspension → ledger (→ role resolver) → store;
      a lost write race (`StoreConflict`) is retried once with a fresh read
    - gate_action: suspension → rate guard (check + record)
    - admin tooling: suspension → admin role → store
    Suspended principals may still read their suspension reason and log out.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Optional

from boards.capabilities import Capability
from boards.domain import MembershipState
from boards.errors import Forbidden, StoreConflict, UnknownCapability, WorkspaceError
from boards.ledger import MembershipLedger
from boards.policy import PermissionPolicy, PermissionPolicyStore
from boards.ports import BoardStoreProtocol, Clock, Notifier
from boards.repo_memory import InMemoryBoardStore
from boards.roles import RoleResolver
from identity_access.domain import Principal, Role
from identity_access.elevation import ElevationPolicy
from identity_access.suspension import SuspensionEnforcer
from moderation.rate_guard import RateGuard

from . import telemetry
from .config import CoreConfig, ensure_secure_config, load_core_config

logger = logging.getLogger("collabo.workspace.service")


def _tail(value: Optional[str]) -> str:
    return (value or "")[-6:]


def _capability(value: Capability | str) -> Capability:
    try:
        return Capability.parse(value)
    except ValueError as exc:
        raise UnknownCapability(str(value)) from exc


class WorkspaceCore:
    def __init__(
        self,
        store: BoardStoreProtocol,
        *,
        rate_guard: Optional[RateGuard] = None,
        notifier: Optional[Notifier] = None,
        policies: Optional[PermissionPolicyStore] = None,
        suspension: Optional[SuspensionEnforcer] = None,
    ) -> None:
        self._store = store
        if policies is None:
            policies = PermissionPolicyStore(source=store.get_policy)
            policies.refresh()
        self._policies = policies
        self._suspension = suspension or SuspensionEnforcer()
        self._resolver = RoleResolver(self._policies)
        self._ledger = MembershipLedger(store, self._resolver, suspension=self._suspension, notifier=notifier)
        self._rate_guard = rate_guard or RateGuard()

    @classmethod
    def from_config(
        cls,
        config: Optional[CoreConfig] = None,
        *,
        notifier: Optional[Notifier] = None,
        clock: Optional[Clock] = None,
    ) -> "WorkspaceCore":
        """Build the core from environment configuration (see `load_core_config`)."""
        config = config or load_core_config()
        ensure_secure_config(config)
        elevation = ElevationPolicy(config.elevated_admins)
        if config.store_backend == "db":
            from boards.repo_db import DBBoardStore

            store: BoardStoreProtocol = DBBoardStore(config.database_url, elevation=elevation)
        else:
            store = InMemoryBoardStore(elevation=elevation)
        return cls(store, rate_guard=RateGuard(config.rate_limits(), clock=clock), notifier=notifier)

    @property
    def store(self) -> BoardStoreProtocol:
        return self._store

    @property
    def resolver(self) -> RoleResolver:
        return self._resolver

    @property
    def rate_guard(self) -> RateGuard:
        return self._rate_guard

    # --- Authorization -------------------------------------------------------

    def authorize(self, principal_id: str, board_id: str, capability: Capability | str) -> bool:
        """Return whether the principal holds `capability` on the board.

        Raises `Suspended` for suspended principals, whatever their role.
        """
        capability = _capability(capability)
        principal = self._active_principal(principal_id)
        board = self._store.get_board(board_id)
        allowed = self._resolver.can(principal, board, capability)
        if not allowed:
            telemetry.increment_counter(telemetry.AUTHORIZATION_DENIALS, capability=capability.value)
        return allowed

    def require(self, principal_id: str, board_id: str, capability: Capability | str) -> None:
        capability = _capability(capability)
        if not self.authorize(principal_id, board_id, capability):
            raise Forbidden(capability.value)

    def capabilities(self, principal_id: str, board_id: str) -> frozenset[Capability]:
        """All capabilities the principal holds on the board (UI affordances)."""
        principal = self._active_principal(principal_id)
        return self._resolver.capabilities(principal, self._store.get_board(board_id))

    # --- Membership ----------------------------------------------------------

    def request_join(self, principal_id: str, board_id: str) -> MembershipState:
        return self._transition(
            "request",
            lambda: self._ledger.request_join(self._principal(principal_id), board_id),
        )

    def approve(self, moderator_id: str, board_id: str, target_id: str) -> MembershipState:
        return self._transition(
            "approve",
            lambda: self._ledger.approve(self._principal(moderator_id), board_id, target_id),
        )

    def reject(self, moderator_id: str, board_id: str, target_id: str) -> MembershipState:
        return self._transition(
            "reject",
            lambda: self._ledger.reject(self._principal(moderator_id), board_id, target_id),
        )

    def leave(self, principal_id: str, board_id: str) -> MembershipState:
        return self._transition(
            "leave",
            lambda: self._ledger.leave(self._principal(principal_id), board_id),
        )

    def remove(self, moderator_id: str, board_id: str, target_id: str) -> MembershipState:
        return self._transition(
            "remove",
            lambda: self._ledger.remove(self._principal(moderator_id), board_id, target_id),
        )

    def transfer_ownership(self, actor_id: str, board_id: str, new_owner_id: str) -> MembershipState:
        return self._transition(
            "transfer",
            lambda: self._ledger.transfer_ownership(self._principal(actor_id), board_id, new_owner_id),
        )

    def membership_state(self, principal_id: str, board_id: str) -> MembershipState:
        return self._ledger.state(principal_id, board_id)

    # --- Abuse gate ----------------------------------------------------------

    def gate_action(self, principal_id: str, action_class: Any, content: str) -> None:
        """Admit one content-producing action or raise a rate denial.

        Raises:
            Suspended, TooFast, RateLimited, Duplicate (the latter three carry
            `retry_after` in seconds).
        """
        self._active_principal(principal_id)
        decision = self._rate_guard.gate(principal_id, action_class, content)
        if not decision.allowed:
            telemetry.increment_counter(telemetry.RATE_GUARD_DENIALS, reason=str(decision.reason))
            decision.raise_for_denial()

    # --- Suspension escape hatches -------------------------------------------

    def suspension_reason(self, principal_id: str) -> Optional[str]:
        principal = self._principal(principal_id)
        return principal.suspension_reason if principal.suspended else None

    def logout(self, principal_id: str) -> None:
        """Allowed for everyone, suspended or not; drops rate tracking."""
        self._rate_guard.clear(principal_id)

    # --- Admin tooling -------------------------------------------------------

    def set_role(self, admin_id: str, target_id: str, role: Role | str) -> Principal:
        self._admin(admin_id)
        updated = self._principal(target_id).with_role(Role.parse(role))
        self._store.save_principal(updated)
        logger.info("workspace.admin.role_changed target_tail=%s role=%s", _tail(target_id), updated.role.value)
        return updated

    def set_suspension(self, admin_id: str, target_id: str, suspended: bool, reason: Optional[str] = None) -> Principal:
        self._admin(admin_id)
        updated = self._principal(target_id).with_suspension(bool(suspended), reason)
        self._store.save_principal(updated)
        if updated.suspended:
            self._rate_guard.clear(target_id)
        logger.info("workspace.admin.suspension_changed target_tail=%s suspended=%s", _tail(target_id), updated.suspended)
        return updated

    def update_policy(self, admin_id: str, document: Mapping[str, Any]) -> PermissionPolicy:
        """Merge an override document into the stored policy (raises `InvalidPolicy`)."""
        self._admin(admin_id)
        incoming = PermissionPolicy.from_document(document)
        merged = self._store.merge_policy(incoming)
        self._policies.load(merged)
        logger.info("workspace.admin.policy_updated roles=%s", ",".join(sorted(r.value for r in incoming.overrides)))
        return merged

    def refresh_policy(self) -> PermissionPolicy:
        return self._policies.refresh()

    # --- Helpers -------------------------------------------------------------

    def _principal(self, principal_id: str) -> Principal:
        return self._store.get_principal(principal_id)

    def _active_principal(self, principal_id: str) -> Principal:
        principal = self._principal(principal_id)
        self._suspension.ensure_allowed(principal)
        return principal

    def _admin(self, admin_id: str) -> Principal:
        admin = self._active_principal(admin_id)
        if not admin.is_admin:
            raise Forbidden("admin_only")
        return admin

    def _transition(self, name: str, action: Callable[[], MembershipState]) -> MembershipState:
        retried = False
        while True:
            try:
                state = action()
            except StoreConflict:
                if retried:
                    telemetry.increment_counter(telemetry.MEMBERSHIP_TRANSITIONS, transition=name, outcome=StoreConflict.code)
                    raise
                retried = True
                logger.info("workspace.membership.retry transition=%s", name)
                continue
            except WorkspaceError as exc:
                telemetry.increment_counter(telemetry.MEMBERSHIP_TRANSITIONS, transition=name, outcome=exc.code)
                raise
            telemetry.increment_counter(telemetry.MEMBERSHIP_TRANSITIONS, transition=name, outcome="ok")
            return state


__all__ = ["WorkspaceCore"]

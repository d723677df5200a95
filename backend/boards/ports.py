"""
Ports consumed by the collaboration core.

Keep these small and framework-agnostic so tests can supply simple fakes. The
core never blocks on its own; callers wrap store calls with their timeout and
cancellation policy.
"""
from __future__ import annotations

import time
from typing import Protocol, Union

from identity_access.domain import Principal

from .domain import Board, MembershipChange, OwnershipChange
from .policy import PermissionPolicy

Mutation = Union[MembershipChange, OwnershipChange]


class BoardStoreProtocol(Protocol):
    """Durable, individually addressable records with single-record atomic writes.

    Errors:
        - `get_board` raises `BoardNotFound`, `get_principal` raises `PrincipalNotFound`.
        - `atomic_transition` raises `BoardNotFound`, `BoardUnavailable` for deleted
          boards, and `StoreConflict` when the mutation's precondition does not
          hold at write time. On success it returns the updated board.
    """

    def get_board(self, board_id: str) -> Board: ...

    def get_principal(self, principal_id: str) -> Principal: ...

    def atomic_transition(self, board_id: str, mutation: Mutation) -> Board: ...

    def get_policy(self) -> PermissionPolicy: ...

    def save_policy(self, policy: PermissionPolicy) -> None: ...

    def merge_policy(self, policy: PermissionPolicy) -> PermissionPolicy:
        """Merge `policy` over the stored one in a single atomic step; return the result."""
        ...

    def save_principal(self, principal: Principal) -> None: ...


class Clock(Protocol):
    def now(self) -> float:
        """Monotonic seconds."""
        ...


class SystemClock:
    def now(self) -> float:
        return time.monotonic()


class Notifier(Protocol):
    """Fire-and-forget delivery of membership events (best effort)."""

    def notify(self, event: str, board_id: str, target_principal_id: str, actor_principal_id: str) -> None: ...


class NullNotifier:
    """Default notifier: delivery not configured, events are dropped."""

    def notify(self, event: str, board_id: str, target_principal_id: str, actor_principal_id: str) -> None:
        return None


__all__ = [
    "BoardStoreProtocol",
    "Clock",
    "Mutation",
    "Notifier",
    "NullNotifier",
    "SystemClock",
]

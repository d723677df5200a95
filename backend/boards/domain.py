"""
Board domain objects and the conditional mutations the ledger issues.

A mutation pairs a precondition with its effect. Stores must apply it as one
atomic conditional write: check the precondition against the current record
and apply the effect, or change nothing and report a conflict.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import FrozenSet, Iterable, Optional


class MembershipState(str, Enum):
    NONE = "none"
    PENDING = "pending"
    MEMBER = "member"
    OWNER = "owner"


def _ids(values: Iterable[str]) -> FrozenSet[str]:
    return frozenset(str(v) for v in values if v)


@dataclass(frozen=True)
class Board:
    id: str
    owner_id: Optional[str]
    members: FrozenSet[str] = field(default_factory=frozenset)
    pending_members: FrozenSet[str] = field(default_factory=frozenset)
    require_member_approval: bool = False
    is_deleted: bool = False
    title: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "members", _ids(self.members))
        object.__setattr__(self, "pending_members", _ids(self.pending_members))
        if self.members & self.pending_members:
            raise ValueError("member_and_pending_overlap")

    def state_of(self, principal_id: str) -> MembershipState:
        if self.owner_id and principal_id == self.owner_id:
            return MembershipState.OWNER
        if principal_id in self.members:
            return MembershipState.MEMBER
        if principal_id in self.pending_members:
            return MembershipState.PENDING
        return MembershipState.NONE

    def is_member_or_owner(self, principal_id: str) -> bool:
        return self.state_of(principal_id) in (MembershipState.MEMBER, MembershipState.OWNER)


@dataclass(frozen=True)
class MembershipChange:
    """Move one principal from `expected` to `target` (NONE/PENDING/MEMBER).

    `keep_members` is the number of members that must remain once the
    principal is gone; leaving an ownerless board sets it to 1.
    """

    principal_id: str
    expected: MembershipState
    target: MembershipState
    keep_members: int = 0

    def __post_init__(self) -> None:
        allowed = (MembershipState.NONE, MembershipState.PENDING, MembershipState.MEMBER)
        if self.expected not in allowed or self.target not in allowed:
            raise ValueError("owner_state_not_transitionable")

    def precondition(self, board: Board) -> bool:
        if board.state_of(self.principal_id) is not self.expected:
            return False
        return len(board.members - {self.principal_id}) >= self.keep_members

    def apply(self, board: Board) -> Board:
        pid = self.principal_id
        members = set(board.members) - {pid}
        pending = set(board.pending_members) - {pid}
        if self.target is MembershipState.MEMBER:
            members.add(pid)
        elif self.target is MembershipState.PENDING:
            pending.add(pid)
        return replace(board, members=frozenset(members), pending_members=frozenset(pending))


@dataclass(frozen=True)
class OwnershipChange:
    """Hand a board from `expected_owner_id` to an existing member."""

    expected_owner_id: Optional[str]
    new_owner_id: str

    def precondition(self, board: Board) -> bool:
        return board.owner_id == self.expected_owner_id and self.new_owner_id in board.members

    def apply(self, board: Board) -> Board:
        members = set(board.members) - {self.new_owner_id}
        if self.expected_owner_id:
            members.add(self.expected_owner_id)
        return replace(board, owner_id=self.new_owner_id, members=frozenset(members))


__all__ = ["Board", "MembershipChange", "MembershipState", "OwnershipChange"]

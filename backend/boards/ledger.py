"""
Membership ledger: the state machine for a principal's relationship to a board.

Why:
    Joining, approving, rejecting, leaving and removing used to be independent
    array updates with no preconditions, so two moderators could both "win" the
    same request. Each transition is now read → decide → one conditional write
    whose precondition restates the decision. If another writer got there
    first the store reports `StoreConflict` and nothing changes; a re-read then
    yields the precise error (e.g. `NotPending`).

States (per principal and board):
    NONE → PENDING → MEMBER → NONE, plus OWNER which is never entered here
    except through an explicit ownership transfer.

Permissions:
    Suspension is checked first on every path. Approve/reject need
    `approveMembers`, remove needs `manageMembers` (see `RoleResolver`).
"""
from __future__ import annotations

import logging
from typing import Optional

from identity_access.domain import Principal
from identity_access.suspension import SuspensionEnforcer

from .capabilities import Capability
from .domain import Board, MembershipChange, MembershipState, OwnershipChange
from .errors import (
    AlreadyPending,
    BoardUnavailable,
    Forbidden,
    NotMember,
    NotPending,
    PrincipalNotFound,
    StoreConflict,
)
from .ports import BoardStoreProtocol, Mutation, Notifier, NullNotifier
from .roles import RoleResolver

logger = logging.getLogger("collabo.boards.ledger")

NONE = MembershipState.NONE
PENDING = MembershipState.PENDING
MEMBER = MembershipState.MEMBER
OWNER = MembershipState.OWNER


def _tail(value: Optional[str]) -> str:
    return (value or "")[-6:]


class MembershipLedger:
    def __init__(
        self,
        store: BoardStoreProtocol,
        resolver: RoleResolver,
        *,
        suspension: Optional[SuspensionEnforcer] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._suspension = suspension or SuspensionEnforcer()
        self._notifier = notifier or NullNotifier()

    # --- Transitions ---------------------------------------------------------

    def request_join(self, principal: Principal, board_id: str) -> MembershipState:
        """Join directly, or file a pending request when approval is required.

        Re-requesting as a member (or owner) returns the current state without
        writing, so client retries stay safe. A second request while pending
        raises `AlreadyPending`.
        """
        self._suspension.ensure_allowed(principal)
        board = self._load(board_id)
        state = board.state_of(principal.id)
        if state in (MEMBER, OWNER):
            return state
        if state is PENDING:
            raise AlreadyPending()
        if board.require_member_approval:
            self._write(board_id, MembershipChange(principal.id, NONE, PENDING))
            logger.info("boards.membership.requested board_tail=%s principal_tail=%s", _tail(board_id), _tail(principal.id))
            self._notify("member_request", board_id, principal.id, principal.id)
            return PENDING
        self._write(board_id, MembershipChange(principal.id, NONE, MEMBER))
        logger.info("boards.membership.joined board_tail=%s principal_tail=%s", _tail(board_id), _tail(principal.id))
        self._notify("member_joined", board_id, principal.id, principal.id)
        return MEMBER

    def approve(self, moderator: Principal, board_id: str, target_id: str) -> MembershipState:
        self._suspension.ensure_allowed(moderator)
        board = self._load(board_id)
        self._require(moderator, board, Capability.APPROVE_MEMBERS)
        if board.state_of(target_id) is not PENDING:
            raise NotPending()
        self._write(board_id, MembershipChange(target_id, PENDING, MEMBER))
        logger.info("boards.membership.approved board_tail=%s target_tail=%s", _tail(board_id), _tail(target_id))
        self._notify("member_approved", board_id, target_id, moderator.id)
        return MEMBER

    def reject(self, moderator: Principal, board_id: str, target_id: str) -> MembershipState:
        self._suspension.ensure_allowed(moderator)
        board = self._load(board_id)
        self._require(moderator, board, Capability.APPROVE_MEMBERS)
        if board.state_of(target_id) is not PENDING:
            raise NotPending()
        self._write(board_id, MembershipChange(target_id, PENDING, NONE))
        logger.info("boards.membership.rejected board_tail=%s target_tail=%s", _tail(board_id), _tail(target_id))
        self._notify("member_rejected", board_id, target_id, moderator.id)
        return NONE

    def leave(self, principal: Principal, board_id: str) -> MembershipState:
        """Leave a board as a member.

        The owner must delete the board instead, and the last member of a board
        without a reachable owner may not leave (the board would be orphaned).
        """
        self._suspension.ensure_allowed(principal)
        board = self._load(board_id)
        state = board.state_of(principal.id)
        if state is OWNER:
            raise Forbidden("owner_cannot_leave")
        if state is not MEMBER:
            raise NotMember()
        keep = 0
        if not self._has_owner(board):
            if board.members == frozenset({principal.id}):
                raise Forbidden("last_member")
            # A concurrent leave must not empty the board either.
            keep = 1
        self._write(board_id, MembershipChange(principal.id, MEMBER, NONE, keep_members=keep))
        logger.info("boards.membership.left board_tail=%s principal_tail=%s", _tail(board_id), _tail(principal.id))
        return NONE

    def remove(self, moderator: Principal, board_id: str, target_id: str) -> MembershipState:
        self._suspension.ensure_allowed(moderator)
        board = self._load(board_id)
        self._require(moderator, board, Capability.MANAGE_MEMBERS)
        state = board.state_of(target_id)
        if state is OWNER:
            raise Forbidden("cannot_remove_owner")
        if state is not MEMBER:
            raise NotMember()
        self._write(board_id, MembershipChange(target_id, MEMBER, NONE))
        logger.info("boards.membership.removed board_tail=%s target_tail=%s", _tail(board_id), _tail(target_id))
        self._notify("member_removed", board_id, target_id, moderator.id)
        return NONE

    def transfer_ownership(self, actor: Principal, board_id: str, new_owner_id: str) -> MembershipState:
        """Make an existing member the owner; the previous owner stays a member."""
        self._suspension.ensure_allowed(actor)
        board = self._load(board_id)
        if not (actor.is_admin or (board.owner_id and board.owner_id == actor.id)):
            raise Forbidden("owner_only")
        state = board.state_of(new_owner_id)
        if state is OWNER:
            return OWNER
        if state is not MEMBER:
            raise NotMember()
        self._write(board_id, OwnershipChange(board.owner_id, new_owner_id))
        logger.info("boards.membership.ownership_transferred board_tail=%s new_owner_tail=%s", _tail(board_id), _tail(new_owner_id))
        self._notify("ownership_transferred", board_id, new_owner_id, actor.id)
        return OWNER

    # --- Reads ---------------------------------------------------------------

    def state(self, principal_id: str, board_id: str) -> MembershipState:
        return self._store.get_board(board_id).state_of(principal_id)

    # --- Helpers -------------------------------------------------------------

    def _load(self, board_id: str) -> Board:
        board = self._store.get_board(board_id)
        if board.is_deleted:
            raise BoardUnavailable()
        return board

    def _require(self, principal: Principal, board: Board, capability: Capability) -> None:
        if not self._resolver.can(principal, board, capability):
            logger.info(
                "boards.membership.forbidden board_tail=%s principal_tail=%s capability=%s",
                _tail(board.id),
                _tail(principal.id),
                capability.value,
            )
            raise Forbidden(capability.value)

    def _has_owner(self, board: Board) -> bool:
        if not board.owner_id:
            return False
        try:
            self._store.get_principal(board.owner_id)
        except PrincipalNotFound:
            return False
        return True

    def _write(self, board_id: str, mutation: Mutation) -> Board:
        try:
            return self._store.atomic_transition(board_id, mutation)
        except StoreConflict:
            logger.info("boards.membership.conflict board_tail=%s mutation=%s", _tail(board_id), type(mutation).__name__)
            raise

    def _notify(self, event: str, board_id: str, target_id: str, actor_id: str) -> None:
        try:
            self._notifier.notify(event, board_id, target_id, actor_id)
        except Exception as exc:
            logger.warning("boards.membership.notify_failed event=%s reason=%s", event, exc.__class__.__name__)


__all__ = ["MembershipLedger"]

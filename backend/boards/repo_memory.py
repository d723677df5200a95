"""
In-memory board store for tests and local offline work.

Atomicity is process-local: a single lock serializes every conditional write,
which is enough for one process. Multi-instance deployments must use
`DBBoardStore`.
"""
from __future__ import annotations

from dataclasses import replace
from threading import Lock
from typing import Dict, Iterable, Optional
from uuid import uuid4

from identity_access.domain import Principal
from identity_access.elevation import ElevationPolicy

from .domain import Board
from .errors import BoardNotFound, BoardUnavailable, PrincipalNotFound, StoreConflict
from .policy import PermissionPolicy
from .ports import Mutation


class InMemoryBoardStore:
    def __init__(self, *, elevation: Optional[ElevationPolicy] = None) -> None:
        self._lock = Lock()
        self._boards: Dict[str, Board] = {}
        self._principals: Dict[str, Principal] = {}
        self._policy = PermissionPolicy.empty()
        self._elevation = elevation

    # --- Seeding (board creation is owned by the outer application) -----------

    def create_board(
        self,
        *,
        owner_id: Optional[str],
        require_member_approval: bool = False,
        members: Iterable[str] = (),
        title: str = "",
        board_id: Optional[str] = None,
    ) -> Board:
        board = Board(
            id=board_id or str(uuid4()),
            owner_id=owner_id,
            members=frozenset(members),
            require_member_approval=require_member_approval,
            title=title,
        )
        with self._lock:
            self._boards[board.id] = board
        return board

    def delete_board(self, board_id: str) -> None:
        with self._lock:
            board = self._get_board_locked(board_id)
            self._boards[board_id] = replace(board, is_deleted=True)

    def set_member_approval(self, board_id: str, required: bool) -> Board:
        with self._lock:
            board = replace(self._get_board_locked(board_id), require_member_approval=bool(required))
            self._boards[board_id] = board
        return board

    def add_principal(self, principal: Principal) -> Principal:
        self.save_principal(principal)
        return principal

    # --- BoardStoreProtocol ----------------------------------------------------

    def get_board(self, board_id: str) -> Board:
        with self._lock:
            return self._get_board_locked(board_id)

    def get_principal(self, principal_id: str) -> Principal:
        with self._lock:
            principal = self._principals.get(principal_id)
            if principal is None:
                raise PrincipalNotFound(principal_id)
            if self._elevation is not None:
                elevated = self._elevation.apply(principal)
                if elevated is not principal:
                    self._principals[principal_id] = elevated
                principal = elevated
            return principal

    def save_principal(self, principal: Principal) -> None:
        with self._lock:
            self._principals[principal.id] = principal

    def atomic_transition(self, board_id: str, mutation: Mutation) -> Board:
        with self._lock:
            board = self._get_board_locked(board_id)
            if board.is_deleted:
                raise BoardUnavailable()
            if not mutation.precondition(board):
                raise StoreConflict(type(mutation).__name__)
            updated = mutation.apply(board)
            self._boards[board_id] = updated
            return updated

    def get_policy(self) -> PermissionPolicy:
        with self._lock:
            return self._policy

    def save_policy(self, policy: PermissionPolicy) -> None:
        with self._lock:
            self._policy = policy

    def merge_policy(self, policy: PermissionPolicy) -> PermissionPolicy:
        with self._lock:
            self._policy = self._policy.merged(policy)
            return self._policy

    def _get_board_locked(self, board_id: str) -> Board:
        board = self._boards.get(board_id)
        if board is None:
            raise BoardNotFound(board_id)
        return board


__all__ = ["InMemoryBoardStore"]

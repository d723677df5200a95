"""
Role resolution: effective capability of a principal on a board.

Pure decision function, evaluated per UI affordance as well as per mutation,
so it reads nothing but its arguments and the already-loaded policy.
"""
from __future__ import annotations

from identity_access.domain import Principal, Role

from .capabilities import GLOBAL_MODERATION, Capability
from .domain import Board
from .policy import PermissionPolicyStore


class RoleResolver:
    def __init__(self, policies: PermissionPolicyStore | None = None) -> None:
        self._policies = policies or PermissionPolicyStore()

    @property
    def policies(self) -> PermissionPolicyStore:
        return self._policies

    def can(self, principal: Principal, board: Board, capability: Capability) -> bool:
        """Decide whether `principal` holds `capability` on `board`.

        Order:
            1. admin: always.
            2. board owner: every board-scoped capability.
            3. member/approve moderation: any teacher, joined or not.
            4. otherwise the policy decision, and only for members of the board.
               `manageBoard` additionally needs the teacher role.
        """
        capability = Capability.parse(capability)
        if principal.role is Role.ADMIN:
            return True
        if board.owner_id and board.owner_id == principal.id:
            return True
        if capability in GLOBAL_MODERATION:
            return self._policies.effective(principal.role, capability)
        if not board.is_member_or_owner(principal.id):
            return False
        if capability is Capability.MANAGE_BOARD:
            return principal.role is Role.TEACHER
        return self._policies.effective(principal.role, capability)

    def capabilities(self, principal: Principal, board: Board) -> frozenset[Capability]:
        return frozenset(c for c in Capability if self.can(principal, board, c))

    def is_moderator(self, principal: Principal, board: Board) -> bool:
        return self.can(principal, board, Capability.MANAGE_MEMBERS)


__all__ = ["RoleResolver"]

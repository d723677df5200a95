"""Boards context: capabilities, policy, role resolution and membership.

Re-export the pure domain entry points. The ledger and the stores are
imported from their modules (`boards.ledger`, `boards.repo_memory`,
`boards.repo_db`) because they depend on `identity_access.suspension`.
"""

from .capabilities import Capability
from .domain import Board, MembershipState
from .policy import PermissionPolicy, PermissionPolicyStore
from .roles import RoleResolver

__all__ = [
    "Board",
    "Capability",
    "MembershipState",
    "PermissionPolicy",
    "PermissionPolicyStore",
    "RoleResolver",
]

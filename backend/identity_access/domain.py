"""
Identity domain: roles and principals.

Why:
- Centralize allowed roles to avoid drift between tooling, stores and the
  authorization core.
- Keep terms aligned with the glossary (Principal, Role) and used consistently
  across modules.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional


class Role(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: object) -> "Role":
        if isinstance(value, Role):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ValueError("invalid_role") from exc


# Keep roles minimal and explicit. Immutable to prevent accidental mutation.
ALLOWED_ROLES = frozenset(r.value for r in Role)

DEFAULT_SUSPENSION_REASON = "No reason provided"


@dataclass(frozen=True)
class Principal:
    """An authenticated identity as observed from the store.

    New principals default to the student role. Role and suspension are only
    changed by admin tooling (or the elevation hook).
    """

    id: str
    display_name: str
    role: Role = Role.STUDENT
    suspended: bool = False
    suspension_reason: Optional[str] = None
    email: Optional[str] = None

    def __post_init__(self) -> None:
        if not (self.id or "").strip():
            raise ValueError("invalid_principal_id")
        if not isinstance(self.role, Role):
            object.__setattr__(self, "role", Role.parse(self.role))

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @property
    def is_teacher(self) -> bool:
        return self.role is Role.TEACHER

    def with_role(self, role: Role) -> "Principal":
        return replace(self, role=Role.parse(role))

    def with_suspension(self, suspended: bool, reason: Optional[str] = None) -> "Principal":
        if not suspended:
            return replace(self, suspended=False, suspension_reason=None)
        return replace(self, suspended=True, suspension_reason=(reason or "").strip() or DEFAULT_SUSPENSION_REASON)


__all__ = ["ALLOWED_ROLES", "DEFAULT_SUSPENSION_REASON", "Principal", "Role"]

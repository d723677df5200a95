"""
Capabilities and their hard-coded role defaults.

Why:
    Capability names were previously free-form strings in policy documents.
    A tagged enum plus one exhaustive default table removes missing-key
    ambiguity: every overridable capability has a default for every non-admin
    role, and the empty policy behaves exactly like this table.
"""
from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Mapping

from identity_access.domain import Role


class Capability(str, Enum):
    MANAGE_SECTIONS = "manageSections"
    DELETE_ANY_COMMENT = "deleteAnyComment"
    DELETE_ANY_NOTE = "deleteAnyNote"
    PIN_NOTE = "pinNote"
    LOCK_COMMENTS = "lockComments"
    CREATE_ASSIGNMENT = "createAssignment"
    GRADE_ASSIGNMENT = "gradeAssignment"
    MANAGE_MEMBERS = "manageMembers"
    APPROVE_MEMBERS = "approveMembers"
    MANAGE_BOARD = "manageBoard"

    @classmethod
    def parse(cls, value: object) -> "Capability":
        """Accept enum members, camelCase names and legacy `can*` wire keys."""
        if isinstance(value, Capability):
            return value
        key = str(value or "").strip()
        try:
            return cls(key)
        except ValueError:
            pass
        legacy = _LEGACY_KEYS.get(key)
        if legacy is None:
            raise ValueError("unknown_capability")
        return legacy


# Keys used by stored policy documents before capabilities were typed.
_LEGACY_KEYS: Mapping[str, Capability] = MappingProxyType({
    "canManageSections": Capability.MANAGE_SECTIONS,
    "canDeleteComments": Capability.DELETE_ANY_COMMENT,
    "canDeleteNotes": Capability.DELETE_ANY_NOTE,
    "canPinNotes": Capability.PIN_NOTE,
    "canLockComments": Capability.LOCK_COMMENTS,
    "canCreateAssignments": Capability.CREATE_ASSIGNMENT,
    "canGradeAssignments": Capability.GRADE_ASSIGNMENT,
})

ROLE_DEFAULTS: Mapping[Capability, Mapping[Role, bool]] = MappingProxyType({
    Capability.MANAGE_SECTIONS: MappingProxyType({Role.TEACHER: True, Role.STUDENT: False}),
    Capability.DELETE_ANY_COMMENT: MappingProxyType({Role.TEACHER: True, Role.STUDENT: False}),
    Capability.DELETE_ANY_NOTE: MappingProxyType({Role.TEACHER: True, Role.STUDENT: False}),
    Capability.PIN_NOTE: MappingProxyType({Role.TEACHER: True, Role.STUDENT: False}),
    Capability.LOCK_COMMENTS: MappingProxyType({Role.TEACHER: True, Role.STUDENT: False}),
    Capability.CREATE_ASSIGNMENT: MappingProxyType({Role.TEACHER: True, Role.STUDENT: False}),
    Capability.GRADE_ASSIGNMENT: MappingProxyType({Role.TEACHER: True, Role.STUDENT: False}),
    # Moderation is granted to every teacher globally and cannot be overridden.
    Capability.MANAGE_MEMBERS: MappingProxyType({Role.TEACHER: True, Role.STUDENT: False}),
    Capability.APPROVE_MEMBERS: MappingProxyType({Role.TEACHER: True, Role.STUDENT: False}),
    Capability.MANAGE_BOARD: MappingProxyType({Role.TEACHER: True, Role.STUDENT: False}),
})

OVERRIDABLE = frozenset({
    Capability.MANAGE_SECTIONS,
    Capability.DELETE_ANY_COMMENT,
    Capability.DELETE_ANY_NOTE,
    Capability.PIN_NOTE,
    Capability.LOCK_COMMENTS,
    Capability.CREATE_ASSIGNMENT,
    Capability.GRADE_ASSIGNMENT,
})

# Moderation capabilities apply even on boards the principal has not joined.
GLOBAL_MODERATION = frozenset({Capability.MANAGE_MEMBERS, Capability.APPROVE_MEMBERS})

# Everything else only makes sense for members of the board.
MEMBER_SCOPED = frozenset(set(Capability) - GLOBAL_MODERATION)


def role_default(role: Role, capability: Capability) -> bool:
    if role is Role.ADMIN:
        return True
    return ROLE_DEFAULTS[capability].get(role, False)


def legacy_key(capability: Capability) -> str | None:
    for key, cap in _LEGACY_KEYS.items():
        if cap is capability:
            return key
    return None


__all__ = [
    "Capability",
    "GLOBAL_MODERATION",
    "MEMBER_SCOPED",
    "OVERRIDABLE",
    "ROLE_DEFAULTS",
    "legacy_key",
    "role_default",
]

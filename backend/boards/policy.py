"""
Permission policy: per-role capability overrides with hard-coded fallbacks.

Why:
    Admins tune what teachers and students may do without a deploy. The stored
    document is loosely shaped (legacy `can*` keys, partial roles), so it is
    validated once at the boundary with pydantic and turned into a typed,
    immutable `PermissionPolicy`.

Resolution order (`PermissionPolicyStore.effective`):
    1. admin → always allowed, never subject to overrides
    2. explicit override for (role, capability)
    3. hard-coded default for that role
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, ValidationError
from pydantic.functional_validators import field_validator

from identity_access.domain import Role

from .capabilities import OVERRIDABLE, Capability, legacy_key, role_default
from .errors import InvalidPolicy

logger = logging.getLogger("collabo.boards.policy")


class PolicyDocument(BaseModel):
    """Wire shape of the admin-managed policy document."""

    model_config = ConfigDict(extra="forbid")

    teacher: Dict[str, StrictBool] = Field(default_factory=dict)
    student: Dict[str, StrictBool] = Field(default_factory=dict)
    # Accepted for compatibility with stored documents; admins ignore overrides.
    admin: Dict[str, StrictBool] = Field(default_factory=dict)

    @field_validator("teacher", "student", "admin")
    @classmethod
    def _capability_keys(cls, value: Dict[str, bool]) -> Dict[str, bool]:
        normalized: Dict[str, bool] = {}
        for key, flag in value.items():
            capability = Capability.parse(key)
            if capability not in OVERRIDABLE:
                raise ValueError(f"capability_not_overridable: {capability.value}")
            normalized[capability.value] = flag
        return normalized


@dataclass(frozen=True)
class PermissionPolicy:
    """Immutable mapping role → capability → override flag."""

    overrides: Mapping[Role, Mapping[Capability, bool]] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> "PermissionPolicy":
        return cls({})

    @classmethod
    def from_document(cls, document: Optional[Mapping[str, Any]]) -> "PermissionPolicy":
        """Validate a stored/admin-supplied document.

        Raises:
            InvalidPolicy: unknown role or capability, non-boolean flag, or an
                override for a capability that is not overridable.
        """
        if not document:
            return cls.empty()
        try:
            parsed = PolicyDocument.model_validate(dict(document))
        except ValidationError as exc:
            first = exc.errors()[0] if exc.errors() else {}
            where = ".".join(str(p) for p in first.get("loc", ()))
            raise InvalidPolicy(f"{where}: {first.get('msg', 'invalid')}") from exc
        overrides: Dict[Role, Dict[Capability, bool]] = {}
        for role in (Role.TEACHER, Role.STUDENT):
            entries = getattr(parsed, role.value)
            if entries:
                overrides[role] = {Capability(k): v for k, v in entries.items()}
        return cls(overrides)

    def to_document(self, *, legacy_keys: bool = False) -> Dict[str, Dict[str, bool]]:
        doc: Dict[str, Dict[str, bool]] = {}
        for role, entries in self.overrides.items():
            doc[role.value] = {
                ((legacy_key(cap) or cap.value) if legacy_keys else cap.value): flag
                for cap, flag in entries.items()
            }
        return doc

    def override_for(self, role: Role, capability: Capability) -> Optional[bool]:
        return self.overrides.get(role, {}).get(capability)

    def merged(self, other: "PermissionPolicy") -> "PermissionPolicy":
        """Return a policy where `other`'s overrides win over this one's."""
        combined: Dict[Role, Dict[Capability, bool]] = {r: dict(e) for r, e in self.overrides.items()}
        for role, entries in other.overrides.items():
            combined.setdefault(role, {}).update(entries)
        return PermissionPolicy(combined)


class PermissionPolicyStore:
    """Holds the current policy; safe to query with nothing loaded.

    `source` is typically the board store's `get_policy`; `refresh()` pulls
    from it and keeps the last good policy when the source fails.
    """

    def __init__(
        self,
        policy: Optional[PermissionPolicy] = None,
        *,
        source: Optional[Callable[[], PermissionPolicy]] = None,
    ) -> None:
        self._policy = policy or PermissionPolicy.empty()
        self._source = source

    @property
    def policy(self) -> PermissionPolicy:
        return self._policy

    def load(self, policy: Optional[PermissionPolicy]) -> None:
        self._policy = policy or PermissionPolicy.empty()

    def refresh(self) -> PermissionPolicy:
        if self._source is None:
            return self._policy
        try:
            self._policy = self._source() or PermissionPolicy.empty()
        except Exception as exc:
            logger.warning("boards.policy.refresh_failed reason=%s", exc.__class__.__name__)
        return self._policy

    def effective(self, role: Role, capability: Capability) -> bool:
        role = Role.parse(role)
        capability = Capability.parse(capability)
        if role is Role.ADMIN:
            return True
        if capability in OVERRIDABLE:
            override = self._policy.override_for(role, capability)
            if override is not None:
                return override
        return role_default(role, capability)

    def matrix(self) -> Dict[str, Dict[str, bool]]:
        """Effective flags for every role and capability (admin tooling view)."""
        return {
            role.value: {cap.value: self.effective(role, cap) for cap in Capability}
            for role in Role
        }


__all__ = ["PermissionPolicy", "PermissionPolicyStore", "PolicyDocument"]

"""
Elevation policy: force-promote configured identities to admin.

Why:
    Operators pin a small set of identities (by principal id or e-mail) as
    admins. Stores invoke this hook whenever they observe a principal profile,
    so the rule never leaks into the authorization core itself.
"""
from __future__ import annotations

import logging
from typing import Iterable

from .domain import Principal, Role

logger = logging.getLogger("collabo.identity_access.elevation")


def _normalize(value: str) -> str:
    return (value or "").strip().lower()


class ElevationPolicy:
    """Promote principals whose id or e-mail is listed to the admin role."""

    def __init__(self, identifiers: Iterable[str] = ()) -> None:
        self._identifiers = frozenset(i for i in (_normalize(v) for v in identifiers) if i)

    @property
    def identifiers(self) -> frozenset[str]:
        return self._identifiers

    def should_elevate(self, principal: Principal) -> bool:
        if principal.role is Role.ADMIN or not self._identifiers:
            return False
        candidates = {_normalize(principal.id), _normalize(principal.email or "")}
        return bool(candidates & self._identifiers)

    def apply(self, principal: Principal) -> Principal:
        """Return the principal, elevated to admin when listed."""
        if not self.should_elevate(principal):
            return principal
        logger.info("identity.elevation.promoted principal_tail=%s", principal.id[-6:])
        return principal.with_role(Role.ADMIN)


__all__ = ["ElevationPolicy"]

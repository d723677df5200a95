"""
Account suspension: a global override checked before any other decision.

A suspended principal is denied every gated action. The only calls that stay
available are reading the suspension reason and logging out; those are
handled by the facade and never routed through this guard.
"""
from __future__ import annotations

import logging

from boards.errors import Suspended

from .domain import Principal

logger = logging.getLogger("collabo.identity_access.suspension")


class SuspensionEnforcer:
    """Pure predicate over principal state; owns no data."""

    def allow(self, principal: Principal) -> bool:
        return not principal.suspended

    def ensure_allowed(self, principal: Principal) -> None:
        """Raise `Suspended` (carrying the reason) for suspended principals."""
        if self.allow(principal):
            return
        logger.info("identity.suspension.denied principal_tail=%s", principal.id[-6:])
        raise Suspended(principal.suspension_reason)


__all__ = ["SuspensionEnforcer"]

"""
Error taxonomy for the collaboration core.

Every failure surfaced to callers is a `WorkspaceError` with a stable
snake_case `code`, so adapters can map errors without string matching on
messages. `StoreConflict` is the only error the core retries itself (once).
"""
from __future__ import annotations

from typing import Optional


class WorkspaceError(Exception):
    """Base class for core failures."""

    code = "workspace_error"
    retryable = False

    def __init__(self, detail: Optional[str] = None) -> None:
        super().__init__(detail or self.code)
        self.detail = detail


class Suspended(WorkspaceError):
    """The acting principal's account is suspended."""

    code = "suspended"

    def __init__(self, reason: Optional[str] = None) -> None:
        super().__init__(reason)
        self.reason = reason


class BoardUnavailable(WorkspaceError):
    """The board is deleted; no membership transition may touch it."""

    code = "board_unavailable"


class BoardNotFound(WorkspaceError):
    code = "not_found"


class PrincipalNotFound(WorkspaceError):
    code = "not_found"


class AlreadyPending(WorkspaceError):
    code = "already_pending"


class NotPending(WorkspaceError):
    code = "not_pending"


class NotMember(WorkspaceError):
    code = "not_member"


class Forbidden(WorkspaceError):
    """Authorization failure."""

    code = "forbidden"


class InvalidPolicy(WorkspaceError):
    code = "invalid_policy"


class UnknownCapability(WorkspaceError):
    code = "unknown_capability"


class StoreConflict(WorkspaceError):
    """A concurrent write won the race; re-read and retry once."""

    code = "store_conflict"
    retryable = True


class RateDenied(WorkspaceError):
    """Base class for rate guard denials; carries a retry hint in seconds."""

    code = "rate_denied"
    retryable = True

    def __init__(self, retry_after: Optional[float] = None) -> None:
        super().__init__(None)
        self.retry_after = retry_after


class TooFast(RateDenied):
    code = "too_fast"


class RateLimited(RateDenied):
    code = "rate_limited"


class Duplicate(RateDenied):
    code = "duplicate"


__all__ = [
    "WorkspaceError",
    "Suspended",
    "BoardUnavailable",
    "BoardNotFound",
    "PrincipalNotFound",
    "AlreadyPending",
    "NotPending",
    "NotMember",
    "Forbidden",
    "InvalidPolicy",
    "UnknownCapability",
    "StoreConflict",
    "RateDenied",
    "TooFast",
    "RateLimited",
    "Duplicate",
]

"""
Rate guard: sliding-window abuse gate for high-frequency content actions.

Intent:
    Deter flooding (chat messages, comments, notes) per principal and action
    class with three gates, first failure wins:
      1. minimum spacing between two actions (`too_fast`)
      2. volume inside a sliding window (`rate_limited`)
      3. identical normalized content inside the duplicate window (`duplicate`)

Notes:
    - Deterrent, not a security boundary: state is per-process and in memory,
      may be dropped at any time, and the guard fails open when its state is
      unusable.
    - State is owned by the instance (no module globals) so tests get a fresh
      guard per case. Each (principal, action class) entry has its own lock;
      there is no cross-principal contention beyond the registry lookup.
    - Only SHA-256 digests of normalized content are kept.
"""
from __future__ import annotations

import hashlib
import logging
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Deque, Dict, Iterator, Optional, Tuple

from boards.errors import Duplicate, RateLimited, TooFast
from boards.ports import Clock, SystemClock

logger = logging.getLogger("collabo.moderation.rate_guard")

TOO_FAST = "too_fast"
RATE_LIMITED = "rate_limited"
DUPLICATE = "duplicate"


class ActionClass(str, Enum):
    CHAT_MESSAGE = "chat_message"
    COMMENT = "comment"
    NOTE = "note"
    DIRECT_MESSAGE = "direct_message"


@dataclass(frozen=True)
class RateLimits:
    min_spacing_seconds: float = 0.5
    window_seconds: float = 60.0
    window_limit: int = 10
    duplicate_window_seconds: float = 30.0
    recent_cap: int = 10
    sweep_every: int = 256

    def __post_init__(self) -> None:
        if self.window_limit < 1 or self.recent_cap < 1:
            raise ValueError("rate limits must allow at least one action")
        if min(self.min_spacing_seconds, self.window_seconds, self.duplicate_window_seconds) < 0:
            raise ValueError("rate windows must not be negative")


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    reason: Optional[str] = None
    retry_after: Optional[float] = None

    @classmethod
    def allow(cls) -> "RateDecision":
        return cls(True)

    @classmethod
    def deny(cls, reason: str, retry_after: Optional[float] = None) -> "RateDecision":
        return cls(False, reason, retry_after)

    def raise_for_denial(self) -> None:
        if self.allowed:
            return
        if self.reason == TOO_FAST:
            raise TooFast(self.retry_after)
        if self.reason == RATE_LIMITED:
            raise RateLimited(self.retry_after)
        raise Duplicate(self.retry_after)


def normalize_content(content: str) -> str:
    return (content or "").strip().casefold()


def _digest(content: str) -> str:
    return hashlib.sha256(normalize_content(content).encode("utf-8")).hexdigest()


def _action_key(action_class: object) -> str:
    if isinstance(action_class, ActionClass):
        return action_class.value
    return str(action_class or "").strip().lower()


class _RateState:
    __slots__ = ("lock", "last_action_at", "window", "recent")

    def __init__(self, limits: RateLimits) -> None:
        self.lock = Lock()
        self.last_action_at: Optional[float] = None
        # Only the newest `window_limit` timestamps can decide a denial.
        self.window: Deque[float] = deque(maxlen=limits.window_limit)
        self.recent: Deque[Tuple[str, float]] = deque(maxlen=limits.recent_cap)


class RateGuard:
    def __init__(self, limits: Optional[RateLimits] = None, *, clock: Optional[Clock] = None) -> None:
        self._limits = limits or RateLimits()
        self._clock = clock or SystemClock()
        self._entries: Dict[Tuple[str, str], _RateState] = {}
        self._registry_lock = Lock()
        self._checks_since_sweep = 0

    @property
    def limits(self) -> RateLimits:
        return self._limits

    # --- Public API --------------------------------------------------------------

    def check(self, principal_id: str, action_class: object, content: str) -> RateDecision:
        """Evaluate the three gates without recording anything."""
        try:
            digest = _digest(content)
            with self._locked_entry(principal_id, action_class) as state:
                return self._evaluate(state, self._clock.now(), digest)
        except Exception as exc:
            logger.warning("moderation.rate_guard.fail_open reason=%s", exc.__class__.__name__)
            return RateDecision.allow()

    def record(self, principal_id: str, action_class: object, content: str) -> None:
        """Record an allowed action (spacing, window and recent-content buffer)."""
        try:
            digest = _digest(content)
            with self._locked_entry(principal_id, action_class) as state:
                self._record(state, self._clock.now(), digest)
        except Exception as exc:
            logger.warning("moderation.rate_guard.record_failed reason=%s", exc.__class__.__name__)

    def gate(self, principal_id: str, action_class: object, content: str) -> RateDecision:
        """Check and, when allowed, record under one lock.

        Two simultaneous sends from the same principal (double tap) cannot both
        pass the gates before either is recorded.
        """
        try:
            digest = _digest(content)
            with self._locked_entry(principal_id, action_class) as state:
                now = self._clock.now()
                decision = self._evaluate(state, now, digest)
                if decision.allowed:
                    self._record(state, now, digest)
        except Exception as exc:
            logger.warning("moderation.rate_guard.fail_open reason=%s", exc.__class__.__name__)
            return RateDecision.allow()
        if not decision.allowed:
            logger.info(
                "moderation.rate_guard.denied principal_tail=%s action=%s reason=%s",
                (principal_id or "")[-6:],
                _action_key(action_class),
                decision.reason,
            )
        return decision

    def clear(self, principal_id: str) -> None:
        """Drop all tracking for a principal (e.g. on logout)."""
        with self._registry_lock:
            for key in [k for k in self._entries if k[0] == principal_id]:
                del self._entries[key]

    def sweep(self) -> int:
        """Evict idle entries whose windows have fully expired; return the count.

        Entries whose lock is held belong to an action in progress and are
        left alone.
        """
        now = self._clock.now()
        horizon = max(self._limits.window_seconds, self._limits.duplicate_window_seconds, self._limits.min_spacing_seconds)
        removed = 0
        with self._registry_lock:
            for key, state in list(self._entries.items()):
                if not state.lock.acquire(blocking=False):
                    continue
                try:
                    last = state.last_action_at
                    if last is None or now - last >= horizon:
                        del self._entries[key]
                        removed += 1
                finally:
                    state.lock.release()
            self._checks_since_sweep = 0
        if removed:
            logger.debug("moderation.rate_guard.swept entries=%s", removed)
        return removed

    def reset(self) -> None:
        with self._registry_lock:
            self._entries.clear()
            self._checks_since_sweep = 0

    def tracked_entries(self) -> int:
        with self._registry_lock:
            return len(self._entries)

    # --- Internals ---------------------------------------------------------------

    @contextmanager
    def _locked_entry(self, principal_id: str, action_class: object) -> Iterator[_RateState]:
        """Yield the registered entry for the key with its lock held.

        An entry swept between lookup and locking is detached; the lookup is
        repeated so the action never lands in state nobody reads again.
        """
        key = (principal_id, _action_key(action_class))
        while True:
            state = self._entry(key)
            with state.lock:
                with self._registry_lock:
                    registered = self._entries.get(key) is state
                if registered:
                    yield state
                    return

    def _entry(self, key: Tuple[str, str]) -> _RateState:
        with self._registry_lock:
            state = self._entries.get(key)
            if state is None:
                state = _RateState(self._limits)
                self._entries[key] = state
            self._checks_since_sweep += 1
            sweep_due = self._checks_since_sweep >= self._limits.sweep_every
        if sweep_due:
            self.sweep()
            with self._registry_lock:
                state = self._entries.setdefault(key, state)
        return state

    def _evaluate(self, state: _RateState, now: float, digest: str) -> RateDecision:
        limits = self._limits
        if state.last_action_at is not None:
            elapsed = now - state.last_action_at
            if elapsed < limits.min_spacing_seconds:
                return RateDecision.deny(TOO_FAST, limits.min_spacing_seconds - elapsed)

        self._prune(state, now)
        if len(state.window) >= limits.window_limit:
            retry_after = state.window[0] + limits.window_seconds - now
            return RateDecision.deny(RATE_LIMITED, retry_after if retry_after > 0 else limits.min_spacing_seconds)

        for seen, at in state.recent:
            if seen == digest and now - at < limits.duplicate_window_seconds:
                return RateDecision.deny(DUPLICATE, at + limits.duplicate_window_seconds - now)
        return RateDecision.allow()

    def _record(self, state: _RateState, now: float, digest: str) -> None:
        state.last_action_at = now
        state.window.append(now)
        state.recent.append((digest, now))
        self._prune(state, now)

    def _prune(self, state: _RateState, now: float) -> None:
        while state.window and now - state.window[0] >= self._limits.window_seconds:
            state.window.popleft()
        while state.recent and now - state.recent[0][1] >= self._limits.duplicate_window_seconds:
            state.recent.popleft()


__all__ = [
    "ActionClass",
    "DUPLICATE",
    "RATE_LIMITED",
    "RateDecision",
    "RateGuard",
    "RateLimits",
    "TOO_FAST",
    "normalize_content",
]

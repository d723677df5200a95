"""
Configuration parsing and startup safety checks for the collaboration core.

Intent:
    Provide a single place to read environment variables that control the
    store backend, the rate guard thresholds and the admin elevation list.

Why:
    Centralising configuration reduces drift across modules and makes
    validation and defaults explicit. Tests exercise config behaviour without
    building the full core.
"""
from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from typing import Optional

from moderation.rate_guard import RateLimits


@dataclass(frozen=True)
class CoreConfig:
    environment: str
    store_backend: str  # "memory" | "db"
    database_url: Optional[str]
    min_spacing_ms: int
    window_seconds: int
    window_limit: int
    duplicate_window_seconds: int
    recent_cap: int
    sweep_every: int
    elevated_admins: frozenset[str]

    def rate_limits(self) -> RateLimits:
        return RateLimits(
            min_spacing_seconds=self.min_spacing_ms / 1000.0,
            window_seconds=float(self.window_seconds),
            window_limit=self.window_limit,
            duplicate_window_seconds=float(self.duplicate_window_seconds),
            recent_cap=self.recent_cap,
            sweep_every=self.sweep_every,
        )


def _int_env(name: str, default: int, *, low: int, high: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got: {raw!r}")
    if value < low or value > high:
        raise ValueError(f"{name} out of range ({low}..{high}), got: {value}")
    return value


def _is_prod_like(env: str) -> bool:
    return (env or "").lower() in {"prod", "production", "stage", "staging"}


def _should_load_dotenv() -> bool:
    """Load a local .env except under pytest or when disabled explicitly."""
    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return False
    flag = (os.getenv("COLLABO_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


def load_core_config() -> CoreConfig:
    """
    Parse and validate core configuration from environment variables.

    Behavior:
        - `COLLABO_STORE_BACKEND` selects "memory" (default) or "db".
        - "db" requires `COLLABO_DATABASE_URL` or `DATABASE_URL`.
        - Rate thresholds are integers within sane ranges.
        - `COLLABO_ELEVATED_ADMINS` is a comma-separated list of ids/e-mails.
    """
    if _should_load_dotenv():
        from dotenv import load_dotenv

        load_dotenv()

    env = (os.getenv("COLLABO_ENV") or "dev").strip().lower()
    backend = (os.getenv("COLLABO_STORE_BACKEND") or "memory").strip().lower()
    if backend not in {"memory", "db"}:
        raise ValueError("COLLABO_STORE_BACKEND must be 'memory' or 'db'")
    database_url = os.getenv("COLLABO_DATABASE_URL") or os.getenv("DATABASE_URL") or None
    if backend == "db" and not database_url:
        raise ValueError("COLLABO_STORE_BACKEND=db requires COLLABO_DATABASE_URL or DATABASE_URL")

    elevated = frozenset(
        part.strip().lower()
        for part in (os.getenv("COLLABO_ELEVATED_ADMINS") or "").split(",")
        if part.strip()
    )

    return CoreConfig(
        environment=env,
        store_backend=backend,
        database_url=database_url,
        min_spacing_ms=_int_env("RATE_MIN_SPACING_MS", 500, low=0, high=60_000),
        window_seconds=_int_env("RATE_WINDOW_SECONDS", 60, low=1, high=3600),
        window_limit=_int_env("RATE_WINDOW_LIMIT", 10, low=1, high=10_000),
        duplicate_window_seconds=_int_env("RATE_DUPLICATE_WINDOW_SECONDS", 30, low=0, high=3600),
        recent_cap=_int_env("RATE_RECENT_CAP", 10, low=1, high=1000),
        sweep_every=_int_env("RATE_SWEEP_EVERY", 256, low=1, high=1_000_000),
        elevated_admins=elevated,
    )


def ensure_secure_config(config: CoreConfig) -> None:
    """Fail fast on unsafe production configuration.

    Checks (prod/stage only; dev stays permissive):
    - The in-memory store is refused: its atomicity is process-local, so two
      instances could both approve the same request.
    - The database URL must not explicitly disable TLS.
    """
    if not _is_prod_like(config.environment):
        return
    if config.store_backend == "memory":
        raise SystemExit(
            "Refusing to start: COLLABO_STORE_BACKEND=memory is not allowed in production/staging."
        )
    if config.database_url and "sslmode=disable" in config.database_url:
        raise SystemExit(
            "Refusing to start: database URL contains sslmode=disable in production. Use sslmode=require."
        )


__all__ = ["CoreConfig", "ensure_secure_config", "load_core_config"]

"""Moderation context: abuse prevention for content-producing actions."""

from .messages import deny_message
from .rate_guard import ActionClass, RateDecision, RateGuard, RateLimits

__all__ = ["ActionClass", "RateDecision", "RateGuard", "RateLimits", "deny_message"]

"""User-facing texts for rate guard denials (Turkish and English)."""
from __future__ import annotations

import math
from typing import Optional

from .rate_guard import DUPLICATE, RATE_LIMITED, TOO_FAST

SUPPORTED_LANGUAGES = frozenset({"tr", "en"})


def _seconds(retry_after: Optional[float]) -> Optional[int]:
    if retry_after is None or retry_after <= 0:
        return None
    return max(1, math.ceil(retry_after))


def deny_message(reason: str, language: str = "en", retry_after: Optional[float] = None) -> str:
    """Return the localized text for a denial reason.

    Unknown languages fall back to English; the retry hint is rounded up to
    whole seconds and only shown for `rate_limited`.
    """
    lang = language if language in SUPPORTED_LANGUAGES else "en"
    if reason == TOO_FAST:
        return "Çok hızlı gönderiyorsunuz. Lütfen bekleyin." if lang == "tr" else "Sending too fast. Please wait."
    if reason == DUPLICATE:
        return "Aynı mesajı tekrar gönderemezsiniz." if lang == "tr" else "Cannot send duplicate messages."
    if reason == RATE_LIMITED:
        seconds = _seconds(retry_after)
        if lang == "tr":
            wait = f"{seconds} saniye" if seconds else "Biraz"
            return f"Çok fazla mesaj gönderdiniz. {wait} bekleyin."
        wait = f"{seconds} seconds" if seconds else "a moment"
        return f"Too many messages. Wait {wait}."
    raise ValueError("unknown_reason")


__all__ = ["SUPPORTED_LANGUAGES", "deny_message"]

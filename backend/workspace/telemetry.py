"""
In-memory telemetry counters for the collaboration core.

Counters are keyed by name plus a sorted label tuple, e.g.
`membership_transitions_total{outcome="ok", transition="approve"}`. An
exporter in the hosting application reads `counter_snapshot`; this module
only tracks the values.
"""
from __future__ import annotations

from threading import Lock
from typing import Dict, Mapping, Tuple

LabelKey = Tuple[Tuple[str, str], ...]

MEMBERSHIP_TRANSITIONS = "membership_transitions_total"
AUTHORIZATION_DENIALS = "authorization_denials_total"
RATE_GUARD_DENIALS = "rate_guard_denials_total"

_values: Dict[Tuple[str, LabelKey], int] = {}
_lock = Lock()


def _key(name: str, labels: Mapping[str, object]) -> Tuple[str, LabelKey]:
    return name, tuple(sorted((str(k), str(v)) for k, v in labels.items()))


def increment_counter(name: str, *, amount: int = 1, **labels: str) -> None:
    if not amount:
        return
    key = _key(name, labels)
    with _lock:
        _values[key] = _values.get(key, 0) + amount


def counter_value(name: str, **labels: str) -> int:
    key = _key(name, labels)
    with _lock:
        return _values.get(key, 0)


def counter_snapshot(name: str) -> Dict[LabelKey, int]:
    """Values of one counter by label set (a copy)."""
    with _lock:
        return {labels: value for (counter, labels), value in _values.items() if counter == name}


def reset_for_tests() -> None:
    with _lock:
        _values.clear()


__all__ = [
    "AUTHORIZATION_DENIALS",
    "MEMBERSHIP_TRANSITIONS",
    "RATE_GUARD_DENIALS",
    "counter_snapshot",
    "counter_value",
    "increment_counter",
    "reset_for_tests",
]

"""Turn RouterOS string fields into typed values.

For callers reading listings (``find_resource``, ``fan_out_request``); the
reconciler itself compares wire strings. Each helper returns its input unchanged when it does not recognise it.
"""

from __future__ import annotations

import re

_TRUE = frozenset({"true", "yes", "enabled"})
_FALSE = frozenset({"false", "no", "disabled"})

_INT = re.compile(r"[+-]?\d+")
_FLOAT = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_RATE_MBPS = re.compile(r"([+-]?\d+)\s+mbps")


def normalize_bool(value: object) -> bool | object:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
    return value


def to_int(value: object) -> int | object:
    """``" -64 "`` -> ``-64``; anything else that is not an integer stays as is."""

    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and _INT.fullmatch(value.strip()):
        return int(value.strip())
    return value


def to_float(value: object) -> float | object:
    if isinstance(value, float):
        return value
    if isinstance(value, str) and _FLOAT.fullmatch(value.strip()):
        return float(value.strip())
    return value


def parse_rate_mbps(value: object) -> int | object:
    """Parse a link rate such as ``"877 Mbps"`` into integer megabits per second.

    Other units (``"1 Gbps"``) are returned unchanged rather than converted.
    """

    if not isinstance(value, str):
        return value
    match = _RATE_MBPS.fullmatch(value.strip().lower())
    if match is None:
        return value
    return int(match.group(1))

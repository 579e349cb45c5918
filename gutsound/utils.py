"""
GutSound Utilities - Shared helper functions.

Responsibilities:
- ISO-8601 timestamps (UTC)
- JSON serialization helpers
- Score rounding / clamping

Invariants:
- round_half_up(2.5) == 3 (scores never use banker's rounding)
- Serialized JSON has sorted keys and a trailing newline
"""

import json
import math
from datetime import datetime, timezone
from typing import Any, Mapping


def now_iso() -> str:
    """
    Return current time as ISO-8601 with explicit UTC offset.

    Returns:
        ISO-8601 formatted string, e.g., "2026-03-02T17:02:10.123456+00:00"
    """
    return datetime.now(timezone.utc).isoformat()


def serialize_json(data: Mapping[str, Any]) -> str:
    """
    Serialize dictionary to JSON deterministically.

    Returns:
        JSON string with sorted keys, 2-space indent, trailing newline.
    """
    return json.dumps(data, indent=2, sort_keys=True, allow_nan=False) + "\n"


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from -inf (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


def round_to(value: float, places: int) -> float:
    """Half-up rounding to a number of decimal places."""
    scale = 10 ** places
    return math.floor(value * scale + 0.5) / scale


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    """Clamp value into [low, high]."""
    return max(low, min(high, value))

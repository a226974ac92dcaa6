"""Normalization of upstream payloads into plain numeric/text values.

Upstream market data arrives in two numeric shapes: a bare number, or a
provenance wrapper such as ``{"raw": 1.23, "fmt": "1.23"}``. ``pick_raw`` is
the single place that understands both; everything downstream receives
``float | None``.

The module also owns deterministic JSON output for persisted documents:
1. Key ordering: sorted at every level
2. NaN/inf sanitization: replaced with null for JSON safety
3. -0.0 coerced to 0.0 to avoid spurious diffs between runs
"""

from __future__ import annotations

import json
import math
import re
import unicodedata
from typing import Any


def canonical_dumps(obj: Any, indent: int | None = 2) -> str:
    """Produce canonical JSON string with sorted keys.

    Uses allow_nan=False to fail fast if NaN/inf values slip through
    sanitization. This ensures JSON validity across all parsers.
    """
    return json.dumps(
        sanitize_nan_inf(obj),
        sort_keys=True,
        indent=indent,
        separators=(",", ": ") if indent is not None else (",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def _is_nan_or_inf(x: Any) -> bool:
    """Check if value is NaN or inf, handling numpy types safely."""
    try:
        return math.isnan(x) or math.isinf(x)
    except (TypeError, ValueError):
        return False


def _is_negative_zero(x: Any) -> bool:
    """Check if value is -0.0 (which creates diff noise)."""
    try:
        return x == 0.0 and math.copysign(1.0, x) < 0
    except (TypeError, ValueError):
        return False


def sanitize_nan_inf(obj: Any) -> Any:
    """Recursively replace NaN, inf, -inf with None and -0.0 with 0.0.

    Tuples are emitted as lists so fixed-arity rows serialize like arrays.
    """
    if isinstance(obj, dict):
        return {k: sanitize_nan_inf(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [sanitize_nan_inf(item) for item in obj]
    elif isinstance(obj, bool):
        return obj
    elif _is_nan_or_inf(obj):
        return None
    elif _is_negative_zero(obj):
        return 0.0
    return obj


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves go up (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


def round_to(value: float, digits: int = 1) -> float:
    """Round to a fixed number of decimals with half-up semantics."""
    multiplier = 10**digits
    return math.floor(value * multiplier + 0.5) / multiplier


def clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


def as_number(value: Any) -> float | None:
    """Return value as float if it is a finite number, else None."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    number = float(value)
    if not math.isfinite(number):
        return None
    return number


def pick_raw(value: Any) -> float | None:
    """
    Unwrap an upstream numeric leaf.

    Both ``12.5`` and ``{"raw": 12.5, "fmt": "12.50"}`` yield ``12.5``;
    missing, non-numeric and non-finite values yield None.

    Args:
        value: Leaf value from a quote or summary payload

    Returns:
        Finite float or None
    """
    number = as_number(value)
    if number is not None:
        return number
    if isinstance(value, dict):
        return as_number(value.get("raw"))
    return None


_NON_ALNUM = re.compile(r"[\W_]+", re.UNICODE)


def normalize_text(value: Any) -> str:
    """
    Case, whitespace and punctuation insensitive key for name matching.

    Letters and digits of any script are kept; everything else is dropped.
    """
    text = unicodedata.normalize("NFKC", str(value or "")).lower()
    return _NON_ALNUM.sub("", text)


def get_section(summary: dict[str, Any] | None, name: str) -> dict[str, Any]:
    """Return a summary section as a dict (empty when absent or malformed)."""
    if not isinstance(summary, dict):
        return {}
    section = summary.get(name)
    return section if isinstance(section, dict) else {}

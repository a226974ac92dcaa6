"""Validation primitives shared by the resolver, validator and writer."""

import operator
import re
from collections.abc import Callable
from datetime import date
from typing import Any
from urllib.parse import urlparse

TICKER_RE = re.compile(r"^[A-Z0-9._-]{1,15}$")
ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DOT_DATE_RE = re.compile(r"^\d{4}\.\d{2}\.\d{2}$")


def normalize_ticker(value: Any) -> str:
    """
    Uppercase and strip a ticker, rejecting anything outside the symbol alphabet.

    Raises:
        ValueError: If the normalized ticker is not 1-15 chars of [A-Z0-9._-]
    """
    ticker = str(value or "").strip().upper()
    if not TICKER_RE.match(ticker):
        raise ValueError(f"Invalid ticker '{value}'. Must match {TICKER_RE.pattern}")
    return ticker


def is_iso_date(value: Any) -> bool:
    """True for a calendar-valid YYYY-MM-DD string (2024-02-30 is rejected)."""
    if not isinstance(value, str):
        return False
    text = value.strip()
    if not ISO_DATE_RE.match(text):
        return False
    try:
        date.fromisoformat(text)
    except ValueError:
        return False
    return True


def normalize_report_date(value: Any) -> str | None:
    """Accept YYYY-MM-DD or legacy YYYY.MM.DD and return the ISO form, else None."""
    text = str(value or "").strip()
    if DOT_DATE_RE.match(text):
        text = text.replace(".", "-")
    return text if is_iso_date(text) else None


def is_http_url(value: Any) -> bool:
    """True when value parses as an absolute http/https URL with a host."""
    if not isinstance(value, str):
        return False
    try:
        parsed = urlparse(value.strip())
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def check_rule(
    value: float | None,
    threshold: float,
    comparator: Callable[[float, float], bool] = operator.gt,
) -> bool | None:
    """
    Check a rule with nullable boolean semantics.

    If value is None, returns None (not False).

    Args:
        value: The value to check (may be None)
        threshold: The threshold to compare against
        comparator: Comparison function (default: operator.gt)

    Returns:
        True/False if value is not None, None otherwise
    """
    if value is None:
        return None
    return comparator(value, threshold)

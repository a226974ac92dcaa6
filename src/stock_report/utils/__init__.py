"""Utility modules."""

from stock_report.utils.normalize import (
    canonical_dumps,
    clamp,
    normalize_text,
    pick_raw,
    round_half_up,
    round_to,
)
from stock_report.utils.provenance import build_error_response, build_meta, build_provenance
from stock_report.utils.sanitize import sanitize_text
from stock_report.utils.validators import (
    TICKER_RE,
    check_rule,
    is_http_url,
    is_iso_date,
    normalize_ticker,
)

__all__ = [
    "canonical_dumps",
    "clamp",
    "normalize_text",
    "pick_raw",
    "round_half_up",
    "round_to",
    "build_error_response",
    "build_meta",
    "build_provenance",
    "sanitize_text",
    "TICKER_RE",
    "check_rule",
    "is_http_url",
    "is_iso_date",
    "normalize_ticker",
]

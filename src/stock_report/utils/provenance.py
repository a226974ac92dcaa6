"""Response metadata, per-read provenance records and tool error payloads."""

from datetime import datetime
from typing import Any

from stock_report import GENERATOR_VERSION, SCHEMA_VERSION

# Source categories recorded in the manifest
SOURCE_TYPES = ("official", "market_data")


def build_meta(tool: str, duration_ms: float | None = None) -> dict[str, Any]:
    """
    Build the ``meta`` block every tool response carries.

    Args:
        tool: Name of the tool producing this response
        duration_ms: Execution time in milliseconds (optional)
    """
    meta: dict[str, Any] = {
        "tool": tool,
        "generator_version": GENERATOR_VERSION,
        "schema_version": SCHEMA_VERSION,
    }
    if duration_ms is not None:
        meta["duration_ms"] = round(duration_ms, 1)
    return meta


def build_provenance(
    source: str,
    as_of: datetime | str | None = None,
    type: str = "market_data",
    url: str | None = None,
    attempts: int = 0,
    warnings: list[str] | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """
    Record one upstream read for the source manifest.

    Args:
        source: Source id (e.g., "sec_company_tickers", "yahoo_quote")
        as_of: Retrieval time; omitted when the read never completed
        type: "official" for the registry, "market_data" otherwise
        url: Requested URL, when known
        attempts: Network attempts made (0 for cache hits and skipped reads)
        warnings: Problems worth surfacing next to the source
        **extra: Read-specific fields such as cache_hit or retry_trace

    Raises:
        ValueError: type is not a known source category
    """
    if type not in SOURCE_TYPES:
        raise ValueError(f"Unknown source type '{type}'. Must be one of: {SOURCE_TYPES}")

    prov: dict[str, Any] = {"source": source, "type": type, "url": url, "attempts": attempts}
    if as_of is not None:
        prov["as_of"] = as_of.isoformat() if isinstance(as_of, datetime) else as_of
    prov.update(extra)
    prov["warnings"] = list(warnings or [])
    return prov


def build_error_response(
    error_type: str,
    message: str,
    ticker: str | None = None,
    **details: Any,
) -> dict[str, Any]:
    """
    Build a tool error payload.

    Args:
        error_type: One of ambiguous_name, not_found, upstream_unavailable,
            critical_checks_failed, placeholders_disallowed, schema_invalid,
            report_exists, invalid_input
        message: Human-readable error message
        ticker: Ticker or name the request was about (if any)
        **details: Structured detail such as candidates, fields or errors
    """
    response: dict[str, Any] = {
        "error": True,
        "error_type": error_type,
        "message": message,
        "meta": build_meta("error"),
    }
    if ticker:
        response["ticker"] = ticker
    return {**response, **details}

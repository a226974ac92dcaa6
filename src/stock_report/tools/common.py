"""Error mapping shared by the MCP tools."""

from typing import Any

from stock_report.errors import (
    AmbiguityError,
    CriticalValidationFailure,
    NotFoundError,
    PlaceholderPolicyViolation,
    ReportExistsError,
    SchemaValidationError,
    UpstreamFetchError,
)
from stock_report.utils.provenance import build_error_response


def error_response(error: Exception, ticker: str | None = None) -> dict[str, Any]:
    """Convert a generator failure into a structured error response."""
    if isinstance(error, AmbiguityError):
        return build_error_response(
            "ambiguous_name",
            str(error),
            ticker,
            candidates=[
                {"ticker": t, "name": name, "exchange": exchange} for t, name, exchange in error.candidates
            ],
        )
    if isinstance(error, NotFoundError):
        return build_error_response("not_found", str(error), ticker, query=error.query)
    if isinstance(error, UpstreamFetchError):
        return build_error_response(
            "upstream_unavailable", str(error), ticker, url=error.url, attempts=error.attempts
        )
    if isinstance(error, CriticalValidationFailure):
        return build_error_response("critical_checks_failed", str(error), ticker, issues=error.issues)
    if isinstance(error, PlaceholderPolicyViolation):
        return build_error_response("placeholders_disallowed", str(error), ticker, fields=error.fields)
    if isinstance(error, SchemaValidationError):
        return build_error_response(
            "schema_invalid", str(error), ticker, errors=[str(e) for e in error.errors]
        )
    if isinstance(error, ReportExistsError):
        return build_error_response("report_exists", str(error), ticker, path=error.path)
    return build_error_response("invalid_input", str(error), ticker)

"""Exception taxonomy for report generation."""

from typing import Any


class StockReportError(Exception):
    """Base class for every failure surfaced by the generator."""

    pass


class AmbiguityError(StockReportError):
    """Raised when a company name matches more than one equally ranked ticker."""

    def __init__(self, query: str, candidates: list[tuple[str, str, str]], source: str = "search"):
        candidate_text = ", ".join(
            f"{ticker} ({name or 'N/A'} / {exchange or 'N/A'})"
            for ticker, name, exchange in candidates
        )
        super().__init__(
            f"Ambiguous company name '{query}' ({source}). Candidates: {candidate_text}. "
            "Pass --ticker to choose one."
        )
        self.query = query
        self.candidates = candidates
        self.source = source


class NotFoundError(StockReportError):
    """Raised when no source yields a ticker for the requested name."""

    def __init__(self, query: str):
        super().__init__(f"Unable to resolve ticker from name '{query}'.")
        self.query = query


class UpstreamFetchError(StockReportError):
    """Raised when an upstream read fails (bad status, timeout, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        last_error: Exception | None = None,
        attempts: int = 0,
    ):
        super().__init__(message)
        self.url = url
        self.last_error = last_error
        self.attempts = attempts


class CriticalValidationFailure(StockReportError):
    """Raised in strict mode when a critical field could not be sourced."""

    def __init__(self, issues: list[str]):
        super().__init__(f"Strict mode validation failed: {', '.join(issues)}")
        self.issues = issues


class PlaceholderPolicyViolation(StockReportError):
    """Raised when fallback values were recorded but the caller disallows them."""

    def __init__(self, fields: list[str]):
        super().__init__(
            f"Placeholders detected while placeholders are disallowed: {', '.join(fields)}"
        )
        self.fields = fields


class SchemaValidationError(StockReportError):
    """Raised with the full list of validator findings for a document."""

    def __init__(self, errors: list[Any], context: str = "Generated JSON validation failed"):
        super().__init__(f"{context}: {'; '.join(str(e) for e in errors)}")
        self.errors = errors


class ReportExistsError(StockReportError, FileExistsError):
    """Raised when a report already exists and overwriting was not requested."""

    def __init__(self, path: str):
        super().__init__(f"File already exists: {path} (use --force to overwrite)")
        self.path = path

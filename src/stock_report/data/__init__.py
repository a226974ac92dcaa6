"""Data layer for fetching and caching upstream market data."""

from stock_report.data.cache import RegistryCache
from stock_report.data.http_client import RetryAttempt, RetryResult, fetch_json, with_retry
from stock_report.data.sources import (
    CatalogEntry,
    CompanyFacts,
    RawQuote,
    RegistryRow,
    fetch_quotes,
    fetch_registry_table,
    fetch_summary,
    find_registry_row,
    read_local_catalog,
    search_symbols,
    statement_frame,
    to_facts,
    to_quote,
    to_registry_rows,
)

__all__ = [
    # Cache
    "RegistryCache",
    # HTTP
    "RetryAttempt",
    "RetryResult",
    "fetch_json",
    "with_retry",
    # Sources
    "CatalogEntry",
    "CompanyFacts",
    "RawQuote",
    "RegistryRow",
    "fetch_quotes",
    "fetch_registry_table",
    "fetch_summary",
    "find_registry_row",
    "read_local_catalog",
    "search_symbols",
    "statement_frame",
    "to_facts",
    "to_quote",
    "to_registry_rows",
]

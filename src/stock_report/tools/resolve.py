"""Ticker resolution tool."""

from time import perf_counter
from typing import Any

from stock_report.config import load_settings
from stock_report.data.sources import fetch_registry_table, read_local_catalog, search_symbols
from stock_report.errors import StockReportError
from stock_report.resolver import resolve
from stock_report.tools.common import error_response
from stock_report.utils.provenance import build_meta


async def resolve_ticker(
    ticker: str | None = None,
    name: str | None = None,
    data_dir: str | None = None,
) -> dict[str, Any]:
    """
    Resolve a ticker or company name without generating a report.

    The registry table is only fetched for name lookups; a registry failure
    is reported as a warning and resolution continues without it.

    Args:
        ticker: Ticker symbol (authoritative when given)
        name: Company name to look up
        data_dir: Report data directory (for the local catalog)

    Returns:
        Dict with the resolved ticker, method and provenance
    """
    start_time = perf_counter()
    settings = load_settings(data_dir)
    provenance: dict[str, Any] = {}
    warnings: list[str] = []

    try:
        registry_rows = []
        if not (ticker or "").strip():
            try:
                registry_rows, provenance["registry"] = await fetch_registry_table(settings)
            except StockReportError as e:
                warnings.append(f"registry unavailable: {e}")

        async def _search(query: str) -> list[dict[str, Any]]:
            quotes, provenance["search"] = await search_symbols(query)
            return quotes

        entity = await resolve(ticker, name, read_local_catalog(settings.data_dir), registry_rows, search=_search)
    except (StockReportError, ValueError) as e:
        return error_response(e, (ticker or "").strip().upper() or None)

    return {
        "meta": build_meta("resolve_ticker", (perf_counter() - start_time) * 1000),
        "data_provenance": provenance,
        "ticker": entity.ticker,
        "method": entity.method,
        "registry_name": entity.registry_name,
        "warnings": warnings,
    }

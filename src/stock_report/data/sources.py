"""Upstream source adapters: registry table, quotes, statement summary, search.

Each fetcher returns ``(value, provenance)`` where provenance is a
``build_provenance`` dict that ends up in the source manifest. Numeric leaves
are unwrapped with ``pick_raw`` here and nowhere else.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any
from urllib.parse import quote as url_quote

import pandas as pd
import pytz
from yfinance import Search

from stock_report.config import (
    QUOTE_BUDGET,
    REGISTRY_BUDGET,
    SEARCH_BUDGET,
    SUMMARY_BUDGET,
    Settings,
)
from stock_report.data.cache import RegistryCache
from stock_report.data.http_client import fetch_json, with_retry
from stock_report.utils.normalize import get_section, pick_raw
from stock_report.utils.provenance import build_provenance
from stock_report.utils.sanitize import sanitize_text

logger = logging.getLogger(__name__)

REGISTRY_URL = "https://www.sec.gov/files/company_tickers.json"
QUOTE_URL = "https://query1.finance.yahoo.com/v7/finance/quote"
SUMMARY_URL = "https://query2.finance.yahoo.com/v10/finance/quoteSummary"
SEARCH_URL = "https://query2.finance.yahoo.com/v1/finance/search"

# Source ids referenced by the manifest's field -> source map
SOURCE_REGISTRY = "sec_company_tickers"
SOURCE_QUOTE = "yahoo_quote"
SOURCE_SUMMARY = "yahoo_quote_summary"
SOURCE_SEARCH = "yahoo_search"
SOURCE_PEERS = "yahoo_peer_quotes"

SUMMARY_MODULES: tuple[str, ...] = (
    "assetProfile",
    "price",
    "financialData",
    "defaultKeyStatistics",
    "summaryDetail",
    "calendarEvents",
    "incomeStatementHistory",
    "incomeStatementHistoryQuarterly",
    "earningsTrend",
)

STATEMENT_COLUMNS = [
    "end_date",
    "total_revenue",
    "net_income",
    "gross_profit",
    "operating_income",
    "ebitda",
]


@dataclass(frozen=True)
class RegistryRow:
    """One row of the official ticker -> company -> CIK table."""

    ticker: str
    company_name: str
    cik: str

    def to_dict(self) -> dict[str, str]:
        return {"ticker": self.ticker, "company_name": self.company_name, "cik": self.cik}


@dataclass(frozen=True)
class RawQuote:
    """Market quote for one symbol, numerics already unwrapped."""

    symbol: str
    short_name: str = ""
    long_name: str = ""
    exchange: str = ""
    quote_type: str = ""
    currency: str = "USD"
    market_cap: float | None = None
    price: float | None = None
    week52_low: float | None = None
    week52_high: float | None = None
    trailing_pe: float | None = None
    forward_pe: float | None = None
    price_to_sales: float | None = None
    price_to_book: float | None = None
    ev_to_ebitda: float | None = None
    beta: float | None = None

    @property
    def display_name(self) -> str:
        return self.long_name or self.short_name or self.symbol


@dataclass(frozen=True)
class CatalogEntry:
    """A previously generated report, as seen by name resolution."""

    ticker: str
    company_name: str
    company_name_en: str


def to_registry_rows(payload: Any) -> list[RegistryRow]:
    """
    Normalize the bulk registry payload.

    Accepts the upstream ``{"0": {...}, "1": {...}}`` mapping or a plain list.
    CIKs are zero-padded to 10 digits; rows without a ticker are dropped.
    """
    if isinstance(payload, dict):
        rows = list(payload.values())
    elif isinstance(payload, list):
        rows = payload
    else:
        return []

    result = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        ticker = str(row.get("ticker") or "").strip().upper()
        if not ticker:
            continue
        cik = row.get("cik_str")
        result.append(
            RegistryRow(
                ticker=ticker,
                company_name=str(row.get("title") or "").strip(),
                cik=str(cik).zfill(10) if cik not in (None, "") else "",
            )
        )
    return result


def find_registry_row(ticker: str, rows: list[RegistryRow]) -> RegistryRow | None:
    upper = str(ticker or "").upper()
    return next((row for row in rows if row.ticker == upper), None)


def _text(row: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = row.get(key)
        if value:
            return sanitize_text(str(value)) or ""
    return ""


def to_quote(row: dict[str, Any]) -> RawQuote:
    """Normalize one upstream quote row."""
    return RawQuote(
        symbol=str(row.get("symbol") or "").strip().upper(),
        short_name=_text(row, "shortName", "shortname"),
        long_name=_text(row, "longName", "longname"),
        exchange=_text(row, "fullExchangeName", "exchange"),
        quote_type=_text(row, "quoteType"),
        currency=_text(row, "currency") or "USD",
        market_cap=pick_raw(row.get("marketCap")),
        price=pick_raw(row.get("regularMarketPrice")),
        week52_low=pick_raw(row.get("fiftyTwoWeekLow")),
        week52_high=pick_raw(row.get("fiftyTwoWeekHigh")),
        trailing_pe=pick_raw(row.get("trailingPE")),
        forward_pe=pick_raw(row.get("forwardPE")),
        price_to_sales=pick_raw(row.get("priceToSalesTrailing12Months")),
        price_to_book=pick_raw(row.get("priceToBook")),
        ev_to_ebitda=pick_raw(row.get("enterpriseToEbitda")),
        beta=pick_raw(row.get("beta")),
    )


def statement_frame(
    summary: dict[str, Any] | None,
    section: str,
    key: str = "incomeStatementHistory",
) -> pd.DataFrame:
    """
    Income statement rows of a summary section as a DataFrame.

    Rows without a finite end date or revenue are dropped; the result is
    sorted by end date ascending with a fresh index.

    Args:
        summary: Raw quote summary (may be None)
        section: ``incomeStatementHistory`` or ``incomeStatementHistoryQuarterly``
        key: List key inside the section

    Returns:
        DataFrame with STATEMENT_COLUMNS (float, NaN for missing)
    """
    items = get_section(summary, section).get(key)
    if not isinstance(items, list):
        items = []

    records = []
    for item in items:
        if not isinstance(item, dict):
            continue
        records.append(
            {
                "end_date": pick_raw(item.get("endDate")),
                "total_revenue": pick_raw(item.get("totalRevenue")),
                "net_income": pick_raw(item.get("netIncome")),
                "gross_profit": pick_raw(item.get("grossProfit")),
                "operating_income": pick_raw(item.get("operatingIncome")),
                "ebitda": pick_raw(item.get("ebitda")),
            }
        )

    df = pd.DataFrame.from_records(records, columns=STATEMENT_COLUMNS).astype(float)
    df = df.dropna(subset=["end_date", "total_revenue"])
    return df.sort_values("end_date", kind="stable").reset_index(drop=True)


def _catalog_entry(path: Path) -> CatalogEntry | None:
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.debug(f"Skipping unreadable report {path}: {e}")
        return None
    if not isinstance(document, dict):
        logger.debug(f"Skipping non-object report {path}")
        return None
    ticker = str(document.get("ticker") or "").strip().upper()
    if not ticker:
        return None
    return CatalogEntry(
        ticker=ticker,
        company_name=str(document.get("companyName") or "").strip(),
        company_name_en=str(document.get("companyNameEn") or "").strip(),
    )


def read_local_catalog(data_dir: Path) -> list[CatalogEntry]:
    """
    Latest stored report identity per ticker.

    Reads both the dated ``{T}/{T}-{date}.json`` layout and legacy flat
    ``{T}.json`` files. Malformed files are skipped.
    """
    data_dir = Path(data_dir)
    if not data_dir.is_dir():
        return []

    latest: dict[str, CatalogEntry] = {}
    for path in sorted(data_dir.glob("*.json")):
        if path.name == "index.json":
            continue
        entry = _catalog_entry(path)
        if entry:
            latest[entry.ticker] = entry

    for ticker_dir in sorted(p for p in data_dir.iterdir() if p.is_dir() and p.name != "sources"):
        # File names sort by date, so the last readable one is the latest
        for path in sorted(ticker_dir.glob("*.json")):
            entry = _catalog_entry(path)
            if entry:
                latest[entry.ticker] = entry

    return [latest[ticker] for ticker in sorted(latest)]


def _now() -> datetime:
    return datetime.now(pytz.utc)


def _dig(payload: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(payload, dict):
            return None
        payload = payload.get(key)
    return payload


async def fetch_registry_table(
    settings: Settings,
    cache: RegistryCache | None = None,
) -> tuple[list[RegistryRow], dict[str, Any]]:
    """
    Fetch the official ticker table, consulting the on-disk cache first.

    Returns:
        Tuple of (rows, provenance_dict)
    """
    if cache is not None:
        cached = cache.load()
        if cached is not None:
            rows, stored_at = cached
            logger.debug(f"Registry table served from cache ({len(rows)} rows)")
            return rows, build_provenance(
                source=SOURCE_REGISTRY,
                as_of=stored_at,
                type="official",
                url=REGISTRY_URL,
                attempts=0,
                cache_hit=True,
            )

    budget = REGISTRY_BUDGET
    retry_result = await with_retry(
        "fetch_registry_table",
        lambda: fetch_json(
            REGISTRY_URL,
            headers={"User-Agent": settings.sec_user_agent},
            timeout=budget.timeout,
        ),
        attempts=budget.attempts,
        delay=budget.delay,
    )
    rows = to_registry_rows(retry_result.result)

    if cache is not None and rows:
        cache.store(rows, ttl=settings.registry_cache_ttl)

    return rows, build_provenance(
        source=SOURCE_REGISTRY,
        as_of=_now(),
        type="official",
        url=REGISTRY_URL,
        cache_hit=False,
        **retry_result.to_provenance(),
    )


async def fetch_quotes(
    symbols: list[str],
    source: str = SOURCE_QUOTE,
) -> tuple[list[RawQuote], dict[str, Any]]:
    """
    Batched quote lookup.

    Symbols are uppercased and deduplicated (order kept); empty input makes
    no request.

    Returns:
        Tuple of (quotes, provenance_dict)
    """
    unique = list(dict.fromkeys(str(s or "").strip().upper() for s in symbols or []))
    unique = [s for s in unique if s]
    if not unique:
        return [], build_provenance(source=source, as_of=_now(), type="market_data", attempts=0)

    url = f"{QUOTE_URL}?symbols={url_quote(','.join(unique))}"
    budget = QUOTE_BUDGET
    retry_result = await with_retry(
        f"fetch_quotes({','.join(unique)})",
        lambda: fetch_json(url, timeout=budget.timeout),
        attempts=budget.attempts,
        delay=budget.delay,
    )

    rows = _dig(retry_result.result, "quoteResponse", "result")
    quotes = [to_quote(row) for row in rows or [] if isinstance(row, dict)]

    return quotes, build_provenance(
        source=source,
        as_of=_now(),
        type="market_data",
        url=url,
        **retry_result.to_provenance(),
    )


async def fetch_summary(ticker: str) -> tuple[dict[str, Any] | None, dict[str, Any]]:
    """
    Per-ticker statement summary (profile, ratios, statements, calendar).

    Returns:
        Tuple of (summary or None when upstream returned no result, provenance_dict)
    """
    symbol = ticker.strip().upper()
    url = (
        f"{SUMMARY_URL}/{url_quote(symbol)}"
        f"?modules={url_quote(','.join(SUMMARY_MODULES))}"
    )
    budget = SUMMARY_BUDGET
    retry_result = await with_retry(
        f"fetch_summary({symbol})",
        lambda: fetch_json(url, timeout=budget.timeout),
        attempts=budget.attempts,
        delay=budget.delay,
    )

    results = _dig(retry_result.result, "quoteSummary", "result")
    summary = results[0] if isinstance(results, list) and results and isinstance(results[0], dict) else None

    return summary, build_provenance(
        source=SOURCE_SUMMARY,
        as_of=_now(),
        type="market_data",
        url=url,
        **retry_result.to_provenance(),
    )


async def search_symbols(name: str) -> tuple[list[dict[str, Any]], dict[str, Any]]:
    """
    Free-text instrument search (up to 10 quotes, no news).

    Returns:
        Tuple of (raw search quote dicts, provenance_dict)
    """
    budget = SEARCH_BUDGET

    def _search() -> list[dict[str, Any]]:
        search = Search(name, max_results=10, news_count=0, timeout=int(budget.timeout))
        return list(search.quotes or [])

    retry_result = await with_retry(
        f"search_symbols({name})",
        _search,
        attempts=budget.attempts,
        delay=budget.delay,
    )

    return retry_result.result, build_provenance(
        source=SOURCE_SEARCH,
        as_of=_now(),
        type="market_data",
        url=f"{SEARCH_URL}?q={url_quote(name)}&quotesCount=10&newsCount=0",
        **retry_result.to_provenance(),
    )


@dataclass(frozen=True)
class CompanyFacts:
    """Scalar facts extracted from a statement summary, all unwrapped."""

    sector: str = ""
    industry: str = ""
    business_summary: str = ""
    officer_titles: tuple[str, ...] = ()
    recommendation_key: str = ""
    target_mean_price: float | None = None
    current_price: float | None = None
    total_cash: float | None = None
    total_debt: float | None = None
    gross_margins: float | None = None
    return_on_equity: float | None = None
    held_percent_insiders: float | None = None
    debt_to_equity: float | None = None
    current_ratio: float | None = None
    free_cashflow: float | None = None
    eps_current_year: float | None = None
    beta: float | None = None
    revenue_growth_estimate: float | None = None
    eps_growth_estimate: float | None = None
    next_earnings_date: float | None = None


def _trend_row(summary: dict[str, Any] | None, period: str) -> dict[str, Any]:
    trend = get_section(summary, "earningsTrend").get("trend")
    for row in trend if isinstance(trend, list) else []:
        if isinstance(row, dict) and row.get("period") == period:
            return row
    return {}


def _first(*values: float | None) -> float | None:
    return next((v for v in values if v is not None), None)


def to_facts(summary: dict[str, Any] | None) -> CompanyFacts:
    """
    Extract the scalar facts the report needs from a raw summary.

    Growth estimates prefer the next-fiscal-year consensus (``earningsTrend``
    period ``+1y``) over trailing growth in ``financialData``. ROE prefers
    ``financialData`` over ``defaultKeyStatistics``. All growth, margin and
    ownership values stay fractions here.
    """
    profile = get_section(summary, "assetProfile")
    financial = get_section(summary, "financialData")
    key_stats = get_section(summary, "defaultKeyStatistics")
    calendar = get_section(summary, "calendarEvents")
    next_year = _trend_row(summary, "+1y")

    officers = profile.get("companyOfficers")
    titles = tuple(
        sanitize_text(str(officer["title"])) or ""
        for officer in (officers if isinstance(officers, list) else [])
        if isinstance(officer, dict) and officer.get("title")
    )

    earnings_dates = _dig(calendar, "earnings", "earningsDate")
    next_earnings = (
        pick_raw(earnings_dates[0]) if isinstance(earnings_dates, list) and earnings_dates else None
    )

    revenue_estimate = next_year.get("revenueEstimate")
    earnings_estimate = next_year.get("earningsEstimate")

    return CompanyFacts(
        sector=sanitize_text(str(profile.get("sector") or "")) or "",
        industry=sanitize_text(str(profile.get("industry") or "")) or "",
        business_summary=sanitize_text(str(profile.get("longBusinessSummary") or ""), max_length=2000)
        or "",
        officer_titles=titles,
        recommendation_key=str(financial.get("recommendationKey") or "").strip(),
        target_mean_price=pick_raw(financial.get("targetMeanPrice")),
        current_price=pick_raw(financial.get("currentPrice")),
        total_cash=pick_raw(financial.get("totalCash")),
        total_debt=pick_raw(financial.get("totalDebt")),
        gross_margins=pick_raw(financial.get("grossMargins")),
        return_on_equity=_first(
            pick_raw(financial.get("returnOnEquity")),
            pick_raw(key_stats.get("returnOnEquity")),
        ),
        held_percent_insiders=pick_raw(key_stats.get("heldPercentInsiders")),
        debt_to_equity=pick_raw(financial.get("debtToEquity")),
        current_ratio=pick_raw(financial.get("currentRatio")),
        free_cashflow=pick_raw(financial.get("freeCashflow")),
        eps_current_year=pick_raw(financial.get("epsCurrentYear")),
        beta=pick_raw(key_stats.get("beta")),
        revenue_growth_estimate=_first(
            pick_raw(revenue_estimate.get("growth")) if isinstance(revenue_estimate, dict) else None,
            pick_raw(financial.get("revenueGrowth")),
        ),
        eps_growth_estimate=_first(
            pick_raw(earnings_estimate.get("growth")) if isinstance(earnings_estimate, dict) else None,
            pick_raw(next_year.get("growth")),
            pick_raw(financial.get("earningsGrowth")),
        ),
        next_earnings_date=next_earnings,
    )

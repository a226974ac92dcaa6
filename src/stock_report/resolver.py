"""Ticker resolution from a direct ticker or a free-text company name."""

import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from stock_report.data.sources import CatalogEntry, RegistryRow, find_registry_row
from stock_report.errors import AmbiguityError, NotFoundError
from stock_report.utils.normalize import normalize_text
from stock_report.utils.validators import normalize_ticker

logger = logging.getLogger(__name__)

DIRECT_INPUT = "direct_input"
LOCAL_CATALOG = "local_catalog"
RANKED_SEARCH = "ranked_search"
REGISTRY_NAME_MATCH = "registry_name_match"

RESOLUTION_METHODS = {DIRECT_INPUT, LOCAL_CATALOG, RANKED_SEARCH, REGISTRY_NAME_MATCH}

# Exchange codes that indicate a US listing venue
US_VENUE_RE = re.compile(r"NMS|NAS|NYQ|ASE|PNK|BTS", re.IGNORECASE)

SEARCH_AMBIGUITY_WINDOW = 3
REGISTRY_AMBIGUITY_LIMIT = 5

SearchFn = Callable[[str], Awaitable[list[dict[str, Any]]]]


@dataclass(frozen=True)
class ResolvedEntity:
    """Canonical ticker plus how it was found."""

    ticker: str
    method: str
    registry_name: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "ticker", normalize_ticker(self.ticker))
        if self.method not in RESOLUTION_METHODS:
            raise ValueError(
                f"Invalid resolution method '{self.method}'. Must be one of: {RESOLUTION_METHODS}"
            )


@dataclass(frozen=True)
class SearchCandidate:
    """A ranked equity hit from free-text search."""

    symbol: str
    short_name: str
    long_name: str
    exchange: str
    score: int

    def as_candidate(self) -> tuple[str, str, str]:
        return (self.symbol, self.short_name or self.long_name, self.exchange)


def rank_search_quotes(name: str, quotes: list[dict[str, Any]]) -> list[SearchCandidate]:
    """
    Score equity search hits against the requested name.

    +100 exact normalized match on short name, long name or symbol; +40 for a
    substring match (an exact match is also a substring match); +10 for a US
    venue; +5 for symbols of at most 5 characters. Sorted by score
    descending, then symbol ascending.
    """
    target = normalize_text(name)
    candidates = []

    for row in quotes or []:
        if not isinstance(row, dict) or row.get("quoteType") != "EQUITY":
            continue
        if not isinstance(row.get("symbol"), str):
            continue

        symbol = row["symbol"].strip().upper()
        if not symbol:
            continue
        short_name = str(row.get("shortname") or "").strip()
        long_name = str(row.get("longname") or "").strip()
        exchange = str(row.get("exchange") or row.get("exchDisp") or "").strip()

        names = [normalize_text(value) for value in (short_name, long_name, symbol)]
        score = 0
        if target in names:
            score += 100
        if any(target in value for value in names):
            score += 40
        if US_VENUE_RE.search(exchange):
            score += 10
        if len(symbol) <= 5:
            score += 5

        candidates.append(SearchCandidate(symbol, short_name, long_name, exchange, score))

    return sorted(candidates, key=lambda c: (-c.score, c.symbol))


def match_local_catalog(name: str, catalog: list[CatalogEntry]) -> str | None:
    """Ticker of the single catalog entry whose name or ticker matches exactly."""
    target = normalize_text(name)
    matches = [
        entry
        for entry in catalog
        if target in {normalize_text(v) for v in (entry.company_name, entry.company_name_en, entry.ticker)}
    ]
    if len(matches) == 1:
        return matches[0].ticker
    if matches:
        logger.info(
            f"Local catalog has {len(matches)} matches for '{name}'; falling through to search"
        )
    return None


def match_registry_name(name: str, rows: list[RegistryRow]) -> list[RegistryRow]:
    """Registry rows whose company name matches exactly, else by substring."""
    target = normalize_text(name)
    if not target:
        return []
    exact = [row for row in rows if normalize_text(row.company_name) == target]
    if exact:
        return exact
    return [row for row in rows if target in normalize_text(row.company_name)]


def _pick_ranked(name: str, ranked: list[SearchCandidate]) -> SearchCandidate | None:
    if not ranked:
        return None
    if len(ranked) == 1:
        return ranked[0]

    top = ranked[:SEARCH_AMBIGUITY_WINDOW]
    best = [c for c in top if c.score == top[0].score]
    if len(best) == 1:
        return best[0]
    raise AmbiguityError(name, [c.as_candidate() for c in top], source="search")


async def _default_search(name: str) -> list[dict[str, Any]]:
    from stock_report.data.sources import search_symbols

    quotes, _ = await search_symbols(name)
    return quotes


def _entity(ticker: str, method: str, registry_rows: list[RegistryRow]) -> ResolvedEntity:
    row = find_registry_row(ticker, registry_rows)
    return ResolvedEntity(
        ticker=ticker,
        method=method,
        registry_name=(row.company_name or None) if row else None,
    )


async def resolve(
    ticker_input: str | None,
    name_input: str | None,
    local_catalog: list[CatalogEntry],
    registry_rows: list[RegistryRow],
    search: SearchFn | None = None,
) -> ResolvedEntity:
    """
    Resolve exactly one ticker.

    A non-empty ticker is authoritative and never looked up. Otherwise the
    name goes through the local catalog, then ranked search, then the
    registry, stopping at the first step with a single winner.

    Args:
        ticker_input: Ticker as typed by the caller (may be empty)
        name_input: Company name (required when ticker_input is empty)
        local_catalog: Identities of previously generated reports
        registry_rows: Official registry table (may be empty)
        search: Async free-text search returning raw quote dicts

    Returns:
        ResolvedEntity

    Raises:
        ValueError: If neither input is given or the ticker is malformed
        AmbiguityError: If search or registry yields tied candidates
        NotFoundError: If no step yields a candidate
        UpstreamFetchError: If the search request fails
    """
    ticker = str(ticker_input or "").strip().upper()
    if ticker:
        return _entity(ticker, DIRECT_INPUT, registry_rows)

    name = str(name_input or "").strip()
    if not name:
        raise ValueError("Either --ticker or --name is required.")
    if not normalize_text(name):
        raise NotFoundError(name)

    local_ticker = match_local_catalog(name, local_catalog)
    if local_ticker:
        return _entity(local_ticker, LOCAL_CATALOG, registry_rows)

    search = search or _default_search
    quotes = await search(name)

    winner = _pick_ranked(name, rank_search_quotes(name, quotes))
    if winner:
        return _entity(winner.symbol, RANKED_SEARCH, registry_rows)

    registry_matches = match_registry_name(name, registry_rows)
    if len(registry_matches) == 1:
        return _entity(registry_matches[0].ticker, REGISTRY_NAME_MATCH, registry_rows)
    if registry_matches:
        raise AmbiguityError(
            name,
            [(row.ticker, row.company_name, "") for row in registry_matches[:REGISTRY_AMBIGUITY_LIMIT]],
            source="registry",
        )

    raise NotFoundError(name)

"""Secondary financial figures derived from normalized primary figures.

Every function returns None (or an empty series) instead of raising when an
input is missing, so callers treat absence as a normal case.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime

from stock_report.utils.normalize import round_to

DEFAULT_PROJECTION_GROWTH = 0.12
BACKFILL_STEP = 0.03
MIN_QUARTERS = 4

PEG_FORWARD = "forward_pe_growth"
PEG_PROXY = "ps_growth_proxy"
PEG_UNAVAILABLE = "unavailable"

PEER_MAP: dict[str, list[str]] = {
    "RKLB": ["ASTS", "PL", "LUNR", "RDW"],
    "IREN": ["CORZ", "CIFR", "WULF", "RIOT"],
}

# (pattern, peers) checked in order against "sector / industry"
SECTOR_PEERS: list[tuple[str, list[str]]] = [
    ("aerospace", ["LMT", "NOC", "RTX", "LUNR"]),
    ("semiconductor", ["NVDA", "AMD", "AVGO", "TSM"]),
    ("cloud", ["MSFT", "AMZN", "CRM", "ORCL"]),
    ("software", ["MSFT", "AMZN", "CRM", "ORCL"]),
    ("financial", ["JPM", "BAC", "WFC", "GS"]),
]
DEFAULT_PEERS = ["SPY", "QQQ", "DIA", "IWM"]

# Industry medians for [P/E, P/S, P/B, EV/EBITDA]
SECTOR_BENCHMARKS: list[tuple[re.Pattern[str], list[float]]] = [
    (re.compile(r"aerospace|defense", re.IGNORECASE), [35, 8, 4, 20]),
    (re.compile(r"semiconductor", re.IGNORECASE), [28, 7, 6, 18]),
    (re.compile(r"software|saas|cloud", re.IGNORECASE), [30, 10, 6, 22]),
    (re.compile(r"financial|bank", re.IGNORECASE), [13, 3, 1.2, 9]),
    (re.compile(r"energy|oil|gas", re.IGNORECASE), [14, 1.6, 1.7, 6]),
]


def yoy_change(latest: float | None, prior: float | None) -> float | None:
    """Percent change from prior to latest; None when prior is missing or zero."""
    if latest is None or prior is None or prior == 0:
        return None
    return (latest - prior) / prior * 100


def net_cash(total_cash: float | None, total_debt: float | None) -> float | None:
    if total_cash is None or total_debt is None:
        return None
    return total_cash - total_debt


def margin_pct(numerator: float | None, revenue: float | None) -> float | None:
    if numerator is None or revenue is None or revenue == 0:
        return None
    return numerator / revenue * 100


def to_pct(value: float | None) -> float | None:
    """Fractions (|v| <= 1) become percent; larger values are taken as percent already."""
    if value is None:
        return None
    if abs(value) <= 1:
        return value * 100
    return value


def normalize_debt_to_equity(value: float | None) -> float | None:
    """Upstream reports D/E as a percentage when it exceeds 10; return a ratio."""
    if value is None:
        return None
    return value / 100 if value > 10 else value


def pct_from(price: float | None, reference: float | None) -> float | None:
    """Percent distance of price from a reference level (52-week high, target)."""
    if price is None or reference is None or reference == 0:
        return None
    return (price - reference) / reference * 100


@dataclass(frozen=True)
class PegResult:
    """PEG value with the tier that produced it."""

    value: float | None
    method: str
    reason: str | None = None

    def display(self) -> str:
        if self.value is None:
            return f"N/A ({self.reason})"
        if self.method == PEG_PROXY:
            return f"{self.value:.2f}x (P/S-to-growth proxy: {self.reason})"
        return f"{self.value:.2f}x"


def derive_peg(
    forward_pe: float | None,
    eps_growth_pct: float | None,
    price_to_sales: float | None,
    annual_revenue: list[float] | None,
) -> PegResult:
    """
    PEG with a two-tier fallback.

    1. forward P/E / EPS growth % when both are positive
    2. P/S / revenue growth % of the last two annual points (proxy)
    3. unavailable

    The proxy and unavailable tiers always carry a reason so the substitution
    is never silent.
    """
    if forward_pe is not None and forward_pe > 0 and eps_growth_pct is not None and eps_growth_pct > 0:
        return PegResult(round_to(forward_pe / eps_growth_pct, 2), PEG_FORWARD)

    if forward_pe is None or forward_pe <= 0:
        primary_gap = "forward P/E unavailable or non-positive"
    else:
        primary_gap = "EPS growth estimate unavailable or non-positive"

    revenue = list(annual_revenue or [])
    growth_pct = None
    if len(revenue) >= 2 and revenue[-2] > 0:
        growth_pct = yoy_change(revenue[-1], revenue[-2])

    if price_to_sales is not None and price_to_sales > 0 and growth_pct is not None and growth_pct > 0:
        return PegResult(
            round_to(price_to_sales / growth_pct, 2),
            PEG_PROXY,
            f"{primary_gap}; used P/S {round_to(price_to_sales, 2)} over "
            f"annual revenue growth {round_to(growth_pct, 1)}%",
        )

    if price_to_sales is None or price_to_sales <= 0:
        proxy_gap = "P/S unavailable"
    else:
        proxy_gap = "annual revenue growth unavailable or non-positive"
    return PegResult(None, PEG_UNAVAILABLE, f"{primary_gap}; {proxy_gap}")


@dataclass(frozen=True)
class RevenueProjection:
    """Annual revenue series with an optional synthesized estimate point."""

    labels: list[str]
    data: list[float]
    estimate_start_index: int | None
    growth: float | None
    used_default: bool = False


def _fiscal_year(label: str) -> int | None:
    match = re.fullmatch(r"FY(\d{4})E?", label or "")
    return int(match.group(1)) if match else None


def project_revenue(
    labels: list[str],
    data: list[float],
    growth_estimate: float | None,
    now: datetime,
) -> RevenueProjection:
    """
    Append a forward-year estimate point to an annual revenue series.

    The estimate is ``round(last * (1 + g), 1)`` labelled ``FY{last_year+1}E``;
    its index is the estimate boundary. Without an external estimate the
    default +12% is applied and ``used_default`` is set.

    Args:
        labels: Historical labels (FY2023, FY2024, ...)
        data: Historical values, same length as labels
        growth_estimate: Growth as a fraction (0.25 for +25%) or None
        now: Reference time for label fallback

    Returns:
        RevenueProjection (no estimate point when data is empty)
    """
    labels = list(labels)
    data = list(data)
    if not data:
        return RevenueProjection(labels, data, None, growth_estimate, used_default=False)

    used_default = growth_estimate is None
    growth = DEFAULT_PROJECTION_GROWTH if used_default else growth_estimate

    last_year = _fiscal_year(labels[-1]) if labels else None
    estimate_year = (last_year if last_year is not None else now.year) + 1

    labels.append(f"FY{estimate_year}E")
    data.append(round_to(data[-1] * (1 + growth), 1))
    return RevenueProjection(labels, data, len(data) - 1, growth, used_default)


@dataclass(frozen=True)
class QuarterSeries:
    """Quarterly revenue series, possibly padded with synthesized points."""

    labels: list[str]
    data: list[float]
    synthesized: int = 0
    synthesized_labels: list[str] = field(default_factory=list)


def backfill_quarters(
    labels: list[str],
    data: list[float],
    annual_run_rate_base: float | None,
    now: datetime,
) -> QuarterSeries:
    """
    Pad a quarterly series to four points from an annual run rate.

    Each synthetic point is ``round(base / 4 * (1 + k * 0.03), 1)`` where k
    is the 1-based position of the new point, labelled ``Q{k}'{yy}``.
    Nothing is synthesized without a base.
    """
    labels = list(labels)
    data = list(data)
    if len(data) >= MIN_QUARTERS or annual_run_rate_base is None:
        return QuarterSeries(labels, data)

    year_suffix = str(now.year)[-2:]
    added: list[str] = []
    while len(data) < MIN_QUARTERS:
        k = len(data) + 1
        label = f"Q{k}'{year_suffix}"
        labels.append(label)
        data.append(round_to(annual_run_rate_base / 4 * (1 + k * BACKFILL_STEP), 1))
        added.append(label)

    return QuarterSeries(labels, data, synthesized=len(added), synthesized_labels=added)


def industry_benchmarks(sector_text: str, company_values: list[float]) -> list[float]:
    """
    Industry multiples matching the sector, else 0.6x of the company's own.

    Company values that are zero fall back to 1.
    """
    text = str(sector_text or "")
    for pattern, values in SECTOR_BENCHMARKS:
        if pattern.search(text):
            return [round_to(v, 1) for v in values[: len(company_values)]]

    return [1.0 if not value else round_to(max(1.0, value * 0.6), 1) for value in company_values]


def choose_peers(ticker: str, sector_text: str) -> list[str]:
    """Peer tickers for the competitor chart: fixed map first, then by sector."""
    upper = str(ticker or "").upper()
    if upper in PEER_MAP:
        return list(PEER_MAP[upper])

    text = str(sector_text or "").lower()
    for keyword, peers in SECTOR_PEERS:
        if keyword in text:
            return list(peers)
    return list(DEFAULT_PEERS)

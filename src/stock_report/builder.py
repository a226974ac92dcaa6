"""Report assembly: merge quote, summary, derived metrics and scores into one document.

The assembler is the only place that substitutes fallback values. Every
substitution is recorded as a Placeholder so the caller can apply its
placeholder policy, and the strict-mode critical checks are computed on
every run whether or not they are enforced.
"""

import logging
import operator
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import pandas as pd
import pytz

from stock_report.config import GeneratorOptions
from stock_report.data.sources import CompanyFacts, RawQuote, RegistryRow, statement_frame, to_facts
from stock_report.errors import CriticalValidationFailure, PlaceholderPolicyViolation
from stock_report.metrics import (
    backfill_quarters,
    choose_peers,
    derive_peg,
    industry_benchmarks,
    margin_pct,
    net_cash,
    normalize_debt_to_equity,
    pct_from,
    project_revenue,
    to_pct,
    yoy_change,
)
from stock_report.scoring import (
    DEFAULT_RADAR_WEIGHTS,
    DEFAULT_RUBRIC_WEIGHTS,
    CompositeScore,
    RadarInputs,
    RadarWeights,
    RubricInputs,
    RubricWeights,
    build_composite_score,
    build_radar,
    radar_report_score,
    to_verdict,
)
from stock_report.utils.formatting import (
    compact_label,
    first_sentence,
    format_billions,
    format_compact_dollar,
    format_delta_tag,
    format_millions,
    format_percent,
    format_price,
    map_recommendation,
    normalize_exchange,
    number_text,
    tag_color,
    threat_tag,
    to_timeline_date,
    unix_to_label,
    width_from_value,
)
from stock_report.utils.normalize import clamp, round_to
from stock_report.utils.validators import check_rule

logger = logging.getLogger(__name__)

MARKET_TZ = pytz.timezone("America/New_York")

NAV_SECTIONS = [
    {"id": "summary", "label": "Summary"},
    {"id": "business", "label": "Business"},
    {"id": "finance", "label": "Financials"},
    {"id": "catalyst", "label": "Catalysts"},
    {"id": "competitors", "label": "Competitors"},
    {"id": "risks", "label": "Risks"},
    {"id": "verdict", "label": "Verdict"},
]

VALUATION_LABELS = ["P/E (TTM)", "P/S (TTM)", "P/B", "EV/EBITDA"]
COMPETITOR_HEADERS = ["Company", "Ticker", "Core business", "Market cap", "Differentiation", "Threat level"]
PEER_COLORS = ["#ec4899", "#06b6d4", "#f59e0b", "#8b5cf6"]
SELF_COLOR = "#3b82f6"
MAX_PEERS = 4

STATUS_LABELS = {"pass": "Pass", "watch": "Watch", "fail": "Below bar", "unknown": "Insufficient data"}

RUBRIC_CHECKLIST = [
    ("small_cap", "[100x] Market cap headroom", "Quarterly"),
    ("roe_quality", "[100x] ROE quality", "Quarterly"),
    ("reinvestment", "[100x] Reinvestment efficiency", "Quarterly"),
    ("reasonable_per", "[100x] P/E safety margin", "Ongoing"),
    ("founder_led", "[100x] Founder leadership", "Semiannual"),
]


@dataclass(frozen=True)
class Placeholder:
    """A field whose value was fabricated because upstream data was missing."""

    field: str
    reason: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "reason": self.reason}


@dataclass
class BuildResult:
    report: dict[str, Any]
    placeholders: list[Placeholder]
    critical_issues: list[str]
    derivations: dict[str, Any]
    summary: dict[str, Any]


class _PlaceholderLog:
    """Collects substitutions in the order they happen."""

    def __init__(self) -> None:
        self.items: list[Placeholder] = []

    def add(self, field: str, reason: str) -> None:
        self.items.append(Placeholder(field, reason))

    def number_or(self, value: float | None, fallback: float, field: str, reason: str) -> float:
        if value is not None:
            return value
        self.add(field, reason)
        return fallback

    def text_or(self, value: str | None, fallback: str, field: str, reason: str) -> str:
        text = str(value or "").strip()
        if text:
            return text
        self.add(field, reason)
        return fallback


def _cell(row: pd.Series | None, column: str) -> float | None:
    if row is None:
        return None
    value = row[column]
    return None if pd.isna(value) else float(value)


def default_sector(exchange: str, facts: CompanyFacts) -> str:
    if facts.sector and facts.industry:
        return f"{facts.sector} / {facts.industry}"
    return facts.sector or facts.industry or f"{exchange}-listed equity"


def critical_checks(report: dict[str, Any]) -> list[str]:
    """Completeness checks enforced in strict mode."""
    issues = []
    if not report.get("ticker"):
        issues.append("ticker missing")
    if not report.get("companyNameEn"):
        issues.append("companyNameEn missing")
    if report.get("price") == "-":
        issues.append("price missing")
    if report.get("marketCap") == "-":
        issues.append("marketCap missing")
    if report.get("weekRange") == "-":
        issues.append("weekRange missing")
    if len(report.get("annualRevenue", {}).get("data") or []) < 2:
        issues.append("annualRevenue.data needs at least 2 points")
    if len(report.get("quarterlyRevenue", {}).get("data") or []) < 4:
        issues.append("quarterlyRevenue.data needs at least 4 points")
    return issues


def apply_policy_gates(
    options: GeneratorOptions,
    issues: list[str],
    placeholders: list[Placeholder],
) -> None:
    """
    Enforce the two independent gates.

    Raises:
        CriticalValidationFailure: strict mode with any critical issue
        PlaceholderPolicyViolation: placeholders present while disallowed
    """
    if options.strict and issues:
        raise CriticalValidationFailure(issues)
    if not options.allow_placeholders and placeholders:
        raise PlaceholderPolicyViolation([p.field for p in placeholders])


def _signed_arrow(value: float) -> str:
    return f"{'↑' if value >= 0 else '↓'}{number_text(abs(round_to(value, 1)))}%"


def _pct_text(value: float | None, digits: int = 1, missing: str = "N/A") -> str:
    return f"{number_text(round_to(value, digits))}%" if value is not None else missing


def build_report(
    ticker: str,
    registry_entry: RegistryRow | None,
    quote: RawQuote,
    summary: dict[str, Any] | None,
    peer_quotes: list[RawQuote],
    options: GeneratorOptions,
    now: datetime | None = None,
    radar_weights: RadarWeights = DEFAULT_RADAR_WEIGHTS,
    rubric_weights: RubricWeights = DEFAULT_RUBRIC_WEIGHTS,
) -> BuildResult:
    """
    Assemble the report document for one ticker.

    Args:
        ticker: Resolved ticker
        registry_entry: Official registry row (authoritative English name)
        quote: Primary quote
        summary: Raw statement summary (None when unavailable)
        peer_quotes: Quotes of comparison companies
        options: Run options (strict / allow_placeholders gates)
        now: Analysis time (defaults to now in America/New_York)
        radar_weights: Radar aggregate weights
        rubric_weights: Composite rubric weights

    Returns:
        BuildResult with the document and its bookkeeping

    Raises:
        CriticalValidationFailure: strict mode and a critical field is missing
        PlaceholderPolicyViolation: placeholders recorded while disallowed
    """
    now = now or datetime.now(MARKET_TZ)
    analysis_date = now.strftime("%Y-%m-%d")
    log = _PlaceholderLog()

    facts = to_facts(summary)
    annual_df = statement_frame(summary, "incomeStatementHistory")
    quarterly_df = statement_frame(summary, "incomeStatementHistoryQuarterly")

    # ---- identity ----
    quote_name = quote.long_name or quote.short_name
    company_name_en = log.text_or(
        registry_entry.company_name if registry_entry else None,
        quote_name or ticker,
        "companyNameEn",
        "Registry company name is unavailable",
    )
    company_name = quote_name or company_name_en
    exchange = normalize_exchange(quote.exchange)
    sector = default_sector(exchange, facts)
    description = log.text_or(
        first_sentence(facts.business_summary),
        f"Automatically generated long-term research draft for {company_name_en} based on public data.",
        "description",
        "No business summary found from primary profile source",
    )

    # ---- price block ----
    price = quote.price
    high52 = quote.week52_high
    low52 = quote.week52_low
    market_cap = quote.market_cap
    beta = quote.beta if quote.beta is not None else facts.beta
    from_high_pct = pct_from(price, high52)
    from_low_pct = pct_from(price, low52)
    target_mean = facts.target_mean_price
    target_upside = pct_from(target_mean, price)

    # ---- statements ----
    latest_q = quarterly_df.iloc[-1] if len(quarterly_df) > 0 else None
    prior_year_q = quarterly_df.iloc[-5] if len(quarterly_df) > 4 else None
    latest_q_revenue = _cell(latest_q, "total_revenue")
    prior_year_q_revenue = _cell(prior_year_q, "total_revenue")
    quarterly_yoy = yoy_change(latest_q_revenue, prior_year_q_revenue)
    latest_q_margin = margin_pct(_cell(latest_q, "net_income"), latest_q_revenue)

    total_cash = facts.total_cash
    total_debt = facts.total_debt
    cash_net = net_cash(total_cash, total_debt)
    trailing_pe = quote.trailing_pe
    forward_pe = quote.forward_pe
    roe_pct = to_pct(facts.return_on_equity)
    insider_pct = to_pct(facts.held_percent_insiders)
    debt_to_equity = normalize_debt_to_equity(facts.debt_to_equity)
    current_ratio = facts.current_ratio
    free_cashflow = facts.free_cashflow

    # ---- annual revenue + projection ----
    recent_annual = annual_df.tail(4)
    annual_labels: list[str] = []
    annual_data: list[float] = []
    for _, row in recent_annual.iterrows():
        annual_labels.append(unix_to_label(row["end_date"], annual=True))
        annual_data.append(round_to(row["total_revenue"] / 1e6, 1))

    if not annual_data and latest_q_revenue is not None:
        log.add("annualRevenue", "No annual income statement; fallback from latest quarter")
        annual_labels.append(f"FY{now.year}")
        annual_data.append(round_to(latest_q_revenue * 4 / 1e6, 1))

    historical_annual = list(annual_data)
    projection = project_revenue(annual_labels, annual_data, facts.revenue_growth_estimate, now)
    if projection.used_default:
        log.add("annualRevenue.projection", "Revenue growth estimate was missing, used default +12%")

    # ---- quarterly revenue ----
    quarter_labels: list[str] = []
    quarter_data: list[float] = []
    for _, row in quarterly_df.tail(6).iterrows():
        quarter_labels.append(unix_to_label(row["end_date"]))
        quarter_data.append(round_to(row["total_revenue"] / 1e6, 1))

    run_rate_base = historical_annual[-1] if historical_annual else None
    quarters = backfill_quarters(quarter_labels, quarter_data, run_rate_base, now)
    if quarters.synthesized:
        log.add("quarterlyRevenue", "Quarterly income statement missing, generated from annual run-rate")

    # ---- margin trend ----
    margin_labels: list[str] = []
    margin_gaap: list[float | None] = []
    margin_non_gaap: list[float | None] = []
    for _, row in recent_annual.iterrows():
        if row["total_revenue"] == 0:
            continue
        margin = margin_pct(None if pd.isna(row["net_income"]) else row["net_income"], row["total_revenue"])
        margin_labels.append(unix_to_label(row["end_date"], annual=True))
        margin_gaap.append(round_to(margin, 1) if margin is not None else None)
        margin_non_gaap.append(None)

    if latest_q is not None and latest_q_revenue:
        gross_pct = facts.gross_margins * 100 if facts.gross_margins is not None else None
        margin_labels.append(unix_to_label(latest_q["end_date"]))
        margin_gaap.append(round_to(latest_q_margin, 1) if latest_q_margin is not None else None)
        margin_non_gaap.append(round_to(gross_pct, 1) if gross_pct is not None else None)

    if not margin_labels:
        log.add("marginTrend", "No margin history available")
        margin_labels = [f"FY{now.year - 1}", f"FY{now.year}"]
        margin_gaap = [None, None]
        margin_non_gaap = [None, None]

    # ---- growth and PEG ----
    latest_annual = historical_annual[-1] * 1e6 if historical_annual else None
    prior_annual = historical_annual[-2] * 1e6 if len(historical_annual) >= 2 else None
    annual_growth_pct = yoy_change(latest_annual, prior_annual) if prior_annual and prior_annual > 0 else None

    peg = derive_peg(forward_pe, to_pct(facts.eps_growth_estimate), quote.price_to_sales, historical_annual)
    if peg.reason:
        logger.info(f"{ticker}: PEG via {peg.method} ({peg.reason})")

    # ---- narrative ----
    key_points = [
        f"<strong>Recent growth:</strong> latest quarterly revenue {format_millions(latest_q_revenue)}"
        + (f", YoY {format_percent(quarterly_yoy)}" if quarterly_yoy is not None else ""),
        f"<strong>Profitability:</strong> latest quarterly net margin "
        f"{_pct_text(latest_q_margin, missing='needs verification')}",
        f"<strong>Balance sheet:</strong> cash {format_compact_dollar(total_cash)}, "
        f"debt {format_compact_dollar(total_debt)}, net cash {format_compact_dollar(cash_net)}",
        f"<strong>Street expectations:</strong> mean analyst target "
        f"{format_price(target_mean) if target_mean is not None else 'N/A'}"
        + (f" ({_signed_arrow(target_upside)})" if target_upside is not None else ""),
        f"<strong>Volatility:</strong> beta {number_text(round_to(beta, 2)) if beta is not None else 'N/A'}"
        + (", high-volatility range" if beta is not None and beta > 1.8 else ""),
    ]

    segment_name = log.text_or(facts.industry, "Core business", "segments[0].name", "Industry label missing")
    if quarters.data:
        revenue_primary = quarters.data[-1]
    elif projection.data:
        revenue_primary = projection.data[-1] / 4
    else:
        revenue_primary = None

    segments = [
        {
            "name": segment_name,
            "icon": "🏢",
            "color": "accent",
            "backlog": "Core",
            "description": "Where the bulk of disclosed revenue is generated. Track quarterly results "
            "together with order flow.",
            "revenue": "Latest quarterly revenue: "
            + format_millions(revenue_primary * 1e6 if revenue_primary is not None else None),
        },
        {
            "name": "Growth initiatives",
            "icon": "🚀",
            "color": "orange",
            "backlog": "Expansion",
            "description": "New products, customers and regions that drive medium-term growth. "
            "Monitor guidance and execution milestones first.",
            "revenue": f"Revenue growth: YoY {format_percent(quarterly_yoy)}"
            if quarterly_yoy is not None
            else "Revenue growth: needs verification",
        },
        {
            "name": "Financial execution",
            "icon": "🛠️",
            "color": "purple",
            "backlog": "Discipline",
            "description": "Cash flow, capital spending and cost structure set the pace of the "
            "transition to durable profitability.",
            "revenue": f"FCF: {format_compact_dollar(free_cashflow)}",
        },
    ]

    revenue_breakdown = {"labels": ["Total revenue"], "data": [100], "colors": [SELF_COLOR]}

    eps = facts.eps_current_year
    current_price = facts.current_price if facts.current_price is not None else price
    financial_table = [
        [
            "Revenue",
            format_millions(latest_q_revenue),
            format_millions(prior_year_q_revenue),
            f"{format_percent(quarterly_yoy)} YoY" if quarterly_yoy is not None else "N/A",
            tag_color(quarterly_yoy),
            "Latest quarter vs. same quarter last year",
        ],
        [
            "Annual revenue (latest)",
            format_compact_dollar(latest_annual),
            format_compact_dollar(prior_annual),
            format_percent(annual_growth_pct) if annual_growth_pct is not None else "N/A",
            tag_color(annual_growth_pct),
            "Annual income statement",
        ],
        [
            "Net margin",
            _pct_text(latest_q_margin, missing="-"),
            "-",
            ("Profitable" if latest_q_margin >= 0 else "Loss-making") if latest_q_margin is not None else "N/A",
            tag_color(latest_q_margin),
            "Latest quarter net income / revenue",
        ],
        [
            "EPS (FY)",
            f"${number_text(round_to(eps, 2))}" if eps is not None else "-",
            "-",
            "Reference",
            "blue",
            "Current fiscal year EPS",
        ],
        [
            "Cash",
            format_compact_dollar(total_cash),
            "-",
            "Liquidity on hand" if total_cash is not None else "Needs verification",
            "green",
            "Financial data",
        ],
        [
            "Total debt",
            format_compact_dollar(total_debt),
            "-",
            "Monitor leverage" if total_debt is not None else "Needs verification",
            "orange" if total_debt is not None and total_debt > (total_cash or 0) else "blue",
            "Financial data",
        ],
        [
            "Market cap",
            format_compact_dollar(market_cap),
            "-",
            "Market valuation" if market_cap is not None else "Needs verification",
            "blue",
            "Latest quote",
        ],
        [
            "Share price",
            format_price(current_price),
            "-",
            (
                f"{'Below 52-week high' if from_high_pct <= 0 else 'Above 52-week high'} "
                f"{number_text(abs(round_to(from_high_pct, 1)))}%"
            )
            if from_high_pct is not None
            else "N/A",
            "green" if from_high_pct is not None and from_high_pct > 0 else "orange",
            "Compared with 52-week high",
        ],
    ]

    # ---- valuation ----
    company_valuation = [
        round_to(value, 1)
        for value in (
            log.number_or(trailing_pe, 0, "valuation.trailingPE", "Trailing P/E unavailable"),
            log.number_or(quote.price_to_sales, 0, "valuation.priceToSales", "P/S unavailable"),
            log.number_or(quote.price_to_book, 0, "valuation.priceToBook", "P/B unavailable"),
            log.number_or(quote.ev_to_ebitda, 0, "valuation.evToEbitda", "EV/EBITDA unavailable"),
        )
    ]
    industry_valuation = industry_benchmarks(sector, company_valuation)

    health_max = max(total_cash or 0, total_debt or 0, abs(cash_net or 0), 1)
    financial_health = [
        {
            "label": "Cash and equivalents",
            "value": format_compact_dollar(total_cash),
            "width": width_from_value(total_cash, health_max, 30),
            "gradient": "var(--green),var(--green2)",
        },
        {
            "label": "Total debt",
            "value": format_compact_dollar(total_debt),
            "width": width_from_value(total_debt, health_max, 30),
            "gradient": "var(--red),var(--red2)",
        },
        {
            "label": "Net cash (debt)",
            "value": format_compact_dollar(cash_net),
            "width": width_from_value(cash_net, health_max, 30),
            "gradient": "var(--accent),var(--accent2)",
        },
    ]

    good, caution, muted, bad = "var(--green2)", "var(--orange)", "var(--text2)", "var(--red2)"
    de_ok = check_rule(debt_to_equity, 1, operator.le)
    ratio_ok = check_rule(current_ratio, 1.5, operator.ge)
    high_beta = check_rule(beta, 1.8)
    if roe_pct is not None and 15 <= roe_pct <= 20:
        roe_color = good
    elif roe_pct is not None and roe_pct > 0:
        roe_color = caution
    else:
        roe_color = muted
    if peg.value is None:
        peg_color = muted
    else:
        peg_color = good if peg.value <= 1 else caution if peg.value <= 2 else bad

    health_metrics = [
        {
            "label": "D/E ratio",
            "value": f"{number_text(round_to(debt_to_equity, 2))} ({'healthy' if de_ok else 'watch'})"
            if debt_to_equity is not None
            else "N/A",
            "color": good if de_ok else caution,
        },
        {
            "label": "Current ratio",
            "value": f"{number_text(round_to(current_ratio, 2))} ({'healthy' if ratio_ok else 'watch'})"
            if current_ratio is not None
            else "N/A",
            "color": good if ratio_ok else caution,
        },
        {
            "label": "ROE (TTM)",
            "value": _pct_text(roe_pct, 2, missing="N/A (no data)"),
            "color": roe_color,
        },
        {"label": "PEG", "value": peg.display(), "color": peg_color},
        {
            "label": "Beta",
            "value": f"{number_text(round_to(beta, 2))} ({'high volatility' if high_beta else 'moderate'})"
            if beta is not None
            else "N/A",
            "color": caution if high_beta else good,
        },
        {
            "label": "Free cash flow",
            "value": format_compact_dollar(free_cashflow),
            "color": good if free_cashflow is not None and free_cashflow >= 0 else caution,
        },
    ]

    # ---- timeline ----
    next_earnings = to_timeline_date(facts.next_earnings_date)
    latest_q_date = to_timeline_date(_cell(latest_q, "end_date"))
    latest_annual_date = to_timeline_date(_cell(annual_df.iloc[-1], "end_date")) if len(annual_df) else None
    current_quarter = (now.month - 1) // 3 + 1
    next_month_year, next_month = (now.year + 1, 1) if now.month == 12 else (now.year, now.month + 1)

    timeline = [
        {
            "date": latest_annual_date or f"{now.year - 1}-12-31",
            "text": "Latest annual results reflected",
            "status": "done",
        },
        {
            "date": latest_q_date or f"{now.year}-Q{current_quarter}",
            "text": "Latest quarterly results reflected",
            "status": "done",
        },
        {"date": analysis_date, "text": "Report generated and validated", "status": "done"},
        {
            "date": next_earnings or f"{next_month_year}-{next_month:02d}",
            "text": "Confirm next earnings release",
            "status": "pending",
        },
        {"date": f"{now.year}-H2", "text": "Guidance update and execution check", "status": "pending"},
        {"date": f"{now.year + 1}-H1", "text": "Revisit medium-term growth roadmap", "status": "pending"},
    ]

    # ---- competitors ----
    peers = choose_peers(ticker, sector)
    by_symbol = {q.symbol: q for q in peer_quotes}
    peer_rows = [by_symbol[symbol] for symbol in peers if symbol in by_symbol][:MAX_PEERS]

    competitor_labels = [compact_label(company_name_en)]
    competitor_data = [format_billions(market_cap) or 0.1]
    competitor_colors = [SELF_COLOR]
    competitor_rows = [
        [
            company_name_en,
            ticker,
            facts.industry or sector or "Core business",
            format_compact_dollar(market_cap),
            "Subject company",
            "—",
        ]
    ]

    for index, peer in enumerate(peer_rows):
        competitor_labels.append(compact_label(peer.display_name))
        competitor_data.append(format_billions(peer.market_cap) or 0.1)
        competitor_colors.append(PEER_COLORS[index % len(PEER_COLORS)])

        if peer.market_cap is not None and market_cap is not None:
            if peer.market_cap >= market_cap:
                level = "high"
            elif peer.market_cap >= market_cap * 0.5:
                level = "medium"
            else:
                level = "low"
        else:
            level = "medium"

        competitor_rows.append(
            [
                peer.display_name,
                peer.symbol,
                "Listed peer",
                format_compact_dollar(peer.market_cap),
                "Market comparison",
                threat_tag(level),
            ]
        )

    if len(competitor_rows) == 1:
        log.add("competitors", "Peer quotes unavailable; table contains only self row")

    # ---- risks ----
    risks = {
        "items": [
            {
                "label": "Earnings volatility",
                "x": clamp(round_to(beta * 3, 1) if beta is not None else 6, 2, 9),
                "y": 8,
                "r": 20,
                "bg": "rgba(239,68,68,.55)",
                "border": "#ef4444",
            },
            {
                "label": "Valuation reset",
                "x": clamp(round_to(company_valuation[1] / 8, 1), 2, 9),
                "y": 7,
                "r": 18,
                "bg": "rgba(245,158,11,.5)",
                "border": "#f59e0b",
            },
            {
                "label": "Capital structure",
                "x": clamp(round_to(debt_to_equity * 4, 1) if debt_to_equity is not None else 5, 2, 9),
                "y": 6,
                "r": 16,
                "bg": "rgba(139,92,246,.45)",
                "border": "#8b5cf6",
            },
            {"label": "Guidance miss", "x": 6, "y": 8, "r": 17, "bg": "rgba(6,182,212,.45)", "border": "#06b6d4"},
            {"label": "Dilution", "x": 5, "y": 6, "r": 14, "bg": "rgba(236,72,153,.4)", "border": "#ec4899"},
        ],
        "warnings": [
            f"<strong>Earnings sensitivity:</strong> with quarterly revenue at "
            f"{format_millions(latest_q_revenue)}, quarter-to-quarter swings can move the shares sharply.",
            f"<strong>Valuation risk:</strong> at P/S {number_text(company_valuation[1])}x, any growth "
            "slowdown can compress the multiple.",
            f"<strong>Capital structure:</strong> track total debt {format_compact_dollar(total_debt)} and "
            f"net cash (debt) {format_compact_dollar(cash_net)} every quarter.",
            f"<strong>Event risk:</strong> guidance at the next earnings release "
            f"({next_earnings or 'scheduled'}) sets the near-term direction.",
            "<strong>Automation limits:</strong> segment and backlog detail should be checked against "
            "the latest investor relations filings.",
        ],
    }

    # ---- scores ----
    radar = build_radar(
        RadarInputs(
            revenue_yoy_pct=quarterly_yoy,
            net_margin_pct=latest_q_margin,
            market_cap=market_cap,
            net_cash=cash_net,
            current_ratio=current_ratio,
            price_to_sales=company_valuation[1],
            target_upside_pct=target_upside,
        )
    )
    radar_score = radar_report_score(radar["data"], radar_weights)

    composite: CompositeScore = build_composite_score(
        RubricInputs(
            market_cap=market_cap,
            roe_pct=roe_pct,
            revenue_growth_pct=quarterly_yoy,
            annual_growth_pct=annual_growth_pct,
            free_cashflow=free_cashflow,
            net_cash=cash_net,
            current_ratio=current_ratio,
            trailing_pe=trailing_pe,
            forward_pe=forward_pe,
            officer_titles=facts.officer_titles,
            insider_ownership_pct=insider_pct,
        ),
        rubric_weights,
    )
    if composite.criteria:
        report_score, score_source = composite.total, "composite"
    else:
        report_score, score_source = radar_score, "radar"
    report_verdict = to_verdict(report_score)

    bull_case = [
        "<strong>Sustained growth:</strong> if the quarterly and annual revenue trend holds, the "
        "premium multiple can be defended",
        f"<strong>Cash buffer:</strong> {format_compact_dollar(total_cash)} of cash supports the "
        "investment cycle",
        f"<strong>Consensus upside:</strong> {_pct_text(target_upside, missing='needs verification')} "
        "to the mean analyst target",
        "<strong>Portfolio mix:</strong> a core business alongside growth bets keeps the long-term "
        "story intact",
        "<strong>Compounding results:</strong> steady quarterly improvement acts as a long-term signal",
    ]
    bear_case = [
        "<strong>Multiple compression:</strong> slower growth or a guidance miss can de-rate the stock",
        "<strong>Earnings volatility:</strong> large swings in revenue or margin amplify share price moves",
        "<strong>Cash burn:</strong> persistent negative FCF may require additional capital raises",
        "<strong>Macro backdrop:</strong> higher rates and risk-off periods raise discount rates for "
        "growth stocks",
        "<strong>Data gaps:</strong> generated qualitative sections need verification against filings",
    ]

    checklist = [
        [
            "Next earnings release",
            next_earnings or f"{now.year}-Q{min(current_quarter + 1, 4)}",
            "Check revenue, guidance and margin changes",
        ],
        [
            "Revenue growth",
            "Quarterly",
            f"Whether YoY {_pct_text(quarterly_yoy, missing='tracking')} holds",
        ],
        ["Profitability trend", "Quarterly", "Net and gross margin trajectory"],
        ["Balance sheet", "Quarterly", "Cash, debt and FCF together"],
        ["Valuation", "Ongoing", "Resize if the P/S and P/E gap widens"],
        ["Peer comparison", "Quarterly", "Growth and market cap versus listed peers"],
    ]
    for criterion_id, title, cadence in RUBRIC_CHECKLIST:
        criterion = composite.by_id(criterion_id)
        if criterion is None:
            continue
        checklist.append(
            [
                title,
                cadence,
                f"{STATUS_LABELS[criterion.status]} · {criterion.score}/{criterion.weight} · "
                f"{criterion.evidence}",
            ]
        )

    moats = [
        {"icon": "🧩", "name": "Core franchise", "desc": "Execution built up in the main business<br>"
         "Quarterly consistency is the key signal"},
        {"icon": "📈", "name": "Growth momentum", "desc": "Revenue growth and room for guidance raises<br>"
         "Central to defending the multiple"},
        {"icon": "💵", "name": "Liquidity management", "desc": "Cash buffer and disciplined spending<br>"
         "Important downside protection"},
        {"icon": "🛡️", "name": "Risk discipline", "desc": "Valuation, earnings and balance sheet watched "
         "together<br>Improves long-term execution"},
    ]

    report: dict[str, Any] = {
        "ticker": ticker,
        "companyName": company_name,
        "companyNameEn": company_name_en,
        "exchange": exchange,
        "sector": sector,
        "description": description,
        "analysisDate": analysis_date,
        "price": format_price(price),
        "priceChange": f"{format_delta_tag(from_high_pct, 1)} from 52-week high"
        if from_high_pct is not None
        else "-",
        "priceChangeDir": "up" if from_high_pct is not None and from_high_pct > 0 else "down",
        "marketCap": format_compact_dollar(market_cap),
        "marketCapChange": f"{format_delta_tag(from_low_pct, 0)} (52w)" if from_low_pct is not None else "-",
        "weekRange": f"{format_price(low52)} — {format_price(high52)}"
        if low52 is not None and high52 is not None
        else "-",
        "analystRating": map_recommendation(facts.recommendation_key),
        "analystTarget": (
            f"Target {format_price(target_mean)}"
            + (f" ({_signed_arrow(target_upside)})" if target_upside is not None else "")
        )
        if target_mean is not None
        else "Target price needs verification",
        "reportScoreModel": composite.model,
        "reportScore": report_score,
        "reportVerdict": report_verdict,
        "reportScoreBreakdown": composite.to_dict(),
        "keyPoints": key_points,
        "navSections": [dict(section) for section in NAV_SECTIONS],
        "segments": segments,
        "revenueBreakdown": revenue_breakdown,
        "annualRevenue": {
            "labels": projection.labels,
            "data": projection.data,
            "estimateStartIndex": projection.estimate_start_index
            if projection.estimate_start_index is not None
            else 0,
        },
        "quarterlyRevenue": {"labels": quarters.labels, "data": quarters.data},
        "marginTrend": {"labels": margin_labels, "gaap": margin_gaap, "nonGaap": margin_non_gaap},
        "financialTable": financial_table,
        "valuation": {
            "labels": list(VALUATION_LABELS),
            "company": company_valuation,
            "industry": industry_valuation,
        },
        "financialHealth": financial_health,
        "healthMetrics": health_metrics,
        "timeline": timeline,
        "competitorChart": {
            "labels": competitor_labels,
            "data": competitor_data,
            "colors": competitor_colors,
            "chartLabel": f"Peer market cap comparison (generated {analysis_date})",
            "yLabel": "B",
        },
        "competitorTable": {"headers": list(COMPETITOR_HEADERS), "rows": competitor_rows},
        "risks": risks,
        "radar": radar,
        "bullCase": bull_case,
        "bearCase": bear_case,
        "checklist": checklist,
        "moats": moats,
    }

    issues = critical_checks(report)
    placeholders = list(log.items)
    if issues:
        logger.warning(f"{ticker}: critical checks failing: {', '.join(issues)}")

    apply_policy_gates(options, issues, placeholders)

    derivations = {
        "peg": {"value": peg.value, "method": peg.method, "reason": peg.reason},
        "revenueProjection": {
            "growth": projection.growth,
            "usedDefault": projection.used_default,
            "estimateStartIndex": projection.estimate_start_index,
        },
        "quarterlyBackfill": {
            "synthesized": quarters.synthesized,
            "labels": list(quarters.synthesized_labels),
        },
        "radarScore": radar_score,
        "scoreSource": score_source,
    }
    summary_block = {
        "companyNameEn": company_name_en,
        "sector": sector,
        "reportScoreModel": composite.model,
        "reportScore": report_score,
        "reportVerdict": report_verdict,
        "annualPoints": len(projection.data),
        "quarterPoints": len(quarters.data),
    }

    return BuildResult(
        report=report,
        placeholders=placeholders,
        critical_issues=issues,
        derivations=derivations,
        summary=summary_block,
    )

"""Radar score and the 100-point composite rubric.

Two independent surfaces:
1. Radar: six dimensions, each mapped into [1, 10], with a weighted
   aggregate on a 0-100 scale (used only when no composite is available)
2. Composite rubric: five weighted criteria with per-criterion status and
   evidence; the total drives the report verdict

Weight tables are immutable and passed in explicitly so alternate weight
sets can be scored side by side.
"""

import math
import operator
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, fields
from typing import Any

import numpy as np

from stock_report.utils.formatting import format_compact_dollar, number_text
from stock_report.utils.normalize import clamp, round_half_up, round_to
from stock_report.utils.validators import check_rule

REPORT_SCORE_MODEL = "100x-book-v1"

PASS = "pass"
WATCH = "watch"
FAIL = "fail"
UNKNOWN = "unknown"
STATUSES = {PASS, WATCH, FAIL, UNKNOWN}

VERDICTS = ("STRONG BUY", "BUY", "HOLD", "REDUCE", "SELL")

RADAR_LABELS = [
    "Growth",
    "Profitability",
    "Moat",
    "Financial\nHealth",
    "Valuation\nAppeal",
    "Catalyst",
]


# ============================================================================
# WEIGHTS
# ============================================================================


@dataclass(frozen=True)
class RadarWeights:
    """Aggregate weights for the six radar dimensions, in display order."""

    growth: float = 0.24
    profitability: float = 0.19
    moat: float = 0.16
    financial_health: float = 0.17
    valuation: float = 0.12
    catalyst: float = 0.12

    def as_array(self) -> np.ndarray:
        return np.array([getattr(self, f.name) for f in fields(self)], dtype=float)


@dataclass(frozen=True)
class RubricWeights:
    """Point budget per composite criterion."""

    small_cap: int = 25
    roe_quality: int = 20
    reinvestment: int = 20
    reasonable_per: int = 20
    founder_led: int = 15

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ValueError(f"Rubric weight '{f.name}' must be a non-negative integer, got {value!r}")


DEFAULT_RADAR_WEIGHTS = RadarWeights()
DEFAULT_RUBRIC_WEIGHTS = RubricWeights()


# ============================================================================
# RADAR
# ============================================================================


def score_growth(revenue_yoy_pct: float | None) -> int:
    if revenue_yoy_pct is None:
        return 5
    return int(clamp(round_half_up((revenue_yoy_pct + 10) / 6), 1, 10))


def score_profitability(net_margin_pct: float | None) -> int:
    if net_margin_pct is None:
        return 4
    return int(clamp(round_half_up((net_margin_pct + 20) / 4), 1, 10))


def score_moat(market_cap: float | None) -> int:
    """Scale as a moat proxy: larger market caps score higher."""
    if market_cap is None:
        return 5
    if market_cap >= 1e11:
        return 9
    if market_cap >= 3e10:
        return 8
    if market_cap >= 1e10:
        return 7
    if market_cap >= 3e9:
        return 6
    return 5


def score_financial_health(net_cash: float | None, current_ratio: float | None) -> int:
    if net_cash is None:
        cash_score = 5
    else:
        cash_score = 7 if net_cash > 0 else 4
    if current_ratio is None:
        ratio_score = 5
    else:
        ratio_score = int(clamp(round_half_up(current_ratio * 2), 2, 10))
    return int(clamp(round_half_up((cash_score + ratio_score) / 2), 1, 10))


def score_valuation(price_to_sales: float | None) -> int:
    if price_to_sales is None or price_to_sales <= 0:
        return 5
    return int(clamp(round_half_up(12 - price_to_sales / 2), 1, 10))


def score_catalyst(target_upside_pct: float | None) -> int:
    if target_upside_pct is None:
        return 6
    return int(clamp(round_half_up((target_upside_pct + 30) / 7), 1, 10))


@dataclass(frozen=True)
class RadarInputs:
    revenue_yoy_pct: float | None = None
    net_margin_pct: float | None = None
    market_cap: float | None = None
    net_cash: float | None = None
    current_ratio: float | None = None
    price_to_sales: float | None = None
    target_upside_pct: float | None = None


def build_radar(inputs: RadarInputs) -> dict[str, list[Any]]:
    """Radar chart block: labels and the six dimension scores."""
    return {
        "labels": list(RADAR_LABELS),
        "data": [
            score_growth(inputs.revenue_yoy_pct),
            score_profitability(inputs.net_margin_pct),
            score_moat(inputs.market_cap),
            score_financial_health(inputs.net_cash, inputs.current_ratio),
            score_valuation(inputs.price_to_sales),
            score_catalyst(inputs.target_upside_pct),
        ],
    }


def radar_report_score(
    values: Sequence[float | None],
    weights: RadarWeights = DEFAULT_RADAR_WEIGHTS,
) -> int:
    """
    Weighted radar aggregate on a 0-100 scale.

    Only dimensions with a positive weight and a finite value take part;
    their weights are renormalized. Values are clamped to [1, 10]. Returns
    50 when nothing is usable.
    """
    if not values:
        return 50

    data = np.array([np.nan if v is None else float(v) for v in values], dtype=float)
    weight_array = weights.as_array()
    w = np.zeros(len(data), dtype=float)
    n = min(len(data), len(weight_array))
    w[:n] = weight_array[:n]

    mask = np.isfinite(data) & (w > 0)
    if not mask.any():
        return 50

    clipped = np.clip(data[mask], 1, 10)
    average = float(np.dot(clipped, w[mask]) / w[mask].sum())
    return int(clamp(round_half_up(average * 10), 0, 100))


# ============================================================================
# COMPOSITE RUBRIC
# ============================================================================


@dataclass(frozen=True)
class Criterion:
    """One rubric line: 0 <= score <= weight."""

    id: str
    label: str
    weight: int
    score: int
    status: str
    evidence: str

    def __post_init__(self) -> None:
        if self.status not in STATUSES:
            raise ValueError(f"Invalid status '{self.status}'. Must be one of: {STATUSES}")
        if not 0 <= self.score <= self.weight:
            raise ValueError(
                f"Criterion '{self.id}' score {self.score} outside 0..{self.weight}"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "weight": self.weight,
            "score": self.score,
            "status": self.status,
            "evidence": self.evidence,
        }


@dataclass(frozen=True)
class CompositeScore:
    model: str
    criteria: tuple[Criterion, ...]
    total: int
    notes: tuple[str, ...]

    def by_id(self, criterion_id: str) -> Criterion | None:
        return next((c for c in self.criteria if c.id == criterion_id), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "criteria": [c.to_dict() for c in self.criteria],
            "notes": list(self.notes),
        }


@dataclass(frozen=True)
class RubricInputs:
    market_cap: float | None = None
    roe_pct: float | None = None
    revenue_growth_pct: float | None = None
    annual_growth_pct: float | None = None
    free_cashflow: float | None = None
    net_cash: float | None = None
    current_ratio: float | None = None
    trailing_pe: float | None = None
    forward_pe: float | None = None
    officer_titles: tuple[str, ...] = ()
    insider_ownership_pct: float | None = None


def neutral_score(weight: int) -> int:
    return round_half_up(weight / 2)


def status_from_score(score: int, weight: int) -> str:
    if score >= 0.75 * weight:
        return PASS
    if score >= 0.45 * weight:
        return WATCH
    return FAIL


def _banded(criterion_id: str, label: str, weight: int, fraction: float, evidence: str) -> Criterion:
    score = int(clamp(round_half_up(weight * fraction), 0, weight))
    return Criterion(criterion_id, label, weight, score, status_from_score(score, weight), evidence)


def _unknown(criterion_id: str, label: str, weight: int, missing: str) -> Criterion:
    return Criterion(
        criterion_id,
        label,
        weight,
        neutral_score(weight),
        UNKNOWN,
        f"{missing} unavailable; neutral score applied",
    )


def _fmt(value: float, digits: int = 2) -> str:
    return number_text(round_to(value, digits))


def score_small_cap(market_cap: float | None, weight: int) -> Criterion:
    label = "Small market cap with room to grow"
    if market_cap is None:
        return _unknown("small_cap", label, weight, "Market cap")

    if market_cap < 2e10:
        fraction = 1.0
    elif market_cap < 3e10:
        fraction = 0.72
    elif market_cap < 5e10:
        fraction = 0.48
    elif market_cap < 1e11:
        fraction = 0.28
    else:
        fraction = 0.16
    evidence = f"Market cap {format_compact_dollar(market_cap)} (under $20B preferred)"
    return _banded("small_cap", label, weight, fraction, evidence)


def score_roe_quality(roe_pct: float | None, weight: int) -> Criterion:
    label = "ROE in the 15-20% quality band"
    if roe_pct is None:
        return _unknown("roe_quality", label, weight, "ROE")

    if 15 <= roe_pct <= 20:
        fraction = 1.0
    elif 12 <= roe_pct < 15 or 20 < roe_pct <= 25:
        fraction = 0.8
    elif 8 <= roe_pct < 12 or 25 < roe_pct <= 30:
        fraction = 0.6
    elif 0 <= roe_pct < 8 or 30 < roe_pct <= 40:
        fraction = 0.35
    elif roe_pct < 0:
        fraction = 0.1
    else:
        fraction = 0.3
    return _banded("roe_quality", label, weight, fraction, f"ROE {_fmt(roe_pct)}%")


def score_reinvestment(inputs: RubricInputs, weight: int) -> Criterion:
    """
    Reinvestment efficiency from up to three proxies, each scored out of 10.

    Growth (quarterly YoY, else annual), free cash flow sign, and balance
    sheet capacity (net cash and current ratio). The criterion score is the
    mean proxy score scaled to the weight.
    """
    label = "Efficient reinvestment of earnings"
    growth = inputs.revenue_growth_pct if inputs.revenue_growth_pct is not None else inputs.annual_growth_pct
    parts: list[int] = []
    evidence: list[str] = []

    if growth is not None:
        if growth >= 25:
            parts.append(10)
        elif growth >= 15:
            parts.append(8)
        elif growth >= 5:
            parts.append(6)
        elif growth >= 0:
            parts.append(5)
        else:
            parts.append(3)
        evidence.append(f"growth {_fmt(growth, 1)}%")

    fcf = inputs.free_cashflow
    if fcf is not None:
        parts.append(8 if fcf > 0 else 6 if fcf == 0 else 4)
        evidence.append(f"FCF {format_compact_dollar(fcf)}")

    cash, ratio = inputs.net_cash, inputs.current_ratio
    if cash is not None or ratio is not None:
        cash_ok = bool(check_rule(cash, 0))
        ratio_ok = bool(check_rule(ratio, 1.5, operator.ge))
        if cash_ok and ratio_ok:
            parts.append(8)
        elif cash_ok or ratio_ok:
            parts.append(6)
        elif check_rule(ratio, 1, operator.ge):
            parts.append(5)
        else:
            parts.append(3)
        ratio_text = _fmt(ratio) if ratio is not None else "N/A"
        evidence.append(f"net cash {format_compact_dollar(cash)}, current ratio {ratio_text}")

    if not parts:
        return _unknown(
            "reinvestment", label, weight, "Reinvestment proxies (growth, FCF, balance sheet)"
        )

    average = sum(parts) / len(parts)
    return _banded("reinvestment", label, weight, average / 10, " · ".join(evidence))


def score_reasonable_per(trailing_pe: float | None, forward_pe: float | None, weight: int) -> Criterion:
    """Valuation safety margin; positive trailing P/E preferred, then positive forward."""
    label = "P/E not overheated"
    if trailing_pe is not None and trailing_pe > 0:
        per, source = trailing_pe, "Trailing P/E"
    elif forward_pe is not None and forward_pe > 0:
        per, source = forward_pe, "Forward P/E"
    elif trailing_pe is not None:
        per, source = trailing_pe, "Trailing P/E"
    elif forward_pe is not None:
        per, source = forward_pe, "Forward P/E"
    else:
        return _unknown("reasonable_per", label, weight, "P/E")

    if per <= 0:
        fraction = 0.2
    elif 8 <= per <= 30:
        fraction = 1.0
    elif 5 <= per < 8 or 30 < per <= 40:
        fraction = 0.7
    elif 2 <= per < 5 or 40 < per <= 60:
        fraction = 0.4
    else:
        fraction = 0.2
    return _banded("reasonable_per", label, weight, fraction, f"{source} {_fmt(per)}x (8-30 preferred)")


_CEO_RE = re.compile(r"chief executive officer|\bceo\b", re.IGNORECASE)
_FOUNDER_RE = re.compile(r"founder|co-founder|cofounder|founding", re.IGNORECASE)


def detect_founder_ceo(officer_titles: Sequence[str]) -> tuple[bool | None, str]:
    """
    Founder-led signal from officer titles.

    Returns (True, title) for a CEO title carrying a founder marker,
    (False, detail) for CEO titles without one, and (None, detail) when no
    CEO title is present.
    """
    titles = [t for t in officer_titles or () if t]
    if not titles:
        return None, "officer data unavailable"

    has_ceo = False
    for title in titles:
        if not _CEO_RE.search(title):
            continue
        has_ceo = True
        if _FOUNDER_RE.search(title):
            return True, title

    if not has_ceo:
        return None, "no CEO title found"
    return False, "CEO title without founder marker"


def score_founder_led(
    officer_titles: Sequence[str],
    insider_ownership_pct: float | None,
    weight: int,
) -> Criterion:
    """
    Founder-led operation.

    Without a titled CEO the signal stays unknown even when insider
    ownership is known.
    """
    label = "Founder-led operation"
    is_founder, detail = detect_founder_ceo(officer_titles)
    if is_founder is None:
        return _unknown("founder_led", label, weight, f"Founder CEO signal ({detail})")

    insider = insider_ownership_pct
    if is_founder and insider is not None and insider >= 5:
        fraction = 1.0
    elif is_founder:
        fraction = 0.87
    elif insider is not None and insider >= 8:
        fraction = 0.67
    elif insider is not None and insider >= 3:
        fraction = 0.53
    elif insider is None:
        fraction = 0.4
    else:
        fraction = 0.33

    evidence = " · ".join(
        [
            f"Founder CEO: {'yes' if is_founder else 'no'}",
            f"insider ownership: {_fmt(insider) + '%' if insider is not None else 'unknown'}",
            detail,
        ]
    )
    return _banded("founder_led", label, weight, fraction, evidence)


def composite_total(criteria: Iterable[Criterion]) -> int:
    """Sum of criterion scores clamped to [0, 100]."""
    return int(clamp(sum(c.score for c in criteria), 0, 100))


def build_composite_score(
    inputs: RubricInputs,
    weights: RubricWeights = DEFAULT_RUBRIC_WEIGHTS,
) -> CompositeScore:
    """
    Score all five criteria.

    Total is the sum of criterion scores clamped to [0, 100]; each unknown
    criterion contributes one advisory note.
    """
    criteria = (
        score_small_cap(inputs.market_cap, weights.small_cap),
        score_roe_quality(inputs.roe_pct, weights.roe_quality),
        score_reinvestment(inputs, weights.reinvestment),
        score_reasonable_per(inputs.trailing_pe, inputs.forward_pe, weights.reasonable_per),
        score_founder_led(inputs.officer_titles, inputs.insider_ownership_pct, weights.founder_led),
    )
    total = composite_total(criteria)
    notes = tuple(
        f"{c.label}: data unavailable, neutral score applied" for c in criteria if c.status == UNKNOWN
    )
    return CompositeScore(REPORT_SCORE_MODEL, criteria, total, notes)


# ============================================================================
# VERDICT
# ============================================================================


def to_verdict(total: float | None) -> str:
    """Map a 0-100 total onto the verdict bands 80/65/50/35."""
    if total is None or isinstance(total, bool) or not isinstance(total, (int, float)):
        return "HOLD"
    if not math.isfinite(total):
        return "HOLD"
    if total >= 80:
        return "STRONG BUY"
    if total >= 65:
        return "BUY"
    if total >= 50:
        return "HOLD"
    if total >= 35:
        return "REDUCE"
    return "SELL"


def effective_verdict(report: dict[str, Any]) -> str:
    """
    Verdict of a stored report.

    A non-empty ``reportVerdict`` wins; otherwise it is derived from the
    breakdown total, then from ``reportScore``.
    """
    explicit = report.get("reportVerdict")
    if isinstance(explicit, str) and explicit.strip():
        return explicit.strip()

    breakdown = report.get("reportScoreBreakdown")
    if isinstance(breakdown, dict) and isinstance(breakdown.get("total"), (int, float)):
        return to_verdict(breakdown["total"])
    return to_verdict(report.get("reportScore"))

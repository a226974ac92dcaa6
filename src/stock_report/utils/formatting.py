"""Display-string formatting for report fields.

Every formatter accepts ``None`` and returns the conventional "missing"
marker ("-" for money/percent columns) instead of raising.
"""

import re
from datetime import datetime

import pytz

from stock_report.utils.normalize import clamp, round_half_up, round_to


def number_text(value: float) -> str:
    """Render a rounded number without a trailing ".0" (12.0 -> "12", 12.5 -> "12.5")."""
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def format_price(value: float | None) -> str:
    if value is None:
        return "-"
    return f"${round_to(value, 2):.2f}"


def format_compact_dollar(value: float | None) -> str:
    """Format a dollar amount with a T/B/M/K suffix ($1.2B, $850M)."""
    if value is None:
        return "-"

    magnitude = abs(value)
    if magnitude >= 1e12:
        return f"${number_text(round_to(value / 1e12, 1))}T"
    if magnitude >= 1e9:
        return f"${number_text(round_to(value / 1e9, 1))}B"
    if magnitude >= 1e6:
        return f"${number_text(round_to(value / 1e6, 1))}M"
    if magnitude >= 1e3:
        return f"${number_text(round_to(value / 1e3, 1))}K"
    return f"${round_half_up(value)}"


def format_millions(value: float | None) -> str:
    if value is None:
        return "-"
    return f"${number_text(round_to(value / 1e6, 1))}M"


def format_billions(value: float | None) -> float | None:
    """Numeric billions for chart series (one decimal)."""
    if value is None:
        return None
    return round_to(value / 1e9, 1)


def format_percent(value: float | None, digits: int = 1) -> str:
    """Signed percent ("+12.5%", "-3%"); zero carries no sign."""
    if value is None:
        return "-"
    sign = "+" if value > 0 else ""
    return f"{sign}{number_text(round_to(value, digits))}%"


def format_delta_tag(value: float | None, digits: int = 0) -> str:
    """Arrow-tagged magnitude ("▲ 42%", "▼ 7%")."""
    if value is None:
        return "-"
    arrow = "▲" if value >= 0 else "▼"
    return f"{arrow} {number_text(abs(round_to(value, digits)))}%"


def _utc(unix_seconds: float) -> datetime:
    return datetime.fromtimestamp(unix_seconds, tz=pytz.utc)


def unix_to_label(unix_seconds: float | None, annual: bool = False) -> str | None:
    """
    Period label for a statement end date.

    Annual periods render as ``FY2024``; quarters as ``Q3'24`` (calendar
    quarter of the UTC end date).
    """
    if unix_seconds is None:
        return None

    moment = _utc(unix_seconds)
    if annual:
        return f"FY{moment.year}"

    quarter = (moment.month - 1) // 3 + 1
    return f"Q{quarter}'{str(moment.year)[-2:]}"


def to_timeline_date(unix_seconds: float | None) -> str | None:
    """ISO date (UTC) for a unix timestamp, or None."""
    if unix_seconds is None:
        return None
    return _utc(unix_seconds).strftime("%Y-%m-%d")


_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")


def first_sentence(text: str | None) -> str:
    raw = re.sub(r"\s+", " ", str(text or "")).strip()
    if not raw:
        return ""
    return _SENTENCE_BREAK.split(raw, maxsplit=1)[0].strip()


def compact_label(value: str | None) -> str:
    """
    Two-line chart label for long company names.

    Names of up to 12 characters pass through; longer names break after the
    first word (second line capped at 10 chars), or hard-wrap at 10 chars
    when there is no usable space.
    """
    text = str(value or "").strip()
    if not text:
        return "N/A"
    if len(text) <= 12:
        return text

    first_break = text.find(" ")
    if 0 < first_break < len(text) - 1:
        return f"{text[:first_break]}\n{text[first_break + 1:first_break + 11]}"
    return f"{text[:10]}\n{text[10:20]}"


def normalize_exchange(exchange: str | None) -> str:
    raw = str(exchange or "").upper()
    if "NASDAQ" in raw or "NMS" in raw:
        return "NASDAQ"
    if "NYSE" in raw or "NYQ" in raw:
        return "NYSE"
    if "AMEX" in raw or "ASE" in raw:
        return "AMEX"
    return raw or "US"


def map_recommendation(value: str | None) -> str:
    """Collapse upstream recommendation keys into Buy / Hold / Sell."""
    key = str(value or "").lower()
    if key in ("strong_buy", "buy", "outperform"):
        return "Buy"
    if key in ("underperform", "sell", "strong_sell"):
        return "Sell"
    return "Hold"


def width_from_value(value: float | None, max_value: float | None, fallback: int = 20) -> str:
    """CSS width percentage for a bar, clamped to 8..92%."""
    if value is None or max_value is None or max_value <= 0:
        return f"{fallback}%"
    return f"{int(clamp(round_half_up(abs(value) / max_value * 100), 8, 92))}%"


def tag_color(value: float | None) -> str:
    """Badge color for a signed delta."""
    if value is None:
        return "orange"
    if value > 0:
        return "green"
    if value < 0:
        return "red"
    return "blue"


def threat_tag(level: str) -> str:
    if level == "high":
        return "<span class='tag tag-red'>High</span>"
    if level == "medium":
        return "<span class='tag tag-orange'>Medium</span>"
    return "<span class='tag tag-green'>Low</span>"

"""Structural validation of stored report documents.

Validation never raises on a bad document: every violation is collected so
one run reports all defects at once.
"""

import json
import logging
import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from stock_report.scoring import STATUSES, VERDICTS
from stock_report.utils.validators import TICKER_RE, is_http_url, is_iso_date

logger = logging.getLogger(__name__)

ROOT = "root"

BASIC_FIELDS = [
    "ticker",
    "companyName",
    "companyNameEn",
    "exchange",
    "sector",
    "description",
    "analysisDate",
    "price",
    "priceChange",
    "priceChangeDir",
    "marketCap",
    "marketCapChange",
    "weekRange",
    "analystRating",
    "analystTarget",
    "reportVerdict",
]

PRICE_DIRECTIONS = ("up", "down")
TIMELINE_STATUSES = ("done", "pending")
ANALYST_SECTIONS = ("domestic", "international")

_DATED_NAME = re.compile(r"^.+-(\d{4}-\d{2}-\d{2})$")
_BARE_DATE = re.compile(r"^(\d{4}-\d{2}-\d{2})$")


@dataclass(frozen=True)
class ValidationError:
    """One violation: dotted field path plus a human-readable message."""

    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


@dataclass(frozen=True)
class ReportFile:
    """A report read from disk with the identity implied by its location."""

    file: str
    path: Path
    expected_ticker: str
    expected_date: str | None
    document: Any


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and math.isfinite(value)


def _is_text(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


class _Checker:
    """Accumulates errors; each require_* returns the value or None."""

    def __init__(self) -> None:
        self.errors: list[ValidationError] = []

    def add(self, field: str, message: str) -> None:
        self.errors.append(ValidationError(field, message))

    def require_object(self, root: dict, key: str, parent: str = ROOT) -> dict | None:
        value = root.get(key)
        if not isinstance(value, dict):
            self.add(f"{parent}.{key}", "must be an object")
            return None
        return value

    def require_string(self, root: dict, key: str, parent: str = ROOT) -> str | None:
        value = root.get(key)
        if not _is_text(value):
            self.add(f"{parent}.{key}", "must be a non-empty string")
            return None
        return value

    def require_number(self, root: dict, key: str, parent: str = ROOT) -> float | None:
        value = root.get(key)
        if not _is_number(value):
            self.add(f"{parent}.{key}", "must be a number")
            return None
        return value

    def require_array(self, root: dict, key: str, parent: str = ROOT) -> list | None:
        value = root.get(key)
        if not isinstance(value, list):
            self.add(f"{parent}.{key}", "must be an array")
            return None
        return value

    def string_array(self, array: list | None, field: str, min_length: int = 0) -> None:
        if array is None:
            return
        if len(array) < min_length:
            self.add(field, f"must have at least {min_length} items")
        for index, item in enumerate(array):
            if not _is_text(item):
                self.add(f"{field}[{index}]", "must be a non-empty string")

    def number_array(self, array: list | None, field: str, allow_null: bool = False) -> None:
        if array is None:
            return
        for index, item in enumerate(array):
            if allow_null and item is None:
                continue
            if not _is_number(item):
                self.add(f"{field}[{index}]", "must be a number")

    def tuple_rows(self, rows: list | None, field: str, expected_length: int) -> None:
        if rows is None:
            return
        for index, row in enumerate(rows):
            if not isinstance(row, list):
                self.add(f"{field}[{index}]", "must be an array")
                continue
            if len(row) < expected_length:
                self.add(f"{field}[{index}]", f"must contain at least {expected_length} items")
                continue
            for cell_index, cell in enumerate(row):
                if not _is_text(cell):
                    self.add(f"{field}[{index}][{cell_index}]", "must be a non-empty string")

    def same_length(self, field: str, name_a: str, a: list | None, name_b: str, b: list | None) -> None:
        if a is not None and b is not None and len(a) != len(b):
            self.add(field, f"{name_a} and {name_b} must have the same length")

    def object_items(self, items: list | None, field: str, keys: list[str]) -> None:
        for index, item in enumerate(items or []):
            path = f"{field}[{index}]"
            if not isinstance(item, dict):
                self.add(path, "must be an object")
                continue
            for key in keys:
                self.require_string(item, key, path)


def _check_series(
    checker: _Checker,
    stock: dict,
    key: str,
    numeric: list[str],
    colors: bool = False,
    allow_null: bool = False,
) -> dict | None:
    """Labeled series: string labels plus parallel numeric arrays of equal length."""
    parent = f"{ROOT}.{key}"
    block = checker.require_object(stock, key)
    if block is None:
        return None

    labels = checker.require_array(block, "labels", parent)
    checker.string_array(labels, f"{parent}.labels", 1)
    for name in numeric:
        values = checker.require_array(block, name, parent)
        checker.number_array(values, f"{parent}.{name}", allow_null)
        checker.same_length(parent, "labels", labels, name, values)

    if colors:
        color_list = checker.require_array(block, "colors", parent)
        checker.string_array(color_list, f"{parent}.colors", 1)
        checker.same_length(parent, "labels", labels, "colors", color_list)
    return block


def _check_breakdown(checker: _Checker, breakdown: Any) -> None:
    parent = f"{ROOT}.reportScoreBreakdown"
    if not isinstance(breakdown, dict):
        checker.add(parent, "must be an object")
        return

    total = checker.require_number(breakdown, "total", parent)
    if total is not None and not 0 <= total <= 100:
        checker.add(f"{parent}.total", "must be between 0 and 100")

    criteria = checker.require_array(breakdown, "criteria", parent)
    for index, criterion in enumerate(criteria or []):
        path = f"{parent}.criteria[{index}]"
        if not isinstance(criterion, dict):
            checker.add(path, "must be an object")
            continue
        for key in ("id", "label", "evidence"):
            checker.require_string(criterion, key, path)

        weight = criterion.get("weight")
        score = criterion.get("score")
        weight_ok = isinstance(weight, int) and not isinstance(weight, bool) and weight >= 0
        if not weight_ok:
            checker.add(f"{path}.weight", "must be a non-negative integer")
        if not _is_number(score):
            checker.add(f"{path}.score", "must be a number")
        elif weight_ok and not 0 <= score <= weight:
            checker.add(f"{path}.score", "must be between 0 and weight")
        status = criterion.get("status")
        if not isinstance(status, str) or status not in STATUSES:
            checker.add(f"{path}.status", f"must be one of: {', '.join(sorted(STATUSES))}")

    notes = breakdown.get("notes")
    if notes is not None:
        if not isinstance(notes, list):
            checker.add(f"{parent}.notes", "must be an array")
        else:
            checker.string_array(notes, f"{parent}.notes")


def _check_analyst_item(checker: _Checker, item: Any, path: str) -> None:
    if not isinstance(item, dict):
        checker.add(path, "must be an object")
        return

    checker.require_string(item, "title", path)
    checker.require_string(item, "source", path)
    link = checker.require_string(item, "link", path)
    if link is not None and not is_http_url(link.strip()):
        checker.add(f"{path}.link", "must be a valid http/https URL")

    if "publishedDate" in item and not is_iso_date(item["publishedDate"]):
        checker.add(f"{path}.publishedDate", "must use YYYY-MM-DD format")
    if "summary" in item:
        checker.require_string(item, "summary", path)
    if "keyPoints" in item:
        if not isinstance(item["keyPoints"], list):
            checker.add(f"{path}.keyPoints", "must be an array")
        else:
            checker.string_array(item["keyPoints"], f"{path}.keyPoints")


def validate_report(
    document: Any,
    expected_ticker: str | None = None,
    expected_date: str | None = None,
) -> list[ValidationError]:
    """
    Validate a report document.

    Args:
        document: Parsed JSON document
        expected_ticker: Ticker implied by the storage location
        expected_date: Analysis date implied by the file name

    Returns:
        Every violation found (empty when the document is valid)
    """
    if not isinstance(document, dict):
        return [ValidationError(ROOT, "must be a JSON object")]

    stock = document
    checker = _Checker()

    for field in BASIC_FIELDS:
        checker.require_string(stock, field)
    report_score = checker.require_number(stock, "reportScore")

    ticker = stock.get("ticker")
    if _is_text(ticker) and not TICKER_RE.match(ticker):
        checker.add(f"{ROOT}.ticker", "must match ^[A-Z0-9._-]{1,15}$")

    if stock.get("priceChangeDir") not in PRICE_DIRECTIONS:
        checker.add(f"{ROOT}.priceChangeDir", "must be either 'up' or 'down'")

    analysis_date = stock.get("analysisDate")
    if _is_text(analysis_date) and not is_iso_date(analysis_date):
        checker.add(f"{ROOT}.analysisDate", "must use YYYY-MM-DD format")

    if report_score is not None and not 0 <= report_score <= 100:
        checker.add(f"{ROOT}.reportScore", "must be between 0 and 100")

    if stock.get("reportVerdict") not in VERDICTS:
        checker.add(f"{ROOT}.reportVerdict", f"must be one of: {', '.join(VERDICTS)}")

    if "reportScoreBreakdown" in stock:
        _check_breakdown(checker, stock["reportScoreBreakdown"])

    key_points = checker.require_array(stock, "keyPoints")
    checker.string_array(key_points, f"{ROOT}.keyPoints", 5)

    nav_sections = checker.require_array(stock, "navSections")
    checker.object_items(nav_sections, f"{ROOT}.navSections", ["id", "label"])

    segments = checker.require_array(stock, "segments")
    checker.object_items(
        segments, f"{ROOT}.segments", ["name", "icon", "color", "backlog", "description", "revenue"]
    )

    _check_series(checker, stock, "revenueBreakdown", ["data"], colors=True)

    annual = _check_series(checker, stock, "annualRevenue", ["data"])
    if annual is not None:
        parent = f"{ROOT}.annualRevenue"
        estimate_index = checker.require_number(annual, "estimateStartIndex", parent)
        labels = annual.get("labels")
        if estimate_index is not None:
            if not isinstance(estimate_index, int) and not estimate_index.is_integer():
                checker.add(f"{parent}.estimateStartIndex", "must be an integer")
            elif isinstance(labels, list) and not 0 <= estimate_index < len(labels):
                checker.add(f"{parent}.estimateStartIndex", "must be within labels range")

    _check_series(checker, stock, "quarterlyRevenue", ["data"])
    _check_series(checker, stock, "marginTrend", ["gaap", "nonGaap"], allow_null=True)

    financial_table = checker.require_array(stock, "financialTable")
    checker.tuple_rows(financial_table, f"{ROOT}.financialTable", 6)

    _check_series(checker, stock, "valuation", ["company", "industry"])

    financial_health = checker.require_array(stock, "financialHealth")
    checker.object_items(financial_health, f"{ROOT}.financialHealth", ["label", "value", "width", "gradient"])

    health_metrics = checker.require_array(stock, "healthMetrics")
    checker.object_items(health_metrics, f"{ROOT}.healthMetrics", ["label", "value", "color"])

    timeline = checker.require_array(stock, "timeline")
    checker.object_items(timeline, f"{ROOT}.timeline", ["date", "text", "status"])
    for index, item in enumerate(timeline or []):
        if isinstance(item, dict) and item.get("status") not in TIMELINE_STATUSES:
            checker.add(f"{ROOT}.timeline[{index}].status", "must be either 'done' or 'pending'")

    chart = _check_series(checker, stock, "competitorChart", ["data"], colors=True)
    if chart is not None:
        checker.require_string(chart, "chartLabel", f"{ROOT}.competitorChart")
        checker.require_string(chart, "yLabel", f"{ROOT}.competitorChart")

    table = checker.require_object(stock, "competitorTable")
    if table is not None:
        parent = f"{ROOT}.competitorTable"
        headers = checker.require_array(table, "headers", parent)
        checker.string_array(headers, f"{parent}.headers", 1)
        rows = checker.require_array(table, "rows", parent)
        for index, row in enumerate(rows or []):
            path = f"{parent}.rows[{index}]"
            if not isinstance(row, list):
                checker.add(path, "must be an array")
                continue
            if headers is not None and len(row) != len(headers):
                checker.add(path, "row length must match headers length")
            for cell_index, cell in enumerate(row):
                if not _is_text(cell):
                    checker.add(f"{path}[{cell_index}]", "must be a non-empty string")

    risks = checker.require_object(stock, "risks")
    if risks is not None:
        parent = f"{ROOT}.risks"
        items = checker.require_array(risks, "items", parent)
        for index, item in enumerate(items or []):
            path = f"{parent}.items[{index}]"
            if not isinstance(item, dict):
                checker.add(path, "must be an object")
                continue
            checker.require_string(item, "label", path)
            for key in ("x", "y", "r"):
                checker.require_number(item, key, path)
            checker.require_string(item, "bg", path)
            checker.require_string(item, "border", path)
        warnings = checker.require_array(risks, "warnings", parent)
        checker.string_array(warnings, f"{parent}.warnings", 1)

    _check_series(checker, stock, "radar", ["data"])

    for key in ("bullCase", "bearCase"):
        values = checker.require_array(stock, key)
        checker.string_array(values, f"{ROOT}.{key}", 1)

    checklist = checker.require_array(stock, "checklist")
    checker.tuple_rows(checklist, f"{ROOT}.checklist", 3)

    moats = checker.require_array(stock, "moats")
    checker.object_items(moats, f"{ROOT}.moats", ["icon", "name", "desc"])

    if "analystReports" in stock:
        reports = stock["analystReports"]
        if not isinstance(reports, dict):
            checker.add(f"{ROOT}.analystReports", "must be an object")
        else:
            for section_name in ANALYST_SECTIONS:
                if section_name not in reports:
                    continue
                path = f"{ROOT}.analystReports.{section_name}"
                section = reports[section_name]
                if not isinstance(section, list):
                    checker.add(path, "must be an array")
                    continue
                for index, item in enumerate(section):
                    _check_analyst_item(checker, item, f"{path}[{index}]")

    if expected_ticker and ticker != expected_ticker:
        checker.add(f"{ROOT}.ticker", f"must match directory name ({expected_ticker})")

    if expected_date and isinstance(analysis_date, str) and analysis_date != expected_date:
        checker.add(f"{ROOT}.analysisDate", f"must match file date ({expected_date})")

    return checker.errors


# ============================================================================
# STORED REPORTS
# ============================================================================


def extract_report_date(filename: str) -> str | None:
    """Date part of ``T-YYYY-MM-DD.json`` or ``YYYY-MM-DD.json``; None otherwise."""
    base = Path(str(filename or "")).name
    if base.endswith(".json"):
        base = base[: -len(".json")]

    direct = _BARE_DATE.match(base)
    if direct:
        return direct.group(1)
    match = _DATED_NAME.match(base)
    return match.group(1) if match else None


def read_report_files(data_dir: Path) -> list[ReportFile]:
    """
    Read every stored report under data_dir.

    Supports the dated layout ``{T}/{T}-{date}.json`` and the legacy flat
    ``{T}.json``. The ``sources/`` tree and ``index.json`` are skipped.

    Raises:
        ValueError: a dated-layout file name carries no date, or a file is not JSON
    """
    data_dir = Path(data_dir)
    files: list[ReportFile] = []

    for entry in sorted(data_dir.iterdir()):
        if entry.is_dir():
            if entry.name == "sources":
                continue
            for report_path in sorted(p for p in entry.iterdir() if p.is_file() and p.suffix == ".json"):
                expected_date = extract_report_date(report_path.name)
                if not expected_date:
                    raise ValueError(f"Invalid report filename format: {report_path.name}")
                files.append(
                    ReportFile(
                        file=f"{entry.name}/{report_path.name}",
                        path=report_path,
                        expected_ticker=entry.name.upper(),
                        expected_date=expected_date,
                        document=json.loads(report_path.read_text(encoding="utf-8")),
                    )
                )
        elif entry.is_file() and entry.suffix == ".json" and entry.name != "index.json":
            files.append(
                ReportFile(
                    file=entry.name,
                    path=entry,
                    expected_ticker=entry.stem.upper(),
                    expected_date=None,
                    document=json.loads(entry.read_text(encoding="utf-8")),
                )
            )

    return sorted(files, key=lambda f: f.file)


def validate_report_files(data_dir: Path) -> dict[str, list[ValidationError]]:
    """Validate every stored report; only files with errors appear in the result."""
    failures: dict[str, list[ValidationError]] = {}
    report_files = read_report_files(data_dir)
    for report_file in report_files:
        errors = validate_report(report_file.document, report_file.expected_ticker, report_file.expected_date)
        if errors:
            failures[report_file.file] = errors

    logger.info(f"Validated {len(report_files)} report file(s), {len(failures)} with errors")
    return failures

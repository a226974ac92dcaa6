"""Stored report tools: validation, index rebuild and single-report reads."""

from time import perf_counter
from typing import Any

from stock_report.config import load_settings
from stock_report.errors import StockReportError
from stock_report.tools.common import error_response
from stock_report.utils.provenance import build_meta
from stock_report.utils.validators import is_iso_date, normalize_ticker
from stock_report.validation import validate_report_files
from stock_report.writer import build_index, report_paths


class ReportNotFoundError(Exception):
    """Stored report does not exist."""

    pass


async def validate_stock_reports(data_dir: str | None = None) -> dict[str, Any]:
    """
    Validate every stored report.

    Returns:
        Dict with per-file errors (only failing files are listed)
    """
    start_time = perf_counter()
    try:
        failures = validate_report_files(load_settings(data_dir).data_dir)
    except (OSError, ValueError) as e:
        return error_response(e)

    return {
        "meta": build_meta("validate_stock_reports", (perf_counter() - start_time) * 1000),
        "valid": not failures,
        "files_with_errors": len(failures),
        "errors": {file: [str(e) for e in errors] for file, errors in failures.items()},
    }


async def build_report_index(data_dir: str | None = None) -> dict[str, Any]:
    """
    Validate all reports and rewrite index.json.

    Returns:
        Dict with the index path and ticker count
    """
    start_time = perf_counter()
    settings = load_settings(data_dir)
    try:
        index = build_index(settings.data_dir)
    except (StockReportError, OSError, ValueError) as e:
        return error_response(e)

    return {
        "meta": build_meta("build_report_index", (perf_counter() - start_time) * 1000),
        "index_path": str(settings.index_path),
        "tickers": [entry["ticker"] for entry in index["stocks"]],
    }


def read_report(ticker: str, date: str, data_dir: str | None = None) -> str:
    """
    Stored report JSON text.

    Raises:
        ValueError: malformed ticker or date
        ReportNotFoundError: no report for that ticker and date
    """
    symbol = normalize_ticker(ticker)
    if not is_iso_date(date):
        raise ValueError(f"Invalid report date: {date}")

    path = report_paths(load_settings(data_dir).data_dir, symbol, date).report
    if not path.is_file():
        raise ReportNotFoundError(f"No report stored for {symbol} on {date}")
    return path.read_text(encoding="utf-8")

"""Report generator tools exposed over MCP."""

from stock_report.tools.generate import generate_stock_report
from stock_report.tools.reports import build_report_index, read_report, validate_stock_reports
from stock_report.tools.resolve import resolve_ticker

__all__ = [
    "build_report_index",
    "generate_stock_report",
    "read_report",
    "resolve_ticker",
    "validate_stock_reports",
]

"""Stock Report MCP Server using FastMCP."""

import json
import logging
import os

from fastmcp import FastMCP

from stock_report import GENERATOR_VERSION, SCHEMA_VERSION, tools
from stock_report.data.http_client import shutdown_executor
from stock_report.tools.reports import ReportNotFoundError

# Configure logging
log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=getattr(logging, log_level, logging.INFO))
logger = logging.getLogger(__name__)

# Create FastMCP server instance
mcp = FastMCP(
    name="stock-report",
)


# ============================================================================
# TOOLS
# ============================================================================


@mcp.tool
async def resolve_ticker(ticker: str | None = None, name: str | None = None) -> str:
    """
    Resolve a company name (or validate a ticker) to exactly one ticker.

    Args:
        ticker: Ticker symbol; used as-is when given
        name: Company name, e.g. "Rocket Lab"

    Returns:
        JSON with ticker, resolution method and registry name, or candidates on ambiguity
    """
    result = await tools.resolve_ticker(ticker=ticker, name=name)
    return json.dumps(result, indent=2, default=str)


@mcp.tool
async def generate_stock_report(
    ticker: str | None = None,
    name: str | None = None,
    strict: bool = True,
    allow_placeholders: bool = True,
    dry_run: bool = True,
    force: bool = False,
    build_index: bool = False,
) -> str:
    """
    Generate a long-term research report for one company.

    Runs as a dry run unless dry_run is false.

    Args:
        ticker: Ticker symbol (e.g., RKLB)
        name: Company name when the ticker is unknown
        strict: Fail when critical data is missing (default: true)
        allow_placeholders: Accept fallback values (default: true)
        dry_run: Skip writing files (default: true)
        force: Overwrite an existing report for the same date
        build_index: Rebuild index.json after writing

    Returns:
        JSON with score summary, placeholders, critical issues and provenance manifest
    """
    result = await tools.generate_stock_report(
        ticker=ticker,
        name=name,
        strict=strict,
        allow_placeholders=allow_placeholders,
        dry_run=dry_run,
        force=force,
        build_index=build_index,
    )
    return json.dumps(result, indent=2, default=str)


@mcp.tool
async def validate_stock_reports() -> str:
    """
    Validate every stored report document.

    Returns:
        JSON with every error of every failing file
    """
    result = await tools.validate_stock_reports()
    return json.dumps(result, indent=2, default=str)


@mcp.tool
async def build_report_index() -> str:
    """
    Validate all stored reports and rebuild index.json.

    Returns:
        JSON with the index path and indexed tickers
    """
    result = await tools.build_report_index()
    return json.dumps(result, indent=2, default=str)


# ============================================================================
# RESOURCES
# ============================================================================


@mcp.resource("report://{ticker}/{date}")
def get_stored_report(ticker: str, date: str) -> str:
    """
    Get a stored report document as JSON.

    Args:
        ticker: Stock ticker symbol
        date: Analysis date (YYYY-MM-DD)

    Returns:
        Report JSON text
    """
    try:
        return tools.read_report(ticker, date)
    except (ValueError, ReportNotFoundError, OSError) as e:
        return f"Error: {e}"


# ============================================================================
# ENTRY POINT
# ============================================================================


def main() -> None:
    """Run the MCP server."""
    logger.info(f"Starting Stock Report MCP Server v{GENERATOR_VERSION} (schema v{SCHEMA_VERSION})")
    try:
        mcp.run()
    finally:
        shutdown_executor()


if __name__ == "__main__":
    main()

"""Report generation tool."""

from time import perf_counter
from typing import Any

from stock_report.config import GeneratorOptions, load_settings
from stock_report.errors import StockReportError
from stock_report.generator import generate_report
from stock_report.tools.common import error_response
from stock_report.utils.provenance import build_meta


async def generate_stock_report(
    ticker: str | None = None,
    name: str | None = None,
    strict: bool = True,
    allow_placeholders: bool = True,
    dry_run: bool = True,
    force: bool = False,
    build_index: bool = False,
    data_dir: str | None = None,
) -> dict[str, Any]:
    """
    Generate a report, by default without writing it.

    Returns:
        Dict with the run outcome, the report summary and the manifest
    """
    start_time = perf_counter()

    try:
        options = GeneratorOptions(
            ticker=ticker or "",
            name=name or "",
            strict=strict,
            allow_placeholders=allow_placeholders,
            force=force,
            dry_run=dry_run,
            build_index=build_index,
        )
        result = await generate_report(options, load_settings(data_dir))
    except (StockReportError, ValueError) as e:
        return error_response(e, (ticker or "").strip().upper() or None)

    return {
        "meta": build_meta("generate_stock_report", (perf_counter() - start_time) * 1000),
        **result.to_dict(),
        "policy": options.to_policy(),
        "manifest": result.manifest,
    }

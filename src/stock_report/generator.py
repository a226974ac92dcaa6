"""End-to-end generation run: resolve, fetch, build, validate, persist."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from stock_report.builder import MARKET_TZ, BuildResult, Placeholder, build_report
from stock_report.config import GeneratorOptions, Settings, load_settings
from stock_report.data.cache import RegistryCache
from stock_report.data.sources import (
    SOURCE_PEERS,
    SOURCE_REGISTRY,
    SOURCE_SUMMARY,
    RawQuote,
    RegistryRow,
    fetch_quotes,
    fetch_registry_table,
    fetch_summary,
    find_registry_row,
    read_local_catalog,
    search_symbols,
    to_facts,
)
from stock_report.errors import CriticalValidationFailure, ReportExistsError, SchemaValidationError, UpstreamFetchError
from stock_report.metrics import choose_peers
from stock_report.resolver import resolve
from stock_report.utils.provenance import build_provenance
from stock_report.validation import validate_report
from stock_report.writer import build_index, build_source_manifest, report_paths, write_report

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    """Outcome of one generation run."""

    ticker: str
    resolution: str
    report_path: Path
    manifest_path: Path
    dry_run: bool
    report: dict[str, Any]
    manifest: dict[str, Any]
    placeholders: list[Placeholder] = field(default_factory=list)
    critical_issues: list[str] = field(default_factory=list)
    summary: dict[str, Any] = field(default_factory=dict)
    index_built: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "ticker": self.ticker,
            "resolution": self.resolution,
            "report_path": str(self.report_path),
            "manifest_path": str(self.manifest_path),
            "dry_run": self.dry_run,
            "placeholders": [p.to_dict() for p in self.placeholders],
            "critical_issues": list(self.critical_issues),
            "summary": dict(self.summary),
            "index_built": self.index_built,
        }


def _gap_provenance(source: str, error: Exception) -> dict[str, Any]:
    return build_provenance(
        source=source,
        type="official" if source == SOURCE_REGISTRY else "market_data",
        url=getattr(error, "url", None),
        attempts=getattr(error, "attempts", 0),
        warnings=[str(error)],
    )


async def _load_registry(
    settings: Settings,
    cache: RegistryCache | None,
    strict: bool,
) -> tuple[list[RegistryRow], dict[str, Any]]:
    """Registry table; a failure is fatal in strict mode and a warning otherwise."""
    try:
        return await fetch_registry_table(settings, cache)
    except UpstreamFetchError as e:
        if strict:
            raise UpstreamFetchError(
                f"Failed to load registry table in strict mode: {e}",
                url=e.url,
                last_error=e,
                attempts=e.attempts,
            ) from e
        logger.warning(f"Registry table unavailable, continuing without it: {e}")
        return [], _gap_provenance(SOURCE_REGISTRY, e)


async def _load_summary(ticker: str, strict: bool) -> tuple[dict[str, Any] | None, dict[str, Any]]:
    try:
        summary, prov = await fetch_summary(ticker)
    except UpstreamFetchError as e:
        if strict:
            raise UpstreamFetchError(
                f"Failed to load summary data for {ticker} in strict mode: {e}",
                url=e.url,
                last_error=e,
                attempts=e.attempts,
            ) from e
        logger.warning(f"Summary data for {ticker} unavailable, continuing: {e}")
        return None, _gap_provenance(SOURCE_SUMMARY, e)

    if summary is None and strict:
        raise UpstreamFetchError(f"Ticker {ticker} summary data is unavailable in strict mode.", url=prov.get("url"))
    return summary, prov


async def _load_peers(ticker: str, summary: dict[str, Any] | None) -> tuple[list[RawQuote], dict[str, Any]]:
    facts = to_facts(summary)
    peers = choose_peers(ticker, f"{facts.sector} {facts.industry}")
    try:
        return await fetch_quotes(peers, source=SOURCE_PEERS)
    except UpstreamFetchError as e:
        logger.warning(f"Peer quotes for {ticker} unavailable: {e}")
        return [], _gap_provenance(SOURCE_PEERS, e)


async def generate_report(
    options: GeneratorOptions,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> GenerationResult:
    """
    Run one generation end to end.

    Nothing is written unless every step succeeded; a dry run performs every
    step except the writes.

    Args:
        options: Run options (ticker or name, gates, write behaviour)
        settings: Paths and upstream settings (defaults from the environment)
        now: Analysis time (defaults to now in America/New_York)

    Returns:
        GenerationResult

    Raises:
        AmbiguityError, NotFoundError: ticker resolution failed
        UpstreamFetchError: a required upstream read failed
        CriticalValidationFailure: strict mode and critical data is missing
        PlaceholderPolicyViolation: placeholders present while disallowed
        SchemaValidationError: the assembled report failed validation
        ReportExistsError: the report exists and force was not given
    """
    settings = settings or load_settings()
    now = now or datetime.now(MARKET_TZ)
    cache = RegistryCache(settings.cache_dir) if settings.registry_cache_ttl > 0 else None

    try:
        local_catalog = read_local_catalog(settings.data_dir)
        provenance: list[dict[str, Any]] = []

        # Name resolution needs the registry up front; a direct ticker does not
        registry_rows: list[RegistryRow] = []
        registry_loaded = not options.ticker
        if registry_loaded:
            registry_rows, registry_prov = await _load_registry(settings, cache, options.strict)
            provenance.append(registry_prov)

        async def _search(name: str) -> list[dict[str, Any]]:
            quotes, prov = await search_symbols(name)
            provenance.append(prov)
            return quotes

        resolved = await resolve(options.ticker, options.name, local_catalog, registry_rows, search=_search)
        ticker = resolved.ticker
        logger.info(f"Resolved {options.ticker or options.name!r} to {ticker} via {resolved.method}")

        jobs = [fetch_quotes([ticker]), _load_summary(ticker, options.strict)]
        if not registry_loaded:
            jobs.append(_load_registry(settings, cache, options.strict))
        results = await asyncio.gather(*jobs)

        (quotes, quote_prov), (summary, summary_prov) = results[0], results[1]
        if not registry_loaded:
            registry_rows, registry_prov = results[2]
            provenance.append(registry_prov)
        provenance.extend([quote_prov, summary_prov])

        registry_entry = find_registry_row(ticker, registry_rows)
        if options.strict and registry_entry is None:
            raise CriticalValidationFailure([f"registry entry missing for {ticker}"])

        quote = next((q for q in quotes if q.symbol == ticker), None)
        if quote is None:
            raise UpstreamFetchError(f"Ticker {ticker} quote lookup failed.", url=quote_prov.get("url"))

        peer_quotes, peer_prov = await _load_peers(ticker, summary)
        provenance.append(peer_prov)

        build: BuildResult = build_report(ticker, registry_entry, quote, summary, peer_quotes, options, now=now)
        for placeholder in build.placeholders:
            logger.debug(f"{ticker}: placeholder {placeholder.field} ({placeholder.reason})")

        analysis_date = build.report["analysisDate"]
        errors = validate_report(build.report, expected_ticker=ticker, expected_date=analysis_date)
        if errors:
            raise SchemaValidationError(errors)

        paths = report_paths(settings.data_dir, ticker, analysis_date)
        if paths.report.exists() and not options.force and not options.dry_run:
            raise ReportExistsError(str(paths.report))

        manifest = build_source_manifest(
            ticker,
            resolved.method,
            options,
            build,
            registry_entry,
            provenance,
            now=now,
        )

        index_built = False
        if options.dry_run:
            logger.info(f"Dry run: {paths.report} not written")
        else:
            write_report(paths, build.report, manifest, force=options.force)
            if options.build_index:
                build_index(settings.data_dir)
                index_built = True

        return GenerationResult(
            ticker=ticker,
            resolution=resolved.method,
            report_path=paths.report,
            manifest_path=paths.manifest,
            dry_run=options.dry_run,
            report=build.report,
            manifest=manifest,
            placeholders=build.placeholders,
            critical_issues=build.critical_issues,
            summary=build.summary,
            index_built=index_built,
        )
    finally:
        if cache is not None:
            cache.close()

"""Report persistence: atomic writes, provenance manifest, index and layout migration."""

import json
import logging
import os
import re
import shutil
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import pytz

from stock_report.builder import BuildResult
from stock_report.config import GeneratorOptions
from stock_report.data.sources import (
    SOURCE_PEERS,
    SOURCE_QUOTE,
    SOURCE_REGISTRY,
    SOURCE_SUMMARY,
    RegistryRow,
)
from stock_report.errors import ReportExistsError, SchemaValidationError
from stock_report.scoring import effective_verdict
from stock_report.utils.normalize import canonical_dumps
from stock_report.utils.validators import TICKER_RE, normalize_report_date
from stock_report.validation import read_report_files, validate_report

logger = logging.getLogger(__name__)

SOURCES_DIR = "sources"
INDEX_FILE = "index.json"

FIELD_SOURCES: dict[str, list[str]] = {
    "companyNameEn": [SOURCE_REGISTRY],
    "price": [SOURCE_QUOTE],
    "marketCap": [SOURCE_QUOTE],
    "weekRange": [SOURCE_QUOTE],
    "analystTarget": [SOURCE_SUMMARY],
    "annualRevenue": [SOURCE_SUMMARY],
    "quarterlyRevenue": [SOURCE_SUMMARY],
    "valuation": [SOURCE_QUOTE, SOURCE_SUMMARY],
    "timeline": [SOURCE_SUMMARY],
    "competitorChart": [SOURCE_PEERS],
    "reportScoreBreakdown": [SOURCE_QUOTE, SOURCE_SUMMARY],
}

_TRAILING_PAREN = re.compile(r"\s*\([^)]*\)\s*$")


# ============================================================================
# ATOMIC WRITES
# ============================================================================


def _discard(temp_name: str) -> None:
    if os.path.exists(temp_name):
        os.unlink(temp_name)


def _stage_json(path: Path, document: Any) -> str:
    """Serialize document into an fsynced temp file beside path and return its name."""
    payload = canonical_dumps(document) + "\n"
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
    except BaseException:
        _discard(temp_name)
        raise
    return temp_name


def write_json_atomic(path: Path, document: Any) -> None:
    """
    Write a JSON document so readers never observe a partial file.

    The document is serialized with sorted keys into a temp file in the
    target directory, fsynced, then renamed over the target. The temp file
    is removed if anything fails before the rename.

    Raises:
        TypeError: document contains values JSON cannot represent
        OSError: the write or rename failed
    """
    path = Path(path)
    temp_name = _stage_json(path, document)
    try:
        os.replace(temp_name, path)
    except BaseException:
        _discard(temp_name)
        raise


@dataclass(frozen=True)
class ReportPaths:
    report: Path
    manifest: Path


def report_paths(data_dir: Path, ticker: str, date: str) -> ReportPaths:
    """Dated layout: ``{T}/{T}-{date}.json`` and ``sources/{T}/{T}-{date}.sources.json``."""
    data_dir = Path(data_dir)
    return ReportPaths(
        report=data_dir / ticker / f"{ticker}-{date}.json",
        manifest=data_dir / SOURCES_DIR / ticker / f"{ticker}-{date}.sources.json",
    )


def write_report(paths: ReportPaths, report: dict[str, Any], manifest: dict[str, Any], force: bool = False) -> None:
    """
    Persist a report and its manifest as a pair.

    Both documents are staged to temp files before either is renamed into
    place. If the manifest rename fails, the freshly renamed report is
    removed again so a report never lands without its manifest.

    Raises:
        ReportExistsError: report exists and force is False
    """
    if paths.report.exists() and not force:
        raise ReportExistsError(str(paths.report))

    staged: list[str] = []
    try:
        staged.append(_stage_json(paths.report, report))
        staged.append(_stage_json(paths.manifest, manifest))
        report_temp, manifest_temp = staged

        os.replace(report_temp, paths.report)
        staged.remove(report_temp)
        try:
            os.replace(manifest_temp, paths.manifest)
        except BaseException:
            paths.report.unlink(missing_ok=True)
            raise
        staged.remove(manifest_temp)
    finally:
        for temp_name in staged:
            _discard(temp_name)

    logger.info(f"Wrote {paths.report} and {paths.manifest}")


# ============================================================================
# PROVENANCE MANIFEST
# ============================================================================


def _manifest_source(prov: dict[str, Any]) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "id": prov.get("source"),
        "type": prov.get("type", "market_data"),
        "url": prov.get("url"),
        "retrievedAt": prov.get("as_of"),
        "attempts": prov.get("attempts", 0),
    }
    if "cache_hit" in prov:
        entry["cacheHit"] = prov["cache_hit"]
    if prov.get("retry_trace"):
        entry["retryTrace"] = prov["retry_trace"]
    if prov.get("warnings"):
        entry["warnings"] = list(prov["warnings"])
    return entry


def build_source_manifest(
    ticker: str,
    resolution_method: str,
    options: GeneratorOptions,
    build: BuildResult,
    registry_entry: RegistryRow | None,
    provenance: list[dict[str, Any]],
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Provenance manifest stored next to a report.

    Args:
        ticker: Resolved ticker
        resolution_method: How the ticker was resolved
        options: Run options (policy block, requested name)
        build: Assembler output (placeholders, checks, derivations)
        registry_entry: Registry row used for the English name, if any
        provenance: One build_provenance dict per upstream read
        now: Generation time (UTC)

    Returns:
        Manifest document
    """
    now = now or datetime.now(pytz.utc)
    return {
        "ticker": ticker,
        "requestedName": options.name or None,
        "resolvedBy": resolution_method,
        "generatedAt": now.astimezone(pytz.utc).isoformat(),
        "asOfDate": build.report.get("analysisDate"),
        "policy": options.to_policy(),
        "sources": [_manifest_source(prov) for prov in provenance],
        "registry": {"cik": registry_entry.cik, "companyNameEn": registry_entry.company_name}
        if registry_entry
        else None,
        "placeholders": [p.to_dict() for p in build.placeholders],
        "checks": {
            "criticalIssues": list(build.critical_issues),
            "annualPoints": build.summary.get("annualPoints"),
            "quarterPoints": build.summary.get("quarterPoints"),
        },
        "derivations": build.derivations,
        "fieldSources": {key: list(value) for key, value in FIELD_SOURCES.items()},
    }


# ============================================================================
# INDEX
# ============================================================================


def _card_tags(stock: dict[str, Any]) -> list[str]:
    tags: list[str] = []
    for segment in stock.get("segments") or []:
        if len(tags) < 3 and isinstance(segment, dict) and isinstance(segment.get("name"), str):
            tags.append(segment["name"])
    for moat in stock.get("moats") or []:
        name = moat.get("name") if isinstance(moat, dict) else None
        if len(tags) < 3 and isinstance(name, str) and name not in tags:
            tags.append(name)
    if not tags:
        tags = [stock.get("exchange"), stock.get("sector")]
    return tags[:3]


def to_card(stock: dict[str, Any]) -> dict[str, Any]:
    """Summary card for the landing page index."""
    raw_change = stock.get("marketCapChange") or stock.get("priceChange") or "-"
    change = _TRAILING_PAREN.sub("", str(raw_change)).strip()
    if "▲" in change or "+" in change:
        change_dir = "up"
    elif "▼" in change or "-" in change:
        change_dir = "down"
    else:
        change_dir = stock.get("priceChangeDir")

    return {
        "ticker": stock.get("ticker"),
        "name": stock.get("companyNameEn"),
        "displayName": stock.get("companyName"),
        "price": stock.get("price"),
        "change": change,
        "changeDir": change_dir,
        "changeBasis": "52w" if stock.get("marketCapChange") else "price",
        "sector": stock.get("sector"),
        "description": stock.get("description"),
        "tags": _card_tags(stock),
        "rating": stock.get("analystRating"),
        "analysisDate": stock.get("analysisDate"),
        "reportScore": stock.get("reportScore"),
        "reportVerdict": effective_verdict(stock),
    }


def build_index(data_dir: Path) -> dict[str, Any]:
    """
    Validate every stored report, then rewrite ``index.json``.

    Returns:
        The index document

    Raises:
        SchemaValidationError: any stored report is invalid (lists all of them)
        ValueError: no reports found, or a report file name is malformed
    """
    data_dir = Path(data_dir)
    files = read_report_files(data_dir)
    if not files:
        raise ValueError(f"No report files found in {data_dir}")

    failures = []
    for report_file in files:
        for error in validate_report(report_file.document, report_file.expected_ticker, report_file.expected_date):
            failures.append(f"{report_file.file}: {error}")
    if failures:
        raise SchemaValidationError(failures, context="Stored report validation failed")

    by_ticker: dict[str, list[dict[str, Any]]] = {}
    for report_file in files:
        by_ticker.setdefault(report_file.document["ticker"], []).append(
            {
                "date": report_file.expected_date or report_file.document["analysisDate"],
                "file": report_file.file,
                "document": report_file.document,
            }
        )

    stocks = []
    for ticker in sorted(by_ticker):
        reports = sorted(by_ticker[ticker], key=lambda r: r["date"], reverse=True)
        stocks.append(
            {
                "ticker": ticker,
                "latest": to_card(reports[0]["document"]),
                "reports": [
                    {
                        "date": r["date"],
                        "file": r["file"],
                        "reportScore": r["document"].get("reportScore"),
                        "reportVerdict": effective_verdict(r["document"]),
                    }
                    for r in reports
                ],
            }
        )

    index = {"stocks": stocks}
    write_json_atomic(data_dir / INDEX_FILE, index)
    logger.info(f"Updated {data_dir / INDEX_FILE} ({len(stocks)} ticker(s), {len(files)} report(s))")
    return index


# ============================================================================
# LEGACY LAYOUT MIGRATION
# ============================================================================


@dataclass(frozen=True)
class _Migration:
    source: Path
    target: Path
    document: dict[str, Any]
    legacy_manifest: Path | None
    manifest_target: Path


def _plan_migrations(data_dir: Path) -> list[_Migration]:
    plans: list[_Migration] = []
    targets: set[Path] = set()

    for path in sorted(data_dir.glob("*.json")):
        if path.name == INDEX_FILE:
            continue
        document = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(document, dict):
            raise ValueError(f"Legacy report is not a JSON object: {path.name}")

        ticker = str(document.get("ticker") or path.stem).strip().upper()
        if not TICKER_RE.match(ticker):
            raise ValueError(f"Invalid ticker in {path.name}: {ticker}")

        date = normalize_report_date(document.get("analysisDate"))
        if not date:
            raise ValueError(f"Invalid analysisDate in {path.name}: {document.get('analysisDate')}")

        paths = report_paths(data_dir, ticker, date)
        if paths.report in targets:
            raise ValueError(f"Duplicate target report path detected: {paths.report}")
        targets.add(paths.report)
        if paths.report.exists():
            raise ReportExistsError(str(paths.report))

        legacy_manifest = data_dir / SOURCES_DIR / f"{ticker}.sources.json"
        if not legacy_manifest.exists():
            legacy_manifest = None
        elif paths.manifest.exists():
            raise ReportExistsError(str(paths.manifest))

        plans.append(
            _Migration(
                source=path,
                target=paths.report,
                document={**document, "ticker": ticker, "analysisDate": date},
                legacy_manifest=legacy_manifest,
                manifest_target=paths.manifest,
            )
        )
    return plans


def migrate_legacy_layout(data_dir: Path) -> list[tuple[Path, Path]]:
    """
    Move flat ``{T}.json`` reports into the dated layout.

    Every move is planned and checked before any file is touched, so a
    conflict leaves the tree unchanged.

    Returns:
        (old path, new path) per migrated report

    Raises:
        ReportExistsError: a target report or manifest already exists
        ValueError: a legacy file has an invalid ticker or date
    """
    data_dir = Path(data_dir)
    plans = _plan_migrations(data_dir)
    if not plans:
        logger.info("No legacy flat report files found")
        return []

    moved = []
    for plan in plans:
        write_json_atomic(plan.target, plan.document)
        if plan.legacy_manifest is not None:
            plan.manifest_target.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(plan.legacy_manifest), str(plan.manifest_target))
        plan.source.unlink()
        moved.append((plan.source, plan.target))
        logger.info(f"Migrated {plan.source.name} -> {plan.target}")

    return moved

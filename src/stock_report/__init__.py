"""Stock report generator: resolve, score, validate and store equity reports."""

import os


def get_generator_version() -> str:
    """Get version with fallback for dev mode."""
    if version := os.environ.get("GENERATOR_VERSION"):
        return version
    try:
        from importlib.metadata import version as pkg_version

        return pkg_version("stock-report")
    except Exception:
        return "dev"


GENERATOR_VERSION = get_generator_version()
# Bump when the report document schema changes materially (new fields, renamed fields, structure changes)
# v1: Initial flat {TICKER}.json documents
# v2: Dated {TICKER}/{TICKER}-{YYYY-MM-DD}.json layout, ISO analysisDate
# v3: reportScoreBreakdown with per-criterion status/evidence, PEG derivation reason
SCHEMA_VERSION = "3"

"""Tests for report assembly."""

from datetime import datetime

import pytest
import pytz

from stock_report.builder import (
    COMPETITOR_HEADERS,
    NAV_SECTIONS,
    Placeholder,
    apply_policy_gates,
    build_report,
    critical_checks,
)
from stock_report.config import GeneratorOptions
from stock_report.errors import CriticalValidationFailure, PlaceholderPolicyViolation
from stock_report.metrics import PEG_PROXY
from stock_report.scoring import UNKNOWN, RubricWeights
from stock_report.validation import validate_report

NY = pytz.timezone("America/New_York")


def _build(summary, quote, peers, registry_entry, options, now, **kwargs):
    return build_report("RKLB", registry_entry, quote, summary, peers, options, now=now, **kwargs)


class TestBuildReport:
    """Tests for the assembled document."""

    def test_identity(self, sample_report) -> None:
        assert sample_report["ticker"] == "RKLB"
        assert sample_report["companyName"] == "Rocket Lab USA, Inc."
        assert sample_report["companyNameEn"] == "Rocket Lab USA, Inc."
        assert sample_report["exchange"] == "NASDAQ"
        assert sample_report["sector"] == "Industrials / Aerospace & Defense"
        assert sample_report["analysisDate"] == "2025-03-10"
        assert sample_report["description"] == (
            "Rocket Lab is an end-to-end space company delivering launch services and spacecraft."
        )

    def test_price_block(self, sample_report) -> None:
        assert sample_report["price"] == "$24.50"
        assert sample_report["priceChange"] == "▼ 26.5% from 52-week high"
        assert sample_report["priceChangeDir"] == "down"
        assert sample_report["marketCap"] == "$11.2B"
        assert sample_report["marketCapChange"] == "▲ 410% (52w)"
        assert sample_report["weekRange"] == "$4.80 — $33.34"
        assert sample_report["analystRating"] == "Buy"
        assert sample_report["analystTarget"] == "Target $27.00 (↑10.2%)"

    def test_annual_revenue_with_estimate(self, sample_report) -> None:
        annual = sample_report["annualRevenue"]

        assert annual["labels"] == ["FY2021", "FY2022", "FY2023", "FY2024", "FY2025E"]
        assert annual["data"] == [62.2, 211.0, 244.6, 436.2, 593.2]
        assert annual["estimateStartIndex"] == 4

    def test_quarterly_revenue(self, sample_report) -> None:
        quarterly = sample_report["quarterlyRevenue"]

        assert quarterly["labels"] == ["Q4'23", "Q1'24", "Q2'24", "Q3'24", "Q4'24"]
        assert quarterly["data"] == [60.0, 92.8, 106.3, 104.8, 132.4]

    def test_margin_trend(self, sample_report) -> None:
        trend = sample_report["marginTrend"]

        assert trend["labels"][-1] == "Q4'24"
        assert len(trend["labels"]) == len(trend["gaap"]) == len(trend["nonGaap"]) == 5
        assert trend["nonGaap"][:4] == [None] * 4
        assert trend["nonGaap"][-1] == 27.0

    def test_valuation(self, sample_report) -> None:
        valuation = sample_report["valuation"]
        assert valuation["company"] == [0, 25.7, 26.0, -95.2]
        assert valuation["industry"] == [35, 8, 4, 20]

    def test_competitors(self, sample_report) -> None:
        chart = sample_report["competitorChart"]
        table = sample_report["competitorTable"]

        assert chart["data"] == [11.2, 8.9, 1.2, 1.6, 1.1]
        assert len(chart["colors"]) == 5
        assert table["headers"] == COMPETITOR_HEADERS
        assert [row[1] for row in table["rows"]] == ["RKLB", "ASTS", "PL", "LUNR", "RDW"]
        assert "Medium" in table["rows"][1][5]
        assert "Low" in table["rows"][2][5]
        assert all(len(row) == len(COMPETITOR_HEADERS) for row in table["rows"])

    def test_timeline_dates(self, sample_report) -> None:
        dates = [item["date"] for item in sample_report["timeline"]]
        assert dates == ["2024-12-31", "2024-12-31", "2025-03-10", "2025-05-01", "2025-H2", "2026-H1"]

    def test_scores(self, sample_report) -> None:
        breakdown = sample_report["reportScoreBreakdown"]

        assert sample_report["reportScore"] == 65
        assert sample_report["reportVerdict"] == "BUY"
        assert sample_report["reportScoreModel"] == "100x-book-v1"
        assert [c["score"] for c in breakdown["criteria"]] == [25, 2, 13, 10, 15]
        assert sample_report["radar"]["data"] == [10, 1, 7, 5, 1, 6]

    def test_rubric_checklist_rows(self, sample_report) -> None:
        rows = sample_report["checklist"]
        assert len(rows) == 11
        assert rows[-1][0] == "[100x] Founder leadership"
        assert rows[-1][2].startswith("Pass · 15/15 · Founder CEO: yes")
        assert rows[9][2].startswith("Insufficient data · 10/20")

    def test_nav_sections_copied(self, sample_report) -> None:
        assert sample_report["navSections"] == NAV_SECTIONS
        assert sample_report["navSections"] is not NAV_SECTIONS

    def test_document_validates(self, sample_report) -> None:
        assert validate_report(sample_report, expected_ticker="RKLB", expected_date="2025-03-10") == []


class TestBookkeeping:
    """Tests for placeholders, derivations and summary."""

    def test_only_trailing_pe_placeholder(self, sample_build) -> None:
        assert [p.field for p in sample_build.placeholders] == ["valuation.trailingPE"]
        assert sample_build.critical_issues == []

    def test_peg_derivation(self, sample_build) -> None:
        peg = sample_build.derivations["peg"]
        assert peg["method"] == PEG_PROXY
        assert peg["value"] == 0.33
        assert "forward P/E unavailable" in peg["reason"]

    def test_projection_derivation(self, sample_build) -> None:
        assert sample_build.derivations["revenueProjection"] == {
            "growth": 0.36,
            "usedDefault": False,
            "estimateStartIndex": 4,
        }
        assert sample_build.derivations["quarterlyBackfill"] == {"synthesized": 0, "labels": []}
        assert sample_build.derivations["scoreSource"] == "composite"

    def test_summary(self, sample_build) -> None:
        assert sample_build.summary == {
            "companyNameEn": "Rocket Lab USA, Inc.",
            "sector": "Industrials / Aerospace & Defense",
            "reportScoreModel": "100x-book-v1",
            "reportScore": 65,
            "reportVerdict": "BUY",
            "annualPoints": 5,
            "quarterPoints": 5,
        }


class TestFallbacks:
    """Tests for fallback values and their placeholders."""

    def test_annual_only_backfills_quarters(
        self, sample_summary, sample_quote, peer_quotes, registry_entry, lenient_options, fixed_now
    ) -> None:
        del sample_summary["incomeStatementHistoryQuarterly"]

        build = _build(sample_summary, sample_quote, peer_quotes, registry_entry, lenient_options, fixed_now)

        quarterly = build.report["quarterlyRevenue"]
        assert quarterly["labels"] == ["Q1'25", "Q2'25", "Q3'25", "Q4'25"]
        assert quarterly["data"] == [112.3, 115.6, 118.9, 122.1]
        assert "quarterlyRevenue" in [p.field for p in build.placeholders]
        assert build.derivations["quarterlyBackfill"]["synthesized"] == 4

    def test_quarterly_only_annualizes(
        self, sample_summary, sample_quote, peer_quotes, registry_entry, lenient_options, fixed_now
    ) -> None:
        del sample_summary["incomeStatementHistory"]

        build = _build(sample_summary, sample_quote, peer_quotes, registry_entry, lenient_options, fixed_now)

        annual = build.report["annualRevenue"]
        assert annual["labels"] == ["FY2025", "FY2026E"]
        assert annual["data"] == [529.6, 720.3]
        assert "annualRevenue" in [p.field for p in build.placeholders]

    def test_default_growth_recorded(
        self, sample_summary, sample_quote, peer_quotes, registry_entry, lenient_options, fixed_now
    ) -> None:
        del sample_summary["earningsTrend"]
        del sample_summary["financialData"]["revenueGrowth"]

        build = _build(sample_summary, sample_quote, peer_quotes, registry_entry, lenient_options, fixed_now)

        assert build.report["annualRevenue"]["data"][-1] == 488.5
        assert "annualRevenue.projection" in [p.field for p in build.placeholders]
        assert build.derivations["revenueProjection"]["usedDefault"] is True

    def test_missing_registry_name(self, sample_summary, sample_quote, peer_quotes, lenient_options, fixed_now) -> None:
        build = _build(sample_summary, sample_quote, peer_quotes, None, lenient_options, fixed_now)

        assert build.report["companyNameEn"] == "Rocket Lab USA, Inc."
        assert build.placeholders[0] == Placeholder("companyNameEn", "Registry company name is unavailable")

    def test_no_peers(self, sample_summary, sample_quote, registry_entry, lenient_options, fixed_now) -> None:
        build = _build(sample_summary, sample_quote, [], registry_entry, lenient_options, fixed_now)

        assert len(build.report["competitorTable"]["rows"]) == 1
        assert "competitors" in [p.field for p in build.placeholders]

    def test_unknown_criteria(
        self, sample_summary, sample_quote, peer_quotes, registry_entry, lenient_options, fixed_now
    ) -> None:
        """Test missing ROE and officers fall back to neutral scores."""
        del sample_summary["financialData"]["returnOnEquity"]
        del sample_summary["assetProfile"]["companyOfficers"]

        build = _build(sample_summary, sample_quote, peer_quotes, registry_entry, lenient_options, fixed_now)

        criteria = {c["id"]: c for c in build.report["reportScoreBreakdown"]["criteria"]}
        assert (criteria["roe_quality"]["status"], criteria["roe_quality"]["score"]) == (UNKNOWN, 10)
        assert (criteria["founder_led"]["status"], criteria["founder_led"]["score"]) == (UNKNOWN, 8)
        assert len(build.report["reportScoreBreakdown"]["notes"]) == 3

    def test_december_next_month_wraps(
        self, sample_summary, sample_quote, peer_quotes, registry_entry, lenient_options
    ) -> None:
        del sample_summary["calendarEvents"]
        now = NY.localize(datetime(2025, 12, 15, 9, 0))

        build = _build(sample_summary, sample_quote, peer_quotes, registry_entry, lenient_options, now)

        assert build.report["timeline"][3]["date"] == "2026-01"
        assert build.report["checklist"][0][1] == "2025-Q4"

    def test_custom_rubric_weights(
        self, sample_summary, sample_quote, peer_quotes, registry_entry, lenient_options, fixed_now
    ) -> None:
        weights = RubricWeights(small_cap=40, roe_quality=10, reinvestment=20, reasonable_per=15, founder_led=15)

        build = _build(
            sample_summary, sample_quote, peer_quotes, registry_entry, lenient_options, fixed_now, rubric_weights=weights
        )

        criteria = build.report["reportScoreBreakdown"]["criteria"]
        assert [c["weight"] for c in criteria] == [40, 10, 20, 15, 15]
        assert criteria[0]["score"] == 40


PARALLEL_SERIES = {
    "revenueBreakdown": ["data", "colors"],
    "annualRevenue": ["data"],
    "quarterlyRevenue": ["data"],
    "marginTrend": ["gaap", "nonGaap"],
    "valuation": ["company", "industry"],
    "competitorChart": ["data", "colors"],
    "radar": ["data"],
}


def _drop_quarterly(summary, peers):
    del summary["incomeStatementHistoryQuarterly"]
    return summary, peers


def _drop_annual(summary, peers):
    del summary["incomeStatementHistory"]
    return summary, peers


class TestParallelArrays:
    """Tests that every chart series stays aligned with its labels."""

    @pytest.mark.parametrize(
        "variant",
        [
            lambda summary, peers: (summary, peers),
            lambda summary, peers: (None, peers),
            lambda summary, peers: (summary, []),
            _drop_quarterly,
            _drop_annual,
        ],
        ids=["full", "no-summary", "no-peers", "annual-only", "quarterly-only"],
    )
    def test_series_lengths(
        self, variant, sample_summary, sample_quote, peer_quotes, registry_entry, lenient_options, fixed_now
    ) -> None:
        summary, peers = variant(sample_summary, list(peer_quotes))

        report = _build(summary, sample_quote, peers, registry_entry, lenient_options, fixed_now).report

        for key, arrays in PARALLEL_SERIES.items():
            labels = report[key]["labels"]
            for name in arrays:
                assert len(report[key][name]) == len(labels), f"{key}.{name}"
        headers = report["competitorTable"]["headers"]
        assert all(len(row) == len(headers) for row in report["competitorTable"]["rows"])
        assert not [e for e in validate_report(report) if "same length" in e.message]


class TestPolicyGates:
    """Tests for the strict and placeholder gates."""

    def test_strict_missing_summary(self, sample_quote, peer_quotes, registry_entry, fixed_now) -> None:
        options = GeneratorOptions(ticker="RKLB", strict=True)

        with pytest.raises(CriticalValidationFailure) as exc_info:
            _build(None, sample_quote, peer_quotes, registry_entry, options, fixed_now)

        assert exc_info.value.issues == [
            "annualRevenue.data needs at least 2 points",
            "quarterlyRevenue.data needs at least 4 points",
        ]

    def test_lenient_missing_summary(self, sample_quote, peer_quotes, registry_entry, lenient_options, fixed_now) -> None:
        build = _build(None, sample_quote, peer_quotes, registry_entry, lenient_options, fixed_now)

        assert len(build.critical_issues) == 2
        fields = [p.field for p in build.placeholders]
        assert "description" in fields
        assert "marginTrend" in fields
        assert build.report["annualRevenue"]["estimateStartIndex"] == 0

    def test_placeholders_disallowed(self, sample_summary, sample_quote, peer_quotes, registry_entry, fixed_now) -> None:
        options = GeneratorOptions(ticker="RKLB", strict=True, allow_placeholders=False)

        with pytest.raises(PlaceholderPolicyViolation) as exc_info:
            _build(sample_summary, sample_quote, peer_quotes, registry_entry, options, fixed_now)

        assert exc_info.value.fields == ["valuation.trailingPE"]

    def test_strict_gate_runs_first(self) -> None:
        options = GeneratorOptions(ticker="RKLB", strict=True, allow_placeholders=False)

        with pytest.raises(CriticalValidationFailure):
            apply_policy_gates(options, ["price missing"], [Placeholder("description", "x")])

    def test_gates_pass(self) -> None:
        options = GeneratorOptions(ticker="RKLB", strict=False, allow_placeholders=True)
        apply_policy_gates(options, ["price missing"], [Placeholder("description", "x")])

    def test_critical_checks(self) -> None:
        report = {
            "ticker": "RKLB",
            "companyNameEn": "",
            "price": "-",
            "marketCap": "$1B",
            "weekRange": "-",
            "annualRevenue": {"data": [1, 2]},
            "quarterlyRevenue": {"data": [1, 2, 3]},
        }
        assert critical_checks(report) == [
            "companyNameEn missing",
            "price missing",
            "weekRange missing",
            "quarterlyRevenue.data needs at least 4 points",
        ]

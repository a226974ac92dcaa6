"""Tests for derived financial metrics."""

from datetime import datetime

import pytest

from stock_report.metrics import (
    DEFAULT_PEERS,
    PEG_FORWARD,
    PEG_PROXY,
    PEG_UNAVAILABLE,
    backfill_quarters,
    choose_peers,
    derive_peg,
    industry_benchmarks,
    margin_pct,
    net_cash,
    normalize_debt_to_equity,
    pct_from,
    project_revenue,
    to_pct,
    yoy_change,
)

NOW = datetime(2025, 3, 10)


class TestBasicRatios:
    """Tests for the simple derived figures."""

    def test_yoy_change(self):
        assert yoy_change(120, 100) == 20
        assert yoy_change(1, 0) is None
        assert yoy_change(None, 100) is None

    def test_net_cash(self):
        assert net_cash(420e6, 470e6) == -50e6
        assert net_cash(420e6, None) is None

    def test_margin_pct(self):
        assert margin_pct(25, 100) == 25
        assert margin_pct(25, 0) is None

    @pytest.mark.parametrize("value,expected", [(0.36, 36), (-0.38, -38), (36, 36)])
    def test_to_pct(self, value, expected):
        assert to_pct(value) == pytest.approx(expected)

    def test_to_pct_missing(self):
        assert to_pct(None) is None

    def test_debt_to_equity_percentage(self):
        """Values above 10 are reported as percentages upstream."""
        assert normalize_debt_to_equity(130) == 1.3
        assert normalize_debt_to_equity(2) == 2

    def test_pct_from(self):
        assert pct_from(24.5, 33.34) == pytest.approx(-26.51, abs=0.01)
        assert pct_from(24.5, 0) is None


class TestDerivePeg:
    """Tests for the PEG fallback chain."""

    def test_forward_tier(self):
        result = derive_peg(40, 20, 10, [100, 150])
        assert result.value == 2.0
        assert result.method == PEG_FORWARD
        assert result.reason is None
        assert result.display() == "2.00x"

    def test_proxy_tier_records_reason(self):
        """Test the P/S proxy explains why the forward tier was skipped."""
        result = derive_peg(None, 45, 25.7, [244.6, 436.2])

        assert result.method == PEG_PROXY
        assert result.value == 0.33
        assert "forward P/E unavailable" in result.reason
        assert "P/S-to-growth proxy" in result.display()

    def test_proxy_when_eps_growth_negative(self):
        result = derive_peg(20, -5, 10, [100, 150])
        assert result.method == PEG_PROXY
        assert result.reason.startswith("EPS growth estimate unavailable")

    def test_unavailable(self):
        result = derive_peg(None, None, None, [100])
        assert result.value is None
        assert result.method == PEG_UNAVAILABLE
        assert "P/S unavailable" in result.reason
        assert result.display().startswith("N/A (")

    def test_unavailable_when_revenue_shrinks(self):
        result = derive_peg(20, -5, 10, [100, 90])
        assert result.method == PEG_UNAVAILABLE
        assert "annual revenue growth unavailable or non-positive" in result.reason


class TestProjectRevenue:
    """Tests for the annual estimate point."""

    def test_default_growth(self):
        projection = project_revenue(["FY2023", "FY2024"], [100.0, 120.0], None, NOW)

        assert projection.labels == ["FY2023", "FY2024", "FY2025E"]
        assert projection.data == [100.0, 120.0, 134.4]
        assert projection.estimate_start_index == 2
        assert projection.used_default is True
        assert projection.growth == 0.12

    def test_external_growth(self):
        projection = project_revenue(["FY2024"], [436.2], 0.36, NOW)
        assert projection.data[-1] == 593.2
        assert projection.used_default is False

    def test_unparseable_label_uses_clock(self):
        projection = project_revenue(["2024"], [10.0], 0.1, NOW)
        assert projection.labels[-1] == "FY2026E"
        assert projection.data[-1] == 11.0

    def test_empty_series(self):
        projection = project_revenue([], [], 0.2, NOW)
        assert projection.data == []
        assert projection.estimate_start_index is None

    def test_inputs_not_mutated(self):
        labels, data = ["FY2024"], [10.0]
        project_revenue(labels, data, None, NOW)
        assert labels == ["FY2024"]
        assert data == [10.0]


class TestBackfillQuarters:
    """Tests for quarterly padding."""

    def test_full_backfill(self):
        series = backfill_quarters([], [], 436.2, NOW)

        assert series.labels == ["Q1'25", "Q2'25", "Q3'25", "Q4'25"]
        assert series.data == [112.3, 115.6, 118.9, 122.1]
        assert series.synthesized == 4

    def test_partial_backfill(self):
        """Test k counts from the existing points."""
        series = backfill_quarters(["Q3'24", "Q4'24"], [90.0, 95.0], 400, NOW)

        assert series.labels == ["Q3'24", "Q4'24", "Q3'25", "Q4'25"]
        assert series.data == [90.0, 95.0, 109.0, 112.0]
        assert series.synthesized_labels == ["Q3'25", "Q4'25"]

    def test_no_base(self):
        series = backfill_quarters([], [], None, NOW)
        assert series.data == []
        assert series.synthesized == 0

    def test_enough_points(self):
        labels = ["Q1'24", "Q2'24", "Q3'24", "Q4'24"]
        series = backfill_quarters(labels, [1.0, 2.0, 3.0, 4.0], 100, NOW)
        assert series.labels == labels
        assert series.synthesized == 0


class TestBenchmarksAndPeers:
    """Tests for sector lookups."""

    def test_sector_benchmarks(self):
        assert industry_benchmarks("Industrials Aerospace & Defense", [25.7, 26.0, 1.0, 2.0]) == [35, 8, 4, 20]

    def test_fallback_benchmarks(self):
        assert industry_benchmarks("Consumer Defensive", [10.0, 0.0]) == [6.0, 1.0]

    def test_peer_map(self):
        assert choose_peers("rklb", "") == ["ASTS", "PL", "LUNR", "RDW"]

    def test_sector_peers(self):
        assert choose_peers("XYZ", "Technology Semiconductors") == ["NVDA", "AMD", "AVGO", "TSM"]

    def test_default_peers(self):
        assert choose_peers("XYZ", "Utilities") == DEFAULT_PEERS

"""Pytest configuration and fixtures."""

import copy
from datetime import datetime

import pytest
import pytz

from stock_report.config import GeneratorOptions, Settings
from stock_report.data.sources import RegistryRow, to_quote

# Statement end dates (UTC midnight)
FY2021 = 1640908800  # 2021-12-31
FY2022 = 1672444800  # 2022-12-31
FY2023 = 1703980800  # 2023-12-31
Q1_2024 = 1711843200  # 2024-03-31
Q2_2024 = 1719705600  # 2024-06-30
Q3_2024 = 1727654400  # 2024-09-30
FY2024 = 1735603200  # 2024-12-31
NEXT_EARNINGS = 1746057600  # 2025-05-01


def _raw(value: float) -> dict:
    return {"raw": value, "fmt": str(value)}


def _statement(end_date: int, revenue: float, net_income: float) -> dict:
    return {
        "endDate": _raw(end_date),
        "totalRevenue": _raw(revenue),
        "netIncome": _raw(net_income),
    }


SUMMARY = {
    "assetProfile": {
        "sector": "Industrials",
        "industry": "Aerospace & Defense",
        "longBusinessSummary": (
            "Rocket Lab is an end-to-end space company delivering launch services and spacecraft. "
            "It designs and manufactures the Electron and Neutron launch vehicles."
        ),
        "companyOfficers": [
            {"name": "Peter Beck", "title": "Founder, CEO & Director"},
            {"name": "Adam Spice", "title": "Chief Financial Officer"},
        ],
    },
    "financialData": {
        "currentPrice": _raw(24.5),
        "targetMeanPrice": _raw(27.0),
        "recommendationKey": "buy",
        "totalCash": _raw(420_000_000),
        "totalDebt": _raw(470_000_000),
        "grossMargins": _raw(0.27),
        "returnOnEquity": _raw(-0.38),
        "debtToEquity": _raw(130.0),
        "currentRatio": _raw(2.5),
        "freeCashflow": _raw(-100_000_000),
        "revenueGrowth": _raw(1.21),
    },
    "defaultKeyStatistics": {
        "heldPercentInsiders": _raw(0.11),
        "beta": _raw(2.1),
    },
    "calendarEvents": {"earnings": {"earningsDate": [_raw(NEXT_EARNINGS)]}},
    "earningsTrend": {
        "trend": [
            {"period": "0y", "growth": _raw(0.2)},
            {
                "period": "+1y",
                "revenueEstimate": {"growth": _raw(0.36)},
                "earningsEstimate": {"growth": _raw(0.45)},
            },
        ]
    },
    "incomeStatementHistory": {
        "incomeStatementHistory": [
            # Upstream lists newest first
            _statement(FY2024, 436_200_000, -190_200_000),
            _statement(FY2023, 244_600_000, -182_600_000),
            _statement(FY2022, 211_000_000, -135_900_000),
            _statement(FY2021, 62_200_000, -117_300_000),
        ]
    },
    "incomeStatementHistoryQuarterly": {
        "incomeStatementHistory": [
            _statement(FY2024, 132_400_000, -51_900_000),
            _statement(Q3_2024, 104_800_000, -51_900_000),
            _statement(Q2_2024, 106_300_000, -41_600_000),
            _statement(Q1_2024, 92_800_000, -44_300_000),
            _statement(FY2023, 60_000_000, -46_400_000),
        ]
    },
}

QUOTE_ROW = {
    "symbol": "RKLB",
    "shortName": "Rocket Lab USA, Inc.",
    "longName": "Rocket Lab USA, Inc.",
    "fullExchangeName": "NasdaqCM",
    "exchange": "NCM",
    "quoteType": "EQUITY",
    "currency": "USD",
    "marketCap": 11_200_000_000,
    "regularMarketPrice": 24.5,
    "fiftyTwoWeekLow": 4.8,
    "fiftyTwoWeekHigh": 33.34,
    "priceToSalesTrailing12Months": 25.7,
    "priceToBook": 26.0,
    "enterpriseToEbitda": -95.2,
    "beta": 2.1,
}

PEER_ROWS = [
    {"symbol": "ASTS", "longName": "AST SpaceMobile, Inc.", "marketCap": 8_900_000_000},
    {"symbol": "PL", "longName": "Planet Labs PBC", "marketCap": 1_200_000_000},
    {"symbol": "LUNR", "longName": "Intuitive Machines, Inc.", "marketCap": 1_600_000_000},
    {"symbol": "RDW", "longName": "Redwire Corporation", "marketCap": 1_100_000_000},
]

REGISTRY_PAYLOAD = {
    "0": {"cik_str": 1819994, "ticker": "RKLB", "title": "Rocket Lab USA, Inc."},
    "1": {"cik_str": 320193, "ticker": "AAPL", "title": "Apple Inc."},
    "2": {"cik_str": 1754301, "ticker": "ASTS", "title": "AST SpaceMobile, Inc."},
}


@pytest.fixture
def sample_summary() -> dict:
    """Statement summary for a loss-making, fast-growing small cap."""
    return copy.deepcopy(SUMMARY)


@pytest.fixture
def sample_quote_row() -> dict:
    """Raw quote row as returned by the quote endpoint."""
    return dict(QUOTE_ROW)


@pytest.fixture
def sample_quote(sample_quote_row):
    """Normalized primary quote."""
    return to_quote(sample_quote_row)


@pytest.fixture
def peer_quotes() -> list:
    """Normalized peer quotes for the RKLB peer set."""
    return [to_quote(row) for row in PEER_ROWS]


@pytest.fixture
def registry_payload() -> dict:
    """Registry payload in the upstream index-keyed shape."""
    return copy.deepcopy(REGISTRY_PAYLOAD)


@pytest.fixture
def registry_entry() -> RegistryRow:
    return RegistryRow(ticker="RKLB", company_name="Rocket Lab USA, Inc.", cik="0001819994")


@pytest.fixture
def fixed_now() -> datetime:
    """Analysis time: 2025-03-10 10:00 in New York."""
    return pytz.timezone("America/New_York").localize(datetime(2025, 3, 10, 10, 0))


@pytest.fixture
def lenient_options() -> GeneratorOptions:
    return GeneratorOptions(ticker="RKLB", strict=False)


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings rooted in a temp directory with the registry cache disabled."""
    return Settings(data_dir=tmp_path / "data", cache_dir=tmp_path / "cache", registry_cache_ttl=0)


@pytest.fixture
def sample_build(registry_entry, sample_quote, sample_summary, peer_quotes, lenient_options, fixed_now):
    """Assembler output for the sample payloads."""
    from stock_report.builder import build_report

    return build_report(
        "RKLB", registry_entry, sample_quote, sample_summary, peer_quotes, lenient_options, now=fixed_now
    )


@pytest.fixture
def sample_report(sample_build) -> dict:
    """A complete, valid report document."""
    return copy.deepcopy(sample_build.report)

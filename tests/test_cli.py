"""Tests for the command line interface."""

import copy
import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from stock_report import GENERATOR_VERSION
from stock_report.builder import Placeholder
from stock_report.cli import cli
from stock_report.errors import CriticalValidationFailure, ReportExistsError
from stock_report.generator import GenerationResult
from stock_report.writer import report_paths, write_json_atomic


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def data_dir(tmp_path) -> Path:
    path = tmp_path / "data"
    path.mkdir()
    return path


def _result(data_dir: Path, dry_run: bool = True) -> GenerationResult:
    paths = report_paths(data_dir, "RKLB", "2025-03-10")
    return GenerationResult(
        ticker="RKLB",
        resolution="direct_input",
        report_path=paths.report,
        manifest_path=paths.manifest,
        dry_run=dry_run,
        report={},
        manifest={},
        placeholders=[Placeholder("valuation.trailingPE", "Trailing P/E unavailable")],
        critical_issues=[],
        summary={"reportScore": 65, "reportVerdict": "BUY"},
    )


class TestGenerateCommand:
    """Tests for `stock-report generate`."""

    def test_dry_run_output(self, runner, data_dir) -> None:
        with patch("stock_report.cli.generate_report", new=AsyncMock(return_value=_result(data_dir))) as mock_gen:
            result = runner.invoke(cli, ["--data-dir", str(data_dir), "generate", "--ticker", "rklb", "--dry-run"])

        assert result.exit_code == 0, result.output
        assert "Generated RKLB" in result.output
        assert "- resolution: direct_input" in result.output
        assert "- score: 65 (BUY)" in result.output
        assert "* valuation.trailingPE: Trailing P/E unavailable" in result.output
        assert "Dry-run mode enabled: no files were written." in result.output

        options, settings = mock_gen.call_args.args
        assert options.ticker == "RKLB"
        assert options.dry_run is True
        assert options.strict is True
        assert settings.data_dir == data_dir

    def test_flags_forwarded(self, runner, data_dir) -> None:
        with patch("stock_report.cli.generate_report", new=AsyncMock(return_value=_result(data_dir, False))) as mock_gen:
            result = runner.invoke(
                cli,
                [
                    "--data-dir",
                    str(data_dir),
                    "generate",
                    "--name",
                    "Rocket Lab",
                    "--no-strict",
                    "--no-allow-placeholders",
                    "--force",
                    "--build-index",
                ],
            )

        assert result.exit_code == 0, result.output
        options = mock_gen.call_args.args[0]
        assert options.name == "Rocket Lab"
        assert options.strict is False
        assert options.allow_placeholders is False
        assert options.force is True
        assert options.build_index is True

    def test_strict_from_environment(self, runner, data_dir, monkeypatch) -> None:
        monkeypatch.setenv("GENERATOR_STRICT_MODE", "false")

        with patch("stock_report.cli.generate_report", new=AsyncMock(return_value=_result(data_dir))) as mock_gen:
            runner.invoke(cli, ["--data-dir", str(data_dir), "generate", "-t", "RKLB"])

        assert mock_gen.call_args.args[0].strict is False

    def test_requires_ticker_or_name(self, runner, data_dir) -> None:
        result = runner.invoke(cli, ["--data-dir", str(data_dir), "generate"])

        assert result.exit_code == 1
        assert "Either --ticker or --name is required." in result.output

    def test_failure_exit_code(self, runner, data_dir) -> None:
        failure = AsyncMock(side_effect=CriticalValidationFailure(["registry entry missing for RKLB"]))

        with patch("stock_report.cli.generate_report", new=failure):
            result = runner.invoke(cli, ["--data-dir", str(data_dir), "generate", "-t", "RKLB"])

        assert result.exit_code == 1
        assert "generate failed: Strict mode validation failed: registry entry missing for RKLB" in result.output

    def test_existing_report(self, runner, data_dir) -> None:
        failure = AsyncMock(side_effect=ReportExistsError("data/RKLB/RKLB-2025-03-10.json"))

        with patch("stock_report.cli.generate_report", new=failure):
            result = runner.invoke(cli, ["--data-dir", str(data_dir), "generate", "-t", "RKLB"])

        assert result.exit_code == 1
        assert "use --force to overwrite" in result.output


class TestStoredReportCommands:
    """Tests for validate, build-index and migrate-layout."""

    def _store(self, data_dir, report) -> None:
        paths = report_paths(data_dir, report["ticker"], report["analysisDate"])
        write_json_atomic(paths.report, report)

    def test_validate_success(self, runner, data_dir, sample_report) -> None:
        self._store(data_dir, sample_report)

        result = runner.invoke(cli, ["--data-dir", str(data_dir), "validate"])

        assert result.exit_code == 0, result.output
        assert "Validated 1 report file(s) successfully." in result.output

    def test_validate_lists_every_error(self, runner, data_dir, sample_report) -> None:
        broken = copy.deepcopy(sample_report)
        broken["priceChangeDir"] = "sideways"
        broken["reportScore"] = 120
        self._store(data_dir, broken)

        result = runner.invoke(cli, ["--data-dir", str(data_dir), "validate"])

        assert result.exit_code == 1
        assert "root.priceChangeDir: must be either 'up' or 'down'" in result.output
        assert "root.reportScore: must be between 0 and 100" in result.output
        assert "Report validation failed for 1 of 1 file(s)." in result.output

    def test_validate_empty(self, runner, data_dir) -> None:
        result = runner.invoke(cli, ["--data-dir", str(data_dir), "validate"])

        assert result.exit_code == 1
        assert "No report files found" in result.output

    def test_build_index(self, runner, data_dir, sample_report) -> None:
        self._store(data_dir, sample_report)

        result = runner.invoke(cli, ["--data-dir", str(data_dir), "build-index"])

        assert result.exit_code == 0, result.output
        assert "(1 ticker(s))." in result.output
        assert json.loads((data_dir / "index.json").read_text(encoding="utf-8"))["stocks"][0]["ticker"] == "RKLB"

    def test_migrate_nothing(self, runner, data_dir) -> None:
        result = runner.invoke(cli, ["--data-dir", str(data_dir), "migrate-layout"])

        assert result.exit_code == 0
        assert "Nothing to migrate." in result.output

    def test_migrate(self, runner, data_dir, sample_report) -> None:
        (data_dir / "RKLB.json").write_text(json.dumps(sample_report), encoding="utf-8")

        result = runner.invoke(cli, ["--data-dir", str(data_dir), "migrate-layout"])

        assert result.exit_code == 0, result.output
        assert "Migrated 1 file(s)." in result.output
        assert (data_dir / "RKLB" / "RKLB-2025-03-10.json").exists()

    def test_version(self, runner) -> None:
        result = runner.invoke(cli, ["--version"])
        assert GENERATOR_VERSION in result.output

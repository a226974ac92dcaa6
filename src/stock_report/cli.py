"""
stock-report command line.

Usage:
    stock-report [OPTIONS] COMMAND [ARGS]...

Examples:
    stock-report generate --ticker RKLB
    stock-report generate --name "Rocket Lab" --no-strict --dry-run
    stock-report validate
    stock-report build-index
    stock-report migrate-layout
"""

import asyncio
import logging

import click

from stock_report import GENERATOR_VERSION
from stock_report.config import GeneratorOptions, load_settings, resolve_strict
from stock_report.errors import StockReportError
from stock_report.generator import generate_report
from stock_report.validation import read_report_files, validate_report
from stock_report.writer import build_index, migrate_legacy_layout

CONTEXT_SETTINGS = dict(
    help_option_names=["-h", "--help"],
    max_content_width=120,
)

FAILURES = (StockReportError, ValueError, FileExistsError)


@click.group(context_settings=CONTEXT_SETTINGS)
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False),
    envvar="STOCK_DATA_DIR",
    help="Report data directory (default: data)",
)
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    envvar="LOG_LEVEL",
    help="Logging level",
)
@click.version_option(version=GENERATOR_VERSION, prog_name="stock-report")
@click.pass_context
def cli(ctx, data_dir, log_level):
    """Generate, validate and index long-term equity research reports.

    \b
    COMMANDS:
      generate        Build one report from public market data
      validate        Check every stored report
      build-index     Rebuild data/index.json
      migrate-layout  Move flat {TICKER}.json files to the dated layout
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["settings"] = load_settings(data_dir)


@cli.command("generate")
@click.option("--ticker", "-t", default="", help="Ticker symbol, e.g. RKLB")
@click.option("--name", "-n", default="", help='Company name, e.g. "Rocket Lab"')
@click.option(
    "--strict/--no-strict",
    default=None,
    help="Fail when critical data is missing (default: GENERATOR_STRICT_MODE or strict)",
)
@click.option(
    "--allow-placeholders/--no-allow-placeholders",
    default=True,
    help="Accept fallback values for fields upstream could not supply",
)
@click.option("--force", is_flag=True, help="Overwrite an existing report for the same date")
@click.option("--dry-run", is_flag=True, help="Run every step except writing files")
@click.option("--build-index", "rebuild_index", is_flag=True, help="Rebuild index.json after writing")
@click.pass_context
def generate(ctx, ticker, name, strict, allow_placeholders, force, dry_run, rebuild_index):
    """Generate one report

    Examples:
        stock-report generate --ticker RKLB
        stock-report generate --name "Rocket Lab" --no-strict
    """
    settings = ctx.obj["settings"]
    try:
        options = GeneratorOptions(
            ticker=ticker,
            name=name,
            strict=resolve_strict(strict),
            allow_placeholders=allow_placeholders,
            force=force,
            dry_run=dry_run,
            build_index=rebuild_index,
        )
        result = asyncio.run(generate_report(options, settings))
    except FAILURES as e:
        raise click.ClickException(f"generate failed: {e}") from e

    click.echo(f"Generated {result.ticker}")
    click.echo(f"- resolution: {result.resolution}")
    click.echo(f"- report file: {result.report_path}")
    click.echo(f"- source file: {result.manifest_path}")
    click.echo(f"- score: {result.summary.get('reportScore')} ({result.summary.get('reportVerdict')})")
    click.echo(f"- placeholders: {len(result.placeholders)}")
    for placeholder in result.placeholders:
        click.echo(f"  * {placeholder.field}: {placeholder.reason}")
    if result.critical_issues:
        click.echo(f"- critical issues: {', '.join(result.critical_issues)}")
    if result.dry_run:
        click.echo("Dry-run mode enabled: no files were written.")
    elif result.index_built:
        click.echo(f"Updated {settings.index_path}")


@cli.command("validate")
@click.pass_context
def validate(ctx):
    """Validate every stored report

    Prints every error of every file and exits non-zero if any exist.
    """
    settings = ctx.obj["settings"]
    try:
        files = read_report_files(settings.data_dir)
    except (OSError, ValueError) as e:
        raise click.ClickException(f"Failed to read report files: {e}") from e

    if not files:
        raise click.ClickException(f"No report files found in {settings.data_dir}.")

    failed = 0
    for report_file in files:
        errors = validate_report(report_file.document, report_file.expected_ticker, report_file.expected_date)
        if not errors:
            continue
        failed += 1
        click.echo(f"\n{report_file.file}", err=True)
        for error in errors:
            click.echo(f"  - {error}", err=True)

    if failed:
        raise click.ClickException(f"Report validation failed for {failed} of {len(files)} file(s).")
    click.echo(f"Validated {len(files)} report file(s) successfully.")


@cli.command("build-index")
@click.pass_context
def build_index_command(ctx):
    """Validate all reports and rebuild index.json"""
    settings = ctx.obj["settings"]
    try:
        index = build_index(settings.data_dir)
    except FAILURES + (OSError,) as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"Updated {settings.index_path} ({len(index['stocks'])} ticker(s)).")


@cli.command("migrate-layout")
@click.pass_context
def migrate_layout(ctx):
    """Move legacy flat reports into {TICKER}/{TICKER}-{YYYY-MM-DD}.json"""
    settings = ctx.obj["settings"]
    try:
        moved = migrate_legacy_layout(settings.data_dir)
    except FAILURES + (OSError,) as e:
        raise click.ClickException(str(e)) from e

    if not moved:
        click.echo("No legacy flat report files found. Nothing to migrate.")
        return
    click.echo(f"Migrated {len(moved)} file(s).")
    for old, new in moved:
        click.echo(f"- {old.name} -> {new}")


if __name__ == "__main__":
    cli()

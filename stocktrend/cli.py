"""
stocktrend — CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Validate inputs.
  4. Execute the stage or orchestrator.
  5. Report the result to stdout; exit 1 on failure.

Install and run::

    pip install -e .
    stocktrend --help
    stocktrend init-db
    stocktrend validate-config
    stocktrend fetch-prices --ticker 7203 --ticker 6758
    stocktrend calc-trend --ticker 7203 --from 2024/06/01 --to 2024/09/13
    stocktrend run-daily

Ctrl-C during ``fetch-prices``, ``calc-trend`` or ``run-daily`` stops new work
from being started; work already in flight is allowed to finish.
"""

from __future__ import annotations

import json
import signal
import threading
from datetime import date, timedelta
from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="stocktrend",
    help="Daily stock price scraper and moving-average trend calculator.",
    add_completion=False,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from stocktrend.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        return load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _configure_logging(config):
    from stocktrend.utils.logging import configure_logging
    configure_logging(config.logging)


def _install_stop_handler() -> threading.Event:
    """Turn the first Ctrl-C into a stop request; a second one interrupts."""
    stop = threading.Event()

    def _handler(signum, frame):
        if stop.is_set():
            raise KeyboardInterrupt
        typer.echo("\nStop requested; finishing work in flight ...", err=True)
        stop.set()

    signal.signal(signal.SIGINT, _handler)
    return stop


def _parse_date_or_exit(value: Optional[str], option: str) -> Optional[str]:
    from stocktrend.utils.time_utils import normalize_storage_date

    if value is None:
        return None
    try:
        return normalize_storage_date(value)
    except ValueError as exc:
        typer.echo(f"[ERROR] {option}: {exc}", err=True)
        raise typer.Exit(code=1)


def _ensure_schema(config, db_path: str) -> None:
    from stocktrend.db.connection import connection_from_config
    from stocktrend.db.schema import apply_schema

    with connection_from_config(config.database, db_path) as conn:
        apply_schema(conn)


# ── Commands ──────────────────────────────────────────────────────────────────

@app.command("init-db")
def init_db(
    db_path: Optional[str] = typer.Option(
        None, "--db-path", help="Override DB path from config.",
    ),
    config_path: Optional[str] = typer.Option(
        None, "--config", help="Path to TOML config file.",
    ),
) -> None:
    """Create the SQLite database and apply the schema (safe to re-run)."""
    from stocktrend.db.schema import ALL_TABLE_NAMES

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    target_path = db_path or config.database.db_path
    typer.echo(f"Initializing database at: {target_path}")
    _ensure_schema(config, target_path)
    typer.echo(f"  Tables: {len(ALL_TABLE_NAMES)} created/verified.")
    typer.echo("[OK] Database ready.")


@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = typer.Option(
        None, "--config", help="Path to TOML config file (default: config/default.toml).",
    ),
    show_full: bool = typer.Option(
        False, "--full", help="Print full config including all fields.",
    ),
) -> None:
    """Validate the configuration file and print parsed values."""
    config = _load_config_or_exit(config_path)

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Database path:     {config.database.db_path}")
    typer.echo(f"  Price URL:         {config.fetch.price_url}")
    typer.echo(f"  Fetch interval:    {config.fetch.interval_ms} ms")
    typer.echo(f"  Fetch timeout:     {config.fetch.timeout_s} s")
    typer.echo(f"  Batch size:        {config.trend.batch_size}")
    typer.echo(f"  Long-term days:    {config.trend.long_term_threshold_days}")
    typer.echo(f"  Lookback days:     {config.trend.lookback_days}")
    typer.echo(f"  Log level:         {config.logging.level}")
    typer.echo(f"  Debug mode:        {config.debug}")

    if show_full:
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(config.model_dump(), indent=2, default=str))

    typer.echo("")
    typer.echo("[OK] Config valid.")


@app.command("fetch-prices")
def fetch_prices(
    tickers: Optional[list[str]] = typer.Option(
        None, "--ticker", help="Ticker code. Repeatable; defaults to the ticker sheet.",
    ),
    as_of: Optional[str] = typer.Option(
        None, "--as-of", help="Reference date YYYY/MM/DD for month/day dates (default: today).",
    ),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Scrape daily price pages and store them in the ``daily`` table."""
    from stocktrend.pipeline.fetch import FetchStage
    from stocktrend.reporting.trend_sheet import load_tickers
    from stocktrend.sheets.sheet import CsvSheet
    from stocktrend.utils.time_utils import parse_storage_date

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    as_of_str = _parse_date_or_exit(as_of, "--as-of")
    as_of_date = parse_storage_date(as_of_str) if as_of_str else date.today()
    codes = list(tickers) if tickers else load_tickers(CsvSheet(config.sheets.tickers_csv))
    if not codes:
        typer.echo("[ERROR] No tickers given and the ticker sheet is empty.", err=True)
        raise typer.Exit(code=1)

    target_db = db_path or config.database.db_path
    _ensure_schema(config, target_db)
    stop = _install_stop_handler()

    typer.echo(f"fetch-prices | codes={len(codes)} | as_of={as_of_date} | db={target_db}")
    stage = FetchStage(config=config, db_path=target_db, should_stop=stop.is_set)
    try:
        run = stage.run(tickers=codes, as_of=as_of_date)
    except Exception as exc:
        typer.echo(f"[FAILED] {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"  status={run.status} | rows={run.rows_processed}")
    if stage.last_result is not None:
        for failure in stage.last_result.failures:
            typer.echo(f"  [WARN] {failure.ticker}: {failure.error}")
    typer.echo("[OK] Fetch complete.")


@app.command("calc-trend")
def calc_trend(
    tickers: Optional[list[str]] = typer.Option(
        None, "--ticker", help="Ticker code. Repeatable; defaults to the ticker sheet.",
    ),
    from_date: Optional[str] = typer.Option(None, "--from", help="First date YYYY/MM/DD."),
    to_date: Optional[str] = typer.Option(None, "--to", help="Last date YYYY/MM/DD."),
    target: Optional[str] = typer.Option(
        None, "--target",
        help="Recompute [target - lookback_days, target]; ignored when --from/--to are given.",
    ),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Recompute moving averages and trends for a date range."""
    from stocktrend.pipeline.moving_trend import MovingTrendJob, MovingTrendStage
    from stocktrend.reporting.trend_sheet import load_tickers
    from stocktrend.sheets.sheet import CsvSheet
    from stocktrend.utils.time_utils import format_storage_date, parse_storage_date

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    start = _parse_date_or_exit(from_date, "--from")
    end = _parse_date_or_exit(to_date, "--to")
    target_str = _parse_date_or_exit(target, "--target")
    if target_str and not (start or end):
        target_day = parse_storage_date(target_str)
        start = format_storage_date(target_day - timedelta(days=config.trend.lookback_days))
        end = target_str

    codes = list(tickers) if tickers else load_tickers(CsvSheet(config.sheets.tickers_csv))
    try:
        job = MovingTrendJob.create(
            codes,
            from_date=start,
            to_date=end,
            batch_size=config.trend.batch_size,
            threshold=config.trend.long_term_threshold_days,
        )
    except ValueError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    target_db = db_path or config.database.db_path
    _ensure_schema(config, target_db)
    stop = _install_stop_handler()

    typer.echo(
        f"calc-trend | codes={len(job.tickers)} | {job.from_date}..{job.to_date} | db={target_db}"
    )
    try:
        run = MovingTrendStage(config=config, db_path=target_db, should_stop=stop.is_set).run(
            target_date=job.to_date, job=job
        )
    except Exception as exc:
        typer.echo(f"[FAILED] {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"  status={run.status} | rows={run.rows_processed}")
    typer.echo("[OK] Moving averages and trends updated.")


@app.command("run-daily")
def run_daily(
    target: Optional[str] = typer.Option(
        None, "--target", help="Run date YYYY/MM/DD (default: today).",
    ),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Day-off check → fetch → moving averages/trends → trend report sheet."""
    from stocktrend.pipeline.orchestrator import DailyOrchestrator
    from stocktrend.utils.time_utils import parse_storage_date

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    target_str = _parse_date_or_exit(target, "--target")
    target_day = parse_storage_date(target_str) if target_str else date.today()

    target_db = db_path or config.database.db_path
    _ensure_schema(config, target_db)
    stop = _install_stop_handler()

    typer.echo(f"run-daily | target={target_day} | db={target_db}")
    result = DailyOrchestrator(config, db_path=target_db, should_stop=stop.is_set).run(target_day)

    typer.echo(f"  status={result.status}")
    if result.skipped_reason:
        typer.echo(f"  skipped: {result.skipped_reason}")
    typer.echo(
        f"  codes={len(result.tickers)} | failed fetches={len(result.failed_fetches)} | "
        f"trend codes={len(result.trend_tickers)} | trend date={result.trend_date}"
    )
    for failure in result.failed_fetches:
        typer.echo(f"  [WARN] {failure.ticker}: {failure.error}")

    if result.status == "failed":
        typer.echo(f"[FAILED] {result.errors[-1] if result.errors else 'unknown error'}", err=True)
        raise typer.Exit(code=1)
    typer.echo("[OK] Daily run complete.")

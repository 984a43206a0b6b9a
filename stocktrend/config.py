"""
Configuration for stocktrend.

``load_config()`` builds one frozen ``AppConfig`` from these sources, later
ones winning:

  1. the TOML file given with ``--config`` (``config/default.toml`` if none)
  2. ``local.toml`` next to that file, when present
  3. ``STOCKTREND_*`` variables, from the process environment or ``.env``

Stages, the orchestrator and the CLI take the resulting ``AppConfig``; nothing
else reads TOML or the environment.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator


class _Section(BaseModel):
    model_config = ConfigDict(frozen=True)


class DatabaseConfig(_Section):
    """Where the SQLite file lives and how hard to try opening it."""

    db_path: str = "data/db/stocktrend.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000
    connect_retries: int = 3
    connect_retry_interval_s: float = 10.0


class FetchConfig(_Section):
    """Price page scraping.

    One ticker fetch is dispatched every ``interval_ms``; each HTTP request
    is abandoned after ``timeout_s``.
    """

    price_url: str = "https://example.com/stock/price"
    interval_ms: int = 1000
    timeout_s: float = 10.0

    @field_validator("interval_ms")
    @classmethod
    def _interval_not_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"interval_ms must be >= 0, got {v}.")
        return v

    @field_validator("timeout_s")
    @classmethod
    def _timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"timeout_s must be > 0, got {v}.")
        return v


class TrendConfig(_Section):
    """Moving-average and trend settings.

    ``batch_size`` tickers share one history query and one write
    transaction. ``lookback_days`` is how far back the daily run recomputes.
    """

    long_term_threshold_days: int = 2
    batch_size: int = 1
    lookback_days: int = 100

    @field_validator("long_term_threshold_days", "batch_size", "lookback_days")
    @classmethod
    def _at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Value must be >= 1, got {v}.")
        return v


class SheetsConfig(_Section):
    """CSV files standing in for the ticker, holiday and report sheets."""

    tickers_csv: str = "data/sheets/tickers.csv"
    holidays_csv: str = "data/sheets/holidays.csv"
    trend_report_csv: str = "data/sheets/trend_report.csv"


_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class LoggingConfig(_Section):
    level: str = "INFO"
    log_file: str = "data/logs/stocktrend.log"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        name = v.upper()
        if name not in _LOG_LEVELS:
            raise ValueError(f"Log level must be one of {list(_LOG_LEVELS)}, got '{v}'.")
        return name


class AppConfig(_Section):
    """Every setting the application reads, grouped by TOML table."""

    database: DatabaseConfig = DatabaseConfig()
    fetch: FetchConfig = FetchConfig()
    trend: TrendConfig = TrendConfig()
    sheets: SheetsConfig = SheetsConfig()
    logging: LoggingConfig = LoggingConfig()
    debug: bool = False


# ── Loading ───────────────────────────────────────────────────────────────────

# Environment variable -> (TOML table, key). Values stay strings; pydantic
# converts them when the model is validated.
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "STOCKTREND_DB_PATH": ("database", "db_path"),
    "STOCKTREND_LOG_LEVEL": ("logging", "level"),
    "STOCKTREND_PRICE_URL": ("fetch", "price_url"),
    "STOCKTREND_FETCH_INTERVAL_MS": ("fetch", "interval_ms"),
    "STOCKTREND_FETCH_TIMEOUT_S": ("fetch", "timeout_s"),
    "STOCKTREND_BATCH_SIZE": ("trend", "batch_size"),
    "STOCKTREND_LONG_TERM_THRESHOLD_DAYS": ("trend", "long_term_threshold_days"),
}

_TRUTHY = frozenset({"1", "true", "yes"})


def project_root() -> Path:
    """The nearest ancestor of this package holding ``pyproject.toml``."""
    here = Path(__file__).resolve().parent
    for candidate in (here, *here.parents):
        if (candidate / "pyproject.toml").exists():
            return candidate
    return here.parent


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Read, layer and validate the configuration.

    Raises:
        FileNotFoundError: ``config_path`` (or the default file) is missing.
        pydantic.ValidationError: A merged value is out of range.
    """
    root = project_root()
    load_dotenv(dotenv_path=root / ".env", override=False)

    path = Path(config_path) if config_path is not None else root / "config" / "default.toml"
    if not path.exists():
        raise FileNotFoundError(
            f"Config file not found: {path}\n"
            "Create config/default.toml or pass --config."
        )

    raw = _read_toml(path)
    local = path.parent / "local.toml"
    if local.exists():
        raw = merge_tables(raw, _read_toml(local))

    return config_from_dict(_with_env(raw, os.environ))


def config_from_dict(raw: dict[str, Any]) -> AppConfig:
    """Validate a merged TOML-shaped dict. ``[project] debug`` is honoured."""
    data = {key: value for key, value in raw.items() if key != "project"}
    data.setdefault("debug", raw.get("project", {}).get("debug", False))
    return AppConfig.model_validate(data)


def merge_tables(base: dict[str, Any], top: dict[str, Any]) -> dict[str, Any]:
    """``top`` laid over ``base``, table by table. Neither input is changed."""
    merged = dict(base)
    for key, value in top.items():
        below = merged.get(key)
        if isinstance(below, dict) and isinstance(value, dict):
            merged[key] = merge_tables(below, value)
        else:
            merged[key] = value
    return merged


def _read_toml(path: Path) -> dict[str, Any]:
    with path.open("rb") as fh:
        return tomllib.load(fh)


def _with_env(raw: dict[str, Any], environ: Any) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for env_name, (table, key) in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value:
            overrides.setdefault(table, {})[key] = value
    debug = environ.get("STOCKTREND_DEBUG")
    if debug:
        overrides["debug"] = debug.lower() in _TRUTHY
    return merge_tables(raw, overrides)

"""
Root logger setup.

``configure_logging`` is called once by each CLI command after the config is
loaded. Everything else in the package just asks for
``logging.getLogger(__name__)`` and passes context through ``extra=``::

    logger.warning("fetch failed", extra={"ticker": "7203"})

With ``[logging] json_format = true`` every record becomes a single JSON
line and the ``extra=`` keys sit beside the fixed ones::

    {"ts": "2024-09-15T07:00:00Z", "level": "WARNING",
     "logger": "stocktrend.ingestion.fetch_pipeline",
     "msg": "fetch failed", "ticker": "7203"}
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterator

if TYPE_CHECKING:
    from stocktrend.config import LoggingConfig

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# httpx logs every request at INFO; one line per ticker is too much.
QUIET_LOGGERS = ("httpx", "httpcore")

_RECORD_FIELDS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime"}


def record_extras(record: logging.LogRecord) -> dict[str, Any]:
    """The ``extra=`` keys attached to ``record``."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_FIELDS and not key.startswith("_")
    }


class JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        line: dict[str, Any] = {
            "ts": created.strftime(TIMESTAMP_FORMAT),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            line["exc"] = self.formatException(record.exc_info)
        line.update(record_extras(record))
        return json.dumps(line, default=str)


def _open_handlers(config: "LoggingConfig") -> Iterator[logging.Handler]:
    yield logging.StreamHandler(sys.stdout)
    if config.log_file:
        path = Path(config.log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        yield logging.FileHandler(path, encoding="utf-8")


def configure_logging(config: "LoggingConfig") -> None:
    """Replace the root logger's handlers according to ``config``.

    Output always goes to stdout, and also to ``config.log_file`` when that
    is set. Unknown level names fall back to ``INFO``.
    """
    level = logging.getLevelName(config.level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    if config.json_format:
        formatter: logging.Formatter = JsonLineFormatter()
    else:
        formatter = logging.Formatter(TEXT_FORMAT, datefmt=TIMESTAMP_FORMAT)

    handlers = list(_open_handlers(config))
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    logging.basicConfig(level=level, handlers=handlers, force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

"""
Sheet — the spreadsheet capability used for the ticker universe, the holiday
list and the trend report.

Operations (all rows are lists of strings):

  - ``read()``         every row
  - ``insert(rows)``   append
  - ``update(rows)``   clear, then write ``rows``
  - ``clear()``        remove every row

``CsvSheet`` keeps a sheet in a local CSV file; ``InMemorySheet`` keeps it
in a list and is what the tests use.
"""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Protocol, Sequence

logger = logging.getLogger(__name__)

SheetRow = list[str]


class Sheet(Protocol):
    def read(self) -> list[SheetRow]: ...

    def insert(self, rows: Sequence[Sequence[str]]) -> None: ...

    def update(self, rows: Sequence[Sequence[str]]) -> None: ...

    def clear(self) -> None: ...


class InMemorySheet:
    """List-backed sheet."""

    def __init__(self, rows: Sequence[Sequence[str]] = ()) -> None:
        self.rows: list[SheetRow] = [list(r) for r in rows]

    def read(self) -> list[SheetRow]:
        return [list(r) for r in self.rows]

    def insert(self, rows: Sequence[Sequence[str]]) -> None:
        self.rows.extend(list(r) for r in rows)

    def update(self, rows: Sequence[Sequence[str]]) -> None:
        self.clear()
        self.insert(rows)

    def clear(self) -> None:
        self.rows = []


class CsvSheet:
    """Sheet stored as a CSV file. A missing file reads as an empty sheet."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def read(self) -> list[SheetRow]:
        if not self.path.exists():
            return []
        with open(self.path, newline="", encoding="utf-8") as f:
            return [row for row in csv.reader(f)]

    def insert(self, rows: Sequence[Sequence[str]]) -> None:
        self._write(rows, mode="a")

    def update(self, rows: Sequence[Sequence[str]]) -> None:
        self._write(rows, mode="w")

    def clear(self) -> None:
        self._write([], mode="w")

    def _write(self, rows: Sequence[Sequence[str]], mode: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, mode, newline="", encoding="utf-8") as f:
            csv.writer(f).writerows(rows)
        logger.debug("wrote %d rows to %s (mode=%s)", len(rows), self.path, mode)

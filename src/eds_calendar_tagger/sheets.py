"""
Tabular configuration source.

A "spreadsheet" is a directory and each sheet inside it is a ``<name>.csv``
file.  Columns are addressed with spreadsheet letters (A, B, ..., Z, AA, ...)
so the stored settings read the same way a user would type them.
"""

import csv
import logging
import re
from pathlib import Path

from eds_calendar_tagger.models import SheetError

logger = logging.getLogger(__name__)

_COLUMN_RE = re.compile(r"^[A-Za-z]+$")


def column_index(letter: str) -> int:
    """Convert a column letter to a zero-based index ('A' -> 0, 'AA' -> 26)."""
    letter = (letter or "").strip()
    if not _COLUMN_RE.match(letter):
        raise SheetError(f"Invalid column reference: {letter!r}")
    index = 0
    for ch in letter.upper():
        index = index * 26 + (ord(ch) - ord("A") + 1)
    return index - 1


class Sheet:
    """One CSV-backed sheet, read fully on construction."""

    def __init__(self, name: str, rows: list[list[str]]):
        self.name = name
        self._rows = rows

    @classmethod
    def from_file(cls, name: str, path: Path) -> "Sheet":
        try:
            with path.open(newline="", encoding="utf-8") as fh:
                rows = [row for row in csv.reader(fh)]
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            raise SheetError(f"Failed to read sheet {name!r}: {e}") from e
        return cls(name, rows)

    def get_last_row(self) -> int:
        """1-based number of the last row (0 for an empty sheet)."""
        return len(self._rows)

    def get_column_values(self, letter: str) -> list[str]:
        """All cells in the column from row 1 to the last row; short rows read as ''."""
        idx = column_index(letter)
        return [row[idx].strip() if idx < len(row) else "" for row in self._rows]


class Spreadsheet:
    def __init__(self, spreadsheet_id: str, root: Path):
        self.spreadsheet_id = spreadsheet_id
        self.root = root

    def get_sheet_by_name(self, name: str) -> Sheet | None:
        path = self.root / f"{name}.csv"
        if not path.is_file():
            return None
        return Sheet.from_file(name, path)


class SheetSource:
    """Opens spreadsheets by id (a directory path)."""

    def open_by_id(self, spreadsheet_id: str) -> Spreadsheet:
        root = Path(spreadsheet_id).expanduser()
        if not root.is_dir():
            raise SheetError(f"Spreadsheet {spreadsheet_id!r} not found")
        logger.debug(f"Opened spreadsheet {spreadsheet_id}")
        return Spreadsheet(spreadsheet_id, root)

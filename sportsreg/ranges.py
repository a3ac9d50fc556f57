"""Range table: per-school inclusive chest-number intervals.

The table is read from a spreadsheet (``.xlsx``) or ``.csv`` file whose first
row is a header and whose first three columns are school, start and end.
Bad rows are skipped with a warning so one typo cannot block every school.
"""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Sequence, Tuple, Union
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from .errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChestRange:
    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start + 1


def _to_int(value: Any, what: str, school: str) -> int:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ConfigError(f"{school}: missing {what}")
    if isinstance(value, bool):
        raise ConfigError(f"{school}: {what} is not a number: {value!r}")
    if isinstance(value, float):
        if not value.is_integer():
            raise ConfigError(f"{school}: {what} is not a whole number: {value!r}")
        return int(value)
    try:
        return int(str(value).strip())
    except ValueError:
        pass
    try:
        as_float = float(str(value).strip())
    except ValueError:
        raise ConfigError(f"{school}: {what} is not a number: {value!r}")
    if not as_float.is_integer():
        raise ConfigError(f"{school}: {what} is not a whole number: {value!r}")
    return int(as_float)


def parse_range_row(row: Sequence[Any]) -> Tuple[str, ChestRange]:
    """Validate one ``(school, start, end)`` row.

    Raises:
        ConfigError: missing school, missing/non-numeric bounds or
            ``start > end``.
    """
    cells = list(row) + [None] * (3 - len(row))
    school_raw, start_raw, end_raw = cells[:3]
    school = str(school_raw).strip() if school_raw is not None else ""
    if not school:
        raise ConfigError("row has no school name")
    start = _to_int(start_raw, "start", school)
    end = _to_int(end_raw, "end", school)
    if start > end:
        raise ConfigError(f"{school}: start {start} is greater than end {end}")
    return school, ChestRange(start, end)


def parse_range_rows(rows: Iterable[Sequence[Any]]) -> Dict[str, ChestRange]:
    """Build the range table from data rows, skipping invalid ones."""
    table: Dict[str, ChestRange] = {}
    for lineno, row in enumerate(rows, start=1):
        if not row or all(c is None or (isinstance(c, str) and not c.strip()) for c in row):
            continue
        try:
            school, chest_range = parse_range_row(row)
        except ConfigError as exc:
            logger.warning("Skipping range row %d: %s", lineno, exc.message)
            continue
        if school in table:
            logger.warning("Skipping range row %d: duplicate school %r", lineno, school)
            continue
        table[school] = chest_range
    return table


def ranges_from_mapping(mapping: Mapping[str, Any]) -> Dict[str, ChestRange]:
    """Build the range table from ``{school: (start, end)}``."""
    rows = []
    for school, bounds in mapping.items():
        if isinstance(bounds, Mapping):
            rows.append((school, bounds.get("start"), bounds.get("end")))
        else:
            rows.append((school, *tuple(bounds)[:2]))
    return parse_range_rows(rows)


def _xlsx_rows(path: Path) -> list:
    try:
        wb = load_workbook(filename=str(path), read_only=True, data_only=True)
    except (BadZipFile, InvalidFileException, KeyError, OSError, ValueError) as exc:
        raise ConfigError(f"range file {path.name} is not a readable workbook: {exc}") from exc
    try:
        ws = wb.worksheets[0]
        return [tuple(r) for r in ws.iter_rows(min_row=2, values_only=True)]
    finally:
        wb.close()


def _csv_rows(path: Path) -> list:
    try:
        with path.open(newline="", encoding="utf-8-sig") as fh:
            reader = csv.reader(fh)
            next(reader, None)
            return [tuple(r) for r in reader]
    except (OSError, UnicodeDecodeError, csv.Error) as exc:
        raise ConfigError(f"range file {path.name} could not be read: {exc}") from exc


def load_ranges(source: Union[str, Path]) -> Dict[str, ChestRange]:
    """Load the range table from a ``.xlsx`` or ``.csv`` file.

    Raises:
        ConfigError: the file is missing or of an unsupported type.
    """
    path = Path(source)
    if not path.exists():
        raise ConfigError(f"range file not found: {path}")
    suffix = path.suffix.lower()
    if suffix in (".xlsx", ".xlsm"):
        rows = _xlsx_rows(path)
    elif suffix == ".csv":
        rows = _csv_rows(path)
    else:
        raise ConfigError(f"unsupported range file type: {path.name}")
    table = parse_range_rows(rows)
    logger.info("Loaded %d chest ranges from %s", len(table), path)
    return table


__all__ = [
    "ChestRange",
    "load_ranges",
    "parse_range_row",
    "parse_range_rows",
    "ranges_from_mapping",
]

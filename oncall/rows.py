"""
rows.py — Row Normalizer for on-call schedule grids

Walks decoded grid rows after the header block and produces ImportRow records:
  - row with no date value          → skipped silently (spacer / trailing row)
  - row with an unparseable date    → RowError, row excluded, batch continues
  - otherwise                       → ImportRow(date, day label, {label: name})

Accepted date shapes (all yield the same calendar date):
  - spreadsheet serial day-number   45962        → 2025-11-01
  - native date / datetime          datetime(2025, 11, 1)
  - D/M/Y string                    "01/11/2025" or "1/11/25"
  - ISO string (fallback)           "2025-11-01"
"""

import logging
import math
import re
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from oncall.config import SPREADSHEET_EPOCH, WORKBOOK_HEADER_ROWS
from oncall.models import ImportRow, RowError
from oncall.stations import (
    DATE_COLUMN,
    DATE_HEADER,
    DAY_OF_WEEK_COLUMN,
    DAY_OF_WEEK_HEADER,
    SOURCE_COLUMNS,
    normalize_label,
)

logger = logging.getLogger(__name__)

_DMY_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2}|\d{4})$")
_ISO_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_DATE_HEADERS = {normalize_label(h) for h in (DATE_HEADER, "date", "dateKey")}
_DAY_HEADERS = {normalize_label(h) for h in (DAY_OF_WEEK_HEADER, "day", "dayOfWeek")}


# ---------------------------------------------------------------------------
# Date parsing
# ---------------------------------------------------------------------------

def serial_to_date(serial: float) -> date:
    """Convert a spreadsheet serial day-number (1900 date system) to a date."""
    if isinstance(serial, float) and (math.isnan(serial) or math.isinf(serial)):
        raise ValueError(f"Invalid spreadsheet serial number: {serial}")
    if serial < 1:
        raise ValueError(f"Invalid spreadsheet serial number: {serial}")
    try:
        return SPREADSHEET_EPOCH + timedelta(days=int(math.floor(serial)))
    except OverflowError:
        raise ValueError(f"Invalid spreadsheet serial number: {serial}")


def parse_date_string(raw: str) -> date:
    s = raw.strip()
    m = _DMY_RE.match(s)
    if m:
        day, month, year = (int(g) for g in m.groups())
        if len(m.group(3)) == 2:
            year += 2000
        try:
            return date(year, month, day)
        except ValueError as e:
            raise ValueError(f"Cannot parse date: {raw!r} ({e})")
    if _ISO_RE.match(s):
        try:
            return datetime.strptime(s, "%Y-%m-%d").date()
        except ValueError as e:
            raise ValueError(f"Cannot parse date: {raw!r} ({e})")
    raise ValueError(f"Cannot parse date: {raw!r}")


def parse_cell_date(value: Any) -> date:
    """
    Parse one date cell. Raises ValueError for present-but-unparseable values.
    Callers treat blank cells as spacer rows before calling this.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid date format: {value!r}")
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        return serial_to_date(value)
    if isinstance(value, str):
        return parse_date_string(value)
    raise ValueError(f"Invalid date format: {value!r}")


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, float):
        return math.isnan(value)
    return False


# ---------------------------------------------------------------------------
# Header handling
# ---------------------------------------------------------------------------

def _column_layout(
    grid: List[List[Any]],
    header_rows: int,
) -> Tuple[Optional[int], int, Dict[int, str]]:
    """
    Work out (day column, date column, {station column: source label}).

    Workbooks (title row + label row) use the fixed layout: A = day, B = date,
    and station labels come from stations.SOURCE_COLUMNS by position, whatever
    the label row says. CSV uploads are header-driven when the header names a
    date column (the day column is then optional); blank header cells fall
    back to SOURCE_COLUMNS.
    """
    if header_rows == WORKBOOK_HEADER_ROWS:
        return DAY_OF_WEEK_COLUMN, DATE_COLUMN, dict(SOURCE_COLUMNS)

    header: List[Any] = grid[header_rows - 1] if 0 < header_rows <= len(grid) else []
    found_date: Optional[int] = None
    found_day: Optional[int] = None

    for idx, cell in enumerate(header):
        if isinstance(cell, str):
            label = normalize_label(cell)
            if label in _DATE_HEADERS and found_date is None:
                found_date = idx
            elif label in _DAY_HEADERS and found_day is None:
                found_day = idx

    day_col: Optional[int]
    if found_date is not None:
        date_col, day_col = found_date, found_day
    else:
        date_col = DATE_COLUMN
        day_col = found_day if found_day is not None else DAY_OF_WEEK_COLUMN

    width = max((len(r) for r in grid), default=0)
    labels: Dict[int, str] = {}
    for idx in range(width):
        if idx in (day_col, date_col):
            continue
        cell = header[idx] if idx < len(header) else None
        if isinstance(cell, str) and cell.strip():
            labels[idx] = cell.strip()
        elif idx in SOURCE_COLUMNS:
            labels[idx] = SOURCE_COLUMNS[idx]
    return day_col, date_col, labels


# ---------------------------------------------------------------------------
# Row normalizer
# ---------------------------------------------------------------------------

def normalize_rows(
    grid: List[List[Any]],
    header_rows: int = WORKBOOK_HEADER_ROWS,
) -> Tuple[List[ImportRow], List[RowError]]:
    """
    Convert a decoded grid into ImportRows plus row-level errors.

    Row numbers are 1-based sheet rows so they match what the uploader sees.
    """
    rows: List[ImportRow] = []
    errors: List[RowError] = []
    if len(grid) <= header_rows:
        return rows, errors

    day_col, date_col, labels = _column_layout(grid, header_rows)

    for i in range(header_rows, len(grid)):
        raw = grid[i]
        row_num = i + 1
        if not raw or all(_is_blank(v) for v in raw):
            continue

        date_raw = raw[date_col] if date_col < len(raw) else None
        if _is_blank(date_raw):
            continue

        try:
            parsed = parse_cell_date(date_raw)
        except ValueError as e:
            errors.append(RowError(row=row_num, message=str(e)))
            logger.warning(f"Row {row_num}: {e}")
            continue

        station_raw: Dict[str, str] = {}
        for idx, label in labels.items():
            value = raw[idx] if idx < len(raw) else None
            if isinstance(value, str) and value.strip():
                station_raw[label] = value.strip()

        day_label: Optional[str] = None
        if day_col is not None and day_col < len(raw) and isinstance(raw[day_col], str) and raw[day_col].strip():
            day_label = raw[day_col].strip()

        rows.append(ImportRow(
            row_number=row_num,
            date=parsed,
            day_of_week=day_label,
            station_raw=station_raw,
        ))

    logger.info(f"Normalized {len(rows)} rows ({len(errors)} row errors)")
    return rows, errors

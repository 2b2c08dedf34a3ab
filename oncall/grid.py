"""
grid.py — Cell Grid Decoder

Turns a raw upload into a rectangular grid of cell values. Each cell is one of:
  None (empty) | int/float (spreadsheet serial or number) | str | date/datetime

  - decode_workbook: .xlsx payload, first sheet only (openpyxl, cached values)
  - decode_csv:      UTF-8 CSV text (pandas, every cell kept as string)

Whole-file problems raise ImportFileError before anything is written.
"""

import io
import logging
import zipfile
from typing import Any, List, Optional

from oncall.config import MAX_CSV_COLUMNS
from oncall.models import ImportFileError

logger = logging.getLogger(__name__)

Grid = List[List[Any]]

XLSX_MAGIC = b"PK\x03\x04"


def _check_payload(payload: bytes, max_bytes: Optional[int]) -> None:
    if not payload or not payload.strip():
        raise ImportFileError("empty file")
    if max_bytes is not None and len(payload) > max_bytes:
        raise ImportFileError(f"file too large ({len(payload)} bytes, limit {max_bytes})")


def _pad(rows: Grid) -> Grid:
    width = max((len(r) for r in rows), default=0)
    return [list(r) + [None] * (width - len(r)) for r in rows]


def looks_like_workbook(payload: bytes) -> bool:
    return payload[:4] == XLSX_MAGIC


def decode_workbook(payload: bytes, max_bytes: Optional[int] = None) -> Grid:
    """Decode the first worksheet of an .xlsx payload into a padded grid."""
    from openpyxl import load_workbook

    _check_payload(payload, max_bytes)
    try:
        wb = load_workbook(io.BytesIO(payload), read_only=True, data_only=True)
    except (zipfile.BadZipFile, KeyError, ValueError, OSError) as e:
        raise ImportFileError(f"unreadable workbook: {e}")

    try:
        if not wb.sheetnames:
            raise ImportFileError("No sheets found in workbook")
        sheet_name = wb.sheetnames[0]
        rows = [list(r) for r in wb[sheet_name].iter_rows(values_only=True)]
    finally:
        wb.close()

    logger.info(f"Decoded workbook sheet {sheet_name!r}: {len(rows)} rows")
    return _pad(rows)


def decode_csv(payload: bytes, max_bytes: Optional[int] = None) -> Grid:
    """Decode CSV bytes (UTF-8, optional BOM) into a padded grid of strings / None."""
    import pandas as pd

    _check_payload(payload, max_bytes)
    try:
        text = payload.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ImportFileError(f"CSV is not valid UTF-8: {e}")

    # rows may be ragged (trailing commas): read into a fixed-width frame,
    # then drop the columns no row uses
    try:
        df = pd.read_csv(
            io.StringIO(text),
            header=None,
            names=list(range(MAX_CSV_COLUMNS)),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=False,
        )
    except pd.errors.EmptyDataError:
        raise ImportFileError("empty file")
    except pd.errors.ParserError as e:
        raise ImportFileError(f"unreadable CSV: {e}")

    rows = [
        [(v if isinstance(v, str) and v.strip() else None) for v in row]
        for row in df.itertuples(index=False, name=None)
    ]
    used = [i for r in rows for i, v in enumerate(r) if v is not None]
    if not used:
        raise ImportFileError("empty file")
    width = max(used) + 1

    logger.info(f"Decoded CSV: {len(rows)} rows, {width} columns")
    return [r[:width] for r in rows]

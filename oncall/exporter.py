"""
exporter.py — Export layer for on-call schedules

Outputs:
  - Template workbook (.xlsx): title row + source-label header row + one
    month of blank dated rows, right-to-left sheet
  - CSV: flat (date, station, userId, name) for programmatic review
  - Excel (.xlsx): formatted date × station grid of display names
  - Backfill report (.txt): unknown / ambiguous names for manual review

Usage:
  from oncall.exporter import build_template_workbook, export_to_csv, export_to_excel
"""

import io
import logging
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from oncall.models import ScheduleDay
from oncall.stations import DATE_HEADER, DAY_OF_WEEK_HEADER, SOURCE_COLUMNS, STATION_KEYS, STATION_LABELS

logger = logging.getLogger(__name__)

HEBREW_DAY_NAMES = ["ב", "ג", "ד", "ה", "ו", "ש", "א"]   # Monday-first, matches date.weekday()
TEMPLATE_TITLE = "לוח תורנויות - תבנית"
TEMPLATE_SHEET = "תורנויות"

HEADER_FILL = "1F4E79"
ALT_ROW_FILL = "EBF3FB"


# ---------------------------------------------------------------------------
# Template workbook
# ---------------------------------------------------------------------------

def build_template_workbook(start: Optional[date] = None, days: int = 30) -> bytes:
    """
    Build the upload template: row 1 title, row 2 labels, rows 3.. dated rows.

    Args:
        start: first date (defaults to the 1st of the current month)
        days:  number of dated rows
    """
    from openpyxl import Workbook
    from openpyxl.styles import Alignment, Font, PatternFill

    start = start or date.today().replace(day=1)
    width = max(SOURCE_COLUMNS) + 1

    wb = Workbook()
    ws = wb.active
    ws.title = TEMPLATE_SHEET
    ws.sheet_view.rightToLeft = True

    ws.append([TEMPLATE_TITLE])
    ws.merge_cells(start_row=1, start_column=1, end_row=1, end_column=width)
    ws["A1"].font = Font(bold=True, size=14)
    ws["A1"].alignment = Alignment(horizontal="center")

    header = [DAY_OF_WEEK_HEADER, DATE_HEADER] + [SOURCE_COLUMNS[i] for i in range(2, width)]
    ws.append(header)
    for cell in ws[2]:
        cell.font = Font(bold=True)
        cell.fill = PatternFill("solid", fgColor="E7E6E6")
        cell.alignment = Alignment(horizontal="center", wrap_text=True)

    for offset in range(days):
        d = start + timedelta(days=offset)
        ws.append([HEBREW_DAY_NAMES[d.weekday()], d] + [None] * (width - 2))
        ws.cell(row=ws.max_row, column=2).number_format = "dd/mm/yyyy"

    ws.column_dimensions["A"].width = 5
    ws.column_dimensions["B"].width = 12
    for col in ws.iter_cols(min_col=3, max_col=width, min_row=2, max_row=2):
        ws.column_dimensions[col[0].column_letter].width = 15

    buffer = io.BytesIO()
    wb.save(buffer)
    logger.info(f"Built template workbook: {days} rows from {start.isoformat()}")
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# CSV Export
# ---------------------------------------------------------------------------

def _flat_rows(days: List[ScheduleDay]) -> List[Dict[str, str]]:
    rows = []
    for day in sorted(days, key=lambda d: d.date):
        for station in STATION_KEYS:
            entry = day.stations.get(station)
            if entry is None:
                continue
            rows.append({
                "date":    day.date_key,
                "station": station,
                "userId":  entry.occupant_ref,
                "name":    entry.display_name,
            })
    return rows


def export_to_csv(days: List[ScheduleDay], output_path: Path) -> None:
    """Export days to flat CSV: date, station, userId, name."""
    import pandas as pd

    output_path.parent.mkdir(parents=True, exist_ok=True)
    df = pd.DataFrame(_flat_rows(days), columns=["date", "station", "userId", "name"])
    df.to_csv(output_path, index=False, encoding="utf-8-sig")
    logger.info(f"CSV exported → {output_path}")


# ---------------------------------------------------------------------------
# Excel Export
# ---------------------------------------------------------------------------

def export_to_excel(days: List[ScheduleDay], output_path: Path) -> None:
    """
    Export days to a date × station grid (cells = display names), stations in
    canonical order, column headers are the English station labels.
    """
    import pandas as pd

    output_path.parent.mkdir(parents=True, exist_ok=True)
    df = pd.DataFrame(_flat_rows(days), columns=["date", "station", "userId", "name"])
    if df.empty:
        df.to_excel(output_path, index=False)
        logger.info(f"Excel exported (empty) → {output_path}")
        return

    grid = df.pivot_table(index="date", columns="station", values="name", aggfunc="first")
    ordered = [s for s in STATION_KEYS if s in grid.columns]
    grid = grid[ordered].rename(columns=STATION_LABELS)
    grid.columns.name = None

    with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
        grid.to_excel(writer, sheet_name="Schedule")
        _format_excel_grid(writer, "Schedule")

    logger.info(f"Excel exported → {output_path}")


def _format_excel_grid(writer: Any, sheet_name: str) -> None:
    """Header styling, column widths, alternate row shading."""
    from openpyxl.styles import Alignment, Font, PatternFill

    ws = writer.sheets[sheet_name]
    for cell in ws[1]:
        cell.fill = PatternFill("solid", fgColor=HEADER_FILL)
        cell.font = Font(bold=True, color="FFFFFF")
        cell.alignment = Alignment(horizontal="center")

    for col in ws.columns:
        max_len = max((len(str(c.value)) for c in col if c.value), default=8)
        ws.column_dimensions[col[0].column_letter].width = min(max_len + 2, 30)

    alt = PatternFill("solid", fgColor=ALT_ROW_FILL)
    for i, row in enumerate(ws.iter_rows(min_row=2), start=2):
        if i % 2 == 0:
            for cell in row:
                cell.fill = alt


# ---------------------------------------------------------------------------
# Backfill report
# ---------------------------------------------------------------------------

def export_backfill_report(summary: Dict[str, Any], output_path: Path) -> str:
    """
    Write the reconciliation summary as text: counts, then every unknown and
    ambiguous entry for manual review.
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)
    sep = "=" * 70
    mode = "DRY RUN" if summary.get("dryRun") else "LIVE"

    lines = [
        sep,
        f"  ON-CALL NAME BACKFILL — {mode}",
        sep,
        "",
        f"  Days examined:       {summary.get('examined', 0)}",
        f"  Days updated:        {summary.get('updated', 0)}",
        f"  Entries resolved:    {summary.get('resolved', 0)}",
        f"  Unknown names:       {len(summary.get('unknowns', []))}",
        f"  Ambiguous names:     {len(summary.get('ambiguous', []))}",
        "",
        "─" * 70,
        "  Unknown",
        "─" * 70,
    ]
    for u in summary.get("unknowns", []):
        lines.append(f"  {u['id']}  {u['stationKey']:<18} {u['name']}")
    if not summary.get("unknowns"):
        lines.append("  (none)")

    lines += ["", "─" * 70, "  Ambiguous", "─" * 70]
    for a in summary.get("ambiguous", []):
        lines.append(f"  {a['id']}  {a['stationKey']:<18} {a['name']}  ({a['matches']} candidates)")
    if not summary.get("ambiguous"):
        lines.append("  (none)")

    lines += ["", sep]
    report_text = "\n".join(lines)
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(report_text)

    logger.info(f"Backfill report exported → {output_path}")
    return report_text

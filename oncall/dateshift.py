"""
dateshift.py — Date-Shift Corrector

Moves a block of persisted days by a fixed number of days to undo a
systematic off-by-N import error.

Shift window for month M (fixed, independent of the delta):
  first = (1st of M) - 1 day
  last  = (last day of M) - 2 days
  e.g. 2025-11 → 2025-10-31 .. 2025-11-28 inclusive

For every persisted day in the window: write its content at date + delta,
then delete the source. Sources are processed from the far end of the move
(descending for delta > 0, ascending for delta < 0) so a destination that is
itself a source has already been moved away before it is overwritten.

A collision is a destination that already holds a document which is NOT
part of the moved set; it is counted and overwritten, never blocking.

Write-then-delete is two store calls per day: a crash between them leaves
both documents present, so a crashed run needs manual inspection.
"""

import calendar
import logging
import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, List, Tuple

from oncall.config import MAX_SHIFT_DELTA_DAYS
from oncall.models import ScheduleDay, ValidationError, to_date_key
from oncall.store import ScheduleRepository

logger = logging.getLogger(__name__)

_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")


@dataclass
class ShiftSummary:
    dry_run: bool
    month: str
    delta_days: int
    range_start: str
    range_end: str
    moves: List[Dict[str, str]] = field(default_factory=list)
    collisions: int = 0

    @property
    def examined(self) -> int:
        return len(self.moves)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success":    True,
            "mode":       "dateShift",
            "dryRun":     self.dry_run,
            "month":      self.month,
            "deltaDays":  self.delta_days,
            "range":      {"start": self.range_start, "end": self.range_end},
            "examined":   self.examined,
            "updated":    len(self.moves),
            "collisions": self.collisions,
            "moves":      self.moves,
        }


def parse_month(month: str) -> Tuple[int, int]:
    m = _MONTH_RE.match((month or "").strip())
    if not m:
        raise ValidationError(f"month must be YYYY-MM, got {month!r}")
    year, mon = int(m.group(1)), int(m.group(2))
    if not 1 <= mon <= 12:
        raise ValidationError(f"month must be YYYY-MM, got {month!r}")
    return year, mon


def parse_delta(raw: Any) -> int:
    try:
        delta = int(str(raw).strip())
    except (TypeError, ValueError):
        raise ValidationError(f"deltaDays must be an integer, got {raw!r}")
    if delta == 0:
        raise ValidationError("deltaDays must not be 0")
    if abs(delta) > MAX_SHIFT_DELTA_DAYS:
        raise ValidationError(f"deltaDays must be within ±{MAX_SHIFT_DELTA_DAYS}, got {delta}")
    return delta


def shift_window(year: int, month: int) -> Tuple[date, date]:
    """(first, last) dates of the shiftable window for a month, inclusive."""
    first = date(year, month, 1) - timedelta(days=1)
    last_day = calendar.monthrange(year, month)[1]
    last = date(year, month, last_day) - timedelta(days=2)
    return first, last


def plan_shift(
    repo: ScheduleRepository,
    year: int,
    month: int,
    delta: int,
) -> Tuple[List[Tuple[ScheduleDay, date]], int, Tuple[date, date]]:
    """
    Read the window once and compute (source day, destination date) pairs in
    processing order, plus the collision count.
    """
    first, last = shift_window(year, month)
    sources = repo.days_in_range(to_date_key(first), to_date_key(last))
    # the range query is authoritative, but never act outside the window
    sources = [d for d in sources if first <= d.date <= last]
    sources.sort(key=lambda d: d.date, reverse=delta > 0)

    source_keys = {d.date_key for d in sources}
    plan: List[Tuple[ScheduleDay, date]] = []
    collisions = 0
    for day in sources:
        dest = day.date + timedelta(days=delta)
        dest_key = to_date_key(dest)
        if dest_key not in source_keys and repo.exists(dest_key):
            collisions += 1
            logger.warning(f"Shift collision: {day.date_key} → {dest_key} overwrites an existing day")
        plan.append((day, dest))
    return plan, collisions, (first, last)


def shift_month(
    repo: ScheduleRepository,
    month: str,
    delta_days: Any,
    dry_run: bool = False,
) -> ShiftSummary:
    """Shift every persisted day in the month's window by delta_days."""
    year, mon = parse_month(month)
    delta = parse_delta(delta_days)
    plan, collisions, (first, last) = plan_shift(repo, year, mon, delta)

    summary = ShiftSummary(
        dry_run=dry_run,
        month=f"{year:04d}-{mon:02d}",
        delta_days=delta,
        range_start=to_date_key(first),
        range_end=to_date_key(last),
        collisions=collisions,
    )

    for day, dest in plan:
        summary.moves.append({"from": day.date_key, "to": to_date_key(dest)})
        if dry_run:
            continue
        moved = ScheduleDay(date=dest, stations=dict(day.stations), created_at=day.created_at)
        repo.save_day(moved)
        repo.delete_day(day.date_key)
        logger.debug(f"Moved {day.date_key} → {moved.date_key}")

    logger.info(
        f"{'[dry run] ' if dry_run else ''}Date shift {summary.month} by {delta:+d}: "
        f"{len(summary.moves)} days in {summary.range_start}..{summary.range_end}, "
        f"{collisions} collisions"
    )
    return summary

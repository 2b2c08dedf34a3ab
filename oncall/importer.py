"""
importer.py — Schedule import: grid → ScheduleDays → "replace whole month"

Pipeline:
  1. decode payload (grid.decode_workbook / grid.decode_csv)
  2. normalize rows (rows.normalize_rows) → ImportRows + RowErrors
  3. map station labels (stations.map_station_values), optionally resolving
     occupant names exactly (identity.ExactNameResolver)
  4. replace every touched month:
       - delete EVERY persisted day in each (year, month) touched, page by page
       - write one document per imported day (idempotent set)

Step 4 is a sequence of separate store calls with no lock. A store failure
mid-way propagates to the caller and can leave a month partially replaced;
two concurrent imports of the same month can interleave.

save_manual_day merges hand-entered assignments into a single day.
"""

import calendar
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from oncall.config import CSV_HEADER_ROWS, WORKBOOK_HEADER_ROWS
from oncall.grid import decode_csv, decode_workbook, looks_like_workbook
from oncall.identity import ExactNameResolver
from oncall.models import (
    ImportRow,
    RowError,
    ScheduleDay,
    ScheduleFormatError,
    StationAssignment,
    ValidationError,
    parse_date_key,
)
from oncall.rows import normalize_rows
from oncall.stations import is_station_key, map_station_values
from oncall.store import AliasRepository, ScheduleRepository, UserDirectory

logger = logging.getLogger(__name__)


@dataclass
class ImportSummary:
    dry_run: bool
    days: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    deleted: int = 0
    assignments: int = 0
    months: List[str] = field(default_factory=list)
    unresolved: List[Dict[str, str]] = field(default_factory=list)
    errors: List[RowError] = field(default_factory=list)
    aliases_saved: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dryRun":       self.dry_run,
            "days":         self.days,
            "created":      self.created,
            "updated":      self.updated,
            "skipped":      self.skipped,
            "deleted":      self.deleted,
            "assignments":  self.assignments,
            "months":       self.months,
            "unresolved":   self.unresolved,
            "errors":       [e.to_dict() for e in self.errors],
            "aliasesSaved": self.aliases_saved,
        }


# ---------------------------------------------------------------------------
# Month helpers
# ---------------------------------------------------------------------------

def month_bounds(year: int, month: int) -> Tuple[str, str]:
    """(first dateKey, last dateKey) of a calendar month."""
    last = calendar.monthrange(year, month)[1]
    return f"{year:04d}-{month:02d}-01", f"{year:04d}-{month:02d}-{last:02d}"


def touched_months(days: List[ScheduleDay]) -> List[Tuple[int, int]]:
    return sorted({(d.date.year, d.date.month) for d in days})


# ---------------------------------------------------------------------------
# Rows → days
# ---------------------------------------------------------------------------

def build_days(
    rows: List[ImportRow],
    resolver: Optional[ExactNameResolver] = None,
) -> Tuple[List[ScheduleDay], int, List[Dict[str, str]]]:
    """
    Build one ScheduleDay per distinct date.

    Returns (days, skipped, unresolved). A later row for an already-seen date
    replaces the earlier one and counts as skipped. Without a resolver every
    occupant is stored as its raw name.
    """
    by_key: Dict[str, ScheduleDay] = {}
    unresolved_by_key: Dict[str, List[Dict[str, str]]] = {}
    skipped = 0

    for row in rows:
        key = row.date_key
        if key in by_key:
            skipped += 1
            logger.warning(f"Row {row.row_number}: duplicate date {key}, earlier row replaced")

        stations: Dict[str, StationAssignment] = {}
        unresolved: List[Dict[str, str]] = []
        for station, name in map_station_values(row.station_raw).items():
            match = resolver.lookup(name) if resolver else None
            if match is None:
                stations[station] = StationAssignment(occupant_ref=name, display_name=name)
                if resolver:
                    unresolved.append({"dateKey": key, "stationKey": station, "name": name})
            else:
                stations[station] = match

        by_key[key] = ScheduleDay(date=row.date, stations=stations)
        unresolved_by_key[key] = unresolved

    days = [by_key[k] for k in sorted(by_key)]
    flat_unresolved = [u for k in sorted(unresolved_by_key) for u in unresolved_by_key[k]]
    return days, skipped, flat_unresolved


# ---------------------------------------------------------------------------
# Schedule Replacement Writer
# ---------------------------------------------------------------------------

def replace_months(
    repo: ScheduleRepository,
    days: List[ScheduleDay],
    dry_run: bool = False,
) -> Dict[str, Any]:
    """
    Replace every month touched by `days`.

    All persisted days of each touched month are deleted, including days the
    batch does not cover, then each day is written. Dry run computes the same
    counts without mutating the store.
    """
    new_keys = {d.date_key for d in days}
    months = touched_months(days)
    existing: List[str] = []
    for year, month in months:
        start, end = month_bounds(year, month)
        existing.extend(repo.keys_in_range(start, end))
    existing_set = set(existing)

    result = {
        "months":  [f"{y:04d}-{m:02d}" for y, m in months],
        "created": len(new_keys - existing_set),
        "updated": len(new_keys & existing_set),
        "deleted": len(existing_set - new_keys),
    }

    if dry_run:
        logger.info(f"[dry run] would replace months {result['months']}: {result}")
        return result

    purged = repo.delete_keys(existing)
    logger.info(f"Purged {purged} existing days in {result['months']}")
    for day in days:
        repo.save_day(day)
    logger.info(f"Wrote {len(days)} days ({result['created']} new, {result['updated']} replaced)")
    return result


# ---------------------------------------------------------------------------
# Full import
# ---------------------------------------------------------------------------

def parse_payload(
    payload: bytes,
    fmt: Optional[str] = None,
    max_bytes: Optional[int] = None,
) -> Tuple[List[ImportRow], List[RowError]]:
    """Decode and normalize an upload. fmt is 'xlsx', 'csv' or None (sniff)."""
    if fmt is None:
        fmt = "xlsx" if looks_like_workbook(payload or b"") else "csv"
    if fmt == "xlsx":
        grid = decode_workbook(payload, max_bytes=max_bytes)
        return normalize_rows(grid, header_rows=WORKBOOK_HEADER_ROWS)
    grid = decode_csv(payload, max_bytes=max_bytes)
    return normalize_rows(grid, header_rows=CSV_HEADER_ROWS)


def import_schedule(
    payload: bytes,
    repo: ScheduleRepository,
    directory: Optional[UserDirectory] = None,
    aliases: Optional[AliasRepository] = None,
    fmt: Optional[str] = None,
    dry_run: bool = False,
    max_bytes: Optional[int] = None,
    resolutions: Optional[Dict[str, str]] = None,
    save_aliases: bool = False,
) -> ImportSummary:
    """
    Run the whole import. Whole-file problems raise ImportFileError; row
    problems are returned in summary.errors. With no valid rows nothing is
    purged or written (summary.days == 0).
    """
    rows, errors = parse_payload(payload, fmt=fmt, max_bytes=max_bytes)
    summary = ImportSummary(dry_run=dry_run, errors=errors)
    if not rows:
        logger.warning(f"Import has no valid rows ({len(errors)} row errors)")
        return summary

    resolver: Optional[ExactNameResolver] = None
    if directory is not None:
        resolver = ExactNameResolver(
            directory.list_users(),
            aliases=aliases.load() if aliases else None,
            resolutions=resolutions,
        )

    days, skipped, unresolved = build_days(rows, resolver)
    result = replace_months(repo, days, dry_run=dry_run)

    summary.days = len(days)
    summary.created = result["created"]
    summary.updated = result["updated"]
    summary.deleted = result["deleted"]
    summary.months = result["months"]
    summary.skipped = skipped
    summary.assignments = sum(len(d.stations) for d in days)
    summary.unresolved = unresolved

    if save_aliases and resolutions and resolver and aliases:
        summary.aliases_saved = _save_aliases(aliases, resolver, resolutions, dry_run)

    if unresolved:
        logger.warning(f"{len(unresolved)} occupant names left unresolved (stored as raw names)")
    logger.info(
        f"{'[dry run] ' if dry_run else ''}Import: {summary.days} days, "
        f"{summary.assignments} assignments, {len(errors)} row errors"
    )
    return summary


def _save_aliases(
    aliases: AliasRepository,
    resolver: ExactNameResolver,
    resolutions: Dict[str, str],
    dry_run: bool,
) -> int:
    existing = aliases.load()
    saved = 0
    for raw_name, uid in resolutions.items():
        key = raw_name.strip().lower()
        user = resolver.user(uid)
        if not key or key in existing or user is None:
            continue
        if not dry_run:
            aliases.save(raw_name, user)
        saved += 1
    return saved


# ---------------------------------------------------------------------------
# Manual day entry
# ---------------------------------------------------------------------------

_DATE_KEY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def save_manual_day(
    repo: ScheduleRepository,
    date_key: Any,
    stations: Any,
) -> ScheduleDay:
    """
    Merge hand-entered assignments into one day.

    stations maps station key → {"userId": ..., "userDisplayName": ...}.
    Stations not named keep their stored occupant; the day is created if it
    does not exist yet. Raises ValidationError before anything is written.
    """
    if not date_key or stations is None:
        raise ValidationError("Missing required fields: dateKey, stations")
    if not isinstance(date_key, str) or not _DATE_KEY_RE.match(date_key):
        raise ValidationError("Invalid dateKey format. Expected YYYY-MM-DD")
    try:
        day_date = parse_date_key(date_key)
    except ScheduleFormatError:
        raise ValidationError("Invalid dateKey format. Expected YYYY-MM-DD")
    if not isinstance(stations, dict):
        raise ValidationError("stations must be an object of station key → assignment")

    incoming: Dict[str, StationAssignment] = {}
    for key, value in stations.items():
        if not is_station_key(key):
            raise ValidationError(f"Unknown station key: {key!r}")
        if not isinstance(value, dict):
            raise ValidationError(f"{key}: assignment must be an object with userId")
        ref = value.get("userId")
        if not isinstance(ref, str) or not ref.strip():
            raise ValidationError(f"{key}: userId is required")
        name = value.get("userDisplayName")
        display = name.strip() if isinstance(name, str) and name.strip() else ref.strip()
        incoming[key] = StationAssignment(occupant_ref=ref.strip(), display_name=display)

    existing = repo.get_day(date_key)
    merged = dict(existing.stations) if existing else {}
    merged.update(incoming)
    day = ScheduleDay(
        date=day_date,
        stations=merged,
        created_at=existing.created_at if existing else None,
    )
    repo.save_day(day)
    logger.info(
        f"Saved on-call day {date_key} by hand: {len(incoming)} stations set, "
        f"{'updated' if existing else 'created'}"
    )
    return day

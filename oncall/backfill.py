"""
backfill.py — Backfill Reconciler (raw occupant names → stable user ids)

For every persisted ScheduleDay and every station whose occupant_ref is not a
known user id, the display name is run through the Identity Resolver:

  RESOLVED   → station rewritten with (user id, matched display name)
  UNKNOWN    → left untouched, reported in `unknowns`
  AMBIGUOUS  → left untouched, reported in `ambiguous` with candidate count

One directory read builds the match index, then days are read and written
one at a time. There is no transaction over the run: a day changed by
someone else mid-run may be overwritten from a stale read.

Dry run performs the same classification and reports the same counts.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from oncall.identity import MatchIndex, resolve_name
from oncall.models import ResolutionStatus, ScheduleDay, StationAssignment
from oncall.store import ScheduleRepository, UserDirectory

logger = logging.getLogger(__name__)


@dataclass
class BackfillSummary:
    dry_run: bool
    examined: int = 0
    updated: int = 0                 # days changed (or that would change)
    resolved: int = 0                # station entries rewritten
    unknowns: List[Dict[str, Any]] = field(default_factory=list)
    ambiguous: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success":   True,
            "mode":      "resolveNames",
            "dryRun":    self.dry_run,
            "examined":  self.examined,
            "updated":   self.updated,
            "resolved":  self.resolved,
            "unknowns":  self.unknowns,
            "ambiguous": self.ambiguous,
        }


def reconcile_day(
    day: ScheduleDay,
    index: MatchIndex,
    summary: BackfillSummary,
) -> Optional[ScheduleDay]:
    """
    Classify every station of one day. Returns the rewritten day when at least
    one station resolved, else None. Unknown / ambiguous entries are appended
    to the summary.
    """
    new_stations: Dict[str, StationAssignment] = dict(day.stations)
    changed = False

    for station, entry in day.stations.items():
        if entry.occupant_ref in index:
            continue

        candidate_name = entry.display_name or entry.occupant_ref
        resolution = resolve_name(candidate_name, index)

        if resolution.status is ResolutionStatus.RESOLVED:
            new_stations[station] = StationAssignment(
                occupant_ref=resolution.identity.id,
                display_name=resolution.identity.display_name,
            )
            summary.resolved += 1
            changed = True
        elif resolution.status is ResolutionStatus.UNKNOWN:
            summary.unknowns.append({"id": day.date_key, "stationKey": station, "name": candidate_name})
        else:
            summary.ambiguous.append({
                "id": day.date_key,
                "stationKey": station,
                "name": candidate_name,
                "matches": resolution.candidates,
            })

    if not changed:
        return None
    return ScheduleDay(date=day.date, stations=new_stations, created_at=day.created_at)


def reconcile_names(
    repo: ScheduleRepository,
    directory: UserDirectory,
    dry_run: bool = False,
) -> BackfillSummary:
    """Run the reconciler over every persisted day."""
    index = MatchIndex(directory.list_users())
    summary = BackfillSummary(dry_run=dry_run)

    for day in list(repo.iter_days()):
        summary.examined += 1
        rewritten = reconcile_day(day, index, summary)
        if rewritten is None:
            continue
        if not dry_run:
            repo.save_day(rewritten)
        summary.updated += 1

    for entry in summary.unknowns:
        logger.warning(f"Unknown occupant {entry['name']!r} on {entry['id']} ({entry['stationKey']})")
    for entry in summary.ambiguous:
        logger.warning(
            f"Ambiguous occupant {entry['name']!r} on {entry['id']} "
            f"({entry['stationKey']}): {entry['matches']} candidates"
        )
    logger.info(
        f"{'[dry run] ' if dry_run else ''}Backfill: examined={summary.examined} "
        f"updated={summary.updated} resolved={summary.resolved} "
        f"unknown={len(summary.unknowns)} ambiguous={len(summary.ambiguous)}"
    )
    return summary

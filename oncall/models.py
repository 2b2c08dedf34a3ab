"""
models.py — Typed records for the on-call schedule subsystem

Persisted:
  - ScheduleDay:        one document per calendar date (key = dateKey)
  - StationAssignment:  one occupant of one station on one day

Transient:
  - ImportRow:  one decoded spreadsheet row
  - RowError:   row-level parse problem (reported, never raised)

External / derived:
  - UserIdentity: read-only directory entry used for matching
  - Resolution:   outcome of an identity lookup (resolved / unknown / ambiguous)
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class OnCallError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(OnCallError):
    pass


class ImportFileError(OnCallError):
    """Whole-file problem: empty payload, no sheets, too large, undecodable."""


class ScheduleFormatError(OnCallError):
    """A persisted document does not have the expected shape."""


class ValidationError(OnCallError):
    """Bad request parameter (month, delta, mode)."""


class StoreError(OnCallError):
    pass


# ---------------------------------------------------------------------------
# Date keys
# ---------------------------------------------------------------------------

def to_date_key(d: date) -> str:
    """Canonical YYYY-MM-DD key for a calendar date."""
    return f"{d.year:04d}-{d.month:02d}-{d.day:02d}"


def parse_date_key(key: str) -> date:
    try:
        d = datetime.strptime(key, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise ScheduleFormatError(f"Invalid dateKey: {key!r}")
    if to_date_key(d) != key:
        raise ScheduleFormatError(f"Non-canonical dateKey: {key!r}")
    return d


# ---------------------------------------------------------------------------
# Schedule records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StationAssignment:
    # occupant_ref holds either a user id or, before reconciliation, a raw name
    occupant_ref: str
    display_name: str

    def to_doc(self) -> Dict[str, str]:
        return {"userId": self.occupant_ref, "userDisplayName": self.display_name}


@dataclass
class ScheduleDay:
    date: date
    stations: Dict[str, StationAssignment] = field(default_factory=dict)
    created_at: Optional[datetime] = None

    @property
    def date_key(self) -> str:
        return to_date_key(self.date)

    @property
    def month_key(self) -> str:
        return self.date_key[:7]


@dataclass
class ImportRow:
    row_number: int
    date: date
    day_of_week: Optional[str] = None
    station_raw: Dict[str, str] = field(default_factory=dict)   # source label → occupant text

    @property
    def date_key(self) -> str:
        return to_date_key(self.date)


@dataclass(frozen=True)
class RowError:
    row: int
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"row": self.row, "message": self.message}


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class UserIdentity:
    id: str
    full_name: str = ""
    full_name_he: str = ""
    email: str = ""
    role: Optional[str] = None
    status: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.full_name or self.full_name_he or self.email or self.id


class ResolutionStatus(Enum):
    RESOLVED = "resolved"
    UNKNOWN = "unknown"
    AMBIGUOUS = "ambiguous"


@dataclass(frozen=True)
class Resolution:
    status: ResolutionStatus
    identity: Optional[UserIdentity] = None
    candidates: int = 0

    @property
    def is_resolved(self) -> bool:
        return self.status is ResolutionStatus.RESOLVED

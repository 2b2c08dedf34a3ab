"""
On-Call Schedule Ingestion & Reconciliation

Modules:
- stations: canonical station keys, source-label mapping, workbook layout
- grid / rows: upload decoding and row normalization
- importer: whole-month schedule replacement
- names / identity: name normalization and user matching
- backfill: raw-name → user-id reconciliation
- dateshift: off-by-N date correction
- store: document store contract, JSON file store, repositories
- api / cli: HTTP endpoints and command-line entry point
"""

from .config import Settings, load_settings

from .models import (
    OnCallError,
    ImportFileError,
    ScheduleFormatError,
    ValidationError,
    ScheduleDay,
    StationAssignment,
    UserIdentity,
)

from .importer import import_schedule, replace_months, save_manual_day
from .backfill import reconcile_names
from .dateshift import shift_month
from .store import MemoryStore, JsonFileStore, ScheduleRepository, UserDirectory

__all__ = [
    "Settings",
    "load_settings",
    "OnCallError",
    "ImportFileError",
    "ScheduleFormatError",
    "ValidationError",
    "ScheduleDay",
    "StationAssignment",
    "UserIdentity",
    "import_schedule",
    "save_manual_day",
    "replace_months",
    "reconcile_names",
    "shift_month",
    "MemoryStore",
    "JsonFileStore",
    "ScheduleRepository",
    "UserDirectory",
]

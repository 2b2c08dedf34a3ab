"""
tests/conftest.py — Shared fixtures: in-memory store, users, workbook builder.
"""

import io
import sys
from datetime import date
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from oncall.config import USERS_COLLECTION
from oncall.models import ScheduleDay, StationAssignment
from oncall.stations import DATE_HEADER, DAY_OF_WEEK_HEADER, SOURCE_COLUMNS
from oncall.store import MemoryStore, ScheduleRepository, UserDirectory

WORKBOOK_HEADER = [DAY_OF_WEEK_HEADER, DATE_HEADER] + [SOURCE_COLUMNS[i] for i in range(2, 24)]

USERS = {
    "u-cohen":   {"fullName": "Avi Cohen",   "fullNameHe": "אבי כהן", "email": "avi@example.org",
                  "role": "resident", "status": "active"},
    "u-cohen2":  {"fullName": "Dana Cohen",  "email": "dana@example.org",
                  "role": "resident", "status": "inactive"},
    "u-levi":    {"fullName": "Ruth Levi",   "fullNameHe": "רות לוי", "email": "ruth@example.org",
                  "role": "resident", "status": "active"},
    "u-levi2":   {"fullName": "Noa Levi",    "email": "noa@example.org",
                  "role": "resident", "status": "active"},
    "u-perez":   {"fullName": "José Pérez",  "email": "jose@example.org",
                  "role": "attending", "status": "active"},
    "u-admin":   {"fullName": "Admin User",  "email": "admin@example.org",
                  "role": "admin", "status": "active"},
    "u-former":  {"fullName": "Old Admin",   "email": "old@example.org",
                  "role": "admin", "status": "inactive"},
}


@pytest.fixture
def store():
    return MemoryStore({USERS_COLLECTION: USERS})


@pytest.fixture
def repo(store):
    return ScheduleRepository(store, page_size=3)


@pytest.fixture
def directory(store):
    return UserDirectory(store)


@pytest.fixture
def make_workbook():
    """Factory: data rows (below title + label rows) → .xlsx bytes."""
    from openpyxl import Workbook

    def _build(rows, header=None, title="לוח תורנויות"):
        wb = Workbook()
        ws = wb.active
        ws.append([title])
        ws.append(list(header or WORKBOOK_HEADER))
        for row in rows:
            ws.append(list(row))
        buffer = io.BytesIO()
        wb.save(buffer)
        return buffer.getvalue()

    return _build


@pytest.fixture
def seed_days(repo):
    """Factory: write days whose or_main occupant is the day's own key."""

    def _seed(start: date, end: date, station: str = "or_main"):
        current = start
        while current <= end:
            key = current.isoformat()
            repo.save_day(ScheduleDay(date=current, stations={station: StationAssignment(key, key)}))
            current = date.fromordinal(current.toordinal() + 1)

    return _seed

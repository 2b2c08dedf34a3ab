"""
tests/test_dateshift.py — Date-Shift Corrector.

Tests: window boundaries, forward / backward moves, collisions,
dry-run parity, parameter validation.
"""

import sys
from datetime import date
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from oncall.dateshift import parse_delta, parse_month, shift_month, shift_window
from oncall.models import ValidationError


def _occupant(repo, key):
    day = repo.get_day(key)
    return day.stations["or_main"].occupant_ref if day else None


@pytest.fixture
def november(repo, seed_days):
    seed_days(date(2025, 10, 30), date(2025, 11, 30))
    return repo


# ---------------------------------------------------------------------------
# Window
# ---------------------------------------------------------------------------

class TestShiftWindow:

    def test_november(self):
        assert shift_window(2025, 11) == (date(2025, 10, 31), date(2025, 11, 28))

    def test_year_boundary(self):
        assert shift_window(2026, 1) == (date(2025, 12, 31), date(2026, 1, 29))

    def test_february(self):
        assert shift_window(2024, 2) == (date(2024, 1, 31), date(2024, 2, 27))


# ---------------------------------------------------------------------------
# Moves
# ---------------------------------------------------------------------------

class TestShiftMonth:

    def test_forward(self, november):
        summary = shift_month(november, "2025-11", 1)

        assert summary.examined == 29
        assert summary.collisions == 1
        assert summary.moves[0] == {"from": "2025-11-28", "to": "2025-11-29"}
        assert summary.moves[-1] == {"from": "2025-10-31", "to": "2025-11-01"}

        assert _occupant(november, "2025-10-30") == "2025-10-30"
        assert not november.exists("2025-10-31")
        assert _occupant(november, "2025-11-01") == "2025-10-31"
        assert _occupant(november, "2025-11-15") == "2025-11-14"
        assert _occupant(november, "2025-11-29") == "2025-11-28"
        assert _occupant(november, "2025-11-30") == "2025-11-30"

    def test_day_after_window_never_moved(self, november):
        summary = shift_month(november, "2025-11", -1)
        assert all(m["from"] != "2025-11-29" for m in summary.moves)
        assert _occupant(november, "2025-11-29") == "2025-11-29"
        assert _occupant(november, "2025-11-30") == "2025-11-30"
        assert not november.exists("2025-11-28")

    def test_backward(self, november):
        summary = shift_month(november, "2025-11", -1)
        assert summary.examined == 29
        assert summary.collisions == 1
        assert summary.moves[0] == {"from": "2025-10-31", "to": "2025-10-30"}
        assert _occupant(november, "2025-10-30") == "2025-10-31"
        assert _occupant(november, "2025-11-27") == "2025-11-28"

    def test_content_and_created_at_move_with_day(self, november):
        created = november.get_day("2025-11-10").created_at
        shift_month(november, "2025-11", 2)
        moved = november.get_day("2025-11-12")
        assert moved.date_key == "2025-11-12"
        assert moved.created_at == created
        assert moved.stations["or_main"].occupant_ref == "2025-11-10"

    def test_dry_run_parity(self, november, store):
        before = store.dump()
        dry = shift_month(november, "2025-11", 1, dry_run=True)
        assert store.dump() == before

        live = shift_month(november, "2025-11", 1)
        dry_data = {k: v for k, v in dry.to_dict().items() if k != "dryRun"}
        live_data = {k: v for k, v in live.to_dict().items() if k != "dryRun"}
        assert dry_data == live_data

    def test_sparse_month_has_no_collisions(self, repo, seed_days):
        seed_days(date(2025, 11, 5), date(2025, 11, 6))
        summary = shift_month(repo, "2025-11", 1)
        assert summary.collisions == 0
        assert repo.keys_in_range("2025-11-01", "2025-11-30") == ["2025-11-06", "2025-11-07"]
        assert _occupant(repo, "2025-11-06") == "2025-11-05"

    def test_empty_window(self, repo):
        summary = shift_month(repo, "2025-11", 1)
        assert summary.to_dict()["examined"] == 0
        assert summary.to_dict()["range"] == {"start": "2025-10-31", "end": "2025-11-28"}


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class TestValidation:

    @pytest.mark.parametrize("month", ["2025-13", "2025/11", "25-11", "", None, "2025-00"])
    def test_bad_month(self, month):
        with pytest.raises(ValidationError):
            parse_month(month)

    def test_good_month(self):
        assert parse_month(" 2025-11 ") == (2025, 11)

    @pytest.mark.parametrize("delta", [0, "0", 8, -8, "abc", None, "1.5"])
    def test_bad_delta(self, delta):
        with pytest.raises(ValidationError):
            parse_delta(delta)

    @pytest.mark.parametrize("delta, expected", [("1", 1), ("-7", -7), (7, 7), (" 3 ", 3)])
    def test_good_delta(self, delta, expected):
        assert parse_delta(delta) == expected

    def test_shift_validates_before_reading(self, repo):
        with pytest.raises(ValidationError):
            shift_month(repo, "2025-11", 0)

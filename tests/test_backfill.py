"""
tests/test_backfill.py — Backfill Reconciler (raw names → user ids).
"""

import sys
from datetime import date
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from oncall.backfill import reconcile_names
from oncall.exporter import export_backfill_report
from oncall.models import ScheduleDay, StationAssignment


def _raw(name):
    return StationAssignment(name, name)


@pytest.fixture
def seeded(repo):
    repo.save_day(ScheduleDay(date(2025, 11, 1), {
        "or_main": _raw("Cohen"),
        "icu": StationAssignment("u-levi", "Ruth Levi"),
    }))
    repo.save_day(ScheduleDay(date(2025, 11, 2), {
        "or_main": _raw("Levi"),
        "icu": _raw("Nobody Known"),
    }))
    repo.save_day(ScheduleDay(date(2025, 11, 3), {"pacu": _raw("José Pérez")}))
    repo.save_day(ScheduleDay(date(2025, 11, 4), {}))
    return repo


class TestReconcileNames:

    def test_classification(self, seeded, directory):
        summary = reconcile_names(seeded, directory)
        assert summary.examined == 4
        assert summary.updated == 2
        assert summary.resolved == 2
        assert summary.unknowns == [{"id": "2025-11-02", "stationKey": "icu", "name": "Nobody Known"}]
        assert summary.ambiguous == [
            {"id": "2025-11-02", "stationKey": "or_main", "name": "Levi", "matches": 2},
        ]

    def test_live_rewrites_resolved_only(self, seeded, directory):
        reconcile_names(seeded, directory)
        assert seeded.get_day("2025-11-01").stations == {
            "or_main": StationAssignment("u-cohen", "Avi Cohen"),
            "icu": StationAssignment("u-levi", "Ruth Levi"),
        }
        assert seeded.get_day("2025-11-02").stations["or_main"] == _raw("Levi")
        assert seeded.get_day("2025-11-03").stations["pacu"] == StationAssignment("u-perez", "José Pérez")

    def test_created_at_preserved(self, seeded, directory):
        before = seeded.get_day("2025-11-01").created_at
        reconcile_names(seeded, directory)
        assert seeded.get_day("2025-11-01").created_at == before

    def test_dry_run_parity(self, seeded, directory, store):
        before = store.dump()
        dry = reconcile_names(seeded, directory, dry_run=True)
        assert store.dump() == before

        live = reconcile_names(seeded, directory)
        dry_counts = {k: v for k, v in dry.to_dict().items() if k != "dryRun"}
        live_counts = {k: v for k, v in live.to_dict().items() if k != "dryRun"}
        assert dry_counts == live_counts

    def test_second_run_changes_nothing(self, seeded, directory):
        reconcile_names(seeded, directory)
        again = reconcile_names(seeded, directory)
        assert again.updated == 0
        assert again.resolved == 0
        assert len(again.unknowns) == 1
        assert len(again.ambiguous) == 1

    def test_summary_dict(self, seeded, directory):
        data = reconcile_names(seeded, directory, dry_run=True).to_dict()
        assert data["success"] is True
        assert data["mode"] == "resolveNames"
        assert data["dryRun"] is True

    def test_report(self, seeded, directory, tmp_path):
        data = reconcile_names(seeded, directory, dry_run=True).to_dict()
        text = export_backfill_report(data, tmp_path / "report.txt")
        assert "DRY RUN" in text
        assert "Nobody Known" in text
        assert "(2 candidates)" in text
        assert (tmp_path / "report.txt").read_text(encoding="utf-8") == text

"""
Tests for the equipment table sync plan and the auto-sync throttle.
"""

import threading
import time

import pytest

from tracker_core.events import EquipmentStatus
from tracker_core.reconciliation import reconcile_history
from tracker_core.sync import (
    AutoSyncThrottle,
    EquipmentRecord,
    SyncTarget,
    compute_status_sync,
)


@pytest.fixture
def reconciliation(record):
    return reconcile_history(
        [
            record("01/03/2024 08:00", "SN-1", "Peminjaman", "Ana", "Lab", "row-2"),
            record("01/03/2024 09:00", "SN-1", "Peminjaman", "Budi", "Site", "row-3"),
            record("02/03/2024 08:00", "SN-5", "Peminjaman", "Citra", "Site", "row-4"),
            record("03/03/2024 08:00", "SN-5", "Pengembalian", "Citra", "", "row-5"),
            record("03/03/2024 09:00", "SN-6", "Pengembalian", "Dodi", "", "row-6"),
        ]
    )


@pytest.fixture
def equipment():
    return [
        EquipmentRecord(2, "Multimeter", "SN-1"),
        EquipmentRecord(3, "Clamp meter", "SN-2"),
        EquipmentRecord(4, "Old scope", "SN-3", condition="Tidak Aktif"),
        EquipmentRecord(5, "Megger", "SN-4", status=EquipmentStatus.MAINTENANCE),
        EquipmentRecord(6, "Unlabelled", "-", status=EquipmentStatus.BORROWED, holder="X"),
        EquipmentRecord(
            7, "Thermal cam", "sn_5", status=EquipmentStatus.BORROWED, location="Site", holder="Citra"
        ),
    ]


class TestComputeStatusSync:
    def test_only_differences_become_changes(self, equipment, reconciliation):
        result = compute_status_sync(equipment, reconciliation)

        assert [c.row_number for c in result.changes] == [2, 7]
        assert result.updated == 2
        assert result.unchanged == 4

    def test_change_records_before_and_after(self, equipment, reconciliation):
        change = compute_status_sync(equipment, reconciliation).changes[0]

        assert change.serial == "SN-1"
        assert change.before == SyncTarget(EquipmentStatus.AVAILABLE, "Gudang", "-")
        assert change.after == SyncTarget(EquipmentStatus.BORROWED, "Lab", "Ana")
        assert change.reason == "changed:status,location,holder"

    def test_returned_equipment_goes_back_to_warehouse(self, equipment, reconciliation):
        change = compute_status_sync(equipment, reconciliation).changes[1]

        assert change.after == SyncTarget(EquipmentStatus.AVAILABLE, "Gudang", "-")
        assert change.to_dict()["after"] == {"status": "available", "location": "Gudang", "holder": "-"}

    def test_force_update_all(self, equipment, reconciliation):
        result = compute_status_sync(equipment, reconciliation, force_update_all=True)

        reasons = {c.row_number: c.reason for c in result.changes}
        assert reasons == {
            2: "changed:status,location,holder",
            3: "force-update",
            7: "changed:status,location,holder",
        }

    def test_stats(self, equipment, reconciliation):
        stats = compute_status_sync(equipment, reconciliation, history_record_count=5).stats

        assert stats.total == 6
        assert stats.inactive == 1
        assert stats.active == 5
        assert stats.maintenance == 1
        assert stats.skipped_maintenance == 1
        assert stats.skipped_invalid_serial == 1
        assert stats.borrowed == 2  # SN-1 target plus the unlabelled row as stored
        assert stats.available == 2
        assert stats.history_records == 5
        assert stats.valid_history_records == 3
        assert stats.duplicate_checkout_records == 1
        assert stats.orphan_checkin_records == 1
        assert stats.invalid_action_records == 2
        assert stats.unique_equipment_with_history == 3

    def test_dry_run_flag_is_reported(self, equipment, reconciliation):
        result = compute_status_sync(equipment, reconciliation, dry_run=True)
        assert result.dry_run
        assert result.to_dict()["dry_run"] is True
        assert result.updated == 2

    def test_empty_history_resets_borrowed_rows(self):
        rows = [EquipmentRecord(2, "Multimeter", "SN-1", status=EquipmentStatus.BORROWED, holder="Ana")]
        result = compute_status_sync(rows, reconcile_history([]))

        assert result.changes[0].reason == "changed:status,holder"


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


class TestAutoSyncThrottle:
    def test_runs_then_throttles(self):
        clock = FakeClock()
        throttle = AutoSyncThrottle(interval_seconds=8, clock=clock)
        calls = []

        assert throttle.maybe_run(lambda: calls.append(1) or "ok") == "ok"
        assert throttle.last_run_at == 100.0

        clock.now += 5
        assert throttle.maybe_run(lambda: calls.append(1) or "ok") is None
        assert len(calls) == 1

        clock.now += 5
        assert throttle.maybe_run(lambda: calls.append(1) or "ok") == "ok"
        assert len(calls) == 2

    def test_force_bypasses_interval(self):
        clock = FakeClock()
        throttle = AutoSyncThrottle(interval_seconds=8, clock=clock)
        throttle.maybe_run(lambda: "first")

        assert throttle.maybe_run(lambda: "second", force=True) == "second"

    def test_failures_are_absorbed_and_not_recorded(self, caplog):
        throttle = AutoSyncThrottle(interval_seconds=8, clock=FakeClock())

        def boom():
            raise RuntimeError("sheet unavailable")

        assert throttle.maybe_run(boom) is None
        assert throttle.last_run_at is None
        assert throttle.in_flight is None
        assert "Auto-sync failed" in caplog.text
        assert throttle.maybe_run(lambda: "recovered") == "recovered"

    def test_concurrent_callers_share_one_run(self):
        throttle = AutoSyncThrottle(interval_seconds=8)
        started = threading.Event()
        release = threading.Event()
        calls = []
        results = []

        def job():
            calls.append(1)
            started.set()
            release.wait(timeout=5)
            return "synced"

        leader = threading.Thread(target=lambda: results.append(throttle.maybe_run(job)))
        leader.start()
        assert started.wait(timeout=5)

        follower = threading.Thread(target=lambda: results.append(throttle.maybe_run(job)))
        follower.start()
        time.sleep(0.1)
        release.set()

        leader.join(timeout=5)
        follower.join(timeout=5)

        assert len(calls) == 1
        assert results == ["synced", "synced"]


def test_throttle_interval_defaults_to_settings(monkeypatch):
    from tracker_core.config import get_settings

    monkeypatch.setenv("ALAT_AUTO_SYNC_INTERVAL_SECONDS", "30")
    get_settings.cache_clear()
    try:
        assert AutoSyncThrottle().interval_seconds == 30.0
    finally:
        get_settings.cache_clear()

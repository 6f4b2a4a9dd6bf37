"""
Equipment table sync.

Diffs the reconciled history against the stored equipment table and reports
the rows whose status, location or holder must change. Writing the changes
back is left to the spreadsheet adapter.
"""

import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, field, asdict
from typing import Callable, Iterable, TypeVar

from .config import get_settings
from .events import EquipmentStatus, IssueKind
from .parsers import EquipmentKeyNormalizer
from .reconciliation import NO_HOLDER, WAREHOUSE, ReconciliationResult

log = logging.getLogger(__name__)

ACTIVE_CONDITION = "aktif"

T = TypeVar("T")


@dataclass(frozen=True)
class EquipmentRecord:
    """One row of the stored equipment table, decoded from its sheet columns."""

    row_number: int
    name: str
    serial: str
    status: EquipmentStatus = EquipmentStatus.AVAILABLE
    location: str = WAREHOUSE
    holder: str = NO_HOLDER
    condition: str = "Aktif"

    @property
    def is_active(self) -> bool:
        return self.condition.strip().lower() == ACTIVE_CONDITION


@dataclass(frozen=True)
class SyncTarget:
    status: EquipmentStatus
    location: str
    holder: str

    def to_dict(self) -> dict:
        return {"status": self.status.value, "location": self.location, "holder": self.holder}


DEFAULT_TARGET = SyncTarget(EquipmentStatus.AVAILABLE, WAREHOUSE, NO_HOLDER)


@dataclass(frozen=True)
class SyncChange:
    """Before/after record for one equipment row that gets rewritten."""

    row_number: int
    name: str
    serial: str
    before: SyncTarget
    after: SyncTarget
    reason: str  # "changed:<fields>" or "force-update"

    def to_dict(self) -> dict:
        return {
            "row_number": self.row_number,
            "name": self.name,
            "serial": self.serial,
            "before": self.before.to_dict(),
            "after": self.after.to_dict(),
            "reason": self.reason,
        }


@dataclass
class SyncStats:
    total: int = 0
    active: int = 0
    inactive: int = 0
    available: int = 0
    borrowed: int = 0
    maintenance: int = 0
    history_records: int = 0
    valid_history_records: int = 0
    ignored_history_records: int = 0
    invalid_action_records: int = 0
    duplicate_checkout_records: int = 0
    orphan_checkin_records: int = 0
    unique_equipment_with_history: int = 0
    skipped_invalid_serial: int = 0
    skipped_maintenance: int = 0


@dataclass
class SyncResult:
    updated: int = 0
    unchanged: int = 0
    dry_run: bool = False
    changes: list[SyncChange] = field(default_factory=list)
    stats: SyncStats = field(default_factory=SyncStats)

    def to_dict(self) -> dict:
        return {
            "updated": self.updated,
            "unchanged": self.unchanged,
            "dry_run": self.dry_run,
            "changes": [c.to_dict() for c in self.changes],
            "stats": asdict(self.stats),
        }


def _changed_fields(before: SyncTarget, after: SyncTarget) -> list[str]:
    fields = []
    if before.status != after.status:
        fields.append("status")
    if before.location != after.location:
        fields.append("location")
    if before.holder != after.holder:
        fields.append("holder")
    return fields


def compute_status_sync(
    equipment: Iterable[EquipmentRecord],
    reconciliation: ReconciliationResult,
    history_record_count: int | None = None,
    force_update_all: bool = False,
    dry_run: bool = False,
) -> SyncResult:
    """
    Work out which equipment rows disagree with the reconciled history.

    Inactive rows, rows under maintenance and rows without a usable serial are
    left alone. Every other row is compared against its reconciled state, or
    against Available/"-"/"Gudang" when its serial never shows up in the log.

    Args:
        history_record_count: number of raw history rows, for the report.
            Defaults to the number of reconciled events.
        force_update_all: emit a change for every eligible row, even unchanged ones
        dry_run: only recorded on the result; computing changes has no side effects
    """
    normalizer = EquipmentKeyNormalizer()
    equipment = list(equipment)

    duplicates = len(reconciliation.issues_of(IssueKind.DUPLICATE_CHECKOUT))
    orphans = len(reconciliation.issues_of(IssueKind.ORPHAN_CHECKIN))
    stats = SyncStats(
        total=len(equipment),
        history_records=(
            history_record_count
            if history_record_count is not None
            else len(reconciliation.events)
        ),
        valid_history_records=reconciliation.valid_event_count,
        ignored_history_records=reconciliation.ignored_identifier_count,
        invalid_action_records=duplicates + orphans,
        duplicate_checkout_records=duplicates,
        orphan_checkin_records=orphans,
        unique_equipment_with_history=len(reconciliation.states),
    )
    result = SyncResult(dry_run=dry_run, stats=stats)

    for row in equipment:
        if not row.is_active:
            stats.inactive += 1
            result.unchanged += 1
            continue

        if row.status == EquipmentStatus.MAINTENANCE:
            stats.maintenance += 1
            stats.skipped_maintenance += 1
            result.unchanged += 1
            continue

        key = normalizer.normalize(row.serial)
        if not normalizer.is_valid(key):
            stats.skipped_invalid_serial += 1
            if row.status == EquipmentStatus.BORROWED:
                stats.borrowed += 1
            else:
                stats.available += 1
            result.unchanged += 1
            continue

        state = reconciliation.state_for(key)
        target = (
            SyncTarget(state.status, state.current_location, state.current_holder)
            if state is not None
            else DEFAULT_TARGET
        )
        if target.status == EquipmentStatus.BORROWED:
            stats.borrowed += 1
        else:
            stats.available += 1

        before = SyncTarget(row.status, row.location, row.holder)
        changed = _changed_fields(before, target)
        if not changed and not force_update_all:
            result.unchanged += 1
            continue

        result.updated += 1
        result.changes.append(
            SyncChange(
                row_number=row.row_number,
                name=row.name,
                serial=row.serial,
                before=before,
                after=target,
                reason=f"changed:{','.join(changed)}" if changed else "force-update",
            )
        )

    stats.active = stats.total - stats.inactive
    log.info(
        "Sync %s: %d to update, %d unchanged",
        "dry-run" if dry_run else "plan",
        result.updated,
        result.unchanged,
    )
    return result


class AutoSyncThrottle:
    """
    Rate limiter for the sync that runs before equipment reads.

    One instance per process, owned by the service entry point. A run is skipped
    when the last successful one finished less than `interval_seconds` ago
    (ALAT_AUTO_SYNC_INTERVAL_SECONDS by default);
    callers arriving while a run is in flight wait for it instead of starting
    another. Failures are logged and absorbed so reads keep working, and they
    do not count as a successful run.
    """

    def __init__(
        self,
        interval_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if interval_seconds is None:
            interval_seconds = get_settings().auto_sync_interval_seconds
        self.interval_seconds = interval_seconds
        self.last_run_at: float | None = None
        self.in_flight: Future | None = None
        self._clock = clock
        self._lock = threading.Lock()

    def is_due(self) -> bool:
        if self.last_run_at is None:
            return True
        return self._clock() - self.last_run_at >= self.interval_seconds

    def maybe_run(self, job: Callable[[], T], force: bool = False) -> T | None:
        """
        Run `job` unless throttled.

        Returns the job's result (or the in-flight run's result), or None when
        the run was skipped or failed.
        """
        with self._lock:
            if not force and not self.is_due():
                return None
            future = self.in_flight
            leader = future is None
            if leader:
                future = Future()
                self.in_flight = future

        if not leader:
            return future.result()

        value = None
        try:
            value = job()
            self.last_run_at = self._clock()
        except Exception:
            log.exception("Auto-sync failed; serving stored equipment state")
        finally:
            with self._lock:
                self.in_flight = None
            future.set_result(value)
        return value

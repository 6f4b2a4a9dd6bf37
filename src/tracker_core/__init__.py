# Core history reconciliation for the equipment check-out tracker.
# Nothing in here reads or writes the spreadsheet; see tracker_clients for that.

from .events import (
    Action,
    EquipmentKey,
    EquipmentStatus,
    IssueKind,
    NormalizedEvent,
    RawEventRecord,
    ReconciledEvent,
)
from .parsers import (
    EPOCH,
    ActionResolver,
    EquipmentKeyNormalizer,
    TimestampParser,
    is_valid_identifier,
    normalize_event,
    normalize_key,
    parse_timestamp,
    resolve_action,
)
from .reconciliation import (
    EquipmentState,
    ReconciliationEngine,
    ReconciliationResult,
    reconcile_history,
)
from .quality import DataQualityIssue, DataQualityReport, HistoryQualityChecker
from .sync import (
    AutoSyncThrottle,
    EquipmentRecord,
    SyncChange,
    SyncResult,
    SyncTarget,
    compute_status_sync,
)

__all__ = [
    "Action",
    "EquipmentKey",
    "EquipmentStatus",
    "IssueKind",
    "NormalizedEvent",
    "RawEventRecord",
    "ReconciledEvent",
    "EPOCH",
    "ActionResolver",
    "EquipmentKeyNormalizer",
    "TimestampParser",
    "is_valid_identifier",
    "normalize_event",
    "normalize_key",
    "parse_timestamp",
    "resolve_action",
    "EquipmentState",
    "ReconciliationEngine",
    "ReconciliationResult",
    "reconcile_history",
    "DataQualityIssue",
    "DataQualityReport",
    "HistoryQualityChecker",
    "AutoSyncThrottle",
    "EquipmentRecord",
    "SyncChange",
    "SyncResult",
    "SyncTarget",
    "compute_status_sync",
]

"""
History reconciliation engine.

Derives the current state of every piece of equipment (available/borrowed,
holder, location) from the check-out/check-in log. The log is append-only,
written by a public form, unordered and occasionally malformed, so the engine:
1. Normalizes every row (action, serial, timestamp)
2. Sorts by instant, breaking ties by the numeric suffix of the event id
3. Replays each serial through an available <-> borrowed state machine
4. Quarantines events that would break the state machine instead of applying them

The run is stateless: each call recomputes everything from the full log.
"""

import logging
import re
from dataclasses import dataclass, field
from functools import cmp_to_key
from typing import Any, Iterable, Mapping

import pandas as pd

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
    ActionResolver,
    EquipmentKeyNormalizer,
    TimestampParser,
    normalize_event,
)

log = logging.getLogger(__name__)

NO_HOLDER = "-"
WAREHOUSE = "Gudang"

ISSUE_MESSAGES = {
    IssueKind.INVALID_IDENTIFIER: "Serial number is empty or a placeholder; event ignored.",
    IssueKind.DUPLICATE_CHECKOUT: "Duplicate checkout while the equipment is still borrowed.",
    IssueKind.ORPHAN_CHECKIN: "Checkin without an active checkout; event ignored.",
}

_TRAILING_NUMBER = re.compile(r"(\d+)\s*$")


@dataclass
class EquipmentState:
    """Replayed state of one serial. Only the engine mutates these."""

    equipment_key: EquipmentKey
    status: EquipmentStatus = EquipmentStatus.AVAILABLE
    current_holder: str = NO_HOLDER
    current_location: str = WAREHOUSE
    last_event_timestamp: str = ""
    last_event_id: str | None = None
    checkout_count: int = 0
    checkin_count: int = 0
    invalid_checkout_count: int = 0
    invalid_checkin_count: int = 0

    @property
    def is_borrowed(self) -> bool:
        return self.status == EquipmentStatus.BORROWED

    @property
    def open_checkouts(self) -> int:
        """Valid checkouts minus valid checkins. Always 0 or 1."""
        valid_out = self.checkout_count - self.invalid_checkout_count
        valid_in = self.checkin_count - self.invalid_checkin_count
        return valid_out - valid_in

    def to_dict(self) -> dict:
        return {
            "equipment_key": self.equipment_key,
            "status": self.status.value,
            "current_holder": self.current_holder,
            "current_location": self.current_location,
            "last_event_timestamp": self.last_event_timestamp,
            "last_event_id": self.last_event_id,
            "checkout_count": self.checkout_count,
            "checkin_count": self.checkin_count,
            "invalid_checkout_count": self.invalid_checkout_count,
            "invalid_checkin_count": self.invalid_checkin_count,
        }


@dataclass
class ReconciliationResult:
    """Final states plus the full audit trail of one reconciliation run."""

    events: list[ReconciledEvent] = field(default_factory=list)  # replay order
    states: dict[EquipmentKey, EquipmentState] = field(default_factory=dict)
    valid_event_count: int = 0
    ignored_identifier_count: int = 0

    @property
    def issues(self) -> list[ReconciledEvent]:
        return [e for e in self.events if not e.valid]

    def issues_of(self, kind: IssueKind) -> list[ReconciledEvent]:
        return [e for e in self.events if e.issue_kind == kind]

    def state_for(self, key: EquipmentKey) -> EquipmentState | None:
        return self.states.get(key)

    def summary(self) -> dict:
        return {
            "events": len(self.events),
            "valid": self.valid_event_count,
            "issues": len(self.issues),
            "ignored_identifiers": self.ignored_identifier_count,
            "duplicate_checkouts": len(self.issues_of(IssueKind.DUPLICATE_CHECKOUT)),
            "orphan_checkins": len(self.issues_of(IssueKind.ORPHAN_CHECKIN)),
            "equipment": len(self.states),
            "borrowed": sum(1 for s in self.states.values() if s.is_borrowed),
        }

    def to_frame(self) -> pd.DataFrame:
        """Events in replay order as a DataFrame, one row per event."""
        columns = [
            "event_id",
            "timestamp",
            "equipment_id",
            "equipment_key",
            "action",
            "action_text",
            "instant",
            "actor",
            "location",
            "valid",
            "issue_kind",
            "issue_message",
        ]
        return pd.DataFrame([e.to_dict() for e in self.events], columns=columns)


def event_sequence(event_id: str) -> int | None:
    """Trailing integer of an event id ("row-12" -> 12), or None."""
    match = _TRAILING_NUMBER.search(event_id or "")
    if not match:
        return None
    return int(match.group(1))


def compare_events(a: NormalizedEvent, b: NormalizedEvent) -> int:
    """
    Replay ordering: instant, then numeric id suffix when both ids have one,
    then the id string itself.
    """
    if a.instant != b.instant:
        return -1 if a.instant < b.instant else 1

    seq_a = event_sequence(a.event_id)
    seq_b = event_sequence(b.event_id)
    if seq_a is not None and seq_b is not None and seq_a != seq_b:
        return -1 if seq_a < seq_b else 1

    if a.event_id == b.event_id:
        return 0
    return -1 if a.event_id < b.event_id else 1


class ReconciliationEngine:
    """
    Replays the history log into per-equipment state.

    Usage:
        engine = ReconciliationEngine()
        result = engine.reconcile(records)
        result.states[normalize_key("SN-01")].status

    The action policy and timestamp parser can be swapped without touching the
    replay itself.
    """

    def __init__(
        self,
        resolver: ActionResolver | None = None,
        timestamp_parser: TimestampParser | None = None,
    ):
        self.resolver = resolver or ActionResolver()
        self.timestamp_parser = timestamp_parser or TimestampParser()
        self.key_normalizer = EquipmentKeyNormalizer()

    def normalize(
        self, records: Iterable[RawEventRecord | Mapping[str, Any]]
    ) -> list[NormalizedEvent]:
        normalized = []
        for position, record in enumerate(records, start=1):
            if not isinstance(record, RawEventRecord):
                record = RawEventRecord.model_validate(record)
            normalized.append(
                normalize_event(
                    record,
                    position,
                    resolver=self.resolver,
                    timestamp_parser=self.timestamp_parser,
                    key_normalizer=self.key_normalizer,
                )
            )
        return normalized

    def reconcile(
        self, records: Iterable[RawEventRecord | Mapping[str, Any]]
    ) -> ReconciliationResult:
        """
        Run a full reconciliation over the complete history.

        Args:
            records: every history row, in any order. Plain mappings are
                validated into RawEventRecord first.
        """
        ordered = sorted(self.normalize(records), key=cmp_to_key(compare_events))
        result = ReconciliationResult()

        for event in ordered:
            reconciled = self._apply(event, result)
            result.events.append(reconciled)
            if reconciled.valid:
                result.valid_event_count += 1
            else:
                log.debug(
                    "Rejected %s (%s) for %r: %s",
                    event.event_id,
                    event.action.value,
                    event.equipment_id,
                    reconciled.issue_kind.value,
                )

        log.info(
            "Reconciled %d events: %d valid, %d issues, %d equipment",
            len(result.events),
            result.valid_event_count,
            len(result.events) - result.valid_event_count,
            len(result.states),
        )
        return result

    def _apply(self, event: NormalizedEvent, result: ReconciliationResult) -> ReconciledEvent:
        if not self.key_normalizer.is_valid(event.equipment_key):
            result.ignored_identifier_count += 1
            return self._reject(event, IssueKind.INVALID_IDENTIFIER)

        state = result.states.get(event.equipment_key)
        if state is None:
            state = EquipmentState(equipment_key=event.equipment_key)
            result.states[event.equipment_key] = state

        if event.action == Action.CHECKOUT:
            state.checkout_count += 1
            if state.status == EquipmentStatus.BORROWED:
                state.invalid_checkout_count += 1
                return self._reject(event, IssueKind.DUPLICATE_CHECKOUT)
            state.status = EquipmentStatus.BORROWED
            state.current_holder = event.actor or NO_HOLDER
            state.current_location = event.location or NO_HOLDER
        else:
            state.checkin_count += 1
            if state.status == EquipmentStatus.AVAILABLE:
                state.invalid_checkin_count += 1
                return self._reject(event, IssueKind.ORPHAN_CHECKIN)
            state.status = EquipmentStatus.AVAILABLE
            state.current_holder = NO_HOLDER
            state.current_location = WAREHOUSE

        state.last_event_timestamp = event.timestamp
        state.last_event_id = event.event_id
        return ReconciledEvent(event=event, valid=True)

    @staticmethod
    def _reject(event: NormalizedEvent, kind: IssueKind) -> ReconciledEvent:
        return ReconciledEvent(
            event=event,
            valid=False,
            issue_kind=kind,
            issue_message=ISSUE_MESSAGES[kind],
        )


def reconcile_history(
    records: Iterable[RawEventRecord | Mapping[str, Any]],
) -> ReconciliationResult:
    """Reconcile with the default action policy and timestamp parser."""
    return ReconciliationEngine().reconcile(records)


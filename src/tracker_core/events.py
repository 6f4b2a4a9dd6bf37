"""
Typed records flowing through the history reconciliation pipeline.

Raw form rows are decoded once into RawEventRecord at the boundary. Everything
downstream works on NormalizedEvent / ReconciledEvent and never sees the
spreadsheet's positional columns.
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Any, NewType

from pydantic import BaseModel, ConfigDict, field_validator


# Normalized equipment identifier. Raw serials must go through normalize_key()
# before they are used as one of these.
EquipmentKey = NewType("EquipmentKey", str)


class Action(Enum):
    """Binary action recorded on a history row."""

    CHECKOUT = "checkout"
    CHECKIN = "checkin"


class IssueKind(Enum):
    """Why an event was rejected during replay."""

    DUPLICATE_CHECKOUT = "duplicate_checkout"  # already borrowed
    ORPHAN_CHECKIN = "orphan_checkin"  # nothing to return
    INVALID_IDENTIFIER = "invalid_identifier"  # empty or placeholder serial


class EquipmentStatus(Enum):
    AVAILABLE = "available"
    BORROWED = "borrowed"
    MAINTENANCE = "maintenance"  # only set manually on the equipment table


class RawEventRecord(BaseModel):
    """
    One history row as it arrives from the form export.

    All fields are free text. Blank cells, None and numbers coming out of a
    spreadsheet are coerced to strings so the normalizer only ever sees text.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    timestamp: str = ""
    equipment_id: str = ""
    action: str = ""
    actor: str = ""
    location: str = ""
    event_id: str | None = None

    @field_validator("timestamp", "equipment_id", "action", "actor", "location", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        if value is None:
            return ""
        # pandas hands back NaN floats for empty cells
        if isinstance(value, float) and value != value:
            return ""
        return str(value)

    @field_validator("event_id", mode="before")
    @classmethod
    def _coerce_event_id(cls, value: Any) -> str | None:
        if value is None or value == "":
            return None
        return str(value)


@dataclass(frozen=True)
class NormalizedEvent:
    """A history row after action, identifier and timestamp normalization."""

    event_id: str
    timestamp: str  # original text, kept for display
    equipment_id: str  # original text, kept for display
    equipment_key: EquipmentKey
    action: Action
    action_text: str  # original label, before resolution
    instant: datetime
    actor: str
    location: str


@dataclass(frozen=True)
class ReconciledEvent:
    """A normalized event plus the verdict from replay."""

    event: NormalizedEvent
    valid: bool
    issue_kind: IssueKind | None = None
    issue_message: str | None = None

    @property
    def event_id(self) -> str:
        return self.event.event_id

    @property
    def equipment_key(self) -> EquipmentKey:
        return self.event.equipment_key

    @property
    def action(self) -> Action:
        return self.event.action

    @property
    def instant(self) -> datetime:
        return self.event.instant

    def to_dict(self) -> dict:
        """Flat dict in the shape callers display and export."""
        data = asdict(self.event)
        data["action"] = self.event.action.value
        data["valid"] = self.valid
        data["issue_kind"] = self.issue_kind.value if self.issue_kind else None
        data["issue_message"] = self.issue_message
        return data

from __future__ import annotations

from typing import Callable

import pytest

from tracker_core.events import RawEventRecord


@pytest.fixture
def record() -> Callable[..., RawEventRecord]:
    """Factory for history rows: record(timestamp, serial, action, actor, location, event_id)."""

    def make(
        timestamp: str,
        equipment_id: str,
        action: str,
        actor: str = "",
        location: str = "",
        event_id: str | None = None,
    ) -> RawEventRecord:
        return RawEventRecord(
            timestamp=timestamp,
            equipment_id=equipment_id,
            action=action,
            actor=actor,
            location=location,
            event_id=event_id,
        )

    return make

"""
Parsers for the free-text columns of the equipment history form.

The form is public and filled in by hand, so every column is messy:
- Action labels in Indonesian and English, abbreviated or padded
- Serial numbers with stray spaces, mixed case and "-"/"_" variations
- Timestamps in the regional D/M/Y layout, ISO strings, or garbage
"""

import re
from datetime import datetime

import pandas as pd

from .events import Action, EquipmentKey, NormalizedEvent, RawEventRecord


# Sentinel instant for timestamps that cannot be parsed. Sorts before any real event.
EPOCH = datetime(1970, 1, 1)


class ActionResolver:
    """
    Maps free-text action labels onto Action.CHECKOUT / Action.CHECKIN.

    Checkout synonyms are tried first. Text matching neither set resolves to
    `default` (CHECKIN), which is the legacy behavior of the form import:
    unrecognized labels are treated as returns. Swap the policy by passing a
    different default or subclassing resolve().
    """

    CHECKOUT_PREFIXES = ["peminjam"]
    CHECKOUT_TERMS = ["pinjam", "checkout", "keluar"]
    CHECKOUT_EXACT = ["borrow"]

    CHECKIN_PREFIXES = ["pengembali"]
    CHECKIN_TERMS = ["kembali", "checkin"]
    CHECKIN_EXACT = ["return"]

    def __init__(self, default: Action = Action.CHECKIN):
        self.default = default

    @staticmethod
    def _clean(raw: str | None) -> str:
        return (raw or "").strip().lower()

    def _is_checkout(self, cleaned: str) -> bool:
        return (
            any(cleaned.startswith(p) for p in self.CHECKOUT_PREFIXES)
            or any(t in cleaned for t in self.CHECKOUT_TERMS)
            or cleaned in self.CHECKOUT_EXACT
        )

    def _is_checkin(self, cleaned: str) -> bool:
        return (
            any(cleaned.startswith(p) for p in self.CHECKIN_PREFIXES)
            or any(t in cleaned for t in self.CHECKIN_TERMS)
            or cleaned in self.CHECKIN_EXACT
        )

    def resolve(self, raw: str | None) -> Action:
        cleaned = self._clean(raw)
        if self._is_checkout(cleaned):
            return Action.CHECKOUT
        if self._is_checkin(cleaned):
            return Action.CHECKIN
        return self.default

    def is_recognized(self, raw: str | None) -> bool:
        """True when the label matched a synonym rather than falling back to the default."""
        cleaned = self._clean(raw)
        return self._is_checkout(cleaned) or self._is_checkin(cleaned)


class EquipmentKeyNormalizer:
    """
    Normalizes serial numbers so the same unit matches across rows.

    "  SN 01__A " and "sn 01-a" both become "sn 01-a".
    """

    PLACEHOLDERS = {"-", "na", "n/a", "null", "undefined"}

    _WHITESPACE = re.compile(r"\s+")
    _SEPARATORS = re.compile(r"[-_]+")

    def normalize(self, raw: str | None) -> EquipmentKey:
        result = str(raw or "").strip().lower()
        result = self._WHITESPACE.sub(" ", result)
        result = self._SEPARATORS.sub("-", result)
        return EquipmentKey(result)

    def is_valid(self, key: str | None) -> bool:
        """False for empty serials and known placeholders typed into the form."""
        normalized = self.normalize(key)
        if not normalized:
            return False
        return normalized not in self.PLACEHOLDERS


class TimestampParser:
    """
    Two-phase timestamp parser.

    Phase 1 handles the regional layout the form writes: D/M/Y with an optional
    H:M[:S] part, 2-digit years meaning 20YY. Phase 2 hands anything else to
    pandas. Failures come back as EPOCH.

    All results are naive. Regional timestamps are wall-clock time as typed;
    timezone-aware strings from phase 2 are converted to `timezone` before
    the offset is dropped. Set `timezone` to the zone the sheet is kept in,
    otherwise a log mixing both layouts replays out of order.
    """

    REGIONAL_PATTERN = re.compile(
        r"^(\d{1,2})/(\d{1,2})/(\d{2,4})(?:\s+(\d{1,2}):(\d{1,2})(?::(\d{1,2}))?)?$"
    )
    # Generic parsing fills missing parts from today's date, so it only runs on
    # text that carries an explicit 4-digit year.
    _HAS_YEAR = re.compile(r"\d{4}")

    def __init__(self, timezone: str = "UTC"):
        self.timezone = timezone
        self._cache: dict[str, datetime] = {}

    def parse(self, raw: str | None) -> datetime:
        text = (raw or "").strip()
        if not text:
            return EPOCH

        if text in self._cache:
            return self._cache[text]

        result = self._parse_regional(text)
        if result is None:
            result = self._parse_generic(text)

        self._cache[text] = result if result is not None else EPOCH
        return self._cache[text]

    def _parse_regional(self, text: str) -> datetime | None:
        match = self.REGIONAL_PATTERN.match(text)
        if not match:
            return None

        day, month, year = (int(g) for g in match.group(1, 2, 3))
        if year < 100:
            year += 2000
        hour, minute, second = (int(g or 0) for g in match.group(4, 5, 6))

        try:
            return datetime(year, month, day, hour, minute, second)
        except ValueError:
            return None

    def _parse_generic(self, text: str) -> datetime | None:
        if not self._HAS_YEAR.search(text):
            return None

        parsed = pd.to_datetime(text, errors="coerce")
        if pd.isna(parsed):
            return None
        if parsed.tzinfo is not None:
            parsed = parsed.tz_convert(self.timezone).tz_localize(None)
        # datetime has no nanoseconds
        return parsed.floor("us").to_pydatetime()

    @staticmethod
    def is_sentinel(instant: datetime) -> bool:
        return instant == EPOCH


_default_resolver = ActionResolver()
_default_normalizer = EquipmentKeyNormalizer()
_default_timestamp_parser = TimestampParser()


def resolve_action(raw: str | None) -> Action:
    return _default_resolver.resolve(raw)


def normalize_key(raw: str | None) -> EquipmentKey:
    return _default_normalizer.normalize(raw)


def is_valid_identifier(key: str | None) -> bool:
    return _default_normalizer.is_valid(key)


def parse_timestamp(raw: str | None) -> datetime:
    return _default_timestamp_parser.parse(raw)


def normalize_event(
    record: RawEventRecord,
    position: int,
    resolver: ActionResolver | None = None,
    timestamp_parser: TimestampParser | None = None,
    key_normalizer: EquipmentKeyNormalizer | None = None,
) -> NormalizedEvent:
    """
    Build a NormalizedEvent from a raw row.

    Args:
        position: 1-based position of the row in the input, used for the
            fallback id "evt-<position>" when the record carries none
    """
    resolver = resolver or _default_resolver
    timestamp_parser = timestamp_parser or _default_timestamp_parser
    key_normalizer = key_normalizer or _default_normalizer

    return NormalizedEvent(
        event_id=record.event_id or f"evt-{position}",
        timestamp=record.timestamp,
        equipment_id=record.equipment_id,
        equipment_key=key_normalizer.normalize(record.equipment_id),
        action=resolver.resolve(record.action),
        action_text=record.action,
        instant=timestamp_parser.parse(record.timestamp),
        actor=record.actor,
        location=record.location,
    )

"""
Tests for the event normalizer: action labels, serial keys, timestamps.
"""

from datetime import datetime

import warnings

import pytest

from tracker_core.events import Action, RawEventRecord
from tracker_core.parsers import (
    EPOCH,
    ActionResolver,
    TimestampParser,
    is_valid_identifier,
    normalize_event,
    normalize_key,
    parse_timestamp,
    resolve_action,
)


class TestResolveAction:
    @pytest.mark.parametrize(
        "label",
        ["Peminjaman", "peminjaman alat", "PINJAM", "Alat keluar", "checkout", "  borrow  "],
    )
    def test_checkout_synonyms(self, label):
        assert resolve_action(label) == Action.CHECKOUT

    @pytest.mark.parametrize(
        "label",
        ["Pengembalian", "pengembalian alat", "Kembali", "CHECKIN", "return"],
    )
    def test_checkin_synonyms(self, label):
        assert resolve_action(label) == Action.CHECKIN

    @pytest.mark.parametrize("label", ["", None, "???", "selesai"])
    def test_unrecognized_text_defaults_to_checkin(self, label):
        assert resolve_action(label) == Action.CHECKIN

    def test_is_recognized_separates_fallbacks(self):
        resolver = ActionResolver()
        assert resolver.is_recognized("Peminjaman")
        assert resolver.is_recognized("Pengembalian")
        assert not resolver.is_recognized("selesai")

    def test_default_is_swappable(self):
        resolver = ActionResolver(default=Action.CHECKOUT)
        assert resolver.resolve("selesai") == Action.CHECKOUT
        assert resolver.resolve("kembali") == Action.CHECKIN


class TestNormalizeKey:
    def test_trims_and_lowercases(self):
        assert normalize_key("  SN-001 ") == "sn-001"

    def test_collapses_whitespace(self):
        assert normalize_key("Fluke   87\tV") == "fluke 87 v"

    def test_collapses_separator_runs(self):
        assert normalize_key("SN__01--A_-B") == "sn-01-a-b"

    def test_none_is_empty(self):
        assert normalize_key(None) == ""


class TestIsValidIdentifier:
    @pytest.mark.parametrize("raw", ["", "   ", "-", "--", "NA", "n/a", " Null ", "UNDEFINED"])
    def test_placeholders_are_invalid(self, raw):
        assert not is_valid_identifier(raw)

    @pytest.mark.parametrize("raw", ["SN-1", "na-01", "0"])
    def test_real_serials_are_valid(self, raw):
        assert is_valid_identifier(raw)


class TestParseTimestamp:
    def test_regional_with_time(self):
        assert parse_timestamp("01/03/2024 08:00") == datetime(2024, 3, 1, 8, 0)

    def test_regional_with_seconds(self):
        assert parse_timestamp("1/3/2024 8:05:09") == datetime(2024, 3, 1, 8, 5, 9)

    def test_regional_date_only(self):
        assert parse_timestamp("15/12/2023") == datetime(2023, 12, 15)

    def test_two_digit_year_is_2000s(self):
        parsed = parse_timestamp("5/6/24 10:00")
        assert (parsed.year, parsed.month, parsed.day) == (2024, 6, 5)
        assert parsed.hour == 10

    def test_generic_fallback(self):
        assert parse_timestamp("2024-03-01 08:00:00") == datetime(2024, 3, 1, 8, 0)

    def test_timezone_aware_fallback_is_converted_to_utc(self):
        assert parse_timestamp("2024-03-01T08:00:00+07:00") == datetime(2024, 3, 1, 1, 0)

    def test_timezone_aware_fallback_uses_sheet_zone(self):
        parser = TimestampParser(timezone="Asia/Jakarta")
        assert parser.parse("2024-03-01T08:30:00+07:00") == datetime(2024, 3, 1, 8, 30)
        assert parser.parse("2024-03-01T01:30:00Z") == datetime(2024, 3, 1, 8, 30)

    def test_nanoseconds_are_floored_quietly(self):
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            parsed = TimestampParser().parse("2024-03-01T08:00:00.123456789Z")
        assert parsed == datetime(2024, 3, 1, 8, 0, 0, 123456)

    @pytest.mark.parametrize("raw", ["", None, "garbage", "now", "kemarin sore"])
    def test_unparseable_is_epoch(self, raw):
        assert parse_timestamp(raw) == EPOCH

    def test_parser_caches_results(self):
        parser = TimestampParser()
        first = parser.parse("01/03/2024 08:00")
        assert parser.parse("01/03/2024 08:00") is first

    def test_is_sentinel(self):
        assert TimestampParser.is_sentinel(parse_timestamp("garbage"))
        assert not TimestampParser.is_sentinel(parse_timestamp("01/03/2024"))


class TestNormalizeEvent:
    def test_assigns_positional_id(self, record):
        event = normalize_event(record("01/03/2024 08:00", "SN 1", "Peminjaman"), 3)
        assert event.event_id == "evt-3"

    def test_keeps_caller_id_and_original_text(self, record):
        raw = record("01/03/2024 08:00", " SN__1 ", "Peminjaman", "Ana", "Lab", "row-7")
        event = normalize_event(raw, 1)

        assert event.event_id == "row-7"
        assert event.equipment_id == " SN__1 "
        assert event.equipment_key == "sn-1"
        assert event.action == Action.CHECKOUT
        assert event.action_text == "Peminjaman"
        assert event.instant == datetime(2024, 3, 1, 8, 0)
        assert (event.actor, event.location) == ("Ana", "Lab")


class TestRawEventRecord:
    def test_coerces_cells_to_text(self):
        raw = RawEventRecord(timestamp=None, equipment_id=12345, action=float("nan"))
        assert raw.timestamp == ""
        assert raw.equipment_id == "12345"
        assert raw.action == ""
        assert raw.event_id is None

    def test_ignores_extra_columns(self):
        raw = RawEventRecord.model_validate({"equipment_id": "SN-1", "catatan": "ok"})
        assert raw.equipment_id == "SN-1"

"""Unit tests for catatan_etl.normalize."""

import os
import time
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from catatan_etl.normalize import (
    format_calendar_date,
    format_local_timestamp,
    is_valid_email,
    normalize_header,
    parse_calendar_date,
    parse_local_datetime,
    resolve_local_tz,
    trim,
)

JAKARTA = ZoneInfo("Asia/Jakarta")


# ---------------------------------------------------------------------------
# trim / normalize_header
# ---------------------------------------------------------------------------

class TestTrim:
    def test_strips_whitespace(self):
        assert trim("  hello  ") == "hello"

    def test_whitespace_only_returns_none(self):
        assert trim("   ") is None

    def test_none_returns_none(self):
        assert trim(None) is None


class TestNormalizeHeader:
    def test_lowercases_and_trims(self):
        assert normalize_header("  ExpiresAt ") == "expiresat"

    def test_none(self):
        assert normalize_header(None) == ""


# ---------------------------------------------------------------------------
# is_valid_email
# ---------------------------------------------------------------------------

class TestIsValidEmail:
    @pytest.mark.parametrize("value", ["a@b.co", "user.name+tag@mail.example.com"])
    def test_valid(self, value):
        assert is_valid_email(value)

    @pytest.mark.parametrize(
        "value",
        ["", None, "no-at-sign.com", "a@b", "a b@c.com", "@b.com", "a@.com"],
    )
    def test_invalid(self, value):
        assert not is_valid_email(value)


# ---------------------------------------------------------------------------
# parse_calendar_date
# ---------------------------------------------------------------------------

class TestParseCalendarDate:
    def test_iso_shape_is_end_of_day(self):
        dt = parse_calendar_date("2026-02-01", JAKARTA)
        assert dt == datetime(2026, 2, 1, 23, 59, 59, 999000, tzinfo=JAKARTA)

    def test_three_shapes_give_same_instant(self):
        a = parse_calendar_date("2026-02-01", JAKARTA)
        b = parse_calendar_date("01/02/2026", JAKARTA)
        c = parse_calendar_date("01-02-2026", JAKARTA)
        assert a == b == c

    def test_surrounding_whitespace_ignored(self):
        assert parse_calendar_date("  2026-02-01 ", JAKARTA) == parse_calendar_date("2026-02-01", JAKARTA)

    def test_impossible_date_returns_none(self):
        assert parse_calendar_date("2026-02-30", JAKARTA) is None

    def test_month_13_returns_none(self):
        assert parse_calendar_date("01/13/2026", JAKARTA) is None

    @pytest.mark.parametrize("value", ["2026/02/01", "1-2-2026", "2026-2-1", "Feb 1, 2026", "20260201"])
    def test_other_shapes_return_none(self, value):
        assert parse_calendar_date(value, JAKARTA) is None

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_blank_returns_none(self, value):
        assert parse_calendar_date(value, JAKARTA) is None

    def test_result_is_timezone_aware(self):
        assert parse_calendar_date("2026-02-01").tzinfo is not None


# ---------------------------------------------------------------------------
# format_calendar_date
# ---------------------------------------------------------------------------

class TestFormatCalendarDate:
    def test_uses_utc_date(self):
        # 23:59 in Jakarta (UTC+7) is 16:59 UTC on the same day
        dt = parse_calendar_date("2026-02-01", JAKARTA)
        assert format_calendar_date(dt) == "2026-02-01"

    def test_east_of_utc_early_morning_rolls_back(self):
        dt = datetime(2026, 2, 1, 3, 0, tzinfo=JAKARTA)
        assert format_calendar_date(dt) == "2026-01-31"

    def test_west_of_utc_end_of_day_rolls_forward(self):
        dt = datetime(2026, 2, 1, 23, 59, 59, 999000, tzinfo=timezone(timedelta(hours=-5)))
        assert format_calendar_date(dt) == "2026-02-02"

    def test_none(self):
        assert format_calendar_date(None) == ""

    def test_naive_taken_as_utc(self):
        assert format_calendar_date(datetime(2026, 5, 4, 23, 0)) == "2026-05-04"


# ---------------------------------------------------------------------------
# parse_local_datetime / format_local_timestamp / resolve_local_tz
# ---------------------------------------------------------------------------

class TestParseLocalDatetime:
    def test_minutes(self):
        assert parse_local_datetime("2026-04-01T10:30", JAKARTA) == datetime(2026, 4, 1, 10, 30, tzinfo=JAKARTA)

    def test_seconds(self):
        assert parse_local_datetime("2026-04-01T10:30:15", JAKARTA).second == 15

    def test_garbage(self):
        assert parse_local_datetime("tomorrow", JAKARTA) is None

    def test_blank(self):
        assert parse_local_datetime("", JAKARTA) is None


class TestFormatLocalTimestamp:
    def test_indonesian_style(self):
        ts = datetime(2026, 1, 5, 2, 7, 9, tzinfo=timezone.utc)
        assert format_local_timestamp(ts, JAKARTA) == "5/1/2026, 09.07.09"

    def test_none(self):
        assert format_local_timestamp(None) == ""


class TestResolveLocalTz:
    def test_explicit_name(self):
        assert resolve_local_tz("Asia/Jakarta") == JAKARTA

    def test_unknown_name_falls_back(self, monkeypatch):
        monkeypatch.setenv("TZ", "Europe/Berlin")
        assert resolve_local_tz("Not/AZone") == ZoneInfo("Europe/Berlin")

    def test_system_zone_when_nothing_set(self, monkeypatch):
        monkeypatch.delenv("TZ", raising=False)
        assert resolve_local_tz(None) is None


# ---------------------------------------------------------------------------
# System zone with DST (no settings timezone, TZ not an IANA name)
# ---------------------------------------------------------------------------

# POSIX rule string: ZoneInfo rejects it, the C library honours it.
POSIX_CET = "CET-1CEST,M3.5.0,M10.5.0/3"


@pytest.fixture
def posix_dst_zone():
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset not available")
    saved = os.environ.get("TZ")
    os.environ["TZ"] = POSIX_CET
    time.tzset()
    try:
        yield
    finally:
        if saved is None:
            os.environ.pop("TZ", None)
        else:
            os.environ["TZ"] = saved
        time.tzset()


class TestSystemZoneDst:
    def test_falls_back_to_system_zone(self, posix_dst_zone):
        assert resolve_local_tz(None) is None

    @pytest.mark.parametrize("value, offset_hours", [
        ("2026-01-15", 1),
        ("15/07/2026", 2),
    ])
    def test_end_of_day_on_both_sides_of_dst(self, posix_dst_zone, value, offset_hours):
        dt = parse_calendar_date(value)
        local = dt.astimezone()
        assert (local.hour, local.minute, local.second, local.microsecond) == (23, 59, 59, 999000)
        assert dt.utcoffset() == timedelta(hours=offset_hours)

    def test_local_datetime_uses_offset_of_its_own_date(self, posix_dst_zone):
        winter = parse_local_datetime("2026-01-15T10:00")
        summer = parse_local_datetime("2026-07-15T10:00")
        assert winter.utcoffset() == timedelta(hours=1)
        assert summer.utcoffset() == timedelta(hours=2)

    def test_local_timestamp_formatting(self, posix_dst_zone):
        ts = datetime(2026, 7, 15, 8, 0, tzinfo=timezone.utc)
        assert format_local_timestamp(ts) == "15/7/2026, 10.00.00"

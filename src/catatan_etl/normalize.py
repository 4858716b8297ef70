"""Normalization functions for catatan CSV ingestion and export.

All parsing functions accept str | None and return the appropriate type or None.
"""

from __future__ import annotations

import os
import re
from datetime import datetime, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Tried in order; group order is (year, month, day) after reordering below.
_DATE_SHAPES: list[tuple[re.Pattern[str], tuple[int, int, int]]] = [
    (re.compile(r"^(\d{4})-(\d{2})-(\d{2})$"), (1, 2, 3)),   # YYYY-MM-DD
    (re.compile(r"^(\d{2})/(\d{2})/(\d{4})$"), (3, 2, 1)),   # DD/MM/YYYY
    (re.compile(r"^(\d{2})-(\d{2})-(\d{4})$"), (3, 2, 1)),   # DD-MM-YYYY
]

_LOCAL_DATETIME_FORMATS = ("%Y-%m-%dT%H:%M", "%Y-%m-%dT%H:%M:%S")


# ---------------------------------------------------------------------------
# Rule 1: trim
# ---------------------------------------------------------------------------

def trim(value: str | None) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None."""
    if value is None:
        return None
    v = value.strip()
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 2: normalize_header
# ---------------------------------------------------------------------------

def normalize_header(value: str | None) -> str:
    """Lowercase and trim a CSV header cell.  None → ''."""
    return (value or "").strip().lower()


# ---------------------------------------------------------------------------
# Rule 3: email shape
# ---------------------------------------------------------------------------

def is_valid_email(value: str | None) -> bool:
    """Return True if value has the basic local@domain.tld shape."""
    if not value:
        return False
    return _EMAIL_RE.match(value) is not None


# ---------------------------------------------------------------------------
# Local time zone
# ---------------------------------------------------------------------------

def resolve_local_tz(tz_name: str | None = None) -> tzinfo | None:
    """Resolve the zone used for end-of-day normalization.

    Priority: explicit tz_name, then the TZ env var, then the system zone.
    Unknown zone names fall through to the next source.  None means the
    system zone: callers go through _localize / astimezone() so each date
    gets that zone's own offset rather than today's.
    """
    for name in (tz_name, os.environ.get("TZ")):
        if not name:
            continue
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            continue
    return None


def _localize(naive: datetime, tz: tzinfo | None) -> datetime:
    """Attach tz to a wall-clock value; tz=None resolves the zone first."""
    tz = tz or resolve_local_tz()
    if tz is None:
        return naive.astimezone()
    return naive.replace(tzinfo=tz)


# ---------------------------------------------------------------------------
# Rule 4: parse_calendar_date
# ---------------------------------------------------------------------------

def parse_calendar_date(value: str | None, tz: tzinfo | None = None) -> datetime | None:
    """Parse a calendar date into 23:59:59.999 local time on that date.

    Accepted shapes, tried in order: YYYY-MM-DD, DD/MM/YYYY, DD-MM-YYYY.
    Returns None for blank input, any other shape, or an impossible date
    such as 2026-02-30.  Callers that need to tell "blank" from "invalid"
    re-check the raw value.
    """
    v = trim(value)
    if v is None:
        return None
    for pattern, (yi, mi, di) in _DATE_SHAPES:
        m = pattern.match(v)
        if m is None:
            continue
        try:
            end_of_day = datetime(
                int(m.group(yi)), int(m.group(mi)), int(m.group(di)),
                23, 59, 59, 999000,
            )
        except ValueError:
            return None
        return _localize(end_of_day, tz)
    return None


# ---------------------------------------------------------------------------
# Rule 5: format_calendar_date
# ---------------------------------------------------------------------------

def format_calendar_date(ts: datetime | None) -> str:
    """Return YYYY-MM-DD of the UTC calendar date of ts ('' for None).

    Export deliberately uses the UTC date, not the local one.  Naive
    datetimes are taken as UTC.
    """
    if ts is None:
        return ""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).date().isoformat()


# ---------------------------------------------------------------------------
# Rule 6: parse_local_datetime
# ---------------------------------------------------------------------------

def parse_local_datetime(value: str | None, tz: tzinfo | None = None) -> datetime | None:
    """Parse 'YYYY-MM-DDTHH:MM[:SS]' as a local wall-clock time, or None."""
    v = trim(value)
    if v is None:
        return None
    for fmt in _LOCAL_DATETIME_FORMATS:
        try:
            parsed = datetime.strptime(v, fmt)
        except ValueError:
            continue
        return _localize(parsed, tz)
    return None


# ---------------------------------------------------------------------------
# Rule 7: format_local_timestamp
# ---------------------------------------------------------------------------

def format_local_timestamp(ts: datetime | None, tz: tzinfo | None = None) -> str:
    """Render ts in the Indonesian locale style 'd/m/yyyy, HH.MM.SS'."""
    if ts is None:
        return ""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    local = ts.astimezone(tz or resolve_local_tz())
    return f"{local.day}/{local.month}/{local.year}, {local:%H.%M.%S}"

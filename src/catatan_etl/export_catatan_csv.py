"""catatan_etl.export_catatan_csv

Spreadsheet-friendly CSV export of the caller's current view (--mode export_csv).

Output opens directly in Excel with an Indonesian locale: ``sep=;`` first
line, ``;`` delimiter, every cell quoted.  Waktu Exp is written as a plain
date so the file can be edited and imported again.
"""

from __future__ import annotations

from datetime import datetime, timezone, tzinfo

from catatan_etl.lifecycle import RecordView
from catatan_etl.normalize import format_calendar_date, format_local_timestamp
from catatan_etl.tabular_codec import encode_table

EXPORT_HEADER = ["No", "Email", "Deskripsi", "Waktu Buat", "Waktu Exp", "Status"]


def export_rows(views: list[RecordView], tz: tzinfo | None = None) -> list[list[str]]:
    """Header plus one row per view, in view order."""
    rows = [list(EXPORT_HEADER)]
    for i, view in enumerate(views, start=1):
        r = view.record
        rows.append([
            str(i),
            r.contact_email,
            r.description,
            format_local_timestamp(r.created_at, tz),
            format_calendar_date(r.expires_at),
            view.effective_status,
        ])
    return rows


def export_csv(views: list[RecordView], delimiter: str = ";", tz: tzinfo | None = None) -> str:
    return encode_table(export_rows(views, tz), delimiter)


def export_filename(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"catatgpt_{format_calendar_date(now)}.csv"

"""catatan_etl.import_catatan_csv

CSV import pipeline for catatan records (--mode import_csv).

Input CSV (UTF-8, optional BOM, optional ``sep=<char>`` first line):

    email, description | deskripsi            -- required
    expiresAt | expires_at | waktu_exp, status  -- optional

Header names are matched case-insensitively.  Each data row is validated on
its own; a bad row is reported (and written to the rejects file) without
affecting any other row.  If any row is rejected, nothing is submitted: the
operator fixes the file and runs the import again.

Row numbers in messages count the header as row 1, matching what a
spreadsheet shows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Any

from catatan_etl.bulk_writer import DEFAULT_CHUNK_SIZE, submit_in_chunks
from catatan_etl.lifecycle import require_actor
from catatan_etl.normalize import (
    is_valid_email,
    normalize_header,
    parse_calendar_date,
    resolve_local_tz,
    trim,
)
from catatan_etl.records import (
    DEFAULT_STATUS,
    VALID_STATUSES,
    Actor,
    RowValidationError,
    StructuralImportError,
)
from catatan_etl.shared import RejectWriter
from catatan_etl.store import RecordStore
from catatan_etl.tabular_codec import decode_table, encode_table

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_HEADER_ALIASES: dict[str, str] = {
    "email":       "email",
    "description": "description",
    "deskripsi":   "description",
    "expiresat":   "expires_at",
    "expires_at":  "expires_at",
    "waktu_exp":   "expires_at",
    "status":      "status",
}

REQUIRED_FIELDS = ("email", "description")

IMPORT_TEMPLATE_ROWS: list[list[str]] = [
    ["email", "deskripsi", "waktu_exp", "status"],
    ["user1@gmail.com", "Produk A, warna merah", "2026-02-01", "UNSOLD"],
    ["user2@gmail.com", "Produk B", "2026-01-30", "SOLD"],
    ["user3@gmail.com", "Produk C", "", "UNSOLD"],
]


def import_template() -> str:
    """Return the example CSV offered to users as a starting point."""
    return encode_table(IMPORT_TEMPLATE_ROWS, ";")


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class CandidateRecord:
    contact_email: str
    description: str
    expires_at: datetime | None = None
    status: str = DEFAULT_STATUS

    def to_insert_row(self, owner_id: str) -> dict[str, Any]:
        # created_at is deliberately absent: the store stamps it.
        return {
            "owner_id": owner_id,
            "contact_email": self.contact_email,
            "description": self.description,
            "expires_at": self.expires_at,
            "status": self.status,
        }


@dataclass
class RejectedRow:
    row_number: int
    reason: str
    cells: dict[str, str]


@dataclass
class ImportResult:
    valid_records: list[CandidateRecord] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    rejected_rows: list[RejectedRow] = field(default_factory=list)


@dataclass
class ImportCounters:
    rows_read: int = 0
    rows_valid: int = 0
    rows_rejected: int = 0
    rows_committed: int = 0
    chunks_submitted: int = 0
    failed_chunk: int | None = None
    blocked: bool = False
    write_error: str | None = None
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows_read": self.rows_read,
            "rows_valid": self.rows_valid,
            "rows_rejected": self.rows_rejected,
            "rows_committed": self.rows_committed,
            "chunks_submitted": self.chunks_submitted,
            "failed_chunk": self.failed_chunk,
            "blocked": self.blocked,
            "write_error": self.write_error,
            "errors": self.errors[:50],
        }


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _column_index(header: list[str]) -> dict[str, int]:
    """Map canonical field name -> column index (first matching column wins)."""
    idx: dict[str, int] = {}
    for i, cell in enumerate(header):
        name = _HEADER_ALIASES.get(normalize_header(cell))
        if name is not None and name not in idx:
            idx[name] = i
    return idx


def _cell(line: list[str], idx: dict[str, int], name: str) -> str:
    i = idx.get(name)
    if i is None or i >= len(line):
        return ""
    return line[i].strip()


def _validate_row(
    line: list[str],
    idx: dict[str, int],
    row_number: int,
    tz: tzinfo | None,
) -> CandidateRecord:
    """Validate one data row.  Raises RowValidationError on the first failed check."""
    email = _cell(line, idx, "email")
    description = _cell(line, idx, "description")
    expires_raw = _cell(line, idx, "expires_at")
    status_raw = _cell(line, idx, "status")

    if not email or not description:
        raise RowValidationError(
            row_number, "missing_required_field", "email and description are required"
        )
    if not is_valid_email(email):
        raise RowValidationError(row_number, "malformed_email", f"invalid email ({email})")

    status = DEFAULT_STATUS
    if status_raw:
        status = status_raw.upper()
        if status not in VALID_STATUSES:
            raise RowValidationError(
                row_number, "invalid_status", f"invalid status ({status_raw})"
            )

    expires_at = parse_calendar_date(expires_raw, tz) if expires_raw else None
    if expires_raw and expires_at is None:
        raise RowValidationError(
            row_number, "invalid_expiry_date",
            f"expiry must be YYYY-MM-DD, DD/MM/YYYY or DD-MM-YYYY ({expires_raw})",
        )

    return CandidateRecord(
        contact_email=email,
        description=description,
        expires_at=expires_at,
        status=status,
    )


def validate_rows(rows: list[list[str]], tz: tzinfo | None = None) -> ImportResult:
    """Map decoded rows (header first) to candidate records.

    Raises:
        StructuralImportError: required headers missing, or no data rows.
    """
    if not rows:
        raise StructuralImportError("CSV is empty")

    header = rows[0]
    idx = _column_index(header)
    missing = [f for f in REQUIRED_FIELDS if f not in idx]
    if missing:
        raise StructuralImportError(
            f"missing required headers: {missing} "
            "(required: email, description; optional: expiresAt, status)"
        )
    if len(rows) < 2:
        raise StructuralImportError("CSV is empty or has only a header row")

    tz = tz or resolve_local_tz()
    header_names = [trim(h) or f"column_{i + 1}" for i, h in enumerate(header)]
    result = ImportResult()

    for r in range(1, len(rows)):
        line = rows[r]
        row_number = r + 1
        try:
            result.valid_records.append(_validate_row(line, idx, row_number, tz))
        except RowValidationError as exc:
            result.errors.append(str(exc))
            cells = {name: (line[i] if i < len(line) else "") for i, name in enumerate(header_names)}
            result.rejected_rows.append(RejectedRow(row_number, exc.reason, cells))

    return result


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def run_import(
    store: RecordStore | None,
    actor: Actor | None,
    raw_text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    tz: tzinfo | None = None,
    rejects: RejectWriter | None = None,
    validate_only: bool = False,
) -> ImportCounters:
    """Decode, validate and (unless blocked) submit one CSV file.

    Submission is blocked when any row was rejected.  ``store`` may be None
    when ``validate_only`` is set.

    Raises:
        MalformedInput / StructuralImportError: the file is unusable.
        AuthRequiredError: submission attempted without an actor.
    """
    ctrs = ImportCounters()
    rows = decode_table(raw_text)
    result = validate_rows(rows, tz)

    ctrs.rows_read = len(rows) - 1
    ctrs.rows_valid = len(result.valid_records)
    ctrs.rows_rejected = len(result.errors)
    ctrs.errors = list(result.errors)

    if rejects is not None:
        for rej in result.rejected_rows:
            rejects.write(rej.row_number, rej.reason, rej.cells)

    if result.errors:
        ctrs.blocked = True
        return ctrs
    if validate_only:
        return ctrs

    actor = require_actor(actor)
    if store is None:
        raise ValueError("a record store is required to submit an import")

    payload = [c.to_insert_row(actor.actor_id) for c in result.valid_records]
    write = submit_in_chunks(store, payload, chunk_size)
    ctrs.rows_committed = write.committed
    ctrs.chunks_submitted = write.chunks_submitted
    ctrs.failed_chunk = write.failed_chunk
    ctrs.write_error = write.error
    return ctrs


def build_import_report(ctrs: ImportCounters, validate_only: bool = False) -> str:
    lines = [
        "=" * 60,
        "Catatan CSV Import Report",
        f"  validate_only: {validate_only}",
        "=" * 60,
        f"  rows read:        {ctrs.rows_read}",
        f"  rows valid:       {ctrs.rows_valid}",
        f"  rows rejected:    {ctrs.rows_rejected}",
        f"  rows committed:   {ctrs.rows_committed}",
        f"  chunks submitted: {ctrs.chunks_submitted}",
    ]
    if ctrs.blocked:
        lines.append("  BLOCKED: fix the rejected rows and import again")
    if ctrs.write_error:
        lines.append(f"Write error (chunk {ctrs.failed_chunk}): {ctrs.write_error}")
    if ctrs.errors:
        lines.append(f"\nErrors ({len(ctrs.errors)}):")
        for e in ctrs.errors[:20]:
            lines.append(f"  {e}")
        if len(ctrs.errors) > 20:
            lines.append(f"  ... and {len(ctrs.errors) - 20} more")
    lines.append("=" * 60)
    return "\n".join(lines)

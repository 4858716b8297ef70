"""catatan_etl.records

Data model shared by the importer, the lifecycle engine and the store:
status constants, the Record / StatusLogEntry rows, the acting principal,
store filters, and the exception taxonomy.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

# ---------------------------------------------------------------------------
# Status domain
# ---------------------------------------------------------------------------

UNSOLD = "UNSOLD"
SOLD = "SOLD"
EXPIRED = "EXPIRED"
CANCELLED = "CANCELLED"

VALID_STATUSES = frozenset({UNSOLD, SOLD, EXPIRED, CANCELLED})
DEFAULT_STATUS = UNSOLD

# Listing orders understood by every RecordStore.
ORDER_CREATED_DESC = "created_desc"
ORDER_CREATED_ASC = "created_asc"
ORDER_EXP_ASC = "exp_asc"
ORDER_EXP_DESC = "exp_desc"
ORDER_DELETED_DESC = "deleted_desc"

VALID_ORDERS = (
    ORDER_CREATED_DESC,
    ORDER_CREATED_ASC,
    ORDER_EXP_ASC,
    ORDER_EXP_DESC,
    ORDER_DELETED_DESC,
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class CatatanError(Exception):
    """Base class for every error raised by catatan_etl."""


class MalformedInput(CatatanError, ValueError):
    """Raised when delimited text decodes to zero rows."""


class StructuralImportError(CatatanError, ValueError):
    """Raised when an import file cannot be used at all (e.g. missing headers)."""


class RowValidationError(CatatanError):
    """Raised for a single rejected data row; collected, never fatal."""

    def __init__(self, row_number: int, reason: str, message: str) -> None:
        super().__init__(f"row {row_number}: {message}")
        self.row_number = row_number
        self.reason = reason


class WriteError(CatatanError):
    """Raised when a record store call fails (writes and reads alike)."""


class AuthRequiredError(CatatanError):
    """Raised when a mutating operation is attempted without an actor."""


class InvalidTransitionError(CatatanError):
    """Raised when a lifecycle transition is not legal for the record's state."""


class RecordNotFoundError(CatatanError):
    """Raised when a record id is unknown to the store (or not owned by the actor)."""


class RecordValidationError(CatatanError, ValueError):
    """Raised when manually entered record fields are invalid."""


# ---------------------------------------------------------------------------
# Rows
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Actor:
    """Authenticated principal performing an operation."""

    actor_id: str


@dataclass
class Record:
    id: str
    owner_id: str
    contact_email: str
    description: str
    created_at: datetime
    expires_at: datetime | None = None
    status: str = DEFAULT_STATUS
    status_updated_at: datetime | None = None
    deleted_at: datetime | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@dataclass(frozen=True)
class StatusLogEntry:
    record_id: str
    actor_id: str
    previous_status: str | None
    new_status: str
    timestamp: datetime


@dataclass(frozen=True)
class RecordFilter:
    """Store-side selection: owner scope plus trash state.

    deleted=False selects active records, True selects the trash,
    None selects both.
    """

    owner_id: str
    deleted: bool | None = False


def record_from_row(row: dict[str, Any]) -> Record:
    """Build a Record from a store row mapping (column names as in the schema)."""
    return Record(
        id=str(row["id"]),
        owner_id=str(row["owner_id"]),
        contact_email=row["contact_email"],
        description=row["description"],
        created_at=row["created_at"],
        expires_at=row.get("expires_at"),
        status=row.get("status") or DEFAULT_STATUS,
        status_updated_at=row.get("status_updated_at"),
        deleted_at=row.get("deleted_at"),
    )

"""catatan_etl.lifecycle

Record status derivation and lifecycle operations.

Effective status:
    A persisted UNSOLD record whose expiry has passed is shown as EXPIRED.
    This is a read-side projection only; nothing is written.

Operations (--lifecycle-op):
    toggle_sold   -- SOLD -> UNSOLD, anything else -> SOLD; appends a status log entry
    mark_expired  -- persist EXPIRED for an UNSOLD record that is already past expiry
    soft_delete   -- move to trash (deleted_at = now); status untouched
    restore       -- take one record out of the trash
    restore_all   -- take every trashed record of the actor out of the trash
    hard_delete   -- remove permanently (does not require prior soft delete)
    empty_trash   -- remove every trashed record of the actor permanently

Every mutating operation takes the acting principal explicitly and refuses
to run without one.  Destructive operations take a ``confirm`` callable that
receives a prompt and returns True to proceed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from catatan_etl.normalize import is_valid_email, trim
from catatan_etl.records import (
    DEFAULT_STATUS,
    EXPIRED,
    ORDER_CREATED_DESC,
    ORDER_DELETED_DESC,
    SOLD,
    UNSOLD,
    VALID_STATUSES,
    Actor,
    AuthRequiredError,
    InvalidTransitionError,
    Record,
    RecordFilter,
    RecordNotFoundError,
    RecordValidationError,
    StatusLogEntry,
    WriteError,
)
from catatan_etl.store import RecordStore

log = logging.getLogger(__name__)

Confirm = Callable[[str], bool]

MIN_MANUAL_DESCRIPTION_LENGTH = 3

PROMPT_SOFT_DELETE = "Delete this record? (it moves to the trash)"
PROMPT_RESTORE_ALL = "Restore every record in the trash?"
PROMPT_HARD_DELETE = "Delete this record permanently? (cannot be undone)"
PROMPT_EMPTY_TRASH = "Empty the trash? Every item will be deleted permanently."


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------

@dataclass
class RecordView:
    """A record plus its effective status as of one read."""

    record: Record
    effective_status: str


@dataclass
class ToggleResult:
    record_id: str
    previous_status: str
    new_status: str
    log_error: str | None = None


@dataclass
class LifecycleCounters:
    op: str
    record_id: str | None = None
    records_affected: int = 0
    cancelled: bool = False
    log_errors: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "op": self.op,
            "record_id": self.record_id,
            "records_affected": self.records_affected,
            "cancelled": self.cancelled,
            "log_errors": self.log_errors,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def effective_status(record: Record, now: datetime) -> str:
    if record.status == UNSOLD and record.expires_at is not None and record.expires_at < now:
        return EXPIRED
    return record.status


def build_view(
    records: list[Record],
    now: datetime,
    search: str | None = None,
    status_filter: str | None = None,
) -> list[RecordView]:
    """Project records for display/export, keeping the store's order.

    search matches case-insensitively on email or description; status_filter
    matches the effective status ('ALL' or None disables it).
    """
    needle = (search or "").strip().lower()
    wanted = None if status_filter in (None, "", "ALL") else status_filter
    if wanted is not None and wanted not in VALID_STATUSES:
        raise ValueError(f"unknown status filter: {status_filter!r}")

    views: list[RecordView] = []
    for record in records:
        view = RecordView(record, effective_status(record, now))
        if needle and needle not in (record.contact_email or "").lower() \
                and needle not in (record.description or "").lower():
            continue
        if wanted is not None and view.effective_status != wanted:
            continue
        views.append(view)
    return views


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------

def require_actor(actor: Actor | None) -> Actor:
    if actor is None or not (actor.actor_id or "").strip():
        raise AuthRequiredError("an authenticated actor is required")
    return actor


def _load(store: RecordStore, actor: Actor, record_id: str) -> Record:
    record = store.get(record_id, actor.actor_id)
    if record is None:
        raise RecordNotFoundError(f"record {record_id} not found")
    return record


# ---------------------------------------------------------------------------
# Listing (snapshot reload)
# ---------------------------------------------------------------------------

def list_active(store: RecordStore, actor: Actor, order: str = ORDER_CREATED_DESC) -> list[Record]:
    actor = require_actor(actor)
    return store.query(RecordFilter(actor.actor_id, deleted=False), order)


def list_trash(store: RecordStore, actor: Actor) -> list[Record]:
    actor = require_actor(actor)
    return store.query(RecordFilter(actor.actor_id, deleted=True), ORDER_DELETED_DESC)


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------

def toggle_sold(
    store: RecordStore,
    actor: Actor | None,
    record_id: str,
    now: datetime | None = None,
) -> ToggleResult:
    """Flip SOLD <-> UNSOLD (any non-SOLD status becomes SOLD).

    The prior status is read from the store, not trusted from the caller.
    The status write and the log append are two independent calls: if the
    append fails the status change stands and the failure is returned in
    ``log_error``.
    """
    actor = require_actor(actor)
    now = now or _utcnow()
    record = _load(store, actor, record_id)

    previous = record.status
    new = UNSOLD if previous == SOLD else SOLD
    store.update(record_id, {"status": new, "status_updated_at": now}, actor.actor_id)

    result = ToggleResult(record_id, previous, new)
    try:
        store.append_status_log(StatusLogEntry(
            record_id=record_id,
            actor_id=actor.actor_id,
            previous_status=previous,
            new_status=new,
            timestamp=now,
        ))
    except WriteError as exc:
        result.log_error = str(exc)
        log.warning("status changed for %s but log append failed: %s", record_id, exc)
    return result


def mark_expired(
    store: RecordStore,
    actor: Actor | None,
    record_id: str,
    now: datetime | None = None,
) -> None:
    """Persist EXPIRED for a record that is UNSOLD but effectively expired."""
    actor = require_actor(actor)
    now = now or _utcnow()
    record = _load(store, actor, record_id)

    if record.status != UNSOLD or effective_status(record, now) != EXPIRED:
        raise InvalidTransitionError(
            f"record {record_id} cannot be marked expired "
            f"(status={record.status}, expires_at={record.expires_at})"
        )
    store.update(record_id, {"status": EXPIRED, "status_updated_at": now}, actor.actor_id)


# ---------------------------------------------------------------------------
# Trash
# ---------------------------------------------------------------------------

def soft_delete(
    store: RecordStore,
    actor: Actor | None,
    record_id: str,
    confirm: Confirm,
    now: datetime | None = None,
) -> bool:
    """Move a record to the trash.  Returns False if not confirmed.

    Raises InvalidTransitionError for a record already in the trash;
    deleted_at is never overwritten.
    """
    actor = require_actor(actor)
    record = _load(store, actor, record_id)
    if record.is_deleted:
        raise InvalidTransitionError(f"record {record_id} is already in the trash")
    if not confirm(PROMPT_SOFT_DELETE):
        return False
    store.update(record_id, {"deleted_at": now or _utcnow()}, actor.actor_id)
    return True


def restore(store: RecordStore, actor: Actor | None, record_id: str) -> None:
    actor = require_actor(actor)
    record = _load(store, actor, record_id)
    if not record.is_deleted:
        raise InvalidTransitionError(f"record {record_id} is not in the trash")
    store.update(record_id, {"deleted_at": None}, actor.actor_id)


def restore_all(store: RecordStore, actor: Actor | None, confirm: Confirm) -> int:
    """Restore every trashed record of the actor in one store call.

    Returns the number restored (0 if not confirmed).
    """
    actor = require_actor(actor)
    if not confirm(PROMPT_RESTORE_ALL):
        return 0
    return store.update_where(RecordFilter(actor.actor_id, deleted=True), {"deleted_at": None})


def hard_delete(
    store: RecordStore,
    actor: Actor | None,
    record_id: str,
    confirm: Confirm,
) -> bool:
    """Delete a record permanently.  Returns False if not confirmed.

    Prior soft deletion is not required.
    """
    actor = require_actor(actor)
    record = _load(store, actor, record_id)
    if not confirm(PROMPT_HARD_DELETE):
        return False
    if not record.is_deleted:
        log.info("hard-deleting %s without prior soft delete", record_id)
    store.delete(record_id, actor.actor_id)
    return True


def empty_trash(store: RecordStore, actor: Actor | None, confirm: Confirm) -> int:
    actor = require_actor(actor)
    if not confirm(PROMPT_EMPTY_TRASH):
        return 0
    return store.delete_where(RecordFilter(actor.actor_id, deleted=True))


# ---------------------------------------------------------------------------
# Manual creation
# ---------------------------------------------------------------------------

def create_record(
    store: RecordStore,
    actor: Actor | None,
    contact_email: str,
    description: str,
    expires_at: datetime | None = None,
) -> None:
    """Insert one record entered by hand.

    Stricter than import: the description needs at least three characters.
    created_at is left to the store.
    """
    actor = require_actor(actor)
    email = trim(contact_email)
    if not is_valid_email(email):
        raise RecordValidationError(f"invalid email: {contact_email!r}")
    if len((description or "").strip()) < MIN_MANUAL_DESCRIPTION_LENGTH:
        raise RecordValidationError("description is too short")

    store.insert([{
        "owner_id": actor.actor_id,
        "contact_email": email,
        "description": description,
        "expires_at": expires_at,
        "status": DEFAULT_STATUS,
    }])

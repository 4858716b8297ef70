"""catatan_etl.store

Record store collaborator.

``RecordStore`` is the protocol the lifecycle engine, importer and bulk writer
talk to.  Every call is scoped by owner id, which stands in for the access
policy of the backing database: a record that belongs to someone else is
simply not found.

``PgRecordStore`` implements it over a psycopg connection; any psycopg
error, read or write, surfaces as ``WriteError``.  It expects an
autocommit connection: each write runs in its own ``conn.transaction()``
block, so a bulk insert chunk is committed as soon as ``insert`` returns.

Depends on: migrations/0001_catatan.sql
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import psycopg
from psycopg.rows import dict_row

from catatan_etl.records import (
    ORDER_CREATED_ASC,
    ORDER_CREATED_DESC,
    ORDER_DELETED_DESC,
    ORDER_EXP_ASC,
    ORDER_EXP_DESC,
    Record,
    RecordFilter,
    StatusLogEntry,
    WriteError,
    record_from_row,
)

log = logging.getLogger(__name__)

_INSERT_COLUMNS = ("owner_id", "contact_email", "description", "expires_at", "status")

_MUTABLE_COLUMNS = frozenset({
    "contact_email",
    "description",
    "expires_at",
    "status",
    "status_updated_at",
    "deleted_at",
})

_ORDER_SQL: dict[str, str] = {
    ORDER_CREATED_DESC: "created_at DESC, id",
    ORDER_CREATED_ASC:  "created_at ASC, id",
    ORDER_EXP_ASC:      "expires_at ASC NULLS LAST, created_at DESC, id",
    ORDER_EXP_DESC:     "expires_at DESC NULLS LAST, created_at DESC, id",
    ORDER_DELETED_DESC: "deleted_at DESC NULLS LAST, id",
}

_SELECT_COLUMNS = (
    "id, owner_id, contact_email, description, created_at, expires_at, "
    "status, status_updated_at, deleted_at"
)


class RecordStore(Protocol):
    """Abstract persistence collaborator."""

    def insert(self, rows: list[dict[str, Any]]) -> None: ...

    def get(self, record_id: str, owner_id: str) -> Record | None: ...

    def update(self, record_id: str, patch: dict[str, Any], owner_id: str) -> None: ...

    def update_where(self, record_filter: RecordFilter, patch: dict[str, Any]) -> int: ...

    def delete(self, record_id: str, owner_id: str) -> None: ...

    def delete_where(self, record_filter: RecordFilter) -> int: ...

    def query(self, record_filter: RecordFilter, order: str = ORDER_CREATED_DESC) -> list[Record]: ...

    def append_status_log(self, entry: StatusLogEntry) -> None: ...


# ---------------------------------------------------------------------------
# SQL helpers
# ---------------------------------------------------------------------------

def _filter_clause(record_filter: RecordFilter) -> tuple[str, list[Any]]:
    clauses = ["owner_id = %s"]
    params: list[Any] = [record_filter.owner_id]
    if record_filter.deleted is True:
        clauses.append("deleted_at IS NOT NULL")
    elif record_filter.deleted is False:
        clauses.append("deleted_at IS NULL")
    return " AND ".join(clauses), params


def _patch_clause(patch: dict[str, Any]) -> tuple[str, list[Any]]:
    unknown = set(patch) - _MUTABLE_COLUMNS
    if unknown:
        raise ValueError(f"cannot update column(s): {sorted(unknown)}")
    if not patch:
        raise ValueError("empty patch")
    cols = sorted(patch)
    return ", ".join(f"{c} = %s" for c in cols), [patch[c] for c in cols]


# ---------------------------------------------------------------------------
# PostgreSQL implementation
# ---------------------------------------------------------------------------

class PgRecordStore:
    """RecordStore over the ``catatan`` / ``catatan_status_log`` tables."""

    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn

    def insert(self, rows: list[dict[str, Any]]) -> None:
        if not rows:
            return
        placeholders = ", ".join(["%s"] * len(_INSERT_COLUMNS))
        params = [tuple(r.get(c) for c in _INSERT_COLUMNS) for r in rows]
        try:
            with self._conn.transaction():
                with self._conn.cursor() as cur:
                    cur.executemany(
                        f"INSERT INTO catatan ({', '.join(_INSERT_COLUMNS)}) "
                        f"VALUES ({placeholders})",
                        params,
                    )
        except psycopg.Error as exc:
            raise WriteError(f"insert of {len(rows)} row(s) failed: {exc}") from exc
        log.debug("inserted %d catatan row(s)", len(rows))

    def get(self, record_id: str, owner_id: str) -> Record | None:
        try:
            with self._conn.cursor(row_factory=dict_row) as cur:
                row = cur.execute(
                    f"SELECT {_SELECT_COLUMNS} FROM catatan WHERE id = %s AND owner_id = %s",
                    (record_id, owner_id),
                ).fetchone()
        except psycopg.errors.InvalidTextRepresentation:
            # Not a uuid, so it cannot name a record.
            return None
        except psycopg.Error as exc:
            raise WriteError(f"read of {record_id} failed: {exc}") from exc
        return record_from_row(row) if row else None

    def update(self, record_id: str, patch: dict[str, Any], owner_id: str) -> None:
        set_sql, params = _patch_clause(patch)
        try:
            with self._conn.transaction():
                self._conn.execute(
                    f"UPDATE catatan SET {set_sql} WHERE id = %s AND owner_id = %s",
                    (*params, record_id, owner_id),
                )
        except psycopg.Error as exc:
            raise WriteError(f"update of {record_id} failed: {exc}") from exc

    def update_where(self, record_filter: RecordFilter, patch: dict[str, Any]) -> int:
        set_sql, params = _patch_clause(patch)
        where_sql, where_params = _filter_clause(record_filter)
        try:
            with self._conn.transaction():
                cur = self._conn.execute(
                    f"UPDATE catatan SET {set_sql} WHERE {where_sql}",
                    (*params, *where_params),
                )
                return cur.rowcount
        except psycopg.Error as exc:
            raise WriteError(f"bulk update failed: {exc}") from exc

    def delete(self, record_id: str, owner_id: str) -> None:
        try:
            with self._conn.transaction():
                self._conn.execute(
                    "DELETE FROM catatan WHERE id = %s AND owner_id = %s",
                    (record_id, owner_id),
                )
        except psycopg.Error as exc:
            raise WriteError(f"delete of {record_id} failed: {exc}") from exc

    def delete_where(self, record_filter: RecordFilter) -> int:
        where_sql, where_params = _filter_clause(record_filter)
        try:
            with self._conn.transaction():
                cur = self._conn.execute(
                    f"DELETE FROM catatan WHERE {where_sql}",
                    where_params,
                )
                return cur.rowcount
        except psycopg.Error as exc:
            raise WriteError(f"bulk delete failed: {exc}") from exc

    def query(self, record_filter: RecordFilter, order: str = ORDER_CREATED_DESC) -> list[Record]:
        if order not in _ORDER_SQL:
            raise ValueError(f"unknown order: {order!r}")
        where_sql, where_params = _filter_clause(record_filter)
        try:
            with self._conn.cursor(row_factory=dict_row) as cur:
                rows = cur.execute(
                    f"SELECT {_SELECT_COLUMNS} FROM catatan WHERE {where_sql} "
                    f"ORDER BY {_ORDER_SQL[order]}",
                    where_params,
                ).fetchall()
        except psycopg.Error as exc:
            raise WriteError(f"query failed: {exc}") from exc
        return [record_from_row(r) for r in rows]

    def append_status_log(self, entry: StatusLogEntry) -> None:
        try:
            with self._conn.transaction():
                self._conn.execute(
                    """
                    INSERT INTO catatan_status_log
                        (catatan_id, actor_id, previous_status, new_status, logged_at)
                    VALUES (%s, %s, %s, %s, %s)
                    """,
                    (entry.record_id, entry.actor_id, entry.previous_status,
                     entry.new_status, entry.timestamp),
                )
        except psycopg.Error as exc:
            raise WriteError(f"status log append for {entry.record_id} failed: {exc}") from exc

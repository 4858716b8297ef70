"""Unit test fixtures.

Provides an in-memory RecordStore so lifecycle, import and bulk-write logic
can be exercised without PostgreSQL.  Failure injection:

    store.fail_insert_on_call = 2   # second insert() raises WriteError
    store.fail_status_log = True    # append_status_log() raises WriteError
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from catatan_etl.records import (
    ORDER_CREATED_ASC,
    ORDER_CREATED_DESC,
    ORDER_DELETED_DESC,
    ORDER_EXP_ASC,
    ORDER_EXP_DESC,
    Actor,
    Record,
    RecordFilter,
    StatusLogEntry,
    WriteError,
)

BASE_TIME = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


class InMemoryRecordStore:
    def __init__(self) -> None:
        self.records: dict[str, Record] = {}
        self.status_log: list[StatusLogEntry] = []
        self.insert_calls: list[int] = []
        self.fail_insert_on_call: int | None = None
        self.fail_status_log = False
        self._tick = 0

    # -- helpers ----------------------------------------------------------

    def add(self, owner_id: str = "owner-1", **fields: Any) -> Record:
        """Seed a record directly, bypassing insert()."""
        self._tick += 1
        record = Record(
            id=fields.pop("id", str(uuid.uuid4())),
            owner_id=owner_id,
            contact_email=fields.pop("contact_email", "buyer@example.com"),
            description=fields.pop("description", "Produk A"),
            created_at=fields.pop("created_at", BASE_TIME + timedelta(minutes=self._tick)),
            **fields,
        )
        self.records[record.id] = record
        return record

    def _matches(self, r: Record, f: RecordFilter) -> bool:
        if r.owner_id != f.owner_id:
            return False
        if f.deleted is True:
            return r.deleted_at is not None
        if f.deleted is False:
            return r.deleted_at is None
        return True

    # -- RecordStore ------------------------------------------------------

    def insert(self, rows: list[dict[str, Any]]) -> None:
        self.insert_calls.append(len(rows))
        if self.fail_insert_on_call == len(self.insert_calls):
            raise WriteError("simulated insert failure")
        for row in rows:
            assert "created_at" not in row
            self.add(
                owner_id=row["owner_id"],
                contact_email=row["contact_email"],
                description=row["description"],
                expires_at=row.get("expires_at"),
                status=row.get("status") or "UNSOLD",
            )

    def get(self, record_id: str, owner_id: str) -> Record | None:
        r = self.records.get(record_id)
        if r is None or r.owner_id != owner_id:
            return None
        return replace(r)

    def update(self, record_id: str, patch: dict[str, Any], owner_id: str) -> None:
        r = self.records.get(record_id)
        if r is not None and r.owner_id == owner_id:
            self.records[record_id] = replace(r, **patch)

    def update_where(self, record_filter: RecordFilter, patch: dict[str, Any]) -> int:
        hits = [r for r in self.records.values() if self._matches(r, record_filter)]
        for r in hits:
            self.records[r.id] = replace(r, **patch)
        return len(hits)

    def delete(self, record_id: str, owner_id: str) -> None:
        r = self.records.get(record_id)
        if r is not None and r.owner_id == owner_id:
            del self.records[record_id]

    def delete_where(self, record_filter: RecordFilter) -> int:
        hits = [r.id for r in self.records.values() if self._matches(r, record_filter)]
        for rid in hits:
            del self.records[rid]
        return len(hits)

    def query(self, record_filter: RecordFilter, order: str = ORDER_CREATED_DESC) -> list[Record]:
        rows = [replace(r) for r in self.records.values() if self._matches(r, record_filter)]
        far = datetime.max.replace(tzinfo=timezone.utc)
        if order == ORDER_CREATED_DESC:
            rows.sort(key=lambda r: r.created_at, reverse=True)
        elif order == ORDER_CREATED_ASC:
            rows.sort(key=lambda r: r.created_at)
        elif order == ORDER_EXP_ASC:
            rows.sort(key=lambda r: (r.expires_at is None, r.expires_at or far))
        elif order == ORDER_EXP_DESC:
            with_exp = sorted((r for r in rows if r.expires_at), key=lambda r: r.expires_at, reverse=True)
            rows = with_exp + [r for r in rows if r.expires_at is None]
        elif order == ORDER_DELETED_DESC:
            rows.sort(key=lambda r: r.deleted_at or far, reverse=True)
        return rows

    def append_status_log(self, entry: StatusLogEntry) -> None:
        if self.fail_status_log:
            raise WriteError("simulated status log failure")
        self.status_log.append(entry)


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def actor() -> Actor:
    return Actor("owner-1")


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def yes():
    return lambda _prompt: True


@pytest.fixture
def no():
    return lambda _prompt: False

"""Integration test fixtures.

Applies migrations/0001_catatan.sql against an ephemeral PostgreSQL database
provided by pytest-postgresql.  Tests are skipped when no PostgreSQL server
binaries are installed.
"""

from __future__ import annotations

import shutil
from pathlib import Path

import psycopg
import pytest
from pytest_postgresql import factories

from catatan_etl.records import Actor
from catatan_etl.store import PgRecordStore

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).parent.parent.parent
MIGRATIONS = [
    PROJECT_ROOT / "migrations" / "0001_catatan.sql",
]

# ---------------------------------------------------------------------------
# pytest-postgresql process fixture
# ---------------------------------------------------------------------------

postgresql_proc = factories.postgresql_proc()
postgresql = factories.postgresql("postgresql_proc")


def _have_postgres() -> bool:
    return shutil.which("pg_ctl") is not None or shutil.which("pg_config") is not None


# ---------------------------------------------------------------------------
# Schema fixture
# ---------------------------------------------------------------------------

@pytest.fixture(scope="function")
def db_conn(request):
    """Return (autocommit connection, dsn) with the schema applied.

    Function scope: every test starts from an empty schema.
    """
    if not _have_postgres():
        pytest.skip("PostgreSQL binaries (pg_ctl) not available")
    pg = request.getfixturevalue("postgresql")
    dsn = (
        f"host={pg.info.host} "
        f"port={pg.info.port} "
        f"dbname={pg.info.dbname} "
        f"user={pg.info.user} "
        f"password={pg.info.password or ''}"
    )
    conn = psycopg.connect(dsn, autocommit=True)
    try:
        for migration in MIGRATIONS:
            conn.execute(migration.read_text(encoding="utf-8"))
        yield conn, dsn
    finally:
        conn.close()


@pytest.fixture
def pg_store(db_conn) -> PgRecordStore:
    conn, _ = db_conn
    return PgRecordStore(conn)


@pytest.fixture
def owner() -> Actor:
    return Actor("owner-1")

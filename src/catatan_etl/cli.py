"""catatan_etl.cli

Unified CLI entrypoint for catatan record management.

Modes (--mode):
  import_csv  -- validate a CSV file and insert its rows in chunks
  export_csv  -- write the current (filtered) listing as a spreadsheet CSV
  template    -- print the example import CSV
  list        -- show active records with their effective status
  trash       -- show soft-deleted records
  create      -- insert one record entered by hand
  lifecycle   -- apply one --lifecycle-op to a record or to the trash

Usage (import):
    catatan-etl --mode import_csv \\
        --db-dsn "$CATATAN_DB_DSN" \\
        --actor "$CATATAN_ACTOR" \\
        --csv-path catatan.csv

Usage (lifecycle):
    catatan-etl --mode lifecycle --lifecycle-op toggle_sold \\
        --db-dsn "$CATATAN_DB_DSN" --actor "$CATATAN_ACTOR" \\
        --record-id 1f0e...

After every mutation the listing is reloaded from the store and echoed.
"""

from __future__ import annotations

import logging
import os
import sys
import uuid
from datetime import datetime, timezone, tzinfo
from pathlib import Path
from typing import Callable

import click
import psycopg

from catatan_etl import lifecycle
from catatan_etl.export_catatan_csv import export_csv, export_filename
from catatan_etl.import_catatan_csv import (
    build_import_report,
    import_template,
    run_import,
)
from catatan_etl.lifecycle import LifecycleCounters, RecordView, build_view
from catatan_etl.normalize import format_calendar_date, parse_local_datetime, resolve_local_tz
from catatan_etl.records import VALID_ORDERS, VALID_STATUSES, Actor, CatatanError
from catatan_etl.settings import load_settings
from catatan_etl.shared import RejectWriter, write_run_report
from catatan_etl.store import PgRecordStore

MODES = ["import_csv", "export_csv", "template", "list", "trash", "create", "lifecycle"]

LIFECYCLE_OPS = [
    "toggle_sold",
    "mark_expired",
    "soft_delete",
    "restore",
    "restore_all",
    "hard_delete",
    "empty_trash",
]

_RECORD_OPS = frozenset({"toggle_sold", "mark_expired", "soft_delete", "restore", "hard_delete"})


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _fail(run_id: str, message: str) -> None:
    click.echo(f"[{run_id}] FATAL: {message}", err=True)
    sys.exit(1)


def _resolve_actor(actor_id: str | None, actor_env: str) -> Actor | None:
    value = actor_id or os.environ.get(actor_env, "")
    value = value.strip()
    return Actor(value) if value else None


def _make_confirm(assume_yes: bool) -> Callable[[str], bool]:
    if assume_yes:
        return lambda _prompt: True
    return lambda prompt: click.confirm(prompt, default=False)


def _echo_views(run_id: str, views: list[RecordView], title: str) -> None:
    click.echo(f"[{run_id}] {title}: {len(views)} record(s)")
    for i, v in enumerate(views, start=1):
        r = v.record
        deleted = f"  deleted={r.deleted_at.isoformat()}" if r.deleted_at else ""
        click.echo(
            f"  {i:>4}  {r.id}  {v.effective_status:<9}  "
            f"exp={format_calendar_date(r.expires_at) or '-':<10}  "
            f"{r.contact_email}  {r.description}{deleted}"
        )


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

@click.command()
@click.option("--mode", type=click.Choice(MODES), default="list", show_default=True)
@click.option("--db-dsn", envvar="CATATAN_DB_DSN", default=None, help="PostgreSQL DSN (env CATATAN_DB_DSN)")
@click.option("--actor", "actor_id", default=None, help="Acting user id")
@click.option("--actor-env", default="CATATAN_ACTOR", show_default=True, help="Env var holding the acting user id")
@click.option("--csv-path", default=None, type=click.Path(exists=True, dir_okay=False), help="[import_csv] Input CSV")
@click.option("--out-path", default=None, type=click.Path(), help="[export_csv|template] Output file (stdout if omitted)")
@click.option("--validate-only", is_flag=True, default=False, help="[import_csv] Validate without touching the database")
@click.option("--chunk-size", default=None, type=int, help="[import_csv] Rows per insert (default from settings)")
@click.option(
    "--rejects-path",
    default="artifacts/rejects/catatan_import_rejects.csv",
    show_default=True,
    type=click.Path(),
)
@click.option("--report-dir", default="artifacts/reports", show_default=True, type=click.Path())
@click.option("--settings-path", default=None, type=click.Path(), help="YAML settings file")
@click.option("--order", type=click.Choice(list(VALID_ORDERS)), default=None, help="[list|export_csv] Sort order")
@click.option("--search", default=None, help="[list|export_csv] Substring filter on email/description")
@click.option(
    "--status-filter",
    type=click.Choice(["ALL", *sorted(VALID_STATUSES)]),
    default="ALL",
    show_default=True,
    help="[list|export_csv] Filter on effective status",
)
@click.option("--lifecycle-op", type=click.Choice(LIFECYCLE_OPS), default=None)
@click.option("--record-id", default=None, help="[lifecycle] Target record id")
@click.option("--yes", "assume_yes", is_flag=True, default=False, help="Skip confirmation prompts")
@click.option("--email", default=None, help="[create] Contact email")
@click.option("--description", default=None, help="[create] Description")
@click.option("--expires-at", default=None, help="[create] Expiry, YYYY-MM-DDTHH:MM local time")
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option("--verbose", is_flag=True, default=False)
def main(
    mode: str,
    db_dsn: str | None,
    actor_id: str | None,
    actor_env: str,
    csv_path: str | None,
    out_path: str | None,
    validate_only: bool,
    chunk_size: int | None,
    rejects_path: str,
    report_dir: str,
    settings_path: str | None,
    order: str | None,
    search: str | None,
    status_filter: str,
    lifecycle_op: str | None,
    record_id: str | None,
    assume_yes: bool,
    email: str | None,
    description: str | None,
    expires_at: str | None,
    run_id: str | None,
    verbose: bool,
) -> None:
    """Catatan record management CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.now(timezone.utc).isoformat()

    try:
        settings = load_settings(Path(settings_path) if settings_path else None)
    except (OSError, ValueError) as exc:
        _fail(run_id, f"cannot load settings: {exc}")
        return
    tz = resolve_local_tz(settings.timezone)
    if chunk_size is None:
        chunk_size = settings.chunk_size
    order = order or settings.default_order
    actor = _resolve_actor(actor_id, actor_env)

    if mode == "template":
        content = import_template()
        if out_path:
            Path(out_path).write_text(content, encoding="utf-8")
            click.echo(f"[{run_id}] Template written: {out_path}")
        else:
            click.echo(content)
        return

    if mode == "import_csv":
        _run_import_mode(
            run_id, started_at, db_dsn, actor, csv_path, chunk_size, tz,
            Path(rejects_path), Path(report_dir), validate_only, settings.to_dict(),
        )
        return

    if mode == "lifecycle" and lifecycle_op is None:
        _fail(run_id, "--lifecycle-op is required for --mode lifecycle")
    if mode == "lifecycle" and lifecycle_op in _RECORD_OPS and not record_id:
        _fail(run_id, f"--record-id is required for {lifecycle_op}")
    if not db_dsn:
        _fail(run_id, f"--db-dsn (or CATATAN_DB_DSN) is required for --mode {mode}")
    if actor is None:
        _fail(run_id, f"no actor: pass --actor or set {actor_env}")

    click.echo(f"[{run_id}] Starting {mode} run")
    try:
        conn = psycopg.connect(db_dsn, autocommit=True)
    except psycopg.Error as exc:
        _fail(run_id, f"cannot connect to database: {exc}")
        return

    store = PgRecordStore(conn)
    confirm = _make_confirm(assume_yes)
    now = datetime.now(timezone.utc)
    try:
        if mode == "list":
            views = build_view(lifecycle.list_active(store, actor, order), now, search, status_filter)
            _echo_views(run_id, views, "Active")

        elif mode == "trash":
            views = build_view(lifecycle.list_trash(store, actor), now, search)
            _echo_views(run_id, views, "Trash")

        elif mode == "export_csv":
            views = build_view(lifecycle.list_active(store, actor, order), now, search, status_filter)
            content = export_csv(views, settings.export_delimiter, tz)
            target = Path(out_path) if out_path else Path(export_filename(now))
            target.write_text(content, encoding="utf-8")
            click.echo(f"[{run_id}] Exported {len(views)} record(s) to {target}")

        elif mode == "create":
            parsed_exp = parse_local_datetime(expires_at, tz)
            if expires_at and parsed_exp is None:
                _fail(run_id, f"--expires-at must be YYYY-MM-DDTHH:MM, got {expires_at!r}")
            lifecycle.create_record(store, actor, email or "", description or "", parsed_exp)
            click.echo(f"[{run_id}] Record created.")
            _echo_views(run_id, build_view(lifecycle.list_active(store, actor, order), now), "Active")

        else:
            ctrs = _run_lifecycle_op(run_id, store, actor, lifecycle_op, record_id, confirm, now, order)
            report_path = write_run_report(
                Path(report_dir), run_id, "lifecycle", started_at, ctrs,
                settings=settings.to_dict(),
            )
            click.echo(f"[{run_id}] Run report: {report_path}")

    except (CatatanError, psycopg.Error, OSError) as exc:
        _fail(run_id, str(exc))
    finally:
        conn.close()

    click.echo(f"[{run_id}] Done.")


def _run_lifecycle_op(
    run_id: str,
    store: PgRecordStore,
    actor: Actor,
    op: str | None,
    record_id: str | None,
    confirm: Callable[[str], bool],
    now: datetime,
    order: str,
) -> LifecycleCounters:
    ctrs = LifecycleCounters(op=op or "", record_id=record_id)
    reload_trash = op in ("restore", "restore_all", "empty_trash")

    if op == "toggle_sold":
        result = lifecycle.toggle_sold(store, actor, record_id, now)  # type: ignore[arg-type]
        ctrs.records_affected = 1
        click.echo(f"[{run_id}] {record_id}: {result.previous_status} -> {result.new_status}")
        if result.log_error:
            ctrs.log_errors += 1
            click.echo(f"[{run_id}] WARNING: status log not written: {result.log_error}", err=True)
    elif op == "mark_expired":
        lifecycle.mark_expired(store, actor, record_id, now)  # type: ignore[arg-type]
        ctrs.records_affected = 1
        click.echo(f"[{run_id}] {record_id}: marked EXPIRED")
    elif op == "soft_delete":
        done = lifecycle.soft_delete(store, actor, record_id, confirm, now)  # type: ignore[arg-type]
        ctrs.records_affected, ctrs.cancelled = int(done), not done
        click.echo(f"[{run_id}] {record_id}: {'moved to trash' if done else 'cancelled'}")
    elif op == "restore":
        lifecycle.restore(store, actor, record_id)  # type: ignore[arg-type]
        ctrs.records_affected = 1
        click.echo(f"[{run_id}] {record_id}: restored")
    elif op == "restore_all":
        ctrs.records_affected = lifecycle.restore_all(store, actor, confirm)
        click.echo(f"[{run_id}] Restored {ctrs.records_affected} record(s)")
    elif op == "hard_delete":
        done = lifecycle.hard_delete(store, actor, record_id, confirm)  # type: ignore[arg-type]
        ctrs.records_affected, ctrs.cancelled = int(done), not done
        click.echo(f"[{run_id}] {record_id}: {'deleted permanently' if done else 'cancelled'}")
    elif op == "empty_trash":
        ctrs.records_affected = lifecycle.empty_trash(store, actor, confirm)
        click.echo(f"[{run_id}] Deleted {ctrs.records_affected} record(s) permanently")

    if reload_trash:
        _echo_views(run_id, build_view(lifecycle.list_trash(store, actor), now), "Trash")
    else:
        _echo_views(run_id, build_view(lifecycle.list_active(store, actor, order), now), "Active")
    return ctrs


def _run_import_mode(
    run_id: str,
    started_at: str,
    db_dsn: str | None,
    actor: Actor | None,
    csv_path: str | None,
    chunk_size: int,
    tz: tzinfo | None,
    rejects_path: Path,
    report_dir: Path,
    validate_only: bool,
    settings: dict,
) -> None:
    if not csv_path:
        _fail(run_id, "--csv-path is required for --mode import_csv")
    path = Path(csv_path)  # type: ignore[arg-type]
    if path.suffix.lower() != ".csv":
        _fail(run_id, f"file must be .csv: {path.name}")
    if chunk_size < 1:
        _fail(run_id, f"--chunk-size must be >= 1, got {chunk_size}")
    if not validate_only:
        if not db_dsn:
            _fail(run_id, "--db-dsn (or CATATAN_DB_DSN) is required unless --validate-only")
        if actor is None:
            _fail(run_id, "no actor: pass --actor or set the actor env var")

    click.echo(f"[{run_id}] Starting import_csv run (validate_only={validate_only})")
    try:
        raw_text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        _fail(run_id, f"cannot read {path}: {exc}")
        return

    conn = None
    with RejectWriter(rejects_path) as rejects:
        try:
            store = None
            if not validate_only:
                conn = psycopg.connect(db_dsn, autocommit=True)  # type: ignore[arg-type]
                store = PgRecordStore(conn)
            ctrs = run_import(
                store, actor, raw_text,
                chunk_size=chunk_size, tz=tz, rejects=rejects, validate_only=validate_only,
            )
        except (CatatanError, psycopg.Error, OSError, ValueError) as exc:
            _fail(run_id, str(exc))
            return
        finally:
            if conn is not None:
                conn.close()

    click.echo(build_import_report(ctrs, validate_only=validate_only))
    report_path = write_run_report(
        report_dir, run_id, "import_csv", started_at, ctrs,
        csv_path=str(path), validate_only=validate_only, settings=settings,
    )
    click.echo(f"[{run_id}] Run report: {report_path}")
    if rejects.count:
        click.echo(f"[{run_id}] Rejects: {rejects.path}")

    if ctrs.blocked:
        click.echo(f"[{run_id}] {ctrs.rows_rejected} row(s) rejected; nothing imported", err=True)
        sys.exit(1)
    if ctrs.write_error:
        click.echo(
            f"[{run_id}] write failed at chunk {ctrs.failed_chunk}; "
            f"{ctrs.rows_committed} row(s) committed before the failure",
            err=True,
        )
        sys.exit(1)
    click.echo(f"[{run_id}] Done.")


if __name__ == "__main__":
    main()

"""catatan_etl.shared

Run artifacts written by the CLI: the rejects CSV for an import and the JSON
run report for every mode that touches the store.
"""

from __future__ import annotations

import csv
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol


class SupportsToDict(Protocol):
    def to_dict(self) -> dict[str, Any]: ...


# ---------------------------------------------------------------------------
# Rejects CSV
# ---------------------------------------------------------------------------

class RejectWriter:
    """Rejected import rows: the file's own cells plus row number and reason.

    Opened on the first reject, so a clean run leaves no file behind.  The
    column set is fixed by the first row written; every rejected row of one
    import shares the same header.
    """

    TRAILING_COLUMNS = ("row_number", "reject_reason")

    def __init__(self, path: Path) -> None:
        self.path = path
        self.count = 0
        self._fh = None
        self._writer: csv.DictWriter | None = None

    def __enter__(self) -> RejectWriter:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def write(self, row_number: int, reason: str, cells: dict[str, str]) -> None:
        if self._writer is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(self.path, "w", newline="", encoding="utf-8")
            self._writer = csv.DictWriter(
                self._fh,
                fieldnames=[*cells, *self.TRAILING_COLUMNS],
                extrasaction="ignore",
            )
            self._writer.writeheader()
        self._writer.writerow({**cells, "row_number": row_number, "reject_reason": reason})
        self.count += 1

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None


# ---------------------------------------------------------------------------
# Run report
# ---------------------------------------------------------------------------

def write_run_report(
    report_dir: Path,
    run_id: str,
    mode: str,
    started_at: str,
    counters: SupportsToDict,
    **context: Any,
) -> Path:
    """Write ``<report_dir>/<run_id>.json`` and return its path.

    ``context`` holds whatever identifies the run's inputs (file path,
    settings, flags); it is stored under its own key next to the counters.
    """
    report_path = report_dir / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "run_id": run_id,
        "mode": mode,
        "started_at": started_at,
        "finished_at": datetime.now(timezone.utc).isoformat(),
        "context": context,
        "counters": counters.to_dict(),
    }
    with report_path.open("w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, default=str)
    return report_path

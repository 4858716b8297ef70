"""catatan_etl.bulk_writer

Chunked, strictly sequential submission of validated rows to the record store.

Chunk N+1 is only sent after chunk N has been acknowledged.  The first
rejected chunk stops the run; chunks already acknowledged stay committed.
There is no retry here; re-running is the caller's decision.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterator

from catatan_etl.records import WriteError
from catatan_etl.store import RecordStore

log = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 200


@dataclass
class BulkWriteResult:
    committed: int = 0
    chunks_submitted: int = 0
    failed_chunk: int | None = None  # 1-based
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "committed": self.committed,
            "chunks_submitted": self.chunks_submitted,
            "failed_chunk": self.failed_chunk,
            "error": self.error,
        }


def iter_chunks(rows: list[dict[str, Any]], chunk_size: int) -> Iterator[list[dict[str, Any]]]:
    """Yield consecutive slices of at most chunk_size rows."""
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
    for start in range(0, len(rows), chunk_size):
        yield rows[start:start + chunk_size]


def submit_in_chunks(
    store: RecordStore,
    rows: list[dict[str, Any]],
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> BulkWriteResult:
    """Insert rows chunk by chunk, stopping at the first WriteError.

    Returns:
        BulkWriteResult; ``committed`` counts rows of acknowledged chunks only.
    """
    result = BulkWriteResult()
    for idx, chunk in enumerate(iter_chunks(rows, chunk_size), start=1):
        result.chunks_submitted += 1
        try:
            store.insert(chunk)
        except WriteError as exc:
            result.failed_chunk = idx
            result.error = str(exc)
            log.warning(
                "chunk %d (%d rows) rejected after %d committed: %s",
                idx, len(chunk), result.committed, exc,
            )
            return result
        result.committed += len(chunk)
        log.debug("chunk %d acknowledged (%d committed)", idx, result.committed)
    return result

"""catatan_etl.tabular_codec

Delimited-text codec tolerant of spreadsheet exports.

Decoding:
  - strips a leading BOM
  - honours an Excel-style ``sep=<char>`` first line, otherwise picks ``;``
    when the first line has strictly more semicolons than commas, else ``,``
  - single-pass quote-aware tokenizer (``""`` inside quotes is a literal quote,
    unterminated quotes run to end of input)
  - drops rows that are a single blank cell (trailing blank lines)

Encoding always writes the ``sep=`` line and quotes every cell, so the output
opens correctly in spreadsheet tools regardless of their locale delimiter.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Sequence

from catatan_etl.records import MalformedInput

BOM = "\ufeff"

_SENTINEL_RE = re.compile(r"^ *sep *= *(\t|[^\s\"]) *$", re.IGNORECASE)
_FIRST_LINE_RE = re.compile(r"\r\n|\n|\r")


# ---------------------------------------------------------------------------
# Delimiter detection
# ---------------------------------------------------------------------------

def detect_delimiter(first_line: str) -> tuple[str, bool]:
    """Return (delimiter, is_sentinel) for the first physical line of a file."""
    m = _SENTINEL_RE.match(first_line)
    if m:
        return m.group(1), True
    if first_line.count(";") > first_line.count(","):
        return ";", False
    return ",", False


def _split_first_line(text: str) -> tuple[str, str]:
    """Return (first_line, remainder) with the line break itself removed."""
    m = _FIRST_LINE_RE.search(text)
    if m is None:
        return text, ""
    return text[:m.start()], text[m.end():]


# ---------------------------------------------------------------------------
# Decode
# ---------------------------------------------------------------------------

def _keep_row(row: list[str]) -> bool:
    return len(row) > 1 or row[0].strip() != ""


def tokenize(text: str, delimiter: str) -> list[list[str]]:
    """Split text into rows of cells with a single left-to-right scan."""
    rows: list[list[str]] = []
    row: list[str] = []
    cur: list[str] = []
    in_quotes = False
    i = 0
    n = len(text)

    while i < n:
        ch = text[i]

        if ch == '"':
            if in_quotes and i + 1 < n and text[i + 1] == '"':
                cur.append('"')
                i += 2
                continue
            in_quotes = not in_quotes
            i += 1
            continue

        if not in_quotes and ch == delimiter:
            row.append("".join(cur))
            cur = []
            i += 1
            continue

        if not in_quotes and ch in "\r\n":
            if ch == "\r" and i + 1 < n and text[i + 1] == "\n":
                i += 1
            row.append("".join(cur))
            cur = []
            if _keep_row(row):
                rows.append(row)
            row = []
            i += 1
            continue

        cur.append(ch)
        i += 1

    # Flush whatever is left, including an unterminated quoted cell.
    row.append("".join(cur))
    if _keep_row(row):
        rows.append(row)
    return rows


def decode_table(raw_text: str) -> list[list[str]]:
    """Decode delimited text into a list of rows of string cells.

    Raises:
        MalformedInput: if no rows remain after BOM and sentinel handling.
    """
    text = raw_text[1:] if raw_text.startswith(BOM) else raw_text

    first_line, remainder = _split_first_line(text)
    delimiter, is_sentinel = detect_delimiter(first_line)
    if is_sentinel:
        text = remainder

    rows = tokenize(text, delimiter)
    if not rows:
        raise MalformedInput("input is empty: no rows found")
    return rows


# ---------------------------------------------------------------------------
# Encode
# ---------------------------------------------------------------------------

def quote_cell(value: Any) -> str:
    """Wrap a cell in double quotes, doubling embedded quotes.  None → ''."""
    s = "" if value is None else str(value)
    return '"' + s.replace('"', '""') + '"'


def encode_table(rows: Iterable[Sequence[Any]], delimiter: str = ";") -> str:
    """Serialize rows with a ``sep=`` line and every cell quoted."""
    if len(delimiter) != 1 or delimiter in '"\r\n':
        raise ValueError(f"invalid delimiter: {delimiter!r}")
    lines = [f"sep={delimiter}"]
    for row in rows:
        lines.append(delimiter.join(quote_cell(cell) for cell in row))
    return "\n".join(lines)

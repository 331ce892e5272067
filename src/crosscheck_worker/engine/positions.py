"""Conversion of engine line/column spans into absolute code point offsets.

The engine reports matches as 1-based ``(start_line, start_col, end_line,
end_col)`` spans with inclusive end columns. Reports sent to the orchestrator
use an offset and a length counted in Unicode code points from the start of
the file, so a multi-byte character counts once.

The end is found by scanning forward from the start offset over
``end_line - start_line`` newlines and adding ``end_col``, so a span on a
single line ends at ``start + end_col``. The two supported column conventions
differ only in the start column of the first line:

``one_based``
    ``start = line_start + start_col - 1`` on every line.

``engine``
    Reproduces the raw engine arithmetic, which skips the ``- 1`` on line 1.
"""

from __future__ import annotations

import logging
from pathlib import Path

from crosscheck_worker.models import LineSpan

logger = logging.getLogger(__name__)

ONE_BASED = "one_based"
ENGINE = "engine"


def read_code_points(path: Path) -> str:
    """Read a source file as text; undecodable bytes become U+FFFD each."""

    return path.read_bytes().decode("utf-8", errors="replace")


def reconstruct(
    text: str,
    span: LineSpan,
    *,
    first_line_columns: str = ONE_BASED,
) -> tuple[int, int]:
    """Return ``(offset, length)`` of ``span`` inside ``text``.

    A span starting past the end of the text yields ``(0, 0)``.
    """

    if first_line_columns not in (ONE_BASED, ENGINE):
        raise ValueError(f"Unknown column convention: {first_line_columns!r}")

    size = len(text)
    line_start = _advance_lines(text, 0, span.start_line - 1)
    if line_start >= size:
        logger.warning("Span %s starts past the end of a %d code point file", span, size)
        return 0, 0

    start = line_start + span.start_col
    if first_line_columns == ONE_BASED or span.start_line != 1:
        start = max(line_start, start - 1)

    end = _advance_lines(text, start, span.end_line - span.start_line) + span.end_col
    return start, max(0, end - start)


def locate(
    path: Path,
    span: LineSpan,
    *,
    first_line_columns: str = ONE_BASED,
) -> tuple[int, int]:
    """Read ``path`` and reconstruct ``span``; raises ``OSError`` on read errors."""

    return reconstruct(read_code_points(path), span, first_line_columns=first_line_columns)


def _advance_lines(text: str, position: int, lines: int) -> int:
    """Skip ``lines`` newlines from ``position``; return the index after the last one."""

    size = len(text)
    index = max(0, position)
    remaining = lines
    while index < size and remaining > 0:
        if text[index] == "\n":
            remaining -= 1
        index += 1
    return index

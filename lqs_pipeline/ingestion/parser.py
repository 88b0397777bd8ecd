"""Utilities for reading uploaded CSV/XLSX bytes into header-keyed rows."""
from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from ..errors import UnsupportedFileTypeError
from .models import ParseResult, Row

LOGGER = logging.getLogger(__name__)

_CSV_SUFFIXES = {".csv"}
_EXCEL_SUFFIXES = {".xlsx"}
_CSV_MIME_TYPES = {"text/csv", "application/csv"}
_EXCEL_MIME_TYPES = {"application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"}

# Report exports put a few metadata lines above the real header.
HEADER_SEARCH_DEPTH = 15

Grid = List[List[str]]


def detect_format(filename: str, content_type: Optional[str] = None) -> str:
    """Return ``"csv"`` or ``"xlsx"``; raise for anything else."""

    suffix = Path(filename).suffix.lower()
    if suffix in _CSV_SUFFIXES:
        return "csv"
    if suffix in _EXCEL_SUFFIXES:
        return "xlsx"
    mime = (content_type or "").split(";")[0].strip().lower()
    if mime in _CSV_MIME_TYPES:
        return "csv"
    if mime in _EXCEL_MIME_TYPES:
        return "xlsx"
    raise UnsupportedFileTypeError(
        f"Unsupported file type '{suffix or mime or filename}'. Upload a .csv or .xlsx file"
    )


def parse_tabular(
    data: bytes,
    filename: str,
    *,
    content_type: Optional[str] = None,
    header_hints: Optional[Sequence[str]] = None,
    sheet_hints: Optional[Sequence[str]] = None,
    sample_size: int = 5,
) -> ParseResult:
    """Parse raw spreadsheet bytes.

    Parameters
    ----------
    data:
        The uploaded file content.
    filename:
        Original file name; its extension selects the reader.
    content_type:
        Optional MIME type, consulted when the extension is not conclusive.
    header_hints:
        Lower-case fragments identifying the header row. When omitted the first
        non-empty row is the header.
    sheet_hints:
        Lower-case fragments of the preferred sheet name in multi-sheet
        workbooks. Without a match the sheet with the most rows is used.
    sample_size:
        Number of rows copied into :attr:`ParseResult.sample_rows`.
    """

    file_format = detect_format(filename, content_type)
    sheet_name: Optional[str] = None
    try:
        if file_format == "csv":
            grid = _read_csv_grid(data)
        else:
            sheet_name, grid = _read_excel_grid(data, sheet_hints)
    except Exception as exc:
        LOGGER.warning("Failed to read %s: %s", filename, exc)
        return ParseResult(success=False, errors=[f"Failed to read '{filename}': {exc}"])

    result = rows_from_grid(grid, header_hints=header_hints, sample_size=sample_size)
    result.sheet_name = sheet_name
    LOGGER.debug(
        "Parsed %s: %s headers, %s rows, %s errors",
        filename,
        len(result.headers),
        result.total_rows,
        len(result.errors),
    )
    return result


def rows_from_grid(
    grid: Grid,
    *,
    header_hints: Optional[Sequence[str]] = None,
    sample_size: int = 5,
) -> ParseResult:
    """Turn a list of cell lists into header-keyed rows."""

    header_index = _find_header_row(grid, header_hints)
    if header_index is None:
        if header_hints:
            expected = ", ".join(f'"{hint}"' for hint in header_hints)
            message = f"Could not find header row. Expected columns like {expected}"
        else:
            message = "File has no header row"
        return ParseResult(success=False, errors=[message])

    headers = _build_headers(grid[header_index])
    rows: List[Row] = []
    for cells in grid[header_index + 1:]:
        if _row_is_empty(cells):
            continue
        rows.append(
            {
                header: _clean_text(cells[index]) if index < len(cells) else ""
                for index, header in enumerate(headers)
            }
        )

    if not rows:
        return ParseResult(success=False, headers=headers, errors=["File contains no data rows"])

    return ParseResult(
        success=True,
        headers=headers,
        sample_rows=[dict(row) for row in rows[:sample_size]],
        all_rows=rows,
        total_rows=len(rows),
    )


def _read_csv_grid(data: bytes) -> Grid:
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError:
        text = data.decode("latin-1")
    if not text.strip():
        return []
    frame = pd.read_csv(
        io.StringIO(text),
        header=None,
        names=list(range(_csv_width(text))),
        index_col=False,
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=False,
    )
    return _frame_to_grid(frame)


def _csv_width(text: str) -> int:
    # upper bound on fields per record; quoted commas only over-count
    width = 0
    pending = 0
    in_quotes = False
    for line in text.splitlines():
        pending += line.count(",")
        if line.count('"') % 2:
            in_quotes = not in_quotes
        if not in_quotes:
            width = max(width, pending + 1)
            pending = 0
    return max(width, pending + 1)


def _read_excel_grid(data: bytes, sheet_hints: Optional[Sequence[str]]) -> Tuple[str, Grid]:
    sheets: Dict[str, pd.DataFrame] = pd.read_excel(
        io.BytesIO(data),
        sheet_name=None,
        header=None,
        dtype=str,
        engine="openpyxl",
    )
    if not sheets:
        raise ValueError("No sheets found in workbook")

    grids = {name: _frame_to_grid(frame) for name, frame in sheets.items()}
    name = _select_sheet(grids, sheet_hints)
    LOGGER.debug("Using sheet %s of %s", name, list(grids))
    return name, grids[name]


def _frame_to_grid(frame: pd.DataFrame) -> Grid:
    return [[_clean_text(value) for value in values] for values in frame.itertuples(index=False, name=None)]


def _select_sheet(grids: Dict[str, Grid], sheet_hints: Optional[Sequence[str]]) -> str:
    names = list(grids)
    if len(names) == 1:
        return names[0]
    for name in names:
        lowered = name.lower()
        if any(hint in lowered for hint in sheet_hints or ()):
            return name
    return max(names, key=lambda name: sum(1 for row in grids[name] if not _row_is_empty(row)))


def _find_header_row(grid: Grid, header_hints: Optional[Sequence[str]]) -> Optional[int]:
    for index, cells in enumerate(grid[:HEADER_SEARCH_DEPTH]):
        if _row_is_empty(cells):
            continue
        if not header_hints:
            return index
        joined = "|".join(cell.lower() for cell in cells)
        if any(hint in joined for hint in header_hints):
            return index
    return None


def _build_headers(cells: Sequence[str]) -> List[str]:
    trimmed = list(cells)
    while trimmed and not trimmed[-1]:
        trimmed.pop()

    headers: List[str] = []
    seen: Dict[str, int] = {}
    for index, cell in enumerate(trimmed):
        header = cell or f"Column {index + 1}"
        if header in seen:
            seen[header] += 1
            header = f"{header} ({seen[header]})"
        else:
            seen[header] = 1
        headers.append(header)
    return headers


def _row_is_empty(cells: Sequence[str]) -> bool:
    return all(not cell for cell in cells)


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str) and pd.isna(value):
        return ""
    return str(value).strip()


__all__ = ["detect_format", "parse_tabular", "rows_from_grid", "HEADER_SEARCH_DEPTH"]

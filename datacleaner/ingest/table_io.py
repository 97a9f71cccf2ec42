"""
Table Import / Export
=====================

Reads CSV/XLSX files into a Table and writes the filtered view back out.

Uses pandas for reading/writing and openpyxl as the Excel engine.

Import rules:
- First row is the header row; header cells are trimmed
- Blank headers get a default name (caller-supplied, else spreadsheet
  letters A, B, ..., Z, AA, ...)
- Duplicate headers are suffixed with a counter (Name, Name_1, Name_2)
- The derived status column is dropped
- Fully blank rows are skipped
- Date cells are rendered as ``YYYY-MM-DD`` (``YYYY-MM-DD HH:MM:SS`` if timed)
"""

import io
import math
import zipfile
from datetime import date, datetime, time
from pathlib import Path
from typing import Any, Literal

import pandas as pd
from openpyxl.utils.exceptions import InvalidFileException

from datacleaner.schemas.domain import STATUS_COLUMN, CellValue, Row, Table
from datacleaner.utils.errors import ValidationError
from datacleaner.utils.file_reader import get_file_extension
from datacleaner.utils.logger import get_logger

logger = get_logger(__name__)

ExportFormat = Literal["xlsx", "csv"]

EXPORT_SHEET_NAME = "CleanedData"
DATE_FORMAT = "%Y-%m-%d"
DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def column_letter(index: int) -> str:
    """
    Spreadsheet-style column name for a 0-based index.

    Example:
        >>> column_letter(0), column_letter(25), column_letter(26)
        ('A', 'Z', 'AA')
    """
    name = ""
    n = index + 1
    while n > 0:
        n, remainder = divmod(n - 1, 26)
        name = chr(ord("A") + remainder) + name
    return name


def normalize_cell(value: Any) -> CellValue:
    """Convert a raw spreadsheet cell into a table scalar."""
    if value is None:
        return ""
    if isinstance(value, pd.Timestamp):
        if pd.isna(value):
            return ""
        value = value.to_pydatetime()
    if isinstance(value, datetime):
        if value.time() == time(0, 0):
            return value.strftime(DATE_FORMAT)
        return value.strftime(DATETIME_FORMAT)
    if isinstance(value, date):
        return value.strftime(DATE_FORMAT)
    if isinstance(value, bool):
        return str(value).upper()
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        return int(value) if value.is_integer() else value
    if isinstance(value, int):
        return value
    # numpy scalars
    if hasattr(value, "item"):
        return normalize_cell(value.item())
    return str(value)


def _is_blank(value: CellValue) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def build_headers(
    raw_headers: list[Any],
    default_headers: list[str] | None = None,
) -> list[str]:
    """
    Trim headers, name blank ones and make every name unique.

    Args:
        raw_headers: First-row cells as read
        default_headers: Positional defaults used for blank header cells

    Returns:
        Unique header names, same length as ``raw_headers``
    """
    names: list[str] = []
    for index, raw in enumerate(raw_headers):
        value = normalize_cell(raw)
        name = str(value).strip() if not _is_blank(value) else ""
        if not name:
            if default_headers and index < len(default_headers):
                name = default_headers[index]
            else:
                name = column_letter(index)
        names.append(name)

    unique: list[str] = []
    seen: set[str] = set()
    for name in names:
        candidate = name
        counter = 0
        while candidate in seen:
            counter += 1
            candidate = f"{name}_{counter}"
        seen.add(candidate)
        unique.append(candidate)
    return unique


def grid_to_table(
    grid: list[list[Any]],
    default_headers: list[str] | None = None,
) -> Table:
    """
    Build a Table from a raw cell grid whose first row is the header row.

    Raises:
        ValidationError: If the grid has no header row
    """
    if not grid or not any(not _is_blank(normalize_cell(c)) for c in grid[0]):
        raise ValidationError("File is empty or has no header row")

    headers = build_headers(list(grid[0]), default_headers)
    keep = [i for i, h in enumerate(headers) if h != STATUS_COLUMN]
    kept_headers = [headers[i] for i in keep]

    rows: list[Row] = []
    skipped = 0
    for raw_row in grid[1:]:
        cells = [normalize_cell(c) for c in raw_row]
        if all(_is_blank(c) for c in cells):
            skipped += 1
            continue
        values: dict[str, CellValue] = {}
        for i in keep:
            values[headers[i]] = cells[i] if i < len(cells) else ""
        rows.append(Row.create(values, kept_headers))

    logger.info(
        "table_io.grid_parsed",
        headers=len(kept_headers),
        rows=len(rows),
        blank_rows_skipped=skipped,
    )
    return Table(headers=kept_headers, rows=rows)


def _read_csv(path: Path) -> pd.DataFrame:
    read_kwargs: dict[str, Any] = {
        "header": None,
        "dtype": str,
        "keep_default_na": False,
        "skip_blank_lines": False,
    }
    try:
        return pd.read_csv(path, encoding="utf-8-sig", **read_kwargs)
    except UnicodeDecodeError as e:
        logger.warning("table_io.utf8_decode_failed_trying_gb18030", error=str(e))
        return pd.read_csv(path, encoding="gb18030", **read_kwargs)


def read_table(file_path: str | Path, default_headers: list[str] | None = None) -> Table:
    """
    Read a CSV or Excel file into a Table (first sheet for workbooks).

    Raises:
        ValidationError: If the file is empty or cannot be parsed
    """
    path = Path(file_path)
    extension = get_file_extension(path)

    try:
        if extension == "csv":
            df = _read_csv(path)
        else:
            df = pd.read_excel(path, sheet_name=0, header=None, dtype=object)
    except pd.errors.EmptyDataError as e:
        raise ValidationError("File is empty or contains no data", {"file_path": str(path)}) from e
    except (
        pd.errors.ParserError,
        InvalidFileException,
        zipfile.BadZipFile,
        ValueError,
        OSError,
    ) as e:
        logger.error("table_io.read_failed", file_path=str(path), error=str(e))
        raise ValidationError(
            f"Failed to parse file: {e}",
            details={"file_path": str(path), "error": str(e)},
        ) from e

    grid = df.astype(object).where(pd.notna(df), None).values.tolist()
    return grid_to_table(grid, default_headers)


def export_columns(table: Table, include_status: bool) -> list[str]:
    """Column order used by views and exports."""
    if include_status:
        return [STATUS_COLUMN, *table.headers]
    return list(table.headers)


def export_rows(
    headers: list[str],
    rows: list[Row],
    fmt: ExportFormat = "xlsx",
) -> bytes:
    """
    Serialize rows (already filtered and ordered) to CSV or XLSX bytes.

    Derived columns are written exactly as displayed.
    """
    records = [[row.display(h) for h in headers] for row in rows]
    df = pd.DataFrame(records, columns=headers)

    if fmt == "csv":
        return df.to_csv(index=False).encode("utf-8-sig")

    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=EXPORT_SHEET_NAME, index=False)
    return buffer.getvalue()

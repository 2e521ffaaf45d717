"""
Tabular Payload Parser.

Turns an uploaded export into rectangular grids of cells, one ``Sheet`` per
worksheet, with row 0 as the header row.  Handles:

- CSV / TSV / delimited ``.txt`` text (bytes or ``str``)
- ``.xlsx`` / ``.xlsm`` workbooks via openpyxl
- in-memory workbooks: an ``openpyxl.Workbook`` or ``{sheet: DataFrame}``

Text splitting is deliberately naive: a cell wrapped in one pair of double
quotes has them stripped, but a delimiter inside quotes still splits the cell.
Downstream column counts depend on this, so it must not be "fixed" silently.
"""

from __future__ import annotations

import io
import zipfile
from datetime import date, datetime, time
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from ledger_insight.errors import ParseError
from ledger_insight.logging_setup import get_logger
from ledger_insight.normalizer import stringify_cell
from ledger_insight.schema import Cell, Sheet

logger = get_logger("row_parser")


class PayloadFormat(str, Enum):
    """Accepted payload formats."""

    CSV = "csv"
    TSV = "tsv"
    TXT = "txt"
    XLSX = "xlsx"
    XLSM = "xlsm"
    XLS = "xls"

    @property
    def is_text(self) -> bool:
        return self in (PayloadFormat.CSV, PayloadFormat.TSV, PayloadFormat.TXT)

    @classmethod
    def coerce(cls, fmt: Union["PayloadFormat", str]) -> "PayloadFormat":
        if isinstance(fmt, PayloadFormat):
            return fmt
        key = str(fmt).strip().lower().lstrip(".")
        try:
            return cls(key)
        except ValueError as exc:
            raise ParseError(f"Unsupported payload format: {fmt!r}") from exc

    @classmethod
    def from_filename(cls, filename: str) -> "PayloadFormat":
        suffix = Path(filename).suffix
        if not suffix:
            raise ParseError(f"Cannot infer format of {filename!r}: no extension")
        return cls.coerce(suffix)


WorkbookLoader = Callable[[io.BytesIO], Any]


def load_openpyxl_workbook(stream: io.BytesIO) -> Any:
    """Default workbook loader: read-only, cached values instead of formulas."""
    return openpyxl.load_workbook(stream, read_only=True, data_only=True)


Payload = Union[bytes, bytearray, str, Path, Any]

_WORKBOOK_ERRORS = (
    zipfile.BadZipFile,
    InvalidFileException,
    KeyError,
    ValueError,
    OSError,
    TypeError,
)


def _clean_text_cell(raw: str) -> Cell:
    """Trim a delimited cell, drop one pair of wrapping quotes, empty → None."""
    value = raw.strip()
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        value = value[1:-1]
    return value if value != "" else None


def _clean_workbook_cell(raw: Any) -> Cell:
    """Reduce a workbook value to text, number or None."""
    if raw is None:
        return None
    if hasattr(raw, "item") and not isinstance(raw, (str, bytes)):
        # numpy scalar from a DataFrame
        raw = raw.item()
    if isinstance(raw, bool):
        return stringify_cell(raw)
    if isinstance(raw, (int, float)):
        if isinstance(raw, float) and raw != raw:
            return None
        return raw
    if isinstance(raw, (datetime, date, time)):
        return stringify_cell(raw) if not isinstance(raw, time) else raw.isoformat()
    text = str(raw).strip()
    return text if text else None


def _rectangularize(rows: List[List[Cell]]) -> List[List[Cell]]:
    width = max((len(r) for r in rows), default=0)
    return [r + [None] * (width - len(r)) for r in rows]


def _trim_trailing_empty_columns(rows: List[List[Cell]]) -> List[List[Cell]]:
    """Drop columns past the last one holding any value (workbook dimensions lie)."""
    last = -1
    for row in rows:
        for idx in range(len(row) - 1, last, -1):
            if row[idx] is not None:
                last = idx
                break
    return [r[: last + 1] for r in rows]


class RowParser:
    """Parse delimited text and workbooks into ``Sheet`` grids.

    Parameters
    ----------
    workbook_loader:
        Callable that opens a binary workbook stream and returns an
        openpyxl-compatible workbook.  Injected so callers can swap or
        pre-initialise the spreadsheet library; defaults to openpyxl.
    """

    def __init__(self, workbook_loader: Optional[WorkbookLoader] = None) -> None:
        self._load_workbook = workbook_loader or load_openpyxl_workbook

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def parse(
        self,
        payload: Payload,
        fmt: Union[PayloadFormat, str, None] = None,
        sheet_name: str = "Sheet1",
    ) -> List[Sheet]:
        """Parse any supported payload into one or more sheets.

        Parameters
        ----------
        payload:
            Raw bytes, decoded text, a file path, an ``openpyxl.Workbook`` or a
            mapping of sheet name → pandas DataFrame.
        fmt:
            Payload format.  Optional for paths (taken from the suffix) and
            for in-memory workbooks.
        sheet_name:
            Name given to the single sheet produced from delimited text.

        Raises
        ------
        ParseError
            If the format is unsupported, the workbook cannot be decoded, or
            no rows remain after parsing.
        """
        if isinstance(payload, Mapping):
            return self.parse_dataframes(payload)
        if hasattr(payload, "worksheets"):
            return self.parse_workbook_object(payload)

        if isinstance(payload, Path):
            if fmt is None:
                fmt = PayloadFormat.from_filename(payload.name)
            try:
                payload = payload.read_bytes()
            except OSError as exc:
                raise ParseError(f"Cannot read {payload}: {exc}") from exc

        if fmt is None:
            raise ParseError("A payload format is required for raw bytes or text")
        fmt = PayloadFormat.coerce(fmt)

        if fmt.is_text:
            text = self._decode(payload)
            delimiter = self._delimiter_for(fmt, text)
            return [self.parse_text(text, delimiter=delimiter, sheet_name=sheet_name)]

        if fmt is PayloadFormat.XLS:
            raise ParseError(
                "Legacy .xls workbooks are not supported; re-save the file as .xlsx"
            )

        if isinstance(payload, str):
            raise ParseError(f"A {fmt.value} payload must be binary, not text")
        return self.parse_workbook(bytes(payload))

    def parse_text(
        self,
        text: str,
        delimiter: str = ",",
        sheet_name: str = "Sheet1",
    ) -> Sheet:
        """Split delimited text into a grid; blank lines are dropped."""
        rows: List[List[Cell]] = []
        for line in text.splitlines():
            if not line.strip():
                continue
            rows.append([_clean_text_cell(cell) for cell in line.split(delimiter)])

        if not rows:
            raise ParseError("Payload contains no rows")

        grid = _rectangularize(rows)
        logger.info(
            "Parsed delimited text into sheet '%s' (%d rows × %d cols, delimiter=%r)",
            sheet_name, len(grid), len(grid[0]), delimiter,
        )
        return Sheet(name=sheet_name, rows=grid)

    def parse_workbook(self, data: bytes) -> List[Sheet]:
        """Decode a binary workbook and parse every worksheet."""
        try:
            wb = self._load_workbook(io.BytesIO(data))
        except _WORKBOOK_ERRORS as exc:
            raise ParseError(f"Failed to open workbook: {exc}") from exc

        try:
            return self.parse_workbook_object(wb)
        finally:
            close = getattr(wb, "close", None)
            if callable(close):
                close()

    def parse_workbook_object(self, wb: Any) -> List[Sheet]:
        """Parse an already-open openpyxl-compatible workbook."""
        sheets: List[Sheet] = []
        try:
            for ws in wb.worksheets:
                rows: List[List[Cell]] = []
                for raw_row in ws.iter_rows(values_only=True):
                    row = [_clean_workbook_cell(v) for v in raw_row]
                    if any(v is not None for v in row):
                        rows.append(row)
                sheet = self._finish_sheet(ws.title, rows)
                if sheet is not None:
                    sheets.append(sheet)
        except _WORKBOOK_ERRORS as exc:
            raise ParseError(f"Failed to read workbook contents: {exc}") from exc

        if not sheets:
            raise ParseError("Workbook contains no non-empty sheets")
        logger.info("Parsed workbook: %d non-empty sheet(s)", len(sheets))
        return sheets

    def parse_dataframes(self, frames: Mapping[str, Any]) -> List[Sheet]:
        """Parse ``{sheet_name: DataFrame}``; column labels become row 0."""
        try:
            import pandas as pd  # noqa: F811
        except ImportError as exc:
            raise ImportError(
                "pandas is required to parse DataFrame workbooks"
            ) from exc

        sheets: List[Sheet] = []
        for name, df in frames.items():
            if not isinstance(df, pd.DataFrame):
                raise ParseError(
                    f"Sheet {name!r}: expected pandas DataFrame, got {type(df).__name__}"
                )
            header = [_clean_workbook_cell(c) for c in df.columns]
            body = df.astype(object).where(df.notna(), None).values.tolist()
            rows = [header] + [[_clean_workbook_cell(v) for v in r] for r in body]
            rows = [r for r in rows if any(v is not None for v in r)]
            sheet = self._finish_sheet(str(name), rows)
            if sheet is not None:
                sheets.append(sheet)

        if not sheets:
            raise ParseError("Workbook contains no non-empty sheets")
        return sheets

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def _finish_sheet(name: str, rows: List[List[Cell]]) -> Optional[Sheet]:
        if not rows:
            logger.warning("Skipping empty sheet '%s'", name)
            return None
        grid = _rectangularize(_trim_trailing_empty_columns(rows))
        logger.info("Parsed sheet '%s' (%d rows × %d cols)", name, len(grid), len(grid[0]))
        return Sheet(name=name, rows=grid)

    @staticmethod
    def _decode(payload: Union[str, bytes, bytearray]) -> str:
        if isinstance(payload, str):
            return payload
        try:
            return bytes(payload).decode("utf-8-sig")
        except UnicodeDecodeError:
            logger.warning("Payload is not valid UTF-8; decoding as Latin-1")
            return bytes(payload).decode("latin-1")

    @staticmethod
    def _delimiter_for(fmt: PayloadFormat, text: str) -> str:
        if fmt is PayloadFormat.TSV:
            return "\t"
        if fmt is PayloadFormat.CSV:
            return ","
        first = next((ln for ln in text.splitlines() if ln.strip()), "")
        return "\t" if "\t" in first else ","


def parse_tabular_payload(
    payload: Payload,
    fmt: Union[PayloadFormat, str, None] = None,
    *,
    workbook_loader: Optional[WorkbookLoader] = None,
    sheet_name: str = "Sheet1",
) -> List[Sheet]:
    """Parse a payload into sheets.  See ``RowParser.parse``."""
    return RowParser(workbook_loader=workbook_loader).parse(
        payload, fmt, sheet_name=sheet_name
    )

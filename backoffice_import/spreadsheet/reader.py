from __future__ import annotations

import codecs
import csv
import logging
from dataclasses import dataclass
from io import BytesIO, StringIO

import pandas as pd

from backoffice_import.services.errors import PipelineError

"""Spreadsheet / CSV decoding into a rectangular table of text cells.

- 1行目をヘッダ行として扱い、2行目以降をデータ行とする
- セルはすべて文字列として保持 (数値・日付の解釈は後段で行う)
- 列数がヘッダと異なる行は空文字で埋める / 切り詰める (ファイル全体は拒否しない)
- 全セル空の行は除外
"""

__all__ = [
    "UnsupportedFormat",
    "EmptyFile",
    "ParsedTable",
    "CSV_CONTENT_TYPES",
    "XLSX_CONTENT_TYPES",
    "parse_upload",
    "read_csv_bytes",
    "read_xlsx_bytes",
]

logger = logging.getLogger(__name__)

CSV_CONTENT_TYPES = frozenset({
    "text/csv",
    "application/csv",
    "text/plain",
    "text/x-csv",
})
XLSX_CONTENT_TYPES = frozenset({
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
})
# ブラウザによっては CSV にもこの型を付けるため、中身で判定する
AMBIGUOUS_CONTENT_TYPES = frozenset({"application/vnd.ms-excel"})

ZIP_MAGIC = b"PK\x03\x04"
OLE2_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"


class UnsupportedFormat(PipelineError):
    """Raised when the content type or file body is not CSV / XLSX."""


class EmptyFile(PipelineError):
    """Raised when the upload has no header row or no data rows."""


@dataclass(frozen=True)
class ParsedTable:
    headers: tuple[str, ...]
    rows: tuple[tuple[str, ...], ...]
    padded_rows: int = 0
    truncated_rows: int = 0

    @property
    def total_rows(self) -> int:
        return len(self.rows)


def parse_upload(data: bytes, content_type: str) -> ParsedTable:
    """Decode an uploaded file into headers and rows.

    Args:
        data: raw file bytes
        content_type: declared MIME type (parameters such as ``; charset=`` ignored)

    Returns:
        ParsedTable with every row exactly ``len(headers)`` cells wide

    Raises:
        UnsupportedFormat: content type outside the accepted set, legacy .xls,
            or a workbook that cannot be opened
        EmptyFile: no bytes, no header, or no data rows
    """
    kind = _detect_kind(data, content_type)
    if not data:
        raise EmptyFile("uploaded file is empty")
    if kind == "xlsx":
        table = read_xlsx_bytes(data)
    else:
        table = read_csv_bytes(data)
    logger.info(
        "parsed upload kind=%s columns=%d rows=%d padded=%d truncated=%d",
        kind, len(table.headers), table.total_rows, table.padded_rows, table.truncated_rows,
    )
    return table


def _detect_kind(data: bytes, content_type: str) -> str:
    mime = (content_type or "").split(";", 1)[0].strip().lower()
    accepted = CSV_CONTENT_TYPES | XLSX_CONTENT_TYPES | AMBIGUOUS_CONTENT_TYPES
    if mime not in accepted:
        raise UnsupportedFormat(f"unsupported content type: {content_type!r}")
    if data.startswith(OLE2_MAGIC):
        raise UnsupportedFormat("legacy .xls workbooks are not supported; save as .xlsx or CSV")
    if data.startswith(ZIP_MAGIC):
        return "xlsx"
    if mime in XLSX_CONTENT_TYPES and data:
        raise UnsupportedFormat("file body is not an .xlsx workbook")
    return "csv"


def _decode(data: bytes) -> str:
    if data.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
        return data.decode("utf-16")
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        # Excel の "CSV" 保存は cp1252 系のことが多い
        logger.warning("upload is not valid UTF-8; decoding as latin-1")
        return data.decode("latin-1")


def _row_widths(text: str) -> list[int]:
    # pandas の skip_blank_lines と同じ基準で空行を除外し、行ごとのセル数を返す
    return [
        len(cells)
        for cells in csv.reader(StringIO(text))
        if len(cells) > 1 or (cells and cells[0].strip())
    ]


def read_csv_bytes(data: bytes) -> ParsedTable:
    text = _decode(data)
    try:
        widths = _row_widths(text)
    except csv.Error as exc:
        raise UnsupportedFormat(f"CSV could not be parsed: {exc}") from exc
    if not widths:
        raise EmptyFile("uploaded file has no header row")

    # 最長行の幅で列名を与え、長い行も欠けずに読み込む (切り詰めは _normalize)
    try:
        df = pd.read_csv(
            StringIO(text),
            header=None,
            names=list(range(max(widths))),
            dtype=str,
            keep_default_na=False,
            engine="python",
            sep=",",
            index_col=False,
        )
    except pd.errors.EmptyDataError:
        raise EmptyFile("uploaded file has no header row") from None
    except (pd.errors.ParserError, csv.Error) as exc:
        raise UnsupportedFormat(f"CSV could not be parsed: {exc}") from exc

    df = df.fillna("")
    return _normalize(df, row_widths=widths)


def read_xlsx_bytes(data: bytes) -> ParsedTable:
    """Read the first worksheet of an .xlsx workbook as text cells."""
    try:
        df = pd.read_excel(
            BytesIO(data),
            sheet_name=0,
            header=None,
            dtype=str,
            keep_default_na=False,
            engine="openpyxl",
        )
    except Exception as exc:  # zipfile.BadZipFile, ValueError, openpyxl の各種例外
        raise UnsupportedFormat(f"workbook could not be read: {exc}") from exc
    df = df.fillna("")
    return _normalize(df)


def _cell_text(value: object) -> str:
    text = value if isinstance(value, str) else str(value)
    return text.strip()


def _normalize(df: pd.DataFrame, row_widths: list[int] | None = None) -> ParsedTable:
    """Trim cells, fit every row to the header width and drop blank rows.

    ``row_widths`` holds the cell count of each source line (header first)
    when the frame was widened to the longest line, so short rows can still
    be counted.
    """
    if df.empty:
        raise EmptyFile("uploaded file has no header row")
    records = [[_cell_text(v) for v in row] for row in df.itertuples(index=False, name=None)]
    header = records[0]
    while header and header[-1] == "":
        header.pop()
    if not header:
        raise EmptyFile("header row is blank")
    width = len(header)

    padded = truncated = 0
    rows: list[tuple[str, ...]] = []
    for position, cells in enumerate(records[1:], start=1):
        source_width = len(cells)
        if row_widths is not None and position < len(row_widths):
            source_width = row_widths[position]
        if len(cells) > width:
            if any(c != "" for c in cells[width:]):
                truncated += 1
            cells = cells[:width]
        elif len(cells) < width:
            cells = cells + [""] * (width - len(cells))
        if all(c == "" for c in cells):
            continue
        if source_width < width:
            padded += 1
        rows.append(tuple(cells))

    if not rows:
        raise EmptyFile("uploaded file has a header but no data rows")
    return ParsedTable(
        headers=tuple(header),
        rows=tuple(rows),
        padded_rows=padded,
        truncated_rows=truncated,
    )

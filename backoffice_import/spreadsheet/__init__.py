"""Upload decoding (CSV / XLSX) and preview sampling."""

from .reader import EmptyFile, ParsedTable, UnsupportedFormat, parse_upload
from .sampler import ColumnSample, sample

__all__ = [
    "EmptyFile",
    "ParsedTable",
    "UnsupportedFormat",
    "parse_upload",
    "ColumnSample",
    "sample",
]

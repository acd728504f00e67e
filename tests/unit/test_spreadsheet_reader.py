from __future__ import annotations

import codecs

import pytest

from backoffice_import.spreadsheet.reader import (
    EmptyFile,
    UnsupportedFormat,
    parse_upload,
    read_csv_bytes,
)

XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def test_csv_headers_and_rows_are_trimmed_text():
    data = b" Name ,Email , Amount\nAlice, alice@example.com ,0012\n"
    table = parse_upload(data, "text/csv")
    assert table.headers == ("Name", "Email", "Amount")
    # 数値も表示文字列のまま保持 (先頭ゼロ含む)
    assert table.rows == (("Alice", "alice@example.com", "0012"),)


def test_content_type_parameters_are_ignored():
    table = parse_upload(b"a,b\n1,2\n", "text/csv; charset=utf-8")
    assert table.rows == (("1", "2"),)


def test_short_row_is_padded_with_empty_strings():
    table = read_csv_bytes(b"a,b,c\n1,2\n4,5,6\n")
    assert table.rows == (("1", "2", ""), ("4", "5", "6"))
    assert table.padded_rows == 1
    assert table.truncated_rows == 0


def test_long_row_is_truncated_and_counted():
    table = read_csv_bytes(b"a,b\n1,2,3\n4,5\n")
    assert table.rows == (("1", "2"), ("4", "5"))
    assert table.truncated_rows == 1
    assert table.padded_rows == 0


def test_mixed_row_widths_are_counted_separately():
    table = read_csv_bytes(b"a,b,c\n1,2,3,4,5\n6\n7,8,9\n,\n")
    assert table.rows == (("1", "2", "3"), ("6", "", ""), ("7", "8", "9"))
    assert (table.padded_rows, table.truncated_rows) == (1, 1)


def test_blank_rows_are_dropped():
    table = read_csv_bytes(b"a,b\n1,2\n,\n\n3,4\n")
    assert table.rows == (("1", "2"), ("3", "4"))


def test_quoted_cells_keep_commas():
    table = read_csv_bytes(b'name,role\n"Smith, John",Sales\n')
    assert table.rows == (("Smith, John", "Sales"),)


def test_utf8_bom_is_stripped_from_first_header():
    data = codecs.BOM_UTF8 + "email,name\nx@example.com,José\n".encode("utf-8")
    table = parse_upload(data, "text/csv")
    assert table.headers == ("email", "name")
    assert table.rows[0][1] == "José"


def test_latin1_fallback():
    data = "email,name\nx@example.com,José\n".encode("latin-1")
    table = parse_upload(data, "text/csv")
    assert table.rows[0][1] == "José"


def test_trailing_blank_header_cells_are_dropped():
    table = read_csv_bytes(b"a,b,,\n1,2,,\n")
    assert table.headers == ("a", "b")
    assert table.rows == (("1", "2"),)


@pytest.mark.parametrize("content_type", ["application/pdf", "image/png", ""])
def test_unsupported_content_type(content_type):
    with pytest.raises(UnsupportedFormat):
        parse_upload(b"a,b\n1,2\n", content_type)


def test_legacy_xls_is_rejected():
    data = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1" + b"\x00" * 64
    with pytest.raises(UnsupportedFormat):
        parse_upload(data, "application/vnd.ms-excel")


def test_xlsx_content_type_with_csv_body_is_rejected():
    with pytest.raises(UnsupportedFormat):
        parse_upload(b"a,b\n1,2\n", XLSX)


def test_ms_excel_content_type_with_csv_body_is_parsed_as_csv():
    table = parse_upload(b"a,b\n1,2\n", "application/vnd.ms-excel")
    assert table.rows == (("1", "2"),)


@pytest.mark.parametrize("data", [b"", b"\n\n", b"a,b\n", b"a,b\n,\n"])
def test_empty_inputs(data):
    with pytest.raises(EmptyFile):
        parse_upload(data, "text/csv")


def test_xlsx_first_sheet_read_as_text(make_xlsx):
    data = make_xlsx(["Name", "Email"], [["Alice", "alice@example.com"], ["Bob", "bob@example.com"]])
    table = parse_upload(data, XLSX)
    assert table.headers == ("Name", "Email")
    assert table.rows == (("Alice", "alice@example.com"), ("Bob", "bob@example.com"))


def test_xlsx_blank_cells_become_empty_strings(make_xlsx):
    data = make_xlsx(["Name", "Email", "Phone"], [["Alice", None, "123"], ["Bob", "bob@example.com", None]])
    table = parse_upload(data, XLSX)
    assert table.rows == (("Alice", "", "123"), ("Bob", "bob@example.com", ""))


def test_corrupt_workbook_is_unsupported():
    with pytest.raises(UnsupportedFormat):
        parse_upload(b"PK\x03\x04not really a zip", XLSX)

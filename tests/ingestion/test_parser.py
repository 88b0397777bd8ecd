import pandas as pd
import pytest

from lqs_pipeline.errors import UnsupportedFileTypeError
from lqs_pipeline.ingestion.parser import HEADER_SEARCH_DEPTH, detect_format, parse_tabular


def test_parse_csv_returns_header_keyed_rows():
    data = b"First Name,Last Name,Zip\nJohn,Smith,12345\nJane,Doe,54321\n"

    result = parse_tabular(data, "leads.csv")

    assert result.success
    assert result.headers == ["First Name", "Last Name", "Zip"]
    assert result.total_rows == 2
    assert result.all_rows[0] == {"First Name": "John", "Last Name": "Smith", "Zip": "12345"}
    assert result.sample_rows == result.all_rows
    assert result.errors == []


def test_sample_rows_are_limited_to_sample_size():
    lines = ["Name,Zip"] + [f"Person {index},1234{index}" for index in range(8)]
    data = ("\n".join(lines) + "\n").encode("utf-8")

    result = parse_tabular(data, "leads.csv", sample_size=3)

    assert result.total_rows == 8
    assert len(result.sample_rows) == 3
    assert len(result.all_rows) == 8


def test_csv_with_byte_order_mark_and_latin1_fallback():
    bom = b"\xef\xbb\xbfFirst,Last\nAda,Lovelace\n"
    latin1 = "First,Last\nJosé,Núñez\n".encode("latin-1")

    assert parse_tabular(bom, "bom.csv").headers == ["First", "Last"]
    result = parse_tabular(latin1, "latin.csv")
    assert result.all_rows[0] == {"First": "José", "Last": "Núñez"}


def test_ragged_rows_are_padded_and_blank_rows_skipped():
    data = b"A,B,C\n1,2\n\n,,\n3,4,5,6\n"

    result = parse_tabular(data, "ragged.csv")

    assert result.success
    assert result.all_rows == [
        {"A": "1", "B": "2", "C": ""},
        {"A": "3", "B": "4", "C": "5"},
    ]


def test_quoted_cells_keep_commas_newlines_and_leading_zeros():
    data = b'Name,Notes,Zip\n"Doe, Jane","line one\nline two, again",02134\nBo,,00501\n'

    result = parse_tabular(data, "quoted.csv")

    assert result.headers == ["Name", "Notes", "Zip"]
    assert result.all_rows == [
        {"Name": "Doe, Jane", "Notes": "line one\nline two, again", "Zip": "02134"},
        {"Name": "Bo", "Notes": "", "Zip": "00501"},
    ]


def test_blank_and_duplicate_headers_get_unique_names():
    data = b"Phone,Phone,,Name,,\n1,2,3,4,,\n"

    result = parse_tabular(data, "dupes.csv")

    assert result.headers == ["Phone", "Phone (2)", "Column 3", "Name"]


def test_file_without_data_rows_fails_with_message():
    result = parse_tabular(b"First,Last\n", "empty.csv")

    assert not result.success
    assert result.errors == ["File contains no data rows"]
    assert result.headers == ["First", "Last"]


def test_empty_file_has_no_header_row():
    result = parse_tabular(b"", "empty.csv")

    assert not result.success
    assert result.errors == ["File has no header row"]


def test_header_hints_skip_report_metadata_rows():
    data = b"Quote Detail Report\nGenerated 2024-03-01\n\nFirst Name,Last Name,Premium\nAda,Lovelace,100\n"

    result = parse_tabular(data, "report.csv", header_hints=("premium",))

    assert result.success
    assert result.headers == ["First Name", "Last Name", "Premium"]
    assert result.all_rows == [{"First Name": "Ada", "Last Name": "Lovelace", "Premium": "100"}]


def test_header_hints_only_search_the_first_rows():
    filler = "\n".join(f"meta {index}" for index in range(HEADER_SEARCH_DEPTH))
    data = f"{filler}\nFirst Name,Premium\nAda,100\n".encode("utf-8")

    result = parse_tabular(data, "deep.csv", header_hints=("premium",))

    assert not result.success
    assert result.errors[0].startswith("Could not find header row")


def test_unsupported_extension_raises_before_parsing():
    with pytest.raises(UnsupportedFileTypeError):
        parse_tabular(b"anything", "leads.txt")


def test_format_detection_uses_content_type_when_extension_is_missing():
    assert detect_format("upload", "text/csv; charset=utf-8") == "csv"
    assert detect_format(
        "upload", "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    ) == "xlsx"
    assert detect_format("LEADS.CSV") == "csv"
    with pytest.raises(UnsupportedFileTypeError):
        detect_format("upload.xls")


def _write_workbook(path, sheets):
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for name, frame in sheets.items():
            frame.to_excel(writer, sheet_name=name, index=False)
    return path.read_bytes()


def test_xlsx_prefers_sheet_matching_hint(tmp_path):
    detail = pd.DataFrame(
        [{"First Name": "Ada", "Last Name": "Lovelace", "Zip": "02134", "Premium": "1,200.50"}]
    )
    summary = pd.DataFrame([{"Metric": "Total", "Value": "1"}, {"Metric": "Count", "Value": "2"}])
    data = _write_workbook(tmp_path / "quotes.xlsx", {"Summary": summary, "Detail": detail})

    result = parse_tabular(data, "quotes.xlsx", sheet_hints=("detail",))

    assert result.success
    assert result.sheet_name == "Detail"
    assert result.all_rows == [
        {"First Name": "Ada", "Last Name": "Lovelace", "Zip": "02134", "Premium": "1,200.50"}
    ]


def test_xlsx_without_hint_uses_the_largest_sheet(tmp_path):
    small = pd.DataFrame([{"Name": "Only"}])
    large = pd.DataFrame([{"Name": f"Row {index}", "Zip": "12345"} for index in range(4)])
    data = _write_workbook(tmp_path / "book.xlsx", {"Cover": small, "Data": large})

    result = parse_tabular(data, "book.xlsx")

    assert result.sheet_name == "Data"
    assert result.total_rows == 4


def test_xlsx_empty_cells_become_empty_strings(tmp_path):
    frame = pd.DataFrame([{"Name": "Ada", "Email": None}, {"Name": "Grace", "Email": "g@example.com"}])
    data = _write_workbook(tmp_path / "book.xlsx", {"Sheet1": frame})

    result = parse_tabular(data, "book.xlsx")

    assert result.all_rows[0] == {"Name": "Ada", "Email": ""}
    assert result.all_rows[1]["Email"] == "g@example.com"


def test_corrupt_workbook_reports_failure():
    result = parse_tabular(b"not a zip file", "broken.xlsx")

    assert not result.success
    assert "broken.xlsx" in result.errors[0]

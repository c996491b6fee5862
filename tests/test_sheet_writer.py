from __future__ import annotations

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from certledger.records import CanonicalRecord
from certledger.reconciler import WriteMode
from certledger.sheet_writer import SheetWriter, parse_updated_rows
from certledger.sheets_client import SheetsClient
from fake_sheets import FakeSheetsService

LEGACY_HEADER = ["Card Name", "Card #", "Condition", "Graded?", "Company", "Grade", "Cert #"]


def _record(cert: str, name: str = "Charizard", grade: str = "10") -> CanonicalRecord:
    return CanonicalRecord(
        cert_number=cert,
        card_name=name,
        card_number="4",
        condition="Graded",
        graded_flag="Yes",
        company="PSA",
        grade=grade,
    )


def _writer(service: FakeSheetsService, title: str = "Input Sheet") -> SheetWriter:
    return SheetWriter(SheetsClient("sheet-1", service), title)


def test_parse_updated_rows() -> None:
    assert parse_updated_rows("'Input Sheet'!A5:G5") == (5, 5)
    assert parse_updated_rows("Sheet1!B3:F4") == (3, 4)
    assert parse_updated_rows("Sheet1!C7") == (7, 7)
    assert parse_updated_rows("garbage") is None


def test_writing_same_cert_twice_updates_one_row() -> None:
    service = FakeSheetsService({"Input Sheet": [LEGACY_HEADER]})
    writer = _writer(service)

    first = writer.write(_record("12345678", grade="9"))
    second = writer.write(_record("12345678", grade="10"))

    assert first.target.row_index == second.target.row_index == 2
    assert first.target.mode is WriteMode.INSERT
    assert second.target.mode is WriteMode.UPDATE
    assert service.tabs["Input Sheet"] == [
        LEGACY_HEADER,
        ["Charizard", "4", "Graded", "Yes", "PSA", "10", "12345678"],
    ]


def test_new_cert_lands_after_existing_rows_and_copies_formatting() -> None:
    service = FakeSheetsService(
        {"Input Sheet": [LEGACY_HEADER, ["Pikachu", "58", "Graded", "Yes", "PSA", "8", "111"]]}
    )

    result = _writer(service).write(_record("222", name="Mew"))

    assert result.updated_range == "'Input Sheet'!A3:G3"
    assert result.formatting.applied is True
    assert result.formatting.template_row == 2
    requests = service.copy_paste_requests()
    assert [request["pasteType"] for request in requests] == ["PASTE_FORMAT", "PASTE_DATA_VALIDATION"]
    source = requests[0]["source"]
    destination = requests[0]["destination"]
    assert (source["startRowIndex"], source["endRowIndex"]) == (1, 2)
    assert (destination["startRowIndex"], destination["endRowIndex"]) == (2, 3)
    assert destination["endColumnIndex"] == 7
    assert source["sheetId"] == service.sheet_ids["Input Sheet"]


def test_first_data_row_has_no_formatting_template() -> None:
    service = FakeSheetsService({"Input Sheet": [LEGACY_HEADER]})

    result = _writer(service).write(_record("1"))

    assert result.formatting.applied is False
    assert result.formatting.skipped == "no template row"
    assert service.batch_requests == []


def test_formatting_failure_does_not_fail_write() -> None:
    service = FakeSheetsService(
        {"Input Sheet": [LEGACY_HEADER, ["Pikachu", "58", "Graded", "Yes", "PSA", "8", "111"]]}
    )
    service.failures["batchUpdate"] = 500

    result = _writer(service).write(_record("222"))

    assert result.formatting.applied is False
    assert result.formatting.error
    assert service.tabs["Input Sheet"][2][6] == "222"


def test_custom_layout_leaves_foreign_columns_untouched() -> None:
    header = ["Inventory", "", "", "", "", "", "", ""]
    columns = ["Notes", "Name", "Card #", "Grader", "Grade", "Cert", "Price", "Location"]
    existing = ["keep me", "Pikachu", "58", "PSA", "8", "111", "$40", "Box 1"]
    service = FakeSheetsService({"Cards": [header, columns, existing, ["", "", "", "", "", "", "$10", "Box 2"]]})

    result = _writer(service, "Cards").write(_record("222", name="Mew"))

    assert result.updated_range == "'Cards'!B4:F4"
    assert result.row_data == ["Mew", "4", "PSA", "10", "222"]
    assert service.tabs["Cards"][2] == existing
    assert service.tabs["Cards"][3] == ["", "Mew", "4", "PSA", "10", "222", "$10", "Box 2"]


def test_unreadable_header_falls_back_to_legacy_layout() -> None:
    service = FakeSheetsService({"Input Sheet": []})

    result = _writer(service).write(_record("42"))

    assert result.updated_range == "'Input Sheet'!A2:G2"
    assert result.row_data == ["Charizard", "4", "Graded", "Yes", "PSA", "10", "42"]


def test_write_result_payload() -> None:
    service = FakeSheetsService({"Input Sheet": [LEGACY_HEADER]})

    payload = _writer(service).write(_record("7", name="")).to_dict()

    assert payload["success"] is True
    assert payload["updatedRows"] == 1
    assert payload["targetRow"] == 2
    assert payload["mode"] == "insert"
    assert payload["sheetName"] == "Input Sheet"
    assert payload["spreadsheetId"] == "sheet-1"
    assert payload["message"] == "Successfully added card to Google Sheets"


def test_formatting_transport_timeout_does_not_fail_write() -> None:
    service = FakeSheetsService(
        {"Input Sheet": [LEGACY_HEADER, ["Pikachu", "58", "Graded", "Yes", "PSA", "8", "111"]]}
    )
    service.transport_errors["batchUpdate"] = TimeoutError("timed out")

    result = _writer(service).write(_record("222"))

    assert result.formatting.applied is False
    assert result.formatting.error == "timed out"
    assert service.tabs["Input Sheet"][2][6] == "222"

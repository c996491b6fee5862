from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from certledger.service import CardSheetsService
from certledger.sheets_client import (
    AccessDeniedError,
    ConfigurationError,
    InvalidFormatError,
    NotFoundError,
    NotInitializedError,
)
from fake_sheets import FakeSheetsService

LEGACY_HEADER = ["Card Name", "Card #", "Condition", "Graded?", "Company", "Grade", "Cert #"]


def _psa_data(cert: str = "12345678", name: str = "Charizard") -> dict:
    return {
        "CertNumber": cert,
        "Subject": name,
        "NumericGrade": "10",
        "GoogleSheetsData": {
            "Subject": name,
            "CardNumber": "4",
            "Status": "Graded",
            "Authenticated": "Yes",
            "Company": "PSA",
            "Grade": "10",
            "CertNumber": cert,
        },
    }


def _ready_service(tabs=None, sheet_name: str = "Input Sheet"):
    backend = FakeSheetsService(tabs if tabs is not None else {"Input Sheet": [LEGACY_HEADER]})
    service = CardSheetsService("sheet-1", sheet_name)
    service.initialize(backend)
    return service, backend


def test_operations_require_initialize() -> None:
    service = CardSheetsService("sheet-1")

    with pytest.raises(NotInitializedError):
        service.add_card_data(_psa_data())
    with pytest.raises(NotInitializedError):
        service.get_spreadsheet_info()


def test_initialize_requires_spreadsheet_id() -> None:
    with pytest.raises(ConfigurationError):
        CardSheetsService("").initialize(FakeSheetsService())


def test_initialize_without_credentials_is_configuration_error() -> None:
    service = CardSheetsService("sheet-1")

    with pytest.raises(ConfigurationError, match="Failed to initialize Google Sheets"):
        service.initialize()
    assert service.initialized is False


def test_initialize_resets_client_when_access_fails() -> None:
    backend = FakeSheetsService({"Input Sheet": []})
    backend.failures["metadata"] = 403
    service = CardSheetsService("sheet-1")

    with pytest.raises(AccessDeniedError):
        service.initialize(backend)
    assert service.initialized is False


def test_status_reports_configuration() -> None:
    service, _backend = _ready_service()

    status = service.get_status()

    assert status == {
        "configured": False,
        "initialized": True,
        "spreadsheetId": "sheet-1",
        "sheetName": "Input Sheet",
        "hasAuth": True,
    }


def test_get_spreadsheet_info() -> None:
    service, _backend = _ready_service({"Input Sheet": [], "Scan History": []})

    assert service.get_spreadsheet_info() == {"title": "Inventory", "sheets": ["Input Sheet", "Scan History"]}


def test_ensure_active_sheet_falls_back_to_first_tab() -> None:
    service, _backend = _ready_service({"Cards": []}, sheet_name="Missing")

    assert service.ensure_active_sheet() == "Cards"
    assert service.sheet_name == "Cards"


def test_ensure_active_sheet_strict_lists_available_tabs() -> None:
    service, _backend = _ready_service({"Cards": [], "Other": []}, sheet_name="Missing")

    with pytest.raises(NotFoundError, match="Available tabs: Cards, Other"):
        service.ensure_active_sheet(strict=True)


def test_ensure_active_sheet_without_tabs() -> None:
    service, _backend = _ready_service({})

    with pytest.raises(NotFoundError):
        service.ensure_active_sheet()


def test_add_card_data_writes_and_updates_on_rescan() -> None:
    service, backend = _ready_service()

    first = service.add_card_data(_psa_data())
    second = service.add_card_data(_psa_data())

    assert first.target.row_index == second.target.row_index == 2
    assert second.to_dict()["mode"] == "update"
    assert len(backend.tabs["Input Sheet"]) == 2


def test_add_card_data_rejects_unprocessed_payload() -> None:
    service, _backend = _ready_service()

    with pytest.raises(InvalidFormatError):
        service.add_card_data({"CertNumber": "1"})


def test_add_card_data_missing_target_tab_fails() -> None:
    service, _backend = _ready_service({"Cards": []}, sheet_name="Input Sheet")

    with pytest.raises(NotFoundError):
        service.add_card_data(_psa_data())


def test_update_config_drops_client_and_cache() -> None:
    service, backend = _ready_service(
        {"Input Sheet": [LEGACY_HEADER, ["A", "", "", "", "", "", "1"]]}
    )
    service.add_card_data(_psa_data())
    assert len(service.sheet_ids) == 1

    service.update_config("sheet-2", "Other")

    assert service.initialized is False
    assert service.spreadsheet_id == "sheet-2"
    assert service.sheet_name == "Other"
    assert len(service.sheet_ids) == 0
    with pytest.raises(NotInitializedError):
        service.add_card_data(_psa_data())


def test_scan_history_round_trip_through_service() -> None:
    service, _backend = _ready_service()

    service.save_scan_history("1", _psa_data("1"), "success", "t1")
    service.save_scan_history("2", None, "error", "t2")
    history = service.load_scan_history(limit=10)

    assert [entry.cert_number for entry in history] == ["2", "1"]
    assert history[1].card_data["CertNumber"] == "1"

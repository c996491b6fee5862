from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import lookup_cli
from certledger.psa_client import PSANotFoundError
from certledger.service import CardSheetsService
from fake_sheets import FakeSheetsService
from settings import AppSettings


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch) -> None:
    monkeypatch.setattr(lookup_cli, "configure_logging", lambda **_kwargs: None)


class _FakePSA:
    def __init__(self, *args, **kwargs) -> None:
        pass

    def get_certificate_data(self, cert_number: str):
        if cert_number == "404":
            raise PSANotFoundError("PSA API error: Certificate not found")
        return {
            "CertNumber": cert_number,
            "Subject": "Mew",
            "NumericGrade": "9",
            "GoogleSheetsData": {
                "Subject": "Mew",
                "CardNumber": "151",
                "Status": "Graded",
                "Authenticated": "Yes",
                "Company": "PSA",
                "Grade": "9",
                "CertNumber": cert_number,
            },
        }


def test_lookup_prints_json_results(monkeypatch, capsys) -> None:
    monkeypatch.setattr(lookup_cli, "PSAClient", _FakePSA)

    exit_code = lookup_cli.main(["lookup", "1", "2"], settings=AppSettings(psa_api_key="key"))

    output = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert [item["certNumber"] for item in output] == ["1", "2"]


def test_lookup_reads_file_and_reports_failures(monkeypatch, capsys, tmp_path: Path) -> None:
    monkeypatch.setattr(lookup_cli, "PSAClient", _FakePSA)
    certs = tmp_path / "certs.txt"
    certs.write_text("1\n\n404\n", encoding="utf-8")

    exit_code = lookup_cli.main(["lookup", "--file", str(certs)], settings=AppSettings(psa_api_key="key"))

    output = json.loads(capsys.readouterr().out)
    assert exit_code == 1
    assert [item["success"] for item in output] == [True, False]


def test_lookup_without_api_key_fails(capsys) -> None:
    exit_code = lookup_cli.main(["lookup", "1"], settings=AppSettings())

    assert exit_code == 1
    assert "PSA API key is required" in capsys.readouterr().err


def test_lookup_without_certs_fails(capsys) -> None:
    assert lookup_cli.main(["lookup"], settings=AppSettings(psa_api_key="key")) == 1


LEGACY_HEADER = ["Card Name", "Card #", "Condition", "Graded?", "Company", "Grade", "Cert #"]


@pytest.fixture
def backend(monkeypatch) -> FakeSheetsService:
    service = FakeSheetsService({"Input Sheet": [LEGACY_HEADER], "Cards": [LEGACY_HEADER]})

    def _sheets_service(settings: AppSettings, sheet_name: str) -> CardSheetsService:
        sheets = CardSheetsService(settings.spreadsheet_id, sheet_name)
        sheets.initialize(service)
        return sheets

    monkeypatch.setattr(lookup_cli, "PSAClient", _FakePSA)
    monkeypatch.setattr(lookup_cli, "_sheets_service", _sheets_service)
    return service


def _settings() -> AppSettings:
    return AppSettings(spreadsheet_id="sheet-1", psa_api_key="key")


def test_add_writes_rows_and_history(backend: FakeSheetsService, capsys) -> None:
    exit_code = lookup_cli.main(["add", "11", "22"], settings=_settings())

    assert exit_code == 0
    rows = backend.tabs["Input Sheet"]
    assert [row[6] for row in rows[1:]] == ["11", "22"]
    history = backend.tabs["Scan History"]
    assert sorted((row[1], row[2]) for row in history[1:]) == [("11", "success"), ("22", "success")]
    assert "11: insert 'Input Sheet'!A2:G2" in capsys.readouterr().out


def test_add_records_failed_lookup_and_exits_non_zero(backend: FakeSheetsService, capsys) -> None:
    exit_code = lookup_cli.main(["add", "404", "11"], settings=_settings())

    assert exit_code == 1
    assert [row[6] for row in backend.tabs["Input Sheet"][1:]] == ["11"]
    history = {row[1]: row for row in backend.tabs["Scan History"][1:]}
    assert history["404"][2:4] == ["error", "Lookup Failed"]
    assert history["11"][2] == "success"
    assert "404: lookup failed" in capsys.readouterr().out


def test_add_without_history_uses_sheet_override(backend: FakeSheetsService) -> None:
    exit_code = lookup_cli.main(["add", "--sheet", "Cards", "--no-history", "33"], settings=_settings())

    assert exit_code == 0
    assert backend.tabs["Cards"][1][6] == "33"
    assert backend.tabs["Input Sheet"] == [LEGACY_HEADER]
    assert "Scan History" not in backend.tabs


def test_add_history_failure_does_not_abort(backend: FakeSheetsService, capsys) -> None:
    backend.add_tab("Scan History", [])
    backend.failures["append"] = 500

    exit_code = lookup_cli.main(["add", "11"], settings=_settings())

    assert exit_code == 0
    assert backend.tabs["Input Sheet"][1][6] == "11"
    assert "history not saved" in capsys.readouterr().err


def test_add_without_sheets_configuration_fails(monkeypatch, capsys) -> None:
    monkeypatch.setattr(lookup_cli, "PSAClient", _FakePSA)

    exit_code = lookup_cli.main(["add", "11"], settings=AppSettings(psa_api_key="key"))

    assert exit_code == 1
    assert "Spreadsheet ID is required" in capsys.readouterr().err

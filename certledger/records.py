"""Normalisation of provider certificate data into ledger records."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping

from certledger.schema import CanonicalField
from certledger.sheets_client import InvalidFormatError

DEFAULT_CONDITION = "Graded"
DEFAULT_GRADED_FLAG = "Y"
DEFAULT_COMPANY = "PSA"


@dataclass(frozen=True)
class CanonicalRecord:
    """One card as written to the inventory sheet.

    ``cert_number`` is the natural key.  An empty key is allowed but never
    matches an existing row.
    """

    cert_number: str
    card_name: str = ""
    card_number: str = ""
    condition: str = ""
    graded_flag: str = ""
    company: str = ""
    grade: str = ""

    def value_for(self, canonical: CanonicalField) -> str:
        return _FIELD_GETTERS[canonical](self)

    @property
    def key(self) -> str:
        return (self.cert_number or "").strip()

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


_FIELD_GETTERS = {
    CanonicalField.CARD_NAME: lambda record: record.card_name,
    CanonicalField.CARD_NUMBER: lambda record: record.card_number,
    CanonicalField.CONDITION: lambda record: record.condition,
    CanonicalField.GRADED_FLAG: lambda record: record.graded_flag,
    CanonicalField.COMPANY: lambda record: record.company,
    CanonicalField.GRADE: lambda record: record.grade,
    CanonicalField.CERT_NUMBER: lambda record: record.cert_number,
}


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def normalize_sheets_data(sheets_data: Mapping[str, Any]) -> CanonicalRecord:
    """Map a ``GoogleSheetsData`` section onto a :class:`CanonicalRecord`."""

    return CanonicalRecord(
        cert_number=_text(sheets_data.get("CertNumber")),
        card_name=_text(sheets_data.get("Subject")),
        card_number=_text(sheets_data.get("CardNumber")),
        condition=_text(sheets_data.get("Status")) or DEFAULT_CONDITION,
        graded_flag=_text(sheets_data.get("Authenticated")) or DEFAULT_GRADED_FLAG,
        company=_text(sheets_data.get("Company")) or DEFAULT_COMPANY,
        grade=_text(sheets_data.get("Grade")),
    )


def normalize_psa_data(psa_data: Mapping[str, Any]) -> CanonicalRecord:
    """Build a record from a processed PSA certificate payload."""

    if not isinstance(psa_data, Mapping):
        raise InvalidFormatError("Invalid PSA data format")
    sheets_data = psa_data.get("GoogleSheetsData")
    if not isinstance(sheets_data, Mapping):
        raise InvalidFormatError("Invalid PSA data format")
    return normalize_sheets_data(sheets_data)


__all__ = ["CanonicalRecord", "normalize_psa_data", "normalize_sheets_data"]

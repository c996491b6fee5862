"""Header-row inference for the inventory worksheet.

Inventory sheets are maintained by hand, so the header row is not assumed to
be row 1 and column order is not assumed to be fixed.  ``infer_schema`` scores
the first rows of the tab against a static synonym table and picks the row
that names the most known columns.  When nothing matches the caller falls back
to :func:`legacy_schema`, the historical A..G layout.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Optional, Sequence, Tuple

from certledger.sheets_client import SheetsClient, a1_range

logger = logging.getLogger(__name__)

HEADER_WINDOW_ROWS = 10
HEADER_WINDOW_RANGE = f"A1:ZZ{HEADER_WINDOW_ROWS}"


class CanonicalField(Enum):
    CARD_NAME = "cardName"
    CARD_NUMBER = "cardNumber"
    CONDITION = "condition"
    GRADED_FLAG = "gradedFlag"
    COMPANY = "company"
    GRADE = "grade"
    CERT_NUMBER = "certNumber"


# Declaration order doubles as the legacy column order (A..G).
LEGACY_FIELD_ORDER: Tuple[CanonicalField, ...] = tuple(CanonicalField)

HEADER_SYNONYMS: Mapping[CanonicalField, Tuple[str, ...]] = {
    CanonicalField.CARD_NAME: ("card name", "name", "subject", "title"),
    CanonicalField.CARD_NUMBER: ("card #", "card number", "number", "no", "#"),
    CanonicalField.CONDITION: ("condition", "status", "graded status"),
    CanonicalField.GRADED_FLAG: ("graded?", "authenticated", "graded"),
    CanonicalField.COMPANY: ("company", "grading company", "grader"),
    CanonicalField.GRADE: ("grade", "numeric grade", "grade (num)"),
    CanonicalField.CERT_NUMBER: ("cert", "cert #", "cert number", "certification number"),
}

LEGACY_HEADERS: Mapping[CanonicalField, str] = {
    CanonicalField.CARD_NAME: "Card Name",
    CanonicalField.CARD_NUMBER: "Card #",
    CanonicalField.CONDITION: "Condition",
    CanonicalField.GRADED_FLAG: "Graded?",
    CanonicalField.COMPANY: "Company",
    CanonicalField.GRADE: "Grade",
    CanonicalField.CERT_NUMBER: "Cert #",
}


@dataclass(frozen=True)
class SchemaColumn:
    field: Optional[CanonicalField]
    header: str


@dataclass(frozen=True)
class SheetSchema:
    """Inferred layout of the inventory tab."""

    header_row: int
    columns: Tuple[SchemaColumn, ...]
    field_index: Mapping[CanonicalField, int] = field(default_factory=dict)
    legacy: bool = False

    @property
    def first_data_row(self) -> int:
        return self.header_row + 1

    @property
    def width(self) -> int:
        return len(self.columns)

    def index_of(self, canonical: CanonicalField) -> Optional[int]:
        return self.field_index.get(canonical)


def normalise_header(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip().lower()


def match_field(value: object) -> Optional[CanonicalField]:
    """Return the first field whose synonyms contain ``value``."""

    text = normalise_header(value)
    if not text:
        return None
    for canonical, names in HEADER_SYNONYMS.items():
        if text in names:
            return canonical
    return None


def score_row(row: Sequence[object]) -> int:
    return sum(1 for cell in row if match_field(cell) is not None)


def _columns_for(row: Sequence[object]) -> Tuple[Tuple[SchemaColumn, ...], Dict[CanonicalField, int]]:
    columns = []
    index: Dict[CanonicalField, int] = {}
    for position, cell in enumerate(row):
        header = "" if cell is None else str(cell)
        matched = match_field(header)
        if matched is not None:
            # First column wins when a family appears twice.
            index.setdefault(matched, position)
        columns.append(SchemaColumn(field=matched, header=header))
    return tuple(columns), index


def infer_schema(rows: Sequence[Sequence[object]]) -> Optional[SheetSchema]:
    """Pick the best header row from ``rows`` or return ``None``."""

    window = list(rows)[:HEADER_WINDOW_ROWS]
    best_index = -1
    best_score = 0
    for position, row in enumerate(window):
        score = score_row(row or [])
        if score > best_score:
            best_index, best_score = position, score

    if best_index < 0:
        return None

    columns, index = _columns_for(window[best_index])
    return SheetSchema(header_row=best_index + 1, columns=columns, field_index=index)


def legacy_schema() -> SheetSchema:
    columns = tuple(SchemaColumn(field=item, header=LEGACY_HEADERS[item]) for item in LEGACY_FIELD_ORDER)
    index = {item: position for position, item in enumerate(LEGACY_FIELD_ORDER)}
    return SheetSchema(header_row=1, columns=columns, field_index=index, legacy=True)


def read_schema(client: SheetsClient, worksheet_title: str) -> Optional[SheetSchema]:
    """Read the header window of ``worksheet_title`` and infer its schema.

    Read failures never block a write: they are logged and reported as an
    unknown schema so the caller uses the legacy layout.
    """

    try:
        rows = client.get_values(a1_range(worksheet_title, HEADER_WINDOW_RANGE))
    except Exception:  # noqa: BLE001 - header detection is best-effort
        logger.warning("Header detection failed for %s; using legacy layout", worksheet_title, exc_info=True)
        return None
    schema = infer_schema(rows)
    if schema is None:
        logger.info("No recognisable header row in %s; using legacy layout", worksheet_title)
    else:
        logger.debug(
            "Header row %d detected in %s: %s",
            schema.header_row,
            worksheet_title,
            {key.value: value for key, value in schema.field_index.items()},
        )
    return schema


__all__ = [
    "CanonicalField",
    "HEADER_SYNONYMS",
    "HEADER_WINDOW_ROWS",
    "LEGACY_FIELD_ORDER",
    "SchemaColumn",
    "SheetSchema",
    "infer_schema",
    "legacy_schema",
    "match_field",
    "normalise_header",
    "read_schema",
    "score_row",
]

"""Row selection for inventory writes.

Given the sheet layout and a narrow read of the identity/cert columns this
module decides which single row an incoming card lands on:

* the first row whose cert cell equals the card's cert number is updated;
* rows holding another cert, or a card name without a cert, are left alone;
* otherwise the first row with both cells empty receives the card;
* otherwise the card is appended after the last scanned row.

Only the contiguous block spanning the owned columns is ever written.  When
the owned columns are not adjacent, any foreign column inside that block is
written as an empty cell.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from certledger.records import CanonicalRecord
from certledger.schema import LEGACY_FIELD_ORDER, CanonicalField, SheetSchema, legacy_schema
from certledger.sheets_client import a1_range, column_letter

OWNED_FIELDS: Tuple[CanonicalField, ...] = (
    CanonicalField.CARD_NAME,
    CanonicalField.CARD_NUMBER,
    CanonicalField.COMPANY,
    CanonicalField.GRADE,
    CanonicalField.CERT_NUMBER,
)
IDENTITY_FIELD = CanonicalField.CARD_NAME
KEY_FIELD = CanonicalField.CERT_NUMBER

_LEGACY_INDEX = {item: position for position, item in enumerate(LEGACY_FIELD_ORDER)}


class WriteMode(Enum):
    UPDATE = "update"
    INSERT = "insert"


@dataclass(frozen=True)
class WriteTarget:
    row_index: int
    mode: WriteMode


def column_for(schema: Optional[SheetSchema], canonical: CanonicalField) -> int:
    """Column index of ``canonical``; unmapped fields keep their legacy slot."""

    if schema is not None:
        index = schema.index_of(canonical)
        if index is not None:
            return index
    return _LEGACY_INDEX[canonical]


def owned_span(schema: Optional[SheetSchema]) -> Tuple[int, int]:
    indices = [column_for(schema, item) for item in OWNED_FIELDS]
    return min(indices), max(indices)


def scan_span(schema: Optional[SheetSchema]) -> Tuple[int, int]:
    identity = column_for(schema, IDENTITY_FIELD)
    key = column_for(schema, KEY_FIELD)
    return min(identity, key), max(identity, key)


def scan_range(worksheet_title: str, schema: SheetSchema) -> str:
    """Open-ended A1 range over the identity/cert columns from the first data row."""

    start, end = scan_span(schema)
    first = schema.first_data_row
    return a1_range(worksheet_title, f"{column_letter(start)}{first}:{column_letter(end)}")


def write_range(worksheet_title: str, schema: SheetSchema, row_index: int) -> str:
    start, end = owned_span(schema)
    return a1_range(
        worksheet_title,
        f"{column_letter(start)}{row_index}:{column_letter(end)}{row_index}",
    )


def _cell(row: Sequence[object], index: int) -> str:
    if index < len(row) and row[index] is not None:
        return str(row[index]).strip()
    return ""


def resolve_target(
    rows: Sequence[Sequence[object]],
    record: CanonicalRecord,
    schema: SheetSchema,
) -> WriteTarget:
    """Choose the row for ``record`` from the scanned identity/cert slice.

    ``rows`` is the result of reading :func:`scan_range`, so its first entry is
    the first data row and its columns start at the scan span.
    """

    first_data_row = schema.first_data_row
    scan_start, _ = scan_span(schema)
    identity_offset = column_for(schema, IDENTITY_FIELD) - scan_start
    key_offset = column_for(schema, KEY_FIELD) - scan_start
    key = record.key

    first_empty: Optional[int] = None
    for position, row in enumerate(rows):
        row = row or []
        cert_cell = _cell(row, key_offset)
        if cert_cell:
            if key and cert_cell == key:
                return WriteTarget(first_data_row + position, WriteMode.UPDATE)
            continue
        if _cell(row, identity_offset):
            continue
        if first_empty is None:
            first_empty = first_data_row + position

    if first_empty is not None:
        return WriteTarget(first_empty, WriteMode.INSERT)
    return WriteTarget(first_data_row + len(rows), WriteMode.INSERT)


def build_write_row(record: CanonicalRecord, schema: Optional[SheetSchema]) -> List[str]:
    """Values for the owned span; foreign columns inside it become ``""``."""

    start, end = owned_span(schema)
    values = [""] * (end - start + 1)
    for canonical in CanonicalField:
        if canonical in OWNED_FIELDS:
            continue
        index = schema.index_of(canonical) if schema is not None else _LEGACY_INDEX[canonical]
        if index is not None and start <= index <= end:
            values[index - start] = record.value_for(canonical)
    # Owned fields go last so they win a slot shared through the legacy fallback.
    for canonical in OWNED_FIELDS:
        values[column_for(schema, canonical) - start] = record.value_for(canonical)
    return values


def legacy_row(record: CanonicalRecord) -> List[str]:
    """The full A..G row used when no header row can be inferred."""

    return build_write_row(record, legacy_schema())


__all__ = [
    "IDENTITY_FIELD",
    "KEY_FIELD",
    "OWNED_FIELDS",
    "WriteMode",
    "WriteTarget",
    "build_write_row",
    "column_for",
    "legacy_row",
    "owned_span",
    "resolve_target",
    "scan_range",
    "scan_span",
    "write_range",
]

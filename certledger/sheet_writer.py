"""Bounded writes of card records into the inventory worksheet."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from certledger.records import CanonicalRecord
from certledger.reconciler import (
    WriteTarget,
    build_write_row,
    resolve_target,
    scan_range,
    write_range,
)
from certledger.schema import SheetSchema, legacy_schema, read_schema
from certledger.sheets_client import SheetIdCache, SheetsClient

logger = logging.getLogger(__name__)

_UPDATED_ROWS_RE = re.compile(r"![A-Z]+(\d+)(?::[A-Z]+(\d+))?$")
PASTE_TYPES = ("PASTE_FORMAT", "PASTE_DATA_VALIDATION")


@dataclass
class FormattingOutcome:
    """Diagnostic for the best-effort formatting copy."""

    applied: bool = False
    template_row: Optional[int] = None
    skipped: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {"applied": self.applied}
        if self.template_row is not None:
            payload["template_row"] = self.template_row
        if self.skipped:
            payload["skipped"] = self.skipped
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass
class WriteResult:
    updated_range: str
    target: WriteTarget
    row_data: List[str]
    sheet_name: str
    spreadsheet_id: str
    message: str
    formatting: FormattingOutcome = field(default_factory=FormattingOutcome)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "updatedRange": self.updated_range,
            "updatedRows": 1,
            "targetRow": self.target.row_index,
            "mode": self.target.mode.value,
            "rowData": list(self.row_data),
            "sheetName": self.sheet_name,
            "spreadsheetId": self.spreadsheet_id,
            "message": self.message,
            "formatting": self.formatting.to_dict(),
        }


def parse_updated_rows(updated_range: str) -> Optional[tuple]:
    """Return ``(start_row, end_row)`` from an A1 range such as ``'Tab'!A5:E5``."""

    match = _UPDATED_ROWS_RE.search(updated_range or "")
    if not match:
        return None
    start = int(match.group(1))
    end = int(match.group(2) or start)
    return start, end


class SheetWriter:
    """Write one record per call into ``worksheet_title``."""

    def __init__(
        self,
        client: SheetsClient,
        worksheet_title: str,
        *,
        sheet_ids: Optional[SheetIdCache] = None,
    ) -> None:
        self._client = client
        self._title = worksheet_title
        self._sheet_ids = sheet_ids if sheet_ids is not None else SheetIdCache()

    def write(self, record: CanonicalRecord) -> WriteResult:
        schema = read_schema(self._client, self._title) or legacy_schema()
        rows = self._client.get_values(scan_range(self._title, schema))
        target = resolve_target(rows, record, schema)
        row_values = build_write_row(record, schema)
        range_spec = write_range(self._title, schema, target.row_index)

        response = self._client.update_values(range_spec, [row_values])
        updated_range = str(response.get("updatedRange") or range_spec)
        logger.info(
            "Wrote cert %s to %s (%s)",
            record.key or "<blank>",
            updated_range,
            target.mode.value,
        )

        formatting = self.copy_row_formatting(schema, updated_range)
        name = record.card_name or "card"
        return WriteResult(
            updated_range=updated_range,
            target=target,
            row_data=row_values,
            sheet_name=self._title,
            spreadsheet_id=self._client.spreadsheet_id,
            message=f"Successfully added {name} to Google Sheets",
            formatting=formatting,
        )

    def copy_row_formatting(self, schema: SheetSchema, updated_range: str) -> FormattingOutcome:
        """Copy format and data validation from the row above; never raises."""

        rows = parse_updated_rows(updated_range)
        if rows is None:
            return FormattingOutcome(skipped="unparseable range")
        start_row, end_row = rows
        template_row = max(schema.first_data_row, start_row - 1)
        if template_row >= start_row:
            return FormattingOutcome(skipped="no template row")

        try:
            sheet_id = self._client.sheet_id(self._title, self._sheet_ids)
            requests = [
                {
                    "copyPaste": {
                        "source": {
                            "sheetId": sheet_id,
                            "startRowIndex": template_row - 1,
                            "endRowIndex": template_row,
                            "startColumnIndex": 0,
                            "endColumnIndex": schema.width,
                        },
                        "destination": {
                            "sheetId": sheet_id,
                            "startRowIndex": start_row - 1,
                            "endRowIndex": end_row,
                            "startColumnIndex": 0,
                            "endColumnIndex": schema.width,
                        },
                        "pasteType": paste_type,
                        "pasteOrientation": "NORMAL",
                    }
                }
                for paste_type in PASTE_TYPES
            ]
            self._client.batch_update(requests)
        except Exception as exc:  # noqa: BLE001 - formatting is best-effort
            logger.warning("Formatting/validation copy skipped: %s", exc, exc_info=True)
            return FormattingOutcome(template_row=template_row, error=str(exc))
        return FormattingOutcome(applied=True, template_row=template_row)


__all__ = ["FormattingOutcome", "SheetWriter", "WriteResult", "parse_updated_rows"]

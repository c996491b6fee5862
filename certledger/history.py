"""Append-only scan history stored in its own worksheet tab."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from certledger.sheets_client import InvalidFormatError, SheetsClient, a1_range

logger = logging.getLogger(__name__)

HISTORY_SHEET_TITLE = "Scan History"
HISTORY_HEADERS: Tuple[str, ...] = (
    "Timestamp",
    "Cert Number",
    "Status",
    "Card Name",
    "Card Number",
    "Grade",
    "Full Data",
)
HISTORY_COLUMNS = "A:G"
STATUS_VALUES = ("success", "error")
DEFAULT_LIMIT = 50


@dataclass(frozen=True)
class HistoryEntry:
    timestamp: str
    cert_number: str
    status: str
    card_data: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "certNumber": self.cert_number,
            "status": self.status,
            "cardData": self.card_data,
        }


def history_row(
    cert_number: str,
    card_data: Optional[Mapping[str, Any]],
    status: str,
    timestamp: str,
) -> List[str]:
    if card_data:
        name = card_data.get("Subject") or card_data.get("CardName") or "Unknown"
        number = card_data.get("CardNumber") or "N/A"
        grade = card_data.get("NumericGrade") or card_data.get("numericGrade") or "N/A"
        full = json.dumps(dict(card_data), ensure_ascii=False)
    else:
        name, number, grade, full = "Lookup Failed", "N/A", "N/A", ""
    return [timestamp, cert_number, status, str(name), str(number), str(grade), full]


def entry_from_row(row: List[str]) -> HistoryEntry:
    cells = list(row) + [""] * (len(HISTORY_HEADERS) - len(row))
    timestamp, cert_number, status, card_name, card_number, grade, full = cells[: len(HISTORY_HEADERS)]
    card_data: Optional[Dict[str, Any]] = None
    if full and status == "success":
        try:
            parsed = json.loads(full)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            card_data = parsed
        else:
            card_data = {"Subject": card_name, "CardNumber": card_number, "NumericGrade": grade}
    return HistoryEntry(timestamp=timestamp, cert_number=cert_number, status=status, card_data=card_data)


class HistoryLedger:
    """Record and load lookup attempts in the ``Scan History`` tab."""

    def __init__(self, client: SheetsClient, sheet_title: str = HISTORY_SHEET_TITLE) -> None:
        self._client = client
        self._title = sheet_title

    @property
    def sheet_title(self) -> str:
        return self._title

    def ensure_sheet(self) -> Optional[str]:
        """Create the tab with headers when missing.

        Returns an error description instead of raising so a failure here never
        blocks the append that follows.
        """

        try:
            if self._title in self._client.sheet_titles():
                return None
            self._client.batch_update([{"addSheet": {"properties": {"title": self._title}}}])
            self._client.update_values(
                a1_range(self._title, "A1:G1"),
                [list(HISTORY_HEADERS)],
            )
            logger.info("Created history sheet %s", self._title)
        except Exception as exc:  # noqa: BLE001 - tab setup is best-effort
            logger.warning("Failed to ensure history sheet %s: %s", self._title, exc, exc_info=True)
            return str(exc)
        return None

    def record(
        self,
        cert_number: str,
        card_data: Optional[Mapping[str, Any]],
        status: str,
        timestamp: str,
    ) -> Dict[str, Any]:
        """Append one history row; append errors propagate."""

        if status not in STATUS_VALUES:
            raise InvalidFormatError(f"Unsupported history status: {status!r}")
        setup_error = self.ensure_sheet()
        values = [history_row(cert_number, card_data, status, timestamp)]
        response = self._client.append_values(a1_range(self._title, HISTORY_COLUMNS), values)
        updates = response.get("updates", {}) if isinstance(response, dict) else {}
        result: Dict[str, Any] = {"success": True, "range": updates.get("updatedRange")}
        if setup_error:
            result["warning"] = setup_error
        return result

    def load(self, limit: int = DEFAULT_LIMIT) -> List[HistoryEntry]:
        """Return up to ``limit`` entries, newest first; errors yield ``[]``."""

        if limit <= 0:
            return []
        try:
            if self._title not in self._client.sheet_titles():
                return []
            rows = self._client.get_values(a1_range(self._title, HISTORY_COLUMNS))
        except Exception:  # noqa: BLE001 - load is best-effort
            logger.error("Failed to load scan history", exc_info=True)
            return []

        data_rows = rows[1:]
        recent = data_rows[-limit:]
        return [entry_from_row(row) for row in reversed(recent)]


__all__ = [
    "HISTORY_HEADERS",
    "HISTORY_SHEET_TITLE",
    "HistoryEntry",
    "HistoryLedger",
    "STATUS_VALUES",
    "entry_from_row",
    "history_row",
]

"""Google Sheets client helpers with A1 range handling and error mapping.

This module centralises all direct interactions with the Google Sheets API
used by the card ledger.  It provides a small surface area that the
reconciliation engine can rely on without knowing about googleapiclient
internals:

* Normalising worksheet titles and A1 ranges.  Titles are always quoted and
  column references are calculated with a dedicated helper.
* Exposing the handful of calls the ledger needs: bounded read, bounded write,
  append, structural ``batchUpdate`` and metadata listing.
* Providing a clean failure surface.  Every ``HttpError`` is translated into a
  subclass of :class:`SheetsClientError` carrying one of the kinds
  ``NOT_FOUND``, ``ACCESS_DENIED``, ``INVALID_FORMAT`` or ``UNKNOWN``.  Nothing
  in this layer retries.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, MutableSequence, Optional, Sequence

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

logger = logging.getLogger(__name__)

SCOPES: Sequence[str] = ("https://www.googleapis.com/auth/spreadsheets",)
VALUE_INPUT_OPTION = "USER_ENTERED"


class SheetsClientError(RuntimeError):
    """Base error raised for Sheets API failures."""

    kind = "UNKNOWN"


class ConfigurationError(SheetsClientError):
    """Raised when the spreadsheet id or credentials are not configured."""

    kind = "CONFIGURATION"


class NotInitializedError(SheetsClientError):
    """Raised when an operation is attempted before ``initialize``."""

    kind = "NOT_INITIALIZED"


class NotFoundError(SheetsClientError):
    """Raised when the spreadsheet or worksheet tab does not exist."""

    kind = "NOT_FOUND"


class AccessDeniedError(SheetsClientError):
    """Raised when the service account lacks permission."""

    kind = "ACCESS_DENIED"


class InvalidFormatError(SheetsClientError):
    """Raised for malformed ranges or payloads."""

    kind = "INVALID_FORMAT"


class UnknownSheetsError(SheetsClientError):
    """Raised for any other API failure."""

    kind = "UNKNOWN"


def http_status(exc: HttpError) -> int:
    status = getattr(exc, "status_code", None)
    if status is not None:
        try:
            return int(status)
        except (TypeError, ValueError):
            return 0
    resp = getattr(exc, "resp", None)
    if resp is not None:
        try:
            return int(getattr(resp, "status", 0))
        except (TypeError, ValueError):
            return 0
    return 0


def translate_http_error(exc: HttpError, context: str = "") -> SheetsClientError:
    """Return the error kind matching the HTTP status of ``exc``."""

    status = http_status(exc)
    prefix = f"{context}: " if context else ""
    if status == 404:
        return NotFoundError(f"{prefix}spreadsheet or sheet not found ({exc})")
    if status in (401, 403):
        return AccessDeniedError(f"{prefix}access denied ({exc})")
    if status == 400:
        return InvalidFormatError(f"{prefix}invalid sheet range or data format ({exc})")
    return UnknownSheetsError(f"{prefix}{exc}")


def column_letter(index: int) -> str:
    """Convert a zero-based column index into a column letter (0 -> A, 27 -> AB)."""

    if index < 0:
        raise ValueError("Column index must be >= 0")
    letters: MutableSequence[str] = []
    number = index + 1
    while number:
        number, remainder = divmod(number - 1, 26)
        letters.append(chr(65 + remainder))
    return "".join(reversed(letters))


def quote_title(title: str) -> str:
    """Return a worksheet title quoted according to A1 notation rules."""

    safe = (title or "").strip()
    if len(safe) >= 2 and safe[0] == safe[-1] and safe[0] in {"'", '"'}:
        safe = safe[1:-1].replace("''", "'")
    if not safe:
        raise InvalidFormatError("Worksheet title must not be empty.")
    safe = safe.replace("'", "''")
    return f"'{safe}'"


def a1_range(title: str, range_spec: str) -> str:
    return f"{quote_title(title)}!{range_spec}"


def build_sheets_service(credentials_info: Mapping[str, object]):
    """Construct a Sheets v4 resource from service account data."""

    try:
        credentials = service_account.Credentials.from_service_account_info(
            dict(credentials_info), scopes=list(SCOPES)
        )
    except ValueError as exc:
        raise ConfigurationError(f"Invalid service account credentials: {exc}") from exc
    return build("sheets", "v4", credentials=credentials, cache_discovery=False)


class SheetIdCache:
    """Per-service cache of worksheet title -> numeric sheet id."""

    def __init__(self) -> None:
        self._ids: Dict[str, int] = {}

    def get(self, title: str) -> Optional[int]:
        return self._ids.get(title)

    def put(self, title: str, sheet_id: int) -> None:
        self._ids[title] = sheet_id

    def invalidate(self) -> None:
        self._ids.clear()

    def __len__(self) -> int:
        return len(self._ids)


class SheetsClient:
    """Concrete helper that speaks to one spreadsheet through the REST API."""

    def __init__(self, spreadsheet_id: str, service) -> None:
        self._spreadsheet_id = spreadsheet_id
        self._service = service

    @property
    def spreadsheet_id(self) -> str:
        return self._spreadsheet_id

    # ------------------------------------------------------------------
    # Values
    # ------------------------------------------------------------------
    def get_values(self, range_spec: str) -> List[List[str]]:
        """Return the 2-D array of cell text for ``range_spec``."""

        try:
            response = (
                self._service.spreadsheets()
                .values()
                .get(spreadsheetId=self._spreadsheet_id, range=range_spec, majorDimension="ROWS")
                .execute()
            )
        except HttpError as exc:
            raise translate_http_error(exc, f"values.get {range_spec}") from exc
        values = response.get("values", []) if isinstance(response, dict) else []
        return [["" if cell is None else str(cell) for cell in row] for row in values]

    def update_values(
        self,
        range_spec: str,
        values: Sequence[Sequence[Any]],
        *,
        value_input_option: str = VALUE_INPUT_OPTION,
    ) -> Dict[str, Any]:
        """Write ``values`` into the bounded ``range_spec``."""

        body = {"values": [list(row) for row in values]}
        try:
            return (
                self._service.spreadsheets()
                .values()
                .update(
                    spreadsheetId=self._spreadsheet_id,
                    range=range_spec,
                    valueInputOption=value_input_option,
                    body=body,
                )
                .execute()
            )
        except HttpError as exc:
            raise translate_http_error(exc, f"values.update {range_spec}") from exc

    def append_values(
        self,
        range_spec: str,
        values: Sequence[Sequence[Any]],
        *,
        value_input_option: str = VALUE_INPUT_OPTION,
    ) -> Dict[str, Any]:
        body = {"values": [list(row) for row in values]}
        try:
            return (
                self._service.spreadsheets()
                .values()
                .append(
                    spreadsheetId=self._spreadsheet_id,
                    range=range_spec,
                    valueInputOption=value_input_option,
                    body=body,
                )
                .execute()
            )
        except HttpError as exc:
            raise translate_http_error(exc, f"values.append {range_spec}") from exc

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------
    def batch_update(self, requests: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
        """Send structural requests (addSheet, copyPaste, ...) in one call."""

        try:
            return (
                self._service.spreadsheets()
                .batchUpdate(spreadsheetId=self._spreadsheet_id, body={"requests": list(requests)})
                .execute()
            )
        except HttpError as exc:
            raise translate_http_error(exc, "spreadsheets.batchUpdate") from exc

    def spreadsheet_metadata(self) -> Dict[str, Any]:
        try:
            return (
                self._service.spreadsheets()
                .get(spreadsheetId=self._spreadsheet_id, includeGridData=False)
                .execute()
            )
        except HttpError as exc:
            raise translate_http_error(exc, "spreadsheets.get") from exc

    def sheet_titles(self) -> List[str]:
        return [title for title, _ in self.sheet_properties(self.spreadsheet_metadata())]

    def sheet_id(self, title: str, cache: Optional[SheetIdCache] = None) -> int:
        """Return the numeric id of ``title``, consulting ``cache`` first."""

        if cache is not None:
            cached = cache.get(title)
            if cached is not None:
                return cached
        for candidate, sheet_id in self.sheet_properties(self.spreadsheet_metadata()):
            if candidate == title and sheet_id is not None:
                if cache is not None:
                    cache.put(title, sheet_id)
                return sheet_id
        raise NotFoundError(f"Sheet tab not found: {title}")

    @staticmethod
    def sheet_properties(metadata: Mapping[str, Any]) -> List[tuple]:
        entries = []
        for sheet in metadata.get("sheets", []) if isinstance(metadata, Mapping) else []:
            props = sheet.get("properties", {}) if isinstance(sheet, Mapping) else {}
            title = props.get("title")
            if not isinstance(title, str):
                continue
            sheet_id = props.get("sheetId")
            entries.append((title, sheet_id if isinstance(sheet_id, int) else None))
        return entries


__all__ = [
    "AccessDeniedError",
    "ConfigurationError",
    "InvalidFormatError",
    "NotFoundError",
    "NotInitializedError",
    "SheetIdCache",
    "SheetsClient",
    "SheetsClientError",
    "UnknownSheetsError",
    "a1_range",
    "build_sheets_service",
    "column_letter",
    "quote_title",
    "translate_http_error",
]

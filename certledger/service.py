"""Per-instance facade over the inventory spreadsheet.

One :class:`CardSheetsService` owns the spreadsheet configuration, the
authenticated client and the sheet-id cache.  Changing the configured tab or
spreadsheet drops the client and clears the cache; the next call must
``initialize`` again.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from certledger.google_credentials import CredentialsFileInvalidError, resolve_service_account
from certledger.history import HistoryEntry, HistoryLedger
from certledger.records import normalize_psa_data
from certledger.sheet_writer import SheetWriter, WriteResult
from certledger.sheets_client import (
    ConfigurationError,
    NotFoundError,
    NotInitializedError,
    SheetIdCache,
    SheetsClient,
    SheetsClientError,
    build_sheets_service,
)

logger = logging.getLogger(__name__)

DEFAULT_SHEET_NAME = "Input Sheet"


class CardSheetsService:
    def __init__(
        self,
        spreadsheet_id: Optional[str],
        sheet_name: Optional[str] = None,
        *,
        service_account_key_path: Optional[str] = None,
        service_account_json: Optional[str] = None,
    ) -> None:
        self.spreadsheet_id = spreadsheet_id or ""
        self.sheet_name = sheet_name or DEFAULT_SHEET_NAME
        self._key_path = service_account_key_path
        self._inline_json = service_account_json
        self._credentials: Optional[Dict[str, object]] = None
        self._client: Optional[SheetsClient] = None
        self._sheet_ids = SheetIdCache()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def configured(self) -> bool:
        return bool(self.spreadsheet_id and (self._key_path or self._inline_json))

    @property
    def initialized(self) -> bool:
        return self._client is not None

    @property
    def sheet_ids(self) -> SheetIdCache:
        return self._sheet_ids

    def initialize(self, service=None) -> None:
        """Authenticate and verify access to the spreadsheet.

        ``service`` replaces the googleapiclient resource, which lets tests and
        alternative backends plug in without credentials.
        """

        if not self.spreadsheet_id:
            raise ConfigurationError("Spreadsheet ID is required")
        if service is None:
            try:
                self._credentials = resolve_service_account(
                    inline_json=self._inline_json,
                    key_path=self._key_path,
                )
            except CredentialsFileInvalidError as exc:
                raise ConfigurationError(f"Failed to initialize Google Sheets: {exc}") from exc
            service = build_sheets_service(self._credentials)

        self._client = SheetsClient(self.spreadsheet_id, service)
        try:
            self.get_spreadsheet_info()
        except SheetsClientError:
            self._client = None
            raise
        logger.info("Google Sheets initialised for %s (%s)", self.spreadsheet_id, self.sheet_name)

    def ensure_initialized(self, service=None) -> "CardSheetsService":
        if not self.initialized:
            self.initialize(service)
        return self

    def update_config(self, spreadsheet_id: str, sheet_name: Optional[str] = None) -> None:
        self.spreadsheet_id = spreadsheet_id
        self.sheet_name = sheet_name or DEFAULT_SHEET_NAME
        self._client = None
        self._credentials = None
        self._sheet_ids.invalidate()
        logger.info("Spreadsheet configuration changed to %s (%s)", spreadsheet_id, self.sheet_name)

    def get_status(self) -> Dict[str, object]:
        return {
            "configured": self.configured,
            "initialized": self.initialized,
            "spreadsheetId": self.spreadsheet_id,
            "sheetName": self.sheet_name,
            "hasAuth": self._credentials is not None or self.initialized,
        }

    def _require_client(self) -> SheetsClient:
        if self._client is None:
            raise NotInitializedError("Google Sheets not initialized. Call initialize() first.")
        return self._client

    # ------------------------------------------------------------------
    # Spreadsheet metadata
    # ------------------------------------------------------------------
    def get_spreadsheet_info(self) -> Dict[str, Any]:
        client = self._require_client()
        metadata = client.spreadsheet_metadata()
        properties = metadata.get("properties", {}) if isinstance(metadata, Mapping) else {}
        return {
            "title": properties.get("title"),
            "sheets": [title for title, _ in client.sheet_properties(metadata)],
        }

    def ensure_active_sheet(self, strict: bool = False) -> str:
        """Confirm the configured tab exists; fall back to the first tab unless ``strict``."""

        info = self.get_spreadsheet_info()
        sheets: List[str] = list(info.get("sheets") or [])
        if not sheets:
            raise NotFoundError("Spreadsheet has no sheets")
        if self.sheet_name not in sheets:
            if strict:
                raise NotFoundError(
                    f'Target sheet tab "{self.sheet_name}" not found. Available tabs: {", ".join(sheets)}'
                )
            logger.warning("Sheet %s not found; falling back to %s", self.sheet_name, sheets[0])
            self.sheet_name = sheets[0]
            self._sheet_ids.invalidate()
        return self.sheet_name

    # ------------------------------------------------------------------
    # Inventory writes
    # ------------------------------------------------------------------
    def add_card_data(self, psa_data: Mapping[str, Any]) -> WriteResult:
        client = self._require_client()
        record = normalize_psa_data(psa_data)
        self.ensure_active_sheet(strict=True)
        writer = SheetWriter(client, self.sheet_name, sheet_ids=self._sheet_ids)
        return writer.write(record)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------
    def history(self) -> HistoryLedger:
        return HistoryLedger(self._require_client())

    def save_scan_history(
        self,
        cert_number: str,
        card_data: Optional[Mapping[str, Any]],
        status: str,
        timestamp: str,
    ) -> Dict[str, Any]:
        return self.history().record(cert_number, card_data, status, timestamp)

    def load_scan_history(self, limit: int = 50) -> List[HistoryEntry]:
        return self.history().load(limit)


__all__ = ["CardSheetsService", "DEFAULT_SHEET_NAME"]

"""Application configuration helpers for the certificate ledger."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_SHEET_NAME = "Input Sheet"
DEFAULT_PSA_BASE_URL = "https://api.psacard.com/publicapi/cert"
DEFAULT_BATCH_CONCURRENCY = 5
MAX_BATCH_CONCURRENCY = 20
DEFAULT_PORT = 3000
DEFAULT_HISTORY_LIMIT = 50


@dataclass
class AppSettings:
    spreadsheet_id: str = ""
    sheet_name: str = DEFAULT_SHEET_NAME
    service_account_key_path: Optional[str] = None
    service_account_json: Optional[str] = None
    psa_api_key: str = ""
    psa_base_url: str = DEFAULT_PSA_BASE_URL
    batch_concurrency: int = DEFAULT_BATCH_CONCURRENCY
    port: int = DEFAULT_PORT
    log_path: Optional[str] = None

    @property
    def sheets_configured(self) -> bool:
        return bool(self.spreadsheet_id and (self.service_account_key_path or self.service_account_json))

    def to_json(self) -> dict:
        """Serialisable view without secrets."""

        return {
            "spreadsheet_id": self.spreadsheet_id,
            "sheet_name": self.sheet_name,
            "service_account_key_path": self.service_account_key_path,
            "has_service_account_json": bool(self.service_account_json),
            "psa_configured": bool(self.psa_api_key),
            "psa_base_url": self.psa_base_url,
            "batch_concurrency": self.batch_concurrency,
            "port": self.port,
            "log_path": self.log_path,
        }


def _text(environ: Mapping[str, str], key: str) -> str:
    value = environ.get(key)
    if isinstance(value, str):
        return value.strip()
    return ""


def _int(environ: Mapping[str, str], key: str, default: int, *, low: int, high: int) -> int:
    raw = _text(environ, key)
    if not raw:
        return default
    try:
        return max(low, min(high, int(raw)))
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid %s=%r; using %s", key, raw, default)
        return default


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    *,
    dotenv_path: Optional[Path] = None,
) -> AppSettings:
    """Build :class:`AppSettings` from ``environ`` (``os.environ`` by default).

    When reading the process environment a ``.env`` file is loaded first;
    variables already set in the environment take precedence.
    """

    if environ is None:
        load_dotenv(dotenv_path=dotenv_path, override=False)
        environ = os.environ

    return AppSettings(
        spreadsheet_id=_text(environ, "GOOGLE_SPREADSHEET_ID"),
        sheet_name=_text(environ, "GOOGLE_SHEET_NAME") or DEFAULT_SHEET_NAME,
        service_account_key_path=_text(environ, "GOOGLE_SERVICE_ACCOUNT_KEY") or None,
        service_account_json=_text(environ, "GOOGLE_SERVICE_ACCOUNT_JSON") or None,
        psa_api_key=_text(environ, "PSA_API_KEY"),
        psa_base_url=_text(environ, "PSA_BASE_URL") or DEFAULT_PSA_BASE_URL,
        batch_concurrency=_int(
            environ,
            "BATCH_LOOKUP_CONCURRENCY",
            DEFAULT_BATCH_CONCURRENCY,
            low=1,
            high=MAX_BATCH_CONCURRENCY,
        ),
        port=_int(environ, "PORT", DEFAULT_PORT, low=1, high=65535),
        log_path=_text(environ, "CERTLEDGER_LOG_PATH") or None,
    )


__all__ = [
    "AppSettings",
    "DEFAULT_BATCH_CONCURRENCY",
    "DEFAULT_HISTORY_LIMIT",
    "DEFAULT_PORT",
    "DEFAULT_SHEET_NAME",
    "load_settings",
]

"""HTTP entry point: PSA certificate lookups and inventory sheet writes."""
from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from certledger.batch_lookup import batch_lookup
from certledger.logging_config import configure_logging
from certledger.psa_client import (
    InvalidCertNumberError,
    PSAAuthenticationError,
    PSAClient,
    PSAError,
    PSANotFoundError,
    PSARateLimitError,
    PSAResponseError,
)
from certledger.service import CardSheetsService
from certledger.sheets_client import (
    AccessDeniedError,
    InvalidFormatError,
    NotFoundError,
    SheetsClientError,
)
from settings import DEFAULT_HISTORY_LIMIT, AppSettings, load_settings

logger = logging.getLogger(__name__)

SHEETS_ERROR_STATUS = {
    NotFoundError: 404,
    AccessDeniedError: 403,
    InvalidFormatError: 400,
}
PSA_ERROR_STATUS = {
    InvalidCertNumberError: 400,
    PSAAuthenticationError: 401,
    PSANotFoundError: 404,
    PSARateLimitError: 429,
    PSAResponseError: 502,
}
CORS_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
CORS_HEADERS = ["Content-Type", "Authorization"]


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _status_for(exc: Exception, table: Dict[type, int]) -> int:
    for error_type, status in table.items():
        if isinstance(exc, error_type):
            return status
    return 500


def _error(status: int, message: str, **extra: Any) -> JSONResponse:
    payload: Dict[str, Any] = {"success": False, "error": message}
    payload.update(extra)
    return JSONResponse(status_code=status, content=payload)


class AddToSheetsRequest(BaseModel):
    psaData: Optional[Dict[str, Any]] = None


class ScanHistoryRequest(BaseModel):
    certNumber: Optional[Any] = None
    cardData: Optional[Dict[str, Any]] = None
    status: Optional[str] = None
    timestamp: Optional[str] = None


class BatchLookupRequest(BaseModel):
    certNumbers: List[Any] = []


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
def get_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def get_sheets(request: Request) -> CardSheetsService:
    return request.app.state.sheets


def get_ready_sheets(request: Request) -> CardSheetsService:
    sheets: CardSheetsService = request.app.state.sheets
    return sheets.ensure_initialized(request.app.state.sheets_backend)


def get_psa(request: Request) -> PSAClient:
    psa: Optional[PSAClient] = request.app.state.psa
    if psa is None:
        settings: AppSettings = request.app.state.settings
        psa = PSAClient(settings.psa_api_key, base_url=settings.psa_base_url)
        request.app.state.psa = psa
    return psa


router = APIRouter(prefix="/api")


# ---------------------------------------------------------------------------
# Certificate lookups
# ---------------------------------------------------------------------------
@router.get("/cert/{cert_number}")
def get_certificate(cert_number: str, psa: PSAClient = Depends(get_psa)):
    data = psa.get_certificate_data(cert_number)
    return {"success": True, "PSACert": data}


def _batch_response(cert_numbers: List[Any], psa: PSAClient, settings: AppSettings):
    if not cert_numbers:
        return _error(400, "Provide certNumbers array or ids query param")
    results = batch_lookup(
        cert_numbers,
        psa.get_certificate_data,
        concurrency=settings.batch_concurrency,
    )
    return {"success": True, "count": len(results), "results": [item.to_dict() for item in results]}


@router.get("/certs")
def batch_get_certificates(
    ids: str = Query(""),
    psa: PSAClient = Depends(get_psa),
    settings: AppSettings = Depends(get_settings),
):
    return _batch_response([part for part in ids.split(",") if part.strip()], psa, settings)


@router.post("/certs")
def batch_post_certificates(
    payload: Optional[BatchLookupRequest] = None,
    psa: PSAClient = Depends(get_psa),
    settings: AppSettings = Depends(get_settings),
):
    return _batch_response(list(payload.certNumbers) if payload else [], psa, settings)


# ---------------------------------------------------------------------------
# Inventory sheet
# ---------------------------------------------------------------------------
@router.post("/add-to-sheets")
def add_to_sheets(request: Request, payload: Optional[AddToSheetsRequest] = None):
    if payload is None or not payload.psaData:
        return _error(400, "PSA data is required")
    sheets = get_ready_sheets(request)
    result = sheets.add_card_data(payload.psaData)
    return result.to_dict()


@router.get("/update-spreadsheet-config")
def update_spreadsheet_config(
    spreadsheet_id: Optional[str] = Query(None, alias="id"),
    sheet: Optional[str] = Query(None),
    sheets: CardSheetsService = Depends(get_sheets),
):
    if not spreadsheet_id:
        return _error(400, "Spreadsheet ID is required")
    sheets.update_config(spreadsheet_id, sheet)
    return {
        "success": True,
        "message": "Spreadsheet configuration updated",
        "spreadsheetId": spreadsheet_id,
        "sheetName": sheets.sheet_name,
    }


@router.post("/scan-history")
def save_scan_history(request: Request, payload: Optional[ScanHistoryRequest] = None):
    if payload is None or not payload.certNumber or not payload.status or not payload.timestamp:
        return _error(400, "Missing required fields: certNumber, status, timestamp")
    sheets = get_ready_sheets(request)
    return sheets.save_scan_history(
        str(payload.certNumber),
        payload.cardData,
        payload.status,
        payload.timestamp,
    )


@router.get("/scan-history")
def load_scan_history(request: Request, limit: str = Query("")):
    try:
        parsed_limit = int(limit) if limit else DEFAULT_HISTORY_LIMIT
    except ValueError:
        parsed_limit = DEFAULT_HISTORY_LIMIT
    try:
        sheets = get_ready_sheets(request)
    except SheetsClientError as exc:
        return _error(500, str(exc), history=[])
    history = sheets.load_scan_history(parsed_limit or DEFAULT_HISTORY_LIMIT)
    return {"success": True, "history": [entry.to_dict() for entry in history]}


@router.get("/status")
def get_status(request: Request):
    settings: AppSettings = request.app.state.settings
    psa: Optional[PSAClient] = request.app.state.psa
    if psa is not None:
        psa_status = psa.get_status()
    else:
        psa_status = {"configured": bool(settings.psa_api_key), "baseUrl": settings.psa_base_url}

    sheets: CardSheetsService = request.app.state.sheets
    sheets_status: Dict[str, Any] = dict(sheets.get_status())
    info: Optional[Dict[str, Any]] = None
    if sheets_status.get("spreadsheetId") and (
        sheets_status.get("configured") or request.app.state.sheets_backend is not None
    ):
        try:
            info = get_ready_sheets(request).get_spreadsheet_info()
        except SheetsClientError:
            logger.debug("Spreadsheet metadata unavailable for status", exc_info=True)
        sheets_status = dict(sheets.get_status())
    sheets_status["spreadsheetName"] = info.get("title") if info else None
    sheets_status["sheetNames"] = info.get("sheets") if info else None

    return {
        "success": True,
        "services": {"psa": psa_status, "googleSheets": sheets_status},
        "timestamp": _utc_now_iso(),
    }


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------
def create_app(
    settings: Optional[AppSettings] = None,
    *,
    sheets: Optional[CardSheetsService] = None,
    psa: Optional[PSAClient] = None,
    sheets_backend=None,
) -> FastAPI:
    """Build the FastAPI application.

    ``sheets_backend`` is handed to :meth:`CardSheetsService.initialize` in
    place of a credential-built googleapiclient resource.
    """

    settings = settings or load_settings()
    app = FastAPI(title="Cert Ledger")
    app.state.settings = settings
    app.state.sheets = sheets or CardSheetsService(
        settings.spreadsheet_id,
        settings.sheet_name,
        service_account_key_path=settings.service_account_key_path,
        service_account_json=settings.service_account_json,
    )
    app.state.psa = psa
    app.state.sheets_backend = sheets_backend
    app.state.started = time.monotonic()

    # Echo the caller's origin, credentials allowed.
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=".*",
        allow_credentials=True,
        allow_methods=CORS_METHODS,
        allow_headers=CORS_HEADERS,
    )

    @app.get("/health")
    def health(request: Request):
        return {
            "status": "OK",
            "timestamp": _utc_now_iso(),
            "uptime": round(time.monotonic() - request.app.state.started, 3),
        }

    app.include_router(router)

    @app.exception_handler(SheetsClientError)
    async def sheets_error_handler(request: Request, exc: SheetsClientError):
        status = _status_for(exc, SHEETS_ERROR_STATUS)
        if status >= 500:
            logger.error("Sheets request failed: %s", exc)
        return _error(status, str(exc), kind=exc.kind)

    @app.exception_handler(PSAError)
    async def psa_error_handler(request: Request, exc: PSAError):
        return _error(_status_for(exc, PSA_ERROR_STATUS), str(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _error(400, "Invalid request payload")

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return _error(404, "Endpoint not found", path=request.url.path)
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error")
        return _error(500, "Internal server error", message=str(exc))

    return app


def main() -> None:
    settings = load_settings()
    configure_logging(log_path=Path(settings.log_path) if settings.log_path else None)
    logger.info("Cert Ledger listening on http://localhost:%s", settings.port)
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()

"""PSA public API client used to look up graded card certificates."""

from __future__ import annotations

import json
import logging
import re
import socket
import urllib.error
import urllib.request
from typing import Any, Dict, Mapping

from certledger.sheets_client import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.psacard.com/publicapi/cert"
DEFAULT_TIMEOUT = 10.0
USER_AGENT = "CertLedger/1.0"

_CERT_RE = re.compile(r"^\d+$")
_GRADE_RE = re.compile(r"(\d+(?:\.\d+)?)$")


class PSAError(RuntimeError):
    """Base error raised for certificate lookups."""


class InvalidCertNumberError(PSAError):
    """Raised when a certificate number is not purely numeric."""


class PSAAuthenticationError(PSAError):
    pass


class PSANotFoundError(PSAError):
    pass


class PSARateLimitError(PSAError):
    pass


class PSAServerError(PSAError):
    pass


class PSANetworkError(PSAError):
    pass


class PSAResponseError(PSAError):
    """Raised when the API answers with an unexpected payload."""


_STATUS_ERRORS = {
    401: (PSAAuthenticationError, "Invalid API key or authentication failed"),
    404: (PSANotFoundError, "Certificate not found"),
    429: (PSARateLimitError, "Rate limit exceeded - too many requests"),
    500: (PSAServerError, "PSA server error"),
}


def validate_cert_number(cert_number: object) -> bool:
    if not isinstance(cert_number, str) or not cert_number.strip():
        return False
    return bool(_CERT_RE.match(cert_number.strip()))


def extract_numeric_grade(grade: object) -> str:
    """``"GEM MT 10"`` -> ``"10"``; empty when no trailing number exists."""

    if not grade:
        return ""
    match = _GRADE_RE.search(str(grade).strip())
    return match.group(1) if match else ""


def process_certificate_data(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """Enrich a raw ``PSACert`` payload with the numeric grade and sheet fields."""

    cert = raw.get("PSACert") if isinstance(raw, Mapping) else None
    if not isinstance(cert, Mapping):
        raise PSAResponseError("Invalid response format from PSA API")

    numeric_grade = extract_numeric_grade(
        cert.get("GradeDescription") or cert.get("CardGrade") or cert.get("Grade")
    )
    processed: Dict[str, Any] = dict(cert)
    processed["NumericGrade"] = numeric_grade
    processed["GoogleSheetsData"] = {
        "Subject": cert.get("Subject") or "",
        "CardNumber": cert.get("CardNumber") or "",
        "Status": "Graded",
        "Authenticated": "Yes",
        "Company": "PSA",
        "Grade": numeric_grade,
        "CertNumber": cert.get("CertNumber") or "",
    }
    return processed


class PSAClient:
    """Fetch certificate data from the PSA public API."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        if not api_key:
            raise ConfigurationError("PSA API key is required")
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    @property
    def base_url(self) -> str:
        return self._base_url

    def get_status(self) -> Dict[str, object]:
        return {"configured": bool(self._api_key), "baseUrl": self._base_url}

    def _request(self, cert_number: str) -> urllib.request.Request:
        return urllib.request.Request(
            f"{self._base_url}/GetByCertNumber/{cert_number}",
            headers={
                "authorization": f"bearer {self._api_key}",
                "Content-Type": "application/json",
                "User-Agent": USER_AGENT,
            },
            method="GET",
        )

    def get_certificate_data(self, cert_number: str) -> Dict[str, Any]:
        if not validate_cert_number(cert_number):
            raise InvalidCertNumberError("Invalid certificate number format. Must contain only digits.")
        cert_number = cert_number.strip()

        try:
            with urllib.request.urlopen(self._request(cert_number), timeout=self._timeout) as response:  # nosec: B310 - fixed https base URL
                body = response.read()
        except urllib.error.HTTPError as exc:
            error_type, message = _STATUS_ERRORS.get(exc.code, (PSAError, f"HTTP {exc.code}"))
            raise error_type(f"PSA API error: {message}") from exc
        except socket.timeout as exc:
            raise PSANetworkError("Request timeout: PSA API took too long to respond.") from exc
        except urllib.error.URLError as exc:
            if isinstance(exc.reason, socket.timeout):
                raise PSANetworkError("Request timeout: PSA API took too long to respond.") from exc
            raise PSANetworkError(
                "Network error: Unable to reach PSA API. Check internet connection."
            ) from exc

        try:
            raw = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise PSAResponseError("Invalid response format from PSA API") from exc
        logger.debug("Fetched PSA cert %s", cert_number)
        return process_certificate_data(raw)


__all__ = [
    "DEFAULT_BASE_URL",
    "InvalidCertNumberError",
    "PSAAuthenticationError",
    "PSAClient",
    "PSAError",
    "PSANetworkError",
    "PSANotFoundError",
    "PSARateLimitError",
    "PSAResponseError",
    "PSAServerError",
    "extract_numeric_grade",
    "process_certificate_data",
    "validate_cert_number",
]

"""Helpers for validating and normalising Google service account credentials."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional

__all__ = [
    "CredentialsFileInvalidError",
    "REQUIRED_FIELDS",
    "load_service_account_data",
    "parse_service_account_json",
    "resolve_service_account",
]


class CredentialsFileInvalidError(Exception):
    """Raised when service account JSON is missing or lacks required data."""


REQUIRED_FIELDS: Iterable[str] = (
    "type",
    "project_id",
    "private_key",
    "client_email",
    "token_uri",
)


def _normalise_private_key(key: str) -> str:
    key = key.replace("\r\n", "\n").replace("\r", "\n")
    key = key.replace("\\n", "\n")
    if not key.endswith("\n"):
        key += "\n"
    return key


def _parse_text(raw: str, source: str) -> Mapping[str, object]:
    payload_text = raw.lstrip("\ufeff").strip()
    if not payload_text:
        raise CredentialsFileInvalidError(f"Service account JSON from {source} is empty.")

    try:
        payload = json.loads(payload_text)
    except json.JSONDecodeError as exc:
        raise CredentialsFileInvalidError(f"JSON parse error in {source}: {exc.msg}") from exc
    if not isinstance(payload, dict):
        raise CredentialsFileInvalidError(f"Service account JSON from {source} must be an object.")
    return payload


def _validate_payload(payload: Mapping[str, object]) -> Dict[str, object]:
    data: Dict[str, object] = dict(payload)
    missing: list[str] = []

    for field in REQUIRED_FIELDS:
        value = data.get(field)
        if not isinstance(value, str) or not value.strip():
            missing.append(field)

    if data.get("type") != "service_account":
        missing.append("type")

    if missing:
        ordered = ", ".join(sorted(dict.fromkeys(missing)))
        raise CredentialsFileInvalidError(f"JSON missing fields: {ordered}")

    private_key = str(data["private_key"])
    data["private_key"] = _normalise_private_key(private_key)
    return data


def load_service_account_data(path: Path) -> Dict[str, object]:
    """Return validated service account data read from ``path``."""

    try:
        with path.open("r", encoding="utf-8-sig") as handle:
            raw = handle.read()
    except OSError as exc:
        raise CredentialsFileInvalidError(f"Could not read JSON file: {exc}") from exc
    return _validate_payload(_parse_text(raw, str(path)))


def parse_service_account_json(raw: str) -> Dict[str, object]:
    """Return validated service account data from an inline JSON string."""

    return _validate_payload(_parse_text(raw, "environment"))


def resolve_service_account(
    *,
    inline_json: Optional[str] = None,
    key_path: Optional[str] = None,
) -> Dict[str, object]:
    """Inline JSON wins over the key file path, mirroring hosted deployments."""

    if inline_json and inline_json.strip():
        return parse_service_account_json(inline_json)
    if key_path:
        return load_service_account_data(Path(key_path).expanduser())
    raise CredentialsFileInvalidError(
        "Service account credentials are required (inline JSON or key file path)."
    )

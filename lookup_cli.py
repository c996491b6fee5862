"""Command line helper for batch certificate lookups and sheet writes."""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import List

from certledger.batch_lookup import batch_lookup
from certledger.logging_config import configure_logging
from certledger.psa_client import PSAClient
from certledger.service import CardSheetsService
from certledger.sheets_client import SheetsClientError
from settings import AppSettings, load_settings


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _read_cert_numbers(args: argparse.Namespace) -> List[str]:
    values = list(args.certs or [])
    if args.file:
        text = Path(args.file).read_text(encoding="utf-8")
        values.extend(line.strip() for line in text.splitlines())
    return [value for value in values if value]


def _psa_client(settings: AppSettings) -> PSAClient:
    return PSAClient(settings.psa_api_key, base_url=settings.psa_base_url)


def command_lookup(args: argparse.Namespace, settings: AppSettings) -> int:
    cert_numbers = _read_cert_numbers(args)
    if not cert_numbers:
        print("Error: no certificate numbers given", file=sys.stderr)
        return 1
    try:
        psa = _psa_client(settings)
    except SheetsClientError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    results = batch_lookup(cert_numbers, psa.get_certificate_data, concurrency=args.concurrency)
    print(json.dumps([item.to_dict() for item in results], indent=2, ensure_ascii=False))
    return 0 if all(item.success for item in results) else 1


def _sheets_service(settings: AppSettings, sheet_name: str) -> CardSheetsService:
    sheets = CardSheetsService(
        settings.spreadsheet_id,
        sheet_name,
        service_account_key_path=settings.service_account_key_path,
        service_account_json=settings.service_account_json,
    )
    sheets.initialize()
    return sheets


def _save_history(sheets: CardSheetsService, cert_number: str, data, status: str) -> None:
    try:
        sheets.save_scan_history(cert_number, data, status, _utc_now_iso())
    except SheetsClientError as exc:
        print(f"{cert_number}: history not saved ({exc})", file=sys.stderr)


def command_add(args: argparse.Namespace, settings: AppSettings) -> int:
    cert_numbers = _read_cert_numbers(args)
    if not cert_numbers:
        print("Error: no certificate numbers given", file=sys.stderr)
        return 1
    try:
        psa = _psa_client(settings)
        sheets = _sheets_service(settings, args.sheet or settings.sheet_name)
    except SheetsClientError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    failures = 0
    for item in batch_lookup(cert_numbers, psa.get_certificate_data, concurrency=args.concurrency):
        if not item.success or item.data is None:
            failures += 1
            print(f"{item.cert_number}: lookup failed ({item.error})")
            if not args.no_history:
                _save_history(sheets, item.cert_number, None, "error")
            continue
        try:
            result = sheets.add_card_data(item.data)
        except SheetsClientError as exc:
            failures += 1
            print(f"{item.cert_number}: write failed ({exc})")
            continue
        print(f"{item.cert_number}: {result.target.mode.value} {result.updated_range}")
        if not args.no_history:
            _save_history(sheets, item.cert_number, item.data, "success")
    return 0 if failures == 0 else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="PSA certificate lookup and inventory tool")
    parser.add_argument("--verbose", action="store_true", help="Log debug output to stderr")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def _common(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("certs", nargs="*", help="Certificate numbers")
        sub.add_argument("--file", help="Read certificate numbers from a file, one per line")
        sub.add_argument(
            "--concurrency",
            type=int,
            default=None,
            help="Parallel lookups (defaults to BATCH_LOOKUP_CONCURRENCY)",
        )

    lookup_parser = subparsers.add_parser("lookup", help="Print certificate data as JSON")
    _common(lookup_parser)
    lookup_parser.set_defaults(func=command_lookup)

    add_parser = subparsers.add_parser("add", help="Look up certificates and write them to the sheet")
    _common(add_parser)
    add_parser.add_argument("--sheet", help="Target worksheet tab (defaults to GOOGLE_SHEET_NAME)")
    add_parser.add_argument("--no-history", action="store_true", help="Do not append scan history rows")
    add_parser.set_defaults(func=command_add)

    return parser


def main(argv: list[str] | None = None, settings: AppSettings | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = settings or load_settings()
    if args.concurrency is None:
        args.concurrency = settings.batch_concurrency
    configure_logging(level=10 if args.verbose else 30)
    return args.func(args, settings)


if __name__ == "__main__":
    sys.exit(main())

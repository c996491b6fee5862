"""Concurrency-limited batch certificate lookups."""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from certledger.psa_client import PSAError

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 5

Fetcher = Callable[[str], Dict[str, Any]]


@dataclass(frozen=True)
class LookupResult:
    cert_number: str
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"certNumber": self.cert_number, "success": self.success}
        if self.success:
            payload["PSACert"] = self.data
        else:
            payload["error"] = self.error
        return payload


def normalise_cert_numbers(values: Iterable[object]) -> List[str]:
    """Strip each value and drop blanks, keeping order and duplicates."""

    cleaned: List[str] = []
    for value in values:
        if value is None:
            continue
        text = str(value).strip()
        if text:
            cleaned.append(text)
    return cleaned


def batch_lookup(
    cert_numbers: Iterable[object],
    fetch: Fetcher,
    *,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> List[LookupResult]:
    """Look up every cert once and fan results back out in input order."""

    normalized = normalise_cert_numbers(cert_numbers)
    unique = list(dict.fromkeys(normalized))
    work: "queue.Queue[str]" = queue.Queue()
    for cert in unique:
        work.put(cert)

    results: Dict[str, LookupResult] = {}
    lock = threading.Lock()

    def _worker() -> None:
        while True:
            try:
                cert = work.get_nowait()
            except queue.Empty:
                return
            try:
                outcome = LookupResult(cert, True, data=fetch(cert))
            except PSAError as exc:
                outcome = LookupResult(cert, False, error=str(exc))
            except Exception as exc:  # noqa: BLE001
                logger.exception("Lookup for %s failed", cert)
                outcome = LookupResult(cert, False, error=str(exc))
            with lock:
                results[cert] = outcome

    worker_count = max(1, min(concurrency, len(unique) or 1))
    threads = [threading.Thread(target=_worker, daemon=True) for _ in range(worker_count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    return [
        results.get(cert) or LookupResult(cert, False, error="Unknown error")
        for cert in normalized
    ]


__all__ = ["DEFAULT_CONCURRENCY", "LookupResult", "batch_lookup", "normalise_cert_numbers"]

"""Blocking JSON-over-HTTP helper with bounded exponential backoff."""
import json
import os
import random
import re
import time
import urllib.error
import urllib.request
from typing import Any, Callable, Dict, Optional, TypeVar

T = TypeVar("T")

_RETRYABLE_BODY_RE = re.compile(r"elevated usage|try again|rate limit", re.IGNORECASE)


class ExternalServiceError(RuntimeError):
    def __init__(self, message: str, status: Optional[int] = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body

    @property
    def retryable(self) -> bool:
        if self.status == 429 or (self.status is not None and 500 <= self.status < 600):
            return True
        return bool(_RETRYABLE_BODY_RE.search(self.body or "") or _RETRYABLE_BODY_RE.search(str(self)))


def request_json(
    url: str,
    payload: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    method: Optional[str] = None,
    timeout_sec: Optional[float] = None,
) -> Dict[str, Any]:
    raw = request_bytes(url, payload, headers, method, timeout_sec)
    if not raw:
        return {}
    try:
        return json.loads(raw.decode("utf-8"))
    except json.JSONDecodeError as exc:
        raise ExternalServiceError(f"invalid JSON from {url}", body=raw[:500].decode("utf-8", errors="ignore")) from exc


def request_bytes(
    url: str,
    payload: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    method: Optional[str] = None,
    timeout_sec: Optional[float] = None,
) -> bytes:
    data = json.dumps(payload).encode("utf-8") if payload is not None else None
    all_headers = {"Content-Type": "application/json"}
    all_headers.update(headers or {})
    req = urllib.request.Request(url, data=data, headers=all_headers, method=method)
    timeout = float(timeout_sec or os.getenv("HTTP_TIMEOUT_SEC", "60"))
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return resp.read()
    except urllib.error.HTTPError as exc:
        body = exc.read().decode("utf-8", errors="ignore")
        raise ExternalServiceError(f"HTTP {exc.code} {exc.reason}: {body[:300]}", status=exc.code, body=body) from exc
    except urllib.error.URLError as exc:
        raise ExternalServiceError(f"connection failed: {exc.reason}") from exc


def with_backoff(
    fn: Callable[[], T],
    attempts: int = 3,
    base_sec: float = 0.3,
    cap_sec: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fn`` retrying retryable ``ExternalServiceError``s; others propagate at once."""
    for attempt in range(attempts):
        try:
            return fn()
        except ExternalServiceError as exc:
            if not exc.retryable or attempt == attempts - 1:
                raise
            sleep(min(cap_sec, base_sec * (2**attempt)) + random.uniform(0.25, 0.6))
    raise RuntimeError("with_backoff called with attempts < 1")

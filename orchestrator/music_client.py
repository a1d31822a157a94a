"""Music generation client (create job, poll feed). Any failure yields None."""
import os
import re
import time
import urllib.parse
from typing import Any, Callable, Dict, Optional

from .http_json import ExternalServiceError, request_json

POLL_INTERVAL_SEC = 9
MAX_ATTEMPTS = 3
RETRY_BASE_SEC = 30
READY_MESSAGE = "All generated successfully."

_RATE_LIMIT_RE = re.compile(r"elevated usage|try again", re.IGNORECASE)


class _RateLimited(Exception):
    pass


class MusicClient:
    def __init__(self, sleep: Callable[[float], None] = time.sleep, clock: Callable[[], float] = time.monotonic) -> None:
        self.api_key = (os.getenv("MUSIC_API_KEY") or "").strip()
        self.generate_url = (os.getenv("MUSIC_API_URL") or "").strip()
        self.feed_base_url = re.sub(r"/v2/generate/?$", "", self.generate_url, flags=re.IGNORECASE)
        self.model = os.getenv("MUSIC_MODEL", "chirp-v5")
        self.poll_max_sec = float(os.getenv("MUSIC_POLL_MAX_SEC", "300"))
        self.sleep = sleep
        self.clock = clock
        self.last_error: Optional[str] = None

    @property
    def enabled(self) -> bool:
        return bool(self.api_key and self.generate_url)

    def generate_track(self, prompt: str) -> Optional[str]:
        """Return the generated track's URL, or None when disabled or anything fails."""
        self.last_error = None
        if not self.enabled:
            return None
        for attempt in range(MAX_ATTEMPTS):
            if attempt:
                self.sleep(RETRY_BASE_SEC * attempt)
            try:
                work_id = self._create(prompt)
                return self._poll(work_id)
            except _RateLimited as exc:
                self.last_error = str(exc)
                continue
            except (ExternalServiceError, OSError, ValueError) as exc:
                self.last_error = str(exc)
                if isinstance(exc, ExternalServiceError) and exc.retryable:
                    continue
                return None
        return None

    def _create(self, prompt: str) -> str:
        try:
            body = request_json(
                self.generate_url,
                {"gpt_description_prompt": prompt, "make_instrumental": True, "model": self.model},
                headers=self._headers(),
            )
        except ExternalServiceError as exc:
            if exc.status == 429 or _RATE_LIMIT_RE.search(exc.body or ""):
                raise _RateLimited(str(exc)) from exc
            raise
        work_id = body.get("workId") or (body.get("data") or {}).get("task_id")
        if not work_id:
            message = str(body.get("message") or "")
            if _RATE_LIMIT_RE.search(message):
                raise _RateLimited(message)
            raise ValueError(f"music generate returned no work id: {message[:200]}")
        return str(work_id)

    def _poll(self, work_id: str) -> Optional[str]:
        feed_url = f"{self.feed_base_url}/v2/feed?workId={urllib.parse.quote(work_id, safe='')}"
        started = self.clock()
        while self.clock() - started < self.poll_max_sec:
            self.sleep(POLL_INTERVAL_SEC)
            try:
                body = request_json(feed_url, headers=self._headers(), method="GET")
            except ExternalServiceError as exc:
                if exc.status == 404 or (exc.status or 0) >= 500:
                    continue
                raise
            for item in (body.get("data") or {}).get("response_data") or []:
                failure = item.get("fail_message") or item.get("error_message")
                if failure:
                    if _RATE_LIMIT_RE.search(failure):
                        raise _RateLimited(failure)
                    raise ValueError(f"music generation failed: {failure}")
                audio_url = (item.get("audio_url") or "").strip()
                if item.get("extra_message") == READY_MESSAGE and audio_url:
                    return audio_url
        self.last_error = "music poll timed out"
        return None

    def _headers(self) -> Dict[str, Any]:
        return {"Authorization": f"Bearer {self.api_key}"}

"""Client for the external text-to-video render service."""
import os
import random
import re
import shutil
import time
import urllib.request
from typing import Any, Callable, Dict, List, Optional

from .cache import PromptCache
from .http_json import ExternalServiceError, request_json
from .render_prompts import build_render_prompt
from .vocab import JobStatus

MAX_SUBMIT_ATTEMPTS = 3

_RETRYABLE_RE = re.compile(r"rate|limit|timeout|timed? out|429|5\d\d|econnreset|network", re.IGNORECASE)

_STATUS_MAP: Dict[str, str] = {
    "SUCCEEDED": JobStatus.READY.value,
    "SUCCESS": JobStatus.READY.value,
    "COMPLETED": JobStatus.READY.value,
    "FAILED": JobStatus.FAILED.value,
    "ERROR": JobStatus.FAILED.value,
    "CANCELLED": JobStatus.FAILED.value,
    "PENDING": JobStatus.PROCESSING.value,
    "RUNNING": JobStatus.PROCESSING.value,
    "IN_PROGRESS": JobStatus.PROCESSING.value,
    "THROTTLED": JobStatus.PROCESSING.value,
}


def map_status(raw_status: Optional[str]) -> str:
    return _STATUS_MAP.get(str(raw_status or "").upper(), JobStatus.PENDING.value)


def is_retryable(error: BaseException) -> bool:
    if isinstance(error, ExternalServiceError) and error.retryable:
        return True
    return bool(_RETRYABLE_RE.search(str(error)))


def backoff_delay(attempt: int) -> float:
    return min(2.0, 0.3 * (2**attempt)) + jitter()


def jitter() -> float:
    return random.uniform(0.25, 0.6)


def shot_key(shot: Dict[str, Any]) -> str:
    return f"{shot.get('act_index')}-{shot.get('clip_index')}"


class VideoGenClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.base_url = (base_url or os.getenv("RENDER_API_URL", "")).rstrip("/")
        self.api_key = api_key if api_key is not None else os.getenv("RENDER_API_KEY", "")
        self.model = model or os.getenv("RENDER_MODEL", "veo-3.1-generate-001")
        self.timeout_sec = float(os.getenv("RENDER_API_TIMEOUT_SEC", "60"))
        self.sleep = sleep

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def submit(self, prompt: str, duration_sec: int) -> str:
        res = request_json(
            f"{self.base_url}/jobs",
            {"model": self.model, "prompt": prompt, "duration_sec": int(duration_sec)},
            headers=self._headers(),
            timeout_sec=self.timeout_sec,
        )
        job_id = res.get("job_id") or res.get("id") or res.get("name")
        if not job_id:
            raise ExternalServiceError("render service response missing job id", body=str(res)[:300])
        return str(job_id)

    def poll(self, job_id: str) -> Dict[str, Any]:
        res = request_json(
            f"{self.base_url}/jobs/{job_id}",
            headers=self._headers(),
            method="GET",
            timeout_sec=self.timeout_sec,
        )
        status = map_status(res.get("status") or res.get("state"))
        return {
            "status": status,
            "url": res.get("video_url") or res.get("url") or res.get("output_url"),
            "error": res.get("error") or res.get("error_message"),
        }

    def download(self, url: str, dest_path: str) -> str:
        if os.path.exists(url):
            shutil.copyfile(url, dest_path)
            return dest_path
        req = urllib.request.Request(url, headers=self._headers())
        with urllib.request.urlopen(req, timeout=self.timeout_sec) as resp, open(dest_path, "wb") as f:
            shutil.copyfileobj(resp, f)
        return dest_path

    def submit_with_retry(self, prompt: str, duration_sec: int) -> str:
        attempt = 0
        while True:
            try:
                return self.submit(prompt, duration_sec)
            except Exception as exc:
                attempt += 1
                if not is_retryable(exc) or attempt >= MAX_SUBMIT_ATTEMPTS:
                    raise
                self.sleep(backoff_delay(attempt))

    def submit_shot(self, shot: Dict[str, Any], cache: PromptCache) -> Dict[str, Any]:
        """Submit one shot; identical prompts within a run reuse the cached job."""
        prompt = build_render_prompt(shot.get("prompt") or "", shot.get("act_type"), int(shot.get("act_index") or 0))
        duration = int(shot.get("duration") or 6)
        key = cache.make_key(self.model, duration, prompt)
        cached = cache.get(key)
        if cached:
            return {"job_id": cached, "status": JobStatus.PROCESSING.value, "prompt": prompt, "cached": True}
        try:
            job_id = self.submit_with_retry(prompt, duration)
        except Exception as exc:
            return {
                "job_id": f"error_{int(time.time() * 1000)}",
                "status": JobStatus.FAILED.value,
                "error": str(exc),
                "prompt": prompt,
                "cached": False,
            }
        cache.set(key, job_id)
        return {"job_id": job_id, "status": JobStatus.PROCESSING.value, "prompt": prompt, "cached": False}

    def submit_batch(self, shots: List[Dict[str, Any]], cache: PromptCache) -> Dict[str, Dict[str, Any]]:
        results: Dict[str, Dict[str, Any]] = {}
        for shot in shots:
            results[shot_key(shot)] = self.submit_shot(shot, cache)
            self.sleep(jitter())
        return results

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            return {}
        return {"Authorization": f"Bearer {self.api_key}"}

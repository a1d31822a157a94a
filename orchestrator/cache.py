"""Render-prompt to job-id memoization, optionally file-backed."""
import hashlib
import json
import os
import threading
from typing import Any, Dict, Optional


def _ensure_dir(path: str) -> None:
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)


def _hash_payload(payload: Any) -> str:
    encoded = json.dumps(payload, sort_keys=True, ensure_ascii=True).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


class PromptCache:
    """One instance per run; pass it explicitly to the batch submitter."""

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = path
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()
        if self.path:
            _ensure_dir(self.path)
            self._load()

    def _load(self) -> None:
        if not self.path or not os.path.exists(self.path):
            self._data = {}
            return
        with open(self.path, "r", encoding="utf-8") as f:
            self._data = json.load(f)

    def _save(self) -> None:
        if not self.path:
            return
        _ensure_dir(self.path)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self._data, f, ensure_ascii=True, indent=2)

    def make_key(self, model: str, duration_sec: int, prompt: str) -> str:
        return f"{model}|{duration_sec}|{_hash_payload(prompt)}"

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, job_id: str) -> None:
        with self._lock:
            self._data[key] = job_id
            self._save()

    def __len__(self) -> int:
        return len(self._data)

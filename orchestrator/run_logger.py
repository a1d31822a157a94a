"""Per-run logging and artifact capture for observability."""
import json
import os
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional


class RunLogger:
    def __init__(self, run_dir: str) -> None:
        self.run_dir = run_dir
        os.makedirs(self.run_dir, exist_ok=True)
        self.log_path = os.path.join(self.run_dir, "run.log")
        self.manifest_path = os.path.join(self.run_dir, "run_manifest.json")
        self.manifest: Dict[str, Any] = {}
        if os.path.exists(self.manifest_path):
            try:
                with open(self.manifest_path, "r", encoding="utf-8") as f:
                    self.manifest = json.load(f)
            except (OSError, ValueError):
                self.manifest = {}
        if not self.manifest:
            self.manifest = {
                "run_id": os.path.basename(run_dir),
                "started_at": _now(),
                "steps": {},
            }
        else:
            self.manifest.setdefault("run_id", os.path.basename(run_dir))
            self.manifest.setdefault("steps", {})

    def step_dir(self, step: str) -> str:
        path = os.path.join(self.run_dir, step)
        os.makedirs(path, exist_ok=True)
        return path

    def log(self, message: str) -> None:
        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(f"[{_now()}] {message}\n")

    def save_step(self, step: str, payload: Dict[str, Any]) -> None:
        self.manifest["steps"].setdefault(step, {}).update(payload)
        self._flush()

    def write_json(self, path: str, data: Any) -> None:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=True, indent=2)

    def _flush(self) -> None:
        self.manifest["updated_at"] = _now()
        with open(self.manifest_path, "w", encoding="utf-8") as f:
            json.dump(self.manifest, f, ensure_ascii=True, indent=2)


class PipelineLogger:
    """Stage timing for one video run.

    Events go to ``run.log``, the run manifest and (when a store is given) the
    ``stage_events`` table. A failure to record an event is swallowed and printed;
    it never aborts the stage being timed.
    """

    def __init__(self, video_id: str, run_logger: Optional[RunLogger] = None, store: Any = None) -> None:
        self.video_id = video_id
        self.run_logger = run_logger
        self.store = store

    def info(self, message: str) -> None:
        self._safe(lambda: self.run_logger.log(message) if self.run_logger else None)

    def event(
        self,
        stage: str,
        event: str,
        stage_number: Optional[int] = None,
        duration_ms: Optional[int] = None,
        error: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        line = f"stage={stage} event={event}"
        if duration_ms is not None:
            line += f" duration_ms={duration_ms}"
        if error:
            line += f" error={error[:300]}"
        self.info(line)
        if self.run_logger is not None:
            payload: Dict[str, Any] = {"last_event": event, "at": _now()}
            if duration_ms is not None:
                payload["duration_ms"] = duration_ms
            if error:
                payload["error"] = error
            self._safe(lambda: self.run_logger.save_step(f"stage_{stage}", payload))
        if self.store is not None:
            self._safe(
                lambda: self.store.add_stage_event(
                    self.video_id,
                    stage=stage,
                    event=event,
                    stage_number=stage_number,
                    duration_ms=duration_ms,
                    error=error,
                    details=details,
                )
            )

    @contextmanager
    def stage(self, name: str, number: Optional[int] = None) -> Iterator[None]:
        """Time a stage; the stage's own exception is re-raised after it is recorded."""
        started = time.monotonic()
        self.event(name, "start", stage_number=number)
        try:
            yield
        except BaseException as exc:
            elapsed = int((time.monotonic() - started) * 1000)
            self.event(name, "error", stage_number=number, duration_ms=elapsed, error=str(exc) or type(exc).__name__)
            raise
        elapsed = int((time.monotonic() - started) * 1000)
        self.event(name, "end", stage_number=number, duration_ms=elapsed)

    def _safe(self, fn) -> None:
        try:
            fn()
        except Exception as exc:
            print(f"[pipeline-logger] dropped log event: {exc}", flush=True)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

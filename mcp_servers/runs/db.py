import json
import os
import sqlite3
import uuid
from typing import Any, Dict, Iterable, List, Optional

from orchestrator.vocab import JobStatus, PipelineStatus

BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
DEFAULT_DATA_DIR = os.path.join(BASE_DIR, "data")
DEFAULT_DB_PATH = os.path.join(DEFAULT_DATA_DIR, "sqlite", "runs.db")
SCHEMA_PATH = os.path.join(os.path.dirname(__file__), "schema.sql")

CLAIMABLE = (PipelineStatus.PENDING.value, PipelineStatus.FAILED.value, PipelineStatus.GENERATING.value)
CHECKPOINT_STAGES = (
    PipelineStatus.BLUEPRINT.value,
    PipelineStatus.GENERATING.value,
    PipelineStatus.ASSEMBLING.value,
)

_JSON_COLUMNS = {
    "structure": "structure_json",
    "timeline": "timeline_json",
    "narration": "narration_json",
    "shot_plan": "shot_plan_json",
    "qc_report": "qc_report_json",
    "music_plan": "music_plan_json",
}
_VIDEO_COLUMNS = {"music_url", "final_path", "final_artifact_id", "error_message", "error_stage", "user_text"}
_SCENE_COLUMNS = {"job_id", "status", "video_url", "prompt", "description", "retried", "error"}
_SEGMENT_COLUMNS = {"audio_artifact_id", "status", "text"}


def _ensure_dir(path: str) -> None:
    os.makedirs(os.path.dirname(path), exist_ok=True)


def _now_sql() -> str:
    return "strftime('%Y-%m-%dT%H:%M:%fZ', 'now')"


class RunStore:
    """Persisted run state; the orchestrator's only source of truth across restarts."""

    def __init__(self, db_path: Optional[str] = None) -> None:
        self.db_path = db_path or os.getenv("RUNS_DB_PATH", DEFAULT_DB_PATH)
        _ensure_dir(self.db_path)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            with open(SCHEMA_PATH, "r", encoding="utf-8") as f:
                conn.executescript(f.read())

    # ------------------------------------------------------------------ videos

    def create_video(self, user_text: str, video_id: Optional[str] = None) -> str:
        video_id = video_id or str(uuid.uuid4())
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO videos(video_id, user_text, status) VALUES (?, ?, ?)",
                (video_id, user_text, PipelineStatus.PENDING.value),
            )
        return video_id

    def get_video(self, video_id: str) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM videos WHERE video_id = ?", (video_id,)).fetchone()
        if row is None:
            return None
        video = dict(row)
        for key, column in _JSON_COLUMNS.items():
            raw = video.pop(column)
            video[key] = json.loads(raw) if raw else None
        return video

    def claim_run(self, video_id: str) -> Optional[str]:
        """Atomically take the run; returns the stage to start from, or None if another run holds it.

        ``generating`` stays ``generating``; a failed run resumes from its last checkpoint;
        anything else starts at ``understanding``.
        """
        placeholders = ",".join("?" * len(CLAIMABLE))
        with self._connect() as conn:
            cur = conn.execute(
                f"""
                UPDATE videos
                SET status = CASE
                        WHEN status = ? THEN ?
                        WHEN status = ? AND checkpoint IS NOT NULL THEN checkpoint
                        ELSE ?
                    END,
                    error_message = NULL,
                    error_stage = NULL,
                    updated_at = {_now_sql()}
                WHERE video_id = ? AND status IN ({placeholders})
                """,
                (
                    PipelineStatus.GENERATING.value,
                    PipelineStatus.GENERATING.value,
                    PipelineStatus.FAILED.value,
                    PipelineStatus.UNDERSTANDING.value,
                    video_id,
                    *CLAIMABLE,
                ),
            )
            if cur.rowcount == 0:
                return None
            row = conn.execute("SELECT status FROM videos WHERE video_id = ?", (video_id,)).fetchone()
        return row["status"]

    def advance(self, video_id: str, status: str, **fields: Any) -> None:
        """Persist stage outputs and move to ``status`` in one write."""
        assignments = ["status = ?"]
        params: List[Any] = [status]
        if status in CHECKPOINT_STAGES:
            assignments.append("checkpoint = ?")
            params.append(status)
        self._collect(fields, assignments, params)
        self._update_video(video_id, assignments, params)

    def update_video(self, video_id: str, **fields: Any) -> None:
        assignments: List[str] = []
        params: List[Any] = []
        self._collect(fields, assignments, params)
        if assignments:
            self._update_video(video_id, assignments, params)

    def fail(self, video_id: str, stage_number: int, message: str) -> None:
        self._update_video(
            video_id,
            ["status = ?", "error_message = ?", "error_stage = ?"],
            [PipelineStatus.FAILED.value, message, stage_number],
        )

    def mark_ready(self, video_id: str, final_path: str, artifact_id: Optional[str] = None) -> None:
        self._update_video(
            video_id,
            ["status = ?", "final_path = ?", "final_artifact_id = ?"],
            [PipelineStatus.READY.value, final_path, artifact_id],
        )

    def _collect(self, fields: Dict[str, Any], assignments: List[str], params: List[Any]) -> None:
        for key, value in fields.items():
            if key in _JSON_COLUMNS:
                assignments.append(f"{_JSON_COLUMNS[key]} = ?")
                params.append(json.dumps(value, ensure_ascii=True) if value is not None else None)
            elif key in _VIDEO_COLUMNS:
                assignments.append(f"{key} = ?")
                params.append(value)
            else:
                raise KeyError(f"unknown video field: {key}")

    def _update_video(self, video_id: str, assignments: List[str], params: List[Any]) -> None:
        sql = f"UPDATE videos SET {', '.join(assignments)}, updated_at = {_now_sql()} WHERE video_id = ?"
        with self._connect() as conn:
            conn.execute(sql, (*params, video_id))

    def recent_ready_runs(self, limit: int = 5, exclude: Optional[str] = None) -> List[List[Dict[str, Any]]]:
        """Scene rows of the newest ready runs, newest first."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT video_id FROM videos
                WHERE status = ? AND video_id != ?
                ORDER BY updated_at DESC
                LIMIT ?
                """,
                (PipelineStatus.READY.value, exclude or "", limit),
            ).fetchall()
        return [self.list_scenes(row["video_id"]) for row in rows]

    # ------------------------------------------------------------------ scenes

    def create_scenes(self, video_id: str, scenes: Iterable[Dict[str, Any]]) -> int:
        """Insert one row per beat unless the run already has scene rows."""
        with self._connect() as conn:
            existing = conn.execute("SELECT COUNT(*) AS n FROM scenes WHERE video_id = ?", (video_id,)).fetchone()["n"]
            if existing:
                return 0
            count = 0
            for scene in scenes:
                conn.execute(
                    """
                    INSERT INTO scenes(scene_id, video_id, scene_index, act_index, clip_index, act_type, duration,
                                       description, prompt, time_of_day, setting, micro_action, status)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        str(uuid.uuid4()),
                        video_id,
                        int(scene["scene_index"]),
                        int(scene.get("act_index") or 0),
                        int(scene.get("clip_index") or 0),
                        scene.get("act_type"),
                        int(scene.get("duration") or 6),
                        (scene.get("description") or "")[:500],
                        scene.get("prompt") or "",
                        scene.get("time_of_day"),
                        scene.get("setting"),
                        scene.get("micro_action") or "",
                        JobStatus.PENDING.value,
                    ),
                )
                count += 1
        return count

    def list_scenes(self, video_id: str) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM scenes WHERE video_id = ? ORDER BY scene_index", (video_id,)).fetchall()
        return [dict(row) for row in rows]

    def claim_scene(self, scene_id: str) -> bool:
        """Compare-and-set pending -> processing; False when another worker already took it."""
        with self._connect() as conn:
            cur = conn.execute(
                f"""
                UPDATE scenes SET status = ?, updated_at = {_now_sql()}
                WHERE scene_id = ? AND status = ? AND job_id IS NULL
                """,
                (JobStatus.PROCESSING.value, scene_id, JobStatus.PENDING.value),
            )
        return cur.rowcount == 1

    def update_scene(self, scene_id: str, **fields: Any) -> None:
        unknown = set(fields) - _SCENE_COLUMNS
        if unknown:
            raise KeyError(f"unknown scene fields: {sorted(unknown)}")
        if not fields:
            return
        assignments = [f"{key} = ?" for key in fields]
        with self._connect() as conn:
            conn.execute(
                f"UPDATE scenes SET {', '.join(assignments)}, updated_at = {_now_sql()} WHERE scene_id = ?",
                (*fields.values(), scene_id),
            )

    def reset_failed_scenes(self, video_id: str) -> int:
        with self._connect() as conn:
            cur = conn.execute(
                f"""
                UPDATE scenes SET status = ?, job_id = NULL, video_url = NULL, retried = 0, error = NULL,
                                  updated_at = {_now_sql()}
                WHERE video_id = ? AND status = ?
                """,
                (JobStatus.PENDING.value, video_id, JobStatus.FAILED.value),
            )
        return cur.rowcount

    # ------------------------------------------------------------------ narration

    def replace_narration(self, video_id: str, segments: List[Dict[str, Any]]) -> None:
        """Drop stale segments from earlier attempts so the count always matches the timeline."""
        with self._connect() as conn:
            conn.execute("DELETE FROM narration_segments WHERE video_id = ?", (video_id,))
            for index, seg in enumerate(segments):
                text = seg.get("text") or ""
                conn.execute(
                    """
                    INSERT INTO narration_segments(segment_id, video_id, segment_index, beat_index, act_index, text,
                                                   start_time, duration, pause_after, word_count, status)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        str(uuid.uuid4()),
                        video_id,
                        index,
                        seg.get("beat_index"),
                        int(seg.get("act_index") or 0),
                        text,
                        seg.get("start_time"),
                        seg.get("duration"),
                        seg.get("pause_after"),
                        seg.get("word_count") if seg.get("word_count") is not None else len(text.split()),
                        JobStatus.PENDING.value,
                    ),
                )

    def list_narration(self, video_id: str) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM narration_segments WHERE video_id = ? ORDER BY segment_index", (video_id,)
            ).fetchall()
        return [dict(row) for row in rows]

    def update_narration(self, segment_id: str, **fields: Any) -> None:
        unknown = set(fields) - _SEGMENT_COLUMNS
        if unknown:
            raise KeyError(f"unknown narration fields: {sorted(unknown)}")
        if not fields:
            return
        assignments = [f"{key} = ?" for key in fields]
        with self._connect() as conn:
            conn.execute(
                f"UPDATE narration_segments SET {', '.join(assignments)} WHERE segment_id = ?",
                (*fields.values(), segment_id),
            )

    # ------------------------------------------------------------------ events

    def add_stage_event(
        self,
        video_id: str,
        stage: str,
        event: str,
        stage_number: Optional[int] = None,
        duration_ms: Optional[int] = None,
        error: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO stage_events(video_id, stage, stage_number, event, duration_ms, error, details_json)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (video_id, stage, stage_number, event, duration_ms, error, json.dumps(details) if details else None),
            )

    def list_stage_events(self, video_id: str) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM stage_events WHERE video_id = ? ORDER BY event_id", (video_id,)
            ).fetchall()
        return [dict(row) for row in rows]

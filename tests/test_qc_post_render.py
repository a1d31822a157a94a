from __future__ import annotations

import numpy as np
import pytest
import soundfile as sf

from mcp_servers.qc.report import QCHardViolation
from mcp_servers.qc.server import QCService
from orchestrator.contracts import fallback_skeleton, fallback_structure


def _checks(result) -> dict:
    return {c["id"]: c for c in result["report"]["checks"]}


def test_post_render_reports_missing_scenes_as_warnings(tmp_path):
    service = QCService(artifact_root=str(tmp_path / "artifacts"))
    structure = fallback_structure("")
    scenes = [
        {"video_url": "https://cdn.example/a.mp4", "status": "ready", "job_id": "a", "duration": 8},
        {"video_url": None, "status": "failed", "job_id": "b", "duration": 7},
    ]
    result = service.qc_post_render(structure, scenes, [], expected_scene_count=15)
    checks = _checks(result)
    assert checks["render_scene_count"]["passed"] is False
    assert checks["render_scene_count"]["details"] == {"expected": 15, "actual": 2}
    assert checks["render_url_0"]["passed"] is True
    assert checks["render_url_1"]["passed"] is False
    assert checks["render_duration_1"]["passed"] is False
    assert checks["assembly_total_duration"]["passed"] is False
    assert all(c["severity"] == "warn" for c in result["report"]["checks"])


def test_post_render_checks_narration_against_act_windows(tmp_path):
    service = QCService(artifact_root=str(tmp_path / "artifacts"))
    structure = fallback_structure("")
    segments = [{"act_index": 0, "start_time": 4}, {"act_index": 3, "start_time": 10}]
    result = service.qc_post_render(structure, [], segments, expected_scene_count=0)
    checks = _checks(result)
    assert checks["assembly_narration_window_0"]["passed"] is True
    assert checks["assembly_narration_window_1"]["passed"] is False
    assert checks["assembly_narration_window_1"]["details"]["window"] == [96.0, 120.0]


def test_timeline_validate_tool(tmp_path):
    service = QCService(artifact_root=str(tmp_path / "artifacts"))
    timeline = fallback_skeleton(fallback_structure(""))
    assert service.qc_timeline_validate(timeline) == {"ok": True, "errors": []}
    timeline["total_duration_sec"] = 60
    out = service.qc_timeline_validate(timeline)
    assert out["ok"] is False
    assert out["errors"] == ["totalDurationSec must be 120, got 60"]


def test_narration_audio_flags_silence(tmp_path, monkeypatch):
    monkeypatch.delenv("FINAL_MEDIA_HARD_FAIL", raising=False)
    service = QCService(artifact_root=str(tmp_path / "artifacts"))
    path = tmp_path / "silent.wav"
    sf.write(str(path), np.zeros(22050, dtype=np.float32), 22050)
    result = service.qc_narration_audio(str(path))
    assert result["ok"] is False
    assert "NEAR_SILENT" in result["issues"]
    assert result["duration_sec"] == pytest.approx(1.0)


def test_narration_audio_passes_for_a_tone(tmp_path):
    service = QCService(artifact_root=str(tmp_path / "artifacts"))
    path = tmp_path / "tone.wav"
    t = np.linspace(0, 1, 22050, endpoint=False)
    sf.write(str(path), (0.3 * np.sin(2 * np.pi * 220 * t)).astype(np.float32), 22050)
    result = service.qc_narration_audio(str(path))
    assert result["ok"] is True
    assert result["issues"] == []


def test_hard_fail_env_raises_on_media_issues(tmp_path, monkeypatch):
    monkeypatch.setenv("FINAL_MEDIA_HARD_FAIL", "1")
    service = QCService(artifact_root=str(tmp_path / "artifacts"))
    path = tmp_path / "silent.wav"
    sf.write(str(path), np.zeros(2205, dtype=np.float32), 22050)
    with pytest.raises(QCHardViolation) as excinfo:
        service.qc_narration_audio(str(path))
    assert "DURATION_TOO_SHORT" in excinfo.value.failures

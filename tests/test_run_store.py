from __future__ import annotations

import pytest

from mcp_servers.runs.db import RunStore


@pytest.fixture
def store(tmp_path):
    return RunStore(str(tmp_path / "runs.db"))


def _scenes(count: int):
    return [
        {
            "scene_index": i,
            "act_index": min(3, i // 4),
            "clip_index": i,
            "act_type": "vast",
            "duration": 8,
            "description": "d" * 600,
            "prompt": f"prompt {i}",
            "setting": "rural",
        }
        for i in range(count)
    ]


def test_create_and_get_video(store):
    video_id = store.create_video("the sea at night")
    video = store.get_video(video_id)
    assert video["status"] == "pending"
    assert video["user_text"] == "the sea at night"
    assert video["structure"] is None
    assert store.get_video("missing") is None


def test_claim_is_exclusive(store):
    video_id = store.create_video("x")
    assert store.claim_run(video_id) == "understanding"
    assert store.claim_run(video_id) is None


def test_claim_resumes_generating_and_failed_checkpoint(store):
    video_id = store.create_video("x")
    store.claim_run(video_id)
    store.advance(video_id, "blueprint", structure={"acts": []})
    store.advance(video_id, "generating", timeline={"beats": []})
    assert store.claim_run(video_id) == "generating"

    store.fail(video_id, 6, "Video generation timed out")
    video = store.get_video(video_id)
    assert video["status"] == "failed"
    assert video["checkpoint"] == "generating"
    assert video["error_stage"] == 6
    assert store.claim_run(video_id) == "generating"
    video = store.get_video(video_id)
    assert video["error_message"] is None
    assert video["structure"] == {"acts": []}


def test_failed_without_checkpoint_restarts(store):
    video_id = store.create_video("x")
    store.claim_run(video_id)
    store.fail(video_id, 1, "boom")
    assert store.claim_run(video_id) == "understanding"


def test_ready_runs_cannot_be_claimed(store):
    video_id = store.create_video("x")
    store.mark_ready(video_id, "/tmp/final.mp4", "abc")
    assert store.claim_run(video_id) is None
    assert store.get_video(video_id)["final_artifact_id"] == "abc"


def test_unknown_fields_are_rejected(store):
    video_id = store.create_video("x")
    with pytest.raises(KeyError):
        store.update_video(video_id, colour="blue")


def test_create_scenes_once(store):
    video_id = store.create_video("x")
    assert store.create_scenes(video_id, _scenes(3)) == 3
    assert store.create_scenes(video_id, _scenes(5)) == 0
    scenes = store.list_scenes(video_id)
    assert [s["scene_index"] for s in scenes] == [0, 1, 2]
    assert len(scenes[0]["description"]) == 500
    assert scenes[0]["status"] == "pending"


def test_claim_scene_is_compare_and_set(store):
    video_id = store.create_video("x")
    store.create_scenes(video_id, _scenes(1))
    scene_id = store.list_scenes(video_id)[0]["scene_id"]
    assert store.claim_scene(scene_id) is True
    assert store.claim_scene(scene_id) is False
    store.update_scene(scene_id, job_id="job-1", status="failed", error="boom")
    assert store.reset_failed_scenes(video_id) == 1
    scene = store.list_scenes(video_id)[0]
    assert scene["status"] == "pending"
    assert scene["job_id"] is None
    with pytest.raises(KeyError):
        store.update_scene(scene_id, duration=6)


def test_replace_narration_drops_stale_segments(store):
    video_id = store.create_video("x")
    store.replace_narration(video_id, [{"text": "one two", "beat_index": 0}, {"text": "", "beat_index": 1}, {"text": "x"}])
    store.replace_narration(video_id, [{"text": "three words here", "beat_index": 4, "act_index": 1}])
    segments = store.list_narration(video_id)
    assert len(segments) == 1
    assert segments[0]["word_count"] == 3
    assert segments[0]["beat_index"] == 4
    store.update_narration(segments[0]["segment_id"], audio_artifact_id="aid", status="ready")
    assert store.list_narration(video_id)[0]["audio_artifact_id"] == "aid"


def test_recent_ready_runs_exclude_current(store):
    done = store.create_video("old")
    store.create_scenes(done, _scenes(2))
    store.mark_ready(done, "/tmp/a.mp4")
    current = store.create_video("new")
    store.mark_ready(current, "/tmp/b.mp4")
    runs = store.recent_ready_runs(limit=5, exclude=current)
    assert len(runs) == 1
    assert [s["prompt"] for s in runs[0]] == ["prompt 0", "prompt 1"]


def test_stage_events_are_recorded(store):
    video_id = store.create_video("x")
    store.add_stage_event(video_id, stage="blueprint", event="start", stage_number=3)
    store.add_stage_event(video_id, stage="blueprint", event="end", stage_number=3, duration_ms=12, details={"k": 1})
    events = store.list_stage_events(video_id)
    assert [e["event"] for e in events] == ["start", "end"]
    assert events[1]["duration_ms"] == 12

from __future__ import annotations

from orchestrator import music_client
from orchestrator.contracts import fallback_narration, fallback_skeleton, fallback_structure
from orchestrator.http_json import ExternalServiceError
from orchestrator.music_plan import MAX_MUSIC_PROMPT_CHARS, build_music_plan, build_music_prompt, intensity_hint
from orchestrator.timeline import fill_timeline_with_narration


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def __call__(self) -> float:
        return self.now


def _client(monkeypatch, responses):
    monkeypatch.setenv("MUSIC_API_KEY", "key")
    monkeypatch.setenv("MUSIC_API_URL", "https://music.example/api/v2/generate")
    calls = []

    def fake_request_json(url, payload=None, headers=None, method=None, timeout_sec=None):
        calls.append((url, payload, method))
        item = responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    monkeypatch.setattr(music_client, "request_json", fake_request_json)
    clock = FakeClock()
    return music_client.MusicClient(sleep=clock.sleep, clock=clock), calls, clock


def _plan():
    structure = fallback_structure("")
    timeline = fallback_skeleton(structure)
    narration = fallback_narration(timeline)
    fill_timeline_with_narration(timeline, narration)
    return build_music_plan(structure, timeline, narration)


def test_music_plan_follows_acts_and_beats():
    plan = _plan()
    assert plan["target_duration_sec"] == 120
    assert [a["act_type"] for a in plan["acts"]] == ["vast", "living_dot", "miracle_of_you", "return"]
    assert plan["acts"][1]["start_sec"] == 24.0
    assert plan["acts"][0]["intensity_curve_hint"].endswith("global_intensity=0.50")
    assert len(plan["beats"]) == 15
    assert all(not b["has_narration"] for b in plan["beats"] if b["type"] == "breathing")
    assert any(b["has_narration"] for b in plan["beats"])


def test_intensity_hint_clamps():
    assert intensity_hint("unknown", 40).endswith("global_intensity=1.00")
    assert intensity_hint("vast", 0).startswith("start very low intensity")


def test_music_prompt_is_instrumental_and_bounded():
    prompt = build_music_prompt(_plan(), posture="still_wonder")
    assert prompt.startswith("Instrumental only, no vocals, no lyrics, no speech.")
    assert "Approximately 2 minutes long." in prompt
    assert "still_wonder" in prompt
    assert len(prompt) <= MAX_MUSIC_PROMPT_CHARS
    long_prompt = build_music_prompt(_plan(), posture="x" * 500)
    assert len(long_prompt) == MAX_MUSIC_PROMPT_CHARS
    assert long_prompt.endswith("...")


def test_disabled_without_credentials(monkeypatch):
    monkeypatch.delenv("MUSIC_API_KEY", raising=False)
    monkeypatch.delenv("MUSIC_API_URL", raising=False)
    client = music_client.MusicClient()
    assert client.enabled is False
    assert client.generate_track("calm") is None


def test_generate_track_polls_until_ready(monkeypatch):
    responses = [
        {"workId": "w1"},
        ExternalServiceError("HTTP 404", status=404),
        {"data": {"response_data": [{"extra_message": "still going", "audio_url": ""}]}},
        {"data": {"response_data": [{"extra_message": "All generated successfully.", "audio_url": "https://cdn/track.mp3"}]}},
    ]
    client, calls, clock = _client(monkeypatch, responses)
    assert client.generate_track("calm") == "https://cdn/track.mp3"
    assert calls[0][1] == {"gpt_description_prompt": "calm", "make_instrumental": True, "model": "chirp-v5"}
    assert calls[1][0] == "https://music.example/api/v2/feed?workId=w1"
    assert calls[1][2] == "GET"
    assert clock.sleeps == [9, 9, 9]


def test_rate_limit_retries_with_growing_backoff(monkeypatch):
    responses = [
        ExternalServiceError("HTTP 429", status=429),
        {"message": "Elevated usage, please try again later"},
        {"data": {"task_id": "t3"}},
        {"data": {"response_data": [{"extra_message": "All generated successfully.", "audio_url": "https://cdn/3.mp3"}]}},
    ]
    client, _calls, clock = _client(monkeypatch, responses)
    assert client.generate_track("calm") == "https://cdn/3.mp3"
    assert clock.sleeps[:2] == [30, 60]


def test_failed_generation_returns_none(monkeypatch):
    responses = [{"workId": "w1"}, {"data": {"response_data": [{"fail_message": "content policy"}]}}]
    client, _calls, _clock = _client(monkeypatch, responses)
    assert client.generate_track("calm") is None
    assert "content policy" in client.last_error


def test_poll_gives_up_after_max_wait(monkeypatch):
    monkeypatch.setenv("MUSIC_POLL_MAX_SEC", "20")
    responses = [{"workId": "w1"}] + [{"data": {"response_data": []}}] * 5
    client, _calls, _clock = _client(monkeypatch, responses)
    assert client.generate_track("calm") is None
    assert client.last_error == "music poll timed out"

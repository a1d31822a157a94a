from __future__ import annotations

from orchestrator.contracts import (
    EMPTY_RESPONSE,
    INVALID,
    MISSING_FIELD,
    NOT_AN_OBJECT,
    fallback_narration,
    fallback_skeleton,
    fallback_structure,
    parse_narration,
    parse_skeleton,
    parse_structure,
)


def test_parse_structure_rejects_non_objects():
    assert parse_structure(None).error.reason == EMPTY_RESPONSE
    assert parse_structure({}).error.reason == EMPTY_RESPONSE
    assert parse_structure(["acts"]).error.reason == NOT_AN_OBJECT
    assert parse_structure({"tone": "calm"}).error.reason == MISSING_FIELD
    assert parse_structure({"acts": []}).error.reason == INVALID


def test_parse_structure_fills_defaults_per_act():
    result = parse_structure(
        {
            "acts": [{"act_type": "vast", "duration": 30}, {"act_type": "nonsense"}],
            "intensity_level": 40,
            "narration_style": "chatty",
        }
    )
    assert result.ok
    structure = result.value
    assert structure["acts"][0]["silence_duration"] == 2
    assert structure["acts"][0]["scale_type"] == "cosmic"
    assert structure["acts"][1]["act_type"] == "living_dot"
    assert structure["acts"][1]["duration"] == 40
    assert structure["total_duration"] == 70
    assert structure["intensity_level"] == 10
    assert structure["narration_style"] == "moderate"


def test_parse_skeleton_accepts_fixable_durations():
    raw = {"beats": [{"duration_sec": 8, "act_index": min(3, i // 4), "beat_type": "breathing" if i in (2, 6, 10, 13) else "narrated"} for i in range(15)]}
    result = parse_skeleton(raw, max_act_index=3)
    assert result.ok
    assert result.value["total_duration_sec"] == 120
    assert len(result.value["beats"]) == 15


def test_parse_skeleton_reports_invariant_failures():
    raw = {"beats": [{"duration_sec": 8, "act_index": 0, "beat_type": "narrated"} for _ in range(15)]}
    result = parse_skeleton(raw, max_act_index=3)
    assert not result.ok
    assert result.error.reason == INVALID
    assert "breathing beats" in result.error.detail
    assert parse_skeleton({"plan": []}, max_act_index=3).error.reason == MISSING_FIELD


def test_parse_narration_takes_timing_from_beats():
    timeline = fallback_skeleton(fallback_structure(""))
    narrated = [b for b in timeline["beats"] if b["beat_type"] == "narrated"]
    raw = {"segments": [{"text": "  The sea breathes.  ", "beat_index": 4, "start_time": 999}, {"text": 12}]}
    result = parse_narration(raw, timeline)
    assert result.ok
    first, second = result.value["segments"]
    assert first["text"] == "The sea breathes."
    assert first["beat_index"] == narrated[0]["beat_index"]
    assert first["start_time"] == narrated[0]["start_sec"]
    assert first["act_index"] == narrated[0]["act_index"]
    assert first["word_count"] == 3
    assert second["beat_index"] == narrated[1]["beat_index"]
    assert second["text"] == ""
    assert result.value["total_word_count"] == 3


def test_parse_narration_places_one_segment_per_narrated_beat():
    timeline = fallback_skeleton(fallback_structure(""))
    narrated = [b["beat_index"] for b in timeline["beats"] if b["beat_type"] == "narrated"]
    raw = {"segments": [{"text": f"Line {i}."} for i in range(len(narrated) + 2)]}
    result = parse_narration(raw, timeline)
    assert result.ok
    assert [seg["beat_index"] for seg in result.value["segments"]] == narrated
    assert all(timeline["beats"][i]["beat_type"] == "narrated" for i in narrated)


def test_parse_narration_without_timeline_keeps_explicit_index():
    result = parse_narration({"segments": [{"text": "a", "beat_index": 4}, {"text": "b"}]})
    assert [seg["beat_index"] for seg in result.value["segments"]] == [4, 1]


def test_fallback_narration_is_deterministic_and_silent_on_breathing():
    timeline = fallback_skeleton(fallback_structure(""))
    first = fallback_narration(timeline)
    second = fallback_narration(timeline)
    assert first == second
    for beat, segment in zip(timeline["beats"], first["segments"]):
        if beat["beat_type"] == "breathing":
            assert segment["text"] == ""
        else:
            assert segment["text"]
            assert segment["visual_cue"]


def test_fallback_structure_totals_two_minutes():
    structure = fallback_structure("a quiet morning")
    assert [act["act_type"] for act in structure["acts"]] == ["vast", "living_dot", "miracle_of_you", "return"]
    assert structure["total_duration"] == 120
    assert structure["understanding"]["summary"] == "a quiet morning"

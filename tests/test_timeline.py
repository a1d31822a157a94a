from __future__ import annotations

from orchestrator.contracts import fallback_narration, fallback_structure
from orchestrator.timeline import (
    PLACEHOLDER_PROMPT,
    act_windows,
    align_structure_to_timeline,
    build_fallback_skeleton,
    fill_timeline_with_narration,
    normalize_beat,
    normalize_sum_to_total,
    parse_beats,
    segment_beat_indices,
    shot_plan_from_timeline,
)
from orchestrator.validators import validate_master_timeline


def _beats(durations):
    return parse_beats([{"duration_sec": d, "act_index": 0} for d in durations])


def test_normalize_beat_defaults_unknown_values():
    beat = normalize_beat({"duration_sec": 7, "beat_type": "montage", "act_index": True}, 3, 24)
    assert beat["duration_sec"] == 6
    assert beat["start_sec"] == 24
    assert beat["end_sec"] == 30
    assert beat["act_index"] == 0
    assert beat["beat_type"] == "narrated"
    assert beat["camera_grammar"] == {"motion": "slow_drift", "framing": "wide", "lens": "normal"}
    assert beat["transition_out"] == "cut"


def test_short_timeline_gets_an_extra_beat():
    beats = normalize_sum_to_total(_beats([8] * 14))
    assert len(beats) == 15
    assert sum(b["duration_sec"] for b in beats) == 120
    assert beats[-1]["start_sec"] == 112


def test_short_timeline_upgrades_six_second_beats_first():
    beats = normalize_sum_to_total(_beats([6] * 18))
    assert len(beats) == 18
    assert [b["duration_sec"] for b in beats[:6]] == [8] * 6
    assert sum(b["duration_sec"] for b in beats) == 120


def test_long_timeline_downgrades_eight_second_beats():
    beats = normalize_sum_to_total(_beats([8] * 16))
    assert [b["duration_sec"] for b in beats[:4]] == [6] * 4
    assert sum(b["duration_sec"] for b in beats) == 120
    assert beats[-1]["end_sec"] == 120


def test_exact_timeline_is_unchanged():
    original = _beats([8] * 15)
    beats = normalize_sum_to_total(original)
    assert [b["duration_sec"] for b in beats] == [8] * 15
    assert beats is not original


def test_fallback_skeleton_is_valid_and_bookended():
    structure = fallback_structure("the ocean at night")
    timeline = build_fallback_skeleton(structure)
    assert validate_master_timeline(timeline, max_act_index=3) == []
    beats = timeline["beats"]
    assert beats[0]["visual_category"] == beats[-1]["visual_category"]
    assert sum(1 for b in beats if b["beat_type"] == "breathing") >= 4
    for beat in beats:
        if beat["beat_type"] == "breathing":
            assert beat["render_prompt"] != PLACEHOLDER_PROMPT


def test_align_structure_matches_beat_sums():
    structure = fallback_structure("")
    structure["acts"][0]["duration"] = 99
    timeline = build_fallback_skeleton(fallback_structure(""))
    aligned = align_structure_to_timeline(structure, timeline)
    assert aligned["acts"][0]["duration"] == 24
    assert aligned["total_duration"] == 120
    assert structure["acts"][0]["duration"] == 99
    assert act_windows(aligned)[1] == (24.0, 64.0)


def test_fill_with_fallback_narration_writes_prompts_and_shot_plan():
    structure = fallback_structure("")
    timeline = build_fallback_skeleton(structure)
    narration = fallback_narration(timeline)
    fill_timeline_with_narration(timeline, narration)
    narrated = [b for b in timeline["beats"] if b["beat_type"] == "narrated"]
    assert all(b["narration_text"] for b in narrated)
    assert all(b["render_prompt"] != PLACEHOLDER_PROMPT for b in timeline["beats"])

    plan = shot_plan_from_timeline(timeline, structure)
    assert len(plan) == len(timeline["beats"])
    assert plan[0]["act_type"] == "vast"
    assert plan[-1]["act_type"] == "return"
    assert all(shot["duration"] in (6, 8) for shot in plan)


def test_segment_placement_one_per_beat_or_narrated_only():
    beats = [{"beat_type": t} for t in ("narrated", "breathing", "narrated", "narrated", "breathing")]
    assert segment_beat_indices(beats, 5) == [0, 1, 2, 3, 4]
    assert segment_beat_indices(beats, 3) == [0, 2, 3]
    assert segment_beat_indices(beats, 2) == [0, 2]
    assert segment_beat_indices(beats, 4) == [0, 2, 3]


def test_fill_stamps_segments_with_the_beat_they_landed_on():
    timeline = build_fallback_skeleton(fallback_structure(""))
    narrated = [b["beat_index"] for b in timeline["beats"] if b["beat_type"] == "narrated"]
    narration = {"segments": [{"text": f"Line {i}.", "beat_index": 0} for i in narrated]}
    fill_timeline_with_narration(timeline, narration)
    assert [seg["beat_index"] for seg in narration["segments"]] == narrated
    for seg in narration["segments"]:
        beat = timeline["beats"][seg["beat_index"]]
        assert beat["narration_text"] == seg["text"]
        assert seg["act_index"] == beat["act_index"]

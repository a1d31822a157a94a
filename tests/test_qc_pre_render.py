from __future__ import annotations

from copy import deepcopy

import pytest

from mcp_servers.qc import rules
from mcp_servers.qc.report import QCHardViolation, QCReport
from mcp_servers.qc.server import QCService
from orchestrator.avoid_list import build_fingerprints
from orchestrator.contracts import fallback_narration, fallback_skeleton, fallback_structure, parse_narration
from orchestrator.pipeline import _scene_rows
from orchestrator.timeline import align_structure_to_timeline, fill_timeline_with_narration, shot_plan_from_timeline


def _plan():
    structure = fallback_structure("a walk by the river")
    timeline = fallback_skeleton(structure)
    narration = fallback_narration(timeline)
    fill_timeline_with_narration(timeline, narration)
    aligned = align_structure_to_timeline(structure, timeline)
    return aligned, narration, shot_plan_from_timeline(timeline, aligned), timeline


def _fix_ids(result) -> list[str]:
    return [fix["id"] for fix in result["report"]["fixes_applied"]]


@pytest.fixture
def service(tmp_path):
    return QCService(artifact_root=str(tmp_path / "artifacts"))


def test_fallback_plan_passes_hard_gates(service):
    structure, narration, shot_plan, timeline = _plan()
    result = service.qc_pre_render(structure, narration, shot_plan, timeline)
    assert result["passed"] is True
    assert result["hard_failures"] == []
    assert result["report"]["stage"] == "pre_gen"
    assert result["report"]["summary"]["total"] > 0


def test_inputs_are_not_mutated(service):
    structure, narration, shot_plan, timeline = _plan()
    narration["segments"][0]["text"] = "You should be grateful for the sky."
    before = deepcopy((structure, narration, shot_plan, timeline))
    service.qc_pre_render(structure, narration, shot_plan, timeline)
    assert (structure, narration, shot_plan, timeline) == before


def test_banned_sentence_is_trimmed_and_written_back(service):
    structure, narration, shot_plan, timeline = _plan()
    narrated = next(i for i, b in enumerate(timeline["beats"]) if b["beat_type"] == "narrated")
    narration["segments"][narrated]["text"] = "The river keeps moving. Stay positive and be great."
    result = service.qc_pre_render(structure, narration, shot_plan, timeline)
    assert result["narration"]["segments"][narrated]["text"] == "The river keeps moving."
    assert result["timeline"]["beats"][narrated]["narration_text"] == "The river keeps moving."
    assert f"narration_trim_{narrated}" in _fix_ids(result)


def test_fully_banned_segment_uses_act_fallback(service):
    structure, narration, shot_plan, timeline = _plan()
    narration["segments"][0]["text"] = "Everything happens for a reason."
    result = service.qc_pre_render(structure, narration, shot_plan, timeline)
    assert result["narration"]["segments"][0]["text"] == "From far away, the world turns in silence."
    assert "narration_replace_0" in _fix_ids(result)


def test_breathing_beat_text_is_cleared(service):
    structure, narration, shot_plan, timeline = _plan()
    breathing = next(i for i, b in enumerate(timeline["beats"]) if b["beat_type"] == "breathing")
    narration["segments"][breathing]["text"] = "Words where there should be none."
    result = service.qc_pre_render(structure, narration, shot_plan, timeline)
    assert result["narration"]["segments"][breathing]["text"] == ""
    assert f"narration_breathing_silence_{breathing}" in _fix_ids(result)


def test_over_length_segment_is_trimmed_at_sentence_boundary(service):
    structure, narration, shot_plan, timeline = _plan()
    long_text = "The tide comes in slowly. " + " ".join(["water"] * 40) + "."
    narration["segments"][0]["text"] = long_text
    result = service.qc_pre_render(structure, narration, shot_plan, timeline)
    assert result["narration"]["segments"][0]["text"] == "The tide comes in slowly."
    assert "narration_trim_length_0" in _fix_ids(result)


def test_same_setting_run_is_a_hard_failure(service):
    structure, narration, shot_plan, timeline = _plan()
    for shot in shot_plan:
        shot["setting"] = "urban"
    result = service.qc_pre_render(structure, narration, shot_plan, timeline)
    assert result["passed"] is False
    assert "diversity_no_repeat_consecutive" in result["hard_failures"]


def test_too_few_breathing_beats_is_a_timeline_failure(service):
    structure, narration, shot_plan, timeline = _plan()
    for beat in timeline["beats"]:
        beat["beat_type"] = "narrated"
    result = service.qc_pre_render(structure, narration, shot_plan, timeline)
    assert "timeline_breathing_beats" in result["hard_failures"]


def test_return_act_never_stays_in_space(service):
    structure, narration, shot_plan, timeline = _plan()
    for shot in shot_plan:
        if shot["act_index"] == 3:
            shot["setting"] = "space"
    result = service.qc_pre_render(structure, narration, shot_plan, timeline)
    assert all(shot["setting"] != "space" for shot in result["shot_plan"] if shot["act_index"] == 3)
    assert "return_no_space" in _fix_ids(result)


def test_vast_opening_silence_is_enforced(service):
    structure, narration, shot_plan, timeline = _plan()
    structure["acts"][0]["silence_duration"] = 0
    result = service.qc_pre_render(structure, narration, shot_plan, timeline)
    assert result["structure"]["acts"][0]["silence_duration"] == 2


def test_duplicate_prompts_are_made_unique(service):
    structure, narration, shot_plan, timeline = _plan()
    for shot in shot_plan:
        shot["prompt"] = "Same wide shot of a field"
    result = service.qc_pre_render(structure, narration, shot_plan, timeline)
    prompts = [shot["prompt"] for shot in result["shot_plan"]]
    assert len(set(prompts)) == len(prompts)
    assert result["timeline"]["beats"][1]["render_prompt"] == prompts[1]


def test_identical_fingerprint_fails_novelty(service):
    structure, narration, shot_plan, timeline = _plan()
    first = service.qc_pre_render(structure, narration, shot_plan, timeline)
    fingerprints = [fp.to_dict() for fp in build_fingerprints([_scene_rows(first["timeline"], first["shot_plan"])])]
    assert rules.novelty_score(first["shot_plan"], fingerprints) == 0.0

    again = service.qc_pre_render(
        first["structure"], first["narration"], first["shot_plan"], first["timeline"], fingerprints=fingerprints
    )
    assert "novelty_vs_last_n" in again["hard_failures"]


def test_unrelated_fingerprint_keeps_plan_novel(service):
    structure, narration, shot_plan, timeline = _plan()
    fingerprints = [{"motifs": ["A lighthouse in fog"], "act_types": [], "settings": []}]
    assert rules.novelty_score(shot_plan, fingerprints) == 1.0
    result = service.qc_pre_render(structure, narration, shot_plan, timeline, fingerprints=fingerprints)
    assert "novelty_vs_last_n" not in result["hard_failures"]


def test_narrated_only_segments_stay_on_their_beats(service):
    structure = fallback_structure("a walk by the river")
    timeline = fallback_skeleton(structure)
    narrated = [b["beat_index"] for b in timeline["beats"] if b["beat_type"] == "narrated"]
    assert len(narrated) < len(timeline["beats"])
    raw = {"segments": [{"text": f"Line for narrated beat {i}."} for i in narrated]}
    narration = parse_narration(raw, timeline).value
    fill_timeline_with_narration(timeline, narration)
    aligned = align_structure_to_timeline(structure, timeline)
    shot_plan = shot_plan_from_timeline(timeline, aligned)

    result = service.qc_pre_render(aligned, narration, shot_plan, timeline)

    assert [seg["beat_index"] for seg in result["narration"]["segments"]] == narrated
    assert not [fix for fix in _fix_ids(result) if fix.startswith("narration_")]
    for beat in result["timeline"]["beats"]:
        if beat["beat_type"] == "narrated":
            assert beat["narration_text"] == f"Line for narrated beat {beat['beat_index']}."
        else:
            assert not beat.get("narration_text")


def test_segments_without_distinct_beats_are_placed_on_narrated_beats(service):
    structure, _, shot_plan, timeline = _plan()
    narrated = [b["beat_index"] for b in timeline["beats"] if b["beat_type"] == "narrated"]
    narration = {"segments": [{"text": f"Line for narrated beat {i}.", "beat_index": 0} for i in narrated]}

    result = service.qc_pre_render(structure, narration, shot_plan, timeline)

    assert "narration_beat_mapping" in _fix_ids(result)
    assert [seg["beat_index"] for seg in result["narration"]["segments"]] == narrated
    for i in narrated:
        assert result["timeline"]["beats"][i]["narration_text"] == f"Line for narrated beat {i}."


def test_second_pass_over_repaired_plan_applies_no_fixes(service):
    structure, narration, shot_plan, timeline = _plan()
    structure["acts"][0]["silence_duration"] = 0
    for shot in shot_plan[:3]:
        shot["prompt"] = "Same wide shot of a field"
    spoken = next(seg for seg in narration["segments"] if seg["text"])
    spoken["text"] = "You should stay positive. The river keeps moving."
    first = service.qc_pre_render(structure, narration, shot_plan, timeline)
    assert _fix_ids(first)

    second = service.qc_pre_render(first["structure"], first["narration"], first["shot_plan"], first["timeline"])
    assert second["report"]["fixes_applied"] == []
    assert second["shot_plan"] == first["shot_plan"]
    assert second["timeline"] == first["timeline"]


def test_avoid_list_overlap_is_only_a_warning(service):
    structure, narration, shot_plan, timeline = _plan()
    snippet = shot_plan[0]["prompt"][:20]
    result = service.qc_pre_render(structure, narration, shot_plan, timeline, avoid_list={"prompt_snippets": [snippet]})
    check = next(c for c in result["report"]["checks"] if c["id"] == "avoid_list_prompt_overlap")
    assert check["passed"] is False
    assert check["severity"] == "warn"
    assert result["passed"] is True


def test_finalized_report_rejects_new_checks():
    report = QCReport("pre_gen")
    report.add_check("a", "structure", "warn", False, "msg")
    summary = report.finalize()["summary"]
    assert summary == {"total": 1, "passed": 0, "failed": 1, "warnings": 1}
    with pytest.raises(RuntimeError):
        report.add_fix("b", "desc", 1, 2)


def test_hard_violation_carries_failures():
    exc = QCHardViolation("gate", failures=["timeline_breathing_beats"])
    assert exc.failures == ["timeline_breathing_beats"]
    assert str(exc) == "gate"

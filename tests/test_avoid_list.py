from __future__ import annotations

from orchestrator.avoid_list import (
    AvoidList,
    build_avoid_list,
    build_fingerprints,
    extract_snippet,
    merge_shot_plan_into_avoid_list,
)


def _run(*scenes):
    return list(scenes)


def test_extract_snippet_keeps_short_prompts_and_clips_long_ones():
    assert extract_snippet("  Desert at dawn  ") == "Desert at dawn"
    assert extract_snippet("") is None
    assert extract_snippet(None) is None
    long_prompt = "A slow aerial drift over rice terraces in morning fog with farmers walking between the rows"
    assert extract_snippet(long_prompt) == "A slow aerial drift over rice terraces in"


def test_avoid_list_deduplicates_across_runs():
    runs = [
        _run(
            {"act_type": "vast", "setting": "space", "micro_action": "drift", "prompt": "Earth from orbit"},
            {"act_type": "return", "setting": "urban", "micro_action": "", "prompt": None, "description": "Town square"},
        ),
        _run({"act_type": "vast", "setting": "space", "micro_action": "drift", "prompt": "Earth from orbit"}),
    ]
    avoid = build_avoid_list(runs)
    assert avoid.act_types == ["vast", "return"]
    assert avoid.settings == ["space", "urban"]
    assert avoid.micro_actions == ["drift"]
    assert avoid.prompt_snippets == ["Earth from orbit", "Town square"]


def test_fingerprints_are_per_run():
    runs = [
        _run({"act_type": "vast", "setting": "space", "description": "Earth from orbit"}),
        _run({"act_type": "living_dot", "setting": "rural", "description": "x" * 120}),
    ]
    fps = build_fingerprints(runs)
    assert len(fps) == 2
    assert fps[0].motifs == ["Earth from orbit"]
    assert fps[1].motifs == ["x" * 80]
    assert fps[1].to_dict()["settings"] == ["rural"]


def test_merge_shot_plan_returns_a_new_list():
    avoid = AvoidList(settings=["space"])
    merged = merge_shot_plan_into_avoid_list(avoid, [{"setting": "urban", "act_type": "return", "prompt": "Street at dusk"}])
    assert merged.settings == ["space", "urban"]
    assert merged.prompt_snippets == ["Street at dusk"]
    assert avoid.settings == ["space"]


def test_round_trip_through_dict():
    avoid = AvoidList(act_types=["vast"], prompt_snippets=["a"])
    assert AvoidList.from_dict(avoid.to_dict()) == avoid
    assert AvoidList.from_dict(None) == AvoidList()

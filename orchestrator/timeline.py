"""Master timeline construction: beat normalization, duration repair, narration fill and shot plans."""
from copy import deepcopy
from typing import Any, Dict, List, Optional, Tuple

from .render_prompts import NATURAL_WORLD_PROMPTS
from .vocab import (
    ALLOWED_DURATIONS,
    MAX_BEATS,
    MIN_BREATHING_BEATS,
    TOTAL_DURATION_SEC,
    ActType,
    BeatType,
    CameraMotion,
    Contrast,
    Framing,
    Lens,
    LightTime,
    SceneSource,
    Transition,
    VisualCategory,
    act_type_for_index,
    coerce,
    scene_time_for_light,
    setting_for_category,
)

# Skeleton prompts are replaced once narration is written.
PLACEHOLDER_PROMPT = "Narrated"
DEFAULT_PROMPT = "Observational shot."
MAX_PROMPT_CHARS = 300
MAX_BREATHING_PROMPT_CHARS = 200

BREATHING_BASE_PROMPTS: Dict[str, str] = {
    VisualCategory.COSMOS.value: "Starfield or Earth from space, atmospheric.",
    VisualCategory.EARTH.value: "Wide natural landscape or ecosystem, calm.",
    VisualCategory.HUMAN.value: "Distant human activity or street, observational.",
    VisualCategory.NATURE.value: "Nature detail or landscape, still.",
    VisualCategory.ABSTRACT.value: "Quiet interior or abstract texture.",
    VisualCategory.DOMESTIC.value: "Quiet domestic detail, warm light.",
    VisualCategory.OCEAN.value: "Ocean or water, slow movement.",
    VisualCategory.DESERT.value: "Desert or open land, vast.",
    VisualCategory.INDUSTRIAL.value: "Industrial or urban detail, still.",
    VisualCategory.CONFLICT.value: "Public space, neutral.",
}
DEFAULT_BREATHING_BASE = "Atmospheric observational shot."

# Deterministic per-act look used when the planner cannot produce a skeleton.
_FALLBACK_ACT_LOOK: Dict[str, Dict[str, Any]] = {
    ActType.VAST.value: {
        "categories": ["earth", "cosmos", "cosmos", "ocean"],
        "motion": "slow_drift",
        "framing": "wide",
        "time_of_day": "night",
    },
    ActType.LIVING_DOT.value: {
        "categories": ["ocean", "human", "nature", "industrial", "desert"],
        "motion": "locked_off",
        "framing": "wide",
        "time_of_day": "day",
    },
    ActType.MIRACLE_OF_YOU.value: {
        "categories": ["domestic", "nature", "abstract", "ocean"],
        "motion": "slow_push",
        "framing": "close",
        "time_of_day": "dawn",
    },
    ActType.RETURN.value: {
        "categories": ["human", "industrial", "earth"],
        "motion": "locked_off",
        "framing": "medium",
        "time_of_day": "dusk",
    },
}
_FALLBACK_BEAT_SEC = 8


def normalize_beat(raw: Dict[str, Any], index: int, start_sec: float) -> Dict[str, Any]:
    """Coerce one planner beat into a well-formed beat dict placed at ``start_sec``."""
    raw = raw if isinstance(raw, dict) else {}
    duration = raw.get("duration_sec")
    if isinstance(duration, bool) or duration not in ALLOWED_DURATIONS:
        duration = ALLOWED_DURATIONS[0]
    act_index = raw.get("act_index")
    if isinstance(act_index, bool) or not isinstance(act_index, (int, float)):
        act_index = 0
    camera = raw.get("camera_grammar") if isinstance(raw.get("camera_grammar"), dict) else {}
    lighting = raw.get("lighting") if isinstance(raw.get("lighting"), dict) else {}
    narration_text = raw.get("narration_text")
    prompt = raw.get("render_prompt")
    return {
        "beat_index": index,
        "act_index": max(0, int(act_index)),
        "start_sec": start_sec,
        "end_sec": start_sec + duration,
        "duration_sec": int(duration),
        "beat_type": coerce(BeatType, raw.get("beat_type"), BeatType.NARRATED),
        "visual_category": coerce(VisualCategory, raw.get("visual_category"), VisualCategory.EARTH),
        "camera_grammar": {
            "motion": coerce(CameraMotion, camera.get("motion"), CameraMotion.SLOW_DRIFT),
            "framing": coerce(Framing, camera.get("framing"), Framing.WIDE),
            "lens": coerce(Lens, camera.get("lens"), Lens.NORMAL),
        },
        "lighting": {
            "time_of_day": coerce(LightTime, lighting.get("time_of_day"), LightTime.DAY),
            "contrast": coerce(Contrast, lighting.get("contrast"), Contrast.LOW),
        },
        "transition_out": coerce(Transition, raw.get("transition_out"), Transition.CUT),
        "narration_text": narration_text if isinstance(narration_text, str) else None,
        "render_prompt": prompt if isinstance(prompt, str) else "",
    }


def parse_beats(raw_beats: List[Any]) -> List[Dict[str, Any]]:
    beats: List[Dict[str, Any]] = []
    cursor = 0
    for i, raw in enumerate(raw_beats or []):
        beat = normalize_beat(raw, i, cursor)
        cursor = beat["end_sec"]
        beats.append(beat)
    return beats


def recompute_timing(beats: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    cursor = 0
    for i, beat in enumerate(beats):
        beat["beat_index"] = i
        beat["start_sec"] = cursor
        beat["end_sec"] = cursor + beat["duration_sec"]
        cursor = beat["end_sec"]
    return beats


def normalize_sum_to_total(beats: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Close duration drift using only allowed durations.

    Upgrades the first 6s beat to 8s while the total is short by at least 2s,
    appends a copy of the last beat when nothing can be upgraded and the beat
    ceiling allows, and downgrades the first 8s beat while the total is over.
    Returns a new list; an already-exact timeline comes back unchanged.
    """
    short, long_ = ALLOWED_DURATIONS[0], ALLOWED_DURATIONS[-1]
    step = long_ - short
    out = [dict(beat) for beat in beats]
    for beat in out:
        if beat.get("duration_sec") not in ALLOWED_DURATIONS:
            beat["duration_sec"] = short
    delta = TOTAL_DURATION_SEC - sum(beat["duration_sec"] for beat in out)

    while delta != 0 and abs(delta) <= 100:
        if delta > 0:
            idx = _first_with_duration(out, short) if delta >= step else None
            if idx is not None:
                out[idx]["duration_sec"] = long_
                delta -= step
            elif out and len(out) < MAX_BEATS and delta >= short:
                added = deepcopy(out[-1])
                added["duration_sec"] = long_ if delta >= long_ else short
                out.append(added)
                delta -= added["duration_sec"]
            else:
                break
        else:
            idx = _first_with_duration(out, long_) if delta <= -step else None
            if idx is None:
                break
            out[idx]["duration_sec"] = short
            delta += step

    return recompute_timing(out)


def _first_with_duration(beats: List[Dict[str, Any]], duration: int) -> Optional[int]:
    for i, beat in enumerate(beats):
        if beat["duration_sec"] == duration:
            return i
    return None


def build_timeline(raw: Dict[str, Any]) -> Dict[str, Any]:
    beats = normalize_sum_to_total(parse_beats((raw or {}).get("beats") or []))
    return {"total_duration_sec": TOTAL_DURATION_SEC, "beats": beats}


def build_fallback_skeleton(structure: Dict[str, Any]) -> Dict[str, Any]:
    """Hand-authored skeleton: one breathing beat per act, one look per act, matching bookends."""
    acts = structure.get("acts") or []
    beats: List[Dict[str, Any]] = []
    for act_index, act in enumerate(acts):
        act_type = act.get("act_type") or act_type_for_index(act_index)
        look = _FALLBACK_ACT_LOOK.get(act_type, _FALLBACK_ACT_LOOK[ActType.RETURN.value])
        count = max(1, int(round(float(act.get("duration") or 0) / _FALLBACK_BEAT_SEC)))
        is_last_act = act_index == len(acts) - 1
        breathing_at = 1 if is_last_act and count > 1 else count - 1
        for i in range(count):
            categories = look["categories"]
            beats.append(
                {
                    "act_index": act_index,
                    "duration_sec": _FALLBACK_BEAT_SEC,
                    "beat_type": BeatType.BREATHING.value if i == breathing_at else BeatType.NARRATED.value,
                    "visual_category": categories[i % len(categories)],
                    "camera_grammar": {"motion": look["motion"], "framing": look["framing"], "lens": "normal"},
                    "lighting": {"time_of_day": look["time_of_day"], "contrast": "low"},
                    "transition_out": Transition.DISSOLVE.value if i == count - 1 and not is_last_act else "cut",
                    "narration_text": None,
                    "render_prompt": PLACEHOLDER_PROMPT,
                }
            )

    if beats:
        # Open and close at the same scale.
        beats[-1]["visual_category"] = beats[0]["visual_category"]
        beats[-1]["camera_grammar"] = dict(beats[0]["camera_grammar"], motion=beats[-1]["camera_grammar"]["motion"])
    _top_up_breathing(beats)
    timeline = build_timeline({"beats": beats})
    for beat in timeline["beats"]:
        if beat["render_prompt"] == PLACEHOLDER_PROMPT and beat["beat_type"] != BeatType.NARRATED.value:
            beat["render_prompt"] = breathing_render_prompt(beat)
    return timeline


def _top_up_breathing(beats: List[Dict[str, Any]]) -> None:
    breathing = sum(1 for beat in beats if beat["beat_type"] == BeatType.BREATHING.value)
    for i, beat in enumerate(beats):
        if breathing >= MIN_BREATHING_BEATS:
            return
        if i % 3 == 2 and beat["beat_type"] == BeatType.NARRATED.value:
            beat["beat_type"] = BeatType.BREATHING.value
            breathing += 1


def align_structure_to_timeline(structure: Dict[str, Any], timeline: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``structure`` whose act durations equal the sum of their beats."""
    aligned = deepcopy(structure)
    sums: Dict[int, int] = {}
    for beat in timeline.get("beats") or []:
        sums[beat["act_index"]] = sums.get(beat["act_index"], 0) + beat["duration_sec"]
    for i, act in enumerate(aligned.get("acts") or []):
        if i in sums:
            act["duration"] = sums[i]
    aligned["total_duration"] = sum(act.get("duration") or 0 for act in aligned.get("acts") or [])
    return aligned


def segment_beat_indices(beats: List[Dict[str, Any]], segment_count: int) -> List[int]:
    """Beat index each narration segment lands on, in segment order.

    One segment per beat when the counts match; otherwise segments run in order
    over the narrated beats and any past the last narrated beat land nowhere.
    """
    if segment_count == len(beats):
        return list(range(segment_count))
    narrated = [i for i, beat in enumerate(beats) if beat["beat_type"] == BeatType.NARRATED.value]
    return narrated[:segment_count]


def fill_timeline_with_narration(timeline: Dict[str, Any], narration: Dict[str, Any]) -> Dict[str, Any]:
    """Write narration text and visual prompts onto the beats in place.

    Each segment is stamped with the ``beat_index`` it was written to (see
    ``segment_beat_indices``), so later repairs pair segments with the same beats.
    """
    beats = timeline.get("beats") or []
    segments = narration.get("segments") or []
    by_beat: Dict[int, Dict[str, Any]] = {}
    for segment, beat_index in zip(segments, segment_beat_indices(beats, len(segments))):
        segment["beat_index"] = beat_index
        segment["act_index"] = beats[beat_index]["act_index"]
        by_beat[beat_index] = segment

    for index, beat in enumerate(beats):
        segment = by_beat.get(index)
        if beat["beat_type"] == BeatType.NARRATED.value:
            if segment is not None:
                text = (segment.get("text") or "").strip()
                if text:
                    beat["narration_text"] = text
                beat["render_prompt"] = _segment_prompt(segment, beat)
        elif segment is not None and segment.get("visual_description"):
            beat["render_prompt"] = segment["visual_description"][:MAX_PROMPT_CHARS]
        elif not beat.get("render_prompt") or beat["render_prompt"] == PLACEHOLDER_PROMPT:
            beat["render_prompt"] = breathing_render_prompt(beat)
    return timeline


def _segment_prompt(segment: Dict[str, Any], beat: Dict[str, Any]) -> str:
    prompt = segment.get("visual_description") or segment.get("visual_cue") or beat.get("render_prompt") or DEFAULT_PROMPT
    return prompt[:MAX_PROMPT_CHARS]


def breathing_render_prompt(beat: Dict[str, Any]) -> str:
    if beat.get("act_index") == 2:
        return NATURAL_WORLD_PROMPTS[int(beat.get("beat_index") or 0) % len(NATURAL_WORLD_PROMPTS)][
            :MAX_BREATHING_PROMPT_CHARS
        ]
    camera = beat.get("camera_grammar") or {}
    lighting = beat.get("lighting") or {}
    motion = camera.get("motion", CameraMotion.SLOW_DRIFT.value)
    if motion == CameraMotion.SLOW_DRIFT.value:
        motion = "slow drift"
    base = BREATHING_BASE_PROMPTS.get(beat.get("visual_category") or "", DEFAULT_BREATHING_BASE)
    text = f"{base} {camera.get('framing', 'wide')} shot, {motion}, {lighting.get('time_of_day', 'day')} light."
    return text[:MAX_BREATHING_PROMPT_CHARS]


def shot_plan_from_timeline(timeline: Dict[str, Any], structure: Dict[str, Any]) -> List[Dict[str, Any]]:
    acts = structure.get("acts") or []
    plan: List[Dict[str, Any]] = []
    for beat in timeline.get("beats") or []:
        act_index = min(max(0, beat["act_index"]), max(0, len(acts) - 1))
        act = acts[act_index] if acts else {}
        prompt = beat.get("render_prompt") or ""
        plan.append(
            {
                "act_index": act_index,
                "clip_index": beat["beat_index"],
                "beat_index": beat["beat_index"],
                "duration": beat["duration_sec"],
                "description": prompt[:200],
                "micro_action": beat.get("narration_text") or "",
                "prompt": prompt,
                "style_modifiers": [],
                "time_of_day": scene_time_for_light((beat.get("lighting") or {}).get("time_of_day")),
                "setting": setting_for_category(beat.get("visual_category")),
                "source": SceneSource.GEN.value,
                "act_type": act.get("act_type"),
            }
        )
    return plan


def act_windows(structure: Dict[str, Any]) -> List[Tuple[float, float]]:
    windows: List[Tuple[float, float]] = []
    cursor = 0.0
    for act in structure.get("acts") or []:
        duration = float(act.get("duration") or 0)
        windows.append((cursor, cursor + duration))
        cursor += duration
    return windows

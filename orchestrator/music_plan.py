"""Read-only music plan derived from structure, timeline and narration."""
from typing import Any, Dict, List

from .vocab import ActType, BeatType

MAX_MUSIC_PROMPT_CHARS = 400

ACT_MOODS: Dict[str, str] = {
    ActType.VAST.value: "cosmic, sparse, patient, almost no rhythm, wide ambient pads",
    ActType.LIVING_DOT.value: "earthly continuity, gentle motion, subtle pulses, natural textures",
    ActType.MIRACLE_OF_YOU.value: "intimate, warm, close, small-scale textures and soft piano or guitar",
    ActType.RETURN.value: "ordinary, neutral, grounded, unobtrusive, quiet closure",
}
DEFAULT_MOOD = "quiet, observational ambient bed, non-intrusive"

_INTENSITY_HINTS: Dict[str, str] = {
    ActType.VAST.value: "start very low intensity and stay mostly low; occasional gentle swells.",
    ActType.LIVING_DOT.value: "slightly more motion than vast, but still subtle. keep intensity in the low-to-medium range.",
    ActType.MIRACLE_OF_YOU.value: "allow warm harmonic movement and a bit more presence, but no big builds. medium intensity at most.",
    ActType.RETURN.value: "gradually come back down to low intensity by the end, with stable harmony.",
}


def intensity_hint(act_type: str, intensity_level: float) -> str:
    clamped = max(0.0, min(1.0, float(intensity_level or 0) / 10))
    base = _INTENSITY_HINTS.get(act_type, "keep intensity low and stable.")
    return f"{base} global_intensity={clamped:.2f}"


def build_music_plan(structure: Dict[str, Any], timeline: Dict[str, Any], narration: Dict[str, Any]) -> Dict[str, Any]:
    acts: List[Dict[str, Any]] = []
    cursor = 0.0
    for index, act in enumerate(structure.get("acts") or []):
        duration = float(act.get("duration") or 0)
        act_type = act.get("act_type") or ""
        acts.append(
            {
                "index": index,
                "act_type": act_type,
                "start_sec": cursor,
                "end_sec": cursor + duration,
                "mood": ACT_MOODS.get(act_type, DEFAULT_MOOD),
                "intensity_curve_hint": intensity_hint(act_type, structure.get("intensity_level") or 5),
            }
        )
        cursor += duration

    narrated_beats = {
        seg["beat_index"]
        for seg in narration.get("segments") or []
        if isinstance(seg.get("beat_index"), int) and (seg.get("text") or "").strip()
    }
    beats = [
        {
            "start_sec": beat["start_sec"],
            "duration_sec": beat["duration_sec"],
            "type": beat["beat_type"],
            "act_index": beat["act_index"],
            "has_narration": beat["beat_type"] == BeatType.NARRATED.value
            and (bool(beat.get("narration_text")) or beat["beat_index"] in narrated_beats),
        }
        for beat in timeline.get("beats") or []
    ]
    return {"target_duration_sec": structure.get("total_duration") or cursor, "acts": acts, "beats": beats}


def build_music_prompt(plan: Dict[str, Any], posture: str = "quiet_awe") -> str:
    """Short instrumental-only style prompt; no narrative content reaches the music model."""
    first_mood = plan["acts"][0]["mood"] if plan.get("acts") else "quiet ambient"
    mood_words = ", ".join(part.strip() for part in first_mood.split(",")[:2])
    minutes = round(float(plan.get("target_duration_sec") or 0) / 60)
    prompt = " ".join(
        [
            "Instrumental only, no vocals, no lyrics, no speech.",
            "Ambient documentary score,",
            mood_words + ",",
            "slow tempo, soft pads, minimal or no drums, contemplative and patient.",
            f"Perspective posture: {posture}.",
            "Naturalistic, no cinematic builds or dramatic hits.",
            f"Approximately {minutes} minutes long.",
        ]
    )
    if len(prompt) > MAX_MUSIC_PROMPT_CHARS:
        prompt = prompt[: MAX_MUSIC_PROMPT_CHARS - 3] + "..."
    return prompt

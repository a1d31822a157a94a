"""Parse-with-validation boundary for planner responses, plus hand-authored fallbacks."""
from dataclasses import dataclass
from typing import Any, Dict, Generic, List, Optional, TypeVar

from .timeline import build_fallback_skeleton, build_timeline, segment_beat_indices
from .validators import validate_master_timeline
from .vocab import (
    ActType,
    BeatType,
    Motif,
    NarrationStyle,
    SceneSetting,
    ScaleType,
    ShotType,
    act_type_for_index,
    coerce,
    is_member,
)

T = TypeVar("T")

EMPTY_RESPONSE = "empty_response"
NOT_AN_OBJECT = "not_an_object"
MISSING_FIELD = "missing_field"
INVALID = "invalid"

FALLBACK_ACT_DURATIONS: Dict[str, int] = {
    ActType.VAST.value: 24,
    ActType.LIVING_DOT.value: 40,
    ActType.MIRACLE_OF_YOU.value: 32,
    ActType.RETURN.value: 24,
}

_ACT_SCALE: Dict[str, str] = {
    ActType.VAST.value: ScaleType.COSMIC.value,
    ActType.LIVING_DOT.value: ScaleType.GLOBAL.value,
    ActType.MIRACLE_OF_YOU.value: ScaleType.PERSONAL.value,
    ActType.RETURN.value: ScaleType.HUMAN.value,
}
_SCALE_SHOT: Dict[str, str] = {
    ScaleType.COSMIC.value: ShotType.SLOW_DRIFT.value,
    ScaleType.GLOBAL.value: ShotType.AERIAL.value,
    ScaleType.PERSONAL.value: ShotType.MACRO.value,
    ScaleType.HUMAN.value: ShotType.WIDE.value,
}
_SCALE_SETTING: Dict[str, str] = {
    ScaleType.COSMIC.value: SceneSetting.SPACE.value,
    ScaleType.GLOBAL.value: SceneSetting.RURAL.value,
    ScaleType.PERSONAL.value: SceneSetting.INTERIOR.value,
    ScaleType.HUMAN.value: SceneSetting.URBAN.value,
}

DEFAULT_POSTURE = "quiet_awe"
SPEECH_WORDS_PER_SEC = 2.0

# (text, visual cue, motif) per act; picked by beat index so runs are reproducible.
FALLBACK_LINES: List[List[tuple]] = [
    [
        ("From far away, the world turns in silence.", "Earth seen from orbit, slow drift, quiet light", "earth_from_space"),
        ("Somewhere past the atmosphere, the noise stops.", "Stars slowly wheeling behind the dark curve of the planet", "starfield"),
        ("Light takes eight minutes to cross from the sun to here.", "Sunlight creeping across the terminator line on a blue planet", "earth_from_space"),
        ("No one out there is keeping score.", "Deep field stars drifting in absolute stillness", "starfield"),
        ("The galaxy turns without urgency, without audience.", "Milky Way arm rotating in time-lapse from a mountain summit", "starfield"),
    ],
    [
        ("On the surface, life moves through water, soil, and streets.", "River delta feeding wetlands with birds in motion", "human_labor"),
        ("Roots push through concrete. Tides fill and empty.", "Weeds growing through cracks in an old parking lot at dawn", "forest_canopy"),
        ("Cities hum with ten million unfinished conversations.", "Aerial view of rush-hour traffic flowing like blood cells", "crowd_motion"),
        ("A whale surfaces, breathes, and descends again.", "Humpback whale breaching in grey open ocean", "ocean_current"),
        ("Somewhere a field is being plowed before anyone wakes.", "Tractor headlights cutting through pre-dawn mist over flat farmland", "human_labor"),
    ],
    [
        ("A whale moves through silence, unhurried.", "Whale moving through deep blue ocean, soft underwater light", "ocean_current"),
        ("A falcon rides the wind above the canyon, patient.", "Falcon soaring over a canyon at golden hour, wide shot", "mountain_ridge"),
        ("The planet turns. Half in darkness, half in light.", "Earth from space at night, day-night terminator, slow drift", "earth_from_space"),
        ("In the deep, light comes from living things.", "Underwater bioluminescence in deep ocean, soft blue light", "ocean_current"),
        ("Fire meets the sea. The earth is still becoming.", "Volcanic lava flow meeting the ocean at dusk, wide shot", "mountain_ridge"),
    ],
    [
        ("The floor is still holding you.", "Soft natural light falling across a wooden floor, dust motes drifting", "quiet_return"),
        ("The air is still entering.", "Wind moving through tall grass at golden hour, slow and steady", "quiet_return"),
        ("Light is still reaching your eyes.", "Morning sunlight slowly crossing a stone wall, warm and unhurried", "quiet_return"),
        ("Nothing here has paused to wait for you to understand it.", "Wide shot of a river continuing downstream through a quiet valley", "quiet_return"),
        ("Ordinary life continues, patient and unfinished.", "A single tree standing in open landscape under soft overcast sky", "quiet_return"),
    ],
]


@dataclass(frozen=True)
class ParseFailure:
    reason: str
    detail: str = ""

    def __str__(self) -> str:
        return f"{self.reason}:{self.detail}" if self.detail else self.reason


@dataclass
class ParseResult(Generic[T]):
    value: Optional[T] = None
    error: Optional[ParseFailure] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.value is not None

    @classmethod
    def success(cls, value: T) -> "ParseResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, reason: str, detail: str = "") -> "ParseResult[T]":
        return cls(error=ParseFailure(reason, detail))


def _check_object(raw: Any) -> Optional[ParseResult]:
    if raw is None or raw == "" or raw == {}:
        return ParseResult.failure(EMPTY_RESPONSE)
    if not isinstance(raw, dict):
        return ParseResult.failure(NOT_AN_OBJECT)
    return None


def _number(value: Any, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return value


def parse_structure(raw: Any) -> ParseResult[Dict[str, Any]]:
    failed = _check_object(raw)
    if failed:
        return failed
    raw_acts = raw.get("acts")
    if raw_acts is None:
        return ParseResult.failure(MISSING_FIELD, "acts")
    if not isinstance(raw_acts, list) or not raw_acts:
        return ParseResult.failure(INVALID, "acts must be a non-empty list")

    acts: List[Dict[str, Any]] = []
    for i, raw_act in enumerate(raw_acts):
        if not isinstance(raw_act, dict):
            return ParseResult.failure(INVALID, f"act {i} is not an object")
        act_type = raw_act.get("act_type")
        if not is_member(ActType, act_type):
            act_type = act_type_for_index(i)
        duration = _number(raw_act.get("duration"), FALLBACK_ACT_DURATIONS[act_type])
        silence = _number(raw_act.get("silence_duration"), 2 if act_type == ActType.VAST.value else 0)
        scale = raw_act.get("scale_type")
        acts.append(
            {
                "act_type": act_type,
                "duration": duration,
                "scale_type": scale if is_member(ScaleType, scale) else _ACT_SCALE[act_type],
                "silence_duration": silence,
                "visual_requirements": [str(v) for v in raw_act.get("visual_requirements") or []],
                "narration_timing": list(raw_act.get("narration_timing") or []),
                "emotional_phase": raw_act.get("emotional_phase"),
                "pacing_speed": raw_act.get("pacing_speed"),
            }
        )

    intensity = _number(raw.get("intensity_level"), 5)
    understanding = raw.get("understanding") if isinstance(raw.get("understanding"), dict) else {}
    return ParseResult.success(
        {
            "acts": acts,
            "total_duration": sum(act["duration"] for act in acts),
            "intensity_level": max(1, min(10, intensity)),
            "narration_style": coerce(NarrationStyle, raw.get("narration_style"), NarrationStyle.MODERATE),
            "perspective_posture": str(raw.get("perspective_posture") or DEFAULT_POSTURE),
            "understanding": understanding,
        }
    )


def parse_skeleton(raw: Any, max_act_index: int) -> ParseResult[Dict[str, Any]]:
    failed = _check_object(raw)
    if failed:
        return failed
    if "beats" not in raw:
        return ParseResult.failure(MISSING_FIELD, "beats")
    if not isinstance(raw.get("beats"), list):
        return ParseResult.failure(INVALID, "beats must be a list")
    timeline = build_timeline(raw)
    errors = validate_master_timeline(timeline, max_act_index)
    if errors:
        return ParseResult.failure(INVALID, "; ".join(errors))
    return ParseResult.success(timeline)


def parse_narration(raw: Any, timeline: Optional[Dict[str, Any]] = None) -> ParseResult[Dict[str, Any]]:
    """Normalize narration segments.

    With a timeline, each segment is placed by ``segment_beat_indices`` and takes
    its timing from that beat; segments that land on no beat are dropped.
    """
    failed = _check_object(raw)
    if failed:
        return failed
    raw_segments = raw.get("segments")
    if raw_segments is None:
        return ParseResult.failure(MISSING_FIELD, "segments")
    if not isinstance(raw_segments, list) or not raw_segments:
        return ParseResult.failure(INVALID, "segments must be a non-empty list")

    beats = (timeline or {}).get("beats") or []
    placement = segment_beat_indices(beats, len(raw_segments)) if beats else None
    segments: List[Dict[str, Any]] = []
    for i, seg in enumerate(raw_segments):
        if not isinstance(seg, dict):
            return ParseResult.failure(INVALID, f"segment {i} is not an object")
        if placement is not None:
            if i >= len(placement):
                break
            beat_index = placement[i]
        else:
            beat_index = seg.get("beat_index")
            if isinstance(beat_index, bool) or not isinstance(beat_index, int):
                beat_index = i
        beat = beats[beat_index] if 0 <= beat_index < len(beats) else None
        text = seg.get("text") if isinstance(seg.get("text"), str) else ""
        text = text.strip()
        word_count = len(text.split())
        segment = {
            "text": text,
            "beat_index": beat_index,
            "act_index": beat["act_index"] if beat else int(_number(seg.get("act_index"), 0)),
            "start_time": beat["start_sec"] if beat else _number(seg.get("start_time"), 0),
            "duration": beat["duration_sec"] if beat else _number(seg.get("duration"), -(-word_count // 2)),
            "pause_after": _number(seg.get("pause_after"), 1),
            "word_count": word_count,
            "status": "pending",
            "visual_cue": str(seg.get("visual_cue") or ""),
            "visual_description": str(seg.get("visual_description") or ""),
        }
        for key, enum_cls in (("motif", Motif), ("scale_type", ScaleType), ("shot_type", ShotType), ("setting_hint", SceneSetting)):
            if is_member(enum_cls, seg.get(key)):
                segment[key] = seg[key]
        segments.append(segment)

    if not segments:
        return ParseResult.failure(INVALID, "no segment lands on a narrated beat")
    return ParseResult.success(_narration_totals({"segments": segments}))


def fallback_structure(user_text: str = "") -> Dict[str, Any]:
    acts = []
    for act_type in (ActType.VAST, ActType.LIVING_DOT, ActType.MIRACLE_OF_YOU, ActType.RETURN):
        acts.append(
            {
                "act_type": act_type.value,
                "duration": FALLBACK_ACT_DURATIONS[act_type.value],
                "scale_type": _ACT_SCALE[act_type.value],
                "silence_duration": 2 if act_type == ActType.VAST else 0,
                "visual_requirements": [],
                "narration_timing": [],
                "emotional_phase": None,
                "pacing_speed": None,
            }
        )
    return {
        "acts": acts,
        "total_duration": sum(act["duration"] for act in acts),
        "intensity_level": 5,
        "narration_style": NarrationStyle.MODERATE.value,
        "perspective_posture": DEFAULT_POSTURE,
        "understanding": {"summary": (user_text or "").strip()[:200]},
    }


def fallback_skeleton(structure: Dict[str, Any]) -> Dict[str, Any]:
    return build_fallback_skeleton(structure)


def fallback_narration(timeline: Dict[str, Any]) -> Dict[str, Any]:
    """One segment per beat; breathing beats stay silent."""
    segments: List[Dict[str, Any]] = []
    for beat in timeline.get("beats") or []:
        act_index = min(beat["act_index"], len(FALLBACK_LINES) - 1)
        scale = _ACT_SCALE[act_type_for_index(act_index)]
        segment = {
            "text": "",
            "beat_index": beat["beat_index"],
            "act_index": beat["act_index"],
            "start_time": beat["start_sec"],
            "duration": beat["duration_sec"],
            "pause_after": 1,
            "word_count": 0,
            "status": "pending",
            "visual_cue": "",
            "visual_description": "",
            "scale_type": scale,
            "shot_type": _SCALE_SHOT[scale],
            "setting_hint": _SCALE_SETTING[scale],
        }
        if beat["beat_type"] == BeatType.NARRATED.value:
            pool = FALLBACK_LINES[act_index]
            text, cue, motif = pool[beat["beat_index"] % len(pool)]
            segment.update(text=text, word_count=len(text.split()), visual_cue=cue, motif=motif)
        segments.append(segment)
    return _narration_totals({"segments": segments})


def _narration_totals(narration: Dict[str, Any]) -> Dict[str, Any]:
    segments = narration["segments"]
    narration["total_word_count"] = sum(seg["word_count"] for seg in segments)
    narration["avg_pause_duration"] = (
        sum(seg["pause_after"] for seg in segments) / len(segments) if segments else 0
    )
    return narration

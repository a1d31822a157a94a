"""Narration language rules, act fallbacks and thresholds used by the QC passes."""
import math
import os
import re
from typing import Any, Dict, Iterable, List, Optional

from orchestrator.avoid_list import motif_key
from orchestrator.vocab import ALLOWED_DURATIONS, ActType, NarrationStyle

NOVELTY_THRESHOLD = 0.3
MAX_CONSECUTIVE_SAME = 2
MIN_DISTINCT_MOTIFS = 2
MIN_AVG_BEAT_SEC = 6
MAX_CONSECUTIVE_SHORT_BEATS = 2
ASSEMBLY_DURATION_TOLERANCE_SEC = 5
DEFAULT_MICRO_ACTION = "subtle shift of posture"

DEFAULT_ACT_DURATIONS: Dict[str, int] = {
    ActType.VAST.value: 12,
    ActType.LIVING_DOT.value: 18,
    ActType.MIRACLE_OF_YOU.value: 20,
    ActType.RETURN.value: 10,
}

EXPECTED_SHOTS_PER_ACT: Dict[str, int] = {
    ActType.VAST.value: 2,
    ActType.LIVING_DOT.value: 3,
    ActType.MIRACLE_OF_YOU.value: 3,
    ActType.RETURN.value: 2,
}

TIME_OF_DAY_OPTIONS = ("dawn", "morning", "midday", "afternoon", "dusk", "evening", "night")
SETTING_OPTIONS = ("urban", "suburban", "rural", "interior", "transit", "workplace", "public_space")

NARRATION_CONSTRAINTS: Dict[str, Dict[str, Any]] = {
    NarrationStyle.MINIMAL.value: {"max_words": 60, "max_words_per_segment": 20, "pause": (3, 5), "segments": (4, 6)},
    NarrationStyle.MODERATE.value: {"max_words": 100, "max_words_per_segment": 30, "pause": (2, 3), "segments": (4, 8)},
    NarrationStyle.SPARSE.value: {"max_words": 140, "max_words_per_segment": 40, "pause": (1, 2), "segments": (4, 8)},
}

BANNED_WORDS = (
    "inspire",
    "inspired",
    "inspiring",
    "inspiration",
    "succeed",
    "success",
    "successful",
    "overcome",
    "overcame",
    "win",
    "winning",
    "winner",
    "greatness",
    "great",
    "everything will be okay",
    "it will be okay",
    "be grateful",
    "grateful",
    "gratitude",
    "others have it worse",
    "could be worse",
    "at least",
    "silver lining",
    "blessing in disguise",
    "everything happens for a reason",
    "meant to be",
    "stay positive",
    "think positive",
    "positive vibes",
    "good vibes",
    "manifest",
    "manifesting",
)

BANNED_PHRASES = (
    "others have it worse",
    "could be worse",
    "be grateful",
    "everything happens for a reason",
    "stay positive",
    "think positive",
    "pale blue dot",
    "mote of dust",
)

BANNED_PATTERNS = (
    ("imperative: you should", re.compile(r"\byou\s+should\b", re.IGNORECASE)),
    ("imperative: you must", re.compile(r"\byou\s+must\b", re.IGNORECASE)),
    ("imperative: you need to", re.compile(r"\byou\s+need\s+to\b", re.IGNORECASE)),
    ("imperative: try to", re.compile(r"\btry\s+to\b", re.IGNORECASE)),
    ("imperative: remember to", re.compile(r"\bremember\s+to\b", re.IGNORECASE)),
    ("certainty: the answer is", re.compile(r"\bthe\s+answer\s+is\b", re.IGNORECASE)),
    ("certainty: this means", re.compile(r"\bthis\s+means\b", re.IGNORECASE)),
    ("certainty: the truth is", re.compile(r"\bthe\s+truth\s+is\b", re.IGNORECASE)),
    ("coaching: heal", re.compile(r"\bheal\b", re.IGNORECASE)),
    ("coaching: fix yourself", re.compile(r"\bfix\s+yourself\b", re.IGNORECASE)),
    ("coaching: be your best", re.compile(r"\bbe\s+your\s+best\b", re.IGNORECASE)),
    ("coaching: choose happiness", re.compile(r"\bchoose\s+happiness\b", re.IGNORECASE)),
    ("inspiration: destiny", re.compile(r"\bdestiny\b", re.IGNORECASE)),
    ("inspiration: meant to", re.compile(r"\bmeant\s+to\b", re.IGNORECASE)),
    ("inspiration: everything happens", re.compile(r"\beverything\s+happens\b", re.IGNORECASE)),
    ("inspiration: journey", re.compile(r"\bjourney\b", re.IGNORECASE)),
    ("inspiration: manifest", re.compile(r"\bmanifest\b", re.IGNORECASE)),
)

_BANNED_WORD_RES = tuple((word, re.compile(rf"\b{re.escape(word)}\b", re.IGNORECASE)) for word in BANNED_WORDS)
SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")
TERMINAL_PUNCTUATION = (".", "!", "?")

ACT_FALLBACKS: List[Dict[str, str]] = [
    {
        "text": "From far away, the world turns in silence.",
        "visual_cue": "Earth seen from orbit, slow drift, quiet light",
        "motif": "earth_from_space",
        "scale_type": "cosmic",
        "shot_type": "slow_drift",
        "setting_hint": "space",
    },
    {
        "text": "On the surface, life moves through water and streets.",
        "visual_cue": "River delta feeding wetlands with birds in motion",
        "motif": "human_labor",
        "scale_type": "global",
        "shot_type": "aerial",
        "setting_hint": "rural",
    },
    {
        "text": "A body learns breath and sensation, moment by moment.",
        "visual_cue": "Soft morning light moving across folded linen on a windowsill",
        "motif": "shared_continuance",
        "scale_type": "personal",
        "shot_type": "macro",
        "setting_hint": "interior",
    },
    {
        "text": "Ordinary life continues, patient and unfinished.",
        "visual_cue": "Wide view of a quiet town square at first light",
        "motif": "quiet_return",
        "scale_type": "human",
        "shot_type": "wide",
        "setting_hint": "urban",
    },
]

_ABSTRACT_ONLY = ("meaning", "purpose", "truth", "journey", "destiny", "future", "past")
_VISUAL_ANCHORS = ("sky", "earth", "street", "light", "hand", "window", "ocean", "city", "stars")


def fallback_for_act(act_index: int) -> Dict[str, str]:
    if 0 <= act_index < len(ACT_FALLBACKS):
        return ACT_FALLBACKS[act_index]
    return ACT_FALLBACKS[-1]


def narration_constraints(style: Optional[str]) -> Dict[str, Any]:
    return NARRATION_CONSTRAINTS.get(style or "", NARRATION_CONSTRAINTS[NarrationStyle.MODERATE.value])


def allowed_durations() -> List[int]:
    raw = os.getenv("QC_ALLOWED_DURATIONS", "")
    parsed = [int(part) for part in raw.split(",") if part.strip().isdigit()]
    return parsed or list(ALLOWED_DURATIONS)


def normalize_duration(duration: Any) -> int:
    """Nearest allowed clip duration; non-numeric or non-positive values get the shortest."""
    allowed = allowed_durations()
    if isinstance(duration, bool) or not isinstance(duration, (int, float)):
        return allowed[0]
    if not math.isfinite(duration) or duration <= 0:
        return allowed[0]
    nearest = allowed[0]
    for candidate in allowed[1:]:
        if abs(candidate - duration) < abs(nearest - duration):
            nearest = candidate
    return nearest


def narration_violations(text: str) -> List[str]:
    """Every banned word, phrase and pattern found in ``text`` (case-insensitive)."""
    violations: List[str] = []
    lower = (text or "").lower()
    for word, regex in _BANNED_WORD_RES:
        if regex.search(lower):
            violations.append(word)
    for phrase in BANNED_PHRASES:
        if phrase in lower:
            violations.append(f'phrase: "{phrase}"')
    for label, regex in BANNED_PATTERNS:
        if regex.search(lower):
            violations.append(label)
    return violations


def is_clean(text: str) -> bool:
    return not narration_violations(text)


def split_sentences(text: str) -> List[str]:
    return [s for s in SENTENCE_SPLIT_RE.split((text or "").strip()) if s]


def remove_banned_sentences(text: str) -> str:
    return " ".join(s for s in split_sentences(text) if is_clean(s)).strip()


def word_count(text: str) -> int:
    return len((text or "").split())


def trim_to_sentences(text: str, max_words: int) -> str:
    """Keep leading whole sentences while they fit in ``max_words``.

    Returns ``""`` when not even the first sentence fits; callers substitute a
    fallback line rather than cutting mid-clause.
    """
    if word_count(text) <= max_words:
        return (text or "").strip()
    kept: List[str] = []
    used = 0
    for sentence in split_sentences(text):
        count = word_count(sentence)
        if used + count > max_words or not sentence.endswith(TERMINAL_PUNCTUATION):
            break
        kept.append(sentence)
        used += count
    return " ".join(kept)


def allocate_act_order(max_segments: int) -> List[int]:
    total = min(5, max(4, max_segments))
    if total == 5:
        return [0, 1, 1, 2, 3]
    return [0, 1, 2, 3]


def is_filmable_cue(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    trimmed = value.strip()
    if len(trimmed) < 10:
        return False
    lower = trimmed.lower()
    if any(token in lower for token in _VISUAL_ANCHORS):
        return True
    return not any(token in lower for token in _ABSTRACT_ONLY)


def shot_motif_keys(shot_plan: Iterable[Dict[str, Any]]) -> List[str]:
    keys: List[str] = []
    for shot in shot_plan:
        key = motif_key(shot)
        if key and key not in keys:
            keys.append(key)
    return keys


def novelty_score(shot_plan: List[Dict[str, Any]], fingerprints: List[Dict[str, Any]]) -> float:
    """Share of this plan's visual motifs absent from every prior fingerprint, in [0, 1]."""
    current = shot_motif_keys(shot_plan)
    if not current:
        return 1.0
    previous = set()
    for fp in fingerprints:
        previous.update(fp.get("motifs") or [])
        previous.update(fp.get("act_types") or [])
        previous.update(fp.get("settings") or [])
    new_count = sum(1 for motif in current if motif not in previous)
    return new_count / len(current)


def longest_run(values: List[Any]) -> int:
    best = 0
    run = 0
    prev = object()
    for value in values:
        run = run + 1 if value == prev else 1
        best = max(best, run)
        prev = value
    return best

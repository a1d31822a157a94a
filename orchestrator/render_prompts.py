"""Prompt rules applied to every beat before it is sent to the video generator."""
import re
from typing import Dict, List, Optional

from .vocab import ActType, act_type_for_index

PROMPT_MAX_CHARS = 950

ACT_STYLE_LOCKS: Dict[str, str] = {
    ActType.VAST.value: "Stabilized slow drift. Archival space documentary feel. No handheld. Natural quiet light.",
    ActType.LIVING_DOT.value: "Steady observational camera. Minimal shake. Natural light. Quiet continuity.",
    ActType.MIRACLE_OF_YOU.value: (
        "Intimate close-up of everyday objects and textures. Warm natural light. Stabilized camera. No stylization."
    ),
    ActType.RETURN.value: "Ordinary street realism. Steady or static camera. No beauty lighting.",
}

NEGATIVE_BLOCK = (
    "cinematic lighting, epic composition, inspirational tone, motivational imagery, hero narrative, "
    "idealized happiness, perfect symmetry, text overlays, titles, logos, slow motion drama, no words in frame, "
    "no on-screen text, no watermark, no branding, no letters or captions"
)

BANNED_VISUAL_PHRASES = (
    "person walking",
    "close-up of",
    "indoor",
    "kitchen",
    "street-level",
    "two people talking",
    "commuters",
    "residential street",
    "close-up of palm",
    "close-up of bare",
    "bus stop",
    "single person walking",
    "breath fogging",
    "light through skin",
    "vapor on",
    "steam rising from a cup",
    "droplets on glass",
    "candle flame",
)

NATURAL_WORLD_PROMPTS = (
    "Whale moving through deep blue ocean, natural history documentary style, soft underwater light. No humans.",
    "Falcon soaring over a canyon at golden hour, wide shot, stabilized camera. No humans.",
    "Earth from space at night, city lights and day-night terminator, slow drift. No humans.",
    "Underwater bioluminescence in deep ocean, calm movement, soft blue light. No humans.",
    "Volcanic lava flow meeting the ocean at dusk, wide shot, natural light. No humans.",
    "Sun breaking through clouds over open ocean, time-lapse, observational. No humans.",
    "Humpback whale breaching in grey open ocean, natural history style, stabilized camera. No humans.",
    "Coral reef teeming with life, slow drift, underwater documentary style, soft light. No humans.",
    "Aurora borealis over a frozen landscape, slow movement, wide shot. No humans.",
    "Time-lapse of an embryo developing inside an egg, natural history documentary style, soft light, no humans.",
    "Rain droplets on still water, macro, natural light. Calm, observational. No humans.",
)

_VAST_SAFE = "Starfield or Earth from space, slow drift, cosmic scale. No humans."
_LIVING_DOT_SAFE = (
    "Wide view of a green valley with a river flowing through it at golden hour. Steady camera. Natural light."
)
_RETURN_SAFE = (
    "Wide aerial view of city lights at night, traffic flow like circulation. No street-level, no close humans."
)

# Retry prompts for beats rejected by the generator's content filter, indexed by clip index.
SAFE_RETRY_PROMPTS: Dict[str, List[str]] = {
    ActType.VAST.value: [
        "Time-lapse of stars moving across a dark sky over a desert landscape. Static camera. Natural light.",
        "Slow aerial view of ocean waves at night under moonlight. Stabilized camera. No humans.",
    ],
    ActType.LIVING_DOT.value: [
        _LIVING_DOT_SAFE,
        "Flock of birds flying in formation over wetlands at dusk. Observational camera.",
    ],
    ActType.MIRACLE_OF_YOU.value: list(NATURAL_WORLD_PROMPTS[:8]),
    ActType.RETURN.value: [
        _RETURN_SAFE,
        "Process or open system: light changing over a landscape at golden hour. No street-level humans, no indoor.",
    ],
}

CONTENT_SAFETY_RE = re.compile(r"safety|\brai\b|blocked|content filter|responsible ai|policy", re.IGNORECASE)


def resolve_act_type(act_type: Optional[str], act_index: int) -> str:
    if act_type in ACT_STYLE_LOCKS:
        return act_type
    return act_type_for_index(act_index)


def is_prompt_allowed(prompt: str) -> bool:
    lower = (prompt or "").lower()
    return not any(phrase in lower for phrase in BANNED_VISUAL_PHRASES)


def replace_with_fallback(act_type: str) -> str:
    if act_type == ActType.VAST.value:
        return _VAST_SAFE
    if act_type == ActType.LIVING_DOT.value:
        return _LIVING_DOT_SAFE
    if act_type == ActType.RETURN.value:
        return _RETURN_SAFE
    return NATURAL_WORLD_PROMPTS[0]


def apply_style_and_negatives(base_prompt: str, act_type: str) -> str:
    """Append the act's style lock and the negative block unless already present.

    The base prompt is truncated (ending in a period) so the result stays within
    ``PROMPT_MAX_CHARS``.
    """
    prompt = (base_prompt or "").strip()
    style_lock = ACT_STYLE_LOCKS.get(act_type, ACT_STYLE_LOCKS[ActType.RETURN.value])
    additions: List[str] = []
    if style_lock not in prompt:
        additions.append(style_lock)
    if NEGATIVE_BLOCK not in prompt:
        additions.append(NEGATIVE_BLOCK)
    if not additions:
        return prompt

    additions_text = " ".join(additions)
    if len(prompt) + len(additions_text) + 1 > PROMPT_MAX_CHARS:
        max_len = max(0, PROMPT_MAX_CHARS - len(additions_text) - 1)
        prompt = prompt[:max_len].strip() + "."
    return f"{prompt} {additions_text}".strip()


def build_render_prompt(base_prompt: str, act_type: Optional[str], act_index: int) -> str:
    resolved = resolve_act_type(act_type, act_index)
    prompt = base_prompt or ""
    if not is_prompt_allowed(prompt):
        prompt = replace_with_fallback(resolved)
    return apply_style_and_negatives(prompt, resolved)


def safe_retry_prompt(act_type: Optional[str], clip_index: int) -> str:
    prompts = SAFE_RETRY_PROMPTS.get(act_type or "", SAFE_RETRY_PROMPTS[ActType.RETURN.value])
    return prompts[max(0, int(clip_index or 0)) % len(prompts)]


def is_content_safety_failure(message: Optional[str]) -> bool:
    return bool(message) and CONTENT_SAFETY_RE.search(message) is not None

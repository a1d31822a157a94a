"""Cross-run repetition memory: avoid lists and per-run fingerprints."""
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional

MAX_SNIPPET_LENGTH = 60
MAX_SNIPPETS = 30
MAX_MERGED_SNIPPETS = 40
MOTIF_KEY_LENGTH = 80


@dataclass
class AvoidList:
    act_types: List[str] = field(default_factory=list)
    settings: List[str] = field(default_factory=list)
    micro_actions: List[str] = field(default_factory=list)
    prompt_snippets: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[str]]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "AvoidList":
        raw = raw or {}
        return cls(
            act_types=list(raw.get("act_types") or []),
            settings=list(raw.get("settings") or []),
            micro_actions=list(raw.get("micro_actions") or []),
            prompt_snippets=list(raw.get("prompt_snippets") or []),
        )


@dataclass
class Fingerprint:
    motifs: List[str] = field(default_factory=list)
    act_types: List[str] = field(default_factory=list)
    settings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[str]]:
        return asdict(self)


def extract_snippet(text: Optional[str]) -> Optional[str]:
    if not isinstance(text, str):
        return None
    trimmed = text.strip()
    if not trimmed:
        return None
    if len(trimmed) <= MAX_SNIPPET_LENGTH:
        return trimmed
    first_words = " ".join(trimmed.split()[:8])
    if len(first_words) > MAX_SNIPPET_LENGTH:
        return first_words[: MAX_SNIPPET_LENGTH - 3] + "..."
    return first_words


def _add(items: List[str], value: Optional[str]) -> None:
    if value and value not in items:
        items.append(value)


def build_avoid_list(runs: Iterable[List[Dict[str, Any]]]) -> AvoidList:
    """``runs`` holds the scene rows of each recent ready run, newest first."""
    avoid = AvoidList()
    for scenes in runs:
        for scene in scenes:
            _add(avoid.act_types, scene.get("act_type"))
            _add(avoid.settings, scene.get("setting"))
            _add(avoid.micro_actions, scene.get("micro_action"))
            _add(avoid.prompt_snippets, extract_snippet(scene.get("prompt")) or extract_snippet(scene.get("description")))
    avoid.prompt_snippets = avoid.prompt_snippets[:MAX_SNIPPETS]
    return avoid


def motif_key(item: Dict[str, Any]) -> Optional[str]:
    """Visual motif of a shot or stored scene row: its description, else its prompt."""
    text = (item.get("description") or item.get("prompt") or "").strip()
    return text[:MOTIF_KEY_LENGTH] or None


def build_fingerprints(runs: Iterable[List[Dict[str, Any]]]) -> List[Fingerprint]:
    fingerprints: List[Fingerprint] = []
    for scenes in runs:
        fp = Fingerprint()
        for scene in scenes:
            _add(fp.motifs, motif_key(scene))
            _add(fp.act_types, scene.get("act_type"))
            _add(fp.settings, scene.get("setting"))
        fingerprints.append(fp)
    return fingerprints


def merge_shot_plan_into_avoid_list(avoid: AvoidList, shot_plan: List[Dict[str, Any]]) -> AvoidList:
    """Fold a rejected shot plan into the avoid list so the next attempt steers away from it."""
    merged = AvoidList.from_dict(avoid.to_dict())
    for shot in shot_plan:
        _add(merged.act_types, shot.get("act_type"))
        _add(merged.settings, shot.get("setting"))
        _add(merged.micro_actions, shot.get("micro_action"))
        _add(merged.prompt_snippets, extract_snippet(shot.get("prompt")) or extract_snippet(shot.get("description")))
    merged.prompt_snippets = merged.prompt_snippets[:MAX_MERGED_SNIPPETS]
    return merged

"""Narration placement against the real (normalized) clip start offsets."""
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Sequence

SCENE_SILENCE_SEC = 2.0
MIN_SILENCE_GAP_SEC = 1.5
MIN_SCENE_SILENCE_SEC = 0.5
MIN_GAP_SEC = 0.3
TIGHT_BUDGET_RATIO = 0.95


@dataclass
class NarrationWindow:
    segment_index: int
    start_sec: float
    end_sec: float
    audio_duration: float
    silence_offset: float

    @property
    def duration(self) -> float:
        return self.end_sec - self.start_sec

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def plan_narration(
    segments: Sequence[Dict[str, Any]],
    clip_starts: Sequence[float],
    total_duration: float,
) -> List[NarrationWindow]:
    """Place each voiced segment after its clip's start.

    ``segments`` items carry ``segment_index`` (also the clip index), ``audio_duration``
    and optionally ``start_time`` (used when the clip index is out of range).
    A segment starts at clip start + scene silence, but never before the previous
    segment's end + the minimum gap. When all audio plus the mandated gaps would not fit
    the runway, the silences shrink evenly for the remaining segments instead of
    overlapping or truncating. Audio running past the end of the film is clipped there.
    """
    count = len(segments)
    if count == 0:
        return []
    total_audio = sum(float(s["audio_duration"]) for s in segments)
    total_gaps = count * SCENE_SILENCE_SEC + (count - 1) * MIN_SILENCE_GAP_SEC
    tight = total_audio + total_gaps > total_duration * TIGHT_BUDGET_RATIO

    windows: List[NarrationWindow] = []
    previous_end = 0.0
    for j, seg in enumerate(segments):
        index = int(seg["segment_index"])
        audio_duration = float(seg["audio_duration"])
        clip_start = float(clip_starts[index]) if index < len(clip_starts) else float(seg.get("start_time") or 0.0)

        silence = SCENE_SILENCE_SEC
        gap = MIN_SILENCE_GAP_SEC
        if tight:
            remaining_audio = sum(float(s["audio_duration"]) for s in segments[j:])
            gap_budget = (total_duration - previous_end) - remaining_audio
            per_gap = max(0.0, gap_budget / ((count - j) * 2))
            silence = min(SCENE_SILENCE_SEC, max(MIN_SCENE_SILENCE_SEC, per_gap))
            gap = min(MIN_SILENCE_GAP_SEC, max(MIN_GAP_SEC, per_gap))

        earliest = previous_end + gap if j > 0 else 0.0
        start = max(clip_start + silence, earliest)
        playable = min(audio_duration, max(1.0, total_duration - start))
        previous_end = start + playable
        windows.append(
            NarrationWindow(
                segment_index=index,
                start_sec=start,
                end_sec=previous_end,
                audio_duration=audio_duration,
                silence_offset=silence,
            )
        )
    return windows

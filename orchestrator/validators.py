"""Hard validators for the master timeline."""
from typing import Any, Dict, List

from .vocab import (
    ALLOWED_DURATIONS,
    MAX_BEATS,
    MIN_BEATS,
    MIN_BREATHING_BEATS,
    TOTAL_DURATION_SEC,
    BeatType,
)

CONTIGUITY_TOLERANCE_SEC = 0.01


class TimelineValidationError(ValueError):
    def __init__(self, errors: List[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


def validate_master_timeline(timeline: Dict[str, Any], max_act_index: int) -> List[str]:
    """Collect every invariant violation of ``timeline``; an empty list means valid."""
    errors: List[str] = []
    beats = timeline.get("beats") or []
    total = timeline.get("total_duration_sec")

    if total != TOTAL_DURATION_SEC:
        errors.append(f"totalDurationSec must be {TOTAL_DURATION_SEC}, got {total}")

    if len(beats) < MIN_BEATS or len(beats) > MAX_BEATS:
        errors.append(f"beats count must be between {MIN_BEATS} and {MAX_BEATS}, got {len(beats)}")

    breathing = sum(1 for beat in beats if beat.get("beat_type") == BeatType.BREATHING.value)
    if breathing < MIN_BREATHING_BEATS:
        errors.append(f"at least {MIN_BREATHING_BEATS} breathing beats required, got {breathing}")

    allowed = " or ".join(str(d) for d in ALLOWED_DURATIONS)
    expected_start = 0.0
    duration_sum = 0.0
    for i, beat in enumerate(beats):
        duration = beat.get("duration_sec")
        if duration not in ALLOWED_DURATIONS:
            errors.append(f"beat {i}: durationSec must be {allowed}")
        act_index = beat.get("act_index")
        if not isinstance(act_index, int) or act_index < 0 or act_index > max_act_index:
            errors.append(f"beat {i}: actIndex must be between 0 and {max_act_index}, got {act_index}")

        start = _as_float(beat.get("start_sec"))
        end = _as_float(beat.get("end_sec"))
        if start is None or abs(start - expected_start) > CONTIGUITY_TOLERANCE_SEC:
            errors.append(f"beat {i}: startSec {start} expected {expected_start:g}")
        dur = _as_float(duration) or 0.0
        if start is not None and (end is None or abs(end - (start + dur)) > CONTIGUITY_TOLERANCE_SEC):
            errors.append(f"beat {i}: endSec must equal startSec + durationSec")
        expected_start = end if end is not None else expected_start + dur
        duration_sum += dur

    if abs(duration_sum - TOTAL_DURATION_SEC) > CONTIGUITY_TOLERANCE_SEC:
        errors.append(f"sum of beat durations is {duration_sum:g}, must equal {TOTAL_DURATION_SEC}")
    return errors


def require_valid_timeline(timeline: Dict[str, Any], max_act_index: int) -> Dict[str, Any]:
    errors = validate_master_timeline(timeline, max_act_index)
    if errors:
        raise TimelineValidationError(errors)
    return timeline


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None

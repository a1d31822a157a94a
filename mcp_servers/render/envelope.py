"""
Time-windowed value envelopes.

An envelope is an ordered list of rules; the first rule whose window contains ``t``
decides the value, which is either constant or a linear ramp across the window.
The same rule list is evaluated in Python (``value_at``) and compiled to an ffmpeg
expression (``compile_expression``) so the shape can be tested without ffmpeg.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

DIP_TO_BLACK_DURATION = 0.3

MUSIC_BASE_VOLUME = 0.12
MUSIC_DUCK_VOLUME = 0.10
MUSIC_VAST_VOLUME = 0.02
MUSIC_BREATHING_VOLUME = 0.10
MUSIC_SILENCE_VOLUME = 0.20
MUSIC_FADE_SEC = 0.5
RETURN_FADE_DURATION = 20.0


def _num(value: float) -> str:
    text = f"{value:.3f}".rstrip("0").rstrip(".")
    return "0" if text in {"", "-0"} else text


@dataclass(frozen=True)
class EnvelopeRule:
    start: float
    end: Optional[float]
    start_value: float
    end_value: float

    def contains(self, t: float) -> bool:
        if self.end is None:
            return t >= self.start
        return self.start <= t <= self.end

    def value_at(self, t: float) -> float:
        span = (self.end - self.start) if self.end is not None else 0.0
        if span <= 0:
            return self.end_value
        if self.start_value == self.end_value:
            return self.start_value
        return self.start_value + (self.end_value - self.start_value) * (t - self.start) / span

    def condition(self, var: str) -> str:
        if self.end is None:
            return f"gte({var},{_num(self.start)})"
        return f"between({var},{_num(self.start)},{_num(self.end)})"

    def value_expression(self, var: str) -> str:
        span = (self.end - self.start) if self.end is not None else 0.0
        if span <= 0:
            return _num(self.end_value)
        if self.start_value == self.end_value:
            return _num(self.start_value)
        delta = self.end_value - self.start_value
        return f"{_num(self.start_value)}+({_num(delta)})*({var}-{_num(self.start)})/{_num(span)}"


@dataclass
class Envelope:
    rules: List[EnvelopeRule] = field(default_factory=list)
    default: float = 1.0

    def value_at(self, t: float) -> float:
        for rule in self.rules:
            if rule.contains(t):
                return rule.value_at(t)
        return self.default

    def compile_expression(self, var: str = "t") -> str:
        expr = _num(self.default)
        for rule in reversed(self.rules):
            expr = f"if({rule.condition(var)},{rule.value_expression(var)},{expr})"
        return expr


@dataclass
class Product:
    factors: List[Union[Envelope, "Product"]] = field(default_factory=list)

    def value_at(self, t: float) -> float:
        value = 1.0
        for factor in self.factors:
            value *= factor.value_at(t)
        return value

    def compile_expression(self, var: str = "t") -> str:
        if not self.factors:
            return "1"
        if len(self.factors) == 1:
            return self.factors[0].compile_expression(var)
        return "*".join(f"({factor.compile_expression(var)})" for factor in self.factors)


def dip_to_black_envelope(boundaries: Sequence[float], duration: float = DIP_TO_BLACK_DURATION) -> Envelope:
    """Luminance multiplier: 1 everywhere, ramping to 0 and back around each boundary."""
    half = duration / 2
    rules: List[EnvelopeRule] = []
    for boundary in boundaries:
        rules.append(EnvelopeRule(max(0.0, boundary - half), boundary, 1.0, 0.0))
        rules.append(EnvelopeRule(boundary, boundary + half, 0.0, 1.0))
    return Envelope(rules=rules, default=1.0)


def narration_duck_envelope(
    windows: Sequence[Any],
    silence_volume: float = MUSIC_SILENCE_VOLUME,
    duck_volume: float = MUSIC_DUCK_VOLUME,
    fade_sec: float = MUSIC_FADE_SEC,
) -> Envelope:
    """Music volume that rises in silence and sits low under each narration window."""
    rules: List[EnvelopeRule] = []
    for window in windows:
        start, end = _window_bounds(window)
        fade_in_start = max(0.0, start - fade_sec)
        rules.append(EnvelopeRule(fade_in_start, start, silence_volume, duck_volume))
        rules.append(EnvelopeRule(start, end, duck_volume, duck_volume))
        rules.append(EnvelopeRule(end, end + fade_sec, duck_volume, silence_volume))
    return Envelope(rules=rules, default=silence_volume)


def return_fade_multiplier(start: float, end: float, max_fade: float = RETURN_FADE_DURATION) -> Optional[Envelope]:
    """Fade to silence over the closing act; None when the act has no length."""
    if end - start <= 0:
        return None
    fade = min(max_fade, end - start)
    return Envelope(
        rules=[EnvelopeRule(end - fade, end, 1.0, 0.0), EnvelopeRule(end, None, 0.0, 0.0)],
        default=1.0,
    )


def beat_volume_envelope(
    beats: Sequence[Dict[str, Any]],
    clip_starts: Sequence[float],
    clip_durations: Sequence[float],
    act_types: Dict[int, str],
) -> Envelope:
    """Coarse per-beat volume table used when no narration timing is known."""
    rules: List[EnvelopeRule] = []
    for i, beat in enumerate(beats):
        if i >= len(clip_starts):
            break
        start = float(clip_starts[i])
        duration = float(clip_durations[i]) if i < len(clip_durations) else float(beat.get("duration_sec") or 0)
        volume = _beat_volume(act_types.get(int(beat.get("act_index") or 0), "return"), beat.get("beat_type"))
        rules.append(EnvelopeRule(start, start + duration, volume, volume))
    return Envelope(rules=rules, default=MUSIC_DUCK_VOLUME)


def _beat_volume(act_type: str, beat_type: Optional[str]) -> float:
    if act_type == "vast":
        return MUSIC_VAST_VOLUME
    if beat_type == "breathing":
        return MUSIC_BREATHING_VOLUME
    if beat_type == "narrated":
        return MUSIC_DUCK_VOLUME
    return MUSIC_BASE_VOLUME


def _window_bounds(window: Any) -> tuple:
    if isinstance(window, dict):
        return float(window["start_sec"]), float(window["end_sec"])
    return float(window.start_sec), float(window.end_sec)

"""Documentary colour grades: one filter chain per act type plus a global fallback."""
from dataclasses import dataclass
from typing import Dict, List, Optional

FILM_GRAIN_FILTER = "noise=alls=2:allf=t"

GLOBAL_GRADE: List[str] = [
    "eq=saturation=0.85:contrast=1.05",
    "curves=r='0/0 0.5/0.48 1/1':g='0/0 0.5/0.50 1/1':b='0/0 0.5/0.52 1/1'",
    "unsharp=5:5:0.5:3:3:0.0",
]

ACT_GRADES: Dict[str, List[str]] = {
    "vast": [
        "eq=saturation=0.75:contrast=1.10",
        "curves=r='0/0 0.5/0.46 1/0.95':g='0/0 0.5/0.48 1/0.97':b='0/0 0.5/0.54 1/1'",
        "unsharp=5:5:0.5:3:3:0.0",
    ],
    "living_dot": list(GLOBAL_GRADE),
    "miracle_of_you": [
        "eq=saturation=0.90:contrast=1.00:brightness=0.02",
        "curves=r='0/0 0.5/0.52 1/1':g='0/0 0.5/0.50 1/1':b='0/0 0.5/0.46 1/0.96'",
        "unsharp=5:5:0.3:3:3:0.0",
    ],
    "return": [
        "eq=saturation=0.82:contrast=1.03",
        "curves=r='0/0 0.5/0.50 1/1':g='0/0 0.5/0.50 1/1':b='0/0 0.5/0.50 1/1'",
        "unsharp=5:5:0.4:3:3:0.0",
    ],
}


@dataclass
class QualityPreset:
    preset: str
    crf: int
    audio_bitrate: str

    def video_args(self) -> List[str]:
        return ["-c:v", "libx264", "-preset", self.preset, "-crf", str(self.crf), "-pix_fmt", "yuv420p"]

    def audio_args(self) -> List[str]:
        return ["-c:a", "aac", "-b:a", self.audio_bitrate]


QUALITY_PRESETS: Dict[str, QualityPreset] = {
    "high": QualityPreset(preset="slow", crf=18, audio_bitrate="192k"),
    "medium": QualityPreset(preset="medium", crf=23, audio_bitrate="128k"),
    "fast": QualityPreset(preset="fast", crf=26, audio_bitrate="96k"),
}

# Intermediate encodes stay near-lossless whatever the delivery preset is.
INTERMEDIATE = QualityPreset(preset="fast", crf=18, audio_bitrate="192k")


def quality_preset(name: Optional[str]) -> QualityPreset:
    return QUALITY_PRESETS.get((name or "").strip().lower(), QUALITY_PRESETS["high"])


def grade_chain(act_type: Optional[str]) -> str:
    filters = ACT_GRADES.get(act_type or "", GLOBAL_GRADE)
    return ",".join([*filters, FILM_GRAIN_FILTER])


def global_grade_chain() -> str:
    return ",".join([*GLOBAL_GRADE, FILM_GRAIN_FILTER])

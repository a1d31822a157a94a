"""Blocking ffmpeg invocations with a hard timeout."""
import os
import re
import subprocess
from dataclasses import dataclass
from typing import List, Optional, Sequence

DEFAULT_TIMEOUT_SEC = 15 * 60

_DURATION_RE = re.compile(r"Duration:\s*(\d+):(\d+):(\d+(?:\.\d+)?)")
_AUDIO_STREAM_RE = re.compile(r"Stream #\d+:\d+.*: Audio:")


class AssemblyError(RuntimeError):
    def __init__(self, message: str, step: Optional[str] = None, stderr: str = "") -> None:
        super().__init__(message)
        self.step = step
        self.stderr = stderr


@dataclass
class MediaProbe:
    duration: float
    has_audio: bool


def ffmpeg_bin() -> str:
    return os.getenv("FFMPEG_BIN", "ffmpeg")


def step_timeout() -> float:
    return float(os.getenv("FFMPEG_TIMEOUT_SEC", str(DEFAULT_TIMEOUT_SEC)))


def run_ffmpeg(args: Sequence[str], step: str, timeout: Optional[float] = None) -> str:
    """Run ffmpeg with ``args``; returns stderr text. The child is killed once the timeout expires."""
    cmd: List[str] = [ffmpeg_bin(), "-y", "-hide_banner", *args]
    try:
        result = subprocess.run(cmd, capture_output=True, timeout=timeout or step_timeout())
    except subprocess.TimeoutExpired as exc:
        raise AssemblyError(f"ffmpeg step '{step}' timed out after {exc.timeout:.0f}s", step=step) from exc
    stderr = _decode(result.stderr)
    if result.returncode != 0:
        tail = stderr.strip().splitlines()[-5:]
        raise AssemblyError(f"ffmpeg step '{step}' failed: {' | '.join(tail)}", step=step, stderr=stderr)
    return stderr


def probe_media(path: str) -> MediaProbe:
    """Duration and audio presence from ffmpeg's own input banner (no ffprobe needed)."""
    try:
        result = subprocess.run(
            [ffmpeg_bin(), "-hide_banner", "-i", path],
            capture_output=True,
            timeout=60,
        )
    except subprocess.TimeoutExpired:
        return MediaProbe(duration=0.0, has_audio=False)
    stderr = _decode(result.stderr)
    return MediaProbe(duration=parse_duration(stderr), has_audio=bool(_AUDIO_STREAM_RE.search(stderr)))


def media_duration(path: str) -> float:
    """0.0 when the duration cannot be read."""
    return probe_media(path).duration


def parse_duration(stderr: str) -> float:
    match = _DURATION_RE.search(stderr or "")
    if not match:
        return 0.0
    hours, minutes, seconds = match.groups()
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def fmt_time(value: float) -> str:
    return f"{value:.3f}"


def _decode(data) -> str:
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data or ""

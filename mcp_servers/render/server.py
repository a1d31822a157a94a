"""
Media assembly engine: rendered beat clips + narration audio + music -> one film.

Every intermediate lives in a scratch directory that is removed on exit; the finished
film is copied into the artifact store.
"""
import os
import shutil
import tempfile
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from mcp_servers.assets.artifact_store import ArtifactStore
from orchestrator.vocab import ACT_ORDER, Transition

from . import grading
from .envelope import (
    MUSIC_BASE_VOLUME,
    Envelope,
    Product,
    beat_volume_envelope,
    dip_to_black_envelope,
    narration_duck_envelope,
    return_fade_multiplier,
)
from .ffmpeg import AssemblyError, fmt_time, probe_media, run_ffmpeg
from .placement import NarrationWindow, plan_narration

XFADE_DURATION = 0.5
DURATION_EPSILON = 0.1
FALLBACK_CLIP_SEC = 6.0
FALLBACK_AUDIO_SEC = 6.0
SAMPLE_RATE = 44100


@dataclass
class ClipLayout:
    files: List[str]
    durations: List[float]
    starts: List[float] = field(default_factory=list)

    @property
    def total(self) -> float:
        if not self.starts:
            return sum(self.durations)
        return self.starts[-1] + self.durations[-1]


@dataclass
class ActSpan:
    act_index: int
    act_type: str
    start_sec: float
    end_sec: float


def _log(message: str) -> None:
    print(f"[render] {message}", flush=True)


def _concat_list(paths: Sequence[str], list_path: str) -> str:
    with open(list_path, "w", encoding="utf-8") as f:
        for path in paths:
            escaped = path.replace("'", "'\\''")
            f.write(f"file '{escaped}'\n")
    return list_path


def cumulative_starts(durations: Sequence[float]) -> List[float]:
    starts: List[float] = []
    cursor = 0.0
    for duration in durations:
        starts.append(cursor)
        cursor += duration
    return starts


def act_spans(beats: Sequence[Dict[str, Any]], starts: Sequence[float], durations: Sequence[float], act_types: Dict[int, str]) -> List[ActSpan]:
    """Contiguous act windows in output time, one per run of equal act index."""
    spans: List[ActSpan] = []
    for i, beat in enumerate(beats[: len(starts)]):
        act_index = int(beat.get("act_index") or 0)
        end = starts[i] + durations[i]
        if spans and spans[-1].act_index == act_index:
            spans[-1].end_sec = end
            continue
        if spans:
            spans[-1].end_sec = starts[i]
        spans.append(ActSpan(act_index, act_types.get(act_index, "return"), starts[i], end))
    return spans


def dissolve_indices(beats: Sequence[Dict[str, Any]], clip_count: int) -> List[int]:
    return [i for i in range(clip_count - 1) if i < len(beats) and beats[i].get("transition_out") == Transition.DISSOLVE.value]


class RenderService:
    def __init__(self, artifact_root: Optional[str] = None) -> None:
        self.store = ArtifactStore(root=artifact_root)
        self.default_quality = os.getenv("ASSEMBLY_QUALITY", "high")

    def assemble(
        self,
        clips: List[str],
        timeline: Optional[Dict[str, Any]] = None,
        narration: Optional[Dict[str, Any]] = None,
        narration_audio: Optional[List[Optional[str]]] = None,
        music: Optional[str] = None,
        act_types: Optional[Dict[Any, str]] = None,
        quality: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not clips:
            raise AssemblyError("no clips to assemble", step="input")
        preset = grading.quality_preset(quality or self.default_quality)
        beats = list((timeline or {}).get("beats") or [])
        types = self._act_types(act_types)
        steps: List[str] = []

        with tempfile.TemporaryDirectory(prefix="assembly_") as workdir:
            local = [self._fetch(uri, os.path.join(workdir, f"scene_{i}.mp4")) for i, uri in enumerate(clips)]
            if beats:
                layout = self._normalize(workdir, local, beats)
                steps.append("normalize")
            else:
                layout = self._measure(local)
                steps.append("measure")

            video, layout = self._concatenate(workdir, layout, beats, steps)
            spans = act_spans(beats, layout.starts, layout.durations, types) if beats else []
            video = self._grade(workdir, video, spans, preset, steps)
            if len(spans) > 1:
                video = self._dip_to_black(workdir, video, [s.start_sec for s in spans[1:]], steps)

            windows: List[NarrationWindow] = []
            segments = list((narration or {}).get("segments") or [])
            audio = list(narration_audio or [])
            if segments and len(audio) == len(segments):
                video, windows = self._add_narration(workdir, video, segments, audio, layout, preset, steps)
            elif any(a for a in audio):
                video = self._add_narration_sequential(workdir, video, [a for a in audio if a], preset, steps)

            if music:
                video = self._add_music(workdir, video, music, beats, layout, spans, windows, preset, steps)

            probe = probe_media(video)
            artifact_id = self.store.put_file(video, content_type="video/mp4", tags=["film", "final"])

        return {
            "artifact_id": artifact_id,
            "path": self.store.get_path(artifact_id),
            "duration_sec": round(probe.duration or layout.total, 3),
            "narration_windows": [w.to_dict() for w in windows],
            "steps": steps,
        }

    # ------------------------------------------------------------------ clips

    def _normalize(self, workdir: str, files: List[str], beats: List[Dict[str, Any]]) -> ClipLayout:
        """Trim or pad every clip to its beat duration so cuts land where the timeline says."""
        count = min(len(files), len(beats))
        out_files: List[str] = []
        durations: List[float] = []
        for i in range(count):
            target = float(beats[i].get("duration_sec") or FALLBACK_CLIP_SEC)
            probe = probe_media(files[i])
            actual = probe.duration
            out_path = os.path.join(workdir, f"scene_{i}_normalized.mp4")
            if actual > 0 and abs(target - actual) < DURATION_EPSILON and probe.has_audio:
                out_files.append(files[i])
                durations.append(actual)
                continue
            if actual > 0 and actual >= target and probe.has_audio:
                run_ffmpeg(
                    ["-i", files[i], "-t", fmt_time(target), *grading.INTERMEDIATE.video_args(), *grading.INTERMEDIATE.audio_args(), out_path],
                    step=f"trim_clip_{i}",
                )
            else:
                pad = max(0.0, target - actual) if actual > 0 else target
                filters = [f"[0:v]tpad=stop_mode=clone:stop_duration={fmt_time(pad)}[v]"]
                if probe.has_audio:
                    filters.append(f"[0:a]apad=whole_dur={fmt_time(target)}[a]")
                else:
                    filters.append(f"anullsrc=r={SAMPLE_RATE}:cl=stereo,atrim=duration={fmt_time(target)}[a]")
                run_ffmpeg(
                    [
                        "-i", files[i],
                        "-filter_complex", ";".join(filters),
                        "-map", "[v]", "-map", "[a]",
                        "-t", fmt_time(target),
                        *grading.INTERMEDIATE.video_args(),
                        *grading.INTERMEDIATE.audio_args(),
                        out_path,
                    ],
                    step=f"pad_clip_{i}",
                )
            out_files.append(out_path)
            durations.append(target)

        # Clips without a matching beat are kept as they are.
        for i in range(count, len(files)):
            duration = probe_media(files[i]).duration
            out_files.append(files[i])
            durations.append(duration if duration > 0 else FALLBACK_CLIP_SEC)
        return ClipLayout(files=out_files, durations=durations, starts=cumulative_starts(durations))

    def _measure(self, files: List[str]) -> ClipLayout:
        durations = []
        for path in files:
            duration = probe_media(path).duration
            durations.append(duration if duration > 0 else FALLBACK_CLIP_SEC)
        return ClipLayout(files=list(files), durations=durations, starts=cumulative_starts(durations))

    def _concatenate(self, workdir: str, layout: ClipLayout, beats: List[Dict[str, Any]], steps: List[str]) -> Tuple[str, ClipLayout]:
        if len(layout.files) == 1:
            steps.append("single_clip")
            return layout.files[0], layout
        dissolves = dissolve_indices(beats, len(layout.files))
        if dissolves:
            try:
                result = self._concat_xfade(workdir, layout, dissolves)
                steps.append("concat_xfade")
                return result
            except AssemblyError as exc:
                _log(f"crossfade concat failed, falling back to plain concat: {exc}")
        out_path = os.path.join(workdir, "video_concat.mp4")
        list_path = _concat_list(layout.files, os.path.join(workdir, "videos.txt"))
        run_ffmpeg(
            ["-f", "concat", "-safe", "0", "-i", list_path, *grading.INTERMEDIATE.video_args(), *grading.INTERMEDIATE.audio_args(), out_path],
            step="concat",
        )
        steps.append("concat")
        return out_path, layout

    def _concat_xfade(self, workdir: str, layout: ClipLayout, dissolves: List[int]) -> Tuple[str, ClipLayout]:
        """Crossfade on dissolve boundaries, straight joins elsewhere, in one filter graph."""
        n = len(layout.files)
        half = XFADE_DURATION / 2
        trim_head = [0.0] * n
        trim_tail = [0.0] * n
        for idx in dissolves:
            trim_tail[idx] += half
            trim_head[idx + 1] += half

        files: List[str] = []
        durations: List[float] = []
        for i, path in enumerate(layout.files):
            if not trim_head[i] and not trim_tail[i]:
                files.append(path)
                durations.append(layout.durations[i])
                continue
            duration = max(0.5, layout.durations[i] - trim_head[i] - trim_tail[i])
            out_path = os.path.join(workdir, f"clip_trimmed_{i}.mp4")
            args: List[str] = []
            if trim_head[i]:
                args += ["-ss", fmt_time(trim_head[i])]
            args += ["-i", path, "-t", fmt_time(duration), *grading.INTERMEDIATE.video_args(), *grading.INTERMEDIATE.audio_args(), out_path]
            run_ffmpeg(args, step=f"xfade_trim_{i}")
            files.append(out_path)
            durations.append(duration)

        starts = [0.0]
        filters: List[str] = []
        prev_v, prev_a = "0:v", "0:a"
        for step in range(n - 1):
            nxt = step + 1
            out_v, out_a = f"v{step}", f"a{step}"
            elapsed = starts[step] + durations[step]
            if step in dissolves:
                offset = max(0.0, elapsed - XFADE_DURATION)
                filters.append(f"[{prev_v}][{nxt}:v]xfade=transition=fade:duration={XFADE_DURATION}:offset={fmt_time(offset)}[{out_v}]")
                filters.append(f"[{prev_a}][{nxt}:a]acrossfade=d={XFADE_DURATION}[{out_a}]")
                starts.append(offset)
            else:
                filters.append(f"[{prev_v}][{prev_a}][{nxt}:v][{nxt}:a]concat=n=2:v=1:a=1[{out_v}][{out_a}]")
                starts.append(elapsed)
            prev_v, prev_a = out_v, out_a

        out_path = os.path.join(workdir, "video_xfade.mp4")
        inputs: List[str] = []
        for path in files:
            inputs += ["-i", path]
        run_ffmpeg(
            [
                *inputs,
                "-filter_complex", ";".join(filters),
                "-map", f"[{prev_v}]", "-map", f"[{prev_a}]",
                *grading.INTERMEDIATE.video_args(),
                *grading.INTERMEDIATE.audio_args(),
                out_path,
            ],
            step="concat_xfade",
        )
        return out_path, ClipLayout(files=files, durations=durations, starts=starts)

    # ------------------------------------------------------------------ picture

    def _grade(self, workdir: str, video: str, spans: List[ActSpan], preset: grading.QualityPreset, steps: List[str]) -> str:
        if len(spans) > 1:
            try:
                graded = self._grade_per_act(workdir, video, spans, preset)
                steps.append("grade_per_act")
                return graded
            except AssemblyError as exc:
                _log(f"per-act grading failed, falling back to global grade: {exc}")
                steps.append("grade_global_fallback")
        else:
            steps.append("grade_global")
        out_path = os.path.join(workdir, "video_graded.mp4")
        run_ffmpeg(["-i", video, "-vf", grading.global_grade_chain(), *preset.video_args(), "-c:a", "copy", out_path], step="grade_global")
        return out_path

    def _grade_per_act(self, workdir: str, video: str, spans: List[ActSpan], preset: grading.QualityPreset) -> str:
        segments: List[str] = []
        for i, span in enumerate(spans):
            duration = span.end_sec - span.start_sec
            if duration <= 0:
                continue
            seg_path = os.path.join(workdir, f"act_seg_{i}.mp4")
            run_ffmpeg(
                [
                    "-ss", fmt_time(span.start_sec),
                    "-i", video,
                    "-t", fmt_time(duration),
                    "-vf", grading.grade_chain(span.act_type),
                    *preset.video_args(),
                    *preset.audio_args(),
                    seg_path,
                ],
                step=f"grade_act_{i}",
            )
            segments.append(seg_path)
        if not segments:
            raise AssemblyError("no act segment to grade", step="grade_per_act")
        out_path = os.path.join(workdir, "video_graded.mp4")
        list_path = _concat_list(segments, os.path.join(workdir, "act_segments.txt"))
        run_ffmpeg(["-f", "concat", "-safe", "0", "-i", list_path, "-c", "copy", out_path], step="grade_concat")
        return out_path

    def _dip_to_black(self, workdir: str, video: str, boundaries: List[float], steps: List[str]) -> str:
        expr = dip_to_black_envelope(boundaries).compile_expression("T")
        script_path = os.path.join(workdir, "dip_filter.txt")
        with open(script_path, "w", encoding="utf-8") as f:
            f.write(f"geq=lum='lum(X,Y)*({expr})':cb='cb(X,Y)':cr='cr(X,Y)'")
        out_path = os.path.join(workdir, "video_dipped.mp4")
        try:
            run_ffmpeg(
                ["-i", video, "-filter_script:v", script_path, *grading.INTERMEDIATE.video_args(), "-c:a", "copy", out_path],
                step="dip_to_black",
            )
        except AssemblyError as exc:
            _log(f"dip-to-black failed, continuing without: {exc}")
            steps.append("dip_to_black_skipped")
            return video
        steps.append("dip_to_black")
        return out_path

    # ------------------------------------------------------------------ sound

    def _add_narration(
        self,
        workdir: str,
        video: str,
        segments: List[Dict[str, Any]],
        audio: List[Optional[str]],
        layout: ClipLayout,
        preset: grading.QualityPreset,
        steps: List[str],
    ) -> Tuple[str, List[NarrationWindow]]:
        voiced: List[Dict[str, Any]] = []
        for i, uri in enumerate(audio):
            if not uri:
                continue
            try:
                path = self._fetch(uri, os.path.join(workdir, f"narration_{i}.wav"))
            except (OSError, AssemblyError) as exc:
                _log(f"narration segment {i} unavailable, skipping: {exc}")
                continue
            if os.path.getsize(path) == 0:
                _log(f"narration segment {i} is empty, skipping")
                continue
            duration = probe_media(path).duration
            voiced.append(
                {
                    "segment_index": i,
                    "audio_duration": duration if duration > 0 else FALLBACK_AUDIO_SEC,
                    "start_time": segments[i].get("start_time"),
                    "path": path,
                }
            )
        if not voiced:
            steps.append("narration_skipped")
            return video, []

        probe = probe_media(video)
        total = probe.duration if probe.duration > 0 else layout.total
        windows = plan_narration(voiced, layout.starts, total)
        pad_to = int(total + 0.999) + 2

        filters: List[str] = []
        inputs: List[str] = ["-i", video]
        for j, (item, window) in enumerate(zip(voiced, windows)):
            inputs += ["-i", item["path"]]
            delay_ms = max(0, int(round(window.start_sec * 1000)))
            filters.append(f"[{j + 1}:a]atrim=0:{window.duration:.2f},asetpts=PTS-STARTPTS[trimmed{j}]")
            filters.append(f"[trimmed{j}]adelay={delay_ms}|{delay_ms}[delayed{j}]")
            filters.append(f"[delayed{j}]apad=whole_dur={pad_to}[padded{j}]")
        n = len(voiced)
        mixed = "".join(f"[padded{j}]" for j in range(n))
        filters.append(f"{mixed}amix=inputs={n}:duration=first:dropout_transition=0,volume={n}[narration]")
        audio_label = "[narration]"
        if probe.has_audio:
            filters.append("[0:a][narration]amix=inputs=2:duration=longest,volume=2[final_audio]")
            audio_label = "[final_audio]"

        out_path = os.path.join(workdir, "final_with_narration.mp4")
        run_ffmpeg(
            [*inputs, "-filter_complex", ";".join(filters), "-map", "0:v", "-map", audio_label, "-c:v", "copy", *preset.audio_args(), out_path],
            step="narration",
        )
        steps.append("narration")
        return out_path, windows

    def _add_narration_sequential(self, workdir: str, video: str, audio: List[str], preset: grading.QualityPreset, steps: List[str]) -> str:
        """Back-to-back narration when segments cannot be aligned one-to-one with clips."""
        files = [self._fetch(uri, os.path.join(workdir, f"audio_{i}.wav")) for i, uri in enumerate(audio)]
        list_path = _concat_list(files, os.path.join(workdir, "audio.txt"))
        joined = os.path.join(workdir, "audio_concat.wav")
        run_ffmpeg(["-f", "concat", "-safe", "0", "-i", list_path, "-c", "copy", joined], step="narration_concat")
        out_path = os.path.join(workdir, "final_with_narration.mp4")
        run_ffmpeg(
            ["-i", video, "-i", joined, "-map", "0:v", "-map", "1:a", "-c:v", "copy", *preset.audio_args(), "-shortest", out_path],
            step="narration_sequential",
        )
        steps.append("narration_sequential")
        return out_path

    def _add_music(
        self,
        workdir: str,
        video: str,
        music: str,
        beats: List[Dict[str, Any]],
        layout: ClipLayout,
        spans: List[ActSpan],
        windows: List[NarrationWindow],
        preset: grading.QualityPreset,
        steps: List[str],
    ) -> str:
        try:
            music_path = self._fetch(music, os.path.join(workdir, "music_track.mp3"))
            if os.path.getsize(music_path) == 0:
                raise AssemblyError("music file is empty", step="music")
            volume = self.music_volume(beats, layout, spans, windows)
            filters = [f"[1:a]volume='{volume.compile_expression('t') if volume else MUSIC_BASE_VOLUME}':eval=frame[music_shaped]"]
            if probe_media(video).has_audio or windows:
                filters.append("[0:a][music_shaped]amix=inputs=2:duration=longest:dropout_transition=2,volume=2[final_audio]")
            else:
                filters.append("[music_shaped]anull[final_audio]")
            out_path = os.path.join(workdir, "final_with_music.mp4")
            run_ffmpeg(
                [
                    "-i", video, "-i", music_path,
                    "-filter_complex", ";".join(filters),
                    "-map", "0:v", "-map", "[final_audio]",
                    "-c:v", "copy", *preset.audio_args(), "-shortest",
                    out_path,
                ],
                step="music",
            )
        except (AssemblyError, OSError) as exc:
            _log(f"music mix failed, keeping film without music: {exc}")
            steps.append("music_skipped")
            return video
        steps.append("music")
        return out_path

    def music_volume(
        self,
        beats: List[Dict[str, Any]],
        layout: ClipLayout,
        spans: List[ActSpan],
        windows: List[NarrationWindow],
    ) -> Optional[Envelope | Product]:
        """Narration-aware ducking when windows exist, else the per-beat table; None means flat base volume."""
        if not beats or not layout.starts:
            return None
        closing = next((s for s in spans if s.act_type == "return"), None)
        fade = return_fade_multiplier(closing.start_sec, closing.end_sec) if closing else None
        if windows:
            shape: Envelope = narration_duck_envelope(windows)
        else:
            shape = beat_volume_envelope(beats, layout.starts, layout.durations, {s.act_index: s.act_type for s in spans})
        return Product([shape, fade]) if fade else shape

    # ------------------------------------------------------------------ io

    def _fetch(self, uri: str, dest_path: str) -> str:
        if os.path.exists(uri):
            return uri
        if uri.startswith(("http://", "https://")):
            try:
                with urllib.request.urlopen(uri, timeout=120) as resp, open(dest_path, "wb") as f:
                    shutil.copyfileobj(resp, f)
            except OSError as exc:
                raise AssemblyError(f"download failed for {uri[:120]}: {exc}", step="download") from exc
            return dest_path
        return self.store.get_path(uri)

    def _act_types(self, act_types: Optional[Dict[Any, str]]) -> Dict[int, str]:
        types = {i: act.value for i, act in enumerate(ACT_ORDER)}
        for key, value in (act_types or {}).items():
            types[int(key)] = value
        return types

"""Film orchestrator: a resumable state machine from user text to a finished film.

Stages run in a fixed order and each one persists its outputs before the status
moves on, so a crashed or failed run can be claimed again and picks up from the
last checkpoint instead of starting over::

    pending -> understanding -> blueprint -> generating -> assembling -> ready
                    \\______________\\____________\\____________\\-> failed

LLM steps never fail a run on their own: an agent error or an unparseable
response falls back to the deterministic structure, skeleton or narration.
"""
import json
import os
import shutil
import time
from concurrent.futures import ThreadPoolExecutor
from copy import deepcopy
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from agents.common import LLMClient
from agents.narration.agent import run as narration_run
from agents.skeleton.agent import run as skeleton_run
from agents.structure.agent import run as structure_run
from mcp_servers.qc import rules
from mcp_servers.qc.report import QCHardViolation
from mcp_servers.runs.db import RunStore

from .avoid_list import AvoidList, build_avoid_list, build_fingerprints, merge_shot_plan_into_avoid_list
from .cache import PromptCache
from .contracts import (
    fallback_narration,
    fallback_skeleton,
    fallback_structure,
    parse_narration,
    parse_skeleton,
    parse_structure,
)
from .mcp_clients import AssetClient, QCClient, RenderClient
from .music_client import MusicClient
from .music_plan import build_music_plan, build_music_prompt
from .render_prompts import is_content_safety_failure, safe_retry_prompt
from .run_logger import PipelineLogger, RunLogger
from .timeline import align_structure_to_timeline, fill_timeline_with_narration, recompute_timing, shot_plan_from_timeline
from .tts_client import NarrationTTSClient
from .validators import require_valid_timeline
from .video_gen_client import VideoGenClient
from .vocab import JobStatus, PipelineStatus

STAGES = (
    (PipelineStatus.UNDERSTANDING.value, 1),
    (PipelineStatus.BLUEPRINT.value, 3),
    (PipelineStatus.GENERATING.value, 6),
    (PipelineStatus.ASSEMBLING.value, 7),
)
STAGE_NUMBERS = dict(STAGES)

_AGENT_ERRORS = (RuntimeError, ValueError, OSError)


class StageFailure(RuntimeError):
    """A stage gave up; the run is marked failed with ``stage_number`` and ``message``."""

    def __init__(self, stage: str, message: str, layer: str = "pipeline") -> None:
        super().__init__(message)
        self.stage = stage
        self.stage_number = STAGE_NUMBERS.get(stage, 0)
        self.layer = layer
        self.message = message


def _truthy(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class FilmConfig:
    qc_max_retries: int = 2
    qc_strict: bool = False
    submit_workers: int = 2
    submit_delay_sec: float = 0.5
    poll_interval_sec: float = 18.0
    max_wait_sec: float = 1500.0
    avoid_runs: int = 5
    quality: Optional[str] = None
    final_media_qc: bool = True

    @classmethod
    def from_env(cls) -> "FilmConfig":
        return cls(
            qc_max_retries=int(os.getenv("QC_MAX_RETRIES", "2")),
            qc_strict=_truthy(os.getenv("QC_STRICT")),
            submit_workers=max(1, int(os.getenv("RENDER_SUBMIT_WORKERS", "2"))),
            submit_delay_sec=float(os.getenv("RENDER_SUBMIT_DELAY_SEC", "0.5")),
            poll_interval_sec=float(os.getenv("RENDER_POLL_INTERVAL_SEC", "18")),
            max_wait_sec=float(os.getenv("RENDER_MAX_WAIT_SEC", "1500")),
            avoid_runs=int(os.getenv("AVOID_LIST_RUNS", "5")),
            quality=os.getenv("ASSEMBLY_QUALITY") or None,
            final_media_qc=os.getenv("FINAL_MEDIA_QC", "1").strip().lower() not in {"0", "false", "no", "off"},
        )


class Orchestrator:
    def __init__(
        self,
        config: Optional[FilmConfig] = None,
        runs: Optional[RunStore] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or FilmConfig.from_env()
        self.runs = runs or RunStore()
        self.assets = AssetClient()
        self.render = RenderClient()
        self.qc = QCClient()
        self.video_gen = VideoGenClient(sleep=sleep)
        self.tts = NarrationTTSClient()
        self.music = MusicClient(sleep=sleep, clock=clock)
        self.llm_clients: Dict[str, LLMClient] = {}
        self.sleep = sleep
        self.clock = clock
        self.data_root = os.getenv("DATA_ROOT", "data")

    def _llm_for(self, agent_name: str) -> LLMClient:
        llm = self.llm_clients.get(agent_name)
        if llm is None:
            llm = LLMClient(agent_name=agent_name)
            self.llm_clients[agent_name] = llm
        return llm

    def create_video(self, user_text: str) -> str:
        return self.runs.create_video(user_text)

    # ------------------------------------------------------------------ driver

    def run_pipeline(self, video_id: str) -> Dict[str, Any]:
        """Claim ``video_id`` and drive it to ``ready`` or ``failed``.

        Returns a summary dict; a run already held by another worker (or already
        finished) comes back with ``skipped=True`` and is left untouched.
        """
        before = self.runs.get_video(video_id)
        if before is None:
            raise KeyError(f"unknown video: {video_id}")
        start_status = self.runs.claim_run(video_id)
        if start_status is None:
            return {"video_id": video_id, "status": before["status"], "skipped": True}

        run_dir = os.path.join(self.data_root, "runs", video_id)
        logger = RunLogger(run_dir)
        plog = PipelineLogger(video_id, run_logger=logger, store=self.runs)
        plog.info(f"claimed run status_before={before['status']} start={start_status}")
        if before["status"] == PipelineStatus.FAILED.value and start_status == PipelineStatus.GENERATING.value:
            reset = self.runs.reset_failed_scenes(video_id)
            plog.info(f"reset {reset} failed scenes for retry")

        names = [name for name, _ in STAGES]
        first = names.index(start_status) if start_status in names else 0
        current = STAGES[first][1]
        try:
            for name, number in STAGES[first:]:
                current = number
                with plog.stage(name, number):
                    getattr(self, f"_stage_{name}")(video_id, logger, plog)
        except StageFailure as exc:
            self.runs.fail(video_id, exc.stage_number or current, exc.message)
        except Exception as exc:
            self.runs.fail(video_id, current, _exc_summary(exc)[:1000])

        video = self.runs.get_video(video_id) or {}
        return {
            "video_id": video_id,
            "status": video.get("status"),
            "final_path": video.get("final_path"),
            "error_message": video.get("error_message"),
            "error_stage": video.get("error_stage"),
            "skipped": False,
        }

    # ------------------------------------------------------------------ stage 1

    def _stage_understanding(self, video_id: str, logger: RunLogger, plog: PipelineLogger) -> None:
        video = self.runs.get_video(video_id)
        user_text = video["user_text"]
        raw = self._call_agent("structure", structure_run, {"user_text": user_text}, logger, plog)
        parsed = parse_structure(raw)
        if parsed.ok:
            structure = parsed.value
        else:
            plog.info(f"structure fallback: {parsed.error}")
            structure = fallback_structure(user_text)
        logger.write_json(os.path.join(logger.step_dir("understanding"), "structure.json"), structure)
        self.runs.advance(video_id, PipelineStatus.BLUEPRINT.value, structure=structure)

    # ------------------------------------------------------------------ stage 3

    def _stage_blueprint(self, video_id: str, logger: RunLogger, plog: PipelineLogger) -> None:
        video = self.runs.get_video(video_id)
        structure = video.get("structure") or fallback_structure(video["user_text"])
        max_act_index = max(0, len(structure.get("acts") or []) - 1)
        history = self.runs.recent_ready_runs(limit=self.config.avoid_runs, exclude=video_id)
        avoid = build_avoid_list(history)
        fingerprints = [fp.to_dict() for fp in build_fingerprints(history)]

        best: Optional[Dict[str, Any]] = None
        feedback: Optional[str] = None
        attempts = self.config.qc_max_retries + 1
        for attempt in range(attempts):
            draft = self._draft_blueprint(structure, avoid, max_act_index, feedback, logger, plog)
            result = self.qc.qc_pre_render(
                draft["structure"],
                draft["narration"],
                draft["shot_plan"],
                draft["timeline"],
                avoid.to_dict(),
                fingerprints,
            )
            failures = list(result.get("hard_failures") or [])
            plog.info(f"qc attempt={attempt + 1}/{attempts} passed={result.get('passed')} hard={failures}")
            logger.write_json(os.path.join(logger.step_dir("blueprint"), f"qc_attempt_{attempt + 1}.json"), result["report"])
            if best is None or len(failures) <= len(best.get("hard_failures") or []):
                best = result
            if result.get("passed"):
                break
            avoid = merge_shot_plan_into_avoid_list(avoid, result.get("shot_plan") or [])
            feedback = "Previous draft failed QC: " + ", ".join(failures)

        if not best.get("passed"):
            failures = list(best.get("hard_failures") or [])
            if self.config.qc_strict:
                raise QCHardViolation(f"QC hard gates failed: {', '.join(failures)}", failures, best.get("report"))
            plog.info(f"qc gates still failing after {attempts} attempts, continuing with best draft: {failures}")

        structure = best["structure"]
        timeline = best["timeline"]
        narration = best["narration"]
        shot_plan = best["shot_plan"]
        require_valid_timeline(timeline, max_act_index)

        music_plan = build_music_plan(structure, timeline, narration)
        music_url = self._generate_music(music_plan, structure, plog)

        step_dir = logger.step_dir("blueprint")
        logger.write_json(os.path.join(step_dir, "timeline.json"), timeline)
        logger.write_json(os.path.join(step_dir, "narration.json"), narration)
        logger.write_json(os.path.join(step_dir, "music_plan.json"), music_plan)

        self.runs.create_scenes(video_id, _scene_rows(timeline, shot_plan))
        self.runs.replace_narration(video_id, narration.get("segments") or [])
        self.runs.advance(
            video_id,
            PipelineStatus.GENERATING.value,
            structure=structure,
            timeline=timeline,
            narration=narration,
            shot_plan=shot_plan,
            qc_report={"pre_gen": best.get("report")},
            music_plan=music_plan,
            music_url=music_url,
        )

    def _draft_blueprint(
        self,
        structure: Dict[str, Any],
        avoid: AvoidList,
        max_act_index: int,
        feedback: Optional[str],
        logger: RunLogger,
        plog: PipelineLogger,
    ) -> Dict[str, Any]:
        raw = self._call_agent(
            "skeleton",
            skeleton_run,
            {"structure": structure, "max_act_index": max_act_index, "avoid_list": avoid.to_dict()},
            logger,
            plog,
            feedback,
        )
        parsed = parse_skeleton(raw, max_act_index)
        if parsed.ok:
            timeline = parsed.value
        else:
            plog.info(f"skeleton fallback: {parsed.error}")
            timeline = fallback_skeleton(structure)

        aligned = align_structure_to_timeline(structure, timeline)
        constraints = rules.narration_constraints(aligned.get("narration_style"))
        raw = self._call_agent(
            "narration",
            narration_run,
            {
                "structure": aligned,
                "timeline": timeline,
                "avoid_list": avoid.to_dict(),
                "max_words_per_segment": constraints["max_words_per_segment"],
            },
            logger,
            plog,
            feedback,
        )
        parsed_narration = parse_narration(raw, timeline)
        if parsed_narration.ok:
            narration = parsed_narration.value
        else:
            plog.info(f"narration fallback: {parsed_narration.error}")
            narration = fallback_narration(timeline)

        fill_timeline_with_narration(timeline, narration)
        return {
            "structure": aligned,
            "timeline": timeline,
            "narration": narration,
            "shot_plan": shot_plan_from_timeline(timeline, aligned),
        }

    def _call_agent(
        self,
        name: str,
        fn: Callable[..., Dict[str, Any]],
        payload: Dict[str, Any],
        logger: RunLogger,
        plog: PipelineLogger,
        feedback: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """Run an LLM step; ``None`` on any transport or decoding error so the caller falls back."""
        step_dir = logger.step_dir(name)
        logger.write_json(os.path.join(step_dir, "input.json"), payload)
        llm = self._llm_for(name)
        try:
            data = fn(payload, llm=llm, critic_feedback=feedback)
        except _AGENT_ERRORS as exc:
            plog.info(f"step:{name} agent error {_exc_summary(exc)}")
            return None
        logger.write_json(os.path.join(step_dir, "raw.json"), {"prompt": llm.last_prompt, "raw": llm.last_raw})
        return data

    def _generate_music(self, plan: Dict[str, Any], structure: Dict[str, Any], plog: PipelineLogger) -> Optional[str]:
        if not self.music.enabled:
            return None
        prompt = build_music_prompt(plan, structure.get("perspective_posture") or "quiet_awe")
        try:
            url = self.music.generate_track(prompt)
        except _AGENT_ERRORS as exc:
            plog.info(f"music generation failed, continuing without music: {_exc_summary(exc)}")
            return None
        if url is None:
            plog.info(f"music generation gave no track: {self.music.last_error}")
        return url

    # ------------------------------------------------------------------ stage 6

    def _stage_generating(self, video_id: str, logger: RunLogger, plog: PipelineLogger) -> None:
        if not self.video_gen.enabled:
            raise StageFailure(PipelineStatus.GENERATING.value, "Video generation service is not configured")
        video = self.runs.get_video(video_id)
        cache = PromptCache(os.path.join(logger.run_dir, "prompt_cache.json"))

        for scene in self.runs.list_scenes(video_id):
            # claimed by a worker that died before recording its job
            if scene["status"] == JobStatus.PROCESSING.value and not scene["job_id"]:
                self.runs.update_scene(scene["scene_id"], status=JobStatus.PENDING.value)

        pending = [s for s in self.runs.list_scenes(video_id) if s["status"] == JobStatus.PENDING.value and not s["job_id"]]
        plog.info(f"submitting {len(pending)} scenes")
        with ThreadPoolExecutor(max_workers=self.config.submit_workers) as pool:
            list(pool.map(lambda scene: self._submit_scene(scene, cache, plog), pending))

        self._synthesize_narration(video_id, plog)

        scenes = self._poll_until_settled(video_id, plog)
        ready = [s for s in scenes if s["status"] == JobStatus.READY.value and s["video_url"]]
        if not ready:
            raise StageFailure(PipelineStatus.GENERATING.value, f"All {len(scenes)} scenes failed to generate")
        plog.info(f"{len(ready)}/{len(scenes)} scenes ready")

        timeline = video.get("timeline") or {}
        post = self.qc.qc_post_render(
            video.get("structure") or {},
            ready,
            self.runs.list_narration(video_id),
            expected_scene_count=len(timeline.get("beats") or []) or None,
        )
        qc_report = dict(video.get("qc_report") or {})
        qc_report["post_gen"] = post.get("report")
        self.runs.advance(video_id, PipelineStatus.ASSEMBLING.value, qc_report=qc_report)

    def _submit_scene(self, scene: Dict[str, Any], cache: PromptCache, plog: PipelineLogger) -> None:
        if not self.runs.claim_scene(scene["scene_id"]):
            return
        result = self.video_gen.submit_shot(_shot_for(scene), cache)
        if result["status"] == JobStatus.FAILED.value:
            plog.info(f"scene {scene['scene_index']} submit failed: {result.get('error')}")
            self.runs.update_scene(
                scene["scene_id"],
                status=JobStatus.FAILED.value,
                job_id=result["job_id"],
                error=(result.get("error") or "")[:500],
            )
        else:
            self.runs.update_scene(scene["scene_id"], job_id=result["job_id"], status=JobStatus.PROCESSING.value)
        self.sleep(self.config.submit_delay_sec)

    def _synthesize_narration(self, video_id: str, plog: PipelineLogger) -> None:
        if not self.tts.enabled:
            return
        segments = [
            seg
            for seg in self.runs.list_narration(video_id)
            if (seg.get("text") or "").strip() and not seg.get("audio_artifact_id")
        ]
        if not segments:
            return
        audio = self.tts.synthesize_segments(segments)
        for i, wav in audio.items():
            segment = segments[i]
            artifact_id = self.assets.put(wav, "audio/wav", tags=["narration", video_id])
            check = self.qc.qc_narration_audio(artifact_id)
            if not check.get("ok"):
                plog.info(f"narration segment {segment['segment_index']} audio rejected: {check.get('issues')}")
                self.runs.update_narration(segment["segment_id"], status=JobStatus.FAILED.value)
                continue
            self.runs.update_narration(segment["segment_id"], audio_artifact_id=artifact_id, status=JobStatus.READY.value)
        for i, error in self.tts.errors.items():
            plog.info(f"narration segment {segments[i]['segment_index']} tts failed: {error}")
            self.runs.update_narration(segments[i]["segment_id"], status=JobStatus.FAILED.value)

    def _poll_until_settled(self, video_id: str, plog: PipelineLogger) -> List[Dict[str, Any]]:
        started = self.clock()
        while True:
            scenes = self.runs.list_scenes(video_id)
            outstanding = [s for s in scenes if s["status"] not in (JobStatus.READY.value, JobStatus.FAILED.value)]
            if not outstanding:
                return scenes
            if self.clock() - started >= self.config.max_wait_sec:
                plog.info(f"{len(outstanding)} scenes still outstanding after {self.config.max_wait_sec:.0f}s")
                raise StageFailure(PipelineStatus.GENERATING.value, "Video generation timed out")
            for scene in outstanding:
                if scene["job_id"]:
                    self._poll_scene(scene, plog)
            self._retry_safety_failures(video_id, plog)
            self.sleep(self.config.poll_interval_sec)

    def _poll_scene(self, scene: Dict[str, Any], plog: PipelineLogger) -> None:
        try:
            result = self.video_gen.poll(scene["job_id"])
        except _AGENT_ERRORS as exc:
            plog.info(f"scene {scene['scene_index']} poll error: {_exc_summary(exc)}")
            return
        status = result.get("status")
        if status == JobStatus.READY.value and result.get("url"):
            self.runs.update_scene(scene["scene_id"], status=status, video_url=result["url"])
        elif status == JobStatus.FAILED.value:
            self.runs.update_scene(scene["scene_id"], status=status, error=(result.get("error") or "")[:500])
        elif status and status != scene["status"]:
            self.runs.update_scene(scene["scene_id"], status=status)

    def _retry_safety_failures(self, video_id: str, plog: PipelineLogger) -> None:
        """Resubmit content-filtered scenes once with a conservative prompt."""
        for scene in self.runs.list_scenes(video_id):
            if scene["status"] != JobStatus.FAILED.value or scene["retried"]:
                continue
            if not is_content_safety_failure(scene.get("error")):
                continue
            prompt = safe_retry_prompt(scene.get("act_type"), scene.get("clip_index") or 0)
            plog.info(f"scene {scene['scene_index']} hit the content filter, retrying with a safe prompt")
            try:
                job_id = self.video_gen.submit_with_retry(prompt, int(scene.get("duration") or 6))
            except _AGENT_ERRORS as exc:
                self.runs.update_scene(scene["scene_id"], retried=1, error=f"safe retry failed: {exc}"[:500])
                continue
            self.runs.update_scene(
                scene["scene_id"],
                job_id=job_id,
                status=JobStatus.PROCESSING.value,
                prompt=prompt,
                retried=1,
                error=None,
                video_url=None,
            )

    # ------------------------------------------------------------------ stage 7

    def _stage_assembling(self, video_id: str, logger: RunLogger, plog: PipelineLogger) -> None:
        video = self.runs.get_video(video_id)
        structure = video.get("structure") or {}
        timeline = video.get("timeline") or {}
        beats_by_index = {beat["beat_index"]: beat for beat in timeline.get("beats") or []}
        clip_dir = logger.step_dir("clips")

        clips: List[str] = []
        beats: List[Dict[str, Any]] = []
        for scene in self.runs.list_scenes(video_id):
            if scene["status"] != JobStatus.READY.value or not scene["video_url"]:
                continue
            dest = os.path.join(clip_dir, f"scene_{scene['scene_index']:03d}.mp4")
            if not os.path.exists(dest):
                try:
                    self.video_gen.download(scene["video_url"], dest)
                except OSError as exc:
                    plog.info(f"scene {scene['scene_index']} download failed, dropping: {exc}")
                    continue
            clips.append(dest)
            beat = deepcopy(beats_by_index.get(scene["scene_index"]) or {})
            beat.setdefault("act_index", scene["act_index"])
            beat.setdefault("beat_type", "narrated")
            beat["duration_sec"] = beat.get("duration_sec") or scene["duration"]
            beat["source_beat_index"] = scene["scene_index"]
            beats.append(beat)
        if not clips:
            raise StageFailure(PipelineStatus.ASSEMBLING.value, "No rendered scenes to assemble")

        recompute_timing(beats)
        segments, audio = self._narration_for_beats(video_id, beats)
        act_types = {i: act.get("act_type") for i, act in enumerate(structure.get("acts") or []) if act.get("act_type")}
        plog.info(f"assembling {len(clips)} clips, {sum(1 for a in audio if a)} narration tracks")
        try:
            result = self.render.assemble(
                clips,
                timeline={"beats": beats},
                narration={"segments": segments},
                narration_audio=audio,
                music=video.get("music_url"),
                act_types=act_types,
                quality=self.config.quality,
            )
        except Exception as exc:
            raise StageFailure(PipelineStatus.ASSEMBLING.value, f"Assembly failed: {str(exc)[:500]}") from exc

        final_path = os.path.join(logger.run_dir, "final.mp4")
        shutil.copyfile(result["path"], final_path)
        logger.save_step("assembly", {"steps": result.get("steps"), "duration_sec": result.get("duration_sec")})

        qc_report = dict(video.get("qc_report") or {})
        if self.config.final_media_qc:
            expected = sum(float(b["duration_sec"]) for b in beats)
            media = self.qc.qc_final_media(final_path, expected_duration_sec=expected)
            qc_report["final_media"] = media
            plog.info(f"final media qc ok={media.get('ok')} issues={media.get('issues')}")
        self.runs.update_video(video_id, qc_report=qc_report)
        self.runs.mark_ready(video_id, final_path, result.get("artifact_id"))

    def _narration_for_beats(
        self, video_id: str, beats: List[Dict[str, Any]]
    ) -> tuple[List[Dict[str, Any]], List[Optional[str]]]:
        """One segment and one audio path (or None) per assembled clip."""
        by_beat = {seg["beat_index"]: seg for seg in self.runs.list_narration(video_id) if seg.get("beat_index") is not None}
        segments: List[Dict[str, Any]] = []
        audio: List[Optional[str]] = []
        for beat in beats:
            seg = by_beat.get(beat["source_beat_index"])
            segments.append(
                {
                    "beat_index": beat["beat_index"],
                    "act_index": beat.get("act_index", 0),
                    "text": (seg or {}).get("text") or "",
                    "start_time": beat["start_sec"],
                }
            )
            path = None
            if seg and seg.get("audio_artifact_id"):
                try:
                    path = self.assets.get_path(seg["audio_artifact_id"])
                except (KeyError, OSError, RuntimeError):
                    path = None
            audio.append(path)
        return segments, audio


def _scene_rows(timeline: Dict[str, Any], shot_plan: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    shots = {shot["beat_index"]: shot for shot in shot_plan}
    rows = []
    for beat in timeline.get("beats") or []:
        shot = shots.get(beat["beat_index"], {})
        rows.append(
            {
                "scene_index": beat["beat_index"],
                "act_index": beat["act_index"],
                "clip_index": shot.get("clip_index", beat["beat_index"]),
                "act_type": shot.get("act_type"),
                "duration": beat["duration_sec"],
                "description": (shot.get("description") or beat.get("render_prompt") or "")[:500],
                "prompt": beat.get("render_prompt") or shot.get("prompt") or "",
                "time_of_day": shot.get("time_of_day"),
                "setting": shot.get("setting"),
                "micro_action": shot.get("micro_action") or "",
            }
        )
    return rows


def _shot_for(scene: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "prompt": scene.get("prompt") or "",
        "act_type": scene.get("act_type"),
        "act_index": scene.get("act_index") or 0,
        "clip_index": scene.get("clip_index") or 0,
        "duration": scene.get("duration") or 6,
    }


def _exc_summary(err: BaseException) -> str:
    msg = str(err).strip()
    if not msg:
        msg = repr(err)
    return f"{type(err).__name__}: {msg}"


def dump_summary(summary: Dict[str, Any]) -> str:
    return json.dumps(summary, ensure_ascii=True, indent=2)

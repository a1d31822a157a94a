"""
QC repair engine: pre-render validate-and-fix, post-render reporting, media probes.
"""
import os
from copy import deepcopy
from typing import Any, Dict, List, Optional

from mcp_servers.assets.artifact_store import ArtifactStore
from mcp_servers.render.ffmpeg import media_duration
from orchestrator.timeline import segment_beat_indices
from orchestrator.validators import validate_master_timeline
from orchestrator.vocab import MIN_BREATHING_BEATS, LONG_BEAT_SEC, ActType, BeatType, SceneSource

from . import rules
from .report import QCHardViolation, QCReport

# Canonical act positions for per-act motif requirements.
_VAST_ACT = 0
_MIRACLE_ACT = 2
_RETURN_ACT = 3


def _truthy(value: Optional[str]) -> bool:
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


class QCService:
    def __init__(self, artifact_root: Optional[str] = None) -> None:
        self.store = ArtifactStore(root=artifact_root)

    # ------------------------------------------------------------------ pre-render

    def qc_pre_render(
        self,
        structure: Dict[str, Any],
        narration: Dict[str, Any],
        shot_plan: List[Dict[str, Any]],
        timeline: Optional[Dict[str, Any]] = None,
        avoid_list: Optional[Dict[str, Any]] = None,
        fingerprints: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """Validate and repair a production plan.

        Inputs are never mutated; the repaired copies are returned together with
        the report. ``passed`` is False only when a hard gate (novelty, diversity
        or timeline) failed; those are listed in ``hard_failures``.
        """
        report = QCReport("pre_gen")
        structure = deepcopy(structure)
        narration = deepcopy(narration)
        shot_plan = deepcopy(shot_plan)
        timeline = deepcopy(timeline) if timeline else None
        beats = (timeline or {}).get("beats") or []

        self._repair_structure(report, structure)
        constraints = rules.narration_constraints(structure.get("narration_style"))
        if beats:
            self._place_segments_on_beats(report, narration, beats)
            self._repair_narration_in_place(report, narration, beats, constraints)
        else:
            self._rebuild_narration(report, narration, constraints)
        self._check_narration(report, narration, constraints, len(beats))
        self._check_beat_coverage(report, narration, shot_plan)
        self._repair_act_motifs(report, structure, shot_plan)
        self._repair_shots(report, shot_plan)
        self._check_avoid_list(report, shot_plan, avoid_list)

        hard_failures: List[str] = []
        if fingerprints:
            score = rules.novelty_score(shot_plan, fingerprints)
            passed = report.add_check(
                "novelty_vs_last_n",
                "scenes",
                "error",
                score >= rules.NOVELTY_THRESHOLD,
                f"Novelty vs last N videos: {score * 100:.0f}% new (threshold {rules.NOVELTY_THRESHOLD * 100:.0f}%).",
                {"novelty_score": score, "threshold": rules.NOVELTY_THRESHOLD},
            )
            if not passed:
                hard_failures.append("novelty_vs_last_n")
        hard_failures.extend(self._check_diversity(report, shot_plan, timeline_mode=bool(beats)))

        if timeline is not None:
            self._write_back(timeline, narration, shot_plan)
            hard_failures.extend(self._check_timeline(report, timeline))

        return {
            "report": report.finalize(),
            "structure": structure,
            "narration": narration,
            "shot_plan": shot_plan,
            "timeline": timeline,
            "passed": not hard_failures,
            "hard_failures": hard_failures,
        }

    def _repair_structure(self, report: QCReport, structure: Dict[str, Any]) -> None:
        acts = structure.setdefault("acts", [])
        report.add_check(
            "structure_act_count",
            "structure",
            "warn",
            len(acts) == 4,
            "Structure should have exactly 4 acts.",
            {"count": len(acts)},
        )
        for index, act in enumerate(acts):
            duration = act.get("duration")
            if isinstance(duration, bool) or not isinstance(duration, (int, float)) or duration <= 0:
                fallback = rules.DEFAULT_ACT_DURATIONS.get(act.get("act_type"), 10)
                report.add_fix(
                    f"structure_duration_fix_{act.get('act_type')}", "Fixed invalid act duration.", duration, fallback
                )
                act["duration"] = fallback
            silence = act.get("silence_duration")
            if not isinstance(silence, (int, float)) or isinstance(silence, bool):
                silence = 0
                act["silence_duration"] = 0
            if (index == 0 or act.get("act_type") == ActType.VAST.value) and silence < 2:
                report.add_fix("structure_vast_silence", "Adjusted vast opening silence to minimum 2s.", silence, 2)
                act["silence_duration"] = 2
            elif silence < 0:
                report.add_fix(f"structure_silence_fix_{index}", "Adjusted negative silence duration to 0.", silence, 0)
                act["silence_duration"] = 0

        structure["total_duration"] = sum(act["duration"] for act in acts)
        report.add_check(
            "structure_total_duration",
            "structure",
            "warn",
            structure["total_duration"] == 120,
            "Total duration should be 120 seconds.",
            {"total_duration": structure["total_duration"]},
        )
        if acts and acts[-1].get("act_type") != ActType.RETURN.value:
            report.add_fix("structure_return_last", "Forced final act to return.", acts[-1].get("act_type"), "return")
            acts[-1]["act_type"] = ActType.RETURN.value

        scale_types = sorted({str(act.get("scale_type")) for act in acts})
        report.add_check(
            "structure_scale_coverage",
            "structure",
            "warn",
            len(scale_types) >= 2,
            "Structure should include at least 2 scale types.",
            {"scale_types": scale_types},
        )

    def _place_segments_on_beats(self, report: QCReport, narration: Dict[str, Any], beats: List[Dict[str, Any]]) -> None:
        """Re-place segments whose ``beat_index`` values do not name distinct beats."""
        segments = narration.get("segments") or []
        indices = [segment.get("beat_index") for segment in segments]
        valid = all(isinstance(i, int) and not isinstance(i, bool) and 0 <= i < len(beats) for i in indices)
        if valid and len(set(indices)) == len(indices):
            return
        placement = segment_beat_indices(beats, len(segments))
        placed = segments[: len(placement)]
        for segment, beat_index in zip(placed, placement):
            segment["beat_index"] = beat_index
            segment["act_index"] = beats[beat_index]["act_index"]
        narration["segments"] = placed
        report.add_fix("narration_beat_mapping", "Re-placed narration segments onto beats.", indices, placement)

    def _repair_narration_in_place(
        self,
        report: QCReport,
        narration: Dict[str, Any],
        beats: List[Dict[str, Any]],
        constraints: Dict[str, Any],
    ) -> None:
        """Timeline flow: clean each segment where it stands, keeping the beat mapping."""
        max_words = constraints["max_words_per_segment"]
        segments = narration.setdefault("segments", [])
        for i, segment in enumerate(segments):
            beat_index = segment.get("beat_index")
            if not isinstance(beat_index, int) or isinstance(beat_index, bool):
                beat_index = i
            beat = beats[beat_index] if 0 <= beat_index < len(beats) else None
            act_index = int(segment.get("act_index") or 0)
            original = segment.get("text") or ""
            text = original.strip()
            silent = beat is not None and beat.get("beat_type") != BeatType.NARRATED.value

            if silent and text:
                report.add_fix(f"narration_breathing_silence_{i}", "Cleared narration on a breathing beat.", text, "")
                text = ""
            elif not text and not silent:
                text = rules.fallback_for_act(act_index)["text"]
                report.add_fix(f"narration_empty_{i}", "Replaced empty narration segment with fallback.", "", text)

            if text and not rules.is_clean(text):
                cleaned = rules.remove_banned_sentences(text)
                if cleaned:
                    report.add_fix(
                        f"narration_trim_{i}", "Trimmed offending sentences from narration segment.", text, cleaned
                    )
                    text = cleaned
                else:
                    text = rules.fallback_for_act(act_index)["text"]
                    report.add_fix(
                        f"narration_replace_{i}", "Replaced fully-banned narration segment with fallback.", original, text
                    )

            if rules.word_count(text) > max_words:
                trimmed = rules.trim_to_sentences(text, max_words) or rules.fallback_for_act(act_index)["text"]
                report.add_fix(
                    f"narration_trim_length_{i}", "Trimmed over-length narration segment.", rules.word_count(text), rules.word_count(trimmed)
                )
                text = trimmed

            report.add_check(
                f"narration_banned_{i}",
                "narration",
                "warn",
                rules.is_clean(text),
                f"Narration segment {i} language check.",
            )
            segment.update(text=text, word_count=rules.word_count(text), beat_index=beat_index)

    def _rebuild_narration(self, report: QCReport, narration: Dict[str, Any], constraints: Dict[str, Any]) -> None:
        """Legacy flow: reallocate segments across acts by a fixed per-act quota."""
        buckets: Dict[int, List[Dict[str, Any]]] = {}
        for segment in narration.get("segments") or []:
            buckets.setdefault(int(segment.get("act_index") or 0), []).append(segment)

        rebuilt: List[Dict[str, Any]] = []
        start_time = 0
        pause_after = constraints["pause"][0]
        max_words = constraints["max_words_per_segment"]
        for index, act_index in enumerate(rules.allocate_act_order(constraints["segments"][1])):
            candidates = buckets.get(act_index) or []
            candidate = candidates.pop(0) if candidates else {}
            fallback = rules.fallback_for_act(act_index)
            text = (candidate.get("text") or "").strip() or fallback["text"]

            violations = rules.narration_violations(text)
            if violations:
                cleaned = rules.remove_banned_sentences(text)
                report.add_check(
                    f"narration_banned_{act_index}_{index}",
                    "narration",
                    "warn" if cleaned else "error",
                    False,
                    "Narration segment had banned content; offending sentences trimmed."
                    if cleaned
                    else "Narration segment entirely banned; replaced with fallback.",
                    {"violations": violations},
                )
                if cleaned:
                    report.add_fix(
                        f"narration_trim_{act_index}_{index}",
                        "Trimmed offending sentences from narration segment.",
                        candidate.get("text"),
                        cleaned,
                    )
                    text = cleaned
                else:
                    report.add_fix(
                        f"narration_replace_{act_index}_{index}",
                        "Replaced fully-banned narration segment with fallback.",
                        candidate.get("text"),
                        fallback["text"],
                    )
                    text = fallback["text"]
            else:
                report.add_check(
                    f"narration_banned_{act_index}_{index}",
                    "narration",
                    "warn",
                    True,
                    "Narration segment passed language checks.",
                )

            if rules.word_count(text) > max_words:
                trimmed = rules.trim_to_sentences(text, max_words) or fallback["text"]
                report.add_fix(
                    f"narration_trim_length_{act_index}_{index}",
                    "Trimmed over-length narration segment.",
                    rules.word_count(text),
                    rules.word_count(trimmed),
                )
                text = trimmed

            words = rules.word_count(text)
            duration = -(-words // 2)
            cue = candidate.get("visual_cue")
            rebuilt.append(
                {
                    "text": text,
                    "start_time": start_time,
                    "duration": duration,
                    "act_index": act_index,
                    "pause_after": pause_after,
                    "word_count": words,
                    "status": "pending",
                    "beat_index": index,
                    "visual_cue": cue if rules.is_filmable_cue(cue) else fallback["visual_cue"],
                    "visual_description": candidate.get("visual_description") or "",
                    "motif": candidate.get("motif") or fallback["motif"],
                    "scale_type": candidate.get("scale_type") or fallback["scale_type"],
                    "shot_type": candidate.get("shot_type") or fallback["shot_type"],
                    "setting_hint": candidate.get("setting_hint") or fallback["setting_hint"],
                }
            )
            start_time += duration + pause_after
        narration["segments"] = rebuilt

    def _check_narration(
        self, report: QCReport, narration: Dict[str, Any], constraints: Dict[str, Any], beat_count: int
    ) -> None:
        segments = narration.get("segments") or []
        if beat_count:
            report.add_check(
                "narration_segment_count",
                "narration",
                "warn",
                len(segments) == beat_count,
                f"Timeline-first: narration should have {beat_count} segments (1 per beat).",
                {"count": len(segments), "expected": beat_count},
            )
        else:
            report.add_check(
                "narration_segment_count",
                "narration",
                "warn",
                len(segments) <= 8,
                "Narration should have at most 8 segments.",
                {"count": len(segments), "expected": "<=8"},
            )
        coverage = sorted({int(s.get("act_index") or 0) for s in segments})
        report.add_check(
            "narration_act_coverage",
            "narration",
            "warn",
            len(coverage) >= 2,
            "Narration should cover multiple acts.",
            {"act_coverage": coverage},
        )

        if segments:
            last = segments[-1]
            if rules.narration_violations(last.get("text") or ""):
                cleaned = rules.remove_banned_sentences(last["text"])
                if cleaned:
                    report.add_fix("narration_return_trim", "Trimmed banned content from final segment.", last["text"], cleaned)
                    last.update(text=cleaned, word_count=rules.word_count(cleaned))
                else:
                    fallback = rules.fallback_for_act(int(last.get("act_index") or 0))
                    report.add_fix("narration_return_last", "Replaced final segment with fallback.", last["text"], fallback["text"])
                    last.update(fallback)
                    last["word_count"] = rules.word_count(fallback["text"])
            violations = rules.narration_violations(last.get("text") or "")
            report.add_check(
                "narration_return_end",
                "narration",
                "warn",
                not violations,
                "Final narration segment should pass language checks.",
                {"violations": violations} if violations else None,
            )

        narration["total_word_count"] = sum(int(s.get("word_count") or 0) for s in segments)
        narration["avg_pause_duration"] = (
            sum(float(s.get("pause_after") or 0) for s in segments) / len(segments) if segments else 0
        )
        report.add_check(
            "narration_total_words",
            "narration",
            "warn",
            narration["total_word_count"] <= constraints["max_words"],
            "Narration total word count within limit.",
            {"total": narration["total_word_count"], "max": constraints["max_words"]},
        )

    def _check_beat_coverage(self, report: QCReport, narration: Dict[str, Any], shot_plan: List[Dict[str, Any]]) -> None:
        coverage: Dict[int, List[int]] = {}
        for shot in shot_plan:
            if isinstance(shot.get("beat_index"), int):
                coverage.setdefault(shot["beat_index"], []).append(shot.get("clip_index"))

        for index, segment in enumerate(narration.get("segments") or []):
            beat_index = segment.get("beat_index")
            if not isinstance(beat_index, int):
                beat_index = index
                segment["beat_index"] = index
            if not coverage.get(beat_index):
                candidate = next(
                    (
                        shot
                        for shot in shot_plan
                        if shot.get("act_index") == segment.get("act_index") and not isinstance(shot.get("beat_index"), int)
                    ),
                    None,
                )
                if candidate is not None:
                    report.add_fix(
                        f"beat_coverage_assign_{beat_index}",
                        "Assigned uncovered beat to a shot in the same act.",
                        {"beat_index": candidate.get("beat_index")},
                        {"beat_index": beat_index},
                    )
                    candidate["beat_index"] = beat_index
                    coverage[beat_index] = [candidate.get("clip_index")]
            covered = coverage.get(beat_index) or []
            segment["covered_by_clip_indices"] = list(covered)
            report.add_check(
                f"beat_coverage_{beat_index}",
                "scenes",
                "warn",
                bool(covered),
                "Narration beat should be covered by at least one shot.",
                {"beat_index": beat_index, "clip_indices": covered, "act_index": segment.get("act_index")},
            )

    def _repair_act_motifs(self, report: QCReport, structure: Dict[str, Any], shot_plan: List[Dict[str, Any]]) -> None:
        for index, act in enumerate(structure.get("acts") or []):
            count = sum(1 for shot in shot_plan if shot.get("act_index") == index)
            expected = rules.EXPECTED_SHOTS_PER_ACT.get(act.get("act_type"), 2)
            report.add_check(
                f"scene_count_{act.get('act_type')}",
                "scenes",
                "warn",
                count == expected,
                "Act should have expected number of clips.",
                {"act_type": act.get("act_type"), "expected": expected, "count": count},
            )

        vast = [shot for shot in shot_plan if shot.get("act_index") == _VAST_ACT]
        has_cosmic = any(
            shot.get("motif") in ("earth_from_space", "starfield")
            or shot.get("setting") == "space"
            or shot.get("scale_type") == "cosmic"
            for shot in vast
        )
        if vast and not has_cosmic:
            first = vast[0]
            report.add_fix(
                "vast_cosmic_motif",
                "Injected cosmic motif into VAST act.",
                {"motif": first.get("motif"), "setting": first.get("setting")},
                {"motif": "earth_from_space", "setting": "space"},
            )
            first.update(
                motif="earth_from_space",
                setting="space",
                scale_type="cosmic",
                visual_cue="Earth from space with a thin atmospheric line",
                prompt=f"{first.get('prompt') or ''}, earth from space, thin atmosphere".lstrip(", "),
            )
        report.add_check(
            "vast_cosmic_presence",
            "scenes",
            "warn",
            has_cosmic or not vast,
            "VAST should include a cosmic motif.",
            {"shot_count": len(vast)},
        )

        miracle = [shot for shot in shot_plan if shot.get("act_index") == _MIRACLE_ACT]
        has_embodiment = any(
            shot.get("scale_type") == "personal" or shot.get("shot_type") == "macro" or shot.get("setting") == "interior"
            for shot in miracle
        )
        if miracle and not has_embodiment:
            first = miracle[0]
            report.add_fix(
                "miracle_embodiment_motif",
                "Injected embodiment motif into MIRACLE_OF_YOU act.",
                {"setting": first.get("setting"), "shot_type": first.get("shot_type")},
                {"setting": "interior", "shot_type": "macro"},
            )
            first.update(setting="interior", shot_type="macro", scale_type="personal")
            first["visual_cue"] = "Soft morning light moving across folded linen on a windowsill"
            if first.get("prompt"):
                first["prompt"] = f"{first['prompt']}, macro detail, steady"
        report.add_check(
            "miracle_embodiment_presence",
            "scenes",
            "warn",
            has_embodiment or not miracle,
            "MIRACLE_OF_YOU should include embodiment cues.",
            {"shot_count": len(miracle)},
        )

        returns = [shot for shot in shot_plan if shot.get("act_index") == _RETURN_ACT]
        if returns and not any(shot.get("motif") in ("quiet_return", "shared_continuance") for shot in returns):
            report.add_fix(
                "return_motif", "Injected return motif into RETURN act.", {"motif": returns[0].get("motif")}, {"motif": "quiet_return"}
            )
            returns[0]["motif"] = "quiet_return"
        in_space = [shot for shot in returns if shot.get("setting") == "space"]
        if in_space:
            report.add_fix(
                "return_no_space",
                "Removed space setting from RETURN act.",
                {"clip_indices": [shot.get("clip_index") for shot in in_space], "setting": "space"},
                {"setting": "urban"},
            )
            for shot in in_space:
                shot["setting"] = "urban"

    def _repair_shots(self, report: QCReport, shot_plan: List[Dict[str, Any]]) -> None:
        prompt_counts: Dict[str, int] = {}
        gen_count = 0
        for index, shot in enumerate(shot_plan):
            if shot.get("source", SceneSource.GEN.value) != SceneSource.GEN.value:
                continue
            gen_count += 1
            if not shot.get("micro_action"):
                report.add_fix(f"shot_micro_action_{index}", "Added default micro-action.", shot.get("micro_action"), rules.DEFAULT_MICRO_ACTION)
                shot["micro_action"] = rules.DEFAULT_MICRO_ACTION

            duration = rules.normalize_duration(shot.get("duration"))
            if duration != shot.get("duration"):
                report.add_fix(f"shot_duration_{index}", "Normalized shot duration to allowed values.", shot.get("duration"), duration)
                shot["duration"] = duration

            if not shot.get("prompt"):
                prompt = f"observational scene, {shot.get('description') or ''}".strip()
                report.add_fix(f"shot_prompt_missing_{index}", "Added missing render prompt for GEN shot.", shot.get("prompt"), prompt)
                shot["prompt"] = prompt

            key = shot["prompt"].strip()
            seen = prompt_counts.get(key, 0)
            if seen:
                time_of_day = rules.TIME_OF_DAY_OPTIONS[(index + seen) % len(rules.TIME_OF_DAY_OPTIONS)]
                setting = rules.SETTING_OPTIONS[(index + seen) % len(rules.SETTING_OPTIONS)]
                updated = f"{shot['prompt']}, {time_of_day} light, {setting} setting, {shot['micro_action']}"
                report.add_fix(f"shot_prompt_dedupe_{index}", "Adjusted duplicate prompt to be unique.", shot["prompt"], updated)
                shot["prompt"] = updated
            prompt_counts[key] = seen + 1

        unique = len({shot["prompt"].strip() for shot in shot_plan if shot.get("source", SceneSource.GEN.value) == SceneSource.GEN.value})
        report.add_check(
            "shot_prompt_uniqueness",
            "scenes",
            "warn",
            unique == gen_count,
            "GEN shot prompts should be unique.",
            {"unique_count": unique, "total": gen_count},
        )

    def _check_avoid_list(
        self, report: QCReport, shot_plan: List[Dict[str, Any]], avoid_list: Optional[Dict[str, Any]]
    ) -> None:
        snippets = [s.lower() for s in (avoid_list or {}).get("prompt_snippets") or [] if s]
        if not snippets:
            return
        repeated = [
            shot.get("clip_index")
            for shot in shot_plan
            if any(snippet in (shot.get("prompt") or "").lower() for snippet in snippets)
        ]
        report.add_check(
            "avoid_list_prompt_overlap",
            "scenes",
            "warn",
            not repeated,
            "Shot prompts should not reuse recently rendered prompt openings.",
            {"clip_indices": repeated},
        )

    def _check_diversity(self, report: QCReport, shot_plan: List[Dict[str, Any]], timeline_mode: bool) -> List[str]:
        failures: List[str] = []
        # Beats of one act are contiguous in timeline mode, so only settings are checked there.
        runs = [rules.longest_run([shot.get("setting") for shot in shot_plan])]
        if not timeline_mode:
            runs.append(rules.longest_run([shot.get("act_type") for shot in shot_plan]))
        if not report.add_check(
            "diversity_no_repeat_consecutive",
            "scenes",
            "error",
            max(runs, default=0) <= rules.MAX_CONSECUTIVE_SAME,
            f"No more than {rules.MAX_CONSECUTIVE_SAME} consecutive shots with same actType or same setting.",
        ):
            failures.append("diversity_no_repeat_consecutive")

        motifs = {shot.get("motif") or shot.get("description") or "" for shot in shot_plan}
        motifs.discard("")
        if not report.add_check(
            "diversity_distinct_motifs",
            "scenes",
            "error",
            len(motifs) >= rules.MIN_DISTINCT_MOTIFS,
            f"At least {rules.MIN_DISTINCT_MOTIFS} distinct motifs in shot plan.",
            {"distinct_motifs": len(motifs)},
        ):
            failures.append("diversity_distinct_motifs")
        return failures

    def _write_back(self, timeline: Dict[str, Any], narration: Dict[str, Any], shot_plan: List[Dict[str, Any]]) -> None:
        beats = timeline.get("beats") or []
        for segment in narration.get("segments") or []:
            beat_index = segment.get("beat_index")
            if isinstance(beat_index, int) and 0 <= beat_index < len(beats):
                beat = beats[beat_index]
                if beat.get("beat_type") == BeatType.NARRATED.value:
                    beat["narration_text"] = segment.get("text") or None
        for shot in shot_plan:
            beat_index = shot.get("beat_index")
            if isinstance(beat_index, int) and 0 <= beat_index < len(beats) and shot.get("prompt"):
                beats[beat_index]["render_prompt"] = shot["prompt"]

    def _check_timeline(self, report: QCReport, timeline: Dict[str, Any]) -> List[str]:
        beats = timeline.get("beats") or []
        failures: List[str] = []
        allowed = rules.allowed_durations()

        avg = sum(b.get("duration_sec") or 0 for b in beats) / len(beats) if beats else 0
        if not report.add_check(
            "timeline_beat_duration",
            "structure",
            "error",
            avg >= rules.MIN_AVG_BEAT_SEC and all(b.get("duration_sec") in allowed for b in beats),
            "Timeline: beat durations must be 6 or 8s only; average >= 6.",
            {"avg_duration": avg, "beat_count": len(beats)},
        ):
            failures.append("timeline_beat_duration")

        breathing = sum(1 for b in beats if b.get("beat_type") == BeatType.BREATHING.value)
        if not report.add_check(
            "timeline_breathing_beats",
            "structure",
            "error",
            breathing >= MIN_BREATHING_BEATS,
            f"Timeline: at least {MIN_BREATHING_BEATS} breathing beat(s) required.",
            {"breathing_count": breathing},
        ):
            failures.append("timeline_breathing_beats")

        short_run = 0
        max_short_run = 0
        for beat in beats:
            short_run = short_run + 1 if (beat.get("duration_sec") or 0) < LONG_BEAT_SEC else 0
            max_short_run = max(max_short_run, short_run)
        if not report.add_check(
            "timeline_no_rapid_cuts",
            "structure",
            "warn",
            max_short_run <= rules.MAX_CONSECUTIVE_SHORT_BEATS,
            "Timeline: no more than 2 consecutive beats with duration < 8s.",
            {"max_consecutive_short": max_short_run},
        ):
            failures.append("timeline_no_rapid_cuts")

        by_act: Dict[int, List[Dict[str, Any]]] = {}
        for beat in beats:
            by_act.setdefault(beat.get("act_index"), []).append(beat)
        broken = []
        for act_index, act_beats in sorted(by_act.items()):
            motions = {(b.get("camera_grammar") or {}).get("motion") for b in act_beats} - {None}
            times = {(b.get("lighting") or {}).get("time_of_day") for b in act_beats} - {None}
            if len(motions) > 1 or len(times) > 1:
                broken.append(act_index)
        if not report.add_check(
            "timeline_camera_lighting_continuity",
            "structure",
            "warn",
            not broken,
            "Timeline: within each act, use a single camera motion and a single lighting/timeOfDay.",
            {"acts": broken} if broken else None,
        ):
            failures.append("timeline_camera_lighting_continuity")

        narrated = [b for b in beats if b.get("beat_type") == BeatType.NARRATED.value]
        misaligned = [b.get("beat_index") for b in narrated if not (b.get("narration_text") or "").strip()]
        if not report.add_check(
            "timeline_narration_alignment",
            "narration",
            "warn",
            not misaligned,
            "Timeline: each narrated beat must have non-empty narrationText.",
            {"narrated_count": len(narrated), "misaligned": misaligned},
        ):
            failures.append("timeline_narration_alignment")
        return failures

    # ------------------------------------------------------------------ post-render

    def qc_post_render(
        self,
        structure: Dict[str, Any],
        scenes: List[Dict[str, Any]],
        narration_segments: List[Dict[str, Any]],
        expected_scene_count: Optional[int] = None,
    ) -> Dict[str, Any]:
        report = QCReport("post_gen")
        allowed = rules.allowed_durations()
        acts = structure.get("acts") or []
        if expected_scene_count is None:
            expected_scene_count = sum(rules.EXPECTED_SHOTS_PER_ACT.get(act.get("act_type"), 2) for act in acts)

        report.add_check(
            "render_scene_count",
            "render",
            "warn",
            len(scenes) == expected_scene_count,
            "Scene count should match expected shot plan size.",
            {"expected": expected_scene_count, "actual": len(scenes)},
        )
        for index, scene in enumerate(scenes):
            report.add_check(
                f"render_url_{index}",
                "render",
                "warn",
                bool(scene.get("video_url") or scene.get("url")),
                "Scene should have a rendered video URL.",
                {"status": scene.get("status"), "job_id": scene.get("job_id")},
            )
            report.add_check(
                f"render_duration_{index}",
                "render",
                "warn",
                scene.get("duration") in allowed,
                "Scene duration should be an allowed clip duration.",
                {"duration": scene.get("duration"), "allowed_durations": allowed},
            )

        rendered_total = sum(float(scene.get("duration") or 0) for scene in scenes)
        expected_total = float(structure.get("total_duration") or sum(float(a.get("duration") or 0) for a in acts))
        report.add_check(
            "assembly_total_duration",
            "assembly",
            "warn",
            abs(rendered_total - expected_total) <= rules.ASSEMBLY_DURATION_TOLERANCE_SEC,
            "Total scene duration should align with documentary structure.",
            {"scene_duration_total": rendered_total, "expected_total": expected_total},
        )

        windows = []
        cursor = 0.0
        for act in acts:
            duration = float(act.get("duration") or 0)
            windows.append((cursor, cursor + duration))
            cursor += duration
        for index, segment in enumerate(narration_segments):
            act_index = int(segment.get("act_index") or 0)
            window = windows[act_index] if 0 <= act_index < len(windows) else None
            start = float(segment.get("start_time") or 0)
            report.add_check(
                f"assembly_narration_window_{index}",
                "assembly",
                "warn",
                window is not None and window[0] <= start <= window[1],
                "Narration segment should align with its act window.",
                {"act_index": act_index, "start_time": start, "window": list(window) if window else None},
            )
        return {"report": report.finalize()}

    # ------------------------------------------------------------------ validator / media

    def qc_timeline_validate(self, timeline: Dict[str, Any], max_act_index: int = 3) -> Dict[str, Any]:
        errors = validate_master_timeline(timeline, max_act_index)
        return {"ok": not errors, "errors": errors}

    def qc_narration_audio(self, uri: str) -> Dict[str, Any]:
        import numpy as np
        import soundfile as sf

        path = self._resolve(uri)
        min_duration = float(os.getenv("TTS_MIN_LINE_DURATION_SEC", "0.2"))
        min_rms = float(os.getenv("TTS_MIN_RMS", "0.005"))
        max_peak = float(os.getenv("TTS_MAX_PEAK", "0.99"))

        audio, sr = sf.read(path, dtype="float32", always_2d=False)
        data = np.asarray(audio, dtype=np.float32)
        if data.ndim > 1:
            data = data.mean(axis=1)
        duration = float(data.shape[0]) / float(sr or 1)
        rms = float(np.sqrt(np.mean(np.square(data)))) if data.size else 0.0
        peak = float(np.max(np.abs(data))) if data.size else 0.0

        issues = []
        if duration < min_duration:
            issues.append("DURATION_TOO_SHORT")
        if rms < min_rms:
            issues.append("NEAR_SILENT")
        if peak >= max_peak:
            issues.append("CLIPPING_RISK")
        result = {
            "ok": not issues,
            "path": path,
            "duration_sec": duration,
            "sample_rate": int(sr),
            "rms": rms,
            "peak": peak,
            "clipping": peak >= max_peak,
            "issues": issues,
        }
        return self._media_verdict(result)

    def qc_final_media(self, uri: str, expected_duration_sec: Optional[float] = None) -> Dict[str, Any]:
        import cv2

        path = self._resolve(uri)
        min_motion = float(os.getenv("FINAL_MIN_MOTION_DIFF", "0.15"))
        black_mean = float(os.getenv("BLACK_FRAME_MEAN", "10"))
        max_black_ratio = float(os.getenv("MAX_BLACK_FRAME_RATIO", "0.2"))

        cap = cv2.VideoCapture(path)
        ok, prev = cap.read()
        frames = 1 if ok else 0
        black = 1 if ok and float(prev.mean()) < black_mean else 0
        motion_sum = 0.0
        motion_n = 0
        while ok:
            ok2, cur = cap.read()
            if not ok2:
                break
            frames += 1
            if float(cur.mean()) < black_mean:
                black += 1
            motion_sum += float(cv2.absdiff(cur, prev).mean())
            motion_n += 1
            prev = cur
        cap.release()

        mean_motion = (motion_sum / motion_n) if motion_n else 0.0
        black_ratio = (black / frames) if frames else 1.0
        duration = media_duration(path)

        issues = []
        if frames <= 1:
            issues.append("ZERO_FRAMES")
        if mean_motion < min_motion:
            issues.append("NO_MOTION")
        if black_ratio > max_black_ratio:
            issues.append("MOSTLY_BLACK")
        if expected_duration_sec is not None and abs(duration - expected_duration_sec) > 1.0:
            issues.append("DURATION_MISMATCH")
        result = {
            "ok": not issues,
            "path": path,
            "duration_sec": duration,
            "frame_count": frames,
            "mean_motion": mean_motion,
            "black_frame_ratio": black_ratio,
            "issues": issues,
        }
        return self._media_verdict(result)

    def _media_verdict(self, result: Dict[str, Any]) -> Dict[str, Any]:
        if not result["ok"] and _truthy(os.getenv("FINAL_MEDIA_HARD_FAIL", "0")):
            raise QCHardViolation(
                f"media check failed for {result['path']}: {', '.join(result['issues'])}",
                failures=result["issues"],
            )
        return result

    def _resolve(self, uri: str) -> str:
        if os.path.exists(uri):
            return uri
        return self.store.get_path(uri)

"""Narration agent: structure + timeline skeleton -> one narration segment per beat."""
import json
from typing import Any, Dict

from agents.common import LLMClient, with_feedback


PROMPT = """
You write narration for an observational documentary short. The timeline is fixed; write to it.

Structure, timeline skeleton and avoid list:
{input_json}

Return a JSON object {{"segments": [...]}} with exactly one segment per beat, in beat order. Each segment:
{{beat_index: int, text: string, visual_description: string, visual_cue: string, motif: string,
scale_type: cosmic|global|personal|human, shot_type: wide|macro|aerial|static|slow_drift,
setting_hint: urban|suburban|rural|interior|transit|workplace|public_space|space}}
Rules:
- Breathing and transition beats get an empty text but still a visual_description.
- Narrated beats: at most {max_words} words, complete sentences only, roughly two words per second of beat.
- Describe; never instruct. No "you should", no promises, no lessons, no inspirational vocabulary.
- visual_description is a concrete, filmable shot (no text on screen, no faces in close-up).
- motif is one of earth_from_space, starfield, city_lights, human_labor, struggle_survival, quiet_return,
  shared_continuance, ocean_current, mountain_ridge, urban_night, desert_stillness, forest_canopy,
  domestic_detail, crowd_motion, industrial_hum.
""".strip()


def run(
    input_data: Dict[str, Any],
    llm: LLMClient | None = None,
    critic_feedback: str | None = None,
) -> Dict[str, Any]:
    llm = llm or LLMClient(agent_name="narration")
    prompt = PROMPT.format(
        input_json=json.dumps(input_data, ensure_ascii=True),
        max_words=int(input_data.get("max_words_per_segment") or 20),
    )
    return llm.complete_json(with_feedback(prompt, critic_feedback))

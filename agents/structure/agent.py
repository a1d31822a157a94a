"""Structure agent: user text -> understanding + four-act documentary structure."""
import json
from typing import Any, Dict

from agents.common import LLMClient, with_feedback


PROMPT = """
You are a documentary director planning a 120 second observational short film.
Read the person's text and plan how the film moves from cosmic scale back to ordinary life.

Input:
{input_json}

Return a JSON object with keys:
- understanding: {{summary: string, core_tension: string, guiding_question: string}}
- perspective_posture: one of humbling_continuity, grounded_endurance, quiet_awe, embodied_fragility, patient_return
- narration_style: one of sparse, moderate, minimal
- intensity_level: integer 1-10
- acts: array of exactly 4 objects in this order: vast, living_dot, miracle_of_you, return.
  Each act: {{act_type: string, duration: number (seconds), scale_type: cosmic|global|personal|human,
  silence_duration: number, visual_requirements: string[], emotional_phase: string, pacing_speed: string}}
Rules:
- Act durations sum to 120.
- The vast act opens with at least 2 seconds of silence.
- Never give advice, never promise outcomes, never use inspirational language.
- No extra keys.
""".strip()


def run(
    input_data: Dict[str, Any],
    llm: LLMClient | None = None,
    critic_feedback: str | None = None,
) -> Dict[str, Any]:
    """Pure function: user text -> documentary structure."""
    llm = llm or LLMClient(agent_name="structure")
    prompt = PROMPT.format(input_json=json.dumps(input_data, ensure_ascii=True))
    return llm.complete_json(with_feedback(prompt, critic_feedback))

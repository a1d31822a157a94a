"""Skeleton agent: documentary structure -> master timeline beats (no narration yet)."""
import json
from typing import Any, Dict

from agents.common import LLMClient, with_feedback


PROMPT = """
You are the editor laying out the master timeline of a 120 second documentary before any words are written.

Structure and avoid list:
{input_json}

Return a JSON object {{"beats": [...]}} with 12 to 18 beats in screen order. Each beat:
{{act_index: int (0-{max_act_index}), duration_sec: 6 or 8, beat_type: narrated|breathing|transition,
visual_category: cosmos|earth|human|nature|abstract|conflict|ocean|domestic|industrial|desert,
camera_grammar: {{motion: slow_drift|slow_push|locked_off|handheld, framing: wide|medium|close, lens: wide|normal|tele}},
lighting: {{time_of_day: night|dawn|day|dusk, contrast: low|medium|high}},
transition_out: cut|dissolve|match_cut, render_prompt: string}}
Rules:
- Durations sum to exactly 120 seconds. Prefer 8 second beats; never three 6 second beats in a row.
- At least 4 breathing beats (visual only, no words), spread across acts.
- Within one act keep a single camera motion and a single time of day.
- The last beat mirrors the first beat's visual category and framing.
- Use "Narrated" as render_prompt for narrated beats; breathing beats get a concrete visual description.
- Avoid settings and prompt openings listed in avoid_list.
""".strip()


def run(
    input_data: Dict[str, Any],
    llm: LLMClient | None = None,
    critic_feedback: str | None = None,
) -> Dict[str, Any]:
    llm = llm or LLMClient(agent_name="skeleton")
    acts = (input_data.get("structure") or {}).get("acts") or []
    prompt = PROMPT.format(
        input_json=json.dumps(input_data, ensure_ascii=True),
        max_act_index=max(0, len(acts) - 1),
    )
    return llm.complete_json(with_feedback(prompt, critic_feedback))

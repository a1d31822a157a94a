from __future__ import annotations

from typing import Any, Dict

from agents import common as agents_common
from agents.narration import agent as narration_agent
from agents.skeleton import agent as skeleton_agent
from agents.structure import agent as structure_agent


class DummyLLM(agents_common.LLMClient):
    def __init__(self, payload: Dict[str, Any]) -> None:
        super().__init__()
        self._payload = payload

    def complete_json(self, prompt: str) -> Dict[str, Any]:
        self.last_prompt = prompt
        return self._payload


def test_structure_agent():
    llm = DummyLLM({"acts": [], "narration_style": "sparse"})
    res = structure_agent.run({"user_text": "the night sky over my town"}, llm=llm)
    assert res["narration_style"] == "sparse"
    assert "the night sky over my town" in llm.last_prompt


def test_skeleton_agent_prompt_carries_act_bound():
    llm = DummyLLM({"beats": []})
    structure = {"acts": [{"act_type": "vast"}, {"act_type": "living_dot"}, {"act_type": "return"}]}
    res = skeleton_agent.run({"structure": structure, "avoid_list": {}}, llm=llm)
    assert res == {"beats": []}
    assert "act_index: int (0-2)" in llm.last_prompt


def test_narration_agent_word_limit_and_feedback():
    llm = DummyLLM({"segments": []})
    narration_agent.run(
        {"structure": {}, "timeline": {"beats": []}, "max_words_per_segment": 14},
        llm=llm,
        critic_feedback="Previous draft failed QC: scene_diversity",
    )
    assert "at most 14 words" in llm.last_prompt
    assert "# Reviewer Feedback\nPrevious draft failed QC: scene_diversity" in llm.last_prompt


def test_with_feedback_is_noop_without_feedback():
    assert agents_common.with_feedback("prompt", None) == "prompt"

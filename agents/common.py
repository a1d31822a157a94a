"""Shared LLM client for planner agents."""
import json
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from orchestrator.http_json import request_json, with_backoff


_DEFAULT_TEMPERATURES: Dict[str, float] = {
    "structure": 0.4,
    "skeleton": 0.3,
    "narration": 0.7,
}

SYSTEM_MSG = "You must respond with JSON only. No prose."
REPAIR_SYSTEM_MSG = "You fix invalid JSON. Return only valid JSON. No prose."


def _agent_temp_env_key(agent_name: str) -> str:
    normalized = "".join(ch if ch.isalnum() else "_" for ch in (agent_name or "default"))
    return f"LLM_TEMPERATURE_{normalized.upper()}"


def _resolve_temperature(agent_name: str) -> float:
    # Per-agent override wins (e.g., LLM_TEMPERATURE_NARRATION).
    value = os.getenv(_agent_temp_env_key(agent_name))
    if value is not None:
        return float(value)
    return _DEFAULT_TEMPERATURES.get(agent_name, 0.1)


@dataclass
class LLMConfig:
    agent_name: str = "default"
    model: str = os.getenv("LLM_MODEL", "Qwen/Qwen2.5-7B-Instruct")
    base_url: str = os.getenv("VLLM_BASE_URL", "http://localhost:8000/v1")
    api_key: str = os.getenv("VLLM_API_KEY", "EMPTY")
    temperature: Optional[float] = None
    seed: Optional[int] = int(os.getenv("LLM_SEED", "42"))
    max_tokens: int = int(os.getenv("LLM_MAX_TOKENS", "4096"))
    json_only: bool = True
    timeout_sec: int = int(os.getenv("LLM_TIMEOUT_SEC", "90"))

    def __post_init__(self) -> None:
        if self.temperature is None:
            self.temperature = _resolve_temperature(self.agent_name)


class LLMClient:
    """OpenAI-compatible chat client that only accepts JSON objects back."""

    def __init__(self, config: Optional[LLMConfig] = None, agent_name: str = "default") -> None:
        self.config = config or LLMConfig(agent_name=agent_name)
        self.last_raw: Optional[str] = None
        self.last_prompt: Optional[str] = None
        self.last_messages: Optional[List[Dict[str, str]]] = None

    def complete_json(self, prompt: str) -> Dict[str, Any]:
        """Return the model's JSON object, salvaging or repairing malformed output."""
        self.last_prompt = prompt
        last_err: Optional[Exception] = None
        for _attempt in range(3):
            content = self._chat(SYSTEM_MSG, prompt, self.config.temperature)
            try:
                return ensure_json_only(content)
            except json.JSONDecodeError as err:
                last_err = err
                salvage = _extract_json(content)
                if salvage is not None:
                    return salvage
                repaired = self._repair_json(content)
                if repaired is not None:
                    return repaired
                prompt = "Return valid JSON only. Do not include any other text.\n\n" + self.last_prompt
        raise last_err or RuntimeError("Failed to parse JSON from LLM")

    def _chat(self, system_msg: str, prompt: str, temperature: Optional[float]) -> str:
        url = self.config.base_url.rstrip("/") + "/chat/completions"
        headers: Dict[str, str] = {}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        payload: Dict[str, Any] = {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": system_msg},
                {"role": "user", "content": prompt},
            ],
            "temperature": temperature,
            "max_tokens": self.config.max_tokens,
        }
        self.last_messages = list(payload["messages"])
        if self.config.seed is not None:
            payload["seed"] = self.config.seed
        if self.config.json_only:
            payload["response_format"] = {"type": "json_object"}

        parsed = with_backoff(lambda: request_json(url, payload, headers=headers, timeout_sec=self.config.timeout_sec))
        self.last_raw = json.dumps(parsed)
        choices = parsed.get("choices", [])
        if not choices:
            raise RuntimeError("LLM returned no choices")
        return choices[0].get("message", {}).get("content", "") or ""

    def _repair_json(self, bad_json: str) -> Optional[Dict[str, Any]]:
        prompt = "Fix the JSON below. Return valid JSON only.\n\n<json>\n" + bad_json + "\n</json>"
        try:
            return ensure_json_only(self._chat(REPAIR_SYSTEM_MSG, prompt, 0.0))
        except (json.JSONDecodeError, RuntimeError):
            return None


def ensure_json_only(text: str) -> Dict[str, Any]:
    """Parse a JSON-only response string."""
    return json.loads(text)


def _extract_json(text: str) -> Optional[Dict[str, Any]]:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    try:
        return json.loads(text[start : end + 1])
    except json.JSONDecodeError:
        return None


def with_feedback(prompt: str, critic_feedback: Optional[str]) -> str:
    if not critic_feedback:
        return prompt
    return (
        prompt
        + "\n\n# Reviewer Feedback\n"
        + critic_feedback
        + "\n\nRevise your output accordingly while keeping the required JSON shape."
    )

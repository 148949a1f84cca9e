"""
Shared LLM client wrapper.

Centralises calls to the Anthropic API so that:
  - The model name and token limits are configured once
  - Structured JSON extraction is consistent
  - Token usage and estimated cost are reported with every call

No retries happen here: the advisory layer calls the model exactly once
and falls back to the deterministic optimizer on any failure.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

import anthropic

logger = logging.getLogger(__name__)

MODEL = "claude-sonnet-4-6"
MAX_TOKENS = 2000

JSON_ONLY_INSTRUCTION = (
    "\n\nYou MUST respond with valid JSON only. No preamble, no explanation, no markdown fences."
)

# USD per 1K tokens (input, output)
PRICING_PER_1K: dict[str, tuple[float, float]] = {
    "claude-opus": (0.015, 0.075),
    "claude-sonnet": (0.003, 0.015),
    "claude-haiku": (0.0008, 0.004),
}


def estimate_cost(model: str, input_tokens: int, output_tokens: int) -> Optional[float]:
    for prefix, (input_rate, output_rate) in PRICING_PER_1K.items():
        if model.startswith(prefix):
            cost = input_tokens / 1000 * input_rate + output_tokens / 1000 * output_rate
            return round(cost, 4)
    return None


def strip_code_fences(raw: str) -> str:
    # Strip markdown code fences if the model adds them anyway
    cleaned = re.sub(r"^```(?:json)?\s*", "", raw.strip(), flags=re.IGNORECASE)
    return re.sub(r"\s*```$", "", cleaned.strip())


@dataclass
class LLMCompletion:
    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    cost: Optional[float] = None


class LLMClient:
    def __init__(
        self,
        api_key: str,
        model: str = MODEL,
        max_tokens: int = MAX_TOKENS,
        temperature: float = 0.3,
        timeout_s: float = 30.0,
        client: Optional[anthropic.Anthropic] = None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client = client or anthropic.Anthropic(
            api_key=api_key, timeout=timeout_s, max_retries=0,
        )

    def complete(self, system_prompt: str, messages: list[dict[str, str]]) -> LLMCompletion:
        """Call Claude once and return the text plus token usage."""
        response = self._client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            system=system_prompt,
            messages=messages,
        )
        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        usage = getattr(response, "usage", None)
        input_tokens = getattr(usage, "input_tokens", 0) or 0
        output_tokens = getattr(usage, "output_tokens", 0) or 0
        logger.info(
            "[LLM] %s used %d input / %d output tokens", self.model, input_tokens, output_tokens
        )
        return LLMCompletion(
            text=text,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=estimate_cost(self.model, input_tokens, output_tokens),
        )

    def complete_json(
        self, system_prompt: str, messages: list[dict[str, str]]
    ) -> tuple[Any, LLMCompletion]:
        """
        Call Claude expecting a JSON response.
        Strips markdown code fences if present, then parses.
        Raises ValueError if the response is not valid JSON.
        """
        completion = self.complete(system_prompt + JSON_ONLY_INSTRUCTION, messages)
        try:
            return json.loads(strip_code_fences(completion.text)), completion
        except json.JSONDecodeError as e:
            logger.error("JSON parse failed. Raw response:\n%s", completion.text)
            raise ValueError(f"LLM returned non-JSON output: {e}") from e

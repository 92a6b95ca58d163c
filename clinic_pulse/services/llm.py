"""Chat-model plumbing shared by every agent.

Each agent asks the model for exactly one structured answer.  LangChain's
``with_structured_output`` binds the pydantic output model as a tool and
forces the model to call it, so the reply's tool arguments *are* the JSON
answer.  ``include_raw=True`` keeps the raw ``AIMessage`` around so we can
read token usage for the audit log.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal, TypeVar

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import BaseModel

from clinic_pulse.config import (
    ANTHROPIC_API_KEY,
    FAST_MAX_TOKENS,
    FAST_MODEL_NAME,
    MODEL_NAME,
    PRIMARY_MAX_TOKENS,
)

logger = logging.getLogger(__name__)

Tier = Literal["fast", "primary"]

OutputT = TypeVar("OutputT", bound=BaseModel)

# USD per 1M tokens (input, output), matched by model-name prefix
MODEL_PRICING: dict[str, tuple[float, float]] = {
    "claude-opus-4": (15.00, 75.00),
    "claude-sonnet-4": (3.00, 15.00),
    "claude-haiku-4": (1.00, 5.00),
    "claude-3-5-haiku": (0.80, 4.00),
}
DEFAULT_PRICING: tuple[float, float] = (2.50, 10.00)


class LLMResponseError(Exception):
    """Raised when the model does not return the requested structured call."""


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_message(cls, message: Any) -> TokenUsage:
        """Read ``usage_metadata`` off an ``AIMessage`` (zeros if absent)."""
        meta = getattr(message, "usage_metadata", None) or {}
        input_tokens = int(meta.get("input_tokens", 0) or 0)
        output_tokens = int(meta.get("output_tokens", 0) or 0)
        total = int(meta.get("total_tokens", 0) or 0) or input_tokens + output_tokens
        return cls(input_tokens, output_tokens, total)


def model_for_tier(tier: Tier = "fast") -> str:
    return MODEL_NAME if tier == "primary" else FAST_MODEL_NAME


def estimate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Estimated USD cost of one call, from the static price table."""
    input_rate, output_rate = DEFAULT_PRICING
    for prefix, rates in MODEL_PRICING.items():
        if model.startswith(prefix):
            input_rate, output_rate = rates
            break
    return (input_tokens / 1_000_000) * input_rate + (output_tokens / 1_000_000) * output_rate


def build_llm(tier: Tier = "fast") -> ChatAnthropic:
    """Build the chat model for *tier*.

    ``primary`` is the stronger model, tuned for consistency (low
    temperature, long outputs); ``fast`` keeps provider defaults.
    """
    if tier == "primary":
        return ChatAnthropic(
            model=MODEL_NAME,
            api_key=ANTHROPIC_API_KEY,
            temperature=0.1,
            max_tokens=PRIMARY_MAX_TOKENS,
        )
    return ChatAnthropic(
        model=FAST_MODEL_NAME,
        api_key=ANTHROPIC_API_KEY,
        max_tokens=FAST_MAX_TOKENS,
    )


async def invoke_structured(
    llm: Any,
    output_model: type[OutputT],
    system_prompt: str,
    user_prompt: str,
) -> tuple[OutputT, TokenUsage]:
    """Ask *llm* for one ``output_model`` answer; return it with token usage."""
    structured = llm.with_structured_output(output_model, include_raw=True)
    result = await structured.ainvoke(
        [SystemMessage(content=system_prompt), HumanMessage(content=user_prompt)],
    )

    parsed = result.get("parsed")
    if parsed is None:
        logger.warning(
            "Structured call for %s returned no parsed output: %s",
            output_model.__name__, result.get("parsing_error"),
        )
        raise LLMResponseError("Invalid response from LLM") from result.get("parsing_error")

    return parsed, TokenUsage.from_message(result.get("raw"))

"""Anthropic client utilities for the drafting chains.

Every chain asks for structured output through a forced ``tool_use`` call.
Retries are not handled here; callers wrap these calls with
``app.core.retry.invoke_with_retry`` so each call site owns its retry budget.
"""

import json
import re
from typing import Any

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)

_WRAPPING_FENCE = re.compile(r"\s*```(?:json|html)?\s*\n?(.*?)```\s*", re.DOTALL)


class LLMConfigurationError(RuntimeError):
    """Raised when the LLM client cannot be configured (e.g. missing API key)."""


def get_anthropic_client():
    """
    Build an AsyncAnthropic client from settings.

    Returns:
        AsyncAnthropic instance

    Raises:
        LLMConfigurationError: If ANTHROPIC_API_KEY is not set
    """
    from anthropic import AsyncAnthropic

    settings = get_settings()
    if not settings.ANTHROPIC_API_KEY:
        raise LLMConfigurationError(
            "Anthropic API key not configured. Please set ANTHROPIC_API_KEY in environment."
        )
    return AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY)


def strip_llm_fences(raw_output: str) -> str:
    """Strip a markdown code fence that wraps the whole LLM output.

    Handles: ```json ... ```, ```html ... ```, ``` ... ```, and an opening
    fence whose closing fence was cut off. Backtick spans inside the payload
    are left untouched.
    """
    cleaned = raw_output.strip()

    fence_match = _WRAPPING_FENCE.fullmatch(cleaned)
    if fence_match:
        return fence_match.group(1).strip()

    # Truncated output: opening fence only
    if cleaned.startswith("```") and cleaned.count("```") == 1:
        cleaned = re.sub(r"^```(?:json|html)?", "", cleaned)
    return cleaned.strip()


def parse_llm_json_dict(raw_output: str) -> dict:
    """
    Parse LLM output as JSON, returning a raw dict.

    Raises:
        json.JSONDecodeError: If JSON parsing fails after cleanup
    """
    parsed = json.loads(strip_llm_fences(raw_output))
    if not isinstance(parsed, dict):
        raise json.JSONDecodeError("Expected a JSON object", raw_output, 0)
    return parsed


async def call_structured_tool(
    *,
    system_prompt: str,
    user_prompt: str,
    tool: dict[str, Any],
    model: str,
    max_tokens: int,
    temperature: float = 0.0,
) -> dict[str, Any]:
    """Make one forced tool_use call and return the tool input.

    Falls back to parsing a JSON text block when the response carries no
    tool_use block. Anthropic API errors propagate unchanged so the retry
    wrapper can classify them.

    Args:
        system_prompt: System prompt
        user_prompt: Single user message
        tool: Tool definition (name, description, input_schema)
        model: Model name
        max_tokens: Output token budget
        temperature: Sampling temperature

    Returns:
        Tool input dict (schema validation is the caller's job)
    """
    client = get_anthropic_client()

    response = await client.messages.create(
        model=model,
        max_tokens=max_tokens,
        system=system_prompt,
        messages=[{"role": "user", "content": user_prompt}],
        temperature=temperature,
        tools=[tool],
        tool_choice={"type": "tool", "name": tool["name"]},
    )

    for block in response.content:
        if block.type == "tool_use":
            return dict(block.input)

    logger.warning(f"No tool_use block in {tool['name']} response, falling back to text")
    for block in response.content:
        if hasattr(block, "text"):
            return parse_llm_json_dict(block.text)
    return {}

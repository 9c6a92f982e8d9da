"""Logged LLM calls: one `llm_request` and one `llm_response` entry per call."""

from __future__ import annotations

import time
from typing import Any

from conductor.core.llm.base import LLMProvider
from conductor.core.llm.types import LLMMessage, LLMResponse
from conductor.utils.logging import get_logger

log = get_logger(__name__)


async def traced_complete(
    llm: LLMProvider,
    purpose: str,
    messages: list[LLMMessage],
    system: str | None = None,
    tools: list[dict[str, Any]] | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
    model: str | None = None,
) -> LLMResponse:
    """Call ``llm.complete`` with request/response logging. Exceptions propagate."""
    log.info(
        "llm_request",
        purpose=purpose,
        model=model,
        messages=len(messages),
        tools=len(tools or []),
        system_tokens=llm.count_tokens(system) if system else 0,
        max_tokens=max_tokens,
        temperature=temperature,
    )
    started = time.monotonic()
    response = await llm.complete(
        messages=messages,
        system=system,
        tools=tools,
        temperature=temperature,
        max_tokens=max_tokens,
        model=model,
    )
    log.info(
        "llm_response",
        purpose=purpose,
        model=response.model or model,
        stop_reason=response.stop_reason,
        input_tokens=response.input_tokens,
        output_tokens=response.output_tokens,
        tool_calls=len(response.tool_calls),
        duration_ms=int((time.monotonic() - started) * 1000),
    )
    return response

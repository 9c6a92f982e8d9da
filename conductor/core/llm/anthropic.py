"""Anthropic Messages API provider."""

from __future__ import annotations

import asyncio
import random
from typing import Any

import tiktoken
from anthropic import APIError, AsyncAnthropic, RateLimitError

from conductor.config import LLMConfig
from conductor.core.llm.base import LLMProvider
from conductor.core.llm.types import LLMMessage, LLMResponse, ToolCall
from conductor.utils.logging import get_logger

log = get_logger(__name__)


class AnthropicProvider(LLMProvider):
    def __init__(self, config: LLMConfig) -> None:
        self._config = config
        self._client = AsyncAnthropic(api_key=config.api_key or None)
        # Approximation only; Claude's tokenizer is not public
        self._tokenizer = tiktoken.get_encoding("cl100k_base")

    async def complete(
        self,
        messages: list[LLMMessage],
        system: str | None = None,
        tools: list[dict[str, Any]] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        model: str | None = None,
    ) -> LLMResponse:
        kwargs: dict[str, Any] = {
            "model": model or self._config.model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "max_tokens": max_tokens or self._config.max_tokens,
            "temperature": temperature if temperature is not None else self._config.temperature,
        }
        if system:
            kwargs["system"] = system
        if tools:
            kwargs["tools"] = tools

        response = await self._call_with_retry(kwargs)
        return self._parse_response(response)

    def count_tokens(self, text: str) -> int:
        return len(self._tokenizer.encode(text))

    async def close(self) -> None:
        await self._client.close()

    async def _call_with_retry(self, kwargs: dict[str, Any]) -> Any:
        max_retries = self._config.max_retries
        for attempt in range(max_retries + 1):
            try:
                return await self._client.messages.create(**kwargs)
            except RateLimitError:
                if attempt == max_retries:
                    raise
                wait = (2 ** attempt) + random.uniform(0, 1)
                log.warning("rate_limited", attempt=attempt, wait=wait)
                await asyncio.sleep(wait)
            except APIError as e:
                status = getattr(e, "status_code", None)
                if attempt == max_retries or status is None or status < 500:
                    raise
                wait = (2 ** attempt) + random.uniform(0, 1)
                log.warning("api_error_retry", status=status, attempt=attempt)
                await asyncio.sleep(wait)
        raise RuntimeError("Unreachable")

    def _parse_response(self, response: Any) -> LLMResponse:
        result = LLMResponse(
            stop_reason=response.stop_reason,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=response.model,
        )

        for block in response.content:
            if block.type == "text":
                result.content += block.text
            elif block.type == "tool_use":
                result.tool_calls.append(
                    ToolCall(id=block.id, name=block.name, arguments=dict(block.input))
                )

        return result

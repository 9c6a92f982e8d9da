"""Local (OpenAI-compatible) LLM provider for ollama, llama.cpp, vllm and friends."""

from __future__ import annotations

import asyncio
import json
import random
from typing import Any
from uuid import uuid4

import httpx
import tiktoken

from conductor.config import LLMConfig
from conductor.core.llm.base import LLMProvider
from conductor.core.llm.types import LLMMessage, LLMResponse, ToolCall
from conductor.utils.logging import get_logger

log = get_logger(__name__)

# OpenAI finish reasons mapped onto the Anthropic vocabulary used everywhere else
_STOP_REASONS = {
    "stop": "end_turn",
    "length": "max_tokens",
    "tool_calls": "tool_use",
    "function_call": "tool_use",
}


def _to_openai_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": tool["name"],
                "description": tool.get("description", ""),
                "parameters": tool.get("input_schema", {"type": "object", "properties": {}}),
            },
        }
        for tool in tools
    ]


def _to_openai_messages(messages: list[LLMMessage], system: str | None) -> list[dict[str, Any]]:
    """Flatten Anthropic-style content blocks into chat-completions messages."""
    out: list[dict[str, Any]] = []
    if system:
        out.append({"role": "system", "content": system})

    for msg in messages:
        if isinstance(msg.content, str):
            out.append({"role": msg.role, "content": msg.content})
            continue

        text_parts: list[str] = []
        tool_calls: list[dict[str, Any]] = []
        for block in msg.content:
            kind = block.get("type")
            if kind == "text":
                text_parts.append(block["text"])
            elif kind == "tool_use":
                tool_calls.append({
                    "id": block["id"],
                    "type": "function",
                    "function": {"name": block["name"], "arguments": json.dumps(block.get("input", {}))},
                })
            elif kind == "tool_result":
                out.append({
                    "role": "tool",
                    "tool_call_id": block["tool_use_id"],
                    "content": str(block.get("content", "")),
                })

        if tool_calls:
            out.append({"role": "assistant", "content": "\n".join(text_parts) or None, "tool_calls": tool_calls})
        elif text_parts:
            out.append({"role": msg.role, "content": "\n".join(text_parts)})

    return out


class LocalProvider(LLMProvider):
    def __init__(self, config: LLMConfig) -> None:
        self._config = config
        self._client = httpx.AsyncClient(timeout=120, base_url=config.local_endpoint.rstrip("/"))
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
        body: dict[str, Any] = {
            "model": model or self._config.model,
            "messages": _to_openai_messages(messages, system),
            "max_tokens": max_tokens or self._config.max_tokens,
            "temperature": temperature if temperature is not None else self._config.temperature,
        }
        if tools:
            body["tools"] = _to_openai_tools(tools)

        resp = await self._post_with_retry("/chat/completions", body)
        data = resp.json()

        choice = data["choices"][0]
        msg = choice["message"]
        tool_calls: list[ToolCall] = []
        for tc in msg.get("tool_calls") or []:
            fn = tc.get("function", {})
            args = fn.get("arguments") or "{}"
            if isinstance(args, str):
                try:
                    args = json.loads(args)
                except json.JSONDecodeError:
                    args = {}
            tool_calls.append(ToolCall(id=tc.get("id") or uuid4().hex[:12], name=fn.get("name", ""), arguments=args))

        usage = data.get("usage", {})
        finish = choice.get("finish_reason")
        return LLMResponse(
            content=msg.get("content") or "",
            tool_calls=tool_calls,
            stop_reason=_STOP_REASONS.get(finish, finish),
            input_tokens=usage.get("prompt_tokens", 0),
            output_tokens=usage.get("completion_tokens", 0),
            model=data.get("model", body["model"]),
        )

    def count_tokens(self, text: str) -> int:
        return len(self._tokenizer.encode(text))

    async def close(self) -> None:
        await self._client.aclose()

    async def _post_with_retry(self, path: str, body: dict[str, Any]) -> httpx.Response:
        max_retries = self._config.max_retries
        for attempt in range(max_retries + 1):
            try:
                resp = await self._client.post(path, json=body)
                resp.raise_for_status()
                return resp
            except httpx.HTTPStatusError as e:
                if attempt == max_retries or e.response.status_code < 500:
                    raise
                log.warning("local_llm_retry", status=e.response.status_code, attempt=attempt)
            except httpx.ConnectError:
                if attempt == max_retries:
                    raise
                log.warning("local_llm_connect_retry", attempt=attempt)
            await asyncio.sleep((2 ** attempt) + random.uniform(0, 1))
        raise RuntimeError("Unreachable")

"""Bounded agentic loop: LLM calls with iterative tool execution."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any

from conductor.core.llm import LLMMessage, LLMProvider, LLMResponse, ToolCall
from conductor.core.llm.tracing import traced_complete
from conductor.orchestrator.models import StepResult, TokenUsage, parse_output
from conductor.tools.base import ToolContext
from conductor.tools.registry import ToolRegistry
from conductor.utils.logging import get_logger

log = get_logger(__name__)

PREVIOUS_RESULT_CHARS = 400


@dataclass
class AgentRunContext:
    """What an agent sees besides its task."""

    tool_context: ToolContext
    previous_results: dict[str, StepResult] = field(default_factory=dict)
    memory_xml: str = ""


@dataclass
class LoopOutcome:
    response: LLMResponse
    tool_calls: list[ToolCall]
    usage: TokenUsage
    exceeded: bool = False
    error: str | None = None


def format_previous_results(results: dict[str, StepResult]) -> str:
    if not results:
        return "(No previous step results)"
    lines = []
    for step_id, result in results.items():
        status = "success" if result.success else "failed"
        error = f' error="{result.error}"' if result.error else ""
        output = result.output_text(PREVIOUS_RESULT_CHARS)
        lines.append(f'<step id="{step_id}" status="{status}"{error}>{output}</step>')
    return "\n".join(lines)


def build_task_message(task: str, previous_results: dict[str, StepResult]) -> str:
    return (
        f"Task: {task}\n\n"
        f"<previous_results>\n{format_previous_results(previous_results)}\n</previous_results>"
    )


class ToolLoop:
    """Runs the LLM completion + tool-use loop with an iteration cap."""

    def __init__(
        self,
        llm: LLMProvider,
        tools: ToolRegistry,
        max_loops: int = 5,
        max_tokens: int = 12000,
        model: str | None = None,
    ) -> None:
        self._llm = llm
        self._tools = tools
        self._max_loops = max_loops
        self._max_tokens = max_tokens
        self._model = model

    async def run(
        self,
        messages: list[LLMMessage],
        system: str,
        tool_names: list[str],
        tool_context: ToolContext,
        purpose: str = "agent",
        max_loops: int | None = None,
        max_tokens: int | None = None,
    ) -> LoopOutcome:
        """Call the model until it stops asking for tools or the cap is hit.

        The first call is not counted; each round of tool calls is. Hitting
        the cap returns with ``exceeded=True``. A failed model call ends the
        loop with ``error`` set. Either way the tool calls made so far are kept.
        """
        cap = self._max_loops if max_loops is None else max_loops
        schemas = self._tools.schemas(tool_names) if tool_names else []
        current = list(messages)
        usage = TokenUsage()
        tool_calls: list[ToolCall] = []

        loops = 0
        while True:
            try:
                response = await self._complete(current, system, schemas, purpose, max_tokens)
            except Exception as e:
                log.exception("llm_call_failed", purpose=purpose, error=str(e))
                return LoopOutcome(LLMResponse(), tool_calls, usage, error=str(e))
            usage.add(response.input_tokens, response.output_tokens)

            if not response.tool_calls:
                return LoopOutcome(response, tool_calls, usage)

            loops += 1
            if loops > cap:
                log.warning("tool_loop_limit", purpose=purpose, loops=cap, tool_calls=len(tool_calls))
                return LoopOutcome(response, tool_calls, usage, exceeded=True)

            tool_calls.extend(response.tool_calls)
            results = await asyncio.gather(
                *(self._run_tool(tc, tool_context) for tc in response.tool_calls)
            )
            current.append(response.assistant_message())
            current.append(LLMMessage(role="user", content=list(results)))

    async def execute(
        self,
        system_prompt: str,
        task: str,
        tool_names: list[str],
        context: AgentRunContext,
    ) -> StepResult:
        """Run one agent or skill task to a StepResult. Never raises."""
        system = system_prompt
        if context.memory_xml:
            system = f"{system}\n\n{context.memory_xml}"
        messages = [LLMMessage(role="user", content=build_task_message(task, context.previous_results))]

        outcome = await self.run(messages, system, tool_names, context.tool_context)

        if outcome.error is not None:
            return StepResult.failure(outcome.error, tool_calls=outcome.tool_calls, token_usage=outcome.usage)
        if outcome.exceeded:
            return StepResult.failure(
                f"Tool loop limit exceeded ({self._max_loops})",
                tool_calls=outcome.tool_calls,
                token_usage=outcome.usage,
            )
        return StepResult(
            success=True,
            output=parse_output(outcome.response.content),
            tool_calls=outcome.tool_calls,
            token_usage=outcome.usage,
        )

    async def _complete(
        self,
        messages: list[LLMMessage],
        system: str,
        schemas: list[dict[str, Any]],
        purpose: str,
        max_tokens: int | None,
    ) -> LLMResponse:
        return await traced_complete(
            self._llm,
            purpose,
            messages=list(messages),
            system=system,
            tools=schemas or None,
            max_tokens=max_tokens or self._max_tokens,
            model=self._model,
        )

    async def _run_tool(self, call: ToolCall, context: ToolContext) -> dict[str, Any]:
        try:
            content = await self._tools.execute_tool(call.name, call.arguments, context)
            is_error = False
        except Exception as e:
            log.warning("tool_error", tool=call.name, error=str(e))
            content = json.dumps({"success": False, "error": str(e)})
            is_error = True
        return {
            "type": "tool_result",
            "tool_use_id": call.id,
            "content": content,
            "is_error": is_error,
        }

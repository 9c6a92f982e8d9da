"""Turns step results into the final user-facing reply."""

from __future__ import annotations

import re

from conductor.config import ComposerConfig, LLMConfig
from conductor.core.llm import LLMMessage, LLMProvider
from conductor.core.prompts import build_user_memory_xml
from conductor.orchestrator.models import (
    ExecutionPlan,
    FailureReason,
    PlanContext,
    StepResult,
    StepStatus,
    StructuredOutput,
    TextOutput,
)
from conductor.orchestrator.tool_loop import ToolLoop
from conductor.tools.base import ToolContext
from conductor.tools.registry import ToolRegistry
from conductor.utils.logging import get_logger

log = get_logger(__name__)

COMPOSER_TOOLS = ["format_maps_link"]

APOLOGY = "I encountered some issues completing your request. Please try again."
DONE = "Done! Let me know if you need anything else."
EMPTY_REPLY = "I completed your request."

_COMPOSITION_PROMPT = """\
You are composing a final response for a personal assistant.

The user's request has been processed. Create a friendly, conversational response
that summarizes what was done.

<user_request>
{request}
</user_request>

<goal>
{goal}
</goal>

<step_results>
{results}
</step_results>

{error_context}

<rules>
1. Be conversational and friendly
2. Response MUST be under {max_chars} characters - summarize if needed
3. Don't mention internal steps or technical details
4. If there were partial failures, acknowledge what succeeded and what didn't
5. If there's a URL or link in the results, include it prominently
6. Use the user's name if available
7. To share a place or address, call format_maps_link and include the link it returns
</rules>
{data_rule}
Write ONLY the final response message (no JSON, no explanation)."""

_DATA_RULE = """
<data_request>
The user asked for specific information. Repeat exact numbers, amounts, names,
dates, times, addresses and links from the step results verbatim. Do not round,
estimate or paraphrase them, and do not invent values that are not in the results.
</data_request>
"""

DATA_REQUEST_RE = re.compile(
    r"\b(how (much|many|long)|what time|when (is|was|are|do|does)|total|balance|amount|"
    r"price|cost|list|show me|exact(ly)?|numbers?|figures?|count|sum|address|"
    r"phone( number)?|email address|dates?|schedule)\b",
    re.IGNORECASE,
)


def is_data_request(message: str) -> bool:
    return bool(DATA_REQUEST_RE.search(message))


def format_step_results(results: dict[str, StepResult], max_chars: int) -> str:
    if not results:
        return "(No step results)"
    lines = []
    for step_id, result in results.items():
        status = "SUCCESS" if result.success else "FAILED"
        raw = result.output_text() or "(no output)"
        output = f"{raw[:max_chars]}...(truncated)" if len(raw) > max_chars else raw
        lines.append(f"  - [{step_id}] {status}\n    Output: {output}")
        if result.error:
            lines.append(f"    Error: {result.error}")
    return "\n".join(lines)


def format_error_context(plan: ExecutionPlan, failure_reason: FailureReason | None) -> str:
    if failure_reason == "timeout":
        return (
            "<error>\nThe request timed out before completing all steps. "
            "Some actions may have succeeded.\n</error>"
        )
    if failure_reason == "step_failed":
        failed = [s for s in plan.steps if s.status in (StepStatus.FAILED, StepStatus.REPLANNED)]
        errors = ", ".join((s.result.error if s.result else None) or "Unknown error" for s in failed)
        return (
            f"<error>\nSome steps failed: {errors or 'Unknown error'}\n"
            "Explain what succeeded and what didn't.\n</error>"
        )
    return ""


def fallback_response(context: PlanContext, failure_reason: FailureReason | None) -> str:
    """Reply built from raw step outputs when the model can't be used."""
    outputs: list[str] = []
    for result in context.step_results.values():
        if not result.success or result.output is None:
            continue
        if isinstance(result.output, TextOutput):
            if result.output.text.strip():
                outputs.append(result.output.text.strip())
        elif isinstance(result.output, StructuredOutput):
            short_url = result.output.get("short_url") or result.output.get("shortUrl")
            message = result.output.get("message")
            if short_url:
                outputs.append(f"Here's your link: {short_url}")
            elif message:
                outputs.append(str(message))

    if outputs:
        return "\n\n".join(outputs)
    if failure_reason:
        return APOLOGY
    return DONE


class ResponseComposer:
    def __init__(
        self,
        llm: LLMProvider,
        tools: ToolRegistry,
        config: ComposerConfig | None = None,
        llm_config: LLMConfig | None = None,
        default_timezone: str = "UTC",
    ) -> None:
        self._config = config or ComposerConfig()
        llm_config = llm_config or LLMConfig()
        self._loop = ToolLoop(
            llm,
            tools,
            max_loops=self._config.max_tool_loops,
            max_tokens=self._config.max_tokens,
            model=llm_config.model_for("composer"),
        )
        self._default_tz = default_timezone

    def build_prompt(
        self,
        context: PlanContext,
        plan: ExecutionPlan,
        failure_reason: FailureReason | None = None,
    ) -> str:
        prompt = _COMPOSITION_PROMPT.format(
            request=context.user_message,
            goal=plan.goal,
            results=format_step_results(context.step_results, self._config.max_result_chars),
            error_context=format_error_context(plan, failure_reason),
            max_chars=self._config.max_response_chars,
            data_rule=_DATA_RULE if is_data_request(context.user_message) else "",
        )
        memory_xml = build_user_memory_xml(
            context.user_facts,
            max_facts=self._config.max_facts,
            max_chars=self._config.max_fact_chars,
        )
        if memory_xml:
            prompt = f"{prompt}\n\n{memory_xml}"
        if context.user_config and context.user_config.name:
            prompt += f"\n\nThe user's name is {context.user_config.name}. Use it naturally if appropriate."
        return prompt

    async def synthesize(
        self,
        context: PlanContext,
        plan: ExecutionPlan,
        failure_reason: FailureReason | None = None,
    ) -> str:
        """Compose the reply. Never raises; falls back to raw step outputs."""
        try:
            system = self.build_prompt(context, plan, failure_reason)
            outcome = await self._loop.run(
                [LLMMessage(role="user", content="Compose the final response.")],
                system,
                COMPOSER_TOOLS,
                ToolContext(
                    sender_id=context.sender_id,
                    channel=context.channel,
                    user_config=context.user_config,
                    default_timezone=self._default_tz,
                ),
                purpose="composer",
            )
        except Exception as e:
            log.exception("compose_failed", plan_id=plan.id, error=str(e))
            return fallback_response(context, failure_reason)

        if outcome.error is not None:
            return fallback_response(context, failure_reason)

        text = outcome.response.content.strip()
        if outcome.exceeded and not text:
            log.warning("compose_tool_limit", plan_id=plan.id)
            return fallback_response(context, failure_reason)

        reply = text or EMPTY_REPLY
        log.info("response_composed", plan_id=plan.id, chars=len(reply), failure_reason=failure_reason)
        return reply

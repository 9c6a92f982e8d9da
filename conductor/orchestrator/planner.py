"""Plan creation: one model call, one repair attempt, then a single-step fallback."""

from __future__ import annotations

import json
import re
from datetime import datetime
from typing import Any

from conductor.config import ComposerConfig, LLMConfig, OrchestratorConfig
from conductor.core.dates import DateResolver, KeywordDateResolver, resolve_task_dates
from conductor.core.llm import LLMMessage, LLMProvider
from conductor.core.llm.tracing import traced_complete
from conductor.core.prompts import (
    build_time_context,
    build_user_context,
    build_user_memory_xml,
    local_now,
    user_timezone,
)
from conductor.core.window import format_history_for_prompt
from conductor.errors import ConfigurationError, PlanParseError
from conductor.orchestrator.models import ExecutionPlan, PlanContext, PlanStep, new_plan_id
from conductor.orchestrator.registry import AgentRegistry
from conductor.utils.logging import get_logger

log = get_logger(__name__)

MAX_TASK_CHARS = 1000

_PLANNING_PROMPT = """\
You are a planning module for a personal assistant.

Analyze the user's request and create a plan with sequential steps.

<current_time>
{time_context}
</current_time>

<available_capabilities>
{catalog}
</available_capabilities>

<user_context>
{user_context}
</user_context>

<conversation_history>
{history}
</conversation_history>

<rules>
1. Use the MINIMUM number of steps needed - prefer fewer steps
2. For simple requests (greetings, questions, single actions), use 1 step with {fallback}
3. Only use multiple steps when truly necessary
4. Each step should be a discrete, completable task
5. Steps execute sequentially - later steps can reference earlier results
6. Maximum {max_steps} steps per plan
7. If dates/times are relative (tomorrow, friday, next week), resolve them to specific dates in the task description
8. Today is {today}
</rules>

<output_format>
Respond with ONLY a JSON object (no markdown, no explanation):
{{
  "analysis": "Brief analysis of what the user wants",
  "goal": "One sentence describing the goal",
  "steps": [
    {{
      "id": "step_1",
      "target": "capability-name",
      "type": "agent",
      "task": "Specific task with resolved dates (e.g. 'List events on 2026-01-30' not 'List events on friday')"
    }}
  ]
}}
Use "type": "skill" when the target is a skill.
</output_format>"""

_REPAIR_PROMPT = """\
You repair malformed planner output. Rewrite it as a single valid JSON object \
with the keys "analysis", "goal" and "steps", where each step has "id", \
"target", "type" and "task". Respond with ONLY the JSON object."""

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


def extract_plan_json(text: str) -> dict[str, Any]:
    """Parse ``text`` as a plan object, directly or from a fenced code block."""
    candidates = [text.strip()]
    fenced = _FENCE_RE.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())

    for candidate in candidates:
        if not candidate:
            continue
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict) and isinstance(data.get("steps"), list):
            return data
    raise PlanParseError(f"No plan JSON in model output: {text[:200]!r}")


def clamp_task(task: str) -> str:
    task = task.strip()
    if len(task) > MAX_TASK_CHARS:
        return task[: MAX_TASK_CHARS - 3].rstrip() + "..."
    return task


class Planner:
    def __init__(
        self,
        llm: LLMProvider,
        registry: AgentRegistry,
        config: OrchestratorConfig | None = None,
        llm_config: LLMConfig | None = None,
        memory: ComposerConfig | None = None,
        date_resolver: DateResolver | None = None,
        default_timezone: str = "UTC",
    ) -> None:
        self._llm = llm
        self._registry = registry
        self._config = config or OrchestratorConfig()
        self._llm_config = llm_config or LLMConfig()
        self._memory = memory or ComposerConfig()
        self._dates = date_resolver or KeywordDateResolver()
        self._default_tz = default_timezone
        if self._config.fallback_agent not in registry:
            raise ConfigurationError(f"Fallback agent not registered: {self._config.fallback_agent}")

    async def create_plan(self, context: PlanContext, now: datetime | None = None) -> ExecutionPlan:
        """Build a plan for ``context``. Always returns at least one step."""
        system = self.build_prompt(context, now)
        model = self._llm_config.model_for("planner")

        log.info(
            "plan_requested",
            message_chars=len(context.user_message),
            history=len(context.conversation_history),
            facts=len(context.user_facts),
        )

        parsed: dict[str, Any] | None = None
        try:
            response = await traced_complete(
                self._llm,
                "planner",
                messages=[LLMMessage(role="user", content=context.user_message)],
                system=system,
                temperature=0.0,
                max_tokens=self._config.planner_max_tokens,
                model=model,
            )
        except Exception as e:
            log.exception("planner_call_failed", error=str(e))
        else:
            try:
                parsed = extract_plan_json(response.content)
            except PlanParseError:
                log.warning("plan_parse_failed", content=response.content[:500])
                parsed = await self._repair(context.user_message, response.content, model)

        steps = self._build_steps(parsed["steps"]) if parsed else []
        if not steps:
            steps = [self._fallback_step(context, now)]
            goal = "Handle user request"
        else:
            goal = str(parsed.get("goal") or "Handle user request")

        plan = ExecutionPlan(
            id=new_plan_id(),
            user_request=context.user_message,
            goal=goal,
            steps=steps,
            context=context,
        )
        log.info(
            "plan_created",
            plan_id=plan.id,
            goal=plan.goal,
            steps=len(plan.steps),
            targets=[s.target for s in plan.steps],
            fallback=parsed is None,
        )
        return plan

    def build_prompt(self, context: PlanContext, now: datetime | None = None) -> str:
        tz = user_timezone(context.user_config, self._default_tz)
        memory_xml = build_user_memory_xml(
            context.user_facts,
            max_facts=self._memory.max_facts,
            max_chars=self._memory.max_fact_chars,
        )
        return _PLANNING_PROMPT.format(
            time_context=build_time_context(context.user_config, now),
            catalog=self._registry.format_catalog(context.channel),
            user_context=build_user_context(context.user_config, memory_xml),
            history=format_history_for_prompt(context.conversation_history),
            fallback=self._config.fallback_agent,
            max_steps=self._config.max_total_steps,
            today=local_now(tz, now).date().isoformat(),
        )

    async def _repair(self, user_message: str, malformed: str, model: str) -> dict[str, Any] | None:
        content = (
            f"<original_request>\n{user_message}\n</original_request>\n\n"
            f"<malformed_output>\n{malformed}\n</malformed_output>"
        )
        try:
            response = await traced_complete(
                self._llm,
                "planner_repair",
                messages=[LLMMessage(role="user", content=content)],
                system=_REPAIR_PROMPT,
                temperature=0.0,
                max_tokens=self._config.planner_max_tokens,
                model=model,
            )
            return extract_plan_json(response.content)
        except PlanParseError:
            log.warning("plan_repair_failed")
        except Exception as e:
            log.exception("plan_repair_call_failed", error=str(e))
        return None

    def _build_steps(self, raw_steps: list[Any]) -> list[PlanStep]:
        steps: list[PlanStep] = []
        seen_ids: set[str] = set()
        for n, raw in enumerate(raw_steps, start=1):
            if len(steps) >= self._config.max_total_steps:
                log.warning("plan_truncated", proposed=len(raw_steps), kept=len(steps))
                break
            if not isinstance(raw, dict):
                continue
            task = clamp_task(str(raw.get("task") or ""))
            if not task:
                continue

            target = str(raw.get("target") or raw.get("agent") or raw.get("skill") or "").strip()
            capability = self._registry.find(target)
            if capability is None:
                log.warning("plan_target_unknown", target=target, fallback=self._config.fallback_agent)
                capability = self._registry.get(self._config.fallback_agent)

            step_id = str(raw.get("id") or f"step_{n}")
            if step_id in seen_ids:
                step_id = f"{step_id}_{n}"
            seen_ids.add(step_id)

            steps.append(PlanStep(
                id=step_id,
                target=capability.name,
                target_type=capability.kind,
                task=task,
                max_retries=self._config.max_retries_per_step,
            ))
        return steps

    def _fallback_step(self, context: PlanContext, now: datetime | None) -> PlanStep:
        tz = user_timezone(context.user_config, self._default_tz)
        message = resolve_task_dates(context.user_message, tz, self._dates, reference_date=now)
        log.info("plan_fallback", target=self._config.fallback_agent)
        capability = self._registry.get(self._config.fallback_agent)
        return PlanStep(
            id="step_1",
            target=capability.name,
            target_type=capability.kind,
            task=clamp_task(f'Handle the user request directly: "{message}"'),
            max_retries=self._config.max_retries_per_step,
        )

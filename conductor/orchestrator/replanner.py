"""Replanning after a step exhausts its retries."""

from __future__ import annotations

from typing import Any

from conductor.config import LLMConfig, OrchestratorConfig
from conductor.core.llm import LLMMessage, LLMProvider
from conductor.core.llm.tracing import traced_complete
from conductor.errors import PlanParseError
from conductor.orchestrator.models import ExecutionPlan, PlanContext, PlanStep, StepError, StepStatus
from conductor.orchestrator.planner import clamp_task, extract_plan_json
from conductor.orchestrator.registry import AgentRegistry
from conductor.utils.logging import get_logger

log = get_logger(__name__)

_REPLANNING_PROMPT = """\
You are revising an execution plan after a step failure or unexpected result.

<available_capabilities>
{catalog}
</available_capabilities>

<original_request>
{request}
</original_request>

<original_goal>
{goal}
</original_goal>

<prior_steps>
{steps}
</prior_steps>

<errors>
{errors}
</errors>

<rules>
1. Keep completed steps - don't redo work that succeeded
2. Adjust or remove failed/pending steps as needed
3. Add new steps if necessary to achieve the goal
4. If the goal cannot be achieved, create a plan that handles the failure gracefully
5. Maximum {max_steps} total steps
</rules>

<output_format>
Respond with ONLY a JSON object (no markdown):
{{
  "analysis": "Brief analysis of what went wrong and how to fix it",
  "steps": [
    {{"id": "step_1", "target": "capability-name", "type": "agent", "task": "Task description", "status": "completed"}}
  ]
}}
Mark steps that already succeeded as "completed" and new steps as "pending".
</output_format>"""

PRIOR_OUTPUT_CHARS = 200


def can_replan(
    plan: ExecutionPlan,
    config: OrchestratorConfig,
    remaining_seconds: float | None = None,
) -> bool:
    """Replan at most ``max_replans`` times per plan, and only with room left."""
    if not config.replan_enabled:
        return False
    if plan.replan_count >= config.max_replans:
        return False
    if len(_kept_steps(plan)) >= config.max_total_steps:
        return False
    if remaining_seconds is not None and remaining_seconds <= 0:
        return False
    return True


def _kept_steps(plan: ExecutionPlan) -> list[PlanStep]:
    return [
        s for s in plan.steps
        if s.status in (StepStatus.COMPLETED, StepStatus.REPLANNED, StepStatus.FAILED)
    ]


def format_prior_steps(steps: list[PlanStep]) -> str:
    lines = []
    for step in steps:
        lines.append(f"  - [{step.id}] {step.target} ({step.status.value})")
        lines.append(f"    Task: {step.task}")
        if step.result:
            outcome = "SUCCESS" if step.result.success else "FAILED"
            if step.result.error:
                outcome += f" - {step.result.error}"
            lines.append(f"    Result: {outcome}")
            if step.result.output is not None:
                lines.append(f"    Output: {step.result.output_text(PRIOR_OUTPUT_CHARS)}")
    return "\n".join(lines)


def format_errors(errors: list[StepError]) -> str:
    if not errors:
        return "(No errors recorded)"
    return "\n".join(f"  - [{e.step_id}] {e.error}" for e in errors)


class Replanner:
    def __init__(
        self,
        llm: LLMProvider,
        registry: AgentRegistry,
        config: OrchestratorConfig | None = None,
        llm_config: LLMConfig | None = None,
    ) -> None:
        self._llm = llm
        self._registry = registry
        self._config = config or OrchestratorConfig()
        self._llm_config = llm_config or LLMConfig()

    async def replan(self, plan: ExecutionPlan, context: PlanContext) -> ExecutionPlan | None:
        """Revise ``plan`` in place. Returns None if no usable revision came back.

        Completed steps and their results are kept, failed steps are marked
        ``replanned`` and the model's new steps are appended as pending.
        """
        prompt = _REPLANNING_PROMPT.format(
            catalog=self._registry.format_catalog(context.channel),
            request=plan.user_request,
            goal=plan.goal,
            steps=format_prior_steps(plan.steps),
            errors=format_errors(context.errors),
            max_steps=self._config.max_total_steps,
        )
        try:
            response = await traced_complete(
                self._llm,
                "replanner",
                messages=[LLMMessage(role="user", content="Revise the plan.")],
                system=prompt,
                temperature=0.0,
                max_tokens=self._config.planner_max_tokens,
                model=self._llm_config.model_for("replanner"),
            )
            parsed = extract_plan_json(response.content)
        except PlanParseError:
            log.warning("replan_parse_failed", plan_id=plan.id)
            return None
        except Exception as e:
            log.exception("replan_call_failed", plan_id=plan.id, error=str(e))
            return None

        kept = _kept_steps(plan)
        room = self._config.max_total_steps - len(kept)
        new_steps = self._new_steps(parsed["steps"], kept, plan.version + 1)[:room]
        if not new_steps:
            log.warning("replan_empty", plan_id=plan.id)
            return None

        for step in kept:
            if step.status == StepStatus.FAILED:
                step.status = StepStatus.REPLANNED

        plan.steps = kept + new_steps
        plan.version += 1
        plan.replan_count += 1
        plan.touch()
        log.info(
            "plan_replanned",
            plan_id=plan.id,
            version=plan.version,
            kept=len(kept),
            added=len(new_steps),
            analysis=str(parsed.get("analysis", ""))[:200],
        )
        return plan

    def _new_steps(self, raw_steps: list[Any], kept: list[PlanStep], version: int) -> list[PlanStep]:
        completed = {(s.target, s.task) for s in kept if s.status == StepStatus.COMPLETED}
        steps: list[PlanStep] = []
        for n, raw in enumerate(raw_steps, start=1):
            if not isinstance(raw, dict) or raw.get("status") == StepStatus.COMPLETED.value:
                continue
            task = clamp_task(str(raw.get("task") or ""))
            target = str(raw.get("target") or raw.get("agent") or raw.get("skill") or "").strip()
            if not task or (target, task) in completed:
                continue
            capability = self._registry.find(target)
            if capability is None:
                log.warning("replan_target_unknown", target=target)
                continue

            steps.append(PlanStep(
                id=f"step_{n}_v{version}",
                target=capability.name,
                target_type=capability.kind,
                task=task,
                max_retries=self._config.max_retries_per_step,
            ))
        return steps

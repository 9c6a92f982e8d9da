"""Runs a single plan step against the agent or skill it targets."""

from __future__ import annotations

import asyncio

from conductor.config import ComposerConfig, OrchestratorConfig
from conductor.core.prompts import build_user_memory_xml, user_timezone
from conductor.errors import CapabilityNotFoundError
from conductor.orchestrator.models import PlanContext, PlanStep, StepResult
from conductor.orchestrator.registry import AgentCapability, AgentRegistry, Capability
from conductor.orchestrator.tool_loop import AgentRunContext, ToolLoop
from conductor.tools.base import ToolContext
from conductor.utils.logging import get_logger

log = get_logger(__name__)


class StepDispatcher:
    def __init__(
        self,
        registry: AgentRegistry,
        tool_loop: ToolLoop,
        config: OrchestratorConfig,
        memory: ComposerConfig | None = None,
        default_timezone: str = "UTC",
    ) -> None:
        self._registry = registry
        self._loop = tool_loop
        self._config = config
        self._memory = memory or ComposerConfig()
        self._default_tz = default_timezone

    async def execute_step(self, step: PlanStep, context: PlanContext) -> StepResult:
        """Resolve the step's target and run it. Failures come back as results.

        Cancellation (the overall deadline) propagates to the caller.
        """
        try:
            capability = self._registry.get(step.target)
        except CapabilityNotFoundError as e:
            log.warning("step_target_unknown", step=step.id, target=step.target)
            return StepResult.failure(str(e))

        if capability.kind != step.target_type:
            log.debug("step_target_kind_corrected", step=step.id, kind=capability.kind.value)
            step.target_type = capability.kind

        run_context = AgentRunContext(
            tool_context=ToolContext(
                sender_id=context.sender_id,
                channel=context.channel,
                user_config=context.user_config,
                default_timezone=self._default_tz,
            ),
            previous_results=dict(context.step_results),
            memory_xml=build_user_memory_xml(
                context.user_facts,
                max_facts=self._memory.max_facts,
                max_chars=self._memory.max_fact_chars,
            ),
        )

        timeout = self._config.step_timeout_seconds
        try:
            return await asyncio.wait_for(
                self._loop.execute(
                    self._system_prompt(capability, context),
                    step.task,
                    list(capability.tools),
                    run_context,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            log.warning("step_timeout", step=step.id, target=step.target, timeout=timeout)
            return StepResult.failure(f"Step timed out after {timeout:g}s")

    def _system_prompt(self, capability: Capability, context: PlanContext) -> str:
        if not isinstance(capability, AgentCapability):
            return capability.system_prompt()

        prompt = capability.system_prompt
        if context.user_config:
            name = context.user_config.name or "there"
            tz = user_timezone(context.user_config, self._default_tz)
            prompt += f"\n\nUser Context:\n- Name: {name}\n- Timezone: {tz}"
        if context.step_results:
            prompt += "\n\nPrevious steps have provided data. Reference step results by their ID if needed."
        return prompt

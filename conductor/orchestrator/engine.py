"""Execution controller: plan, run steps with retry and replan, compose the reply."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from uuid import uuid4

import structlog

from conductor.config import Settings
from conductor.core.dates import DateResolver, KeywordDateResolver
from conductor.core.llm import LLMProvider
from conductor.core.window import get_relevant_history, window_stats
from conductor.errors import ConfigurationError
from conductor.models import Message, UserConfig, UserFact
from conductor.orchestrator.composer import ResponseComposer
from conductor.orchestrator.dispatcher import StepDispatcher
from conductor.orchestrator.models import (
    ExecutionPlan,
    FailureReason,
    OrchestratorResult,
    PlanContext,
    PlanStatus,
    StepError,
    StepResult,
    StepStatus,
    StructuredOutput,
)
from conductor.orchestrator.planner import Planner
from conductor.orchestrator.registry import AgentRegistry
from conductor.orchestrator.replanner import Replanner, can_replan
from conductor.orchestrator.tool_loop import ToolLoop
from conductor.tools.registry import ToolRegistry
from conductor.utils.logging import get_logger

log = get_logger(__name__)

UNEXPECTED_ERROR_REPLY = "I encountered an unexpected error. Please try again."


@dataclass
class _RunOutcome:
    completed: bool
    error: str | None = None


class Orchestrator:
    """Owns one request end to end.

    Steps run strictly in order. A failed step is retried up to its
    ``max_retries``; after that the plan is revised once (by default) and
    execution resumes at the first pending step, otherwise the plan fails.
    The whole run is bounded by ``max_execution_seconds``.
    """

    def __init__(
        self,
        llm: LLMProvider,
        registry: AgentRegistry,
        tools: ToolRegistry,
        settings: Settings | None = None,
        date_resolver: DateResolver | None = None,
        planner: Planner | None = None,
        replanner: Replanner | None = None,
        dispatcher: StepDispatcher | None = None,
        composer: ResponseComposer | None = None,
    ) -> None:
        if llm is None or registry is None or tools is None:
            raise ConfigurationError("Orchestrator requires an LLM provider, agent registry and tool registry")

        self._settings = settings or Settings()
        s = self._settings
        tz = s.default_timezone
        self._config = s.orchestrator
        self._planner = planner or Planner(
            llm, registry, s.orchestrator, s.llm, s.composer,
            date_resolver=date_resolver or KeywordDateResolver(),
            default_timezone=tz,
        )
        self._replanner = replanner or Replanner(llm, registry, s.orchestrator, s.llm)
        self._dispatcher = dispatcher or StepDispatcher(
            registry,
            ToolLoop(
                llm,
                tools,
                max_loops=s.orchestrator.max_tool_loops,
                max_tokens=s.orchestrator.agent_max_tokens,
                model=s.llm.model_for("agent"),
            ),
            s.orchestrator,
            memory=s.composer,
            default_timezone=tz,
        )
        self._composer = composer or ResponseComposer(llm, tools, s.composer, s.llm, default_timezone=tz)

    async def orchestrate(
        self,
        user_message: str,
        history: list[Message],
        facts: list[UserFact],
        user_config: UserConfig | None,
        sender_id: str,
        channel: str,
        message_id: str | None = None,
    ) -> OrchestratorResult:
        request_id = message_id or uuid4().hex[:12]
        with structlog.contextvars.bound_contextvars(request_id=request_id, sender=sender_id):
            try:
                return await self._orchestrate(
                    user_message, history, facts, user_config, sender_id, channel, message_id or "",
                )
            except Exception as e:
                log.exception("orchestration_failed", error=str(e))
                return OrchestratorResult(success=False, response=UNEXPECTED_ERROR_REPLY, error=str(e))

    async def _orchestrate(
        self,
        user_message: str,
        history: list[Message],
        facts: list[UserFact],
        user_config: UserConfig | None,
        sender_id: str,
        channel: str,
        message_id: str,
    ) -> OrchestratorResult:
        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + self._config.max_execution_seconds

        context = PlanContext(
            user_message=user_message,
            conversation_history=get_relevant_history(history, self._settings.window),
            user_facts=list(facts),
            user_config=user_config,
            sender_id=sender_id,
            channel=channel,
            message_id=message_id,
        )
        stats = window_stats(context.conversation_history)
        log.info(
            "orchestration_started",
            channel=channel,
            history=stats.message_count,
            history_tokens=stats.total_tokens,
            dropped=len(history) - stats.message_count,
        )

        plan = await self._planner.create_plan(context)
        if not plan.steps:
            plan.status = PlanStatus.COMPLETED
            response = await self._composer.synthesize(context, plan)
            return OrchestratorResult(success=True, response=response, plan=plan)

        try:
            outcome = await asyncio.wait_for(
                self._execute(plan, context, deadline),
                timeout=max(deadline - loop.time(), 0),
            )
        except asyncio.TimeoutError:
            return await self._timed_out(plan, context, loop.time() - started)

        failure_reason: FailureReason | None = None if outcome.completed else "step_failed"
        plan.status = PlanStatus.COMPLETED if outcome.completed else PlanStatus.FAILED
        plan.touch()
        response = await self._composer.synthesize(context, plan, failure_reason)

        log.info(
            "orchestration_finished",
            plan_id=plan.id,
            status=plan.status.value,
            version=plan.version,
            duration_ms=int((loop.time() - started) * 1000),
        )
        return OrchestratorResult(
            success=outcome.completed,
            response=response,
            step_results=dict(context.step_results),
            error=outcome.error,
            plan=plan,
            failure_reason=failure_reason,
        )

    async def _execute(self, plan: ExecutionPlan, context: PlanContext, deadline: float) -> _RunOutcome:
        loop = asyncio.get_running_loop()
        index = plan.first_pending_index()

        while index is not None and index < len(plan.steps):
            step = plan.steps[index]
            step.status = StepStatus.EXECUTING
            plan.touch()
            log.info(
                "step_started",
                plan_id=plan.id,
                step=step.id,
                target=step.target,
                attempt=step.retry_count + 1,
            )

            result = await self._dispatcher.execute_step(step, context)
            step.result = result
            context.step_results[step.id] = result

            if result.success:
                step.status = StepStatus.COMPLETED
                log.info("step_completed", step=step.id, tool_calls=len(result.tool_calls))
                if self._requests_replan(result, index, plan) and can_replan(
                    plan, self._config, deadline - loop.time()
                ):
                    log.info("step_requested_replan", step=step.id)
                    if await self._replanner.replan(plan, context):
                        index = plan.first_pending_index()
                        continue
                index += 1
                continue

            error = result.error or "Unknown error"
            context.errors.append(StepError(step_id=step.id, error=error))

            if step.can_retry:
                step.retry_count += 1
                step.status = StepStatus.RETRY
                log.warning("step_retrying", step=step.id, retry=step.retry_count, error=error)
                continue

            step.status = StepStatus.FAILED
            log.warning("step_failed", step=step.id, retries=step.retry_count, error=error)

            if can_replan(plan, self._config, deadline - loop.time()):
                if await self._replanner.replan(plan, context):
                    index = plan.first_pending_index()
                    continue

            return _RunOutcome(completed=False, error=f"Step {step.id} failed: {error}")

        return _RunOutcome(completed=True)

    @staticmethod
    def _requests_replan(result: StepResult, index: int, plan: ExecutionPlan) -> bool:
        if not isinstance(result.output, StructuredOutput):
            return False
        if result.output.get("needs_replan") is True:
            return True
        # An empty result is only worth replanning if later steps depend on it
        return result.output.get("is_empty") is True and index < len(plan.steps) - 1

    async def _timed_out(self, plan: ExecutionPlan, context: PlanContext, elapsed: float) -> OrchestratorResult:
        for step in plan.steps:
            if step.status in (StepStatus.EXECUTING, StepStatus.RETRY):
                step.status = StepStatus.FAILED
        plan.status = PlanStatus.FAILED
        plan.touch()
        log.warning(
            "orchestration_timeout",
            plan_id=plan.id,
            elapsed_s=round(elapsed, 1),
            completed=len(plan.steps_with_status(StepStatus.COMPLETED)),
        )

        response = await self._composer.synthesize(context, plan, "timeout")
        return OrchestratorResult(
            success=False,
            response=response,
            step_results=dict(context.step_results),
            error=f"Execution timed out after {elapsed:.0f}s",
            plan=plan,
            failure_reason="timeout",
        )

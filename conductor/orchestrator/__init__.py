"""Plan, dispatch, replan and compose."""

from conductor.orchestrator.agents import GENERAL_AGENT, MEMORY_AGENT, default_agents
from conductor.orchestrator.composer import ResponseComposer
from conductor.orchestrator.dispatcher import StepDispatcher
from conductor.orchestrator.engine import Orchestrator
from conductor.orchestrator.models import (
    ExecutionPlan,
    OrchestratorResult,
    PlanContext,
    PlanStatus,
    PlanStep,
    StepResult,
    StepStatus,
    StructuredOutput,
    TextOutput,
)
from conductor.orchestrator.planner import Planner
from conductor.orchestrator.registry import AgentCapability, AgentRegistry
from conductor.orchestrator.replanner import Replanner, can_replan
from conductor.orchestrator.tool_loop import AgentRunContext, ToolLoop

__all__ = [
    "AgentCapability",
    "AgentRegistry",
    "AgentRunContext",
    "ExecutionPlan",
    "GENERAL_AGENT",
    "MEMORY_AGENT",
    "Orchestrator",
    "OrchestratorResult",
    "PlanContext",
    "PlanStatus",
    "PlanStep",
    "Planner",
    "Replanner",
    "ResponseComposer",
    "StepDispatcher",
    "StepResult",
    "StepStatus",
    "StructuredOutput",
    "TextOutput",
    "ToolLoop",
    "can_replan",
    "default_agents",
]

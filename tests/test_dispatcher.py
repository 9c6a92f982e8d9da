"""Tests for single-step dispatch."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from conductor.config import OrchestratorConfig
from conductor.core.llm.types import LLMResponse
from conductor.models import TargetType, UserConfig, UserFact
from conductor.orchestrator.agents import GENERAL_AGENT, MEMORY_AGENT, default_agents
from conductor.orchestrator.dispatcher import StepDispatcher
from conductor.orchestrator.models import PlanContext, PlanStep, StepResult, TextOutput
from conductor.orchestrator.registry import AgentRegistry
from conductor.orchestrator.tool_loop import ToolLoop
from conductor.skills.loader import SkillDefinition
from conductor.tools.registry import ToolRegistry


@pytest.fixture
def mock_llm():
    llm = AsyncMock()
    llm.complete = AsyncMock(return_value=LLMResponse(content="All done"))
    llm.count_tokens = MagicMock(return_value=10)
    return llm


@pytest.fixture
def skill(tmp_path):
    return SkillDefinition(
        name="receipt-summarizer",
        description="Summarize receipts",
        instructions="Extract the total.",
        path=tmp_path / "SKILL.md",
        channels=["sms"],
        tools=["format_maps_link"],
        match_hints=[],
    )


@pytest.fixture
def dispatcher(mock_llm, skill):
    registry = AgentRegistry(default_agents(), [skill])
    loop = ToolLoop(mock_llm, ToolRegistry(), max_loops=5)
    return StepDispatcher(registry, loop, OrchestratorConfig(step_timeout_seconds=0.05))


@pytest.fixture
def context():
    return PlanContext(
        user_message="hi",
        conversation_history=[],
        user_facts=[UserFact(fact="Vegetarian")],
        user_config=UserConfig(name="Alice", timezone="Europe/Lisbon"),
        sender_id="u1",
        channel="sms",
    )


class TestExecuteStep:
    async def test_agent_step(self, dispatcher, mock_llm, context):
        step = PlanStep(id="step_1", target=GENERAL_AGENT, task="Say hello")
        result = await dispatcher.execute_step(step, context)

        assert result.success
        assert result.output == TextOutput("All done")
        system = mock_llm.complete.call_args.kwargs["system"]
        assert "User Context:\n- Name: Alice\n- Timezone: Europe/Lisbon" in system
        assert "<user_memory>" in system
        assert "Vegetarian" in system
        assert "Previous steps" not in system

    async def test_previous_results_passed(self, dispatcher, mock_llm, context):
        context.step_results["step_1"] = StepResult(success=True, output=TextOutput("2 events"))
        step = PlanStep(id="step_2", target=MEMORY_AGENT, task="Save it")
        await dispatcher.execute_step(step, context)

        kwargs = mock_llm.complete.call_args.kwargs
        assert "Previous steps have provided data" in kwargs["system"]
        assert '<step id="step_1" status="success">2 events</step>' in kwargs["messages"][0].content
        assert [t["name"] for t in kwargs["tools"] or []] == []

    async def test_skill_step_uses_skill_prompt(self, dispatcher, mock_llm, context):
        step = PlanStep(id="step_1", target="receipt-summarizer", task="Summarize", target_type=TargetType.AGENT)
        await dispatcher.execute_step(step, context)

        system = mock_llm.complete.call_args.kwargs["system"]
        assert system.startswith('You are executing the "receipt-summarizer" skill.')
        assert "Extract the total." in system
        assert step.target_type == TargetType.SKILL

    async def test_unknown_target_fails_without_llm_call(self, dispatcher, mock_llm, context):
        step = PlanStep(id="step_1", target="ghost-agent", task="Boo")
        result = await dispatcher.execute_step(step, context)
        assert not result.success
        assert "ghost-agent" in result.error
        mock_llm.complete.assert_not_called()

    async def test_step_timeout(self, dispatcher, mock_llm, context):
        async def slow(**kwargs):
            await asyncio.sleep(1)
            return LLMResponse(content="late")

        mock_llm.complete.side_effect = slow
        step = PlanStep(id="step_1", target=GENERAL_AGENT, task="Slow")
        result = await dispatcher.execute_step(step, context)
        assert not result.success
        assert result.error == "Step timed out after 0.05s"

    async def test_llm_error_becomes_failed_result(self, dispatcher, mock_llm, context):
        mock_llm.complete.side_effect = RuntimeError("rate limited")
        step = PlanStep(id="step_1", target=GENERAL_AGENT, task="x")
        result = await dispatcher.execute_step(step, context)
        assert not result.success
        assert result.error == "rate limited"

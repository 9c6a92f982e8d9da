"""Tests for final response composition."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from conductor.core.llm.types import LLMResponse, ToolCall
from conductor.models import UserConfig, UserFact
from conductor.orchestrator.composer import (
    APOLOGY,
    DONE,
    EMPTY_REPLY,
    ResponseComposer,
    fallback_response,
    format_step_results,
    is_data_request,
)
from conductor.orchestrator.models import (
    ExecutionPlan,
    PlanContext,
    PlanStep,
    StepResult,
    StepStatus,
    StructuredOutput,
    TextOutput,
)
from conductor.tools import MapsLinkTool, ToolRegistry


@pytest.fixture
def mock_llm():
    llm = AsyncMock()
    llm.complete = AsyncMock(return_value=LLMResponse(content="You have 2 events tomorrow."))
    llm.count_tokens = MagicMock(return_value=10)
    return llm


@pytest.fixture
def composer(mock_llm):
    return ResponseComposer(mock_llm, ToolRegistry([MapsLinkTool()]))


@pytest.fixture
def context():
    return PlanContext(
        user_message="What's on my calendar tomorrow?",
        conversation_history=[],
        user_facts=[UserFact(fact="Prefers short answers")],
        user_config=UserConfig(name="Alice", timezone="UTC"),
        sender_id="u1",
        channel="sms",
    )


@pytest.fixture
def plan(context):
    return ExecutionPlan(
        id="plan_test",
        user_request=context.user_message,
        goal="List tomorrow's events",
        steps=[PlanStep(id="step_1", target="general-agent", task="List events")],
        context=context,
    )


class TestSynthesize:
    async def test_returns_model_text(self, composer, mock_llm, context, plan):
        context.step_results["step_1"] = StepResult(success=True, output=TextOutput("2 events"))
        reply = await composer.synthesize(context, plan)

        assert reply == "You have 2 events tomorrow."
        kwargs = mock_llm.complete.call_args.kwargs
        assert kwargs["messages"][0].content == "Compose the final response."
        assert kwargs["max_tokens"] == 512
        assert [t["name"] for t in kwargs["tools"]] == ["format_maps_link"]

    async def test_prompt_contents(self, composer, context, plan):
        context.step_results["step_1"] = StepResult(success=True, output=TextOutput("2 events"))
        prompt = composer.build_prompt(context, plan)
        assert "<user_request>\nWhat's on my calendar tomorrow?\n</user_request>" in prompt
        assert "<goal>\nList tomorrow's events\n</goal>" in prompt
        assert "  - [step_1] SUCCESS\n    Output: 2 events" in prompt
        assert "under 1000 characters" in prompt
        assert "Prefers short answers" in prompt
        assert "The user's name is Alice." in prompt
        assert "<error>" not in prompt

    async def test_data_rule_only_for_data_requests(self, composer, context, plan):
        context.user_message = "How much did I spend on groceries?"
        assert "<data_request>" in composer.build_prompt(context, plan)
        context.user_message = "Thanks!"
        assert "<data_request>" not in composer.build_prompt(context, plan)

    async def test_timeout_context(self, composer, context, plan):
        prompt = composer.build_prompt(context, plan, "timeout")
        assert "timed out before completing all steps" in prompt

    async def test_step_failed_context(self, composer, context, plan):
        plan.steps[0].status = StepStatus.FAILED
        plan.steps[0].result = StepResult.failure("Calendar API unavailable")
        prompt = composer.build_prompt(context, plan, "step_failed")
        assert "Some steps failed: Calendar API unavailable" in prompt

    async def test_maps_tool_round(self, composer, mock_llm, context, plan):
        mock_llm.complete.side_effect = [
            LLMResponse(
                tool_calls=[ToolCall(id="m1", name="format_maps_link", arguments={"address": "1 Main St"})],
                stop_reason="tool_use",
            ),
            LLMResponse(content="Meet at 1 Main St: https://maps.example"),
        ]
        reply = await composer.synthesize(context, plan)

        assert reply == "Meet at 1 Main St: https://maps.example"
        tool_result = mock_llm.complete.call_args_list[1].kwargs["messages"][2].content[0]
        assert json.loads(tool_result["content"])["success"] is True

    async def test_tool_limit_without_text_falls_back(self, composer, mock_llm, context, plan):
        context.step_results["step_1"] = StepResult(success=True, output=TextOutput("2 events"))
        mock_llm.complete.return_value = LLMResponse(
            tool_calls=[ToolCall(id="m", name="format_maps_link", arguments={"address": "x"})],
            stop_reason="tool_use",
        )
        reply = await composer.synthesize(context, plan)
        assert reply == "2 events"
        assert mock_llm.complete.call_count == 3

    async def test_model_error_falls_back(self, composer, mock_llm, context, plan):
        context.step_results["step_1"] = StepResult(success=True, output=TextOutput("Saved your note."))
        mock_llm.complete.side_effect = RuntimeError("overloaded")
        assert await composer.synthesize(context, plan) == "Saved your note."

    async def test_empty_text(self, composer, mock_llm, context, plan):
        mock_llm.complete.return_value = LLMResponse(content="   ")
        assert await composer.synthesize(context, plan) == EMPTY_REPLY


class TestFallbackResponse:
    def test_joins_text_outputs(self, context):
        context.step_results["a"] = StepResult(success=True, output=TextOutput("First"))
        context.step_results["b"] = StepResult.failure("boom")
        context.step_results["c"] = StepResult(success=True, output=TextOutput("Second"))
        assert fallback_response(context, None) == "First\n\nSecond"

    def test_short_url(self, context):
        context.step_results["a"] = StepResult(
            success=True, output=StructuredOutput({"shortUrl": "https://sho.rt/x"})
        )
        assert fallback_response(context, None) == "Here's your link: https://sho.rt/x"

    def test_message_field(self, context):
        context.step_results["a"] = StepResult(success=True, output=StructuredOutput({"message": "Booked"}))
        assert fallback_response(context, None) == "Booked"

    def test_nothing_usable(self, context):
        assert fallback_response(context, None) == DONE
        assert fallback_response(context, "step_failed") == APOLOGY


class TestHelpers:
    def test_truncation_marker(self):
        text = format_step_results({"s": StepResult(success=True, output=TextOutput("x" * 20))}, 10)
        assert "Output: xxxxxxxxxx...(truncated)" in text

    def test_failed_result(self):
        text = format_step_results({"s": StepResult.failure("nope")}, 10)
        assert text == "  - [s] FAILED\n    Output: (no output)\n    Error: nope"

    @pytest.mark.parametrize("message,expected", [
        ("What's my balance?", True),
        ("list my meetings", True),
        ("What time is the dentist?", True),
        ("Say hi to Bob", False),
    ])
    def test_is_data_request(self, message, expected):
        assert is_data_request(message) is expected

"""Tests for the agentic tool loop."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from conductor.core.llm.types import LLMResponse, ToolCall
from conductor.orchestrator.models import StepResult, StructuredOutput, TextOutput
from conductor.orchestrator.tool_loop import AgentRunContext, ToolLoop, format_previous_results
from conductor.tools.base import BaseTool, ToolContext, ToolResult
from conductor.tools.registry import ToolRegistry


class EchoTool(BaseTool):
    def __init__(self) -> None:
        self.calls: list[dict] = []

    @property
    def name(self) -> str:
        return "echo"

    @property
    def description(self) -> str:
        return "Echoes input"

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {"text": {"type": "string"}}, "required": ["text"]}

    async def execute(self, context, **kwargs) -> ToolResult:
        self.calls.append(kwargs)
        return ToolResult(success=True, output=kwargs.get("text", ""))


class BrokenTool(EchoTool):
    @property
    def name(self) -> str:
        return "broken"

    async def execute(self, context, **kwargs) -> ToolResult:
        raise ConnectionError("upstream unavailable")


def tool_use(call_id: str = "tc1", name: str = "echo", **args) -> LLMResponse:
    return LLMResponse(
        tool_calls=[ToolCall(id=call_id, name=name, arguments=args or {"text": "ping"})],
        stop_reason="tool_use",
        input_tokens=10,
        output_tokens=5,
    )


def final(text: str) -> LLMResponse:
    return LLMResponse(content=text, stop_reason="end_turn", input_tokens=7, output_tokens=3)


@pytest.fixture
def mock_llm():
    llm = AsyncMock()
    llm.complete = AsyncMock()
    llm.count_tokens = MagicMock(return_value=10)
    return llm


@pytest.fixture
def echo():
    return EchoTool()


@pytest.fixture
def loop(mock_llm, echo):
    return ToolLoop(mock_llm, ToolRegistry([echo, BrokenTool()]), max_loops=5)


@pytest.fixture
def run_context():
    return AgentRunContext(tool_context=ToolContext(sender_id="u1", channel="sms"))


class TestToolLoop:
    async def test_plain_text_answer(self, loop, mock_llm, run_context):
        mock_llm.complete.return_value = final("Hello!")
        result = await loop.execute("system", "Say hi", ["echo"], run_context)
        assert result.success
        assert result.output == TextOutput("Hello!")
        assert result.tool_calls == []
        assert mock_llm.complete.call_count == 1

    async def test_json_answer_becomes_structured(self, loop, mock_llm, run_context):
        mock_llm.complete.return_value = final('{"events": [], "count": 0}')
        result = await loop.execute("system", "List events", ["echo"], run_context)
        assert result.output == StructuredOutput({"events": [], "count": 0})

    async def test_invalid_json_stays_text(self, loop, mock_llm, run_context):
        mock_llm.complete.return_value = final("{not json")
        result = await loop.execute("system", "task", [], run_context)
        assert result.output == TextOutput("{not json")

    async def test_tool_round_trip(self, loop, mock_llm, echo, run_context):
        mock_llm.complete.side_effect = [tool_use(text="pong"), final("Done: pong")]
        result = await loop.execute("system", "ping", ["echo"], run_context)

        assert result.success
        assert result.output == TextOutput("Done: pong")
        assert [tc.name for tc in result.tool_calls] == ["echo"]
        assert echo.calls == [{"text": "pong"}]

        second_messages = mock_llm.complete.call_args_list[1].kwargs["messages"]
        assert second_messages[1].role == "assistant"
        assert second_messages[1].content[0]["type"] == "tool_use"
        tool_result = second_messages[2].content[0]
        assert tool_result["tool_use_id"] == "tc1"
        assert tool_result["is_error"] is False
        assert json.loads(tool_result["content"])["output"] == "pong"

    async def test_token_usage_summed(self, loop, mock_llm, run_context):
        mock_llm.complete.side_effect = [tool_use(), tool_use("tc2"), final("ok")]
        result = await loop.execute("system", "task", ["echo"], run_context)
        assert result.token_usage.input_tokens == 27
        assert result.token_usage.output_tokens == 13

    async def test_loop_limit(self, loop, mock_llm, run_context):
        mock_llm.complete.side_effect = [tool_use(f"tc{i}") for i in range(6)]
        result = await loop.execute("system", "task", ["echo"], run_context)

        assert not result.success
        assert "loop limit" in result.error
        assert result.error == "Tool loop limit exceeded (5)"
        assert len(result.tool_calls) == 5
        assert mock_llm.complete.call_count == 6
        assert result.token_usage.input_tokens == 60

    async def test_tool_error_fed_back(self, loop, mock_llm, run_context):
        mock_llm.complete.side_effect = [tool_use(name="broken"), final("Sorry, that failed")]
        result = await loop.execute("system", "task", ["broken"], run_context)

        assert result.success
        tool_result = mock_llm.complete.call_args_list[1].kwargs["messages"][2].content[0]
        assert tool_result["is_error"] is True
        assert "upstream unavailable" in tool_result["content"]

    async def test_unknown_tool_fed_back(self, loop, mock_llm, run_context):
        mock_llm.complete.side_effect = [tool_use(name="nonexistent"), final("ok")]
        result = await loop.execute("system", "task", ["echo"], run_context)
        assert result.success
        tool_result = mock_llm.complete.call_args_list[1].kwargs["messages"][2].content[0]
        assert tool_result["is_error"] is True
        assert "Unknown tool: nonexistent" in tool_result["content"]

    async def test_transport_error_keeps_tool_calls(self, loop, mock_llm, run_context):
        mock_llm.complete.side_effect = [tool_use(), RuntimeError("503 overloaded")]
        result = await loop.execute("system", "task", ["echo"], run_context)
        assert not result.success
        assert result.error == "503 overloaded"
        assert [tc.id for tc in result.tool_calls] == ["tc1"]
        assert result.token_usage.input_tokens == 10

    async def test_run_reports_error(self, loop, mock_llm, run_context):
        mock_llm.complete.side_effect = RuntimeError("connection reset")
        outcome = await loop.run([], "system", [], run_context.tool_context)
        assert outcome.error == "connection reset"
        assert outcome.tool_calls == []

    async def test_prompt_contents(self, loop, mock_llm):
        mock_llm.complete.return_value = final("ok")
        context = AgentRunContext(
            tool_context=ToolContext(sender_id="u1", channel="sms"),
            previous_results={"step_1": StepResult(success=True, output=TextOutput("3 events"))},
            memory_xml="<user_memory>facts</user_memory>",
        )
        await loop.execute("You are an agent.", "Summarize", ["*"], context)

        kwargs = mock_llm.complete.call_args.kwargs
        assert kwargs["system"] == "You are an agent.\n\n<user_memory>facts</user_memory>"
        user_turn = kwargs["messages"][0].content
        assert user_turn.startswith("Task: Summarize\n\n<previous_results>")
        assert '<step id="step_1" status="success">3 events</step>' in user_turn
        assert [t["name"] for t in kwargs["tools"]] == ["echo", "broken"]

    async def test_no_tools_sends_none(self, loop, mock_llm, run_context):
        mock_llm.complete.return_value = final("ok")
        await loop.execute("system", "task", [], run_context)
        assert mock_llm.complete.call_args.kwargs["tools"] is None


class TestFormatPreviousResults:
    def test_empty(self):
        assert format_previous_results({}) == "(No previous step results)"

    def test_failed_step_and_truncation(self):
        text = format_previous_results({
            "step_1": StepResult(success=True, output=TextOutput("x" * 1000)),
            "step_2": StepResult.failure("timeout"),
        })
        first, second = text.split("\n")
        assert first == f'<step id="step_1" status="success">{"x" * 400}</step>'
        assert second == '<step id="step_2" status="failed" error="timeout"></step>'

"""Tests for LLM message types and the local provider's wire conversion."""

import json

from conductor.core.llm.local import _to_openai_messages, _to_openai_tools
from conductor.core.llm.types import LLMMessage, LLMResponse, ToolCall


class TestLLMResponse:
    def test_assistant_message_echoes_text_and_tools(self):
        response = LLMResponse(
            content="Looking that up",
            tool_calls=[ToolCall(id="t1", name="resolve_date", arguments={"text": "friday"})],
        )
        msg = response.assistant_message()
        assert msg.role == "assistant"
        assert msg.content == [
            {"type": "text", "text": "Looking that up"},
            {"type": "tool_use", "id": "t1", "name": "resolve_date", "input": {"text": "friday"}},
        ]
        assert response.wants_tools


class TestOpenAIConversion:
    def test_tools(self):
        converted = _to_openai_tools([
            {"name": "format_maps_link", "description": "Maps", "input_schema": {"type": "object"}},
        ])
        assert converted == [{
            "type": "function",
            "function": {"name": "format_maps_link", "description": "Maps", "parameters": {"type": "object"}},
        }]

    def test_tool_round_trip_messages(self):
        messages = [
            LLMMessage(role="user", content="Where is it?"),
            LLMMessage(role="assistant", content=[
                {"type": "tool_use", "id": "t1", "name": "format_maps_link", "input": {"address": "1 Main St"}},
            ]),
            LLMMessage(role="user", content=[
                {"type": "tool_result", "tool_use_id": "t1", "content": '{"success": true}', "is_error": False},
            ]),
        ]
        out = _to_openai_messages(messages, "Be brief.")

        assert out[0] == {"role": "system", "content": "Be brief."}
        assert out[1] == {"role": "user", "content": "Where is it?"}
        assert out[2]["role"] == "assistant"
        assert out[2]["content"] is None
        call = out[2]["tool_calls"][0]
        assert call["id"] == "t1"
        assert json.loads(call["function"]["arguments"]) == {"address": "1 Main St"}
        assert out[3] == {"role": "tool", "tool_call_id": "t1", "content": '{"success": true}'}

    def test_no_system(self):
        out = _to_openai_messages([LLMMessage(role="user", content="hi")], None)
        assert out == [{"role": "user", "content": "hi"}]

"""Tests for the tool registry and built-in tools."""

import json

import pytest

from conductor.core.dates import KeywordDateResolver
from conductor.errors import ToolNotFoundError
from conductor.memory.store import FactStore
from conductor.models import UserConfig
from conductor.tools import (
    BaseTool,
    ForgetFactTool,
    MapsLinkTool,
    RecallFactsTool,
    RememberFactTool,
    ResolveDateTool,
    ToolContext,
    ToolRegistry,
    ToolResult,
)


class ExplodingTool(BaseTool):
    @property
    def name(self) -> str:
        return "explode"

    @property
    def description(self) -> str:
        return "Always raises"

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}}

    async def execute(self, context, **kwargs) -> ToolResult:
        raise RuntimeError("boom")


@pytest.fixture
def context():
    return ToolContext(sender_id="+15550001111", channel="sms", user_config=UserConfig(timezone="UTC"))


@pytest.fixture
def registry():
    return ToolRegistry([MapsLinkTool(), ResolveDateTool(KeywordDateResolver()), ExplodingTool()])


class TestToolRegistry:
    def test_schemas_wildcard(self, registry):
        names = [s["name"] for s in registry.schemas(["*"])]
        assert names == ["format_maps_link", "resolve_date", "explode"]

    def test_schemas_skip_unknown(self, registry):
        schemas = registry.schemas(["format_maps_link", "missing"])
        assert [s["name"] for s in schemas] == ["format_maps_link"]
        assert "input_schema" in schemas[0]

    def test_get_unknown_raises(self, registry):
        with pytest.raises(ToolNotFoundError, match="missing"):
            registry.get("missing")

    async def test_execute_returns_json(self, registry, context):
        raw = await registry.execute_tool("format_maps_link", {"address": "1 Main St"}, context)
        payload = json.loads(raw)
        assert payload["success"] is True
        assert payload["url"] == "https://www.google.com/maps/search/?api=1&query=1%20Main%20St"
        assert payload["output"].startswith("1 Main St: https://")

    async def test_tool_exceptions_propagate(self, registry, context):
        with pytest.raises(RuntimeError, match="boom"):
            await registry.execute_tool("explode", {}, context)


class TestMapsLinkTool:
    async def test_label(self, context):
        result = await MapsLinkTool().execute(context, address="10 Downing St, London", label="No. 10")
        assert result.success
        assert result.output.startswith("No. 10: ")
        assert result.data["label"] == "No. 10"

    async def test_requires_address(self, context):
        result = await MapsLinkTool().execute(context, address="  ")
        assert not result.success


class TestResolveDateTool:
    async def test_period_resolves_to_start(self, context):
        tool = ResolveDateTool(KeywordDateResolver())
        result = await tool.execute(context, text="tomorrow")
        assert result.success
        assert "T00:00:00" in result.output

    async def test_range(self, context):
        tool = ResolveDateTool(KeywordDateResolver())
        result = await tool.execute(context, text="this week", range=True)
        assert result.success
        assert " to " in result.output
        assert result.data["granularity"] == "week"

    async def test_unresolvable(self, context):
        result = await ResolveDateTool(KeywordDateResolver()).execute(context, text="whenever")
        assert not result.success
        assert "whenever" in result.error


@pytest.fixture
async def facts(tmp_path):
    store = FactStore(tmp_path / "facts.db")
    await store.start()
    yield store
    await store.stop()


class TestMemoryTools:
    async def test_remember_and_recall(self, facts, context):
        remember = RememberFactTool(facts)
        result = await remember.execute(context, fact="Prefers window seats", category="preferences")
        assert result.success
        assert result.output == "Remembered: Prefers window seats"

        again = await remember.execute(context, fact="Prefers window seats")
        assert again.output.startswith("Already known")

        recalled = await RecallFactsTool(facts).execute(context)
        assert recalled.output == "[preferences] Prefers window seats"
        assert recalled.data["facts"] == ["Prefers window seats"]

    async def test_recall_query(self, facts, context):
        await facts.add_fact(context.sender_id, "Has a dog named Rex", "relationships")
        await facts.add_fact(context.sender_id, "Works at Acme", "work")
        result = await RecallFactsTool(facts).execute(context, query="dog")
        assert result.data["facts"] == ["Has a dog named Rex"]

    async def test_facts_are_per_sender(self, facts, context):
        await facts.add_fact("someone-else", "Likes jazz")
        result = await RecallFactsTool(facts).execute(context)
        assert result.output == "No facts stored."

    async def test_forget(self, facts, context):
        await facts.add_fact(context.sender_id, "Lives in Lisbon")
        forget = ForgetFactTool(facts)
        assert (await forget.execute(context, fact="Lives in Lisbon")).success
        assert not (await forget.execute(context, fact="Lives in Lisbon")).success

    async def test_remember_rejects_empty(self, facts, context):
        result = await RememberFactTool(facts).execute(context, fact="   ")
        assert not result.success

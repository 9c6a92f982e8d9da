"""Tools that let agents remember and recall facts about the user."""

from __future__ import annotations

from typing import Any

from conductor.memory.store import FactStore
from conductor.tools.base import BaseTool, ToolContext, ToolResult
from conductor.utils.logging import get_logger

log = get_logger(__name__)


class RememberFactTool(BaseTool):
    def __init__(self, store: FactStore) -> None:
        self._store = store

    @property
    def name(self) -> str:
        return "remember_fact"

    @property
    def description(self) -> str:
        return (
            "Save a durable fact about the user (preferences, people, places) so it "
            "is available in future conversations."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "fact": {
                    "type": "string",
                    "description": "The fact as a short sentence, e.g. 'Prefers window seats'.",
                },
                "category": {
                    "type": "string",
                    "description": "Category for organizing facts.",
                    "default": "general",
                },
            },
            "required": ["fact"],
        }

    async def execute(self, context: ToolContext, **kwargs: Any) -> ToolResult:
        fact = str(kwargs.get("fact", "")).strip()
        if not fact:
            return ToolResult(success=False, error="fact must not be empty")
        category = str(kwargs.get("category") or "general")

        added = await self._store.add_fact(context.sender_id, fact, category=category)
        if not added:
            return ToolResult(success=True, output=f"Already known: {fact}")
        log.info("fact_remembered", sender=context.sender_id, category=category)
        return ToolResult(success=True, output=f"Remembered: {fact}")


class RecallFactsTool(BaseTool):
    def __init__(self, store: FactStore) -> None:
        self._store = store

    @property
    def name(self) -> str:
        return "recall_facts"

    @property
    def description(self) -> str:
        return "List stored facts about the user, optionally filtered by a search query."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Text to search for. Omit to list everything.",
                },
            },
        }

    async def execute(self, context: ToolContext, **kwargs: Any) -> ToolResult:
        query = str(kwargs.get("query") or "").strip()
        if query:
            facts = await self._store.search(context.sender_id, query)
        else:
            facts = await self._store.list_facts(context.sender_id)

        if not facts:
            return ToolResult(success=True, output="No facts stored.", data={"facts": []})
        lines = [f"[{f.category}] {f.fact}" for f in facts]
        return ToolResult(
            success=True,
            output="\n".join(lines),
            data={"facts": [f.fact for f in facts]},
        )


class ForgetFactTool(BaseTool):
    def __init__(self, store: FactStore) -> None:
        self._store = store

    @property
    def name(self) -> str:
        return "forget_fact"

    @property
    def description(self) -> str:
        return "Delete a stored fact about the user. The text must match exactly."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "fact": {"type": "string", "description": "The exact fact text to delete."},
            },
            "required": ["fact"],
        }

    async def execute(self, context: ToolContext, **kwargs: Any) -> ToolResult:
        fact = str(kwargs.get("fact", ""))
        if await self._store.delete_fact(context.sender_id, fact):
            return ToolResult(success=True, output=f"Forgot: {fact}")
        return ToolResult(success=False, error=f"No stored fact matches: {fact}")

"""Name-keyed tool table: the tool-execution collaborator for agents and the composer."""

from __future__ import annotations

import json
from typing import Any, Iterable

from conductor.errors import ToolNotFoundError
from conductor.tools.base import BaseTool, ToolContext
from conductor.utils.logging import get_logger

log = get_logger(__name__)

ALL_TOOLS = "*"


class ToolRegistry:
    def __init__(self, tools: Iterable[BaseTool] = ()) -> None:
        self._tools: dict[str, BaseTool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: BaseTool) -> None:
        if tool.name in self._tools:
            log.warning("tool_replaced", tool=tool.name)
        self._tools[tool.name] = tool

    def get(self, name: str) -> BaseTool:
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(name)
        return tool

    def names(self) -> list[str]:
        return list(self._tools)

    def schemas(self, names: Iterable[str]) -> list[dict[str, Any]]:
        """Anthropic tool schemas for ``names``; ``"*"`` selects every tool."""
        wanted = list(names)
        if ALL_TOOLS in wanted:
            return [t.to_anthropic_schema() for t in self._tools.values()]

        schemas = []
        for name in wanted:
            tool = self._tools.get(name)
            if tool is None:
                log.warning("tool_schema_missing", tool=name)
                continue
            schemas.append(tool.to_anthropic_schema())
        return schemas

    async def execute_tool(self, name: str, arguments: dict[str, Any], context: ToolContext) -> str:
        """Run a tool and return its result as a JSON string.

        Raises ToolNotFoundError for unknown names; exceptions raised by the
        tool itself propagate to the caller.
        """
        tool = self.get(name)
        log.info("tool_executing", tool=name, sender=context.sender_id)
        result = await tool.execute(context, **arguments)
        if not result.success:
            log.warning("tool_failed", tool=name, error=result.error)
        return json.dumps(result.to_payload(), default=str)

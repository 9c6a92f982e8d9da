"""Date resolution exposed to agents as a tool."""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from conductor.core.dates import DateResolver
from conductor.core.prompts import user_timezone
from conductor.tools.base import BaseTool, ToolContext, ToolResult


class ResolveDateTool(BaseTool):
    def __init__(self, resolver: DateResolver) -> None:
        self._resolver = resolver

    @property
    def name(self) -> str:
        return "resolve_date"

    @property
    def description(self) -> str:
        return (
            "Resolve a natural-language date such as 'tomorrow', 'next friday' or "
            "'this week' to absolute ISO dates in the user's timezone. Use range=true "
            "for spans like weeks or months."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "text": {"type": "string", "description": "The date expression to resolve"},
                "range": {"type": "boolean", "description": "Resolve as a start/end span"},
            },
            "required": ["text"],
        }

    async def execute(self, context: ToolContext, **kwargs: Any) -> ToolResult:
        text = str(kwargs.get("text", ""))
        tz = user_timezone(context.user_config, context.default_timezone)
        try:
            if kwargs.get("range"):
                span = self._resolver.resolve_range(text, tz)
                if span is not None:
                    return ToolResult(success=True, output=f"{span.start.iso} to {span.end.iso}", data=asdict(span))
            else:
                moment = self._resolver.resolve(text, tz)
                if moment is None:
                    # Periods such as "tomorrow" only resolve as spans
                    span = self._resolver.resolve_range(text, tz)
                    moment = span.start if span else None
                if moment is not None:
                    return ToolResult(success=True, output=moment.iso, data=asdict(moment))
        except ValueError as e:
            return ToolResult(success=False, error=str(e))
        return ToolResult(success=False, error=f"Could not resolve date: {text!r}")

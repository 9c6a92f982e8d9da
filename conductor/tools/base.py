"""Base tool interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from conductor.models import UserConfig


@dataclass
class ToolContext:
    """Who a tool call is made on behalf of."""

    sender_id: str
    channel: str
    user_config: UserConfig | None = None
    default_timezone: str = "UTC"


@dataclass
class ToolResult:
    success: bool
    output: str = ""
    error: str = ""
    data: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success}
        if self.output:
            payload["output"] = self.output
        if self.error:
            payload["error"] = self.error
        payload.update(self.data)
        return payload


class BaseTool(ABC):
    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def description(self) -> str: ...

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """JSON Schema for tool parameters."""
        ...

    @abstractmethod
    async def execute(self, context: ToolContext, **kwargs: Any) -> ToolResult: ...

    def to_anthropic_schema(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.parameters,
        }

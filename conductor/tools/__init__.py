"""Tools available to agents and the response composer."""

from conductor.tools.base import BaseTool, ToolContext, ToolResult
from conductor.tools.dates import ResolveDateTool
from conductor.tools.maps import MapsLinkTool
from conductor.tools.memory import ForgetFactTool, RecallFactsTool, RememberFactTool
from conductor.tools.registry import ALL_TOOLS, ToolRegistry

__all__ = [
    "ALL_TOOLS",
    "BaseTool",
    "ToolContext",
    "ToolResult",
    "ToolRegistry",
    "MapsLinkTool",
    "ResolveDateTool",
    "RememberFactTool",
    "RecallFactsTool",
    "ForgetFactTool",
]

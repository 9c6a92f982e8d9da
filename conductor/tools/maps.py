"""Google Maps link formatting, offered to the response composer."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

from conductor.tools.base import BaseTool, ToolContext, ToolResult

MAPS_SEARCH_URL = "https://www.google.com/maps/search/?api=1&query="


def format_maps_url(address: str) -> str:
    return MAPS_SEARCH_URL + quote(address, safe="")


def format_maps_text(address: str, label: str | None = None) -> str:
    return f"{label or address}: {format_maps_url(address)}"


class MapsLinkTool(BaseTool):
    @property
    def name(self) -> str:
        return "format_maps_link"

    @property
    def description(self) -> str:
        return (
            "Convert an address or location to a Google Maps link, returning plain text "
            "(Label: URL) plus url/label fields. Call this for any physical address or "
            "location mentioned in the step results."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "address": {"type": "string", "description": "Address, place name, or location"},
                "label": {"type": "string", "description": "Optional display label (defaults to address)"},
            },
            "required": ["address"],
        }

    async def execute(self, context: ToolContext, **kwargs: Any) -> ToolResult:
        address = str(kwargs.get("address", "")).strip()
        if not address:
            return ToolResult(success=False, error="address is required")
        label = kwargs.get("label") or address
        return ToolResult(
            success=True,
            output=format_maps_text(address, label),
            data={"url": format_maps_url(address), "label": label},
        )

"""Exception hierarchy.

Only `ConfigurationError` is meant to escape the orchestration boundary; the
rest are raised and caught internally so that failures can be turned into
failed step results or fallback replies.
"""

from __future__ import annotations


class ConductorError(Exception):
    """Base class for all Conductor errors."""


class ConfigurationError(ConductorError):
    """A required collaborator or setting is missing at construction time."""


class CapabilityNotFoundError(ConductorError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown agent or skill: {name}")
        self.name = name


class ToolNotFoundError(ConductorError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class PlanParseError(ConductorError):
    """Model output could not be turned into a plan."""


class SkillLoadError(ConductorError):
    """A SKILL.md file is missing, unreadable or has invalid frontmatter."""

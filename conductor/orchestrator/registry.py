"""Capability registry: the named agents and skills a plan step can target."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Union

from conductor.errors import CapabilityNotFoundError, ConfigurationError
from conductor.models import TargetType
from conductor.skills.loader import SkillDefinition
from conductor.tools.registry import ALL_TOOLS
from conductor.utils.logging import get_logger

log = get_logger(__name__)


@dataclass
class AgentCapability:
    name: str
    description: str
    system_prompt: str
    tools: list[str] = field(default_factory=list)
    examples: list[str] = field(default_factory=list)

    @property
    def kind(self) -> TargetType:
        return TargetType.AGENT


Capability = Union[AgentCapability, SkillDefinition]


class AgentRegistry:
    """Name-keyed lookup over agents and skills.

    Agents and skills share one namespace; a skill whose name collides with
    an agent is ignored.
    """

    def __init__(
        self,
        agents: Iterable[AgentCapability],
        skills: Iterable[SkillDefinition] = (),
    ) -> None:
        self._agents: dict[str, AgentCapability] = {}
        self._skills: dict[str, SkillDefinition] = {}
        for agent in agents:
            self.register_agent(agent)
        for skill in skills:
            self.register_skill(skill)
        if not self._agents:
            raise ConfigurationError("AgentRegistry needs at least one agent")

    def register_agent(self, agent: AgentCapability) -> None:
        if agent.name in self._agents:
            log.warning("agent_replaced", agent=agent.name)
        self._agents[agent.name] = agent
        self._skills.pop(agent.name, None)

    def register_skill(self, skill: SkillDefinition) -> None:
        if skill.name in self._agents:
            log.warning("skill_name_conflict", skill=skill.name)
            return
        self._skills[skill.name] = skill

    def find(self, name: str) -> Capability | None:
        return self._agents.get(name) or self._skills.get(name)

    def get(self, name: str) -> Capability:
        capability = self.find(name)
        if capability is None:
            raise CapabilityNotFoundError(name)
        return capability

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.find(name) is not None

    def agents(self) -> list[AgentCapability]:
        return list(self._agents.values())

    def skills(self, channel: str | None = None) -> list[SkillDefinition]:
        """Enabled skills, restricted to ``channel`` when given."""
        return [
            s for s in self._skills.values()
            if s.enabled and (channel is None or channel in s.channels)
        ]

    def format_catalog(self, channel: str | None = None) -> str:
        """Plain-text catalog used in the planning prompt."""
        lines = ["Agents:"]
        for agent in self._agents.values():
            lines.append(f"  - {agent.name}: {agent.description}")
            if agent.tools:
                tools = "all tools" if ALL_TOOLS in agent.tools else ", ".join(agent.tools)
                lines.append(f"    Tools: {tools}")
            if agent.examples:
                lines.append(f"    Examples: {'; '.join(agent.examples)}")

        skills = self.skills(channel)
        if skills:
            lines.append("")
            lines.append("Skills (set \"type\": \"skill\" in the step):")
            for skill in skills:
                lines.append(f"  - {skill.name}: {skill.description}")
        return "\n".join(lines)

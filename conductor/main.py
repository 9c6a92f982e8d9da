"""Conductor entry point: wires everything together and answers messages."""

from __future__ import annotations

import asyncio
import sys

import click

from conductor import __version__
from conductor.config import Settings, load_settings
from conductor.core.dates import KeywordDateResolver
from conductor.core.llm import create_provider
from conductor.core.pipeline import HandlerResult, RequestHandler
from conductor.core.ratelimit import InboundDedup, RateLimiter
from conductor.memory.store import ConversationStore, FactStore, UserConfigStore
from conductor.models import InboundRequest
from conductor.orchestrator import AgentRegistry, Orchestrator, default_agents
from conductor.skills import load_skills, match_skill
from conductor.tools import (
    ForgetFactTool,
    MapsLinkTool,
    RecallFactsTool,
    RememberFactTool,
    ResolveDateTool,
    ToolRegistry,
)
from conductor.utils.logging import get_logger, setup_logging

log = get_logger(__name__)


class Conductor:
    """Application container: stores, tools, registry and the request handler."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        data_dir = settings.get_data_dir()

        self.llm = create_provider(settings.llm)
        self.conversations = ConversationStore(data_dir / "conversations.db")
        self.facts = FactStore(data_dir / "facts.db")
        self.user_configs = UserConfigStore(data_dir / "users.db")

        resolver = KeywordDateResolver()
        self.tools = ToolRegistry([
            ResolveDateTool(resolver),
            MapsLinkTool(),
            RememberFactTool(self.facts),
            RecallFactsTool(self.facts),
            ForgetFactTool(self.facts),
        ])

        skills = []
        if settings.skills.enabled:
            skills, failures = load_skills(settings.get_skill_dirs())
            for failure in failures:
                log.warning("skill_skipped", path=str(failure.skill_dir), error=failure.error)
        self.registry = AgentRegistry(default_agents(), skills)

        self.orchestrator = Orchestrator(
            self.llm, self.registry, self.tools, settings, date_resolver=resolver,
        )
        self.handler = RequestHandler(
            self.orchestrator,
            self.conversations,
            self.facts,
            self.user_configs,
            RateLimiter(settings.rate_limit),
            InboundDedup(settings.rate_limit),
        )

    async def start(self) -> None:
        log.info("conductor_starting", version=__version__, provider=self.settings.llm.provider)
        await self.conversations.start()
        await self.facts.start()
        await self.user_configs.start()

    async def stop(self) -> None:
        await self.conversations.stop()
        await self.facts.stop()
        await self.user_configs.stop()
        await self.llm.close()
        log.info("conductor_stopped")

    async def ask(self, request: InboundRequest) -> HandlerResult:
        return await self.handler.handle(request)


async def run_once(settings: Settings, request: InboundRequest) -> HandlerResult:
    app = Conductor(settings)
    await app.start()
    try:
        return await app.ask(request)
    finally:
        await app.stop()


def _load(config_path: str | None, log_level: str | None) -> Settings:
    settings = load_settings(config_path)
    if log_level:
        settings.log_level = log_level
    setup_logging(level=settings.log_level, json_output=settings.log_json)
    return settings


@click.group()
@click.version_option(__version__, prog_name="conductor")
def cli() -> None:
    """Conductor: plan, run and answer requests with LLM agents."""


@cli.command()
@click.argument("message")
@click.option("--config", "config_path", default=None, help="Path to config YAML file")
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
@click.option("--sender", default="cli-user", show_default=True, help="Sender id for history and facts")
@click.option("--channel", default="cli", show_default=True, help="Channel name used for skill filtering")
def ask(
    message: str,
    config_path: str | None,
    log_level: str | None,
    sender: str,
    channel: str,
) -> None:
    """Answer one MESSAGE and print the reply."""
    settings = _load(config_path, log_level)
    result = asyncio.run(run_once(settings, InboundRequest(sender_id=sender, content=message, channel=channel)))
    if result.response:
        click.echo(result.response)
    if not result.success:
        sys.exit(1)


@cli.command()
@click.option("--config", "config_path", default=None, help="Path to config YAML file")
@click.option("--channel", default=None, help="Only show skills available on this channel")
@click.option("--match", "match_text", default=None, help="Show which skill's match hints fit this text")
def skills(config_path: str | None, channel: str | None, match_text: str | None) -> None:
    """List installed skills and any that failed to load."""
    settings = _load(config_path, "WARNING")
    loaded, failures = load_skills(settings.get_skill_dirs())

    if match_text is not None:
        matched = match_skill(match_text, channel or "sms", loaded)
        click.echo(matched.name if matched else "(no match)")
        return

    for skill in loaded:
        if channel and not skill.supports(channel):
            continue
        state = "enabled" if skill.enabled else "disabled"
        click.echo(f"{skill.name} [{state}; {', '.join(skill.channels)}] - {skill.description}")
    for failure in failures:
        click.echo(f"FAILED {failure.skill_dir}: {failure.error}", err=True)


if __name__ == "__main__":
    cli()

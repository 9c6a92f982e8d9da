"""Prompt building blocks shared by the planner, agents and composer."""

from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from conductor.models import UserConfig, UserFact


def user_timezone(user_config: UserConfig | None, default: str = "UTC") -> str:
    if user_config and user_config.timezone:
        try:
            ZoneInfo(user_config.timezone)
            return user_config.timezone
        except (ZoneInfoNotFoundError, ValueError):
            pass
    return default


def local_now(tz_name: str, now: datetime | None = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(ZoneInfo(tz_name))


def build_time_context(user_config: UserConfig | None, now: datetime | None = None) -> str:
    if user_config and user_config.timezone:
        tz_name = user_timezone(user_config)
        local = local_now(tz_name, now)
        return f"Current time: {local.strftime('%A, %B %d, %Y %I:%M %p %Z')} ({tz_name})"
    utc = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return f"Current time: {utc.isoformat(timespec='seconds')} (UTC - user timezone unknown)"


def build_facts_xml(
    facts: list[UserFact],
    max_facts: int | None = None,
    max_chars: int | None = None,
) -> str:
    """Render facts as a ``<facts>`` block, stopping at whichever cap hits first."""
    selected: list[str] = []
    total = 0
    for fact in facts:
        text = " ".join(fact.fact.split())
        if not text:
            continue
        if max_facts is not None and len(selected) >= max_facts:
            break
        addition = len(text) + (2 if selected else 0)
        if max_chars is not None and total + addition + 1 > max_chars:
            break
        selected.append(text)
        total += addition

    if not selected:
        return ""
    return f"  <facts>\n    {'. '.join(selected)}.\n  </facts>"


def build_user_memory_xml(
    facts: list[UserFact],
    max_facts: int | None = None,
    max_chars: int | None = None,
) -> str:
    facts_xml = build_facts_xml(facts, max_facts=max_facts, max_chars=max_chars)
    if not facts_xml:
        return ""
    return f"<user_memory>\n{facts_xml}\n</user_memory>"


def build_user_context(user_config: UserConfig | None, memory_xml: str = "") -> str:
    lines = ["<user>"]
    if user_config and user_config.name:
        lines.append(f"  <name>{user_config.name}</name>")
    if user_config and user_config.timezone:
        lines.append(f"  <timezone>{user_config.timezone}</timezone>")
    if memory_xml:
        lines.append(memory_xml)
    if len(lines) == 1:
        return "(No user profile or stored facts)"
    lines.append("</user>")
    return "\n".join(lines)

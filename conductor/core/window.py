"""Conversation window: the age/count/token-bounded slice of history fed to prompts.

Messaging channels have no sessions, so every request sees a sliding window
of recent history instead. Constraints are applied in order: age, count,
then token budget. The result is always oldest-first.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass

from conductor.config import WindowConfig
from conductor.models import Message

# Closer to Claude's tokenization than the usual 4 chars/token
CHARS_PER_TOKEN = 3.3


def estimate_tokens(content: str) -> int:
    return math.ceil(len(content) / CHARS_PER_TOKEN)


def get_relevant_history(
    messages: list[Message],
    config: WindowConfig | None = None,
    now: float | None = None,
) -> list[Message]:
    """Reduce unbounded history to the configured window.

    Pure and deterministic for a given ``now``. When over the token budget
    the oldest messages go first; a newer message is never dropped to keep
    an older one.
    """
    if not messages:
        return []

    config = config or WindowConfig()
    now = time.time() if now is None else now
    cutoff = now - config.max_age_hours * 3600

    recent = sorted(
        (m for m in messages if m.created_at >= cutoff),
        key=lambda m: m.created_at,
    )
    if config.max_messages <= 0:
        return []
    recent = recent[-config.max_messages:]

    kept: list[Message] = []
    total = 0
    for msg in reversed(recent):
        tokens = estimate_tokens(msg.content)
        if total + tokens > config.max_tokens:
            break
        kept.append(msg)
        total += tokens

    kept.reverse()
    return kept


def format_history_for_prompt(messages: list[Message]) -> str:
    if not messages:
        return "(No recent conversation history)"
    return "\n".join(
        f"{'User' if m.role == 'user' else 'Assistant'}: {m.content}" for m in messages
    )


@dataclass
class WindowStats:
    message_count: int
    total_tokens: int
    oldest: float | None
    newest: float | None


def window_stats(messages: list[Message]) -> WindowStats:
    if not messages:
        return WindowStats(message_count=0, total_tokens=0, oldest=None, newest=None)
    return WindowStats(
        message_count=len(messages),
        total_tokens=sum(estimate_tokens(m.content) for m in messages),
        oldest=messages[0].created_at,
        newest=messages[-1].created_at,
    )

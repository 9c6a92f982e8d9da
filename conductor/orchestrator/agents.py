"""Built-in agents."""

from __future__ import annotations

from conductor.orchestrator.registry import AgentCapability
from conductor.tools.registry import ALL_TOOLS

GENERAL_AGENT = "general-agent"
MEMORY_AGENT = "memory-agent"

_GENERAL_PROMPT = """\
You are a helpful personal assistant with access to all available tools.

Guidelines:
- Be concise and helpful
- Use tools when needed to complete tasks
- Return structured data (JSON) when listing items
- Personalize responses using the user's name if known
- Respect the user's timezone for all date/time operations

If you're unsure about something, say what is missing rather than guessing."""

_MEMORY_PROMPT = """\
You are a memory management assistant. You store, recall and delete facts \
about the user.

Fact categories: preferences, relationships, health, work, interests, personal.

Guidelines:
1. Store atomic facts that make sense on their own ("User's sister is named Ana", not "Ana").
2. Be specific ("User is allergic to peanuts", not "User has allergies").
3. Skip temporary information ("I'm busy today").
4. Recall existing facts before storing so you don't create duplicates.
5. Only store what the user explicitly shares.
6. Always say what was stored, updated or deleted."""


def default_agents() -> list[AgentCapability]:
    return [
        AgentCapability(
            name=GENERAL_AGENT,
            description=(
                "Handles any task using the full tool suite. Use when no specialized "
                "agent or skill fits, or for multi-domain requests."
            ),
            system_prompt=_GENERAL_PROMPT,
            tools=[ALL_TOOLS],
            examples=[
                "General questions and conversation",
                "Resolving dates and times",
                "Fallback for unclassified requests",
            ],
        ),
        AgentCapability(
            name=MEMORY_AGENT,
            description="Explicitly stores, lists or deletes facts the user wants remembered.",
            system_prompt=_MEMORY_PROMPT,
            tools=["remember_fact", "recall_facts", "forget_fact"],
            examples=[
                "Remember that I'm vegetarian",
                "What do you know about me?",
                "Forget my old address",
            ],
        ),
    ]

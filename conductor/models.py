"""Transport-neutral records shared by the pipeline, stores and orchestrator."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal


@dataclass
class Message:
    role: Literal["user", "assistant"]
    content: str
    created_at: float = field(default_factory=time.time)  # unix seconds


@dataclass
class UserFact:
    fact: str
    category: str = "general"
    created_at: float = field(default_factory=time.time)


@dataclass
class UserConfig:
    name: str | None = None
    timezone: str | None = None


@dataclass
class InboundRequest:
    sender_id: str
    content: str
    channel: str = "sms"
    message_id: str = ""


class TargetType(str, Enum):
    AGENT = "agent"
    SKILL = "skill"

"""Orchestrator data models: plans, steps, step results and the per-request context."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Union
from uuid import uuid4

from conductor.core.llm.types import ToolCall
from conductor.models import Message, TargetType, UserConfig, UserFact

FailureReason = Literal["timeout", "step_failed"]

DEFAULT_MAX_RETRIES = 2


class StepStatus(str, Enum):
    PENDING = "pending"
    EXECUTING = "executing"
    RETRY = "retry"
    COMPLETED = "completed"
    FAILED = "failed"
    REPLANNED = "replanned"


class PlanStatus(str, Enum):
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Step outputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TextOutput:
    text: str

    def render(self) -> str:
        return self.text


@dataclass(frozen=True)
class StructuredOutput:
    value: dict[str, Any] | list[Any]

    def render(self) -> str:
        return json.dumps(self.value, default=str)

    def get(self, key: str, default: Any = None) -> Any:
        if isinstance(self.value, dict):
            return self.value.get(key, default)
        return default


StepOutput = Union[TextOutput, StructuredOutput]


def parse_output(raw: str) -> StepOutput:
    """JSON objects and arrays become structured output, anything else stays text."""
    stripped = raw.strip()
    if stripped.startswith(("{", "[")):
        try:
            value = json.loads(stripped)
        except json.JSONDecodeError:
            return TextOutput(raw)
        if isinstance(value, (dict, list)):
            return StructuredOutput(value)
    return TextOutput(raw)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0

    def add(self, input_tokens: int, output_tokens: int) -> None:
        self.input_tokens += input_tokens
        self.output_tokens += output_tokens

    @property
    def total(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class StepResult:
    success: bool
    output: StepOutput | None = None
    error: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    token_usage: TokenUsage | None = None

    @classmethod
    def failure(cls, error: str, **kwargs: Any) -> StepResult:
        return cls(success=False, error=error, **kwargs)

    def output_text(self, max_chars: int | None = None) -> str:
        text = self.output.render() if self.output is not None else ""
        if max_chars is not None and len(text) > max_chars:
            return text[:max_chars]
        return text


@dataclass
class StepError:
    step_id: str
    error: str


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------

@dataclass
class PlanStep:
    id: str
    target: str
    task: str
    target_type: TargetType = TargetType.AGENT
    status: StepStatus = StepStatus.PENDING
    retry_count: int = 0
    max_retries: int = DEFAULT_MAX_RETRIES
    result: StepResult | None = None

    @property
    def can_retry(self) -> bool:
        return self.retry_count < self.max_retries


@dataclass
class PlanContext:
    user_message: str
    conversation_history: list[Message]
    user_facts: list[UserFact]
    user_config: UserConfig | None
    sender_id: str
    channel: str
    message_id: str = ""
    step_results: dict[str, StepResult] = field(default_factory=dict)
    errors: list[StepError] = field(default_factory=list)

    @property
    def timezone(self) -> str | None:
        return self.user_config.timezone if self.user_config else None


def _now() -> datetime:
    return datetime.now(timezone.utc)


def new_plan_id() -> str:
    return f"plan_{uuid4().hex[:12]}"


@dataclass
class ExecutionPlan:
    id: str
    user_request: str
    goal: str
    steps: list[PlanStep]
    context: PlanContext
    status: PlanStatus = PlanStatus.EXECUTING
    version: int = 1
    replan_count: int = 0
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def first_pending_index(self) -> int | None:
        for index, step in enumerate(self.steps):
            if step.status == StepStatus.PENDING:
                return index
        return None

    def steps_with_status(self, status: StepStatus) -> list[PlanStep]:
        return [s for s in self.steps if s.status == status]

    def touch(self) -> None:
        self.updated_at = _now()


@dataclass
class OrchestratorResult:
    success: bool
    response: str
    step_results: dict[str, StepResult] = field(default_factory=dict)
    error: str | None = None
    plan: ExecutionPlan | None = None
    failure_reason: FailureReason | None = None

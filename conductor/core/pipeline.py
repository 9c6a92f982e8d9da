"""Inbound message pipeline: dedup, rate limit, load context, orchestrate and store the reply."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from conductor.core.ratelimit import InboundDedup, RateLimiter
from conductor.memory.store import ConversationStore, FactStore, UserConfigStore
from conductor.models import InboundRequest
from conductor.orchestrator.engine import Orchestrator
from conductor.orchestrator.models import OrchestratorResult
from conductor.utils.logging import get_logger

log = get_logger(__name__)

RATE_LIMITED_REPLY = "You're sending messages too quickly. Please wait a minute and try again."
HISTORY_FETCH_LIMIT = 100

SkipReason = Literal["rate_limited", "duplicate"]


@dataclass
class HandlerResult:
    success: bool
    response: str | None
    error: str | None = None
    skipped: SkipReason | None = None
    result: OrchestratorResult | None = None


class RequestHandler:
    """Runs one inbound request through the orchestrator and persists both turns."""

    def __init__(
        self,
        orchestrator: Orchestrator,
        conversations: ConversationStore,
        facts: FactStore,
        user_configs: UserConfigStore,
        rate_limiter: RateLimiter,
        dedup: InboundDedup,
    ) -> None:
        self._orchestrator = orchestrator
        self._conversations = conversations
        self._facts = facts
        self._user_configs = user_configs
        self._rate_limiter = rate_limiter
        self._dedup = dedup

    async def handle(self, request: InboundRequest) -> HandlerResult:
        log.info("message_received", sender=request.sender_id, channel=request.channel)

        if request.message_id and not self._dedup.register(request.message_id):
            return HandlerResult(success=True, response=None, skipped="duplicate")

        if not self._rate_limiter.check(request.sender_id):
            return HandlerResult(success=False, response=RATE_LIMITED_REPLY, skipped="rate_limited")

        history = await self._conversations.get_history(request.sender_id, limit=HISTORY_FETCH_LIMIT)
        facts = await self._facts.list_facts(request.sender_id)
        user_config = await self._user_configs.get(request.sender_id)

        await self._conversations.add_message(
            request.sender_id, "user", request.content, channel=request.channel,
        )

        result = await self._orchestrator.orchestrate(
            user_message=request.content,
            history=history,
            facts=facts,
            user_config=user_config,
            sender_id=request.sender_id,
            channel=request.channel,
            message_id=request.message_id or None,
        )

        await self._conversations.add_message(
            request.sender_id, "assistant", result.response, channel=request.channel,
        )
        log.info("message_handled", sender=request.sender_id, success=result.success)
        return HandlerResult(
            success=result.success,
            response=result.response,
            error=result.error,
            result=result,
        )

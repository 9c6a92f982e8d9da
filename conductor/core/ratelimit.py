"""Per-sender rate limiting and inbound-message idempotency.

These two tables are the only state shared between concurrent requests.
Both check-and-insert without awaiting, so on a single event loop each
check is atomic.
"""

from __future__ import annotations

import time
from collections import defaultdict
from typing import Callable

from conductor.config import RateLimitConfig
from conductor.utils.logging import get_logger

log = get_logger(__name__)

Clock = Callable[[], float]


class RateLimiter:
    """Sliding one-minute window of accepted requests per sender."""

    def __init__(self, config: RateLimitConfig, clock: Clock = time.time) -> None:
        self._limit = config.per_minute
        self._clock = clock
        self._log: dict[str, list[float]] = defaultdict(list)
        self._last_prune = clock()

    def check(self, sender_id: str) -> bool:
        """Record a request for ``sender_id``. Returns False when over the limit."""
        now = self._clock()
        if now - self._last_prune >= 60.0:
            self._last_prune = now
            pruned = self.prune()
            if pruned:
                log.debug("rate_limit_pruned", senders=pruned)
        window_start = now - 60.0

        recent = [t for t in self._log[sender_id] if t > window_start]
        if len(recent) >= self._limit:
            self._log[sender_id] = recent
            log.warning("rate_limit_exceeded", sender=sender_id)
            return False

        recent.append(now)
        self._log[sender_id] = recent
        return True

    def prune(self) -> int:
        """Drop senders with no requests in the current window. Returns how many."""
        window_start = self._clock() - 60.0
        stale = [s for s, times in self._log.items() if not times or times[-1] <= window_start]
        for sender in stale:
            del self._log[sender]
        return len(stale)

    def __len__(self) -> int:
        return len(self._log)


class InboundDedup:
    """Remembers inbound message ids so provider redeliveries are processed once."""

    def __init__(self, config: RateLimitConfig, clock: Clock = time.time) -> None:
        self._retention = config.dedup_retention_hours * 3600
        self._clock = clock
        self._seen: dict[str, float] = {}

    def register(self, message_id: str) -> bool:
        """True the first time ``message_id`` is seen, False on a replay."""
        self.prune()
        if message_id in self._seen:
            log.info("duplicate_inbound_message", message_id=message_id)
            return False
        self._seen[message_id] = self._clock()
        return True

    def prune(self) -> int:
        cutoff = self._clock() - self._retention
        expired = [mid for mid, seen_at in self._seen.items() if seen_at < cutoff]
        for mid in expired:
            del self._seen[mid]
        return len(expired)

    def __len__(self) -> int:
        return len(self._seen)

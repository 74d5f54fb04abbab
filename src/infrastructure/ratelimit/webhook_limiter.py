"""
Webhook Rate Limiter - Fixed Window per Client
===============================================

Limits how often one caller may hit the inbound webhook. A caller is the
first X-Forwarded-For address (or X-Real-IP, or the socket peer) plus the
first 50 characters of its User-Agent.

Counters live in process memory and are not shared between workers.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Optional

from limits import parse
from limits.storage import MemoryStorage, Storage
from limits.strategies import FixedWindowRateLimiter

from ...domain.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float

    @property
    def retry_after(self) -> int:
        return max(0, math.ceil(self.reset_at - time.time()))

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_at)),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


def client_id(forwarded_for: str, real_ip: str, peer: str, user_agent: str) -> str:
    ip = forwarded_for.split(",")[0].strip() or real_ip or peer or "unknown"
    return f"{ip}-{(user_agent or 'unknown')[:50]}"


class WebhookRateLimiter:
    """
    Usage:
        limiter = WebhookRateLimiter("10/minute")
        decision = limiter.check(client_id(...))
        if not decision.allowed: ...  # 429
    """

    def __init__(self, limit: str = "10/minute", storage: Optional[Storage] = None):
        try:
            self._item = parse(limit)
        except ValueError as e:
            raise ConfigurationError(f"Invalid WEBHOOK_RATE_LIMIT '{limit}': {e}") from e
        self._limiter = FixedWindowRateLimiter(storage or MemoryStorage())

    @property
    def limit(self) -> int:
        return self._item.amount

    def check(self, client: str) -> RateLimitDecision:
        allowed = self._limiter.hit(self._item, client)
        reset_at, remaining = self._limiter.get_window_stats(self._item, client)
        if not allowed:
            logger.warning(f"Rate limit exceeded for {client}")
        return RateLimitDecision(
            allowed=allowed,
            limit=self._item.amount,
            remaining=remaining,
            reset_at=reset_at,
        )

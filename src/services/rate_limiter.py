"""
Fixed-ceiling quota against the content source, shared by every request.
"""
import logging
from typing import Any, Dict

from core.errors import QuotaExceeded
from services.counter_store import CounterStore

logger = logging.getLogger(__name__)

DEFAULT_KEY = "reddit:rate_limit"


class RateLimiter:
    """
    Counter keyed by a window that starts at the first increment.

    check_budget never blocks: it raises QuotaExceeded as soon as the
    counter has reached the ceiling. consume is called once per unit of
    external work (one listing page, one comment thread).
    """

    def __init__(
        self,
        store: CounterStore,
        max_requests: int = 100,
        window_seconds: int = 3600,
        key: str = DEFAULT_KEY,
    ):
        self.store = store
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.key = key

    async def check_budget(self) -> None:
        used = await self.store.get(self.key)
        if used >= self.max_requests:
            retry_after = await self.store.ttl(self.key)
            logger.warning(
                f"Rate limit reached: {used}/{self.max_requests} (resets in {retry_after}s)"
            )
            raise QuotaExceeded(retry_after=retry_after)

    async def consume(self) -> int:
        used = await self.store.incr(self.key)
        if used == 1:
            await self.store.expire(self.key, self.window_seconds)
        logger.debug(f"Rate budget consumed: {used}/{self.max_requests}")
        return used

    async def usage(self) -> Dict[str, Any]:
        used = await self.store.get(self.key)
        return {
            "used": used,
            "limit": self.max_requests,
            "remaining": max(0, self.max_requests - used),
            "resets_in": await self.store.ttl(self.key),
        }

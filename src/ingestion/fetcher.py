"""
Rate-limited retrieval of posts and comments from a content source
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List

from ingestion.base import CommentItem, ContentItem, ContentSource
from services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

CANONICAL_BASE_URL = "https://www.reddit.com"


class DelayPolicy(ABC):
    """
    Rate-shaping policy consulted before every upstream call.
    """

    @abstractmethod
    async def wait(self) -> None:
        raise NotImplementedError


class FixedDelayPolicy(DelayPolicy):
    """Sleeps a fixed number of seconds before each call."""

    def __init__(self, seconds: float = 2.5):
        self.seconds = seconds

    async def wait(self) -> None:
        await asyncio.sleep(self.seconds)


class NoDelayPolicy(DelayPolicy):
    async def wait(self) -> None:
        return None


def canonical_permalink(community: str, post_id: str) -> str:
    return f"{CANONICAL_BASE_URL}/r/{community}/comments/{post_id}/"


class ContentFetcher:
    """
    Wraps a ContentSource with the shared rate budget and the delay policy.

    Each call checks the budget, waits, performs exactly one upstream
    request and consumes one unit of budget whether or not that request
    succeeded. UpstreamError propagates to the caller.
    """

    def __init__(
        self,
        source: ContentSource,
        rate_limiter: RateLimiter,
        delay_policy: DelayPolicy,
    ):
        self.source = source
        self.rate_limiter = rate_limiter
        self.delay_policy = delay_policy

    async def fetch_posts(self, community: str, limit: int = 100) -> List[ContentItem]:
        await self.rate_limiter.check_budget()
        await self.delay_policy.wait()

        try:
            items = await self.source.list_new_posts(community, limit)
        finally:
            await self.rate_limiter.consume()

        enriched = [self._enrich(item, community) for item in items]
        logger.info(f"Fetched {len(enriched)} posts from {community}")
        return enriched

    async def fetch_comments(self, post_id: str, limit: int = 100) -> List[CommentItem]:
        await self.rate_limiter.check_budget()
        await self.delay_policy.wait()

        try:
            comments = await self.source.list_comments(post_id, limit)
        finally:
            await self.rate_limiter.consume()

        logger.debug(f"Fetched {len(comments)} comments for post {post_id}")
        return comments

    @staticmethod
    def _enrich(item: ContentItem, community: str) -> ContentItem:
        source_community = item.community or community
        return item.model_copy(update={
            "community": source_community,
            "permalink": item.url or canonical_permalink(source_community, item.id),
        })

"""
Keyword suggestions for the request form, backed by an upstream suggest API.
"""
import json
import logging
import random
import re
from typing import Any, Dict, List, Optional

import httpx

from services.counter_store import CounterStore

logger = logging.getLogger(__name__)

DEFAULT_KEYWORDS = [
    "SaaS",
    "AI tools",
    "productivity apps",
    "remote work",
    "startup ideas",
    "marketing automation",
    "e-commerce",
    "content creation",
    "web development",
    "mobile apps",
]

MAX_SUGGESTIONS = 10
_JSONP_RE = re.compile(r"window\.google\.ac\.h\((.+)\)", re.DOTALL)


def parse_suggest_payload(data: Any) -> List[str]:
    """Accepts the JSONP wrapper or a plain ``[query, [suggestions...]]`` array."""
    if isinstance(data, str):
        match = _JSONP_RE.search(data)
        if not match:
            data = json.loads(data)
        else:
            data = json.loads(match.group(1))

    if isinstance(data, list) and len(data) >= 2 and isinstance(data[1], list):
        return [str(s) for s in data[1]][:MAX_SUGGESTIONS]

    return []


class KeywordSuggestionService:

    def __init__(
        self,
        api_url: Optional[str],
        cache: Optional[CounterStore] = None,
        cache_ttl: int = 3600,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_url = api_url
        self.cache = cache
        self.cache_ttl = cache_ttl
        self._client = http_client

    @staticmethod
    def default_suggestions() -> List[Dict[str, Any]]:
        # The suggest API reports no volumes; counts are placeholders for the UI
        return [
            {"keyword": keyword, "results": random.randint(100, 1100)}
            for keyword in DEFAULT_KEYWORDS
        ]

    async def get_suggestions(self, query: str) -> List[Dict[str, Any]]:
        if not query or len(query.strip()) < 2:
            return self.default_suggestions()

        cache_key = f"keyword_suggestions:{query.strip().lower()}"
        if self.cache is not None:
            try:
                cached = await self.cache.get_json(cache_key)
                if cached:
                    return cached
            except Exception as e:
                logger.error(f"Keyword cache read error: {e}")

        try:
            keywords = await self._fetch(query.strip())
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error fetching keyword suggestions: {e}")
            return self.default_suggestions()

        suggestions = [
            {"keyword": keyword, "results": random.randint(500, 5500)}
            for keyword in keywords
        ]

        if suggestions and self.cache is not None:
            try:
                await self.cache.set_json(cache_key, suggestions, ttl_seconds=self.cache_ttl)
            except Exception as e:
                logger.error(f"Keyword cache write error: {e}")

        return suggestions

    async def _fetch(self, query: str) -> List[str]:
        if not self.api_url:
            raise ValueError("KEYWORD_SUGGEST_URL not configured")

        params = {"client": "firefox", "q": query}
        if self._client is not None:
            resp = await self._client.get(self.api_url, params=params)
        else:
            async with httpx.AsyncClient(timeout=5.0) as client:
                resp = await client.get(self.api_url, params=params)

        resp.raise_for_status()
        return parse_suggest_payload(resp.text)

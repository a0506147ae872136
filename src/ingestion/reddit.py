import logging
import time
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from core.errors import UpstreamError
from ingestion.base import CommentItem, ContentItem, ContentSource
from services.counter_store import CounterStore

logger = logging.getLogger(__name__)

PUBLIC_BASE_URL = "https://www.reddit.com"
TOKEN_CACHE_KEY = "reddit:access_token"
TOKEN_REFRESH_MARGIN = 60


def parse_post(data: Dict[str, Any]) -> ContentItem:
    """Map a listing child's ``data`` onto a ContentItem."""
    return ContentItem(
        id=str(data["id"]),
        title=data.get("title") or "",
        body=data.get("selftext") or "",
        author=data.get("author") or "",
        distinguished=data.get("distinguished"),
        community=data.get("subreddit") or "",
        url=data.get("url") or None,
        score=int(data.get("score") or 0),
        num_comments=int(data.get("num_comments") or 0),
        created_utc=data.get("created_utc"),
    )


def parse_comment(data: Dict[str, Any], post_id: str) -> CommentItem:
    return CommentItem(
        id=str(data["id"]),
        post_id=post_id,
        body=data.get("body") or "",
        author=data.get("author") or "",
        score=int(data.get("score") or 0),
        created_utc=data.get("created_utc"),
    )


def parse_listing(payload: Any) -> List[ContentItem]:
    try:
        children = payload["data"]["children"]
    except (KeyError, TypeError):
        raise UpstreamError(None, "Malformed listing payload")

    items: List[ContentItem] = []
    for child in children:
        try:
            items.append(parse_post(child["data"]))
        except (KeyError, TypeError, ValueError, PydanticValidationError) as e:
            logger.warning(f"Skipping malformed post: {e}")
    return items


def parse_comment_thread(payload: Any, post_id: str) -> List[CommentItem]:
    # [post listing, comment listing]
    if not isinstance(payload, list) or len(payload) < 2:
        raise UpstreamError(None, "Malformed comment thread payload")

    try:
        children = payload[1]["data"]["children"]
    except (KeyError, TypeError):
        raise UpstreamError(None, "Malformed comment thread payload")

    comments: List[CommentItem] = []
    for child in children:
        try:
            # "more" stubs are not comments
            if child.get("kind") != "t1":
                continue
            comments.append(parse_comment(child["data"], post_id))
        except (AttributeError, KeyError, TypeError, ValueError, PydanticValidationError) as e:
            logger.warning(f"Skipping malformed comment on {post_id}: {e}")
    return comments


class RedditSource(ContentSource):
    """
    Reddit API client. Uses OAuth client credentials when configured and
    the public JSON endpoints otherwise.
    """

    name = "reddit"

    def __init__(
        self,
        *,
        user_agent: str,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        api_base_url: str = "https://oauth.reddit.com",
        auth_url: str = "https://www.reddit.com/api/v1/access_token",
        search_url: str = "https://www.reddit.com/api/search_reddit_names.json",
        cache: Optional[CounterStore] = None,
        search_cache_ttl: int = 7 * 24 * 60 * 60,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.user_agent = user_agent
        self.client_id = client_id
        self.client_secret = client_secret
        self.auth_url = auth_url
        self.search_url = search_url
        self.cache = cache
        self.search_cache_ttl = search_cache_ttl
        self.base_url = (api_base_url if self.has_credentials else PUBLIC_BASE_URL).rstrip("/")

        self._client = http_client or httpx.AsyncClient(
            timeout=30, headers={"User-Agent": user_agent}
        )
        self._token: Optional[str] = None
        self._token_expires_at: float = 0.0

    @property
    def has_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)

    async def _access_token(self) -> Optional[str]:
        if not self.has_credentials:
            return None

        if self._token and time.time() < self._token_expires_at:
            return self._token

        if self.cache is not None:
            try:
                cached = await self.cache.get_json(TOKEN_CACHE_KEY)
            except Exception as e:
                logger.error(f"Token cache read error: {e}")
                cached = None
            if cached and cached.get("expires_at", 0) > time.time():
                self._token = cached["access_token"]
                self._token_expires_at = cached["expires_at"]
                return self._token

        try:
            resp = await self._client.post(
                self.auth_url,
                auth=(self.client_id, self.client_secret),
                data={"grant_type": "client_credentials"},
            )
        except httpx.HTTPError as e:
            raise UpstreamError(None, f"Reddit auth request failed: {e}") from e

        if resp.status_code != 200:
            raise UpstreamError(resp.status_code, f"Reddit auth error: {resp.status_code}")

        try:
            data = resp.json()
            token = data["access_token"]
            expires_in = int(data.get("expires_in", 3600))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise UpstreamError(resp.status_code, "Reddit auth returned no access token") from e

        self._token = token
        self._token_expires_at = time.time() + expires_in - TOKEN_REFRESH_MARGIN

        if self.cache is not None:
            try:
                await self.cache.set_json(
                    TOKEN_CACHE_KEY,
                    {"access_token": self._token, "expires_at": self._token_expires_at},
                    ttl_seconds=max(1, expires_in - TOKEN_REFRESH_MARGIN),
                )
            except Exception as e:
                logger.error(f"Token cache write error: {e}")

        logger.info("Obtained Reddit access token")
        return self._token

    async def _get_json(self, path: str, params: Dict[str, Any]) -> Any:
        headers = {}
        token = await self._access_token()
        if token:
            headers["Authorization"] = f"bearer {token}"

        url = f"{self.base_url}{path}"
        try:
            resp = await self._client.get(url, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise UpstreamError(None, f"Reddit request failed: {e}") from e

        if resp.status_code != 200:
            raise UpstreamError(resp.status_code, f"Reddit API error: {resp.status_code}")

        try:
            return resp.json()
        except ValueError as e:
            raise UpstreamError(resp.status_code, "Reddit API returned invalid JSON") from e

    async def list_new_posts(self, community: str, limit: int) -> List[ContentItem]:
        payload = await self._get_json(f"/r/{community}/new.json", {"limit": limit})
        return parse_listing(payload)

    async def list_comments(self, post_id: str, limit: int) -> List[CommentItem]:
        payload = await self._get_json(f"/comments/{post_id}.json", {"limit": limit})
        return parse_comment_thread(payload, post_id)

    async def search_communities(self, query: str) -> List[Dict[str, str]]:
        if not query or len(query.strip()) < 2:
            return []

        clean_query = query.strip().lower()
        if clean_query.startswith("r/"):
            clean_query = clean_query[2:]
        cache_key = f"reddit:search:{clean_query}"

        if self.cache is not None:
            try:
                cached = await self.cache.get_json(cache_key)
                if isinstance(cached, list):
                    logger.info(f"Cache hit for query: {clean_query}")
                    return cached
            except Exception as e:
                # Continue to API call if cache fails
                logger.error(f"Search cache read error: {e}")

        try:
            resp = await self._client.get(
                self.search_url,
                params={"query": clean_query, "include_over_18": "false"},
            )
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error fetching community suggestions: {e}")
            return []

        names = data.get("names") if isinstance(data, dict) else data
        if not isinstance(names, list):
            return []

        suggestions = [
            {"name": str(name).lower(), "display_name": str(name)}
            for name in names
        ]

        if suggestions and self.cache is not None:
            try:
                await self.cache.set_json(cache_key, suggestions, ttl_seconds=self.search_cache_ttl)
                logger.info(f"Cached search results for query: {clean_query}")
            except Exception as e:
                logger.error(f"Search cache write error: {e}")

        return suggestions

    async def close(self) -> None:
        await self._client.aclose()

"""
Unit tests for the Reddit content source using a mocked transport
"""

import httpx
import pytest

from core.errors import UpstreamError
from ingestion.reddit import (
    TOKEN_CACHE_KEY,
    RedditSource,
    parse_comment_thread,
    parse_listing,
)
from services.counter_store import InMemoryCounterStore

LISTING = {
    "kind": "Listing",
    "data": {
        "children": [
            {"kind": "t3", "data": {
                "id": "abc", "title": "Looking for a CRM", "selftext": "Any SaaS tips?",
                "author": "founder", "subreddit": "startups", "score": 12,
                "num_comments": 4, "created_utc": 1700000000.0, "distinguished": None,
            }},
            {"kind": "t3", "data": {"title": "missing id"}},
        ]
    },
}

THREAD = [
    {"kind": "Listing", "data": {"children": []}},
    {"kind": "Listing", "data": {"children": [
        {"kind": "t1", "data": {"id": "c1", "body": "Try HubSpot", "author": "u1", "score": 3}},
        {"kind": "more", "data": {"id": "m1", "children": ["c9"]}},
        {"kind": "t1", "data": {"id": "c2", "body": "We use Pipedrive", "author": "u2"}},
    ]}},
]


def make_source(handler, **kwargs) -> RedditSource:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RedditSource(user_agent="test-agent", http_client=client, **kwargs)


class TestParsers:
    """Test listing and comment thread parsing"""

    def test_listing_skips_malformed_children(self):
        posts = parse_listing(LISTING)

        assert len(posts) == 1
        assert posts[0].id == "abc"
        assert posts[0].body == "Any SaaS tips?"
        assert posts[0].community == "startups"

    def test_malformed_listing_raises(self):
        with pytest.raises(UpstreamError):
            parse_listing({"error": 404})

    def test_thread_keeps_only_comments(self):
        comments = parse_comment_thread(THREAD, "abc")

        assert [c.id for c in comments] == ["c1", "c2"]
        assert all(c.post_id == "abc" for c in comments)

    def test_thread_skips_non_object_children(self):
        thread = [
            THREAD[0],
            {"kind": "Listing", "data": {"children": [
                "garbage",
                None,
                {"kind": "t1", "data": {"id": "c1", "body": "Try HubSpot"}},
            ]}},
        ]

        comments = parse_comment_thread(thread, "abc")

        assert [c.id for c in comments] == ["c1"]

    def test_thread_requires_two_listings(self):
        with pytest.raises(UpstreamError):
            parse_comment_thread([{"data": {"children": []}}], "abc")


class TestRedditSource:
    """Test HTTP behavior of the source"""

    @pytest.mark.asyncio
    async def test_public_endpoint_without_credentials(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=LISTING)

        source = make_source(handler)
        posts = await source.list_new_posts("startups", 100)
        await source.close()

        assert [p.id for p in posts] == ["abc"]
        assert seen[0].url.host == "www.reddit.com"
        assert seen[0].url.path == "/r/startups/new.json"
        assert seen[0].url.params["limit"] == "100"
        assert "authorization" not in seen[0].headers

    @pytest.mark.asyncio
    async def test_non_success_status_raises(self):
        source = make_source(lambda request: httpx.Response(403, json={"message": "Forbidden"}))

        with pytest.raises(UpstreamError) as exc_info:
            await source.list_new_posts("private", 100)

        assert exc_info.value.status == 403

    @pytest.mark.asyncio
    async def test_transport_error_raises_upstream_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        source = make_source(handler)

        with pytest.raises(UpstreamError) as exc_info:
            await source.list_comments("abc", 100)

        assert exc_info.value.status is None

    @pytest.mark.asyncio
    async def test_comments_endpoint(self):
        seen = []

        def handler(request):
            seen.append(request.url.path)
            return httpx.Response(200, json=THREAD)

        source = make_source(handler)
        comments = await source.list_comments("abc", 100)

        assert seen == ["/comments/abc.json"]
        assert [c.body for c in comments] == ["Try HubSpot", "We use Pipedrive"]

    @pytest.mark.asyncio
    async def test_oauth_token_fetched_once_and_cached(self):
        auth_calls = []
        api_headers = []

        def handler(request):
            if request.url.path == "/api/v1/access_token":
                auth_calls.append(request)
                return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
            api_headers.append(request.headers.get("authorization"))
            return httpx.Response(200, json=LISTING)

        cache = InMemoryCounterStore()
        source = make_source(handler, client_id="id", client_secret="secret", cache=cache)

        await source.list_new_posts("startups", 10)
        await source.list_new_posts("saas", 10)

        assert len(auth_calls) == 1
        assert api_headers == ["bearer tok", "bearer tok"]
        cached = await cache.get_json(TOKEN_CACHE_KEY)
        assert cached["access_token"] == "tok"

    @pytest.mark.asyncio
    async def test_cached_token_reused_by_new_instance(self):
        cache = InMemoryCounterStore()
        auth_calls = []

        def handler(request):
            if request.url.path == "/api/v1/access_token":
                auth_calls.append(request)
                return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
            return httpx.Response(200, json=LISTING)

        first = make_source(handler, client_id="id", client_secret="secret", cache=cache)
        await first.list_new_posts("startups", 10)
        second = make_source(handler, client_id="id", client_secret="secret", cache=cache)
        await second.list_new_posts("startups", 10)

        assert len(auth_calls) == 1

    @pytest.mark.asyncio
    async def test_auth_failure_raises(self):
        source = make_source(
            lambda request: httpx.Response(401, json={"error": "invalid_grant"}),
            client_id="id", client_secret="bad",
        )

        with pytest.raises(UpstreamError) as exc_info:
            await source.list_new_posts("startups", 10)

        assert exc_info.value.status == 401

    @pytest.mark.asyncio
    async def test_auth_success_without_token_raises_upstream_error(self):
        def handler(request):
            if request.url.path == "/api/v1/access_token":
                return httpx.Response(200, json={"error": "invalid_grant"})
            raise AssertionError("listing must not be requested without a token")

        source = make_source(handler, client_id="id", client_secret="secret")

        with pytest.raises(UpstreamError) as exc_info:
            await source.list_new_posts("startups", 10)

        assert exc_info.value.status == 200

    @pytest.mark.asyncio
    async def test_auth_non_json_body_raises_upstream_error(self):
        source = make_source(
            lambda request: httpx.Response(200, text="<html>maintenance</html>"),
            client_id="id", client_secret="secret",
        )

        with pytest.raises(UpstreamError):
            await source.list_new_posts("startups", 10)

    @pytest.mark.asyncio
    async def test_search_communities_strips_prefix_and_caches(self):
        queries = []

        def handler(request):
            queries.append(request.url.params["query"])
            return httpx.Response(200, json={"names": ["Startups", "StartupIdeas"]})

        cache = InMemoryCounterStore()
        source = make_source(handler, cache=cache)

        first = await source.search_communities("r/Start")
        second = await source.search_communities("start")

        assert first == [
            {"name": "startups", "display_name": "Startups"},
            {"name": "startupideas", "display_name": "StartupIdeas"},
        ]
        assert second == first
        assert queries == ["start"]

    @pytest.mark.asyncio
    async def test_search_short_query_skips_request(self):
        def handler(request):
            raise AssertionError("no request expected")

        source = make_source(handler)

        assert await source.search_communities("a") == []

    @pytest.mark.asyncio
    async def test_search_error_returns_empty(self):
        source = make_source(lambda request: httpx.Response(500, text="oops"))

        assert await source.search_communities("startups") == []

"""
Tests for the HTTP API using the Quart test client
"""
import pytest
import pytest_asyncio

from api.app import create_app
from conftest import FakeClassifierService, FakeSource, make_post
from ingestion.fetcher import NoDelayPolicy
from services.config import Config
from services.counter_store import InMemoryCounterStore
from services.tasks import BackgroundTaskRunner
from workflows.pipeline_factory import create_services


class SearchableSource(FakeSource):
    async def search_communities(self, query):
        return [{"name": "startups", "display_name": "Startups"}]


@pytest_asyncio.fixture
async def services(tmp_path):
    source = SearchableSource(posts={"startups": [
        make_post("p1", "Looking for a SaaS to manage invoices"),
        make_post("p2", "Show off your desk setup"),
    ]})
    config = Config(DATABASE_PATH=str(tmp_path / "api.db"), RATE_LIMIT_MAX_REQUESTS=5)
    services = create_services(
        config,
        source=source,
        llm=FakeClassifierService(),
        store=InMemoryCounterStore(),
        delay_policy=NoDelayPolicy(),
        runner=BackgroundTaskRunner(),
    )
    yield services
    await services.close()


@pytest.fixture
def client(services):
    return create_app(services).test_client()


class TestAnalysisEndpoints:
    """Test submission and status polling"""

    @pytest.mark.asyncio
    async def test_submit_and_poll_until_completed(self, client, services):
        response = await client.post(
            "/analysis/analyze", json={"targets": ["startups"], "keywords": ["SaaS"]}
        )

        assert response.status_code == 202
        request_id = (await response.get_json())["request_id"]

        await services.runner.wait_for(request_id, timeout=5)
        status_response = await client.get(f"/status/{request_id}")
        body = await status_response.get_json()

        assert status_response.status_code == 200
        assert body["status"] == "completed"
        assert body["progress"] == 100
        assert body["report"]["total_posts"] == 2
        assert body["report"]["filtered_posts"] == 1

    @pytest.mark.asyncio
    async def test_subreddits_alias_accepted(self, client, services):
        response = await client.post(
            "/analysis/analyze", json={"subreddits": ["startups"], "keywords": ["SaaS"]}
        )

        assert response.status_code == 202
        await services.runner.wait_for((await response.get_json())["request_id"], timeout=5)

    @pytest.mark.asyncio
    async def test_invalid_request_rejected(self, client):
        response = await client.post(
            "/analysis/analyze", json={"targets": ["a", "b", "c", "d"], "keywords": ["SaaS"]}
        )
        body = await response.get_json()

        assert response.status_code == 400
        assert body["type"] == "validation_error"

    @pytest.mark.asyncio
    async def test_missing_fields_rejected(self, client):
        response = await client.post("/analysis/analyze", json={"targets": ["startups"]})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_quota_exhausted_returns_429(self, client, services):
        limiter = services.orchestrator.rate_limiter
        for _ in range(limiter.max_requests):
            await limiter.consume()

        response = await client.post(
            "/analysis/analyze", json={"targets": ["startups"], "keywords": ["SaaS"]}
        )
        body = await response.get_json()

        assert response.status_code == 429
        assert body["type"] == "quota_exceeded"
        assert int(response.headers["Retry-After"]) > 0
        assert await services.tracker.list_recent() == []

    @pytest.mark.asyncio
    async def test_unknown_status_returns_404(self, client):
        response = await client.get("/status/does-not-exist")

        assert response.status_code == 404
        assert (await response.get_json()) == {"error": "Status not found"}

    @pytest.mark.asyncio
    async def test_recent_statuses_listed(self, client, services):
        await services.tracker.create_request(["startups"], ["SaaS"])

        response = await client.get("/status")
        body = await response.get_json()

        assert response.status_code == 200
        assert len(body) == 1
        assert body[0]["status"] == "pending"


class TestSupportEndpoints:
    """Test health and form helper endpoints"""

    @pytest.mark.asyncio
    async def test_health_reports_rate_budget(self, client):
        response = await client.get("/health")
        body = await response.get_json()

        assert body["status"] == "ok"
        assert body["rate_limit"]["limit"] == 5
        assert body["rate_limit"]["used"] == 0

    @pytest.mark.asyncio
    async def test_community_search(self, client):
        response = await client.get("/reddit/subreddits/search?q=start")

        assert (await response.get_json()) == {
            "suggestions": [{"name": "startups", "display_name": "Startups"}]
        }

    @pytest.mark.asyncio
    async def test_community_search_short_query(self, client):
        response = await client.get("/reddit/subreddits/search?q=s")

        assert (await response.get_json()) == {"suggestions": []}

    @pytest.mark.asyncio
    async def test_keyword_suggestions_fall_back_to_defaults(self, client):
        response = await client.get("/keyword-suggestions?q=saas")
        body = await response.get_json()

        assert len(body["suggestions"]) == 10
        assert body["suggestions"][0]["keyword"] == "SaaS"

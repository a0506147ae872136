"""
Shared fixtures and fakes for the analysis pipeline tests
"""
import json
from typing import Callable, Dict, List, Optional

import pytest

from core.errors import ClassifierCallError, UpstreamError
from ingestion.base import CommentItem, ContentItem, ContentSource
from ingestion.fetcher import ContentFetcher, NoDelayPolicy
from processing.classifier import IntentClassifier
from processing.prefilter import RelevanceFilter
from services.counter_store import InMemoryCounterStore
from services.database import Database
from services.llm import ClassifierResponse, TokenUsage
from services.rate_limiter import RateLimiter
from services.status_tracker import StatusTracker
from services.tasks import BackgroundTaskRunner
from workflows.analysis import AnalysisOrchestrator


def classifier_json(
    mentioned: bool = True,
    keywords: Optional[List[str]] = None,
    snippet: str = "looking to buy",
    confidence: float = 0.9,
    analysis: str = "clear purchase intent",
) -> str:
    return json.dumps({
        "mentioned": mentioned,
        "mentionedKeywords": keywords if keywords is not None else ["SaaS"],
        "snippet": snippet,
        "confidence": confidence,
        "analysis": analysis,
    })


def make_post(post_id: str, title: str, body: str = "", author: str = "someone",
              community: str = "startups", **kwargs) -> ContentItem:
    return ContentItem(id=post_id, title=title, body=body, author=author,
                       community=community, **kwargs)


class FakeSource(ContentSource):
    """In-memory content source recording every call."""

    name = "fake"

    def __init__(
        self,
        posts: Optional[Dict[str, List[ContentItem]]] = None,
        comments: Optional[Dict[str, List[CommentItem]]] = None,
        failing: Optional[Dict[str, int]] = None,
    ):
        self.posts = posts or {}
        self.comments = comments or {}
        self.failing = failing or {}
        self.calls: List[tuple] = []

    async def list_new_posts(self, community: str, limit: int) -> List[ContentItem]:
        self.calls.append(("posts", community, limit))
        if community in self.failing:
            raise UpstreamError(self.failing[community])
        return list(self.posts.get(community, []))[:limit]

    async def list_comments(self, post_id: str, limit: int) -> List[CommentItem]:
        self.calls.append(("comments", post_id, limit))
        if post_id in self.failing:
            raise UpstreamError(self.failing[post_id])
        return list(self.comments.get(post_id, []))


class FakeClassifierService:
    """Stands in for OllamaClient.generate."""

    def __init__(self, responder: Optional[Callable[[str], str]] = None,
                 usage: Optional[TokenUsage] = None):
        self.model = "fake-model"
        self.responder = responder or (lambda prompt: classifier_json())
        self.usage = usage
        self.prompts: List[str] = []

    async def generate(self, prompt: str) -> ClassifierResponse:
        self.prompts.append(prompt)
        text = self.responder(prompt)
        if isinstance(text, Exception):
            raise text
        return ClassifierResponse(text=text, usage=self.usage)


def failing_responder(message: str = "connection refused"):
    def respond(prompt: str):
        return ClassifierCallError(message)
    return respond


@pytest.fixture
def store():
    return InMemoryCounterStore()


@pytest.fixture
def rate_limiter(store):
    return RateLimiter(store, max_requests=100, window_seconds=3600)


@pytest.fixture
def database(tmp_path):
    return Database(str(tmp_path / "test.db"))


@pytest.fixture
def tracker(database):
    return StatusTracker(database)


@pytest.fixture
def runner():
    return BackgroundTaskRunner()


@pytest.fixture
def llm():
    return FakeClassifierService()


@pytest.fixture
def build_orchestrator(rate_limiter, tracker, runner, llm):
    """Factory wiring an orchestrator around a given source."""

    def build(source: ContentSource, classifier_service=None, analytics=None) -> AnalysisOrchestrator:
        return AnalysisOrchestrator(
            fetcher=ContentFetcher(source, rate_limiter, NoDelayPolicy()),
            relevance_filter=RelevanceFilter(),
            classifier=IntentClassifier(classifier_service or llm, analytics),
            tracker=tracker,
            rate_limiter=rate_limiter,
            analytics=analytics,
            runner=runner,
        )

    return build

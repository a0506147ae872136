"""
Pipeline Factory - Wires the analysis pipeline and its collaborators from configuration.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from ingestion.base import ContentSource
from ingestion.fetcher import ContentFetcher, FixedDelayPolicy, NoDelayPolicy, DelayPolicy
from ingestion.reddit import RedditSource
from processing.classifier import IntentClassifier
from processing.prefilter import RelevanceFilter
from services.analytics import AnalyticsRecorder
from services.config import Config, fetch_delay_enabled
from services.counter_store import CounterStore, create_counter_store
from services.database import Database
from services.keyword_suggestions import KeywordSuggestionService
from services.llm import ClassifierService, OllamaClient
from services.rate_limiter import RateLimiter
from services.status_tracker import StatusTracker
from services.tasks import BackgroundTaskRunner, task_runner
from workflows.analysis import AnalysisOrchestrator, PipelineLimits

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything the API and CLI need, built once per process."""
    config: Config
    store: CounterStore
    source: ContentSource
    tracker: StatusTracker
    analytics: AnalyticsRecorder
    orchestrator: AnalysisOrchestrator
    keyword_suggestions: KeywordSuggestionService
    runner: BackgroundTaskRunner

    async def close(self) -> None:
        await self.runner.drain()
        await self.source.close()
        await self.store.close()


def limits_from_config(config: Config) -> PipelineLimits:
    return PipelineLimits(
        max_targets=config.MAX_TARGETS,
        max_keywords=config.MAX_KEYWORDS,
        max_keyword_length=config.MAX_KEYWORD_LENGTH,
        posts_per_community=config.POSTS_PER_COMMUNITY,
        comments_per_post=config.COMMENTS_PER_POST,
    )


def create_services(
    config: Config,
    *,
    source: Optional[ContentSource] = None,
    llm: Optional[ClassifierService] = None,
    store: Optional[CounterStore] = None,
    delay_policy: Optional[DelayPolicy] = None,
    runner: Optional[BackgroundTaskRunner] = None,
) -> Services:
    """
    Build the pipeline from config. Collaborators can be passed in to
    replace the network-backed defaults.
    """
    runner = runner or task_runner
    store = store or create_counter_store(config.REDIS_URL)

    source = source or RedditSource(
        user_agent=config.REDDIT_USER_AGENT,
        client_id=config.REDDIT_CLIENT_ID,
        client_secret=config.REDDIT_CLIENT_SECRET,
        api_base_url=config.REDDIT_API_BASE_URL,
        auth_url=config.REDDIT_AUTH_URL,
        search_url=config.REDDIT_SEARCH_URL,
        cache=store,
        search_cache_ttl=config.SEARCH_CACHE_TTL_SECONDS,
    )

    llm = llm or OllamaClient(
        base_url=config.OLLAMA_BASE_URL,
        model=config.OLLAMA_MODEL,
        timeout=config.OLLAMA_TIMEOUT,
    )

    if delay_policy is None:
        if fetch_delay_enabled(config):
            delay_policy = FixedDelayPolicy(config.FETCH_DELAY_SECONDS)
        else:
            delay_policy = NoDelayPolicy()

    db = Database(config.DATABASE_PATH)
    tracker = StatusTracker(db)
    analytics = AnalyticsRecorder(db, runner)

    rate_limiter = RateLimiter(
        store,
        max_requests=config.RATE_LIMIT_MAX_REQUESTS,
        window_seconds=config.RATE_LIMIT_WINDOW_SECONDS,
    )

    orchestrator = AnalysisOrchestrator(
        fetcher=ContentFetcher(source, rate_limiter, delay_policy),
        relevance_filter=RelevanceFilter(),
        classifier=IntentClassifier(llm, analytics, max_text_length=config.MAX_TEXT_LENGTH),
        tracker=tracker,
        rate_limiter=rate_limiter,
        analytics=analytics,
        runner=runner,
        limits=limits_from_config(config),
    )

    keyword_suggestions = KeywordSuggestionService(
        config.KEYWORD_SUGGEST_URL,
        cache=store,
        cache_ttl=config.KEYWORD_CACHE_TTL_SECONDS,
    )

    logger.info(
        f"Pipeline ready (model={config.OLLAMA_MODEL}, "
        f"rate limit={config.RATE_LIMIT_MAX_REQUESTS}/{config.RATE_LIMIT_WINDOW_SECONDS}s)"
    )

    return Services(
        config=config,
        store=store,
        source=source,
        tracker=tracker,
        analytics=analytics,
        orchestrator=orchestrator,
        keyword_suggestions=keyword_suggestions,
        runner=runner,
    )

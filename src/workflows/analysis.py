# src/workflows/analysis.py
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from core.entities import ClassificationInput, CommentsClassificationInput
from core.errors import QuotaExceeded, UpstreamError, ValidationError
from core.schemas import AnalysisReport, AnalysisRequest
from ingestion.base import ContentItem
from ingestion.fetcher import ContentFetcher
from processing.classifier import IntentClassifier
from processing.prefilter import RelevanceFilter
from services.analytics import AnalyticsRecorder
from services.rate_limiter import RateLimiter
from services.status_tracker import StatusTracker
from services.tasks import BackgroundTaskRunner, task_runner
from workflows.base import AnalysisPipeline

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineLimits:
    max_targets: int = 3
    max_keywords: int = 5
    max_keyword_length: int = 100
    posts_per_community: int = 100
    comments_per_post: int = 100


def validate_request(
    targets: Sequence[str],
    keywords: Sequence[str],
    limits: PipelineLimits = PipelineLimits(),
) -> AnalysisRequest:
    """
    Check bounds and shape of a request. Raises ValidationError.
    """
    if not isinstance(targets, (list, tuple)) or not isinstance(keywords, (list, tuple)):
        raise ValidationError("targets and keywords must be lists of strings")

    if not 1 <= len(targets) <= limits.max_targets:
        raise ValidationError(f"targets must contain between 1 and {limits.max_targets} entries")

    if not 1 <= len(keywords) <= limits.max_keywords:
        raise ValidationError(f"keywords must contain between 1 and {limits.max_keywords} entries")

    for value in (*targets, *keywords):
        if not isinstance(value, str) or not value.strip():
            raise ValidationError("targets and keywords must be non-empty strings")

    for keyword in keywords:
        if len(keyword.strip()) > limits.max_keyword_length:
            raise ValidationError(
                f"keywords must be at most {limits.max_keyword_length} characters"
            )

    return AnalysisRequest(
        targets=[t.strip() for t in targets],
        keywords=[k.strip() for k in keywords],
    )


def _error_message(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


class AnalysisOrchestrator(AnalysisPipeline):
    """
    Runs one request through fetch -> filter -> classify posts ->
    fetch and classify comments, advancing its status record as it goes.
    """

    name = "buying_intent"

    def __init__(
        self,
        *,
        fetcher: ContentFetcher,
        relevance_filter: RelevanceFilter,
        classifier: IntentClassifier,
        tracker: StatusTracker,
        rate_limiter: RateLimiter,
        analytics: Optional[AnalyticsRecorder] = None,
        runner: Optional[BackgroundTaskRunner] = None,
        limits: PipelineLimits = PipelineLimits(),
    ):
        self.fetcher = fetcher
        self.relevance_filter = relevance_filter
        self.classifier = classifier
        self.tracker = tracker
        self.rate_limiter = rate_limiter
        self.analytics = analytics
        self.runner = runner or task_runner
        self.limits = limits

    def validate(self, targets: Sequence[str], keywords: Sequence[str]) -> AnalysisRequest:
        return validate_request(targets, keywords, self.limits)

    async def submit(
        self,
        targets: Sequence[str],
        keywords: Sequence[str],
        source_meta: Optional[str] = None,
    ) -> str:
        """
        Validate, check the rate budget, create the status record and start
        the pipeline in the background. Returns the request id immediately.
        """
        request = self.validate(targets, keywords)
        await self.rate_limiter.check_budget()

        status = await self.tracker.create_request(request.targets, request.keywords)
        self.runner.run_async(self.run, status.id, request, source_meta, task_id=status.id)
        return status.id

    async def run(
        self,
        request_id: str,
        request: AnalysisRequest,
        source_meta: Optional[str] = None,
    ) -> Optional[AnalysisReport]:
        """
        Execute the pipeline; any unhandled error marks the request failed.
        """
        try:
            return await self._execute(request_id, request, source_meta)
        except Exception as e:
            logger.exception(f"Pipeline failed for request {request_id}: {e}")
            try:
                await self.tracker.mark_failed(request_id, _error_message(e))
            except Exception as mark_error:
                logger.error(f"Could not record failure of request {request_id}: {mark_error}")
            return None

    async def _execute(
        self,
        request_id: str,
        request: AnalysisRequest,
        source_meta: Optional[str],
    ) -> AnalysisReport:
        await self.tracker.update_status(request_id, "in_progress", "Fetching posts", 5)

        posts = await self._fetch_posts(request_id, request.targets)

        await self.tracker.update_status(
            request_id, "in_progress", f"Filtering {len(posts)} posts", 40
        )
        filtered = self.relevance_filter.apply(posts, request.keywords)

        await self.tracker.update_status(
            request_id, "in_progress", f"Analyzing {len(filtered)} posts", 45
        )
        post_results = await self.classifier.classify_batch([
            ClassificationInput(
                text=post.text,
                keywords=list(request.keywords),
                post_id=post.id,
                url=post.permalink,
            )
            for post in filtered
        ])
        high_intent_posts = sum(1 for r in post_results if r.mentioned)

        await self.tracker.update_status(request_id, "in_progress", "Fetching comments", 60)
        comment_inputs = await self._collect_comments(request_id, filtered, request.keywords)

        await self.tracker.update_status(
            request_id, "in_progress", f"Analyzing comments of {len(comment_inputs)} posts", 85
        )
        comment_results = await self.classifier.classify_comments_batch(comment_inputs)
        high_intent_comments = sum(1 for r in comment_results if r.mentioned)

        report = AnalysisReport(
            targets=list(request.targets),
            keywords=list(request.keywords),
            total_posts=len(posts),
            filtered_posts=len(filtered),
            post_results=post_results,
            comment_results=comment_results,
            high_intent_posts=high_intent_posts,
            high_intent_comments=high_intent_comments,
            completed_at=datetime.now(timezone.utc),
        )

        await self.tracker.mark_completed(request_id, report)
        logger.info(
            f"Request {request_id} done: {len(posts)} posts, {len(filtered)} relevant, "
            f"{high_intent_posts} post matches, {high_intent_comments} comment matches"
        )

        self._record_request(source_meta, request, high_intent_posts, high_intent_comments)
        return report

    async def _fetch_posts(self, request_id: str, targets: Sequence[str]) -> List[ContentItem]:
        posts: List[ContentItem] = []

        for i, target in enumerate(targets):
            await self.tracker.update_status(
                request_id,
                "in_progress",
                f"Fetching posts from {target}",
                10 + int(30 * i / len(targets)),
            )
            try:
                posts.extend(
                    await self.fetcher.fetch_posts(target, self.limits.posts_per_community)
                )
            except UpstreamError as e:
                logger.warning(f"Skipping community {target}: {e}")

        logger.info(f"Fetched {len(posts)} posts from {len(targets)} communities")
        return posts

    async def _collect_comments(
        self,
        request_id: str,
        posts: Sequence[ContentItem],
        keywords: Sequence[str],
    ) -> List[CommentsClassificationInput]:
        inputs: List[CommentsClassificationInput] = []

        for i, post in enumerate(posts):
            if i:
                await self.tracker.update_status(
                    request_id,
                    "in_progress",
                    f"Fetching comments ({i + 1}/{len(posts)})",
                    60 + int(25 * i / len(posts)),
                )
            try:
                comments = await self.fetcher.fetch_comments(post.id, self.limits.comments_per_post)
            except UpstreamError as e:
                logger.warning(f"Skipping comments of post {post.id}: {e}")
                continue
            except QuotaExceeded:
                logger.warning(
                    f"Rate budget exhausted after {i} of {len(posts)} comment threads; "
                    "analyzing what was fetched"
                )
                break

            bodies = [c.body for c in comments if c.body.strip()]
            if bodies:
                inputs.append(CommentsClassificationInput(
                    post_id=post.id,
                    comments=bodies,
                    keywords=list(keywords),
                ))

        return inputs

    def _record_request(
        self,
        source_meta: Optional[str],
        request: AnalysisRequest,
        post_matches: int,
        comment_matches: int,
    ) -> None:
        if self.analytics is None:
            return
        try:
            self.analytics.record_content_request(
                source_meta, list(request.targets), list(request.keywords),
                post_matches, comment_matches,
            )
        except Exception as e:
            logger.error(f"Failed to record content request: {e}")

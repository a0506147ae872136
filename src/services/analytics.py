"""
Best-effort usage analytics: classifier token usage and content requests.
Writes are scheduled on the background runner and never block or fail the caller.
"""
import logging
from typing import List, Optional

from services.database import Database
from services.tasks import BackgroundTaskRunner, task_runner

logger = logging.getLogger(__name__)


class AnalyticsRecorder:

    def __init__(self, database: Database, runner: Optional[BackgroundTaskRunner] = None):
        self.db = database
        self.runner = runner or task_runner

    def record_classifier_usage(self, prompt_units: int, completion_units: int, model: str) -> None:
        self.runner.fire_and_forget(
            self._write_usage(prompt_units, completion_units, model),
            label="classifier_usage",
        )

    def record_content_request(
        self,
        source_meta: Optional[str],
        targets: List[str],
        keywords: List[str],
        post_matches: int,
        comment_matches: int,
    ) -> None:
        self.runner.fire_and_forget(
            self._write_content_request(source_meta, targets, keywords, post_matches, comment_matches),
            label="content_request",
        )

    async def _write_usage(self, prompt_units: int, completion_units: int, model: str) -> None:
        await self.db.init_tables()
        await self.db.add_classifier_usage(prompt_units, completion_units, model)
        logger.info(
            f"Tracked classifier request: {prompt_units} prompt + {completion_units} completion "
            f"= {prompt_units + completion_units} total ({model})"
        )

    async def _write_content_request(
        self,
        source_meta: Optional[str],
        targets: List[str],
        keywords: List[str],
        post_matches: int,
        comment_matches: int,
    ) -> None:
        await self.db.init_tables()
        await self.db.add_content_request(source_meta, targets, keywords, post_matches, comment_matches)
        logger.info(
            f"Tracked content request from {source_meta or 'unknown'}: {len(targets)} targets, "
            f"{len(keywords)} keywords, {post_matches} post matches, {comment_matches} comment matches"
        )

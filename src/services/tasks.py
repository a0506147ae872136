"""
Background execution for analysis pipelines and best-effort telemetry.
Submitters get control back immediately; nothing here is awaited on the
request path.
"""
import asyncio
import logging
import traceback
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)

MAX_KEPT_OUTCOMES = 500


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TaskOutcome:
    """How a pipeline task ended."""
    task_id: str
    success: bool
    result: Any = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def duration(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None


class BackgroundTaskRunner:
    """
    Owns detached asyncio tasks.

    run_async is for pipelines: the outcome is kept (newest MAX_KEPT_OUTCOMES)
    so tests and the CLI can wait on it. fire_and_forget is for telemetry:
    failures are logged and nothing is kept.
    """

    def __init__(self, max_kept_outcomes: int = MAX_KEPT_OUTCOMES):
        self.tasks: Dict[str, asyncio.Task] = {}
        self.outcomes: "OrderedDict[str, TaskOutcome]" = OrderedDict()
        self.max_kept_outcomes = max_kept_outcomes
        self._counter = 0

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}_{self._counter}"

    def _keep(self, outcome: TaskOutcome) -> None:
        self.outcomes[outcome.task_id] = outcome
        while len(self.outcomes) > self.max_kept_outcomes:
            self.outcomes.popitem(last=False)

    def _track(self, key: str, task: asyncio.Task) -> None:
        # The event loop only holds weak references to tasks
        self.tasks[key] = task
        task.add_done_callback(lambda _: self.tasks.pop(key, None))

    def run_async(
        self,
        coro_fn: Callable[..., Awaitable[Any]],
        *args,
        task_id: Optional[str] = None,
        **kwargs
    ) -> str:
        """
        Start coro_fn(*args, **kwargs) in the background and return its id.
        """
        task_id = task_id or self._next_id("task")
        started_at = _utcnow()

        async def runner():
            try:
                result = await coro_fn(*args, **kwargs)
            except Exception as e:
                self._keep(TaskOutcome(
                    task_id=task_id,
                    success=False,
                    error=str(e),
                    started_at=started_at,
                    completed_at=_utcnow(),
                ))
                logger.error(f"Task {task_id} failed: {e}")
                logger.debug(traceback.format_exc())
                return

            outcome = TaskOutcome(
                task_id=task_id,
                success=True,
                result=result,
                started_at=started_at,
                completed_at=_utcnow(),
            )
            self._keep(outcome)
            logger.info(f"Task {task_id} finished in {outcome.duration:.2f}s")

        self._track(task_id, asyncio.create_task(runner()))
        return task_id

    def fire_and_forget(self, coro: Awaitable[Any], label: str = "background") -> None:
        async def runner():
            try:
                await coro
            except Exception as e:
                logger.error(f"{label} task failed: {e}")

        self._track(self._next_id(label), asyncio.create_task(runner()))

    def get_outcome(self, task_id: str) -> Optional[TaskOutcome]:
        return self.outcomes.get(task_id)

    async def wait_for(self, task_id: str, timeout: Optional[float] = None) -> TaskOutcome:
        """Wait for a pipeline task started with run_async and return its outcome."""
        task = self.tasks.get(task_id)
        if task is not None:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)

        outcome = self.get_outcome(task_id)
        if outcome is None:
            raise ValueError(f"Task {task_id} not found")
        return outcome

    async def drain(self) -> None:
        """Wait until every scheduled task, including ones scheduled meanwhile, has finished."""
        while True:
            pending = [t for t in list(self.tasks.values()) if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)


# Process-wide runner shared by the API and the CLI
task_runner = BackgroundTaskRunner()

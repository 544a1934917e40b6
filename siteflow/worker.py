"""Worker that resumes delayed workflow steps once they are due."""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Optional

from .contracts import (
    DelayedStepJob,
    ExecutionResult,
    StepNotFoundError,
    WorkflowNotFoundError,
)
from .execute import WorkflowExecutor
from .queues import DelayQueue
from .utils.retry import backoff_ms

logger = logging.getLogger(__name__)


class DelayedStepWorker:
    """Consumes due jobs from a delay queue and resumes their workflows."""

    def __init__(
        self,
        queue: DelayQueue,
        executor: WorkflowExecutor,
        max_attempts: int = 3,
        history: int = 100,
    ) -> None:
        self._queue = queue
        self._executor = executor
        self.max_attempts = max_attempts
        # latest ``history`` results only
        self.processed: Deque[ExecutionResult] = deque(maxlen=history)

    async def start(self, lifespan: Optional[float] = None) -> None:
        """Process due jobs until ``lifespan`` seconds elapse, or forever."""
        async for job in self._queue.subscribe(lifespan=lifespan):
            await self.handle(job)

    async def handle(self, job: DelayedStepJob) -> Optional[ExecutionResult]:
        """Resume one job, then ack, retry or fail it."""
        try:
            result = await self._executor.resume(job)
        except (WorkflowNotFoundError, StepNotFoundError) as e:
            logger.error(f"Dropping job {job.job_id}: {e}")
            await self._queue.fail(job)
            return None
        except Exception as e:
            if job.attempt >= self.max_attempts:
                logger.error(
                    f"Job {job.job_id} failed after {job.attempt} attempts: {e}"
                )
                await self._queue.fail(job)
                return None
            delay = backoff_ms(job.attempt)
            logger.warning(
                f"Job {job.job_id} attempt {job.attempt} failed, "
                f"retrying in {delay}ms: {e}"
            )
            await self._queue.retry(job, delay)
            return None

        await self._queue.ack(job)
        self.processed.append(result)
        logger.info(
            f"Resumed job {job.job_id} as execution_id={result.execution_id} "
            f"success={result.success}"
        )
        return result

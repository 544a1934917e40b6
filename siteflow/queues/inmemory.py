"""In-memory delayed-job queue for tests and single-process use."""

from __future__ import annotations

import asyncio
import heapq
import itertools
import time
from typing import AsyncIterator, Callable, Dict, List, Optional, Tuple

from ..contracts import DelayedStepJob
from .base import DelayQueue, QueueStats


class InMemoryDelayQueue(DelayQueue):
    """Heap-ordered queue held in process memory.

    Jobs do not survive a restart.
    """

    def __init__(
        self,
        poll_interval: float = 0.1,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._heap: List[Tuple[float, int, str]] = []
        self._jobs: Dict[str, DelayedStepJob] = {}
        self._processing: Dict[str, DelayedStepJob] = {}
        self.failed: List[DelayedStepJob] = []
        self._counter = itertools.count()
        self._lock = asyncio.Lock()
        self._poll_interval = poll_interval
        self._clock = clock

    async def enqueue(self, job: DelayedStepJob) -> str:
        async with self._lock:
            if job.job_id in self._jobs:
                return job.job_id
            self._push(job)
        return job.job_id

    def _push(self, job: DelayedStepJob) -> None:
        self._jobs[job.job_id] = job
        heapq.heappush(self._heap, (job.run_at, next(self._counter), job.job_id))

    async def _pop_due(self) -> Optional[DelayedStepJob]:
        async with self._lock:
            if self._heap and self._heap[0][0] <= self._clock():
                _, _, job_id = heapq.heappop(self._heap)
                job = self._jobs.pop(job_id)
                self._processing[job_id] = job
                return job
        return None

    async def subscribe(
        self, lifespan: Optional[float] = None
    ) -> AsyncIterator[DelayedStepJob]:
        """Yield due jobs.

        Args:
            lifespan: Maximum time in seconds to keep polling. If None, runs indefinitely.
        """
        start_time = asyncio.get_event_loop().time() if lifespan else None

        while True:
            if lifespan and start_time:
                elapsed = asyncio.get_event_loop().time() - start_time
                if elapsed >= lifespan:
                    break

            job = await self._pop_due()
            if job is not None:
                yield job
                continue

            await asyncio.sleep(self._poll_interval)

    async def ack(self, job: DelayedStepJob) -> None:
        async with self._lock:
            self._processing.pop(job.job_id, None)

    async def retry(self, job: DelayedStepJob, delay_ms: int) -> None:
        retried = job.model_copy(
            update={
                "attempt": job.attempt + 1,
                "run_at": self._clock() + delay_ms / 1000,
            }
        )
        async with self._lock:
            self._processing.pop(job.job_id, None)
            self._push(retried)

    async def fail(self, job: DelayedStepJob) -> None:
        async with self._lock:
            self._processing.pop(job.job_id, None)
            self.failed.append(job)

    async def stats(self) -> QueueStats:
        async with self._lock:
            return QueueStats(
                delayed=len(self._jobs),
                processing=len(self._processing),
                failed=len(self.failed),
            )

"""Base interface for the durable delayed-job queue."""

from __future__ import annotations

import abc
from typing import AsyncIterator, Optional

from pydantic import BaseModel

from ..contracts import DelayedStepJob


class QueueStats(BaseModel):
    delayed: int = 0
    processing: int = 0
    failed: int = 0


class DelayQueue(metaclass=abc.ABCMeta):
    """Abstract queue that releases jobs once their ``run_at`` has passed."""

    async def connect(self) -> None:
        """Open connection to the backing store (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Close connection to the backing store (no-op by default)."""
        pass

    @abc.abstractmethod
    async def enqueue(self, job: DelayedStepJob) -> str:
        """Store ``job`` until it is due and return its id.

        Enqueueing a job whose id is already pending is a no-op.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def subscribe(
        self, lifespan: Optional[float] = None
    ) -> AsyncIterator[DelayedStepJob]:
        """Yield jobs as they become due.

        Args:
            lifespan: Maximum time in seconds to keep polling. If None, runs indefinitely.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def ack(self, job: DelayedStepJob) -> None:
        """Acknowledge successful processing."""
        raise NotImplementedError

    @abc.abstractmethod
    async def retry(self, job: DelayedStepJob, delay_ms: int) -> None:
        """Put a claimed job back with a new due time and a bumped attempt."""
        raise NotImplementedError

    @abc.abstractmethod
    async def fail(self, job: DelayedStepJob) -> None:
        """Move a claimed job to the failed set."""
        raise NotImplementedError

    @abc.abstractmethod
    async def stats(self) -> QueueStats:
        """Return queue counters."""
        raise NotImplementedError

"""Redis-backed delayed-job queue for cross-process scheduling."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, AsyncIterator, Optional

import redis.asyncio as redis

from ..contracts import DelayedStepJob
from .base import DelayQueue, QueueStats

logger = logging.getLogger(__name__)

# Atomically moves the earliest due job from the delayed set to the
# processing hash and returns {job_id, payload}.
_CLAIM_DUE = """
local due = redis.call('ZRANGEBYSCORE', KEYS[1], '-inf', ARGV[1], 'LIMIT', 0, 1)
if #due == 0 then
    return false
end
local job_id = due[1]
redis.call('ZREM', KEYS[1], job_id)
local payload = redis.call('HGET', KEYS[2], job_id)
if not payload then
    return false
end
redis.call('HDEL', KEYS[2], job_id)
redis.call('HSET', KEYS[3], job_id, payload)
return {job_id, payload}
"""


class RedisDelayQueue(DelayQueue):
    """Delayed jobs kept in a Redis sorted set scored by due time.

    Payloads live in a hash keyed by job id so that enqueueing an id that is
    already pending does not create a second entry.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        key_prefix: str = "siteflow",
        poll_interval: float = 0.5,
    ) -> None:
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.key_prefix = key_prefix
        self.poll_interval = poll_interval
        self._redis: Optional[Any] = None
        self._claim_script: Optional[Any] = None

    @property
    def delayed_key(self) -> str:
        return f"{self.key_prefix}:delayed"

    @property
    def jobs_key(self) -> str:
        return f"{self.key_prefix}:jobs"

    @property
    def processing_key(self) -> str:
        return f"{self.key_prefix}:processing"

    @property
    def failed_key(self) -> str:
        return f"{self.key_prefix}:failed"

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._redis.ping()
        self._claim_script = self._redis.register_script(_CLAIM_DUE)

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            self._claim_script = None

    async def _client(self) -> Any:
        if not self._redis:
            await self.connect()
        return self._redis

    async def enqueue(self, job: DelayedStepJob) -> str:
        client = await self._client()
        added = await client.hsetnx(self.jobs_key, job.job_id, job.to_json())
        if not added:
            logger.debug(f"Job {job.job_id} already pending")
            return job.job_id
        await client.zadd(self.delayed_key, {job.job_id: job.run_at})
        return job.job_id

    async def _claim_due(self) -> Optional[DelayedStepJob]:
        client = await self._client()
        claimed = await self._claim_script(
            keys=[self.delayed_key, self.jobs_key, self.processing_key],
            args=[time.time()],
        )
        if not claimed:
            return None
        job_id, payload = claimed
        try:
            return DelayedStepJob.from_json(payload)
        except ValueError as e:
            logger.error(f"Failed to parse delayed job {job_id}: {e}")
            async with client.pipeline(transaction=True) as pipe:
                pipe.hdel(self.processing_key, job_id)
                pipe.rpush(self.failed_key, payload)
                await pipe.execute()
            return None

    async def subscribe(
        self, lifespan: Optional[float] = None
    ) -> AsyncIterator[DelayedStepJob]:
        """Yield due jobs from the sorted set."""
        start_time = asyncio.get_event_loop().time() if lifespan else None

        while True:
            if lifespan and start_time:
                elapsed = asyncio.get_event_loop().time() - start_time
                if elapsed >= lifespan:
                    break

            job = await self._claim_due()
            if job is not None:
                yield job
                continue

            await asyncio.sleep(self.poll_interval)

    async def ack(self, job: DelayedStepJob) -> None:
        client = await self._client()
        await client.hdel(self.processing_key, job.job_id)

    async def retry(self, job: DelayedStepJob, delay_ms: int) -> None:
        client = await self._client()
        retried = job.model_copy(
            update={"attempt": job.attempt + 1, "run_at": time.time() + delay_ms / 1000}
        )
        async with client.pipeline(transaction=True) as pipe:
            pipe.hdel(self.processing_key, job.job_id)
            pipe.hset(self.jobs_key, job.job_id, retried.to_json())
            pipe.zadd(self.delayed_key, {job.job_id: retried.run_at})
            await pipe.execute()

    async def fail(self, job: DelayedStepJob) -> None:
        client = await self._client()
        async with client.pipeline(transaction=True) as pipe:
            pipe.hdel(self.processing_key, job.job_id)
            pipe.rpush(self.failed_key, job.to_json())
            await pipe.execute()

    async def stats(self) -> QueueStats:
        client = await self._client()
        return QueueStats(
            delayed=await client.zcard(self.delayed_key),
            processing=await client.hlen(self.processing_key),
            failed=await client.llen(self.failed_key),
        )

"""Delayed-job queue factory and initialization."""

from __future__ import annotations

import os
from typing import Optional

from ..config import SiteflowConfig, load_config
from .base import DelayQueue, QueueStats
from .inmemory import InMemoryDelayQueue


def get_queue(
    backend: Optional[str] = None, config: Optional[SiteflowConfig] = None
) -> Optional[DelayQueue]:
    """Factory function to get the configured delayed-job queue.

    Returns None when the backend is ``disabled``; long delays then degrade
    to a scheduled marker instead of being resumed.
    """

    config = config or load_config()
    backend = (
        backend or os.getenv("SITEFLOW_QUEUE") or config.queue.backend
    ).lower()

    if backend == "disabled":
        return None
    elif backend == "inmemory":
        return InMemoryDelayQueue(poll_interval=config.worker.poll_interval)
    elif backend == "redis":
        from .redis import RedisDelayQueue

        redis_conf = config.queue.redis
        return RedisDelayQueue(
            host=redis_conf.host,
            port=redis_conf.port,
            db=redis_conf.db,
            password=redis_conf.password,
            key_prefix=redis_conf.key_prefix,
            poll_interval=config.worker.poll_interval,
        )
    else:
        raise ValueError(f"Unsupported queue backend: {backend}")


__all__ = ["DelayQueue", "InMemoryDelayQueue", "QueueStats", "get_queue"]

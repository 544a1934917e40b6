"""Inline-or-durable dispatch of delay steps."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from .config import DEFAULT_MAX_INLINE_DELAY_MS
from .contracts import DelayedStepJob, WorkflowContext
from .queues import DelayQueue

logger = logging.getLogger(__name__)

UNIT_MS: Dict[str, int] = {
    "seconds": 1000,
    "minutes": 60 * 1000,
    "hours": 60 * 60 * 1000,
    "days": 24 * 60 * 60 * 1000,
}


def delay_to_ms(duration: Any, unit: Optional[str]) -> int:
    """Convert ``duration`` in ``unit`` to milliseconds.

    Unknown or missing units count as seconds.
    """
    multiplier = UNIT_MS.get(unit or "", UNIT_MS["seconds"])
    return int(float(duration) * multiplier)


def resume_at(ms: int) -> str:
    """ISO-8601 UTC timestamp ``ms`` milliseconds from now."""
    moment = datetime.now(timezone.utc) + timedelta(milliseconds=ms)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class DelayScheduler:
    """Decides whether a delay blocks the run or is handed to the queue."""

    def __init__(
        self,
        queue: Optional[DelayQueue] = None,
        max_inline_delay_ms: int = DEFAULT_MAX_INLINE_DELAY_MS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.queue = queue
        self.max_inline_delay_ms = max_inline_delay_ms
        self._sleep = sleep

    async def schedule(
        self,
        ms: int,
        context: WorkflowContext,
        next_step_id: Optional[str] = None,
        next_step_config: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Wait inline or enqueue a continuation, returning the step output.

        Errors raised by the queue propagate to the caller.
        """
        if ms <= self.max_inline_delay_ms:
            await self._sleep(ms / 1000)
            return {"waited": ms, "inline": True}

        if next_step_id and self.queue is not None:
            job = DelayedStepJob(
                site_id=context.site_id,
                workflow_id=context.workflow_id,
                execution_id=context.execution_id,
                trigger_type=context.trigger_type,
                step_id=next_step_id,
                step_config=next_step_config or {},
                context=context.variables,
                delay_ms=ms,
                run_at=time.time() + ms / 1000,
            )
            job_id = await self.queue.enqueue(job)
            logger.info(
                f"Long delay enqueued execution_id={context.execution_id} "
                f"delay_ms={ms} job_id={job_id}"
            )
            return {"queued": True, "jobId": job_id, "resumeAt": resume_at(ms)}

        logger.warning(
            f"Long delay requested but no queue or next step configured "
            f"execution_id={context.execution_id} delay_ms={ms}"
        )
        return {"scheduled": True, "resumeAt": resume_at(ms)}

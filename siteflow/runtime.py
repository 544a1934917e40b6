"""Wiring of configuration into a ready-to-use engine."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx

from .actions import ActionServices, build_actions
from .config import SiteflowConfig, load_config
from .dispatch import TriggerDispatcher
from .execute import WorkflowExecutor
from .mail import EmailSender, get_email_sender
from .persistence import WorkflowRepository, get_repository
from .queues import DelayQueue, get_queue
from .scheduling import DelayScheduler
from .worker import DelayedStepWorker

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    config: SiteflowConfig
    repository: WorkflowRepository
    queue: Optional[DelayQueue]
    email_sender: EmailSender
    http_client: httpx.AsyncClient
    executor: WorkflowExecutor
    dispatcher: TriggerDispatcher

    def worker(self) -> DelayedStepWorker:
        if self.queue is None:
            raise RuntimeError("Delayed-step worker requires a queue backend")
        return DelayedStepWorker(
            self.queue, self.executor, max_attempts=self.config.worker.max_attempts
        )

    async def aclose(self) -> None:
        await self.http_client.aclose()
        if self.queue is not None:
            await self.queue.disconnect()


def create_runtime(
    config: Optional[SiteflowConfig] = None,
    *,
    repository: Optional[WorkflowRepository] = None,
    queue: Optional[DelayQueue] = None,
    email_sender: Optional[EmailSender] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Runtime:
    """Build repository, queue, senders, executor and dispatcher from config.

    Any collaborator passed explicitly is used instead of the configured one.
    """

    config = config or load_config()
    repository = repository or get_repository(config.database_url, config=config)
    if queue is None:
        queue = get_queue(config=config)
    http_client = http_client or httpx.AsyncClient(
        timeout=config.engine.webhook_timeout
    )
    email_sender = email_sender or get_email_sender(config.email, http_client)

    scheduler = DelayScheduler(
        queue, max_inline_delay_ms=config.engine.max_inline_delay_ms, sleep=sleep
    )
    services = ActionServices(
        repository=repository,
        email_sender=email_sender,
        http_client=http_client,
        scheduler=scheduler,
        engine=config.engine,
    )
    executor = WorkflowExecutor(
        repository, build_actions(services), max_steps=config.engine.max_steps
    )
    dispatcher = TriggerDispatcher(repository, executor)
    logger.debug(
        f"Runtime ready: repository={type(repository).__name__} "
        f"queue={type(queue).__name__ if queue else 'disabled'}"
    )
    return Runtime(
        config=config,
        repository=repository,
        queue=queue,
        email_sender=email_sender,
        http_client=http_client,
        executor=executor,
        dispatcher=dispatcher,
    )

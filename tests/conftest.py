"""Shared fixtures for siteflow tests."""

from __future__ import annotations

import json
from typing import Callable, List

import httpx
import pytest

from siteflow.config import SiteflowConfig
from siteflow.contracts import TriggerType, Workflow, WorkflowContext, WorkflowStep
from siteflow.mail import OutboxEmailSender
from siteflow.persistence import InMemoryWorkflowRepository
from siteflow.queues import InMemoryDelayQueue
from siteflow.runtime import Runtime, create_runtime


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that records requested durations."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def webhook_handler(requests: List[httpx.Request]) -> Callable:
    """Answer 200 with a JSON echo, or 500 for URLs containing ``fail``."""

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if "fail" in str(request.url):
            return httpx.Response(500, text="boom")
        body = json.loads(request.content) if request.content else None
        return httpx.Response(200, json={"received": body})

    return handler


def make_workflow(
    workflow_id: str,
    steps: List[WorkflowStep],
    site_id: str = "site-1",
    trigger_type: TriggerType = TriggerType.FORM_SUBMIT,
    active: bool = True,
) -> Workflow:
    return Workflow(
        id=workflow_id,
        site_id=site_id,
        name=f"{workflow_id} name",
        trigger_type=trigger_type,
        active=active,
        steps=steps,
    )


def make_context(**variables) -> WorkflowContext:
    return WorkflowContext(
        site_id="site-1",
        workflow_id="wf-1",
        execution_id="exec-1",
        trigger_type=TriggerType.MANUAL,
        variables=variables,
    )


@pytest.fixture
def repository() -> InMemoryWorkflowRepository:
    return InMemoryWorkflowRepository()


@pytest.fixture
def outbox() -> OutboxEmailSender:
    return OutboxEmailSender()


@pytest.fixture
def delay_queue() -> InMemoryDelayQueue:
    return InMemoryDelayQueue(poll_interval=0.01)


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def webhook_requests() -> List[httpx.Request]:
    return []


@pytest.fixture
def config() -> SiteflowConfig:
    return SiteflowConfig()


@pytest.fixture
def runtime(
    config, repository, outbox, delay_queue, sleeps, webhook_requests
) -> Runtime:
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(webhook_handler(webhook_requests))
    )
    return create_runtime(
        config,
        repository=repository,
        queue=delay_queue,
        email_sender=outbox,
        http_client=client,
        sleep=sleeps,
    )


@pytest.fixture
def workflow_factory() -> Callable[..., Workflow]:
    return make_workflow


@pytest.fixture
def context_factory() -> Callable[..., WorkflowContext]:
    return make_context

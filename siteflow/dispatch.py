"""Trigger matching: fan a business event out to the workflows wired to it."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Set, Union

from .contracts import ExecutionResult, TriggerResult, TriggerType, Workflow
from .execute import WorkflowExecutor
from .persistence import WorkflowRepository

logger = logging.getLogger(__name__)


class TriggerDispatcher:
    """Service responsible for running the workflows matching an event.

    Firing a trigger never raises: lookup failures yield an empty result
    and each workflow's failure is recorded as its own entry.
    """

    def __init__(
        self, repository: WorkflowRepository, executor: WorkflowExecutor
    ) -> None:
        self._repository = repository
        self._executor = executor
        self._background: Set[asyncio.Task[TriggerResult]] = set()

    async def trigger_workflows(
        self,
        site_id: str,
        trigger_type: Union[TriggerType, str],
        payload: Optional[Dict[str, Any]] = None,
        concurrent: bool = False,
    ) -> TriggerResult:
        """Execute every active workflow of ``site_id`` for ``trigger_type``.

        Args:
            site_id: Site the event belongs to.
            trigger_type: Event type, as enum member or its string value.
            payload: Event data handed to each execution.
            concurrent: Run matched workflows together instead of one after
                another.
        """
        payload = payload or {}
        try:
            trigger_type = TriggerType(trigger_type)
        except ValueError:
            logger.warning(f"Ignoring unknown trigger type {trigger_type!r}")
            return TriggerResult()

        try:
            workflows = await self._repository.find_active_workflows(
                site_id, trigger_type
            )
        except Exception as e:
            logger.warning(
                f"Workflow lookup failed site_id={site_id} "
                f"trigger_type={trigger_type.value}: {e}"
            )
            return TriggerResult()

        if not workflows:
            logger.debug(
                f"No workflows for site_id={site_id} trigger_type={trigger_type.value}"
            )
            return TriggerResult()

        if concurrent:
            outcomes = await asyncio.gather(
                *(self._run_one(w, trigger_type, payload) for w in workflows)
            )
        else:
            outcomes = [
                await self._run_one(w, trigger_type, payload) for w in workflows
            ]

        return TriggerResult(
            executed_count=len(workflows),
            results={w.id: outcome for w, outcome in zip(workflows, outcomes)},
        )

    async def _run_one(
        self, workflow: Workflow, trigger_type: TriggerType, payload: Dict[str, Any]
    ) -> ExecutionResult:
        try:
            return await self._executor.execute(workflow.id, trigger_type, payload)
        except Exception as e:
            logger.error(f"Workflow {workflow.id} failed: {e}")
            return ExecutionResult(success=False, error=str(e))

    def spawn(
        self,
        site_id: str,
        trigger_type: Union[TriggerType, str],
        payload: Optional[Dict[str, Any]] = None,
    ) -> asyncio.Task[TriggerResult]:
        """Fire ``trigger_workflows`` in the background without awaiting it.

        Must be called from a running event loop. The returned task is held
        until it finishes so it is not garbage collected mid-run.
        """
        task = asyncio.create_task(
            self.trigger_workflows(site_id, trigger_type, payload)
        )
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task[TriggerResult]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background trigger failed: {exc!r}")

    @property
    def pending(self) -> List[asyncio.Task[TriggerResult]]:
        return list(self._background)

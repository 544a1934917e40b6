"""Execution controller: walks a workflow's steps for one trigger firing."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from .actions import BaseAction
from .contracts import (
    ActionType,
    DelayedStepJob,
    ExecutionResult,
    ExecutionStatus,
    StepLimitExceededError,
    StepNotFoundError,
    StepResult,
    TriggerType,
    Workflow,
    WorkflowContext,
    WorkflowNotFoundError,
    WorkflowStep,
)
from .persistence import WorkflowRepository

logger = logging.getLogger(__name__)


class StepGraph:
    """Successor edges over a workflow's steps.

    A step's default successor is its ``next_step_id`` when that names a
    step of the workflow, otherwise the next step by order. A branch result
    follows the first id in its list that names a step here.
    """

    def __init__(self, workflow: Workflow) -> None:
        self.steps: List[WorkflowStep] = workflow.ordered_steps()
        self._by_id: Dict[str, WorkflowStep] = {s.id: s for s in self.steps}
        self._position: Dict[str, int] = {s.id: i for i, s in enumerate(self.steps)}

    def __contains__(self, step_id: object) -> bool:
        return step_id in self._by_id

    def get(self, step_id: str) -> Optional[WorkflowStep]:
        return self._by_id.get(step_id)

    def first(self) -> Optional[WorkflowStep]:
        return self.steps[0] if self.steps else None

    def successor(self, step: WorkflowStep) -> Optional[WorkflowStep]:
        if step.next_step_id and step.next_step_id in self._by_id:
            return self._by_id[step.next_step_id]
        position = self._position[step.id] + 1
        return self.steps[position] if position < len(self.steps) else None

    def follow(
        self, step: WorkflowStep, next_steps: Optional[List[str]]
    ) -> Optional[WorkflowStep]:
        for step_id in next_steps or []:
            if step_id in self._by_id:
                return self._by_id[step_id]
        return self.successor(step)


class WorkflowExecutor:
    """Runs stored workflows against the registered action handlers."""

    def __init__(
        self,
        repository: WorkflowRepository,
        actions: Mapping[ActionType, BaseAction],
        max_steps: int = 500,
    ) -> None:
        self._repository = repository
        self._actions = actions
        self.max_steps = max_steps

    async def execute(
        self,
        workflow_id: str,
        trigger_type: TriggerType,
        payload: Optional[Dict[str, Any]] = None,
        *,
        start_step_id: Optional[str] = None,
        variables: Optional[Dict[str, Any]] = None,
        step_overrides: Optional[Dict[str, Dict[str, Any]]] = None,
    ) -> ExecutionResult:
        """Run ``workflow_id`` once and persist its execution record.

        Args:
            workflow_id: Workflow to run; must exist and be active.
            trigger_type: Event that started the run.
            payload: Trigger data, exposed to steps as ``trigger``.
            start_step_id: Step to begin at instead of the first one.
            variables: Initial context variables. Defaults to the trigger
                payload and workflow identity.
            step_overrides: Replacement configs keyed by step id, used for
                the first invocation of each step only.

        Raises:
            WorkflowNotFoundError: The workflow is missing or inactive.
            StepNotFoundError: ``start_step_id`` is not a step of the workflow.
        """
        payload = payload or {}
        trigger_type = TriggerType(trigger_type)

        workflow = await self._repository.get_active_workflow(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)

        graph = StepGraph(workflow)
        if start_step_id is not None and start_step_id not in graph:
            raise StepNotFoundError(workflow_id, start_step_id)

        execution = await self._repository.create_execution(
            workflow_id, trigger_type, payload
        )
        logger.info(
            f"Execution started execution_id={execution.id} workflow_id={workflow_id}"
        )

        context = WorkflowContext(
            site_id=workflow.site_id,
            workflow_id=workflow_id,
            execution_id=execution.id,
            trigger_type=trigger_type,
            variables=variables
            if variables is not None
            else {
                "trigger": payload,
                "workflow": {"id": workflow_id, "name": workflow.name},
            },
        )
        overrides = dict(step_overrides or {})
        results: Dict[str, StepResult] = {}
        success = True

        try:
            step = graph.get(start_step_id) if start_step_id else graph.first()
            invocations = 0
            while step is not None:
                invocations += 1
                if invocations > self.max_steps:
                    raise StepLimitExceededError(
                        f"Execution exceeded {self.max_steps} steps"
                    )

                action = self._actions.get(step.kind) if step.kind else None
                if action is None:
                    logger.error(
                        f"Unknown action type {step.action_type!r} "
                        f"execution_id={execution.id} step_id={step.id}"
                    )
                    results[step.id] = StepResult.failure(
                        f"Unknown action type: {step.action_type}"
                    )
                    success = False
                    break

                config = overrides.pop(step.id, None) or step.config
                result, context = await self._run_step(step, action, config, context)
                results[step.id] = result

                if not result.success:
                    success = False
                    if step.halts_on_error:
                        break

                if step.kind is ActionType.DELAY and (result.output or {}).get("queued"):
                    logger.info(
                        f"Execution {execution.id} handed off to delayed job "
                        f"{result.output.get('jobId')}"
                    )
                    break

                step = graph.follow(step, result.next_steps)

            status = ExecutionStatus.COMPLETED if success else ExecutionStatus.FAILED
            await self._repository.complete_execution(
                execution.id,
                status,
                result={step_id: r.to_dict() for step_id, r in results.items()},
            )
            logger.info(
                f"Execution finished execution_id={execution.id} status={status.value}"
            )
            return ExecutionResult(
                success=success, execution_id=execution.id, results=results
            )
        except Exception as e:
            logger.error(f"Execution {execution.id} aborted: {e}")
            await self._repository.complete_execution(
                execution.id, ExecutionStatus.FAILED, error=str(e)
            )
            raise

    async def _run_step(
        self,
        step: WorkflowStep,
        action: BaseAction,
        config: Dict[str, Any],
        context: WorkflowContext,
    ) -> tuple[StepResult, WorkflowContext]:
        log = await self._repository.start_step_log(context.execution_id, step.id)
        logger.debug(
            f"Running step step_id={step.id} action={step.action_type} "
            f"execution_id={context.execution_id}"
        )

        result = await action.run(config, context)
        if result.output is not None:
            context = context.with_step_output(step.id, result.output)
        if result.variables:
            context = context.with_variables(**result.variables)

        await self._repository.finish_step_log(
            log.id,
            ExecutionStatus.COMPLETED if result.success else ExecutionStatus.FAILED,
            output=result.output,
            error=result.error,
        )
        return result, context

    async def resume(self, job: DelayedStepJob) -> ExecutionResult:
        """Continue a delayed workflow as a new execution at ``job.step_id``."""
        variables = {
            **job.context,
            "resumedFrom": {"executionId": job.execution_id, "stepId": job.step_id},
        }
        logger.info(
            f"Resuming workflow_id={job.workflow_id} at step_id={job.step_id} "
            f"from execution_id={job.execution_id}"
        )
        return await self.execute(
            job.workflow_id,
            job.trigger_type,
            job.context.get("trigger") or {},
            start_step_id=job.step_id,
            variables=variables,
            step_overrides={job.step_id: job.step_config} if job.step_config else None,
        )

"""In-memory implementation of the workflow repository."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Dict, Optional

from ..contracts import (
    ExecutionStatus,
    RecordNotFoundError,
    TriggerType,
    Workflow,
)
from .models import (
    CollectionRecord,
    ExecutionRecord,
    NotificationRecord,
    SiteUser,
    StepLogRecord,
    TaskRecord,
)
from .repository import WorkflowRepository


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store engine state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._workflows: Dict[str, Workflow] = {}
        self._executions: Dict[str, ExecutionRecord] = {}
        self._step_logs: Dict[str, StepLogRecord] = {}
        self._records: Dict[str, CollectionRecord] = {}
        self._users: Dict[str, SiteUser] = {}
        self._roles: set[tuple[str, str]] = set()
        self.tasks: Dict[str, TaskRecord] = {}
        self.notifications: Dict[str, NotificationRecord] = {}

    # ------------------------------------------------------------------
    async def save_workflow(self, workflow: Workflow) -> None:
        steps = [
            step.model_copy(update={"workflow_id": workflow.id})
            for step in workflow.steps
        ]
        self._workflows[workflow.id] = workflow.model_copy(
            update={"steps": steps}, deep=True
        )

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        wf = self._workflows.get(workflow_id)
        return wf.model_copy(deep=True) if wf else None

    async def get_active_workflow(self, workflow_id: str) -> Workflow | None:
        wf = await self.get_workflow(workflow_id)
        return wf if wf and wf.active else None

    async def find_active_workflows(
        self, site_id: str, trigger_type: TriggerType
    ) -> list[Workflow]:
        return [
            wf.model_copy(deep=True)
            for wf in self._workflows.values()
            if wf.site_id == site_id and wf.trigger_type == trigger_type and wf.active
        ]

    async def list_workflows(self, site_id: str | None = None) -> list[Workflow]:
        return [
            wf.model_copy(deep=True)
            for wf in self._workflows.values()
            if site_id is None or wf.site_id == site_id
        ]

    # ------------------------------------------------------------------
    async def create_execution(
        self, workflow_id: str, trigger_type: TriggerType, trigger_payload: dict
    ) -> ExecutionRecord:
        execution = ExecutionRecord(
            id=_new_id(),
            workflow_id=workflow_id,
            trigger_type=trigger_type,
            trigger_payload=trigger_payload,
            status=ExecutionStatus.RUNNING,
            started_at=_now(),
        )
        self._executions[execution.id] = execution
        return execution.model_copy()

    async def complete_execution(
        self,
        execution_id: str,
        status: ExecutionStatus,
        result: dict | None = None,
        error: str | None = None,
    ) -> None:
        execution = self._executions.get(execution_id)
        if not execution:
            return
        execution.status = status
        execution.completed_at = _now()
        if result is not None:
            execution.result = result
        if error is not None:
            execution.error = error

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        execution = self._executions.get(execution_id)
        return execution.model_copy() if execution else None

    async def list_executions(
        self,
        workflow_id: str | None = None,
        status: ExecutionStatus | None = None,
    ) -> list[ExecutionRecord]:
        executions = [
            e.model_copy()
            for e in self._executions.values()
            if (workflow_id is None or e.workflow_id == workflow_id)
            and (status is None or e.status == status)
        ]
        return list(reversed(executions))

    async def start_step_log(self, execution_id: str, step_id: str) -> StepLogRecord:
        log = StepLogRecord(
            id=_new_id(),
            execution_id=execution_id,
            step_id=step_id,
            status=ExecutionStatus.RUNNING,
            started_at=_now(),
        )
        self._step_logs[log.id] = log
        return log.model_copy()

    async def finish_step_log(
        self,
        log_id: str,
        status: ExecutionStatus,
        output: dict | None = None,
        error: str | None = None,
    ) -> None:
        log = self._step_logs.get(log_id)
        if not log:
            return
        log.status = status
        log.output = output
        log.error = error
        log.completed_at = _now()

    async def list_step_logs(self, execution_id: str) -> list[StepLogRecord]:
        return [
            log.model_copy()
            for log in self._step_logs.values()
            if log.execution_id == execution_id
        ]

    # ------------------------------------------------------------------
    async def create_record(
        self, collection_id: str, data: dict, created_by: str = "workflow"
    ) -> CollectionRecord:
        record = CollectionRecord(
            id=_new_id(),
            collection_id=collection_id,
            data=data,
            created_by=created_by,
            created_at=_now(),
        )
        self._records[record.id] = record
        return record.model_copy()

    async def get_record(self, record_id: str) -> CollectionRecord | None:
        record = self._records.get(record_id)
        return record.model_copy() if record else None

    async def update_record(
        self, record_id: str, data: dict, updated_by: str = "workflow"
    ) -> CollectionRecord:
        record = self._records.get(record_id)
        if record is None:
            raise RecordNotFoundError(f"Record {record_id} not found")
        record.data = data
        record.updated_by = updated_by
        record.updated_at = _now()
        return record.model_copy()

    async def delete_record(self, record_id: str) -> None:
        self._records.pop(record_id, None)

    # ------------------------------------------------------------------
    async def create_site_user(
        self, site_id: str, email: str | None = None, tags: list[str] | None = None
    ) -> SiteUser:
        user = SiteUser(id=_new_id(), site_id=site_id, email=email, tags=tags or [])
        self._users[user.id] = user
        return user.model_copy()

    async def get_user_tags(self, user_id: str) -> list[str]:
        user = self._users.get(user_id)
        if user is None:
            raise RecordNotFoundError(f"Site user {user_id} not found")
        return list(user.tags)

    async def set_user_tags(self, user_id: str, tags: list[str]) -> None:
        user = self._users.get(user_id)
        if user is None:
            raise RecordNotFoundError(f"Site user {user_id} not found")
        user.tags = list(tags)

    async def has_role(self, user_id: str, role_id: str) -> bool:
        return (user_id, role_id) in self._roles

    async def assign_role(self, user_id: str, role_id: str) -> None:
        self._roles.add((user_id, role_id))

    # ------------------------------------------------------------------
    async def create_task(
        self,
        site_id: str,
        title: str,
        description: str = "",
        due_date: Optional[str] = None,
        assignee_id: Optional[str] = None,
    ) -> TaskRecord:
        task = TaskRecord(
            id=_new_id(),
            site_id=site_id,
            title=title,
            description=description,
            due_date=due_date,
            assignee_id=assignee_id,
        )
        self.tasks[task.id] = task
        return task.model_copy()

    async def create_notification(
        self,
        site_id: str,
        user_id: Optional[str],
        title: str,
        message: str,
        type: str = "info",
    ) -> NotificationRecord:
        notification = NotificationRecord(
            id=_new_id(),
            site_id=site_id,
            user_id=user_id,
            title=title,
            message=message,
            type=type,
        )
        self.notifications[notification.id] = notification
        return notification.model_copy()

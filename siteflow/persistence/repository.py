"""Repository abstraction for the engine's record store."""

from __future__ import annotations

from typing import Optional, Protocol

from ..contracts import ExecutionStatus, TriggerType, Workflow
from .models import (
    CollectionRecord,
    ExecutionRecord,
    NotificationRecord,
    SiteUser,
    StepLogRecord,
    TaskRecord,
)


class WorkflowRepository(Protocol):
    """Protocol for record store backends.

    Lookups of rows a handler targets (records, site users) raise
    :class:`~siteflow.contracts.RecordNotFoundError` when the row is absent.
    """

    # -- workflow definitions ------------------------------------------
    async def save_workflow(self, workflow: Workflow) -> None:
        """Insert or replace a workflow and its steps."""

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        """Return a workflow regardless of its active flag."""

    async def get_active_workflow(self, workflow_id: str) -> Workflow | None:
        """Return the workflow with its steps, only if it is active."""

    async def find_active_workflows(
        self, site_id: str, trigger_type: TriggerType
    ) -> list[Workflow]:
        """Return active workflows on ``site_id`` listening for ``trigger_type``."""

    async def list_workflows(self, site_id: str | None = None) -> list[Workflow]:
        """Return all stored workflows, optionally for one site."""

    # -- executions and step logs --------------------------------------
    async def create_execution(
        self, workflow_id: str, trigger_type: TriggerType, trigger_payload: dict
    ) -> ExecutionRecord:
        """Create a ``running`` execution row."""

    async def complete_execution(
        self,
        execution_id: str,
        status: ExecutionStatus,
        result: dict | None = None,
        error: str | None = None,
    ) -> None:
        """Move an execution to a terminal status."""

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        """Retrieve an execution by id."""

    async def list_executions(
        self,
        workflow_id: str | None = None,
        status: ExecutionStatus | None = None,
    ) -> list[ExecutionRecord]:
        """Return executions, newest first."""

    async def start_step_log(self, execution_id: str, step_id: str) -> StepLogRecord:
        """Record the start of a step."""

    async def finish_step_log(
        self,
        log_id: str,
        status: ExecutionStatus,
        output: dict | None = None,
        error: str | None = None,
    ) -> None:
        """Record the end of a step."""

    async def list_step_logs(self, execution_id: str) -> list[StepLogRecord]:
        """Return the step logs of an execution in start order."""

    # -- collection records --------------------------------------------
    async def create_record(
        self, collection_id: str, data: dict, created_by: str = "workflow"
    ) -> CollectionRecord:
        """Insert a collection record."""

    async def get_record(self, record_id: str) -> CollectionRecord | None:
        """Retrieve a collection record."""

    async def update_record(
        self, record_id: str, data: dict, updated_by: str = "workflow"
    ) -> CollectionRecord:
        """Replace a record's data."""

    async def delete_record(self, record_id: str) -> None:
        """Delete a record."""

    # -- site users, tags and roles ------------------------------------
    async def create_site_user(
        self, site_id: str, email: str | None = None, tags: list[str] | None = None
    ) -> SiteUser:
        """Insert a site user."""

    async def get_user_tags(self, user_id: str) -> list[str]:
        """Return the tag set of a site user."""

    async def set_user_tags(self, user_id: str, tags: list[str]) -> None:
        """Overwrite the tag set of a site user."""

    async def has_role(self, user_id: str, role_id: str) -> bool:
        """Whether the role assignment exists."""

    async def assign_role(self, user_id: str, role_id: str) -> None:
        """Create a role assignment."""

    # -- tasks and notifications ---------------------------------------
    async def create_task(
        self,
        site_id: str,
        title: str,
        description: str = "",
        due_date: Optional[str] = None,
        assignee_id: Optional[str] = None,
    ) -> TaskRecord:
        """Insert a pending task."""

    async def create_notification(
        self,
        site_id: str,
        user_id: Optional[str],
        title: str,
        message: str,
        type: str = "info",
    ) -> NotificationRecord:
        """Insert a user notification."""

"""Record-store actions: collection records and tasks."""

from __future__ import annotations

from typing import Any, Dict

from ..contracts import ActionType, StepResult, WorkflowContext
from .base import BaseAction


class CreateRecord(BaseAction):
    action_type = ActionType.CREATE_RECORD

    async def execute(
        self, config: Dict[str, Any], context: WorkflowContext
    ) -> StepResult:
        data = self.render_json(config.get("data", {}), context)
        record = await self.repository.create_record(
            config["collectionId"], data, created_by="workflow"
        )
        return StepResult(
            success=True, output={"recordId": record.id, "data": record.data}
        )


class UpdateRecord(BaseAction):
    """Replace a record's data; a missing record fails the step."""

    action_type = ActionType.UPDATE_RECORD

    async def execute(
        self, config: Dict[str, Any], context: WorkflowContext
    ) -> StepResult:
        record_id = self.render(config["recordId"], context)
        data = self.render_json(config.get("data", {}), context)
        record = await self.repository.update_record(
            record_id, data, updated_by="workflow"
        )
        return StepResult(
            success=True, output={"recordId": record.id, "data": record.data}
        )


class DeleteRecord(BaseAction):
    action_type = ActionType.DELETE_RECORD

    async def execute(
        self, config: Dict[str, Any], context: WorkflowContext
    ) -> StepResult:
        record_id = self.render(config["recordId"], context)
        await self.repository.delete_record(record_id)
        return StepResult(success=True, output={"deleted": True, "recordId": record_id})


class CreateTask(BaseAction):
    action_type = ActionType.CREATE_TASK

    async def execute(
        self, config: Dict[str, Any], context: WorkflowContext
    ) -> StepResult:
        title = self.render(config.get("title", ""), context)
        task = await self.repository.create_task(
            site_id=context.site_id,
            title=title,
            description=self.render(config.get("description") or "", context),
            due_date=config.get("dueDate"),
            assignee_id=config.get("assignee"),
        )
        return StepResult(success=True, output={"taskId": task.id, "title": title})

"""Site-user actions: tags and role assignments."""

from __future__ import annotations

from typing import Any, Dict

from ..contracts import ActionType, StepResult, WorkflowContext
from .base import BaseAction


class AddTag(BaseAction):
    action_type = ActionType.ADD_TAG

    async def execute(
        self, config: Dict[str, Any], context: WorkflowContext
    ) -> StepResult:
        user_id = self.render(config["userId"], context)
        tag = config["tag"]
        tags = await self.repository.get_user_tags(user_id)
        if tag not in tags:
            tags = [*tags, tag]
            await self.repository.set_user_tags(user_id, tags)
        return StepResult(success=True, output={"userId": user_id, "tags": tags})


class RemoveTag(BaseAction):
    action_type = ActionType.REMOVE_TAG

    async def execute(
        self, config: Dict[str, Any], context: WorkflowContext
    ) -> StepResult:
        user_id = self.render(config["userId"], context)
        tag = config["tag"]
        current = await self.repository.get_user_tags(user_id)
        tags = [t for t in current if t != tag]
        if tags != current:
            await self.repository.set_user_tags(user_id, tags)
        return StepResult(success=True, output={"userId": user_id, "tags": tags})


class AssignRole(BaseAction):
    """Grant a role unless the user already holds it."""

    action_type = ActionType.ASSIGN_ROLE

    async def execute(
        self, config: Dict[str, Any], context: WorkflowContext
    ) -> StepResult:
        user_id = self.render(config["userId"], context)
        role_id = config["roleId"]
        assigned = False
        if not await self.repository.has_role(user_id, role_id):
            await self.repository.assign_role(user_id, role_id)
            assigned = True
        return StepResult(
            success=True,
            output={"userId": user_id, "roleId": role_id, "assigned": assigned},
        )

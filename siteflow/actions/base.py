"""Base class and shared services for action handlers."""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Optional

import httpx

from ..config import EngineConfig
from ..contracts import ActionType, StepResult, WorkflowContext
from ..interpolation import interpolate, interpolate_json
from ..mail import EmailSender
from ..persistence import WorkflowRepository
from ..scheduling import DelayScheduler

logger = logging.getLogger(__name__)


@dataclass
class ActionServices:
    """Collaborators that handlers call out to."""

    repository: WorkflowRepository
    email_sender: EmailSender
    http_client: httpx.AsyncClient
    scheduler: DelayScheduler
    engine: EngineConfig


class BaseAction(metaclass=abc.ABCMeta):
    """One implementation per :class:`ActionType`."""

    action_type: ClassVar[ActionType]

    def __init__(self, services: ActionServices) -> None:
        self.services = services

    @property
    def repository(self) -> WorkflowRepository:
        return self.services.repository

    @abc.abstractmethod
    async def execute(
        self, config: Dict[str, Any], context: WorkflowContext
    ) -> StepResult:
        raise NotImplementedError

    async def run(self, config: Dict[str, Any], context: WorkflowContext) -> StepResult:
        """Execute the action, turning any raised error into a failed result."""
        try:
            return await self.execute(config, context)
        except Exception as e:
            logger.debug(
                f"Action {self.action_type.value} failed "
                f"execution_id={context.execution_id}: {e!r}"
            )
            return StepResult.failure(str(e) or e.__class__.__name__)

    @staticmethod
    def render(template: Optional[Any], context: WorkflowContext) -> Optional[str]:
        if template is None:
            return None
        return interpolate(template, context.variables)

    @staticmethod
    def render_json(value: Any, context: WorkflowContext) -> Any:
        return interpolate_json(value, context.variables)

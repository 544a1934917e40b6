"""siteflow: Workflow automation engine for site owners."""

from .contracts import (
    ActionType,
    DelayedStepJob,
    ExecutionResult,
    ExecutionStatus,
    StepResult,
    TriggerResult,
    TriggerType,
    Workflow,
    WorkflowContext,
    WorkflowStep,
)
from .dispatch import TriggerDispatcher
from .execute import WorkflowExecutor
from .interpolation import interpolate
from .persistence import get_repository
from .queues import get_queue
from .runtime import Runtime, create_runtime
from .worker import DelayedStepWorker

__version__ = "0.1.0"
__all__ = [
    "ActionType",
    "DelayedStepJob",
    "DelayedStepWorker",
    "ExecutionResult",
    "ExecutionStatus",
    "Runtime",
    "StepResult",
    "TriggerDispatcher",
    "TriggerResult",
    "TriggerType",
    "Workflow",
    "WorkflowContext",
    "WorkflowExecutor",
    "WorkflowStep",
    "create_runtime",
    "get_queue",
    "get_repository",
    "interpolate",
]

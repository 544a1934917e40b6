"""Core data contracts for the siteflow workflow engine."""

from __future__ import annotations

import time
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TriggerType(str, Enum):
    """Business events that can start a workflow."""

    FORM_SUBMIT = "form_submit"
    RECORD_CREATE = "record_create"
    RECORD_UPDATE = "record_update"
    RECORD_DELETE = "record_delete"
    USER_SIGNUP = "user_signup"
    USER_LOGIN = "user_login"
    ORDER_PLACED = "order_placed"
    PAYMENT_RECEIVED = "payment_received"
    SCHEDULE = "schedule"
    WEBHOOK = "webhook"
    MANUAL = "manual"


class ActionType(str, Enum):
    """Operations a single workflow step can perform."""

    SEND_EMAIL = "send_email"
    SEND_WEBHOOK = "send_webhook"
    CREATE_RECORD = "create_record"
    UPDATE_RECORD = "update_record"
    DELETE_RECORD = "delete_record"
    ADD_TAG = "add_tag"
    REMOVE_TAG = "remove_tag"
    ASSIGN_ROLE = "assign_role"
    DELAY = "delay"
    CONDITION = "condition"
    LOOP = "loop"
    CREATE_TASK = "create_task"
    SEND_NOTIFICATION = "send_notification"


class ExecutionStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class SiteflowError(Exception):
    """Base class for engine errors."""


class WorkflowNotFoundError(SiteflowError):
    """Raised when a workflow is missing or inactive."""

    def __init__(self, workflow_id: str) -> None:
        super().__init__("Workflow not found or inactive")
        self.workflow_id = workflow_id


class StepLimitExceededError(SiteflowError):
    """Raised when a run walks more steps than the engine allows."""


class StepNotFoundError(SiteflowError):
    """Raised when a run is asked to start at a step the workflow lacks."""

    def __init__(self, workflow_id: str, step_id: str) -> None:
        super().__init__(f"Step {step_id} not found in workflow {workflow_id}")
        self.workflow_id = workflow_id
        self.step_id = step_id


class RecordNotFoundError(SiteflowError):
    """Raised by repositories when a target row does not exist."""


class WorkflowStep(BaseModel):
    """One unit of work inside a workflow."""

    id: str
    workflow_id: Optional[str] = None
    action_type: str
    order: int = 0
    config: Dict[str, Any] = Field(default_factory=dict)
    stop_on_error: Optional[bool] = None
    next_step_id: Optional[str] = None

    @property
    def kind(self) -> Optional[ActionType]:
        """Return the enumerated action type, or ``None`` if unrecognised."""
        try:
            return ActionType(self.action_type)
        except ValueError:
            return None

    @property
    def halts_on_error(self) -> bool:
        """Whether a failure of this step stops the run.

        An explicit ``stop_on_error`` on the step wins; otherwise the
        ``stopOnError`` key of the action config is honoured. Only an
        explicit ``False`` lets the run continue.
        """
        if self.stop_on_error is not None:
            return self.stop_on_error
        return self.config.get("stopOnError") is not False


class Workflow(BaseModel):
    """A stored workflow definition."""

    id: str
    site_id: str
    name: str = ""
    description: Optional[str] = None
    trigger_type: TriggerType
    active: bool = True
    steps: List[WorkflowStep] = Field(default_factory=list)

    def ordered_steps(self) -> List[WorkflowStep]:
        return sorted(self.steps, key=lambda step: step.order)


class StepResult(BaseModel):
    """Return contract of every action handler."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    output: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    next_steps: Optional[List[str]] = Field(default=None, alias="nextSteps")
    # context variables bound for later steps; not persisted
    variables: Optional[Dict[str, Any]] = Field(default=None, exclude=True)

    @classmethod
    def failure(cls, error: str) -> "StepResult":
        return cls(success=False, error=error)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class WorkflowContext(BaseModel):
    """Variable state owned by a single execution.

    The context is frozen: merging a step's output produces a new
    instance, so a handler can never alter what later steps observe.
    """

    model_config = ConfigDict(frozen=True)

    site_id: str
    workflow_id: str
    execution_id: str
    trigger_type: TriggerType
    variables: Dict[str, Any] = Field(default_factory=dict)

    def with_variables(self, **updates: Any) -> "WorkflowContext":
        return self.model_copy(update={"variables": {**self.variables, **updates}})

    def with_step_output(
        self, step_id: str, output: Dict[str, Any]
    ) -> "WorkflowContext":
        """Return a context where ``step_<step_id>`` holds ``output``."""
        return self.with_variables(**{f"step_{step_id}": output})


class ExecutionResult(BaseModel):
    """Outcome of one workflow run."""

    success: bool
    execution_id: Optional[str] = None
    results: Dict[str, StepResult] = Field(default_factory=dict)
    error: Optional[str] = None


class TriggerResult(BaseModel):
    """Aggregate outcome of firing one business event."""

    executed_count: int = 0
    results: Dict[str, ExecutionResult] = Field(default_factory=dict)


class DelayedStepJob(BaseModel):
    """A workflow continuation handed to the delayed-job queue."""

    job_id: str = ""
    site_id: str
    workflow_id: str
    execution_id: str
    trigger_type: TriggerType = TriggerType.MANUAL
    step_id: str
    step_config: Dict[str, Any] = Field(default_factory=dict)
    context: Dict[str, Any] = Field(default_factory=dict)
    delay_ms: int = 0
    run_at: float = Field(default_factory=time.time)
    attempt: int = 1

    def model_post_init(self, __context: Any) -> None:
        if not self.job_id:
            self.job_id = f"{self.execution_id}-{self.step_id}"

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "DelayedStepJob":
        return cls.model_validate_json(data)

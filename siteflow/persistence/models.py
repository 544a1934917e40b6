"""Data models for persisted engine state."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..contracts import ExecutionStatus, TriggerType


class ExecutionRecord(BaseModel):
    """One run of a workflow in response to one trigger firing."""

    id: str
    workflow_id: str
    trigger_type: TriggerType
    trigger_payload: dict[str, Any] = Field(default_factory=dict)
    status: ExecutionStatus = ExecutionStatus.RUNNING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None


class StepLogRecord(BaseModel):
    """Audit entry for a single step invocation."""

    id: str
    execution_id: str
    step_id: str
    status: ExecutionStatus = ExecutionStatus.RUNNING
    output: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class CollectionRecord(BaseModel):
    id: str
    collection_id: str
    data: dict[str, Any] = Field(default_factory=dict)
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SiteUser(BaseModel):
    id: str
    site_id: str
    email: Optional[str] = None
    tags: list[str] = Field(default_factory=list)


class TaskRecord(BaseModel):
    id: str
    site_id: str
    title: str
    description: str = ""
    due_date: Optional[str] = None
    assignee_id: Optional[str] = None
    status: str = "pending"
    created_by: str = "workflow"


class NotificationRecord(BaseModel):
    id: str
    site_id: str
    user_id: Optional[str] = None
    title: str
    message: str = ""
    type: str = "info"

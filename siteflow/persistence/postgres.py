"""PostgreSQL implementation of the workflow repository."""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

import asyncpg

from ..contracts import (
    ExecutionStatus,
    RecordNotFoundError,
    TriggerType,
    Workflow,
    WorkflowStep,
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

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS workflows (
        id TEXT PRIMARY KEY,
        site_id TEXT NOT NULL,
        name TEXT NOT NULL,
        description TEXT,
        trigger_type TEXT NOT NULL,
        active BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMPTZ DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS workflow_steps (
        id TEXT PRIMARY KEY,
        workflow_id TEXT NOT NULL REFERENCES workflows(id) ON DELETE CASCADE,
        action_type TEXT NOT NULL,
        order_index INTEGER NOT NULL DEFAULT 0,
        config JSONB NOT NULL DEFAULT '{}',
        stop_on_error BOOLEAN,
        next_step_id TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS workflow_executions (
        id TEXT PRIMARY KEY,
        workflow_id TEXT NOT NULL,
        trigger_type TEXT NOT NULL,
        trigger_payload JSONB,
        status TEXT NOT NULL,
        started_at TIMESTAMPTZ,
        completed_at TIMESTAMPTZ,
        result JSONB,
        error TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS workflow_step_logs (
        id TEXT PRIMARY KEY,
        execution_id TEXT NOT NULL,
        step_id TEXT NOT NULL,
        status TEXT NOT NULL,
        output JSONB,
        error TEXT,
        started_at TIMESTAMPTZ,
        completed_at TIMESTAMPTZ
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS collection_records (
        id TEXT PRIMARY KEY,
        collection_id TEXT NOT NULL,
        data JSONB NOT NULL,
        created_by TEXT,
        updated_by TEXT,
        created_at TIMESTAMPTZ,
        updated_at TIMESTAMPTZ
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS site_users (
        id TEXT PRIMARY KEY,
        site_id TEXT NOT NULL,
        email TEXT,
        tags JSONB NOT NULL DEFAULT '[]'
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS site_user_roles (
        site_user_id TEXT NOT NULL,
        site_role_id TEXT NOT NULL,
        PRIMARY KEY (site_user_id, site_role_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tasks (
        id TEXT PRIMARY KEY,
        site_id TEXT NOT NULL,
        title TEXT NOT NULL,
        description TEXT,
        due_date TEXT,
        assignee_id TEXT,
        status TEXT NOT NULL,
        created_by TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS notifications (
        id TEXT PRIMARY KEY,
        site_id TEXT NOT NULL,
        user_id TEXT,
        title TEXT NOT NULL,
        message TEXT,
        type TEXT NOT NULL
    )
    """,
]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _dumps(value: Any) -> Optional[str]:
    return None if value is None else json.dumps(value, default=str)


def _loads(value: Any) -> Any:
    if isinstance(value, str):
        return json.loads(value)
    return value


def _affected(status: str) -> int:
    """Parse the row count from an asyncpg command tag like ``UPDATE 1``."""
    try:
        return int(status.split()[-1])
    except (IndexError, ValueError):
        return 0


class PostgresWorkflowRepository(WorkflowRepository):
    """Persist engine state using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        for statement in _SCHEMA:
            await conn.execute(statement)

    async def _execute(self, query: str, *params: Any) -> str:
        conn = await self._connect()
        try:
            return await conn.execute(query, *params)
        finally:
            await conn.close()

    async def _fetchrow(self, query: str, *params: Any) -> asyncpg.Record | None:
        conn = await self._connect()
        try:
            return await conn.fetchrow(query, *params)
        finally:
            await conn.close()

    async def _fetch(self, query: str, *params: Any) -> list[asyncpg.Record]:
        conn = await self._connect()
        try:
            return await conn.fetch(query, *params)
        finally:
            await conn.close()

    async def _load_workflows(self, where: str, *params: Any) -> list[Workflow]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                f"SELECT id, site_id, name, description, trigger_type, active FROM workflows {where}",
                *params,
            )
            workflows = []
            for row in rows:
                step_rows = await conn.fetch(
                    "SELECT id, workflow_id, action_type, order_index, config, stop_on_error, next_step_id FROM workflow_steps WHERE workflow_id = $1 ORDER BY order_index",
                    row["id"],
                )
                workflows.append(
                    Workflow(
                        id=row["id"],
                        site_id=row["site_id"],
                        name=row["name"],
                        description=row["description"],
                        trigger_type=TriggerType(row["trigger_type"]),
                        active=row["active"],
                        steps=[
                            WorkflowStep(
                                id=s["id"],
                                workflow_id=s["workflow_id"],
                                action_type=s["action_type"],
                                order=s["order_index"],
                                config=_loads(s["config"]) or {},
                                stop_on_error=s["stop_on_error"],
                                next_step_id=s["next_step_id"],
                            )
                            for s in step_rows
                        ],
                    )
                )
        finally:
            await conn.close()
        return workflows

    @staticmethod
    def _to_execution(row: asyncpg.Record) -> ExecutionRecord:
        return ExecutionRecord(
            id=row["id"],
            workflow_id=row["workflow_id"],
            trigger_type=TriggerType(row["trigger_type"]),
            trigger_payload=_loads(row["trigger_payload"]) or {},
            status=ExecutionStatus(row["status"]),
            started_at=row["started_at"],
            completed_at=row["completed_at"],
            result=_loads(row["result"]),
            error=row["error"],
        )

    @staticmethod
    def _to_record(row: asyncpg.Record) -> CollectionRecord:
        return CollectionRecord(
            id=row["id"],
            collection_id=row["collection_id"],
            data=_loads(row["data"]) or {},
            created_by=row["created_by"],
            updated_by=row["updated_by"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    # ------------------------------------------------------------------
    async def save_workflow(self, workflow: Workflow) -> None:
        conn = await self._connect()
        try:
            async with conn.transaction():
                await conn.execute(
                    """
                    INSERT INTO workflows (id, site_id, name, description, trigger_type, active)
                    VALUES ($1, $2, $3, $4, $5, $6)
                    ON CONFLICT (id) DO UPDATE SET
                        site_id = EXCLUDED.site_id,
                        name = EXCLUDED.name,
                        description = EXCLUDED.description,
                        trigger_type = EXCLUDED.trigger_type,
                        active = EXCLUDED.active
                    """,
                    workflow.id,
                    workflow.site_id,
                    workflow.name,
                    workflow.description,
                    workflow.trigger_type.value,
                    workflow.active,
                )
                await conn.execute(
                    "DELETE FROM workflow_steps WHERE workflow_id = $1", workflow.id
                )
                if workflow.steps:
                    await conn.executemany(
                        "INSERT INTO workflow_steps (id, workflow_id, action_type, order_index, config, stop_on_error, next_step_id) VALUES ($1, $2, $3, $4, $5::jsonb, $6, $7)",
                        [
                            (
                                step.id,
                                workflow.id,
                                step.action_type,
                                step.order,
                                json.dumps(step.config),
                                step.stop_on_error,
                                step.next_step_id,
                            )
                            for step in workflow.steps
                        ],
                    )
        finally:
            await conn.close()

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        found = await self._load_workflows("WHERE id = $1", workflow_id)
        return found[0] if found else None

    async def get_active_workflow(self, workflow_id: str) -> Workflow | None:
        found = await self._load_workflows("WHERE id = $1 AND active", workflow_id)
        return found[0] if found else None

    async def find_active_workflows(
        self, site_id: str, trigger_type: TriggerType
    ) -> list[Workflow]:
        return await self._load_workflows(
            "WHERE site_id = $1 AND trigger_type = $2 AND active ORDER BY created_at",
            site_id,
            TriggerType(trigger_type).value,
        )

    async def list_workflows(self, site_id: str | None = None) -> list[Workflow]:
        if site_id is None:
            return await self._load_workflows("ORDER BY created_at")
        return await self._load_workflows(
            "WHERE site_id = $1 ORDER BY created_at", site_id
        )

    async def create_execution(
        self, workflow_id: str, trigger_type: TriggerType, trigger_payload: dict
    ) -> ExecutionRecord:
        execution = ExecutionRecord(
            id=str(uuid.uuid4()),
            workflow_id=workflow_id,
            trigger_type=trigger_type,
            trigger_payload=trigger_payload,
            status=ExecutionStatus.RUNNING,
            started_at=_now(),
        )
        await self._execute(
            "INSERT INTO workflow_executions (id, workflow_id, trigger_type, trigger_payload, status, started_at) VALUES ($1, $2, $3, $4::jsonb, $5, $6)",
            execution.id,
            workflow_id,
            execution.trigger_type.value,
            _dumps(trigger_payload),
            execution.status.value,
            execution.started_at,
        )
        return execution

    async def complete_execution(
        self,
        execution_id: str,
        status: ExecutionStatus,
        result: dict | None = None,
        error: str | None = None,
    ) -> None:
        await self._execute(
            """
            UPDATE workflow_executions
            SET status = $1, completed_at = $2,
                result = COALESCE($3::jsonb, result), error = COALESCE($4, error)
            WHERE id = $5
            """,
            ExecutionStatus(status).value,
            _now(),
            _dumps(result),
            error,
            execution_id,
        )

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        row = await self._fetchrow(
            "SELECT * FROM workflow_executions WHERE id = $1", execution_id
        )
        return self._to_execution(row) if row else None

    async def list_executions(
        self,
        workflow_id: str | None = None,
        status: ExecutionStatus | None = None,
    ) -> list[ExecutionRecord]:
        clauses: list[str] = []
        params: list[Any] = []
        if workflow_id is not None:
            params.append(workflow_id)
            clauses.append(f"workflow_id = ${len(params)}")
        if status is not None:
            params.append(ExecutionStatus(status).value)
            clauses.append(f"status = ${len(params)}")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = await self._fetch(
            f"SELECT * FROM workflow_executions {where} ORDER BY started_at DESC",
            *params,
        )
        return [self._to_execution(r) for r in rows]

    async def start_step_log(self, execution_id: str, step_id: str) -> StepLogRecord:
        log = StepLogRecord(
            id=str(uuid.uuid4()),
            execution_id=execution_id,
            step_id=step_id,
            status=ExecutionStatus.RUNNING,
            started_at=_now(),
        )
        await self._execute(
            "INSERT INTO workflow_step_logs (id, execution_id, step_id, status, started_at) VALUES ($1, $2, $3, $4, $5)",
            log.id,
            execution_id,
            step_id,
            log.status.value,
            log.started_at,
        )
        return log

    async def finish_step_log(
        self,
        log_id: str,
        status: ExecutionStatus,
        output: dict | None = None,
        error: str | None = None,
    ) -> None:
        await self._execute(
            "UPDATE workflow_step_logs SET status = $1, output = $2::jsonb, error = $3, completed_at = $4 WHERE id = $5",
            ExecutionStatus(status).value,
            _dumps(output),
            error,
            _now(),
            log_id,
        )

    async def list_step_logs(self, execution_id: str) -> list[StepLogRecord]:
        rows = await self._fetch(
            "SELECT * FROM workflow_step_logs WHERE execution_id = $1 ORDER BY started_at",
            execution_id,
        )
        return [
            StepLogRecord(
                id=r["id"],
                execution_id=r["execution_id"],
                step_id=r["step_id"],
                status=ExecutionStatus(r["status"]),
                output=_loads(r["output"]),
                error=r["error"],
                started_at=r["started_at"],
                completed_at=r["completed_at"],
            )
            for r in rows
        ]

    async def create_record(
        self, collection_id: str, data: dict, created_by: str = "workflow"
    ) -> CollectionRecord:
        row = await self._fetchrow(
            "INSERT INTO collection_records (id, collection_id, data, created_by, created_at) VALUES ($1, $2, $3::jsonb, $4, $5) RETURNING *",
            str(uuid.uuid4()),
            collection_id,
            _dumps(data),
            created_by,
            _now(),
        )
        return self._to_record(row)

    async def get_record(self, record_id: str) -> CollectionRecord | None:
        row = await self._fetchrow(
            "SELECT * FROM collection_records WHERE id = $1", record_id
        )
        return self._to_record(row) if row else None

    async def update_record(
        self, record_id: str, data: dict, updated_by: str = "workflow"
    ) -> CollectionRecord:
        row = await self._fetchrow(
            "UPDATE collection_records SET data = $1::jsonb, updated_by = $2, updated_at = $3 WHERE id = $4 RETURNING *",
            _dumps(data),
            updated_by,
            _now(),
            record_id,
        )
        if row is None:
            raise RecordNotFoundError(f"Record {record_id} not found")
        return self._to_record(row)

    async def delete_record(self, record_id: str) -> None:
        await self._execute("DELETE FROM collection_records WHERE id = $1", record_id)

    async def create_site_user(
        self, site_id: str, email: str | None = None, tags: list[str] | None = None
    ) -> SiteUser:
        user = SiteUser(id=str(uuid.uuid4()), site_id=site_id, email=email, tags=tags or [])
        await self._execute(
            "INSERT INTO site_users (id, site_id, email, tags) VALUES ($1, $2, $3, $4::jsonb)",
            user.id,
            site_id,
            email,
            _dumps(user.tags),
        )
        return user

    async def get_user_tags(self, user_id: str) -> list[str]:
        row = await self._fetchrow("SELECT tags FROM site_users WHERE id = $1", user_id)
        if row is None:
            raise RecordNotFoundError(f"Site user {user_id} not found")
        return _loads(row["tags"]) or []

    async def set_user_tags(self, user_id: str, tags: list[str]) -> None:
        status = await self._execute(
            "UPDATE site_users SET tags = $1::jsonb WHERE id = $2", _dumps(tags), user_id
        )
        if not _affected(status):
            raise RecordNotFoundError(f"Site user {user_id} not found")

    async def has_role(self, user_id: str, role_id: str) -> bool:
        row = await self._fetchrow(
            "SELECT 1 FROM site_user_roles WHERE site_user_id = $1 AND site_role_id = $2",
            user_id,
            role_id,
        )
        return row is not None

    async def assign_role(self, user_id: str, role_id: str) -> None:
        await self._execute(
            "INSERT INTO site_user_roles (site_user_id, site_role_id) VALUES ($1, $2) ON CONFLICT DO NOTHING",
            user_id,
            role_id,
        )

    async def create_task(
        self,
        site_id: str,
        title: str,
        description: str = "",
        due_date: Optional[str] = None,
        assignee_id: Optional[str] = None,
    ) -> TaskRecord:
        task = TaskRecord(
            id=str(uuid.uuid4()),
            site_id=site_id,
            title=title,
            description=description,
            due_date=due_date,
            assignee_id=assignee_id,
        )
        await self._execute(
            "INSERT INTO tasks (id, site_id, title, description, due_date, assignee_id, status, created_by) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)",
            task.id,
            site_id,
            title,
            description,
            due_date,
            assignee_id,
            task.status,
            task.created_by,
        )
        return task

    async def create_notification(
        self,
        site_id: str,
        user_id: Optional[str],
        title: str,
        message: str,
        type: str = "info",
    ) -> NotificationRecord:
        notification = NotificationRecord(
            id=str(uuid.uuid4()),
            site_id=site_id,
            user_id=user_id,
            title=title,
            message=message,
            type=type,
        )
        await self._execute(
            "INSERT INTO notifications (id, site_id, user_id, title, message, type) VALUES ($1, $2, $3, $4, $5, $6)",
            notification.id,
            site_id,
            user_id,
            title,
            message,
            type,
        )
        return notification

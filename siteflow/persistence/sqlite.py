"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

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
        active INTEGER NOT NULL DEFAULT 1
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS workflow_steps (
        id TEXT PRIMARY KEY,
        workflow_id TEXT NOT NULL,
        action_type TEXT NOT NULL,
        order_index INTEGER NOT NULL DEFAULT 0,
        config TEXT NOT NULL,
        stop_on_error INTEGER,
        next_step_id TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS workflow_executions (
        id TEXT PRIMARY KEY,
        workflow_id TEXT NOT NULL,
        trigger_type TEXT NOT NULL,
        trigger_payload TEXT,
        status TEXT NOT NULL,
        started_at TEXT,
        completed_at TEXT,
        result TEXT,
        error TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS workflow_step_logs (
        id TEXT PRIMARY KEY,
        execution_id TEXT NOT NULL,
        step_id TEXT NOT NULL,
        status TEXT NOT NULL,
        output TEXT,
        error TEXT,
        started_at TEXT,
        completed_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS collection_records (
        id TEXT PRIMARY KEY,
        collection_id TEXT NOT NULL,
        data TEXT NOT NULL,
        created_by TEXT,
        updated_by TEXT,
        created_at TEXT,
        updated_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS site_users (
        id TEXT PRIMARY KEY,
        site_id TEXT NOT NULL,
        email TEXT,
        tags TEXT NOT NULL DEFAULT '[]'
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


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _loads(value: Optional[str]) -> Any:
    return json.loads(value) if value else None


def _bool_or_none(value: Optional[int]) -> Optional[bool]:
    return None if value is None else bool(value)


class SQLiteWorkflowRepository(WorkflowRepository):
    """Persist engine state using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        for statement in _SCHEMA:
            cur.execute(statement)
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()
        return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    def _save_workflow(self, workflow: Workflow) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO workflows (id, site_id, name, description, trigger_type, active) VALUES (?, ?, ?, ?, ?, ?)",
                (
                    workflow.id,
                    workflow.site_id,
                    workflow.name,
                    workflow.description,
                    workflow.trigger_type.value,
                    int(workflow.active),
                ),
            )
            self._conn.execute(
                "DELETE FROM workflow_steps WHERE workflow_id = ?", (workflow.id,)
            )
            self._conn.executemany(
                "INSERT INTO workflow_steps (id, workflow_id, action_type, order_index, config, stop_on_error, next_step_id) VALUES (?, ?, ?, ?, ?, ?, ?)",
                [
                    (
                        step.id,
                        workflow.id,
                        step.action_type,
                        step.order,
                        json.dumps(step.config),
                        None if step.stop_on_error is None else int(step.stop_on_error),
                        step.next_step_id,
                    )
                    for step in workflow.steps
                ],
            )

    def _load_workflows(self, where: str, *params: Any) -> list[Workflow]:
        rows = self._fetchall(
            f"SELECT id, site_id, name, description, trigger_type, active FROM workflows {where}",
            *params,
        )
        workflows = []
        for row in rows:
            step_rows = self._fetchall(
                "SELECT id, workflow_id, action_type, order_index, config, stop_on_error, next_step_id FROM workflow_steps WHERE workflow_id = ? ORDER BY order_index",
                row["id"],
            )
            workflows.append(
                Workflow(
                    id=row["id"],
                    site_id=row["site_id"],
                    name=row["name"],
                    description=row["description"],
                    trigger_type=TriggerType(row["trigger_type"]),
                    active=bool(row["active"]),
                    steps=[
                        WorkflowStep(
                            id=s["id"],
                            workflow_id=s["workflow_id"],
                            action_type=s["action_type"],
                            order=s["order_index"],
                            config=_loads(s["config"]) or {},
                            stop_on_error=_bool_or_none(s["stop_on_error"]),
                            next_step_id=s["next_step_id"],
                        )
                        for s in step_rows
                    ],
                )
            )
        return workflows

    @staticmethod
    def _to_execution(row: sqlite3.Row) -> ExecutionRecord:
        return ExecutionRecord(
            id=row["id"],
            workflow_id=row["workflow_id"],
            trigger_type=TriggerType(row["trigger_type"]),
            trigger_payload=_loads(row["trigger_payload"]) or {},
            status=ExecutionStatus(row["status"]),
            started_at=_ts(row["started_at"]),
            completed_at=_ts(row["completed_at"]),
            result=_loads(row["result"]),
            error=row["error"],
        )

    @staticmethod
    def _to_step_log(row: sqlite3.Row) -> StepLogRecord:
        return StepLogRecord(
            id=row["id"],
            execution_id=row["execution_id"],
            step_id=row["step_id"],
            status=ExecutionStatus(row["status"]),
            output=_loads(row["output"]),
            error=row["error"],
            started_at=_ts(row["started_at"]),
            completed_at=_ts(row["completed_at"]),
        )

    @staticmethod
    def _to_record(row: sqlite3.Row) -> CollectionRecord:
        return CollectionRecord(
            id=row["id"],
            collection_id=row["collection_id"],
            data=_loads(row["data"]) or {},
            created_by=row["created_by"],
            updated_by=row["updated_by"],
            created_at=_ts(row["created_at"]),
            updated_at=_ts(row["updated_at"]),
        )

    # ------------------------------------------------------------------
    # Repository API
    async def save_workflow(self, workflow: Workflow) -> None:
        await asyncio.to_thread(self._save_workflow, workflow)

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        found = await asyncio.to_thread(
            self._load_workflows, "WHERE id = ?", workflow_id
        )
        return found[0] if found else None

    async def get_active_workflow(self, workflow_id: str) -> Workflow | None:
        found = await asyncio.to_thread(
            self._load_workflows, "WHERE id = ? AND active = 1", workflow_id
        )
        return found[0] if found else None

    async def find_active_workflows(
        self, site_id: str, trigger_type: TriggerType
    ) -> list[Workflow]:
        return await asyncio.to_thread(
            self._load_workflows,
            "WHERE site_id = ? AND trigger_type = ? AND active = 1 ORDER BY rowid",
            site_id,
            TriggerType(trigger_type).value,
        )

    async def list_workflows(self, site_id: str | None = None) -> list[Workflow]:
        if site_id is None:
            return await asyncio.to_thread(self._load_workflows, "ORDER BY rowid")
        return await asyncio.to_thread(
            self._load_workflows, "WHERE site_id = ? ORDER BY rowid", site_id
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
            started_at=datetime.now(timezone.utc),
        )
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO workflow_executions (id, workflow_id, trigger_type, trigger_payload, status, started_at) VALUES (?, ?, ?, ?, ?, ?)",
            execution.id,
            workflow_id,
            execution.trigger_type.value,
            json.dumps(trigger_payload, default=str),
            execution.status.value,
            execution.started_at.isoformat(),
        )
        return execution

    async def complete_execution(
        self,
        execution_id: str,
        status: ExecutionStatus,
        result: dict | None = None,
        error: str | None = None,
    ) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            UPDATE workflow_executions
            SET status = ?, completed_at = ?, result = COALESCE(?, result), error = COALESCE(?, error)
            WHERE id = ?
            """,
            ExecutionStatus(status).value,
            _now(),
            json.dumps(result, default=str) if result is not None else None,
            error,
            execution_id,
        )

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT * FROM workflow_executions WHERE id = ?",
            execution_id,
        )
        return self._to_execution(row) if row else None

    async def list_executions(
        self,
        workflow_id: str | None = None,
        status: ExecutionStatus | None = None,
    ) -> list[ExecutionRecord]:
        clauses, params = [], []
        if workflow_id is not None:
            clauses.append("workflow_id = ?")
            params.append(workflow_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(ExecutionStatus(status).value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT * FROM workflow_executions {where} ORDER BY started_at DESC, rowid DESC",
            *params,
        )
        return [self._to_execution(r) for r in rows]

    async def start_step_log(self, execution_id: str, step_id: str) -> StepLogRecord:
        log = StepLogRecord(
            id=str(uuid.uuid4()),
            execution_id=execution_id,
            step_id=step_id,
            status=ExecutionStatus.RUNNING,
            started_at=datetime.now(timezone.utc),
        )
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO workflow_step_logs (id, execution_id, step_id, status, started_at) VALUES (?, ?, ?, ?, ?)",
            log.id,
            execution_id,
            step_id,
            log.status.value,
            log.started_at.isoformat(),
        )
        return log

    async def finish_step_log(
        self,
        log_id: str,
        status: ExecutionStatus,
        output: dict | None = None,
        error: str | None = None,
    ) -> None:
        await asyncio.to_thread(
            self._execute,
            "UPDATE workflow_step_logs SET status = ?, output = ?, error = ?, completed_at = ? WHERE id = ?",
            ExecutionStatus(status).value,
            json.dumps(output, default=str) if output is not None else None,
            error,
            _now(),
            log_id,
        )

    async def list_step_logs(self, execution_id: str) -> list[StepLogRecord]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT * FROM workflow_step_logs WHERE execution_id = ? ORDER BY rowid",
            execution_id,
        )
        return [self._to_step_log(r) for r in rows]

    async def create_record(
        self, collection_id: str, data: dict, created_by: str = "workflow"
    ) -> CollectionRecord:
        record = CollectionRecord(
            id=str(uuid.uuid4()),
            collection_id=collection_id,
            data=data,
            created_by=created_by,
            created_at=datetime.now(timezone.utc),
        )
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO collection_records (id, collection_id, data, created_by, created_at) VALUES (?, ?, ?, ?, ?)",
            record.id,
            collection_id,
            json.dumps(data),
            created_by,
            record.created_at.isoformat(),
        )
        return record

    async def get_record(self, record_id: str) -> CollectionRecord | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT * FROM collection_records WHERE id = ?", record_id
        )
        return self._to_record(row) if row else None

    async def update_record(
        self, record_id: str, data: dict, updated_by: str = "workflow"
    ) -> CollectionRecord:
        updated = await asyncio.to_thread(
            self._execute,
            "UPDATE collection_records SET data = ?, updated_by = ?, updated_at = ? WHERE id = ?",
            json.dumps(data),
            updated_by,
            _now(),
            record_id,
        )
        if not updated:
            raise RecordNotFoundError(f"Record {record_id} not found")
        record = await self.get_record(record_id)
        if record is None:
            raise RecordNotFoundError(f"Record {record_id} not found")
        return record

    async def delete_record(self, record_id: str) -> None:
        await asyncio.to_thread(
            self._execute, "DELETE FROM collection_records WHERE id = ?", record_id
        )

    async def create_site_user(
        self, site_id: str, email: str | None = None, tags: list[str] | None = None
    ) -> SiteUser:
        user = SiteUser(id=str(uuid.uuid4()), site_id=site_id, email=email, tags=tags or [])
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO site_users (id, site_id, email, tags) VALUES (?, ?, ?, ?)",
            user.id,
            site_id,
            email,
            json.dumps(user.tags),
        )
        return user

    async def get_user_tags(self, user_id: str) -> list[str]:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT tags FROM site_users WHERE id = ?", user_id
        )
        if row is None:
            raise RecordNotFoundError(f"Site user {user_id} not found")
        return _loads(row["tags"]) or []

    async def set_user_tags(self, user_id: str, tags: list[str]) -> None:
        updated = await asyncio.to_thread(
            self._execute,
            "UPDATE site_users SET tags = ? WHERE id = ?",
            json.dumps(tags),
            user_id,
        )
        if not updated:
            raise RecordNotFoundError(f"Site user {user_id} not found")

    async def has_role(self, user_id: str, role_id: str) -> bool:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT 1 FROM site_user_roles WHERE site_user_id = ? AND site_role_id = ?",
            user_id,
            role_id,
        )
        return row is not None

    async def assign_role(self, user_id: str, role_id: str) -> None:
        await asyncio.to_thread(
            self._execute,
            "INSERT OR IGNORE INTO site_user_roles (site_user_id, site_role_id) VALUES (?, ?)",
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
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO tasks (id, site_id, title, description, due_date, assignee_id, status, created_by) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
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
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO notifications (id, site_id, user_id, title, message, type) VALUES (?, ?, ?, ?, ?, ?)",
            notification.id,
            site_id,
            user_id,
            title,
            message,
            type,
        )
        return notification

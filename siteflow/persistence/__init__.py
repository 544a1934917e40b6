"""Record store backends and the process-wide repository handle."""

from __future__ import annotations

from typing import Optional

from ..config import SiteflowConfig, load_config
from .inmemory import InMemoryWorkflowRepository
from .models import (
    CollectionRecord,
    ExecutionRecord,
    NotificationRecord,
    SiteUser,
    StepLogRecord,
    TaskRecord,
)
from .postgres import PostgresWorkflowRepository
from .repository import WorkflowRepository
from .sqlite import SQLiteWorkflowRepository

_repository_instance: WorkflowRepository | None = None


def open_repository(database_url: Optional[str]) -> WorkflowRepository:
    """Build the backend named by the scheme of ``database_url``.

    No URL gives an in-memory store, ``sqlite://<path>`` a SQLite file and
    ``postgres://`` or ``postgresql://`` a PostgreSQL database.
    """
    if not database_url:
        return InMemoryWorkflowRepository()

    scheme, _, location = database_url.partition("://")
    if scheme == "sqlite" and location:
        return SQLiteWorkflowRepository(location)
    if scheme in ("postgres", "postgresql"):
        return PostgresWorkflowRepository(database_url)
    raise ValueError(f"Unsupported database backend: {database_url}")


def get_repository(
    database_url: Optional[str] = None, config: Optional[SiteflowConfig] = None
) -> WorkflowRepository:
    """Return the shared repository, opening it on first use.

    An explicit ``database_url`` or ``config`` opens a fresh backend and
    replaces the shared one. Otherwise the URL comes from ``load_config``,
    which applies ``SITEFLOW_DATABASE_URL`` and ``DATABASE_URL``.
    """
    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    _repository_instance = open_repository(database_url or config.database_url)
    return _repository_instance


__all__ = [
    "CollectionRecord",
    "ExecutionRecord",
    "InMemoryWorkflowRepository",
    "NotificationRecord",
    "PostgresWorkflowRepository",
    "SQLiteWorkflowRepository",
    "SiteUser",
    "StepLogRecord",
    "TaskRecord",
    "WorkflowRepository",
    "get_repository",
    "open_repository",
]

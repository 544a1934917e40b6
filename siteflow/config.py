from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel

DEFAULT_MAX_INLINE_DELAY_MS = 30 * 1000


class RedisConfig(BaseModel):
    """Configuration for the Redis delayed-job queue."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    key_prefix: str = "siteflow"


class QueueConfig(BaseModel):
    """Delayed-job queue settings."""

    backend: Literal["inmemory", "redis", "disabled"] = "inmemory"
    redis: RedisConfig = RedisConfig()


class EmailConfig(BaseModel):
    """Outbound email settings."""

    backend: Literal["outbox", "resend"] = "outbox"
    api_key: Optional[str] = None
    api_url: str = "https://api.resend.com/emails"
    from_address: str = "noreply@example.com"
    timeout: float = 10.0


class EngineConfig(BaseModel):
    """Execution controller limits."""

    max_inline_delay_ms: int = DEFAULT_MAX_INLINE_DELAY_MS
    max_steps: int = 500
    webhook_timeout: float = 10.0


class WorkerConfig(BaseModel):
    """Delayed-step worker settings."""

    poll_interval: float = 0.1
    max_attempts: int = 3


class SiteflowConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    queue: QueueConfig = QueueConfig()
    email: EmailConfig = EmailConfig()
    engine: EngineConfig = EngineConfig()
    worker: WorkerConfig = WorkerConfig()


def load_config(path: Optional[str] = None) -> SiteflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to SITEFLOW_CONFIG env
            variable or 'siteflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("SITEFLOW_CONFIG", "siteflow.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = SiteflowConfig(**data)
    else:
        config = SiteflowConfig()

    env_db_url = os.getenv("SITEFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_queue = os.getenv("SITEFLOW_QUEUE")
    if env_queue:
        config.queue = QueueConfig(
            backend=env_queue.lower(), redis=config.queue.redis
        )
    env_api_key = os.getenv("RESEND_API_KEY")
    if env_api_key:
        config.email.api_key = env_api_key
        config.email.backend = "resend"
    env_from = os.getenv("EMAIL_FROM")
    if env_from:
        config.email.from_address = env_from
    return config

from __future__ import annotations

import os
from datetime import timedelta
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_IDLE_INTERVAL,
    DEFAULT_LEASE_TTL,
    DEFAULT_UNBOUNDED_WAIT,
)


class EngineConfig(BaseModel):
    """Scheduling settings for a workflow engine.

    Durations accept a number of seconds or an ISO-8601 duration.
    """

    idle_interval: timedelta = DEFAULT_IDLE_INTERVAL
    lease_ttl: timedelta = DEFAULT_LEASE_TTL
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, gt=0)
    unbounded_wait: timedelta = DEFAULT_UNBOUNDED_WAIT


class TemporaConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    engine: EngineConfig = EngineConfig()


def load_config(path: Optional[str] = None) -> TemporaConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to TEMPORA_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("TEMPORA_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = TemporaConfig(**data)
    else:
        config = TemporaConfig()

    env_db_url = os.getenv("TEMPORA_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config

"""Persistence layer for tempora workflows."""

from __future__ import annotations

import os
from typing import Callable, Dict, Optional

from ..clock import WorkflowClock
from ..config import TemporaConfig, load_config
from .inmemory import InMemoryWorkflowRepository
from .models import RecordState, WorkflowRecord, WorkflowResult
from .repository import WorkflowRepository
from .sqlite import SQLiteWorkflowRepository

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresWorkflowRepository
except ImportError:  # pragma: no cover - optional dependency
    PostgresWorkflowRepository = None  # type: ignore

_repository_instance: WorkflowRepository | None = None


def _sqlite(url: str, clock: Optional[WorkflowClock]) -> WorkflowRepository:
    return SQLiteWorkflowRepository(url.split("://", 1)[1], clock)


def _postgres(url: str, clock: Optional[WorkflowClock]) -> WorkflowRepository:
    if PostgresWorkflowRepository is None:
        raise RuntimeError("Postgres support not available, install tempora[postgres]")
    return PostgresWorkflowRepository(url, clock)


# URL scheme -> store factory
_BACKENDS: Dict[str, Callable[[str, Optional[WorkflowClock]], WorkflowRepository]] = {
    "sqlite": _sqlite,
    "postgres": _postgres,
    "postgresql": _postgres,
}


def _database_url(explicit: Optional[str], config: Optional[TemporaConfig]) -> Optional[str]:
    if explicit:
        return explicit
    if config is None:
        # load_config already applies the environment overrides
        return load_config().database_url
    return os.getenv("TEMPORA_DATABASE_URL") or os.getenv("DATABASE_URL") or config.database_url


def create_repository(
    database_url: Optional[str], clock: Optional[WorkflowClock] = None
) -> WorkflowRepository:
    """Build the store for ``database_url``; no URL means in-memory."""
    if not database_url:
        return InMemoryWorkflowRepository(clock)
    scheme = database_url.split("://", 1)[0] if "://" in database_url else ""
    factory = _BACKENDS.get(scheme)
    if factory is None:
        raise ValueError(f"Unsupported database backend: {database_url}")
    return factory(database_url, clock)


def get_repository(
    database_url: Optional[str] = None,
    config: Optional[TemporaConfig] = None,
    clock: Optional[WorkflowClock] = None,
) -> WorkflowRepository:
    """Return the process-wide workflow repository.

    Without arguments the cached store is reused. Otherwise the URL comes
    from ``database_url``, then ``TEMPORA_DATABASE_URL`` / ``DATABASE_URL``,
    then the configuration, and the new store replaces the cached one.
    """
    global _repository_instance
    reuse = database_url is None and config is None and clock is None
    if reuse and _repository_instance is not None:
        return _repository_instance

    _repository_instance = create_repository(_database_url(database_url, config), clock)
    return _repository_instance


__all__ = [
    "RecordState",
    "WorkflowRecord",
    "WorkflowResult",
    "WorkflowRepository",
    "SQLiteWorkflowRepository",
    "PostgresWorkflowRepository",
    "InMemoryWorkflowRepository",
    "create_repository",
    "get_repository",
]

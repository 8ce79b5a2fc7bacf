"""Repository abstraction for workflow and step records."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Protocol

from ..clock import WorkflowClock
from .models import WorkflowRecord


class WorkflowRepository(Protocol):
    """Protocol for record store backends.

    Workflow rows and step rows share one id space. ``claim_due`` must be
    atomic: two schedulers, in one process or many, never receive the same
    record while its lease is live.
    """

    clock: WorkflowClock

    async def seed(self) -> None:
        """Create storage structures if they do not exist."""

    async def get_step(self, id: str) -> WorkflowRecord | None:
        """Retrieve a step record by id."""

    async def get_workflow(self, id: str) -> WorkflowRecord | None:
        """Retrieve a workflow record by id."""

    async def save(self, record: WorkflowRecord) -> None:
        """Insert or replace ``record`` by id."""

    async def claim_due(
        self, now: datetime, lease_ttl: timedelta, limit: int
    ) -> list[WorkflowRecord]:
        """Lease and return workflow records with ``eta <= now``.

        Records holding an unexpired lease are skipped.
        """

    async def delete(self, id: str) -> None:
        """Remove a workflow record together with its step records."""

    async def list_workflows(self) -> list[WorkflowRecord]:
        """Return all workflow records."""

    async def list_steps(self, workflow_id: str) -> list[WorkflowRecord]:
        """Return the step records of a workflow."""

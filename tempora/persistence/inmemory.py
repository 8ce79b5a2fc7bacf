"""In-memory implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timedelta
from typing import Dict

from ..clock import WorkflowClock
from .models import WorkflowRecord, step_prefix
from .repository import WorkflowRepository


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store workflow state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Records are copied on the way in and
    out so callers only change stored state through ``save``.
    """

    def __init__(self, clock: WorkflowClock | None = None) -> None:
        self.clock = clock or WorkflowClock()
        self._records: Dict[str, WorkflowRecord] = {}
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    async def seed(self) -> None:
        pass

    async def get_step(self, id: str) -> WorkflowRecord | None:
        record = self._records.get(id)
        if record is None or record.is_workflow:
            return None
        return record.model_copy()

    async def get_workflow(self, id: str) -> WorkflowRecord | None:
        record = self._records.get(id)
        if record is None or not record.is_workflow:
            return None
        return record.model_copy()

    async def save(self, record: WorkflowRecord) -> None:
        async with self._lock:
            self._records[record.id] = record.model_copy()

    async def claim_due(
        self, now: datetime, lease_ttl: timedelta, limit: int
    ) -> list[WorkflowRecord]:
        token = uuid.uuid4().hex
        async with self._lock:
            due = sorted(
                (
                    r
                    for r in self._records.values()
                    if r.is_workflow and r.eta <= now and not r.is_leased(now)
                ),
                key=lambda r: r.eta,
            )[:limit]
            for record in due:
                record.lock_token = token
                record.lock_ttl = now + lease_ttl
            return [r.model_copy() for r in due]

    async def delete(self, id: str) -> None:
        prefix = step_prefix(id)
        async with self._lock:
            self._records.pop(id, None)
            for key in [
                k
                for k, r in self._records.items()
                if not r.is_workflow and k.startswith(prefix)
            ]:
                del self._records[key]

    async def list_workflows(self) -> list[WorkflowRecord]:
        return [r.model_copy() for r in self._records.values() if r.is_workflow]

    async def list_steps(self, workflow_id: str) -> list[WorkflowRecord]:
        prefix = step_prefix(workflow_id)
        steps = [
            r.model_copy()
            for r in self._records.values()
            if not r.is_workflow and r.id.startswith(prefix)
        ]
        return sorted(steps, key=lambda r: r.queued)

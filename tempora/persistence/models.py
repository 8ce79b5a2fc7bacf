"""Data models for persisted workflow state."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from ..clock import as_utc


class RecordState(str, Enum):
    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"


class WorkflowRecord(BaseModel):
    """Stored row for a workflow or for one memoized step of a workflow."""

    model_config = ConfigDict(validate_assignment=True)

    id: str
    parent_id: Optional[str] = None
    name: str
    input: Optional[str] = None
    output: Optional[str] = None
    error: Optional[str] = None
    state: RecordState = RecordState.PENDING
    is_workflow: bool = False
    queued: datetime
    updated: datetime
    eta: datetime
    lock_token: Optional[str] = None
    lock_ttl: Optional[datetime] = None

    @field_validator("queued", "updated", "eta", "lock_ttl")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # naive values are UTC
        return as_utc(value) if value is not None else None

    @property
    def is_terminal(self) -> bool:
        return self.state in (RecordState.DONE, RecordState.FAILED)

    def release_lease(self) -> None:
        self.lock_token = None
        self.lock_ttl = None

    def is_leased(self, now: datetime) -> bool:
        return self.lock_token is not None and (
            self.lock_ttl is None or self.lock_ttl > now
        )


class WorkflowResult(BaseModel):
    """Caller-facing projection of a workflow record."""

    state: RecordState
    output: Any = None
    error: Optional[str] = None


def step_prefix(workflow_id: str) -> str:
    """Id prefix shared by every step row of ``workflow_id``."""
    return f"{workflow_id}("

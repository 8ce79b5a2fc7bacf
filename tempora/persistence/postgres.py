"""PostgreSQL implementation of the workflow repository."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta

import asyncpg

from ..clock import WorkflowClock
from .models import RecordState, WorkflowRecord, step_prefix
from .repository import WorkflowRepository

_COLUMNS = (
    "id, parent_id, name, input, output, error, state, is_workflow, "
    "queued, updated, eta, lock_token, lock_ttl"
)


class PostgresWorkflowRepository(WorkflowRepository):
    """Persist workflow state using PostgreSQL."""

    def __init__(self, dsn: str, clock: WorkflowClock | None = None):
        self._dsn = dsn
        self.clock = clock or WorkflowClock()
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_records (
                id TEXT PRIMARY KEY,
                parent_id TEXT,
                name TEXT NOT NULL,
                input TEXT,
                output TEXT,
                error TEXT,
                state TEXT NOT NULL,
                is_workflow BOOLEAN NOT NULL,
                queued TIMESTAMPTZ NOT NULL,
                updated TIMESTAMPTZ NOT NULL,
                eta TIMESTAMPTZ NOT NULL,
                lock_token TEXT,
                lock_ttl TIMESTAMPTZ
            )
            """
        )
        await conn.execute(
            """
            CREATE INDEX IF NOT EXISTS ix_workflow_records_due
            ON workflow_records (is_workflow, eta)
            """
        )

    @staticmethod
    def _to_record(row: asyncpg.Record) -> WorkflowRecord:
        data = dict(row)
        data["state"] = RecordState(data["state"])
        return WorkflowRecord(**data)

    # ------------------------------------------------------------------
    async def seed(self) -> None:
        conn = await self._connect()
        await conn.close()

    async def get_step(self, id: str) -> WorkflowRecord | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM workflow_records WHERE id = $1 AND NOT is_workflow",
                id,
            )
        finally:
            await conn.close()
        return self._to_record(row) if row else None

    async def get_workflow(self, id: str) -> WorkflowRecord | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM workflow_records WHERE id = $1 AND is_workflow",
                id,
            )
        finally:
            await conn.close()
        return self._to_record(row) if row else None

    async def save(self, record: WorkflowRecord) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                f"""
                INSERT INTO workflow_records ({_COLUMNS})
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)
                ON CONFLICT (id) DO UPDATE SET
                    parent_id = EXCLUDED.parent_id,
                    name = EXCLUDED.name,
                    input = EXCLUDED.input,
                    output = EXCLUDED.output,
                    error = EXCLUDED.error,
                    state = EXCLUDED.state,
                    is_workflow = EXCLUDED.is_workflow,
                    queued = EXCLUDED.queued,
                    updated = EXCLUDED.updated,
                    eta = EXCLUDED.eta,
                    lock_token = EXCLUDED.lock_token,
                    lock_ttl = EXCLUDED.lock_ttl
                """,
                record.id,
                record.parent_id,
                record.name,
                record.input,
                record.output,
                record.error,
                record.state.value,
                record.is_workflow,
                record.queued,
                record.updated,
                record.eta,
                record.lock_token,
                record.lock_ttl,
            )
        finally:
            await conn.close()

    async def claim_due(
        self, now: datetime, lease_ttl: timedelta, limit: int
    ) -> list[WorkflowRecord]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                f"""
                UPDATE workflow_records
                SET lock_token = $1, lock_ttl = $2
                WHERE id IN (
                    SELECT id FROM workflow_records
                    WHERE is_workflow
                      AND eta <= $3
                      AND (lock_token IS NULL OR lock_ttl IS NULL OR lock_ttl <= $3)
                    ORDER BY eta
                    LIMIT $4
                    FOR UPDATE SKIP LOCKED
                )
                RETURNING {_COLUMNS}
                """,
                uuid.uuid4().hex,
                now + lease_ttl,
                now,
                limit,
            )
        finally:
            await conn.close()
        return sorted((self._to_record(r) for r in rows), key=lambda r: r.eta)

    async def delete(self, id: str) -> None:
        prefix = step_prefix(id)
        conn = await self._connect()
        try:
            await conn.execute(
                """
                DELETE FROM workflow_records
                WHERE id = $1 OR (NOT is_workflow AND left(id, $2) = $3)
                """,
                id,
                len(prefix),
                prefix,
            )
        finally:
            await conn.close()

    async def list_workflows(self) -> list[WorkflowRecord]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                f"SELECT {_COLUMNS} FROM workflow_records WHERE is_workflow ORDER BY queued"
            )
        finally:
            await conn.close()
        return [self._to_record(r) for r in rows]

    async def list_steps(self, workflow_id: str) -> list[WorkflowRecord]:
        prefix = step_prefix(workflow_id)
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                f"""
                SELECT {_COLUMNS} FROM workflow_records
                WHERE NOT is_workflow AND left(id, $1) = $2
                ORDER BY queued
                """,
                len(prefix),
                prefix,
            )
        finally:
            await conn.close()
        return [self._to_record(r) for r in rows]

"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import sqlite3
import threading
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from ..clock import WorkflowClock, as_utc
from .models import RecordState, WorkflowRecord, step_prefix
from .repository import WorkflowRepository

_COLUMNS = (
    "id, parent_id, name, input, output, error, state, is_workflow, "
    "queued, updated, eta, lock_token, lock_ttl"
)


def _to_text(value: datetime | None) -> str | None:
    # Fixed-width UTC text keeps lexical and chronological order identical.
    if value is None:
        return None
    return as_utc(value).isoformat(timespec="microseconds")


def _from_text(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value)


class SQLiteWorkflowRepository(WorkflowRepository):
    """Persist workflow state using SQLite."""

    def __init__(self, db_path: str | Path, clock: WorkflowClock | None = None):
        self.db_path = str(db_path)
        self.clock = clock or WorkflowClock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._guard = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        with self._guard:
            cur = self._conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS workflow_records (
                    id TEXT PRIMARY KEY,
                    parent_id TEXT,
                    name TEXT NOT NULL,
                    input TEXT,
                    output TEXT,
                    error TEXT,
                    state TEXT NOT NULL,
                    is_workflow INTEGER NOT NULL,
                    queued TEXT NOT NULL,
                    updated TEXT NOT NULL,
                    eta TEXT NOT NULL,
                    lock_token TEXT,
                    lock_ttl TEXT
                )
                """
            )
            cur.execute(
                """
                CREATE INDEX IF NOT EXISTS ix_workflow_records_due
                ON workflow_records (is_workflow, eta)
                """
            )
            self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        with self._guard:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._guard:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._guard:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    def _claim(
        self, token: str, now: str, lease_until: str, limit: int
    ) -> list[sqlite3.Row]:
        # A single UPDATE runs under SQLite's write lock, so the selection
        # and the stamping of the lease cannot interleave with another claim.
        with self._guard:
            cur = self._conn.cursor()
            cur.execute(
                """
                UPDATE workflow_records
                SET lock_token = ?, lock_ttl = ?
                WHERE id IN (
                    SELECT id FROM workflow_records
                    WHERE is_workflow = 1
                      AND eta <= ?
                      AND (lock_token IS NULL OR lock_ttl IS NULL OR lock_ttl <= ?)
                    ORDER BY eta
                    LIMIT ?
                )
                """,
                (token, lease_until, now, now, limit),
            )
            self._conn.commit()
            cur.execute(
                f"SELECT {_COLUMNS} FROM workflow_records WHERE lock_token = ? ORDER BY eta",
                (token,),
            )
            return cur.fetchall()

    @staticmethod
    def _to_record(row: sqlite3.Row) -> WorkflowRecord:
        return WorkflowRecord(
            id=row["id"],
            parent_id=row["parent_id"],
            name=row["name"],
            input=row["input"],
            output=row["output"],
            error=row["error"],
            state=RecordState(row["state"]),
            is_workflow=bool(row["is_workflow"]),
            queued=_from_text(row["queued"]),
            updated=_from_text(row["updated"]),
            eta=_from_text(row["eta"]),
            lock_token=row["lock_token"],
            lock_ttl=_from_text(row["lock_ttl"]),
        )

    # ------------------------------------------------------------------
    # Repository API
    async def seed(self) -> None:
        await asyncio.to_thread(self._ensure_schema)

    async def get_step(self, id: str) -> WorkflowRecord | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_COLUMNS} FROM workflow_records WHERE id = ? AND is_workflow = 0",
            id,
        )
        return self._to_record(row) if row else None

    async def get_workflow(self, id: str) -> WorkflowRecord | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_COLUMNS} FROM workflow_records WHERE id = ? AND is_workflow = 1",
            id,
        )
        return self._to_record(row) if row else None

    async def save(self, record: WorkflowRecord) -> None:
        await asyncio.to_thread(
            self._execute,
            f"""
            INSERT INTO workflow_records ({_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                parent_id = excluded.parent_id,
                name = excluded.name,
                input = excluded.input,
                output = excluded.output,
                error = excluded.error,
                state = excluded.state,
                is_workflow = excluded.is_workflow,
                queued = excluded.queued,
                updated = excluded.updated,
                eta = excluded.eta,
                lock_token = excluded.lock_token,
                lock_ttl = excluded.lock_ttl
            """,
            record.id,
            record.parent_id,
            record.name,
            record.input,
            record.output,
            record.error,
            record.state.value,
            int(record.is_workflow),
            _to_text(record.queued),
            _to_text(record.updated),
            _to_text(record.eta),
            record.lock_token,
            _to_text(record.lock_ttl),
        )

    async def claim_due(
        self, now: datetime, lease_ttl: timedelta, limit: int
    ) -> list[WorkflowRecord]:
        rows = await asyncio.to_thread(
            self._claim,
            uuid.uuid4().hex,
            _to_text(now),
            _to_text(now + lease_ttl),
            limit,
        )
        return [self._to_record(r) for r in rows]

    async def delete(self, id: str) -> None:
        prefix = step_prefix(id)
        await asyncio.to_thread(
            self._execute,
            """
            DELETE FROM workflow_records
            WHERE id = ? OR (is_workflow = 0 AND substr(id, 1, ?) = ?)
            """,
            id,
            len(prefix),
            prefix,
        )

    async def list_workflows(self) -> list[WorkflowRecord]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_COLUMNS} FROM workflow_records WHERE is_workflow = 1 ORDER BY queued",
        )
        return [self._to_record(r) for r in rows]

    async def list_steps(self, workflow_id: str) -> list[WorkflowRecord]:
        prefix = step_prefix(workflow_id)
        rows = await asyncio.to_thread(
            self._fetchall,
            f"""
            SELECT {_COLUMNS} FROM workflow_records
            WHERE is_workflow = 0 AND substr(id, 1, ?) = ?
            ORDER BY queued, rowid
            """,
            len(prefix),
            prefix,
        )
        return [self._to_record(r) for r in rows]

    def close(self) -> None:
        self._conn.close()

"""Runs one due workflow record to its next stable point."""

from __future__ import annotations

import asyncio
import logging
from types import MethodType
from typing import TYPE_CHECKING

from .binder import StepBinder
from .constants import CHILD_RETENTION
from .contracts import Completed, StepOutcome, Suspended, SuspensionSignal
from .persistence import RecordState, WorkflowRecord
from .serialization import dumps, format_error, loads
from .workflow import Workflow

if TYPE_CHECKING:
    from .engine import WorkflowEngine

logger = logging.getLogger(__name__)


class WorkflowRunner:
    """Executes workflow records claimed by the scheduler."""

    def __init__(self, engine: "WorkflowEngine") -> None:
        self._engine = engine

    async def run(self, record: WorkflowRecord) -> None:
        repository = self._engine.repository
        clock = repository.clock

        if record.is_terminal:
            if record.eta <= clock.utc_now:
                await repository.delete(record.id)
                logger.info(f"Removed expired workflow {record.id} ({record.state.value})")
            return

        scope = self._engine.services.create_scope()
        try:
            schema = self._engine.registry.get_by_name(record.name)
            instance = schema.workflow_type(
                input=schema.parse_input(loads(record.input)),
                eta=record.eta,
                id=record.id,
                current_time=record.updated,
                engine=self._engine,
            )
            suspension = SuspensionSignal()
            binder = StepBinder(repository, scope, suspension)
            for descriptor in schema.activities:
                func = getattr(schema.workflow_type, descriptor.name)
                setattr(
                    instance, descriptor.name, MethodType(binder.bind(descriptor, func), instance)
                )
            instance._suspension = suspension
            scope.add(schema.workflow_type, instance)

            try:
                outcome = await self._drive(instance, suspension)
            except Exception as exc:
                now = clock.utc_now
                record.error = format_error(exc)
                record.state = RecordState.FAILED
                record.updated = now
                record.eta = now + instance.failed_preserve_time
                logger.error(f"Workflow {record.id} ({record.name}) failed: {exc}")
            else:
                now = clock.utc_now
                if isinstance(outcome, Suspended):
                    ttl = outcome.ttl
                    if ttl is None:
                        ttl = self._engine.config.unbounded_wait
                    record.eta = now + ttl
                    record.release_lease()
                    await repository.save(record)
                    logger.debug(f"Workflow {record.id} suspended until {record.eta}")
                    return
                record.output = dumps(outcome.value)
                record.state = RecordState.DONE
                record.updated = now
                record.eta = now + instance.preserve_time
                logger.info(f"Workflow {record.id} ({record.name}) completed")

            if record.parent_id:
                record.eta = now + CHILD_RETENTION

            record.release_lease()
            await repository.save(record)

            if record.parent_id:
                await self._wake_parent(record.parent_id)
        finally:
            scope.dispose()

    async def _drive(self, instance: Workflow, suspension: SuspensionSignal) -> StepOutcome:
        """Run the body until it returns, raises or reports a suspension."""
        body = asyncio.ensure_future(instance.run())
        try:
            await asyncio.wait({body, suspension.outcome}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not body.done():
                body.cancel()
                await asyncio.wait({body})

        if suspension.is_set:
            if not body.cancelled() and body.exception() is not None:
                logger.warning(
                    f"Workflow {instance.id} raised while unwinding a suspension: "
                    f"{body.exception()!r}"
                )
            return suspension.outcome.result()
        return Completed(body.result())

    async def _wake_parent(self, parent_id: str) -> None:
        repository = self._engine.repository
        parent = await repository.get_workflow(parent_id)
        if parent is None:
            return
        parent.release_lease()
        parent.eta = repository.clock.utc_now
        await repository.save(parent)
        logger.debug(f"Woke parent workflow {parent_id}")

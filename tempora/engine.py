"""Workflow engine: registration, queueing, lookup and child workflows."""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Any, Optional, Type, Union

from .clock import WorkflowClock, as_utc
from .config import EngineConfig, load_config
from .constants import CHILD_ID_INLINE_LIMIT
from .contracts import Completed, StepOutcome, Suspended
from .di import ServiceProvider
from .errors import ChildWorkflowFailedError, WorkflowExistsError
from .persistence import (
    RecordState,
    WorkflowRecord,
    WorkflowRepository,
    WorkflowResult,
    get_repository,
)
from .registry import REGISTRY, WorkflowRegistry, WorkflowSchema
from .runner import WorkflowRunner
from .scheduler import SchedulerLoop
from .serialization import digest, dumps, loads
from .workflow import Workflow

logger = logging.getLogger(__name__)


class WorkflowEngine:
    """Entry point for queueing workflows and running them.

    Args:
        repository: Record store shared by every engine process. Defaults to
            :func:`~tempora.persistence.get_repository`.
        services: Root service provider. Activities resolve injected
            collaborators from scopes created off it.
        registry: Workflow registry; the process-wide ``REGISTRY`` by default.
        config: Scheduling settings; loaded from configuration by default.
    """

    def __init__(
        self,
        repository: Optional[WorkflowRepository] = None,
        *,
        services: Optional[ServiceProvider] = None,
        registry: Optional[WorkflowRegistry] = None,
        config: Optional[EngineConfig] = None,
    ) -> None:
        self.repository = repository or get_repository()
        self.registry = registry if registry is not None else REGISTRY
        self.config = config or load_config().engine
        self.services = services or ServiceProvider()
        self.services.add(WorkflowEngine, self)
        self.services.add(WorkflowClock, self.repository.clock)
        self.runner = WorkflowRunner(self)
        self.scheduler = SchedulerLoop(
            self,
            idle_interval=self.config.idle_interval,
            lease_ttl=self.config.lease_ttl,
            batch_size=self.config.batch_size,
        )

    @property
    def clock(self) -> WorkflowClock:
        return self.repository.clock

    def register(self, workflow_type: Type[Workflow]) -> WorkflowSchema:
        return self.registry.register(workflow_type)

    async def queue(
        self,
        workflow_type: Type[Workflow],
        input: Any = None,
        *,
        id: Optional[str] = None,
        throw_if_exists: bool = False,
        eta: Optional[datetime] = None,
        parent_id: Optional[str] = None,
    ) -> str:
        """Store a new workflow instance and return its id.

        Queueing an id that already exists returns it unchanged, or raises
        :class:`WorkflowExistsError` when ``throw_if_exists`` is set.
        """
        if id:
            if await self.repository.get_workflow(id) is not None:
                if throw_if_exists:
                    raise WorkflowExistsError(f"Workflow with ID {id} already exists")
                return id
        else:
            id = str(uuid.uuid4())
            while await self.repository.get_workflow(id) is not None:
                logger.info(f"Generating workflow id again, {id} is taken")
                id = str(uuid.uuid4())

        schema = self.register(workflow_type)

        now = self.clock.utc_now
        due = as_utc(eta) if eta is not None else now
        await self.repository.save(
            WorkflowRecord(
                id=id,
                parent_id=parent_id,
                name=schema.name,
                input=dumps(input),
                is_workflow=True,
                queued=now,
                updated=now,
                eta=due,
            )
        )
        logger.info(f"Queued workflow {schema.name} as {id} due at {due}")

        if due <= self.clock.utc_now:
            self.scheduler.wake()
        return id

    async def get(
        self,
        workflow: Union[Type[Workflow], str],
        id: Optional[str] = None,
    ) -> Optional[WorkflowResult]:
        """Return the current result projection of a workflow.

        Accepts ``get(id)`` or ``get(WorkflowType, id)``. Returns ``None``
        once the record no longer exists.
        """
        if id is None:
            if not isinstance(workflow, str):
                raise TypeError("get() needs a workflow id")
            id = workflow
        record = await self.repository.get_workflow(id)
        if record is None:
            return None
        return WorkflowResult(
            state=record.state,
            output=loads(record.output),
            error=record.error,
        )

    def child_id(self, parent: Workflow, schema: WorkflowSchema, input: Any) -> str:
        input_text = dumps(input)
        id = f"{parent.id}-child({schema.name},{input_text})"
        if len(id) >= CHILD_ID_INLINE_LIMIT:
            id = f"{parent.id}-child({schema.name},{digest(input_text)})"
        return id

    async def resolve_child(
        self, parent: Workflow, workflow_type: Type[Workflow], input: Any
    ) -> StepOutcome:
        """Return the child's output, or queue it and report a suspension."""
        schema = self.register(workflow_type)
        id = self.child_id(parent, schema, input)

        child = await self.repository.get_workflow(id)
        if child is not None:
            if child.state is RecordState.DONE:
                return Completed(loads(child.output))
            if child.state is RecordState.FAILED:
                raise ChildWorkflowFailedError(id, child.error)
            return Suspended()

        await self.queue(workflow_type, input, id=id, parent_id=parent.id)
        return Suspended()

    async def run_child(
        self, parent: Workflow, workflow_type: Type[Workflow], input: Any = None
    ) -> Any:
        outcome = await self.resolve_child(parent, workflow_type, input)
        if isinstance(outcome, Suspended):
            if parent._suspension is None:
                raise RuntimeError("run_child() is only available while an engine runs the workflow")
            await parent._suspension.suspend(outcome)
        return outcome.value

    async def process_queue_once(self) -> int:
        """Claim and run one batch of due workflows; return the batch size."""
        return await self.scheduler.process_once()

    async def start(self, stop: Optional[asyncio.Event] = None) -> None:
        """Serve due workflows until ``stop`` is set."""
        self.registry.freeze()
        await self.repository.seed()
        await self.scheduler.run(stop)

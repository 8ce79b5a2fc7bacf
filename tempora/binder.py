"""Replay-aware execution of workflow activities."""

from __future__ import annotations

import inspect
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, Tuple

from .clock import to_epoch_ms
from .constants import STEP_KEY_INLINE_LIMIT, TIMER_ACTIVITIES, UNIQUE_STEP_TIMESTAMP
from .contracts import Completed, StepOutcome, Suspended, SuspensionSignal
from .di import ServiceProvider
from .errors import ActivityFailedError
from .persistence import RecordState, WorkflowRecord, WorkflowRepository
from .registry import ActivityDescriptor
from .serialization import compact_key, dumps, format_error, loads, to_timedelta

if TYPE_CHECKING:
    from .workflow import Workflow

logger = logging.getLogger(__name__)


def serialize_call(args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> str:
    if kwargs:
        return dumps([list(args), kwargs])
    return dumps(list(args))


def step_id(workflow: "Workflow", descriptor: ActivityDescriptor, call_input: str) -> str:
    """Deterministic id of one activity call.

    Combines the workflow id, the (possibly hashed) arguments and the
    logical time in whole milliseconds, or ``0`` for unique activities.
    """
    key = compact_key(call_input, STEP_KEY_INLINE_LIMIT)
    if descriptor.unique:
        timestamp = UNIQUE_STEP_TIMESTAMP
    else:
        timestamp = str(to_epoch_ms(workflow.current_time))
    return f"{workflow.id}({key},{timestamp})"


class StepBinder:
    """Binds the activities of one workflow instance for one runner pass."""

    def __init__(
        self,
        repository: WorkflowRepository,
        scope: ServiceProvider,
        suspension: SuspensionSignal,
    ) -> None:
        self._repository = repository
        self._scope = scope
        self._suspension = suspension

    def bind(
        self, descriptor: ActivityDescriptor, func: Callable[..., Any]
    ) -> Callable[..., Any]:
        """Wrap ``func`` so calls go through :meth:`execute`.

        The returned coroutine function takes the workflow as first argument.
        A suspended step parks the caller; the runner then unwinds the body.
        """

        async def run_step(workflow: "Workflow", *args: Any, **kwargs: Any) -> Any:
            outcome = await self.execute(workflow, descriptor, func, args, kwargs)
            if isinstance(outcome, Suspended):
                await self._suspension.suspend(outcome)
            return outcome.value

        run_step.__name__ = descriptor.name
        run_step.__doc__ = func.__doc__
        return run_step

    async def execute(
        self,
        workflow: "Workflow",
        descriptor: ActivityDescriptor,
        func: Callable[..., Any],
        args: Tuple[Any, ...],
        kwargs: Dict[str, Any],
    ) -> StepOutcome:
        first_injected = descriptor.arity - len(descriptor.inject)
        # services never take part in the step key
        call_input = serialize_call(
            args[:first_injected] + args[descriptor.arity :],
            {k: v for k, v in kwargs.items() if k not in descriptor.injected_params},
        )
        id = step_id(workflow, descriptor, call_input)

        existing = await self._repository.get_step(id)
        if existing is not None:
            if existing.state is RecordState.FAILED:
                workflow.current_time = existing.updated
                raise ActivityFailedError(existing.error)
            if existing.state is RecordState.DONE:
                workflow.current_time = existing.updated
                return Completed(loads(existing.output))

        clock = self._repository.clock
        start = clock.utc_now
        step = existing or WorkflowRecord(
            id=id,
            name=descriptor.name,
            input=call_input,
            is_workflow=False,
            queued=start,
            updated=workflow.current_time,
            eta=workflow.eta,
        )

        if descriptor.name in TIMER_ACTIVITIES:
            return await self._run_timer(workflow, step, args, kwargs, start)

        call_kwargs = dict(kwargs)
        for index, (param, service_type) in enumerate(
            zip(descriptor.injected_params, descriptor.inject)
        ):
            position = first_injected + index
            if position < len(args) or param in call_kwargs:
                continue
            call_kwargs[param] = self._scope.resolve(service_type)

        try:
            result = func(workflow, *args, **call_kwargs)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            now = clock.utc_now
            step.state = RecordState.FAILED
            step.error = format_error(exc)
            step.updated = now
            step.eta = now
            workflow.current_time = now
            await self._repository.save(step)
            logger.warning(f"Activity {descriptor.name} of workflow {workflow.id} failed: {exc}")
            raise ActivityFailedError(step.error) from exc

        now = clock.utc_now
        step.state = RecordState.DONE
        step.output = dumps(result)
        step.updated = now
        step.eta = now
        workflow.current_time = now
        await self._repository.save(step)
        return Completed(result)

    async def _run_timer(
        self,
        workflow: "Workflow",
        step: WorkflowRecord,
        args: Tuple[Any, ...],
        kwargs: Dict[str, Any],
        start: datetime,
    ) -> StepOutcome:
        duration = to_timedelta(args[0] if args else kwargs["duration"])
        due = workflow.current_time + duration
        step.eta = due

        if due <= start:
            step.state = RecordState.DONE
            step.output = dumps(None)
            step.updated = due
            workflow.current_time = due
            await self._repository.save(step)
            return Completed(None)

        await self._repository.save(step)
        return Suspended(due - start)

"""Base class for durable workflows and the activity marker."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    ClassVar,
    Generic,
    Iterable,
    Optional,
    Tuple,
    Type,
    TypeVar,
)

from .constants import DEFAULT_FAILED_PRESERVE_TIME, DEFAULT_PRESERVE_TIME

if TYPE_CHECKING:
    from .contracts import SuspensionSignal
    from .engine import WorkflowEngine

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")
F = TypeVar("F", bound=Callable[..., Any])

ACTIVITY_MARKER = "__tempora_activity__"


@dataclass(frozen=True)
class ActivityOptions:
    """Options attached to a method by :func:`activity`."""

    unique: bool = False
    inject: Tuple[type, ...] = ()


def activity(
    func: Optional[F] = None,
    *,
    unique: bool = False,
    inject: Iterable[type] = (),
) -> Any:
    """Mark a workflow method as an activity.

    Usable bare (``@activity``) or with options::

        @activity(unique=True, inject=[Mailer])
        async def send_welcome(self, user_id, mailer=None): ...

    ``unique`` activities run at most once per workflow, whatever the
    logical time of the call. ``inject`` lists the types of the trailing
    parameters that are resolved from the active scope when the caller does
    not pass them.
    """

    options = ActivityOptions(unique=unique, inject=tuple(inject))

    def mark(f: F) -> F:
        setattr(f, ACTIVITY_MARKER, options)
        return f

    if func is not None:
        return mark(func)
    return mark


class Workflow(Generic[InputT, OutputT]):
    """A long-running process made of replayable activity steps.

    Subclasses implement :meth:`run`. The body is re-executed from the top
    every time the workflow is scheduled, so it must be deterministic given
    the results of the activities it has already completed.
    """

    # Registry name; defaults to the class name.
    name: ClassVar[Optional[str]] = None
    # Optional pydantic model the stored input is validated into.
    input_type: ClassVar[Optional[Type[Any]]] = None

    preserve_time: ClassVar[timedelta] = DEFAULT_PRESERVE_TIME
    failed_preserve_time: ClassVar[timedelta] = DEFAULT_FAILED_PRESERVE_TIME

    def __init__(
        self,
        *,
        input: InputT,
        eta: datetime,
        id: str,
        current_time: datetime,
        engine: "WorkflowEngine",
    ) -> None:
        self.input = input
        self.eta = eta
        self.id = id
        self.current_time = current_time
        self.engine = engine
        self._suspension: Optional["SuspensionSignal"] = None

    async def run(self) -> OutputT:
        raise NotImplementedError

    @activity
    async def delay(self, duration: timedelta) -> None:
        """Pause the workflow for ``duration`` of logical time."""
        raise RuntimeError("delay() is only available while an engine runs the workflow")

    @activity
    async def wait_for_external_event(self, duration: timedelta) -> None:
        """Wait up to ``duration``; there is no signal channel, so this is a timer."""
        raise RuntimeError(
            "wait_for_external_event() is only available while an engine runs the workflow"
        )

    async def run_child(self, workflow_type: Type["Workflow"], input: Any = None) -> Any:
        """Run ``workflow_type`` as a child and return its output.

        The parent suspends until the child finishes; a failed child raises
        :class:`~tempora.errors.ChildWorkflowFailedError`.
        """
        return await self.engine.run_child(self, workflow_type, input)

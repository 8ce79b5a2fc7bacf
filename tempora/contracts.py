"""Step outcomes exchanged between the binder, the engine and the runner."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, NoReturn, Optional, Union


@dataclass(frozen=True)
class Completed:
    """The step has a result; execution continues."""

    value: Any = None


@dataclass(frozen=True)
class Suspended:
    """The workflow must pause.

    ``ttl`` is how long until the workflow should run again; ``None`` means
    it waits until something wakes it explicitly (a finishing child).
    """

    ttl: Optional[timedelta] = None


StepOutcome = Union[Completed, Suspended]


class SuspensionSignal:
    """Collects the first suspension reported during one runner pass.

    Code running inside a workflow body calls :meth:`suspend`, which records
    the outcome and parks the caller. The runner watches :attr:`outcome`
    and cancels the body once it resolves.
    """

    def __init__(self) -> None:
        self.outcome: asyncio.Future[Suspended] = (
            asyncio.get_running_loop().create_future()
        )

    @property
    def is_set(self) -> bool:
        return self.outcome.done()

    async def suspend(self, outcome: Suspended) -> NoReturn:
        if not self.outcome.done():
            self.outcome.set_result(outcome)
        # Parked until the runner cancels the body.
        await asyncio.get_running_loop().create_future()
        raise AssertionError("suspended workflow body resumed")

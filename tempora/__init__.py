"""tempora: durable, replayable workflow orchestration."""

from .clock import ManualClock, WorkflowClock
from .contracts import Completed, Suspended
from .di import ServiceProvider
from .engine import WorkflowEngine
from .errors import (
    ActivityFailedError,
    ChildWorkflowFailedError,
    TemporaError,
    WorkflowExistsError,
    WorkflowNotRegisteredError,
)
from .persistence import WorkflowResult, get_repository
from .registry import REGISTRY, WorkflowRegistry
from .workflow import Workflow, activity

__version__ = "0.1.0"
__all__ = [
    "ActivityFailedError",
    "ChildWorkflowFailedError",
    "Completed",
    "ManualClock",
    "REGISTRY",
    "ServiceProvider",
    "Suspended",
    "TemporaError",
    "Workflow",
    "WorkflowClock",
    "WorkflowEngine",
    "WorkflowExistsError",
    "WorkflowNotRegisteredError",
    "WorkflowRegistry",
    "WorkflowResult",
    "activity",
    "get_repository",
]

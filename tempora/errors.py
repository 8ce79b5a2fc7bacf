"""Exceptions raised by the tempora engine."""

from __future__ import annotations


class TemporaError(Exception):
    """Base class for engine errors."""


class WorkflowExistsError(TemporaError):
    """A workflow with the requested id is already stored."""


class WorkflowNotRegisteredError(TemporaError, LookupError):
    """No workflow type is registered under the requested name."""


class RegistryFrozenError(TemporaError):
    """A new workflow type was registered after the engine started serving."""


class ServiceNotRegisteredError(TemporaError, LookupError):
    """A dependency could not be resolved from the active scope."""


class ActivityFailedError(TemporaError):
    """Replays the failure stored against a step or child workflow.

    ``detail`` holds the formatted traceback captured when the activity
    originally failed.
    """

    def __init__(self, detail: str | None) -> None:
        super().__init__(detail or "Activity failed")
        self.detail = detail


class ChildWorkflowFailedError(ActivityFailedError):
    """A child workflow finished in the ``failed`` state."""

    def __init__(self, child_id: str, detail: str | None) -> None:
        super().__init__(detail)
        self.child_id = child_id

"""Pydantic models describing registered workflow types."""

from __future__ import annotations

import inspect
from typing import Any, Tuple, Type

from pydantic import BaseModel, ConfigDict, TypeAdapter

from ..workflow import ACTIVITY_MARKER, ActivityOptions, Workflow

_POSITIONAL = (
    inspect.Parameter.POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD,
)


class ActivityDescriptor(BaseModel):
    """One declared activity of a workflow type."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    name: str
    unique: bool = False
    inject: Tuple[type, ...] = ()
    # Number of positional parameters after ``self``.
    arity: int = 0
    # Names of the trailing parameters filled from ``inject``.
    injected_params: Tuple[str, ...] = ()


class WorkflowSchema(BaseModel):
    """Everything the runner needs to rebuild and bind a workflow."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    name: str
    workflow_type: Type[Workflow]
    activities: Tuple[ActivityDescriptor, ...] = ()

    @property
    def activity_names(self) -> list[str]:
        return [a.name for a in self.activities if not a.unique]

    @property
    def unique_activity_names(self) -> list[str]:
        return [a.name for a in self.activities if a.unique]

    def parse_input(self, raw: Any) -> Any:
        """Validate stored input into the workflow's ``input_type``, if any."""
        input_type = self.workflow_type.input_type
        if input_type is None or raw is None:
            return raw
        return TypeAdapter(input_type).validate_python(raw)


def describe_activity(name: str, func: Any, options: ActivityOptions) -> ActivityDescriptor:
    params = list(inspect.signature(func).parameters.values())[1:]
    positional = [p for p in params if p.kind in _POSITIONAL]
    if len(options.inject) > len(positional):
        raise TypeError(
            f"Activity {name} injects {len(options.inject)} services "
            f"but only takes {len(positional)} parameters"
        )
    injected = positional[len(positional) - len(options.inject) :]
    return ActivityDescriptor(
        name=name,
        unique=options.unique,
        inject=options.inject,
        arity=len(positional),
        injected_params=tuple(p.name for p in injected),
    )


def build_schema(workflow_type: Type[Workflow]) -> WorkflowSchema:
    """Collect the activities declared on ``workflow_type`` and its bases."""

    if not (isinstance(workflow_type, type) and issubclass(workflow_type, Workflow)):
        raise TypeError(f"{workflow_type!r} is not a Workflow subclass")

    names: dict[str, None] = {}
    for klass in reversed(workflow_type.__mro__):
        for attr, member in vars(klass).items():
            if hasattr(member, ACTIVITY_MARKER):
                names.setdefault(attr)

    activities = []
    for attr in names:
        func = getattr(workflow_type, attr)
        options = getattr(func, ACTIVITY_MARKER, None)
        # an override without the marker is a plain method again
        if options is None:
            continue
        activities.append(describe_activity(attr, func, options))

    return WorkflowSchema(
        name=workflow_type.name or workflow_type.__name__,
        workflow_type=workflow_type,
        activities=tuple(activities),
    )

"""Workflow registry and schema models."""

from __future__ import annotations

import logging
from typing import Dict, Optional, Type

from ..errors import RegistryFrozenError, WorkflowNotRegisteredError
from ..workflow import Workflow
from .models import ActivityDescriptor, WorkflowSchema, build_schema

logger = logging.getLogger(__name__)


class WorkflowRegistry:
    """Known workflow types, keyed by type and by registered name.

    Types are registered at startup. Once :meth:`freeze` has been called,
    looking up or re-registering known types still works but new types are
    refused.
    """

    def __init__(self) -> None:
        self._by_type: Dict[type, WorkflowSchema] = {}
        self._by_name: Dict[str, WorkflowSchema] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        self._frozen = True

    def register(self, workflow_type: Type[Workflow]) -> WorkflowSchema:
        """Return the schema of ``workflow_type``, building it on first use."""
        schema = self._by_type.get(workflow_type)
        if schema is not None:
            return schema
        if self._frozen:
            raise RegistryFrozenError(
                f"Cannot register {workflow_type.__name__} after the engine started"
            )

        schema = build_schema(workflow_type)
        existing = self._by_name.get(schema.name)
        if existing is not None:
            raise ValueError(
                f"Workflow name {schema.name!r} is already registered "
                f"by {existing.workflow_type.__qualname__}"
            )
        self._by_type[workflow_type] = schema
        self._by_name[schema.name] = schema
        logger.debug(
            f"Registered workflow {schema.name} with activities "
            f"{[a.name for a in schema.activities]}"
        )
        return schema

    def get(self, workflow_type: Type[Workflow]) -> Optional[WorkflowSchema]:
        return self._by_type.get(workflow_type)

    def get_by_name(self, name: str) -> WorkflowSchema:
        try:
            return self._by_name[name]
        except KeyError:
            raise WorkflowNotRegisteredError(f"No workflow registered as {name!r}") from None

    def names(self) -> list[str]:
        return sorted(self._by_name)

    def __contains__(self, workflow_type: object) -> bool:
        return workflow_type in self._by_type


# Process-wide registry used by engines that are not given their own.
REGISTRY = WorkflowRegistry()

__all__ = [
    "ActivityDescriptor",
    "WorkflowSchema",
    "WorkflowRegistry",
    "REGISTRY",
    "build_schema",
]

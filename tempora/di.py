"""Minimal service scopes used to inject collaborators into activities."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Type, TypeVar

from .errors import ServiceNotRegisteredError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ServiceProvider:
    """Maps service types to instances, falling back to a parent scope.

    The engine owns a root provider for process-wide services. Each runner
    pass works in a child scope created with :meth:`create_scope` and
    disposed when the pass ends.
    """

    def __init__(self, parent: Optional["ServiceProvider"] = None) -> None:
        self._parent = parent
        self._services: Dict[type, Any] = {}
        self._disposables: List[Any] = []

    def add(self, service_type: Type[T], instance: T, *, dispose: bool = False) -> None:
        """Register ``instance`` under ``service_type`` in this scope.

        With ``dispose=True`` the instance is closed when the scope is.
        """
        self._services[service_type] = instance
        if dispose:
            self._disposables.append(instance)

    def resolve(self, service_type: Type[T]) -> T:
        provider: Optional[ServiceProvider] = self
        while provider is not None:
            if service_type in provider._services:
                return provider._services[service_type]
            for instance in provider._services.values():
                if isinstance(instance, service_type):
                    return instance
            provider = provider._parent
        raise ServiceNotRegisteredError(
            f"No service registered for {getattr(service_type, '__name__', service_type)}"
        )

    def create_scope(self) -> "ServiceProvider":
        return ServiceProvider(parent=self)

    def dispose(self) -> None:
        disposables, self._disposables = self._disposables, []
        for instance in reversed(disposables):
            close = getattr(instance, "close", None)
            if callable(close):
                try:
                    close()
                except Exception:
                    logger.exception(f"Failed to dispose {type(instance).__name__}")
        self._services.clear()

    def __enter__(self) -> "ServiceProvider":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.dispose()

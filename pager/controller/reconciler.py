"""Reconciler contract and the bundled Alert reconciler.

Reconcilers must be idempotent: the worker loop may call them repeatedly
with the same or a staler snapshot, from any worker task.  A reconciler
signals failure by raising; the worker requeues the key with backoff.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import Counter
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

import structlog

from pager.models.resources import Alert, ResourceKey

_log = structlog.get_logger(component="controller.reconciler")

T = TypeVar("T")


class Reconciler(ABC, Generic[T]):
    """Abstract base class for all reconcilers."""

    @abstractmethod
    async def reconcile(self, obj: T) -> None:
        """Drive the resource described by *obj* toward its desired state.

        Raises:
            Exception: any exception marks the attempt as failed.
        """

    async def cleanup(self, key: ResourceKey) -> None:  # noqa: B027
        """Handle a key whose resource no longer exists.  Default: nothing to do."""


class FuncReconciler(Reconciler[T]):
    """Adapts a plain coroutine function ``fn(obj)`` to the Reconciler interface."""

    def __init__(self, fn: Callable[[T], Awaitable[None]]) -> None:
        self._fn = fn

    async def reconcile(self, obj: T) -> None:
        await self._fn(obj)


class AlertReconciler(Reconciler[Alert]):
    """Placeholder business logic: logs the alert and records that it ran."""

    def __init__(self) -> None:
        self.runs: Counter[ResourceKey] = Counter()
        self.cleanups: Counter[ResourceKey] = Counter()

    async def reconcile(self, obj: Alert) -> None:
        self.runs[obj.key] += 1
        _log.info(
            "got_alert",
            namespace=obj.namespace,
            name=obj.name,
            message=obj.spec.message,
            resource_version=obj.resource_version,
        )

    async def cleanup(self, key: ResourceKey) -> None:
        self.cleanups[key] += 1
        _log.info("alert_gone", key=str(key))

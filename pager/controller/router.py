"""Event router: watch notifications in, queue keys out.

The router never holds objects; it only derives keys.  Workers re-read the
current state from the cache when they process a key, which is what makes
the controller level-triggered.
"""

from __future__ import annotations

from collections.abc import Callable

import structlog

from pager.controller.keys import deletion_handling_key
from pager.controller.queue import WorkQueue
from pager.errors import MalformedObjectError
from pager.models.resources import ResourceKey
from pager.observability.reporting import ErrorSink, report_error

_log = structlog.get_logger(component="controller.router")


class EventRouter:
    """Feeds add/update/delete notifications into a work queue.

    Update notifications whose old and new objects compare equal are
    dropped; these are resync replays and carry no change.

    Args:
        queue:    Destination queue.
        key_func: Key extractor; must accept deletion tombstones.
        on_error: Error sink for objects whose key cannot be derived.
    """

    def __init__(
        self,
        queue: WorkQueue[ResourceKey],
        key_func: Callable[[object], ResourceKey] = deletion_handling_key,
        on_error: ErrorSink = report_error,
    ) -> None:
        self._queue = queue
        self._key_func = key_func
        self._on_error = on_error

    def on_add(self, obj: object) -> None:
        self._enqueue(obj, "add")

    def on_update(self, old: object, new: object) -> None:
        if old == new:
            _log.debug("update_suppressed", object_type=type(new).__name__)
            return
        self._enqueue(new, "update")

    def on_delete(self, obj: object) -> None:
        self._enqueue(obj, "delete")

    def _enqueue(self, obj: object, event: str) -> None:
        try:
            key = self._key_func(obj)
        except MalformedObjectError as exc:
            self._on_error(exc, component="router", event=event)
            return
        self._queue.add(key)

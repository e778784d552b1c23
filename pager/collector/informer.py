"""List/watch informer feeding the local cache and event handlers.

The informer lists the full collection, replaces the store, marks itself
synced, and only then starts watching from the listed resource version.
Every change is applied to the store before handlers are notified, so a
worker resolving a key always sees at least the state that triggered it.

Recovery:
    * A watch that ends normally is restarted from the last seen version.
    * An expired watch (HTTP 410 / ERROR event) triggers an immediate relist.
    * Any other transport error backs off exponentially, then relists.

A relist emits update notifications for objects still present and tombstone
delete notifications for objects that disappeared while disconnected.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Mapping
from typing import Any, Generic, Protocol, TypeVar

import structlog

from pager.cache.store import Lister, Store
from pager.controller.keys import meta_namespace_key
from pager.errors import MalformedObjectError, WatchExpiredError
from pager.models.resources import Alert, DeletedFinalStateUnknown, ResourceKey
from pager.observability.metrics import informer_events_total
from pager.observability.reporting import ErrorSink, report_error

_log = structlog.get_logger(component="collector.informer")

T = TypeVar("T")

_BACKOFF_BASE_SECONDS = 1.0
_BACKOFF_MAX_SECONDS = 30.0


class ListWatcher(Protocol):
    """Watch transport consumed by the informer."""

    async def list(self) -> tuple[list[dict[str, Any]], str]:
        """Return every object and the collection resource version."""
        ...

    def watch(self, resource_version: str) -> AsyncIterator[tuple[str, dict[str, Any]]]:
        """Yield ``(event_type, raw_object)`` pairs newer than *resource_version*."""
        ...


class ResourceEventHandler(Protocol):
    """Receiver of informer notifications."""

    def on_add(self, obj: Any) -> None: ...

    def on_update(self, old: Any, new: Any) -> None: ...

    def on_delete(self, obj: Any) -> None: ...


class Informer(Generic[T]):
    """Keeps a :class:`Store` in step with a :class:`ListWatcher`.

    Args:
        list_watcher:  Watch transport.
        decode:        Converts a raw object into a snapshot.
        resync_period: Seconds between resync replays; 0 disables.
        store:         Store to populate; a new one is created if omitted.
        on_error:      Error sink for transport, decode and handler errors.
    """

    def __init__(
        self,
        list_watcher: ListWatcher,
        decode: Callable[[Mapping[str, Any]], T] = Alert.from_dict,  # type: ignore[assignment]
        resync_period: float = 30.0,
        store: Store[T] | None = None,
        on_error: ErrorSink = report_error,
    ) -> None:
        self._list_watcher = list_watcher
        self._decode = decode
        self._resync_period = resync_period
        self._store: Store[T] = store if store is not None else Store()
        self._on_error = on_error
        self._handlers: list[ResourceEventHandler] = []
        self._synced = False
        self._task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def store(self) -> Store[T]:
        return self._store

    @property
    def lister(self) -> Lister[T]:
        return Lister(self._store)

    def add_event_handler(self, handler: ResourceEventHandler) -> None:
        """Register *handler*.  Must be called before :meth:`start`."""
        self._handlers.append(handler)

    def has_synced(self) -> bool:
        """Return True once the initial listing has been applied and dispatched."""
        return self._synced

    def start(self) -> asyncio.Task[None]:
        """Run the informer as a background task."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="informer")
        return self._task

    async def stop(self) -> None:
        """Cancel the background task and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def run(self) -> None:
        """List and watch until cancelled."""
        resync_task = None
        if self._resync_period > 0:
            resync_task = asyncio.create_task(self._resync_loop(), name="informer-resync")

        failures = 0
        try:
            while True:
                try:
                    resource_version = await self._relist()
                    failures = 0
                    while True:
                        resource_version = await self._watch(resource_version)
                except WatchExpiredError as exc:
                    _log.info("watch_expired_relisting", reason=str(exc))
                except Exception as exc:
                    failures += 1
                    delay = min(_BACKOFF_BASE_SECONDS * 2 ** (failures - 1), _BACKOFF_MAX_SECONDS)
                    self._on_error(exc, component="informer", failures=failures, retry_in=delay)
                    await asyncio.sleep(delay)
        finally:
            if resync_task is not None:
                resync_task.cancel()

    # ------------------------------------------------------------------
    # List / watch
    # ------------------------------------------------------------------

    async def _relist(self) -> str:
        raw_items, resource_version = await self._list_watcher.list()
        objs = [obj for obj in (self._decode_or_report(raw) for raw in raw_items) if obj is not None]

        previous = self._store.replace(objs)
        seen: set[ResourceKey] = set()
        for obj in objs:
            key = meta_namespace_key(obj)
            seen.add(key)
            old = previous.get(key)
            if old is None:
                self._dispatch_add(obj)
            else:
                self._dispatch_update(old, obj)
        for key, old in previous.items():
            if key not in seen:
                self._dispatch_delete(DeletedFinalStateUnknown(key=key, obj=old))

        informer_events_total.labels(event="list").inc()
        if not self._synced:
            self._synced = True
            _log.info("informer_synced", objects=len(objs), resource_version=resource_version)
        return resource_version

    async def _watch(self, resource_version: str) -> str:
        """Apply watch events until the stream ends.  Returns the last seen version."""
        async for event_type, raw in self._list_watcher.watch(resource_version):
            if event_type == "ERROR":
                raise WatchExpiredError(f"watch returned an error event: {raw}")

            metadata = raw.get("metadata") if isinstance(raw, Mapping) else None
            if isinstance(metadata, Mapping) and metadata.get("resourceVersion"):
                resource_version = str(metadata["resourceVersion"])
            if event_type == "BOOKMARK":
                continue

            obj = self._decode_or_report(raw)
            if obj is None:
                continue
            informer_events_total.labels(event=event_type.lower()).inc()

            if event_type in ("ADDED", "MODIFIED"):
                old = self._store.add(obj)
                if old is None:
                    self._dispatch_add(obj)
                else:
                    self._dispatch_update(old, obj)
            elif event_type == "DELETED":
                self._store.delete(obj)
                self._dispatch_delete(obj)
            else:
                _log.warning("unknown_watch_event", event_type=event_type)
        return resource_version

    async def _resync_loop(self) -> None:
        while True:
            await asyncio.sleep(self._resync_period)
            if not self._synced:
                continue
            objs = self._store.list()
            for obj in objs:
                self._dispatch_update(obj, obj)
            informer_events_total.labels(event="resync").inc()
            _log.debug("informer_resynced", objects=len(objs))

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _decode_or_report(self, raw: Mapping[str, Any]) -> T | None:
        try:
            return self._decode(raw)
        except (MalformedObjectError, ValueError, TypeError) as exc:
            self._on_error(exc, component="informer", stage="decode")
            return None

    def _dispatch_add(self, obj: T) -> None:
        for handler in self._handlers:
            self._call(handler.on_add, obj)

    def _dispatch_update(self, old: T, new: T) -> None:
        for handler in self._handlers:
            self._call(handler.on_update, old, new)

    def _dispatch_delete(self, obj: object) -> None:
        for handler in self._handlers:
            self._call(handler.on_delete, obj)

    def _call(self, fn: Callable[..., None], *args: object) -> None:
        try:
            fn(*args)
        except Exception as exc:
            self._on_error(exc, component="informer", stage="handler", handler=getattr(fn, "__qualname__", ""))

"""Worker loop: dequeue a key, resolve it through the cache, reconcile it.

Each iteration moves through::

    Idle -> Dequeued -> KeyParsed -> Resolved -> Reconciled -> (Forgotten | Requeued) -> Idle

and terminates when the queue reports shutdown.  ``done`` is always called
for a dequeued key, whatever the outcome, so the processing slot is released
even when the reconciler raises.

Several workers may share one queue.  The queue never hands the same key to
two workers at once, so reconcilers need no per-key locking.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Generic, TypeVar

import structlog

from pager.controller.keys import split_meta_namespace_key
from pager.controller.queue import WorkQueue
from pager.controller.reconciler import Reconciler
from pager.errors import MalformedKeyError, NotFoundError, QueueItemTypeError, ReconcileError
from pager.models.resources import ResourceKey
from pager.observability.metrics import (
    reconcile_duration_seconds,
    reconcile_total,
    workqueue_drops_total,
)
from pager.observability.reporting import ErrorSink, report_error

if TYPE_CHECKING:
    from pager.cache.store import Lister

_log = structlog.get_logger(component="controller.worker")

T = TypeVar("T")


def parse_queue_item(item: object) -> ResourceKey:
    """Validate a dequeued item and return it as a key.

    Raises:
        QueueItemTypeError: if the item is not a key with a non-empty name.
    """
    if isinstance(item, ResourceKey):
        if isinstance(item.name, str) and item.name and isinstance(item.namespace, str):
            return item
        raise QueueItemTypeError(f"key in queue has an invalid name: {item!r}. discarding")
    if isinstance(item, str):
        try:
            return split_meta_namespace_key(item)
        except MalformedKeyError as exc:
            raise QueueItemTypeError(f"{exc}. discarding") from exc
    raise QueueItemTypeError(f"key in queue should be a ResourceKey but got {type(item).__name__}. discarding")


class Controller(Generic[T]):
    """Runs reconcile workers over a shared work queue.

    Args:
        queue:       Source of keys; shared with the event router.
        lister:      Cache view used to resolve keys to snapshots.
        reconciler:  Business logic invoked per key.
        workers:     Number of concurrent worker tasks.
        max_retries: Consecutive failures after which a key is dropped.
                     0 retries indefinitely.
        on_error:    Error sink for reconcile failures and invalid items.
    """

    def __init__(
        self,
        queue: WorkQueue[ResourceKey],
        lister: Lister[T],
        reconciler: Reconciler[T],
        workers: int = 1,
        max_retries: int = 0,
        on_error: ErrorSink = report_error,
    ) -> None:
        if workers < 1:
            raise ValueError(f"workers must be at least 1, got {workers}")
        self._queue = queue
        self._lister = lister
        self._reconciler = reconciler
        self._workers = workers
        self._max_retries = max_retries
        self._on_error = on_error
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def queue(self) -> WorkQueue[ResourceKey]:
        return self._queue

    async def run(self) -> None:
        """Start the workers and wait until all of them have stopped.

        Workers stop once the queue is shut down; in-flight reconciles run to
        completion first.
        """
        self._tasks = [
            asyncio.create_task(self._worker(index), name=f"worker-{index}") for index in range(self._workers)
        ]
        _log.info("workers_started", count=self._workers)
        try:
            await asyncio.gather(*self._tasks)
        finally:
            for task in self._tasks:
                if not task.done():
                    task.cancel()
            _log.info("workers_stopped")

    async def stop(self) -> None:
        """Shut down the queue and wait for running workers to exit."""
        self._queue.shut_down()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _worker(self, index: int) -> None:
        log = _log.bind(worker=index)
        log.debug("worker_running")
        while await self.process_next_item():
            pass
        log.debug("worker_exiting")

    async def process_next_item(self) -> bool:
        """Process one key from the queue.

        Returns:
            False once the queue has been shut down, True otherwise.
        """
        item, shutdown = await self._queue.get()
        if shutdown:
            return False

        try:
            await self._process(item)
        finally:
            self._queue.done(item)  # type: ignore[arg-type]
        return True

    async def _process(self, item: object) -> None:
        try:
            key = parse_queue_item(item)
        except QueueItemTypeError as exc:
            self._on_error(exc, component="worker")
            self._queue.forget(item)  # type: ignore[arg-type]
            return

        try:
            obj: T | None = self._lister.get(key.namespace, key.name)
        except NotFoundError:
            obj = None

        start = time.monotonic()
        try:
            with structlog.contextvars.bound_contextvars(reconcile_key=str(key)):
                if obj is None:
                    _log.debug("resource_not_found")
                    await self._reconciler.cleanup(key)
                else:
                    await self._reconciler.reconcile(obj)
        except Exception as exc:
            reconcile_total.labels(result="error").inc()
            self._handle_failure(key, exc)
            return
        finally:
            reconcile_duration_seconds.observe(time.monotonic() - start)

        reconcile_total.labels(result="success" if obj is not None else "deleted").inc()
        self._queue.forget(key)
        _log.debug("reconcile_succeeded", key=str(key))

    def _handle_failure(self, key: ResourceKey, exc: Exception) -> None:
        attempts = self._queue.num_requeues(key) + 1
        error = ReconcileError(key, exc)

        if self._max_retries and attempts > self._max_retries:
            self._on_error(error, component="worker", key=str(key), attempts=attempts)
            _log.warning("key_dropped", key=str(key), attempts=attempts, max_retries=self._max_retries)
            workqueue_drops_total.labels(name=self._queue.name).inc()
            self._queue.forget(key)
            return

        self._on_error(error, component="worker", key=str(key), attempts=attempts)
        self._queue.add_after_failure(key)

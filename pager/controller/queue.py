"""Deduplicating, rate-limited work queue.

The queue tracks three sets of keys:

``queued``
    Pending keys in FIFO order.  A key appears at most once.
``processing``
    Keys handed out by :meth:`WorkQueue.get` and not yet passed to
    :meth:`WorkQueue.done`.  A key in this set is never in ``queued``.
``dirty``
    Processing keys that were added again while checked out.  They move
    back into ``queued`` when ``done`` is called, so no event is lost while
    a reconcile is in flight.

All operations except :meth:`WorkQueue.get` are synchronous and never
suspend, so they are atomic with respect to other tasks on the event loop.
``get`` suspends the calling worker until a key is available or the queue
is shut down.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Hashable
from typing import Generic, TypeVar

import structlog

from pager.controller.ratelimit import ItemExponentialFailureRateLimiter
from pager.observability.metrics import (
    workqueue_adds_total,
    workqueue_depth,
    workqueue_retries_total,
)

_log = structlog.get_logger(component="controller.queue")

T = TypeVar("T", bound=Hashable)


class WorkQueue(Generic[T]):
    """Work queue guaranteeing at most one in-flight holder per key.

    Args:
        name:         Label used in metrics and logs.
        rate_limiter: Retry backoff policy; defaults to 5s base, 60s max.
    """

    def __init__(
        self,
        name: str = "default",
        rate_limiter: ItemExponentialFailureRateLimiter | None = None,
    ) -> None:
        self._name = name
        self._rate_limiter = rate_limiter or ItemExponentialFailureRateLimiter()

        self._queue: deque[T] = deque()
        self._queued: set[T] = set()
        self._processing: set[T] = set()
        self._dirty: set[T] = set()

        # Delayed adds keyed by item; each holds the earliest ready time seen.
        self._waiting: dict[T, asyncio.TimerHandle] = {}
        self._getters: deque[asyncio.Future[None]] = deque()
        self._shutting_down = False

    # ------------------------------------------------------------------
    # Producers
    # ------------------------------------------------------------------

    def add(self, item: T) -> None:
        """Mark *item* as needing processing.

        No-op when already queued.  When the item is currently being
        processed it is marked dirty and re-queued on :meth:`done`.
        Ignored after shutdown.
        """
        if self._shutting_down:
            return
        workqueue_adds_total.labels(name=self._name).inc()

        if item in self._processing:
            self._dirty.add(item)
            return
        if item in self._queued:
            return

        self._enqueue(item)

    def add_after(self, item: T, delay: float) -> None:
        """Add *item* once *delay* seconds have elapsed.

        If the item is already waiting with an earlier ready time, the
        earlier time wins.  Must be called from within a running event loop.
        """
        if self._shutting_down:
            return
        if delay <= 0:
            self.add(item)
            return

        loop = asyncio.get_running_loop()
        ready_at = loop.time() + delay
        existing = self._waiting.get(item)
        if existing is not None:
            if existing.when() <= ready_at:
                return
            existing.cancel()
        self._waiting[item] = loop.call_at(ready_at, self._fire, item)

    def add_after_failure(self, item: T) -> float:
        """Re-add *item* after the rate limiter's backoff delay.

        Returns:
            The delay in seconds that was applied.
        """
        delay = self._rate_limiter.when(item)
        workqueue_retries_total.labels(name=self._name).inc()
        _log.debug("key_requeued", queue=self._name, key=str(item), delay=delay)
        self.add_after(item, delay)
        return delay

    # ------------------------------------------------------------------
    # Consumers
    # ------------------------------------------------------------------

    async def get(self) -> tuple[T | None, bool]:
        """Wait for the next item and mark it as processing.

        Returns:
            ``(item, False)`` for a real item, ``(None, True)`` once the
            queue has been shut down.
        """
        while not self._queue and not self._shutting_down:
            getter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
            self._getters.append(getter)
            try:
                await getter
            except asyncio.CancelledError:
                getter.cancel()
                try:
                    self._getters.remove(getter)
                except ValueError:
                    pass
                # A wake-up delivered to a cancelled getter goes to the next one.
                if self._queue and not getter.cancelled():
                    self._wakeup_next()
                raise

        if self._shutting_down:
            return None, True

        item = self._queue.popleft()
        self._queued.discard(item)
        self._processing.add(item)
        workqueue_depth.labels(name=self._name).set(len(self._queue))
        return item, False

    def done(self, item: T) -> None:
        """Release *item* from processing, re-queueing it if it was marked dirty."""
        self._processing.discard(item)
        if item in self._dirty:
            self._dirty.discard(item)
            if not self._shutting_down and item not in self._queued:
                self._enqueue(item)

    def forget(self, item: T) -> None:
        """Reset the retry bookkeeping of *item*.  Queue membership is unchanged."""
        self._rate_limiter.forget(item)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def shut_down(self) -> None:
        """Stop dispatching work and wake every blocked :meth:`get`.

        Idempotent.  Pending delayed adds are cancelled.  Items already handed
        out may still be passed to :meth:`done`.
        """
        if self._shutting_down:
            return
        self._shutting_down = True

        for handle in self._waiting.values():
            handle.cancel()
        self._waiting.clear()

        while self._getters:
            getter = self._getters.popleft()
            if not getter.done():
                getter.set_result(None)
        _log.info("queue_shut_down", queue=self._name, processing=len(self._processing))

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    def num_requeues(self, item: T) -> int:
        return self._rate_limiter.num_requeues(item)

    def is_processing(self, item: T) -> bool:
        return item in self._processing

    def is_dirty(self, item: T) -> bool:
        return item in self._dirty

    def is_waiting(self, item: T) -> bool:
        """Return True if a delayed add for *item* has not fired yet."""
        return item in self._waiting

    def __len__(self) -> int:
        return len(self._queue)

    def __contains__(self, item: object) -> bool:
        return item in self._queued

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _enqueue(self, item: T) -> None:
        self._queue.append(item)
        self._queued.add(item)
        workqueue_depth.labels(name=self._name).set(len(self._queue))
        self._wakeup_next()

    def _wakeup_next(self) -> None:
        while self._getters:
            getter = self._getters.popleft()
            if not getter.done():
                getter.set_result(None)
                break

    def _fire(self, item: T) -> None:
        self._waiting.pop(item, None)
        self.add(item)

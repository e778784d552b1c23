"""Shared fixtures for pager integration tests.

Wires a FakeListWatcher through the real informer, event router, work queue
and worker loop so pipelines can be exercised without a Kubernetes cluster.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest

from pager.collector.informer import Informer
from pager.controller.queue import WorkQueue
from pager.controller.ratelimit import ItemExponentialFailureRateLimiter
from pager.controller.reconciler import Reconciler
from pager.controller.router import EventRouter
from pager.controller.worker import Controller
from pager.models.config import PagerConfig
from pager.models.resources import Alert, ResourceKey

from ..fakes import FakeListWatcher, RecordingSink, eventually

_BASE_DELAY = 0.01
_MAX_DELAY = 0.04


class RecordingRateLimiter(ItemExponentialFailureRateLimiter):
    """Rate limiter that remembers every delay it handed out."""

    def __init__(self, base_delay: float = _BASE_DELAY, max_delay: float = _MAX_DELAY) -> None:
        super().__init__(base_delay, max_delay)
        self.delays: list[tuple[Any, float]] = []

    def when(self, item: Any) -> float:
        delay = super().when(item)
        self.delays.append((item, delay))
        return delay


class Pipeline:
    """A running list/watch → queue → workers pipeline."""

    def __init__(self, watcher: FakeListWatcher, reconciler: Reconciler[Alert], workers: int, max_retries: int) -> None:
        self.watcher = watcher
        self.reconciler = reconciler
        self.sink = RecordingSink()
        self.limiter = RecordingRateLimiter()
        self.queue: WorkQueue[ResourceKey] = WorkQueue(name="alerts", rate_limiter=self.limiter)
        self.informer: Informer[Alert] = Informer(watcher, resync_period=0, on_error=self.sink)
        self.informer.add_event_handler(EventRouter(self.queue, on_error=self.sink))
        self.controller = Controller(
            self.queue,
            self.informer.lister,
            reconciler,
            workers=workers,
            max_retries=max_retries,
            on_error=self.sink,
        )
        self._workers_task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        self.informer.start()
        await eventually(self.informer.has_synced)
        self._workers_task = asyncio.create_task(self.controller.run())

    async def stop(self) -> None:
        await self.controller.stop()
        if self._workers_task is not None:
            await asyncio.gather(self._workers_task, return_exceptions=True)
        await self.informer.stop()

    def idle(self) -> bool:
        """True when nothing is queued, in flight or waiting for a retry."""
        return len(self.queue) == 0 and not self.queue._processing and not self.queue._waiting


@pytest.fixture
async def pipeline_factory() -> AsyncIterator[Callable[..., Any]]:
    """Build and start pipelines; every pipeline is stopped at teardown."""
    started: list[Pipeline] = []

    async def factory(
        watcher: FakeListWatcher,
        reconciler: Reconciler[Alert],
        workers: int = 1,
        max_retries: int = 0,
    ) -> Pipeline:
        pipeline = Pipeline(watcher, reconciler, workers, max_retries)
        await pipeline.start()
        started.append(pipeline)
        return pipeline

    yield factory

    for pipeline in started:
        await pipeline.stop()


@pytest.fixture
def quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep PagerApp from reconfiguring structlog during tests."""
    monkeypatch.setattr("pager.app.setup_logging", lambda *args, **kwargs: None)


@pytest.fixture
def fast_config() -> PagerConfig:
    config = PagerConfig()
    config.kube.apiserver = ""
    config.informer.resync_seconds = 0
    config.informer.sync_timeout_seconds = 1
    config.queue.base_delay = _BASE_DELAY
    config.queue.max_delay = _MAX_DELAY
    config.controller.workers = 2
    return config

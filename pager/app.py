"""Application bootstrap for the pager controller.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → metrics exporter → API client
              → queue + event router → informer → cache sync → workers

Workers start only after the informer cache has completed its initial sync,
so no key is reconciled against a partially populated view.

Shutdown reverses the order: the queue stops dispatching, in-flight
reconciles finish, then the informer and API client are closed.  Each
component's stop error is caught and logged independently.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING, Any

from pager.cache.store import wait_for_cache_sync
from pager.collector.informer import Informer, ListWatcher
from pager.config import load_config
from pager.controller.queue import WorkQueue
from pager.controller.ratelimit import ItemExponentialFailureRateLimiter
from pager.controller.reconciler import AlertReconciler, Reconciler
from pager.controller.router import EventRouter
from pager.controller.worker import Controller
from pager.errors import SyncTimeoutError
from pager.models.config import PagerConfig
from pager.models.resources import ResourceKey
from pager.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class PagerApp:
    """Application root.  Owns every component and coordinates their lifecycle.

    ``stop()`` is safe to call on an app that was never started or has
    already stopped.

    Args:
        config:       Pre-built configuration; loaded from the environment if omitted.
        list_watcher: Watch transport; a kubernetes-asyncio one is built if omitted.
        reconciler:   Business logic; defaults to :class:`AlertReconciler`.
    """

    def __init__(
        self,
        config: PagerConfig | None = None,
        list_watcher: ListWatcher | None = None,
        reconciler: Reconciler[Any] | None = None,
    ) -> None:
        self.config = config
        self.reconciler: Reconciler[Any] = reconciler or AlertReconciler()
        self._list_watcher = list_watcher

        self._api_client: Any = None
        self._queue: WorkQueue[ResourceKey] | None = None
        self._informer: Informer[Any] | None = None
        self._controller: Controller[Any] | None = None
        self._workers_task: asyncio.Task[None] | None = None

        self._running = False
        self._stop_requested = False
        self._log: structlog.stdlib.BoundLogger | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def queue(self) -> WorkQueue[ResourceKey] | None:
        return self._queue

    @property
    def informer(self) -> Informer[Any] | None:
        return self._informer

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        The caller (main()) re-raises this as a non-zero exit.
        """
        # --- 1. Configuration -------------------------------------------
        if self.config is None:
            self.config = load_config()

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level, self.config.log.format)
        self._log = get_logger("app")
        self._log.info("pager starting", version=_pager_version())
        if await self._startup_aborted():
            return

        # --- 3. Metrics exporter -----------------------------------------
        self._start_metrics()

        # --- 4. API client ------------------------------------------------
        await self._start_api_client()
        if await self._startup_aborted():
            return

        # --- 5. Work queue + event router --------------------------------
        self._start_queue()

        # --- 6. Informer and initial cache sync ---------------------------
        await self._start_informer()
        if await self._startup_aborted():
            return

        # --- 7. Workers ---------------------------------------------------
        self._start_workers()

        self._running = True
        self._log.info("pager started", workers=self.config.controller.workers)

    async def _startup_aborted(self) -> bool:
        """Return True if stop() was requested while startup was suspended.

        Anything started after that concurrent stop() ran is torn down here,
        and the app is left not running.
        """
        if not self._stop_requested:
            return False
        assert self._log is not None
        self._log.info("pager startup aborted by shutdown request")
        await self.stop()
        return True

    def _start_metrics(self) -> None:
        assert self._log is not None
        assert self.config is not None
        port = self.config.metrics.port
        if not port:
            self._log.debug("metrics exporter disabled")
            return
        try:
            from prometheus_client import start_http_server

            start_http_server(port)
            self._log.info("metrics exporter started", port=port)
        except OSError as exc:
            # Metrics are optional; the controller works without them.
            self._log.warning("metrics exporter failed to start", port=port, error=str(exc))

    async def _start_api_client(self) -> None:
        """Build the kubernetes-asyncio client and list/watch transport."""
        assert self._log is not None
        assert self.config is not None
        if self._list_watcher is not None:
            self._log.debug("using injected list watcher")
            return
        try:
            from pager.collector.kube import KubeListWatcher, build_api_client

            self._api_client = await build_api_client(self.config.kube.apiserver)
            informer_cfg = self.config.informer
            self._list_watcher = KubeListWatcher(
                self._api_client,
                group=informer_cfg.group,
                version=informer_cfg.version,
                plural=informer_cfg.plural,
                namespace=informer_cfg.namespace,
            )
        except Exception as exc:
            raise _ComponentError("api_client", exc) from exc

    def _start_queue(self) -> None:
        assert self.config is not None
        queue_cfg = self.config.queue
        self._queue = WorkQueue(
            name=self.config.informer.plural,
            rate_limiter=ItemExponentialFailureRateLimiter(
                base_delay=queue_cfg.base_delay,
                max_delay=queue_cfg.max_delay,
            ),
        )

    async def _start_informer(self) -> None:
        """Start the informer and block until its cache has synced."""
        assert self._log is not None
        assert self.config is not None
        assert self._queue is not None
        assert self._list_watcher is not None
        informer_cfg = self.config.informer

        informer: Informer[Any] = Informer(
            self._list_watcher,
            resync_period=informer_cfg.resync_seconds,
        )
        informer.add_event_handler(EventRouter(self._queue))
        informer.start()
        self._informer = informer

        synced = await wait_for_cache_sync(
            informer.has_synced,
            timeout=informer_cfg.sync_timeout_seconds,
            stopped=lambda: self._stop_requested,
        )
        if not synced:
            if self._stop_requested:
                return
            cause = SyncTimeoutError(
                f"informer cache did not sync within {informer_cfg.sync_timeout_seconds}s"
            )
            raise _ComponentError("cache_sync", cause)
        self._log.info("informer cache synced", objects=len(informer.store))

    def _start_workers(self) -> None:
        assert self.config is not None
        assert self._queue is not None
        assert self._informer is not None
        self._controller = Controller(
            self._queue,
            self._informer.lister,
            self.reconciler,
            workers=self.config.controller.workers,
            max_retries=self.config.queue.max_retries,
        )
        self._workers_task = asyncio.create_task(self._controller.run(), name="workers")

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        self._stop_requested = True
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("pager shutting down")
        self._running = False

        await self._stop_component("workers", self._controller)
        self._controller = None
        if self._workers_task is not None:
            await asyncio.gather(self._workers_task, return_exceptions=True)
            self._workers_task = None
        if self._queue is not None:
            self._queue.shut_down()

        await self._stop_component("informer", self._informer)
        await self._stop_api_client()

        log.info("pager stopped")

    async def _stop_component(self, name: str, component: object | None) -> None:
        """Call stop() on a component if it has that method, catching all errors."""
        if component is None:
            return
        log = self._log or get_logger("app")
        stop_fn = getattr(component, "stop", None)
        if stop_fn is None:
            return
        try:
            result = stop_fn()
            if asyncio.iscoroutine(result):
                await asyncio.wait_for(result, timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component stop timed out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component stop raised an error", component=name, error=str(exc))

    async def _stop_api_client(self) -> None:
        """Close the kubernetes-asyncio ApiClient connection pool."""
        if self._api_client is None:
            return
        log = self._log or get_logger("app")
        try:
            await self._api_client.close()
        except Exception as exc:
            log.debug("api client close raised (non-fatal)", error=str(exc))
        self._api_client = None


def _pager_version() -> str:
    from pager import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main(config: PagerConfig | None = None) -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = PagerApp(config=config)
    loop = asyncio.get_running_loop()

    shutdown_task: asyncio.Task[None] | None = None

    def _request_shutdown() -> None:
        nonlocal shutdown_task
        if shutdown_task is not None:
            return
        shutdown_task = asyncio.create_task(app.stop(), name="shutdown")

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _request_shutdown)

    try:
        await app.start()
        # Block until shutdown is triggered (informer and workers run concurrently)
        while app.running:
            await asyncio.sleep(1)
        if shutdown_task is not None:
            await shutdown_task
    except _ComponentError as exc:
        # A mandatory component failed; log and exit non-zero
        log = get_logger("app")
        log.critical(
            "fatal startup error",
            component=exc.component,
            error=str(exc.cause),
        )
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        # Ensure stop runs even if start raises or is interrupted
        if app.running:
            await app.stop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)

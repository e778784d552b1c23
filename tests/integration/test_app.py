"""Integration tests for the PagerApp lifecycle."""

from __future__ import annotations

import asyncio
import os
import signal

import pytest

from pager import app as app_module
from pager.app import PagerApp, _ComponentError, main
from pager.collector import kube
from pager.controller.reconciler import AlertReconciler
from pager.errors import ClientConstructionError, SyncTimeoutError
from pager.models.config import PagerConfig

from ..fakes import FakeListWatcher, eventually, key, raw_alert

pytestmark = [pytest.mark.integration, pytest.mark.usefixtures("quiet_logging")]


class TestLifecycle:
    async def test_start_reconcile_stop(self, fast_config: PagerConfig) -> None:
        reconciler = AlertReconciler()
        watcher = FakeListWatcher([raw_alert("a1")])
        app = PagerApp(config=fast_config, list_watcher=watcher, reconciler=reconciler)

        await app.start()
        try:
            assert app.running
            assert app.informer is not None and app.informer.has_synced()
            await eventually(lambda: reconciler.runs[key("a1")] == 1)

            watcher.push("ADDED", raw_alert("a2"))
            await eventually(lambda: reconciler.runs[key("a2")] == 1)
        finally:
            await app.stop()

        assert not app.running
        assert app.queue is not None and app.queue.shutting_down

    async def test_stop_waits_for_in_flight_reconcile(self, fast_config: PagerConfig) -> None:
        started = asyncio.Event()
        finished: list[str] = []

        class _Slow(AlertReconciler):
            async def reconcile(self, obj) -> None:  # type: ignore[no-untyped-def]
                started.set()
                await asyncio.sleep(0.05)
                finished.append(obj.name)

        app = PagerApp(config=fast_config, list_watcher=FakeListWatcher([raw_alert("a1")]), reconciler=_Slow())
        await app.start()
        await started.wait()

        await app.stop()

        assert finished == ["a1"]

    async def test_stop_without_start_is_noop(self) -> None:
        app = PagerApp(config=PagerConfig())
        await app.stop()
        assert not app.running

    async def test_stop_twice(self, fast_config: PagerConfig) -> None:
        app = PagerApp(config=fast_config, list_watcher=FakeListWatcher())
        await app.start()
        await app.stop()
        await app.stop()
        assert not app.running


class TestStartupFailures:
    async def test_cache_sync_timeout(self, fast_config: PagerConfig) -> None:
        watcher = FakeListWatcher([raw_alert("a1")])
        watcher.list_gate = asyncio.Event()
        reconciler = AlertReconciler()
        app = PagerApp(config=fast_config, list_watcher=watcher, reconciler=reconciler)

        with pytest.raises(_ComponentError) as excinfo:
            await app.start()

        try:
            assert excinfo.value.component == "cache_sync"
            assert isinstance(excinfo.value.cause, SyncTimeoutError)
            assert not app.running
            assert sum(reconciler.runs.values()) == 0
        finally:
            await app.stop()


class TestStopDuringStartup:
    async def test_stop_while_waiting_for_sync_aborts_start(self, fast_config: PagerConfig) -> None:
        fast_config.informer.sync_timeout_seconds = 30
        watcher = FakeListWatcher([raw_alert("a1")])
        watcher.list_gate = asyncio.Event()
        reconciler = AlertReconciler()
        app = PagerApp(config=fast_config, list_watcher=watcher, reconciler=reconciler)

        start_task = asyncio.create_task(app.start())
        await eventually(lambda: watcher.list_calls == 1)

        await app.stop()
        await asyncio.wait_for(start_task, timeout=1.0)

        assert not app.running
        assert app.queue is not None and app.queue.shutting_down
        assert sum(reconciler.runs.values()) == 0

    async def test_stop_racing_sync_completion_leaves_app_stopped(self, fast_config: PagerConfig) -> None:
        """Sync completes, then stop() lands before start() resumes: no workers are left running."""
        watcher = FakeListWatcher([raw_alert("a1")])
        watcher.list_gate = asyncio.Event()
        app = PagerApp(config=fast_config, list_watcher=watcher)

        start_task = asyncio.create_task(app.start())
        await eventually(lambda: watcher.list_calls == 1)

        watcher.list_gate.set()
        await eventually(lambda: app.informer is not None and app.informer.has_synced())
        await app.stop()
        await asyncio.wait_for(start_task, timeout=1.0)

        assert not app.running
        assert app._workers_task is None


# ---------------------------------------------------------------------------
# main(): signals and exit codes
# ---------------------------------------------------------------------------


class TestMain:
    async def test_sigterm_during_startup_exits_cleanly(
        self, fast_config: PagerConfig, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        fast_config.informer.sync_timeout_seconds = 30
        watcher = FakeListWatcher([raw_alert("a1")])
        watcher.list_gate = asyncio.Event()
        monkeypatch.setattr(app_module, "PagerApp", lambda config=None: PagerApp(config=config, list_watcher=watcher))

        main_task = asyncio.create_task(main(fast_config))
        await eventually(lambda: watcher.list_calls == 1)

        os.kill(os.getpid(), signal.SIGTERM)

        await asyncio.wait_for(main_task, timeout=3.0)

    async def test_sigterm_right_after_sync_exits_cleanly(
        self, fast_config: PagerConfig, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        watcher = FakeListWatcher([raw_alert("a1")])
        watcher.list_gate = asyncio.Event()
        monkeypatch.setattr(app_module, "PagerApp", lambda config=None: PagerApp(config=config, list_watcher=watcher))

        main_task = asyncio.create_task(main(fast_config))
        await eventually(lambda: watcher.list_calls == 1)

        watcher.list_gate.set()
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        os.kill(os.getpid(), signal.SIGTERM)

        await asyncio.wait_for(main_task, timeout=3.0)

    async def test_sigterm_while_running_exits_cleanly(
        self, fast_config: PagerConfig, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        reconciler = AlertReconciler()
        watcher = FakeListWatcher([raw_alert("a1")])
        monkeypatch.setattr(
            app_module,
            "PagerApp",
            lambda config=None: PagerApp(config=config, list_watcher=watcher, reconciler=reconciler),
        )

        main_task = asyncio.create_task(main(fast_config))
        await eventually(lambda: reconciler.runs[key("a1")] == 1)

        os.kill(os.getpid(), signal.SIGTERM)

        await asyncio.wait_for(main_task, timeout=3.0)

    async def test_sync_timeout_exits_with_code_1(
        self, fast_config: PagerConfig, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        watcher = FakeListWatcher()
        watcher.list_gate = asyncio.Event()
        monkeypatch.setattr(app_module, "PagerApp", lambda config=None: PagerApp(config=config, list_watcher=watcher))

        with pytest.raises(SystemExit) as excinfo:
            await main(fast_config)

        assert excinfo.value.code == 1

    async def test_client_construction_failure_exits_with_code_1(
        self, fast_config: PagerConfig, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def no_client(apiserver: str) -> None:
            raise ClientConstructionError("no kubeconfig found")

        monkeypatch.setattr(kube, "build_api_client", no_client)

        with pytest.raises(SystemExit) as excinfo:
            await main(fast_config)

        assert excinfo.value.code == 1

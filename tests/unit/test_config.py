"""Unit tests for PAGER_* environment configuration."""

from __future__ import annotations

import os

import pytest

from pager.config import load_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(os.environ):
        if name.startswith("PAGER_"):
            monkeypatch.delenv(name)


class TestDefaults:
    def test_defaults(self) -> None:
        config = load_config()

        assert config.kube.apiserver == "http://127.0.0.1:8001"
        assert (config.informer.group, config.informer.version, config.informer.plural) == (
            "pager.k8s.co",
            "v1alpha1",
            "alerts",
        )
        assert config.informer.namespace == ""
        assert config.informer.resync_seconds == 30
        assert config.informer.sync_timeout_seconds == 60
        assert config.controller.workers == 1
        assert (config.queue.base_delay, config.queue.max_delay, config.queue.max_retries) == (5.0, 60.0, 0)
        assert config.metrics.port == 0
        assert config.log.level == "info"
        assert config.log.format == "json"


class TestOverrides:
    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PAGER_APISERVER", "https://10.0.0.1:6443")
        monkeypatch.setenv("PAGER_NAMESPACE", "monitoring")
        monkeypatch.setenv("PAGER_WORKERS", "4")
        monkeypatch.setenv("PAGER_QUEUE_BASE_DELAY", "0.5")
        monkeypatch.setenv("PAGER_QUEUE_MAX_DELAY", "10")
        monkeypatch.setenv("PAGER_QUEUE_MAX_RETRIES", "7")
        monkeypatch.setenv("PAGER_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("PAGER_LOG_FORMAT", "Console")

        config = load_config()

        assert config.kube.apiserver == "https://10.0.0.1:6443"
        assert config.informer.namespace == "monitoring"
        assert config.controller.workers == 4
        assert (config.queue.base_delay, config.queue.max_delay, config.queue.max_retries) == (0.5, 10.0, 7)
        assert config.log.level == "debug"
        assert config.log.format == "console"

    def test_empty_apiserver_is_allowed(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PAGER_APISERVER", "")
        assert load_config().kube.apiserver == ""

    @pytest.mark.parametrize(("raw", "expected"), [("0", 1), ("-3", 1), ("500", 64)])
    def test_workers_clamped(self, monkeypatch: pytest.MonkeyPatch, raw: str, expected: int) -> None:
        monkeypatch.setenv("PAGER_WORKERS", raw)
        assert load_config().controller.workers == expected

    def test_negative_retries_clamped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PAGER_QUEUE_MAX_RETRIES", "-1")
        assert load_config().queue.max_retries == 0


class TestValidation:
    def test_invalid_log_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PAGER_LOG_LEVEL", "verbose")
        with pytest.raises(ValueError, match="log level"):
            load_config()

    def test_invalid_namespace(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PAGER_NAMESPACE", "Not_A_Namespace")
        with pytest.raises(ValueError, match="namespace"):
            load_config()

    def test_invalid_plural(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PAGER_PLURAL", "alerts/status")
        with pytest.raises(ValueError, match="plural"):
            load_config()

    def test_non_positive_base_delay(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PAGER_QUEUE_BASE_DELAY", "0")
        with pytest.raises(ValueError, match="base delay"):
            load_config()

    def test_max_delay_below_base(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PAGER_QUEUE_BASE_DELAY", "10")
        monkeypatch.setenv("PAGER_QUEUE_MAX_DELAY", "1")
        with pytest.raises(ValueError, match="max delay"):
            load_config()

    def test_non_numeric_workers(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PAGER_WORKERS", "many")
        with pytest.raises(ValueError):
            load_config()

    def test_invalid_log_format(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PAGER_LOG_FORMAT", "xml")
        with pytest.raises(ValueError, match="log format"):
            load_config()

"""Configuration loading from environment variables."""

from __future__ import annotations

import os
import re

from pager.models.config import (
    ControllerConfig,
    InformerConfig,
    KubeConfig,
    LogConfig,
    MetricsConfig,
    PagerConfig,
    QueueConfig,
)
from pager.observability.logging import LOG_FORMATS


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"PAGER_{key}", default)


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float, min_val: float | None = None) -> float:
    val = float(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    return val


def _validate_dns_label(value: str, what: str) -> str:
    if not re.match(r"^[a-z0-9]([-a-z0-9.]*[a-z0-9])?$", value):
        raise ValueError(f"Invalid {what}: {value!r}")
    return value


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_log_format(value: str) -> str:
    if value.lower() not in LOG_FORMATS:
        raise ValueError(f"Invalid log format: {value}. Must be one of {LOG_FORMATS}")
    return value.lower()


def _validate_delays(base: float, maximum: float) -> QueueConfig:
    if base <= 0:
        raise ValueError(f"Queue base delay must be positive, got {base}")
    if maximum < base:
        raise ValueError(f"Queue max delay ({maximum}) must not be below base delay ({base})")
    return QueueConfig(base_delay=base, max_delay=maximum)


def load_config() -> PagerConfig:
    """Load configuration from PAGER_* environment variables."""
    queue = _validate_delays(
        _env_float("QUEUE_BASE_DELAY", 5.0),
        _env_float("QUEUE_MAX_DELAY", 60.0),
    )
    queue.max_retries = _env_int("QUEUE_MAX_RETRIES", 0, min_val=0)
    namespace = _env("NAMESPACE", "")
    if namespace:
        _validate_dns_label(namespace, "namespace")
    return PagerConfig(
        kube=KubeConfig(
            apiserver=_env("APISERVER", "http://127.0.0.1:8001"),
        ),
        informer=InformerConfig(
            group=_validate_dns_label(_env("GROUP", "pager.k8s.co"), "API group"),
            version=_validate_dns_label(_env("VERSION", "v1alpha1"), "API version"),
            plural=_validate_dns_label(_env("PLURAL", "alerts"), "resource plural"),
            namespace=namespace,
            resync_seconds=_env_int("RESYNC_SECONDS", 30, min_val=0),
            sync_timeout_seconds=_env_int("SYNC_TIMEOUT_SECONDS", 60, min_val=1),
        ),
        queue=queue,
        controller=ControllerConfig(
            workers=_env_int("WORKERS", 1, min_val=1, max_val=64),
        ),
        metrics=MetricsConfig(
            port=_env_int("METRICS_PORT", 0, min_val=0, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
            format=_validate_log_format(_env("LOG_FORMAT", "json")),
        ),
    )

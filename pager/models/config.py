"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class KubeConfig:
    """API server connection configuration."""

    apiserver: str = "http://127.0.0.1:8001"


@dataclass
class InformerConfig:
    """Watched resource and cache sync configuration."""

    group: str = "pager.k8s.co"
    version: str = "v1alpha1"
    plural: str = "alerts"
    namespace: str = ""
    resync_seconds: int = 30
    sync_timeout_seconds: int = 60


@dataclass
class QueueConfig:
    """Work queue retry configuration.

    ``max_retries`` of 0 retries failed keys indefinitely.
    """

    base_delay: float = 5.0
    max_delay: float = 60.0
    max_retries: int = 0


@dataclass
class ControllerConfig:
    """Worker loop configuration."""

    workers: int = 1


@dataclass
class MetricsConfig:
    """Prometheus exporter configuration."""

    port: int = 0


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"
    format: str = "json"


@dataclass
class PagerConfig:
    """Top-level controller configuration."""

    kube: KubeConfig = field(default_factory=KubeConfig)
    informer: InformerConfig = field(default_factory=InformerConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    controller: ControllerConfig = field(default_factory=ControllerConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    log: LogConfig = field(default_factory=LogConfig)

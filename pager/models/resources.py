"""Resource keys, cached snapshots and deletion tombstones."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pager.errors import MalformedObjectError


@dataclass(frozen=True, order=True)
class ResourceKey:
    """Stable identity of a resource instance.

    The only token used for queue and cache lookups.  An empty namespace
    denotes a cluster-scoped resource.
    """

    namespace: str
    name: str

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name


@dataclass(frozen=True)
class AlertSpec:
    """Desired state of an Alert."""

    message: str = ""


@dataclass(frozen=True)
class AlertStatus:
    """Observed state of an Alert."""

    sent: bool = False


@dataclass(frozen=True)
class Alert:
    """Cached snapshot of a ``pager.k8s.co/v1alpha1`` Alert.

    Produced by the informer from the raw API object and replaced wholesale
    on every watch event.  Equality is structural over every field, which is
    what update suppression compares.  Labels and annotations are stored as
    sorted ``(key, value)`` pairs so snapshots stay immutable and hashable.
    """

    namespace: str
    name: str
    uid: str = ""
    resource_version: str = ""
    generation: int = 0
    labels: tuple[tuple[str, str], ...] = ()
    annotations: tuple[tuple[str, str], ...] = ()
    spec: AlertSpec = field(default_factory=AlertSpec)
    status: AlertStatus = field(default_factory=AlertStatus)

    @property
    def key(self) -> ResourceKey:
        return ResourceKey(self.namespace, self.name)

    def label(self, name: str, default: str | None = None) -> str | None:
        return dict(self.labels).get(name, default)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Alert:
        """Build a snapshot from a raw custom object.

        Raises:
            MalformedObjectError: if ``metadata.name`` is missing or empty, or
                if ``spec``, ``status``, labels or annotations are not mappings.
        """
        metadata = raw.get("metadata") if isinstance(raw, Mapping) else None
        if not isinstance(metadata, Mapping) or not metadata.get("name"):
            raise MalformedObjectError("object has no metadata.name")
        spec = _mapping_field(raw, "spec")
        status = _mapping_field(raw, "status")
        return cls(
            namespace=str(metadata.get("namespace") or ""),
            name=str(metadata["name"]),
            uid=str(metadata.get("uid") or ""),
            resource_version=str(metadata.get("resourceVersion") or ""),
            generation=int(metadata.get("generation") or 0),
            labels=_string_pairs(_mapping_field(metadata, "labels")),
            annotations=_string_pairs(_mapping_field(metadata, "annotations")),
            spec=AlertSpec(message=str(spec.get("message") or "")),
            status=AlertStatus(sent=bool(status.get("sent", False))),
        )


def _mapping_field(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = raw.get(name)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise MalformedObjectError(f"field {name!r} must be a mapping, got {type(value).__name__}")
    return value


def _string_pairs(values: Mapping[str, Any]) -> tuple[tuple[str, str], ...]:
    return tuple(sorted((str(k), str(v)) for k, v in values.items()))


@dataclass(frozen=True)
class DeletedFinalStateUnknown:
    """Tombstone for an object deleted while the watch was disconnected.

    Emitted by a relist when a previously cached object is no longer
    present.  ``obj`` is the last known state and may be stale.
    """

    key: ResourceKey
    obj: object = None

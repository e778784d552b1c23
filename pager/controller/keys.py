"""Key extraction for queue and cache lookups.

A key must be identical for a live object and for its deletion tombstone so
that add, update and delete notifications for one resource collapse onto a
single queue slot.
"""

from __future__ import annotations

from collections.abc import Mapping

from pager.errors import MalformedKeyError, MalformedObjectError
from pager.models.resources import DeletedFinalStateUnknown, ResourceKey


def meta_namespace_key(obj: object) -> ResourceKey:
    """Return the key of a live object.

    Accepts an explicit ``ResourceKey``, any object with ``namespace`` and
    ``name`` attributes (e.g. ``Alert``), or a raw mapping carrying
    ``metadata.name`` and optionally ``metadata.namespace``.

    Raises:
        MalformedObjectError: if the object carries no usable name.
    """
    if isinstance(obj, ResourceKey):
        return obj

    if isinstance(obj, Mapping):
        metadata = obj.get("metadata")
        if not isinstance(metadata, Mapping):
            raise MalformedObjectError("object has no metadata")
        namespace = metadata.get("namespace") or ""
        name = metadata.get("name") or ""
    else:
        namespace = getattr(obj, "namespace", None) or ""
        name = getattr(obj, "name", None) or ""

    if not isinstance(name, str) or not name:
        raise MalformedObjectError(f"object of type {type(obj).__name__} has no name")
    if not isinstance(namespace, str):
        raise MalformedObjectError(f"object of type {type(obj).__name__} has a non-string namespace")
    return ResourceKey(namespace, name)


def deletion_handling_key(obj: object) -> ResourceKey:
    """Like :func:`meta_namespace_key` but also unwraps deletion tombstones."""
    if isinstance(obj, DeletedFinalStateUnknown):
        return obj.key
    return meta_namespace_key(obj)


def split_meta_namespace_key(text: str) -> ResourceKey:
    """Parse ``namespace/name`` or ``name`` into a key.

    Raises:
        MalformedKeyError: for empty names or more than one separator.
    """
    parts = text.split("/")
    if len(parts) == 1 and parts[0]:
        return ResourceKey("", parts[0])
    if len(parts) == 2 and parts[1]:
        return ResourceKey(parts[0], parts[1])
    raise MalformedKeyError(f"unexpected key format: {text!r}")

"""Local mirror of the watched resource collection.

The store is written only by the informer and read by workers through a
:class:`Lister`.  Snapshots are replaced wholesale on every event and never
mutated in place, so a reader may hold a reference across a reconcile call
without copying.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from typing import Generic, TypeVar

import structlog

from pager.controller.keys import meta_namespace_key
from pager.errors import NotFoundError
from pager.models.resources import ResourceKey

_log = structlog.get_logger(component="cache.store")

T = TypeVar("T")

KeyFunc = Callable[[object], ResourceKey]


class Store(Generic[T]):
    """Key-indexed snapshot store.

    Args:
        key_func: Derives the key of a stored object.
    """

    def __init__(self, key_func: KeyFunc = meta_namespace_key) -> None:
        self._key_func = key_func
        self._items: dict[ResourceKey, T] = {}

    def add(self, obj: T) -> T | None:
        """Insert or replace *obj*.  Returns the previous snapshot, if any."""
        key = self._key_func(obj)
        old = self._items.get(key)
        self._items[key] = obj
        return old

    update = add

    def delete(self, obj: T) -> T | None:
        """Remove the entry for *obj*.  Returns the removed snapshot, if any."""
        return self._items.pop(self._key_func(obj), None)

    def replace(self, objs: Iterable[T]) -> dict[ResourceKey, T]:
        """Replace the whole contents with *objs*.

        Returns:
            The previous contents, keyed by resource key.
        """
        previous = self._items
        self._items = {self._key_func(obj): obj for obj in objs}
        return previous

    def get_by_key(self, key: ResourceKey) -> T | None:
        return self._items.get(key)

    def list(self) -> list[T]:
        return list(self._items.values())

    def list_keys(self) -> list[ResourceKey]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        return key in self._items


class Lister(Generic[T]):
    """Read-only lookup view over a :class:`Store`."""

    def __init__(self, store: Store[T]) -> None:
        self._store = store

    def get(self, namespace: str, name: str) -> T:
        """Return the cached snapshot.

        Raises:
            NotFoundError: if the resource is not in the cache.
        """
        obj = self._store.get_by_key(ResourceKey(namespace, name))
        if obj is None:
            raise NotFoundError(namespace, name)
        return obj

    def list(self, namespace: str | None = None) -> list[T]:
        """List cached snapshots, optionally restricted to one namespace."""
        if namespace is None:
            return self._store.list()
        return [
            obj
            for key in self._store.list_keys()
            if key.namespace == namespace and (obj := self._store.get_by_key(key)) is not None
        ]


async def wait_for_cache_sync(
    *has_synced: Callable[[], bool],
    timeout: float,
    poll_interval: float = 0.1,
    stopped: Callable[[], bool] | None = None,
) -> bool:
    """Wait until every *has_synced* callable returns True.

    Returns:
        True once all caches have synced, False if *timeout* elapsed first
        or *stopped* returned True.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not all(fn() for fn in has_synced):
        if stopped is not None and stopped():
            _log.info("cache_sync_abandoned")
            return False
        if loop.time() >= deadline:
            _log.warning("cache_sync_timed_out", timeout=timeout)
            return False
        await asyncio.sleep(poll_interval)
    _log.info("caches_synced")
    return True

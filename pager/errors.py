"""Exception taxonomy for the controller.

Per-key errors (malformed objects, invalid queue items, reconcile failures)
are handled inside the steady-state loop and never terminate the process.
Startup errors (client construction, cache sync timeout) are fatal.
"""

from __future__ import annotations


class PagerError(Exception):
    """Base class for all controller errors."""


class MalformedObjectError(PagerError):
    """Raised when a key cannot be derived from an object."""


class MalformedKeyError(MalformedObjectError):
    """Raised when a key string is not of the form ``namespace/name`` or ``name``."""


class NotFoundError(PagerError):
    """Raised by the lister when a resource is not in the cache.

    This is an expected outcome: the resource was deleted between being
    enqueued and being processed.
    """

    def __init__(self, namespace: str, name: str) -> None:
        super().__init__(f"resource '{namespace}/{name}' not found" if namespace else f"resource '{name}' not found")
        self.namespace = namespace
        self.name = name


class ReconcileError(PagerError):
    """Wraps an exception raised by a reconciler."""

    def __init__(self, key: object, cause: BaseException) -> None:
        super().__init__(f"error processing item '{key}': {cause}")
        self.key = key
        self.cause = cause


class QueueItemTypeError(PagerError):
    """Raised when a dequeued item is not a usable resource key."""


class WatchExpiredError(PagerError):
    """Raised by a list/watch source when the watch resource version is too old (HTTP 410)."""


class SyncTimeoutError(PagerError):
    """Raised when the informer cache does not complete its initial sync in time."""


class ClientConstructionError(PagerError):
    """Raised when the API client cannot be configured."""

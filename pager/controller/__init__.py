"""Reconciliation engine.

Submodules:
    keys       -- key extraction for objects and deletion tombstones.
    ratelimit  -- per-key exponential failure backoff.
    queue      -- WorkQueue: dedup, dirty re-queue, delayed adds, shutdown.
    router     -- EventRouter: watch notifications -> queue keys.
    reconciler -- Reconciler ABC and the bundled AlertReconciler.
    worker     -- Controller: the worker loop.
"""

from pager.controller.keys import deletion_handling_key, meta_namespace_key, split_meta_namespace_key
from pager.controller.queue import WorkQueue
from pager.controller.ratelimit import ItemExponentialFailureRateLimiter
from pager.controller.reconciler import AlertReconciler, FuncReconciler, Reconciler
from pager.controller.router import EventRouter
from pager.controller.worker import Controller

__all__ = [
    "AlertReconciler",
    "Controller",
    "EventRouter",
    "FuncReconciler",
    "ItemExponentialFailureRateLimiter",
    "Reconciler",
    "WorkQueue",
    "deletion_handling_key",
    "meta_namespace_key",
    "split_meta_namespace_key",
]

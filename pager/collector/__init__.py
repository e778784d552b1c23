"""Collector package for the pager controller.

Provides the list/watch machinery that keeps the local cache current and
fans change notifications out to event handlers.

Submodules
----------
informer -- Informer: initial list, watch, relist recovery, resync replays.
kube     -- KubeListWatcher and build_api_client on kubernetes-asyncio.
"""

from pager.collector.informer import Informer, ListWatcher, ResourceEventHandler

__all__ = ["Informer", "ListWatcher", "ResourceEventHandler"]

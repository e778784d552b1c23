"""Cache layer for the pager controller.

Provides the in-memory store of watched resources, fed by the informer.

Submodules:
    store -- Store (key-indexed snapshots), Lister (lookup view) and
             wait_for_cache_sync (startup barrier).
"""

from pager.cache.store import Lister, Store, wait_for_cache_sync

__all__ = ["Lister", "Store", "wait_for_cache_sync"]

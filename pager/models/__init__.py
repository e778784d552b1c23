"""Core data structures for the pager controller."""

from pager.models.config import PagerConfig
from pager.models.resources import (
    Alert,
    AlertSpec,
    AlertStatus,
    DeletedFinalStateUnknown,
    ResourceKey,
)

__all__ = [
    "Alert",
    "AlertSpec",
    "AlertStatus",
    "DeletedFinalStateUnknown",
    "PagerConfig",
    "ResourceKey",
]

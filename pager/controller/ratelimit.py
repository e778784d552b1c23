"""Per-key exponential failure backoff.

The limiter owns the retry state of every key: how many times it has failed
since it was last forgotten.  Delays grow as ``base * 2**failures`` and are
clamped to ``max_delay``.
"""

from __future__ import annotations

from collections.abc import Hashable

_DEFAULT_BASE_DELAY = 5.0
_DEFAULT_MAX_DELAY = 60.0


class ItemExponentialFailureRateLimiter:
    """Computes retry delays keyed by cumulative failure count.

    Args:
        base_delay: Delay in seconds for the first failure.
        max_delay:  Upper bound in seconds for any delay.
    """

    def __init__(
        self,
        base_delay: float = _DEFAULT_BASE_DELAY,
        max_delay: float = _DEFAULT_MAX_DELAY,
    ) -> None:
        if base_delay <= 0:
            raise ValueError(f"base_delay must be positive, got {base_delay}")
        if max_delay < base_delay:
            raise ValueError(f"max_delay ({max_delay}) must not be below base_delay ({base_delay})")
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._failures: dict[Hashable, int] = {}

    @property
    def base_delay(self) -> float:
        return self._base_delay

    @property
    def max_delay(self) -> float:
        return self._max_delay

    def when(self, item: Hashable) -> float:
        """Record a failure for *item* and return how long to wait before retrying."""
        exp = self._failures.get(item, 0)
        self._failures[item] = exp + 1

        try:
            backoff = self._base_delay * (2.0**exp)
        except OverflowError:
            return self._max_delay
        return min(backoff, self._max_delay)

    def num_requeues(self, item: Hashable) -> int:
        return self._failures.get(item, 0)

    def forget(self, item: Hashable) -> None:
        """Reset the failure count of *item*."""
        self._failures.pop(item, None)

    def __len__(self) -> int:
        return len(self._failures)

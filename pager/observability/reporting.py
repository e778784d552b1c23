"""Non-blocking error observation sink.

Every error handled inside the steady-state loop is surfaced here instead of
being raised.  Reporting never influences control flow.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import structlog

from pager.observability.metrics import errors_total

_log = structlog.get_logger(component="errors")

ErrorSink = Callable[..., None]


def report_error(exc: BaseException, component: str = "controller", **context: Any) -> None:
    """Log *exc* with *context* and count it against *component*."""
    errors_total.labels(component=component).inc()
    _log.error(
        "error_observed",
        error_component=component,
        error_type=type(exc).__name__,
        error=str(exc),
        **context,
    )

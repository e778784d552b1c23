"""Logging, metrics and error reporting for the pager controller."""

from pager.observability.logging import get_logger, setup_logging
from pager.observability.reporting import ErrorSink, report_error

__all__ = ["ErrorSink", "get_logger", "report_error", "setup_logging"]

"""pager: a level-triggered reconciliation controller for Alert resources."""

__version__ = "0.1.0"

"""pager command-line interface.

Exposes:
    cli -- Click group entry point (registered as ``pager`` script).
"""

from pager.cli.main import cli

__all__ = ["cli"]

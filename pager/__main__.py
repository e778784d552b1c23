"""Entry point for `python -m pager`.

Usage:
    python -m pager
    uv run python -m pager
"""

from __future__ import annotations

import asyncio

from pager.app import main

asyncio.run(main())

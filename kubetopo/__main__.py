"""Entry point for `python -m kubetopo`.

Usage:
    python -m kubetopo
    uv run python -m kubetopo
"""

from __future__ import annotations

from kubetopo.app import run

run()

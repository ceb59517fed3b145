"""Entry point for `python -m node_label_inheritor`.

Usage:
    python -m node_label_inheritor run --leader-elect
    uv run python -m node_label_inheritor run
"""

from __future__ import annotations

from node_label_inheritor.cli import cli

cli()

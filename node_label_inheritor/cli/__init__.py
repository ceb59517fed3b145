"""node-label-inheritor command-line interface.

Exposes:
    cli -- Click group entry point (registered as ``node-label-inheritor`` script).
"""

from node_label_inheritor.cli.main import cli

__all__ = ["cli"]

"""Core data structures for node-label-inheritor."""

from node_label_inheritor.models.config import InheritorConfig
from node_label_inheritor.models.objects import Host, ObjectKey, ReconcileResult, Workload

__all__ = [
    "Host",
    "InheritorConfig",
    "ObjectKey",
    "ReconcileResult",
    "Workload",
]

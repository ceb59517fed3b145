"""Desired-state extraction from the inheritance annotation.

Pure functions over a pod snapshot; no I/O.
"""

from __future__ import annotations

from node_label_inheritor.constants import INHERIT_ANNOTATION
from node_label_inheritor.errors import MalformedDirectiveError
from node_label_inheritor.models.objects import Workload


def parse_directive(raw_value: str) -> tuple[str, ...] | None:
    """Parse an annotation value into the ordered label keys to inherit.

    Returns None for an empty value.  Only the first raw token is checked for
    emptiness; later empty tokens are passed through and simply never match a
    node label.

    Raises:
        MalformedDirectiveError: the first token (before trimming) is empty.
    """
    if raw_value == "":
        return None
    tokens = raw_value.split(",")
    if not tokens or tokens[0] == "":
        raise MalformedDirectiveError(raw_value)
    return tuple(token.strip() for token in tokens)


def extract_directive(workload: Workload) -> tuple[str, ...] | None:
    """Return the directive requested by *workload*, or None if it requests none."""
    if not workload.annotations:
        return None
    raw_value = workload.annotations.get(INHERIT_ANNOTATION)
    if raw_value is None:
        return None
    return parse_directive(raw_value)


def compute_label_corrections(
    directive: tuple[str, ...],
    workload_labels: dict[str, str],
    host_labels: dict[str, str],
) -> dict[str, str]:
    """Minimal set of label writes that bring the pod in line with its node.

    A key is corrected only when the node has it and the pod's value differs
    or is missing.  Keys outside *directive* and keys the node lacks are never
    returned.
    """
    corrections: dict[str, str] = {}
    for key in directive:
        if key not in host_labels:
            continue
        value = host_labels[key]
        if workload_labels.get(key) != value:
            corrections[key] = value
    return corrections

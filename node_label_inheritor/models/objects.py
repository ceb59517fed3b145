"""Snapshots of the cluster objects the reconciler reads and writes."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from typing import Any


@dataclass(frozen=True, order=True)
class ObjectKey:
    """Namespaced name of a workload, as carried through the work queue."""

    namespace: str
    name: str

    def __str__(self) -> str:
        if not self.namespace:
            return self.name
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True)
class Workload:
    """Point-in-time view of a pod.

    ``annotations`` is None when the object carries no annotation mapping at
    all; ``node_name`` is empty until the scheduler binds the pod.  ``raw`` is
    the full serialised object and is what gets written back on update.
    """

    namespace: str
    name: str
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] | None = None
    node_name: str = ""
    resource_version: str = ""
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(self.namespace, self.name)

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> Workload:
        """Build a snapshot from a serialised pod (camelCase API shape)."""
        metadata = raw.get("metadata") or {}
        spec = raw.get("spec") or {}
        annotations = metadata.get("annotations")
        return cls(
            namespace=str(metadata.get("namespace", "")),
            name=str(metadata.get("name", "")),
            labels=dict(metadata.get("labels") or {}),
            annotations=dict(annotations) if annotations is not None else None,
            node_name=str(spec.get("nodeName") or ""),
            resource_version=str(metadata.get("resourceVersion") or ""),
            raw=raw,
        )

    def with_labels(self, updates: dict[str, str]) -> Workload:
        """Return a copy whose labels have *updates* applied on top."""
        return replace(self, labels={**self.labels, **updates})

    def to_body(self) -> dict[str, Any]:
        """Full object for a replace call.

        Carries the snapshot's resourceVersion so the API server rejects the
        write if the pod changed after it was read.
        """
        body = copy.deepcopy(self.raw)
        metadata = body.setdefault("metadata", {})
        metadata["namespace"] = self.namespace
        metadata["name"] = self.name
        metadata["labels"] = dict(self.labels)
        if self.resource_version:
            metadata["resourceVersion"] = self.resource_version
        return body


@dataclass(frozen=True)
class Host:
    """Point-in-time view of a node."""

    name: str
    labels: dict[str, str] = field(default_factory=dict)
    resource_version: str = ""

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> Host:
        metadata = raw.get("metadata") or {}
        return cls(
            name=str(metadata.get("name", "")),
            labels=dict(metadata.get("labels") or {}),
            resource_version=str(metadata.get("resourceVersion") or ""),
        )


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of a successful reconciliation attempt.

    ``requeue_after`` (seconds) takes precedence over ``requeue``.  The label
    reconciler never sets either; it converges in one write or raises.
    """

    requeue: bool = False
    requeue_after: float | None = None

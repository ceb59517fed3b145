"""Level-triggered reconciler for node label inheritance.

One call to ``Reconciler.reconcile`` is one attempt for one pod key: read the
pod, read its node, compute the label corrections, and write them back in a
single conditional update.  Nothing is remembered between attempts; every
attempt starts from fresh reads, which is what lets a rejected write resolve
itself on the next attempt.

Outcomes:
    pod not found, node not found, not yet scheduled,
    no directive, nothing to correct   -> ReconcileResult(), no requeue
    labels written                      -> ReconcileResult(), no requeue
    malformed directive                 -> MalformedDirectiveError
    read failure                        -> ReadFailureError
    stale write                         -> WriteConflictError
    other write failure                 -> WriteFailureError
    deadline exceeded                   -> ReconcileCancelledError
"""

from __future__ import annotations

import asyncio
import time

from node_label_inheritor.errors import NotFoundError, ReconcileCancelledError
from node_label_inheritor.extractor import compute_label_corrections, extract_directive
from node_label_inheritor.models.objects import ObjectKey, ReconcileResult
from node_label_inheritor.observability.logging import get_logger
from node_label_inheritor.observability.metrics import (
    labels_applied_total,
    reconcile_duration_seconds,
)
from node_label_inheritor.store import ClusterStore

_logger = get_logger("reconciler")

_DONE = ReconcileResult()


class Reconciler:
    """Copies requested node labels onto a pod.

    Args:
        store: Read/write access to pods and nodes.  Injected so tests can
               substitute an in-memory store.
    """

    def __init__(self, store: ClusterStore) -> None:
        self._store = store

    async def reconcile(self, key: ObjectKey, timeout: float | None = None) -> ReconcileResult:
        """Run one attempt for *key*, bounded by *timeout* seconds if given."""
        t_start = time.monotonic()
        try:
            if timeout is None:
                return await self._reconcile(key)
            try:
                return await asyncio.wait_for(self._reconcile(key), timeout=timeout)
            except TimeoutError as exc:
                raise ReconcileCancelledError(str(key), timeout) from exc
        finally:
            reconcile_duration_seconds.observe(time.monotonic() - t_start)

    async def _reconcile(self, key: ObjectKey) -> ReconcileResult:
        log = _logger.bind(key=str(key))

        try:
            workload = await self._store.get_workload(key)
        except NotFoundError:
            log.debug("pod_not_found")
            return _DONE

        if not workload.annotations or not workload.node_name:
            log.debug("pod_not_eligible", node=workload.node_name)
            return _DONE

        directive = extract_directive(workload)
        if directive is None:
            return _DONE

        try:
            host = await self._store.get_host(workload.node_name)
        except NotFoundError:
            log.info("node_not_found", node=workload.node_name)
            return _DONE

        corrections = compute_label_corrections(directive, workload.labels, host.labels)
        if not corrections:
            log.debug("pod_labels_in_sync", node=host.name)
            return _DONE

        await self._store.update_workload(workload.with_labels(corrections))
        labels_applied_total.inc(len(corrections))
        log.info("pod_labels_updated", node=host.name, labels=corrections)
        return _DONE

"""Watch-stream triggers for the reconciliation queue.

BaseWatcher owns list/watch/relist with exponential back-off; subclasses only
decide which keys to enqueue.  A watch is opened with ``timeout_seconds`` set
to the resync period, so every expiry turns into a full relist, which is the
periodic resync that level-triggered reconciliation relies on.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import aiohttp
from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]
from kubernetes_asyncio import watch  # type: ignore[import-untyped]
from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]

from node_label_inheritor.constants import INHERIT_ANNOTATION
from node_label_inheritor.controller.queue import WorkQueue
from node_label_inheritor.models.objects import ObjectKey
from node_label_inheritor.observability.logging import get_logger
from node_label_inheritor.observability.metrics import watch_restarts_total

_INITIAL_BACKOFF = 1.0
_MAX_BACKOFF = 60.0


class WatchExpiredError(Exception):
    """The server ended the watch with an ERROR event (typically 410 Gone)."""


class BaseWatcher(ABC):
    """List-then-watch loop for one resource kind.

    Args:
        v1:            CoreV1Api bound to the controller's ApiClient.
        queue:         Work queue receiving pod keys.
        resync_period: Seconds between full relists.
    """

    kind: str = ""

    def __init__(self, v1: k8s_client.CoreV1Api, queue: WorkQueue, resync_period: float = 600.0) -> None:
        self._v1 = v1
        self._queue = queue
        self._resync_period = max(int(resync_period), 1)
        self._task: asyncio.Task[None] | None = None
        self._synced = False
        self._log = get_logger(f"watcher.{self.kind.lower()}")

    @property
    def has_synced(self) -> bool:
        """True once the first list has been processed."""
        return self._synced

    async def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=f"{self.kind.lower()}-watcher")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    @abstractmethod
    def _list_call(self) -> tuple[Callable[..., Any], dict[str, Any]]:
        """Return the list function and its keyword arguments."""

    @abstractmethod
    def _on_list(self, items: list[dict[str, Any]]) -> None:
        """Handle the complete set of objects from a (re)list."""

    @abstractmethod
    def _handle_event(self, event_type: str, raw: dict[str, Any]) -> None:
        """Handle one ADDED, MODIFIED or DELETED event."""

    async def _run(self) -> None:
        backoff = _INITIAL_BACKOFF
        while True:
            try:
                resource_version = await self._list()
                backoff = _INITIAL_BACKOFF
                await self._watch(resource_version)
            except (ApiException, WatchExpiredError, aiohttp.ClientError, OSError, ValueError) as exc:
                watch_restarts_total.labels(kind=self.kind).inc()
                self._log.warning("watch_failed", error=str(exc), retry_in=backoff)
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, _MAX_BACKOFF)

    async def _list(self) -> str:
        list_fn, kwargs = self._list_call()
        response = await list_fn(**kwargs)
        serialize = self._v1.api_client.sanitize_for_serialization
        items = [serialize(item) for item in response.items or []]
        self._on_list(items)
        if not self._synced:
            self._log.info("initial_list_complete", count=len(items))
        self._synced = True
        return str(response.metadata.resource_version or "")

    async def _watch(self, resource_version: str) -> None:
        list_fn, kwargs = self._list_call()
        async with watch.Watch().stream(
            list_fn,
            resource_version=resource_version,
            timeout_seconds=self._resync_period,
            **kwargs,
        ) as stream:
            async for event in stream:
                event_type = event.get("type", "")
                raw = event.get("raw_object") or {}
                if event_type == "ERROR":
                    raise WatchExpiredError(str(raw.get("message", "watch error")))
                if event_type in ("ADDED", "MODIFIED", "DELETED"):
                    self._handle_event(event_type, raw)


def _is_candidate(raw: dict[str, Any]) -> bool:
    """A pod is worth reconciling once it is scheduled and carries the annotation."""
    metadata = raw.get("metadata") or {}
    annotations = metadata.get("annotations") or {}
    spec = raw.get("spec") or {}
    return INHERIT_ANNOTATION in annotations and bool(spec.get("nodeName"))


def _pod_key(raw: dict[str, Any]) -> ObjectKey | None:
    metadata = raw.get("metadata") or {}
    name = metadata.get("name")
    if not name:
        return None
    return ObjectKey(str(metadata.get("namespace", "")), str(name))


class PodWatcher(BaseWatcher):
    """Enqueues annotated, scheduled pods and indexes them by node.

    The index holds keys only; the reconciler always reads the pod afresh.
    """

    kind = "Pod"

    def __init__(
        self,
        v1: k8s_client.CoreV1Api,
        queue: WorkQueue,
        resync_period: float = 600.0,
        namespace: str = "",
    ) -> None:
        super().__init__(v1, queue, resync_period)
        self._namespace = namespace
        self._node_of: dict[ObjectKey, str] = {}
        self._pods_by_node: dict[str, set[ObjectKey]] = {}

    def _list_call(self) -> tuple[Callable[..., Any], dict[str, Any]]:
        if self._namespace:
            return self._v1.list_namespaced_pod, {"namespace": self._namespace}
        return self._v1.list_pod_for_all_namespaces, {}

    def pods_on_node(self, node_name: str) -> set[ObjectKey]:
        return set(self._pods_by_node.get(node_name, ()))

    def _on_list(self, items: list[dict[str, Any]]) -> None:
        self._node_of.clear()
        self._pods_by_node.clear()
        for raw in items:
            self._handle_event("ADDED", raw)

    def _handle_event(self, event_type: str, raw: dict[str, Any]) -> None:
        key = _pod_key(raw)
        if key is None:
            return
        if event_type == "DELETED" or not _is_candidate(raw):
            self._unindex(key)
            return
        self._index(key, str(raw["spec"]["nodeName"]))
        self._queue.add(key)

    def _index(self, key: ObjectKey, node_name: str) -> None:
        previous = self._node_of.get(key)
        if previous == node_name:
            return
        if previous is not None:
            self._unindex(key)
        self._node_of[key] = node_name
        self._pods_by_node.setdefault(node_name, set()).add(key)

    def _unindex(self, key: ObjectKey) -> None:
        node_name = self._node_of.pop(key, None)
        if node_name is None:
            return
        keys = self._pods_by_node.get(node_name)
        if keys is not None:
            keys.discard(key)
            if not keys:
                del self._pods_by_node[node_name]


class NodeWatcher(BaseWatcher):
    """Requeues the annotated pods on a node whenever that node's labels change."""

    kind = "Node"

    def __init__(
        self,
        v1: k8s_client.CoreV1Api,
        queue: WorkQueue,
        pods: PodWatcher,
        resync_period: float = 600.0,
    ) -> None:
        super().__init__(v1, queue, resync_period)
        self._pods = pods
        self._labels: dict[str, dict[str, str]] = {}

    def _list_call(self) -> tuple[Callable[..., Any], dict[str, Any]]:
        return self._v1.list_node, {}

    def _on_list(self, items: list[dict[str, Any]]) -> None:
        seen: set[str] = set()
        for raw in items:
            name = (raw.get("metadata") or {}).get("name")
            if name:
                seen.add(str(name))
                self._handle_event("ADDED", raw)
        for name in set(self._labels) - seen:
            del self._labels[name]

    def _handle_event(self, event_type: str, raw: dict[str, Any]) -> None:
        metadata = raw.get("metadata") or {}
        name = str(metadata.get("name") or "")
        if not name:
            return
        if event_type == "DELETED":
            self._labels.pop(name, None)
            return
        labels = dict(metadata.get("labels") or {})
        previous = self._labels.get(name)
        self._labels[name] = labels
        # The first sighting of a node is covered by the pod list itself.
        if previous is None or previous == labels:
            return
        pod_keys = self._pods.pods_on_node(name)
        self._log.debug("node_labels_changed", node=name, pods=len(pod_keys))
        for key in pod_keys:
            self._queue.add(key)

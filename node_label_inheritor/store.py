"""Access to pods and nodes in the cluster store.

The reconciler depends only on ``ClusterStore``; ``KubernetesStore`` is the
production implementation over kubernetes-asyncio.  The API client is passed
in explicitly so each store carries its own connection configuration.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import aiohttp
from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]
from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]

from node_label_inheritor.errors import (
    NotFoundError,
    ReadFailureError,
    WriteConflictError,
    WriteFailureError,
)
from node_label_inheritor.models.objects import Host, ObjectKey, Workload
from node_label_inheritor.observability.logging import get_logger

_log = get_logger("store")

_HTTP_NOT_FOUND = 404
_HTTP_CONFLICT = 409

# Connection resets, DNS failures, client-side timeouts.
_TRANSPORT_ERRORS = (aiohttp.ClientError, OSError)


class ClusterStore(ABC):
    """Read/write boundary of the reconciler."""

    @abstractmethod
    async def get_workload(self, key: ObjectKey) -> Workload:
        """Read a pod.

        Raises:
            NotFoundError: the pod does not exist.
            ReadFailureError: any other failure.
        """

    @abstractmethod
    async def get_host(self, name: str) -> Host:
        """Read a node.

        Raises:
            NotFoundError: the node does not exist.
            ReadFailureError: any other failure.
        """

    @abstractmethod
    async def update_workload(self, workload: Workload) -> Workload:
        """Replace a pod, conditional on its resourceVersion.

        Raises:
            WriteConflictError: the pod changed since *workload* was read.
            WriteFailureError: any other failure.
        """


class KubernetesStore(ClusterStore):
    """``ClusterStore`` backed by the Kubernetes core/v1 API."""

    def __init__(self, api_client: k8s_client.ApiClient) -> None:
        self._api_client = api_client
        self._v1 = k8s_client.CoreV1Api(api_client)

    def _serialize(self, obj: Any) -> dict[str, Any]:
        return self._api_client.sanitize_for_serialization(obj)  # type: ignore[no-any-return]

    async def get_workload(self, key: ObjectKey) -> Workload:
        try:
            pod = await self._v1.read_namespaced_pod(name=key.name, namespace=key.namespace)
        except ApiException as exc:
            if exc.status == _HTTP_NOT_FOUND:
                raise NotFoundError("Pod", str(key)) from exc
            raise ReadFailureError("Pod", str(key), exc) from exc
        except _TRANSPORT_ERRORS as exc:
            raise ReadFailureError("Pod", str(key), exc) from exc
        return Workload.from_raw(self._serialize(pod))

    async def get_host(self, name: str) -> Host:
        try:
            node = await self._v1.read_node(name=name)
        except ApiException as exc:
            if exc.status == _HTTP_NOT_FOUND:
                raise NotFoundError("Node", name) from exc
            raise ReadFailureError("Node", name, exc) from exc
        except _TRANSPORT_ERRORS as exc:
            raise ReadFailureError("Node", name, exc) from exc
        return Host.from_raw(self._serialize(node))

    async def update_workload(self, workload: Workload) -> Workload:
        key = str(workload.key)
        try:
            pod = await self._v1.replace_namespaced_pod(
                name=workload.name,
                namespace=workload.namespace,
                body=workload.to_body(),
            )
        except ApiException as exc:
            if exc.status == _HTTP_CONFLICT:
                raise WriteConflictError(key, exc) from exc
            raise WriteFailureError(key, exc) from exc
        except _TRANSPORT_ERRORS as exc:
            raise WriteFailureError(key, exc) from exc
        updated = Workload.from_raw(self._serialize(pod))
        _log.debug("pod_replaced", key=key, resource_version=updated.resource_version)
        return updated

"""Lease-based leader election.

Only one replica reconciles at a time.  The election protocol is the one
shipped with kubernetes_asyncio: a follower measures lease expiry from the
moment it last saw the Lease record change, never from the holder's
``renewTime``, so clock skew between replicas cannot hand over a live lease.
LeaderElector wraps it with the leader status gauge and releases the Lease
on shutdown.
"""

from __future__ import annotations

import socket
from collections.abc import Awaitable, Callable
from uuid import uuid4

import aiohttp
from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]
from kubernetes_asyncio.leaderelection.electionconfig import Config  # type: ignore[import-untyped]
from kubernetes_asyncio.leaderelection.leaderelection import LeaderElection  # type: ignore[import-untyped]
from kubernetes_asyncio.leaderelection.resourcelock.leaselock import LeaseLock  # type: ignore[import-untyped]

from node_label_inheritor.observability.logging import get_logger
from node_label_inheritor.observability.metrics import leader_status

_log = get_logger("controller.leader")

_TRANSPORT_ERRORS = (aiohttp.ClientError, OSError)


def default_identity() -> str:
    return f"{socket.gethostname()}_{uuid4()}"


class _LeaseElection(LeaderElection):
    """LeaderElection that treats an unreachable API server as a lost round."""

    async def try_acquire_or_renew(self) -> bool:
        try:
            return bool(await super().try_acquire_or_renew())
        except _TRANSPORT_ERRORS as exc:
            _log.warning("error reaching lease", error=str(exc))
            return False


class LeaderElector:
    """Acquires and holds a Lease on behalf of this process.

    Args:
        api_client:     ApiClient shared with the rest of the controller.
        lease_name:     Name of the Lease object.
        namespace:      Namespace of the Lease object.
        identity:       Holder identity written into the Lease.
        lease_duration: Seconds a follower waits, after last seeing the Lease change, before taking over.
        renew_deadline: Seconds the leader keeps trying to renew before giving up.
        retry_period:   Seconds between acquire/renew attempts.

    Raises ValueError when the timings are inconsistent.
    """

    def __init__(
        self,
        api_client: object,
        lease_name: str,
        namespace: str,
        identity: str | None = None,
        lease_duration: float = 15.0,
        renew_deadline: float = 10.0,
        retry_period: float = 2.0,
    ) -> None:
        self.identity = identity or default_identity()
        self.lock = LeaseLock(lease_name, namespace, self.identity, api_client)
        self._on_started: Callable[[], Awaitable[None]] | None = None
        self._on_stopped: Callable[[], Awaitable[None]] | None = None
        self._election = _LeaseElection(
            Config(
                self.lock,
                lease_duration=lease_duration,
                renew_deadline=renew_deadline,
                retry_period=retry_period,
                onstarted_leading=self._started_leading,
                onstopped_leading=self._stopped_leading,
            )
        )
        self._is_leader = False
        self._log = _log.bind(lease=f"{namespace}/{lease_name}", identity=self.identity)

    @property
    def is_leader(self) -> bool:
        return self._is_leader

    async def run(
        self,
        on_started_leading: Callable[[], Awaitable[None]],
        on_stopped_leading: Callable[[], Awaitable[None]],
    ) -> None:
        """Block until the lease is acquired, lead, and return once it is lost."""
        self._on_started = on_started_leading
        self._on_stopped = on_stopped_leading
        self._log.info("attempting to acquire leader lease")
        try:
            await self._election.run()
        finally:
            self._set_leader(False)

    async def try_acquire_or_renew(self) -> bool:
        """One acquire/renew round.  Returns True if this process holds the lease afterwards."""
        return bool(await self._election.try_acquire_or_renew())

    async def stop(self) -> None:
        await self.release()

    async def release(self) -> None:
        """Give the lease up so a follower can take over without waiting."""
        api = self.lock.api_instance
        try:
            lease = await api.read_namespaced_lease(name=self.lock.name, namespace=self.lock.namespace)
            if lease.spec is None or lease.spec.holder_identity != self.identity:
                return
            lease.spec.holder_identity = ""
            lease.spec.lease_duration_seconds = 1
            await api.replace_namespaced_lease(name=self.lock.name, namespace=self.lock.namespace, body=lease)
            self._log.info("leader lease released")
        except (ApiException, *_TRANSPORT_ERRORS) as exc:
            self._log.warning("failed to release leader lease", error=str(exc))
        finally:
            self._set_leader(False)

    async def _started_leading(self) -> None:
        self._set_leader(True)
        self._log.info("successfully acquired lease")
        if self._on_started is not None:
            await self._on_started()

    async def _stopped_leading(self) -> None:
        self._set_leader(False)
        self._log.warning("leader lease lost")
        if self._on_stopped is not None:
            await self._on_stopped()

    def _set_leader(self, value: bool) -> None:
        self._is_leader = value
        leader_status.set(1 if value else 0)

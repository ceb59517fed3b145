"""Application bootstrap for node-label-inheritor.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config -> logging -> K8s client -> store/reconciler -> queue
              -> watchers -> controller -> probe/metrics servers
              -> leader election (gates watchers and controller)

Shutdown is fully graceful: components are stopped in reverse startup order.
Each component's stop error is caught and logged independently so that a
single failure does not prevent the rest from shutting down cleanly.
"""

from __future__ import annotations

import asyncio
import signal
from pathlib import Path
from typing import TYPE_CHECKING, Any

from node_label_inheritor.config import load_config, parse_bind_address
from node_label_inheritor.constants import SERVICE_ACCOUNT_NAMESPACE_FILE
from node_label_inheritor.models.config import InheritorConfig
from node_label_inheritor.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class InheritorApp:
    """Application root.  Owns every component and coordinates their lifecycle.

    ``stop()`` is safe to call on an app that was never started or is
    already stopped.
    """

    def __init__(self, config: InheritorConfig | None = None) -> None:
        self.config = config
        self.exit_code = 0

        self._api_client: Any = None
        self._queue: Any = None
        self._reconciler: Any = None
        self._pod_watcher: Any = None
        self._node_watcher: Any = None
        self._controller: Any = None
        self._elector: Any = None
        self._servers: list[Any] = []
        self._election_task: asyncio.Task[None] | None = None

        self._background_tasks: list[asyncio.Task[None]] = []
        self._leading = False
        self._running = False
        self._stopping = False
        self._stopped = asyncio.Event()
        self._log: structlog.stdlib.BoundLogger | None = None

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        """
        if self.config is None:
            self.config = load_config()

        setup_logging(self.config.log.level, self.config.log.development)
        self._log = get_logger("app")
        self._log.info("node-label-inheritor starting", version=_version())

        await self._start_k8s_client()
        self._build_controller()
        await self._start_servers()
        self._running = True

        if self.config.manager.leader_election:
            await self._start_leader_election()
        else:
            await self._start_leading()

        self._log.info("node-label-inheritor started")

    async def _start_k8s_client(self) -> None:
        """Build an ApiClient from in-cluster config or kubeconfig."""
        assert self._log is not None
        self._log.debug("starting k8s client")
        try:
            from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]
            from kubernetes_asyncio import config as k8s_config  # type: ignore[import-untyped]

            configuration = k8s_client.Configuration()
            try:
                k8s_config.load_incluster_config(client_configuration=configuration)
                self._log.info("k8s client configured from in-cluster service account")
            except k8s_config.ConfigException:
                await k8s_config.load_kube_config(client_configuration=configuration)
                self._log.info("k8s client configured from kubeconfig")

            self._api_client = k8s_client.ApiClient(configuration=configuration)
        except Exception as exc:
            raise _ComponentError("k8s_client", exc) from exc

    def _build_controller(self) -> None:
        """Construct store, reconciler, queue, watchers and workers without starting them."""
        assert self.config is not None
        assert self._log is not None
        try:
            from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]

            from node_label_inheritor.controller import (
                LabelInheritanceController,
                NodeWatcher,
                PodWatcher,
                WorkQueue,
            )
            from node_label_inheritor.reconciler import Reconciler
            from node_label_inheritor.store import KubernetesStore

            cfg = self.config.controller
            v1 = k8s_client.CoreV1Api(self._api_client)

            self._queue = WorkQueue(base_delay=cfg.backoff_base_seconds, max_delay=cfg.backoff_max_seconds)
            self._reconciler = Reconciler(KubernetesStore(self._api_client))
            self._pod_watcher = PodWatcher(
                v1,
                self._queue,
                resync_period=cfg.resync_period_seconds,
                namespace=cfg.watch_namespace,
            )
            if cfg.watch_nodes:
                self._node_watcher = NodeWatcher(
                    v1,
                    self._queue,
                    self._pod_watcher,
                    resync_period=cfg.resync_period_seconds,
                )
            self._controller = LabelInheritanceController(
                self._reconciler,
                self._queue,
                workers=cfg.workers,
                reconcile_timeout=cfg.reconcile_timeout_seconds,
            )
        except Exception as exc:
            raise _ComponentError("controller", exc) from exc

    async def _start_servers(self) -> None:
        """Serve probes and metrics on their configured addresses."""
        assert self.config is not None
        assert self._log is not None
        try:
            import uvicorn  # type: ignore[import-untyped]

            from node_label_inheritor.api import create_metrics_app, create_probe_app

            apps = [
                ("metrics", self.config.manager.metrics_bind_address, create_metrics_app()),
                ("probes", self.config.manager.health_probe_bind_address, create_probe_app(self.is_ready)),
            ]
            for name, address, fastapi_app in apps:
                bind = parse_bind_address(address)
                if bind is None:
                    self._log.info("endpoint disabled", endpoint=name)
                    continue
                host, port = bind
                uv_config = uvicorn.Config(
                    app=fastapi_app,
                    host=host,
                    port=port,
                    log_config=None,  # structlog handles all logging
                    access_log=False,
                )
                server = uvicorn.Server(uv_config)
                task = asyncio.create_task(server.serve(), name=f"{name}-server")
                self._background_tasks.append(task)
                self._servers.append(server)
                self._log.info("endpoint serving", endpoint=name, host=host, port=port)
        except Exception as exc:
            raise _ComponentError("servers", exc) from exc

    async def _start_leader_election(self) -> None:
        assert self.config is not None
        assert self._log is not None
        try:
            from node_label_inheritor.controller import LeaderElector

            mgr = self.config.manager
            self._elector = LeaderElector(
                self._api_client,
                lease_name=mgr.leader_election_id,
                namespace=mgr.leader_election_namespace or _in_cluster_namespace(),
                lease_duration=mgr.lease_duration_seconds,
                renew_deadline=mgr.renew_deadline_seconds,
                retry_period=mgr.retry_period_seconds,
            )
        except Exception as exc:
            raise _ComponentError("leader_election", exc) from exc

        self._election_task = asyncio.create_task(
            self._elector.run(self._start_leading, self._on_lease_lost),
            name="leader-election",
        )

    async def _start_leading(self) -> None:
        """Start the watch triggers and the worker pool."""
        assert self._log is not None
        for component in (self._pod_watcher, self._node_watcher, self._controller):
            if component is not None:
                await component.start()
        self._leading = True

    async def _on_lease_lost(self) -> None:
        assert self._log is not None
        self._log.error("leader election lost; shutting down")
        self.exit_code = 1
        asyncio.create_task(self.stop(), name="shutdown")

    def is_ready(self) -> bool:
        """Followers are ready immediately; the leader once its pod list has synced."""
        if not self._leading:
            return self._running
        return self._pod_watcher is not None and self._pod_watcher.has_synced

    async def wait_stopped(self) -> None:
        await self._stopped.wait()

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if self._stopping:
            await self._stopped.wait()
            return
        self._stopping = True
        if self._log is None:
            # Never started
            self._stopped.set()
            return

        log = self._log
        log.info("node-label-inheritor shutting down")
        self._running = False

        # Stop producing keys before tearing down the consumers.
        await self._stop_component("node_watcher", self._node_watcher)
        await self._stop_component("pod_watcher", self._pod_watcher)
        await self._stop_component("controller", self._controller)
        self._leading = False

        if self._election_task is not None and self._election_task is not asyncio.current_task():
            self._election_task.cancel()
            await asyncio.gather(self._election_task, return_exceptions=True)
        await self._stop_component("leader_election", self._elector)

        for server in self._servers:
            server.should_exit = True
        if self._background_tasks:
            await asyncio.wait(self._background_tasks, timeout=_SHUTDOWN_GRACE_SECONDS)
        self._background_tasks.clear()

        await self._stop_k8s_client()
        log.info("node-label-inheritor stopped")
        self._stopped.set()

    async def _stop_component(self, name: str, component: object | None) -> None:
        """Call stop() on a component if it has that method, catching all errors."""
        if component is None:
            return
        log = self._log or get_logger("app")
        stop_fn = getattr(component, "stop", None)
        if stop_fn is None:
            return
        try:
            result = stop_fn()
            if asyncio.iscoroutine(result):
                await asyncio.wait_for(result, timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component stop timed out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component stop raised an error", component=name, error=str(exc))

    async def _stop_k8s_client(self) -> None:
        """Close the ApiClient connection pool."""
        if self._api_client is None:
            return
        log = self._log or get_logger("app")
        try:
            await self._api_client.close()
        except Exception as exc:
            log.debug("k8s client close raised (non-fatal)", error=str(exc))
        self._api_client = None


def _in_cluster_namespace() -> str:
    path = Path(SERVICE_ACCOUNT_NAMESPACE_FILE)
    try:
        namespace = path.read_text().strip()
    except OSError:
        return "default"
    return namespace or "default"


def _version() -> str:
    from node_label_inheritor import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main(config: InheritorConfig | None = None) -> int:
    """Create the app, register OS signals, run until shutdown is requested.

    Returns the process exit code.
    """
    app = InheritorApp(config)
    loop = asyncio.get_running_loop()

    shutdown_triggered = False

    def _request_shutdown() -> None:
        nonlocal shutdown_triggered
        if shutdown_triggered:
            return
        shutdown_triggered = True
        asyncio.create_task(app.stop(), name="shutdown")

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _request_shutdown)

    try:
        await app.start()
        await app.wait_stopped()
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical(
            "fatal startup error",
            component=exc.component,
            error=str(exc.cause),
        )
        await app.stop()
        return 1
    finally:
        if app._running:
            await app.stop()
    return app.exit_code

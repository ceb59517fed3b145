"""Worker pool driving the reconciler from the work queue."""

from __future__ import annotations

import asyncio

from node_label_inheritor.controller.queue import QueueShutDownError, WorkQueue
from node_label_inheritor.errors import ReconcileError
from node_label_inheritor.models.objects import ObjectKey
from node_label_inheritor.observability.logging import get_logger
from node_label_inheritor.observability.metrics import reconcile_errors_total, reconcile_total
from node_label_inheritor.reconciler import Reconciler

_log = get_logger("controller")


class LabelInheritanceController:
    """Runs ``workers`` concurrent reconcile loops over a shared queue.

    The queue guarantees a key is never handed to two workers at once, so
    workers share no state beyond the queue itself.

    Args:
        reconciler:        Per-key reconcile handler.
        queue:             Source of pod keys.
        workers:           Number of concurrent workers.
        reconcile_timeout: Deadline for a single attempt, in seconds.
    """

    def __init__(
        self,
        reconciler: Reconciler,
        queue: WorkQueue,
        workers: int = 2,
        reconcile_timeout: float | None = 30.0,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self._reconciler = reconciler
        self._queue = queue
        self._workers = workers
        self._reconcile_timeout = reconcile_timeout
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def start(self) -> None:
        if self._tasks:
            return
        for i in range(self._workers):
            self._tasks.append(asyncio.create_task(self._worker(), name=f"reconcile-worker-{i}"))
        _log.info("controller started", workers=self._workers)

    async def stop(self) -> None:
        """Shut the queue down and wait for in-flight attempts to finish."""
        self._queue.shut_down()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        _log.info("controller stopped")

    async def _worker(self) -> None:
        while True:
            try:
                key = await self._queue.get()
            except QueueShutDownError:
                return
            try:
                await self.process(key)  # type: ignore[arg-type]
            finally:
                self._queue.done(key)

    async def process(self, key: ObjectKey) -> None:
        """Reconcile *key* once and schedule its follow-up according to the outcome."""
        try:
            result = await self._reconciler.reconcile(key, timeout=self._reconcile_timeout)
        except ReconcileError as exc:
            reconcile_total.labels(result="error").inc()
            reconcile_errors_total.labels(error=type(exc).__name__).inc()
            _log.error(
                "reconcile_failed",
                key=str(key),
                error_type=type(exc).__name__,
                error=str(exc),
                requeues=self._queue.num_requeues(key),
            )
            if exc.retryable:
                self._queue.add_rate_limited(key)
            else:
                self._queue.forget(key)
            return
        except Exception as exc:
            reconcile_total.labels(result="error").inc()
            reconcile_errors_total.labels(error=type(exc).__name__).inc()
            _log.exception("reconcile_unexpected_error", key=str(key), error=str(exc))
            self._queue.add_rate_limited(key)
            return

        if result.requeue_after is not None:
            reconcile_total.labels(result="requeue_after").inc()
            self._queue.forget(key)
            self._queue.add_after(key, result.requeue_after)
        elif result.requeue:
            reconcile_total.labels(result="requeue").inc()
            self._queue.add_rate_limited(key)
        else:
            reconcile_total.labels(result="success").inc()
            self._queue.forget(key)
